# app/providers/http.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger("finance.providers.http")


@dataclass
class HttpResponse:
    status_code: int
    json: Optional[dict[str, Any]]
    text: str


class HttpClient:
    def __init__(self, timeout_s: float = 20.0, follow_redirects: bool = True, transport: httpx.BaseTransport | None = None):
        self._client = httpx.Client(timeout=timeout_s, follow_redirects=follow_redirects, transport=transport)

    def post(
        self,
        url: str,
        *,
        headers: dict[str, str],
        content: bytes | None = None,
        debug: bool = False,
    ) -> HttpResponse:
        r = self._client.post(url, headers=headers, content=content)
        if debug:
            self._debug_dump("POST", url, headers, r)
        return self._wrap(r)

    def get(self, url: str, *, headers: dict[str, str], debug: bool = False) -> HttpResponse:
        r = self._client.get(url, headers=headers)
        if debug:
            self._debug_dump("GET", url, headers, r)
        return self._wrap(r)

    @staticmethod
    def _wrap(r: httpx.Response) -> HttpResponse:
        try:
            payload = r.json()
        except ValueError:
            payload = None
        return HttpResponse(status_code=r.status_code, json=payload, text=r.text)

    @staticmethod
    def _debug_dump(method: str, url: str, headers: dict[str, str], r: httpx.Response) -> None:
        # never log credentials
        safe_headers = dict(headers or {})
        if "Authorization" in safe_headers:
            safe_headers["Authorization"] = "REDACTED"

        logger.debug("%s %s headers=%s -> status=%s", method, url, safe_headers, r.status_code)
        logger.debug("response text=%s", r.text[:300])
