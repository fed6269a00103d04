# app/providers/batch_client.py
from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from decimal import Decimal
from typing import Any, Optional

from settings import settings
from app.providers.base import ProviderBatch, ProviderError, ProviderPayment
from app.providers.http import HttpClient

logger = logging.getLogger("finance.providers.batch")


class BatchPayoutClient:
    """
    Batch payout API:
      POST /v1/batches                           -> open a batch
      POST /v1/batches/{id}/payments             -> add one payment
      POST /v1/batches/{id}/generate-quote       -> fx/fee quote
      POST /v1/batches/{id}/start-processing     -> release funds
      GET  /v1/recipients/{id}                   -> payout method of a recipient

    Requests are signed: Authorization: prsign <access_key>:<hmac>, where the
    HMAC-SHA256 covers "<timestamp>\\n<METHOD>\\n<path>\\n<body>\\n".
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        http: HttpClient | None = None,
        debug: bool | None = None,
    ):
        self.base_url = (base_url or settings.PROVIDER_API_BASE_URL or "").strip().rstrip("/")
        self.access_key = (access_key if access_key is not None else settings.PROVIDER_ACCESS_KEY).strip()
        self.secret_key = (secret_key if secret_key is not None else settings.PROVIDER_SECRET_KEY).strip()
        self.http = http or HttpClient(timeout_s=settings.PROVIDER_HTTP_TIMEOUT_S)
        self.debug = settings.PROVIDER_HTTP_DEBUG if debug is None else debug

        if not self.base_url:
            raise ProviderError("PROVIDER_API_BASE_URL_NOT_SET")
        if not (self.access_key and self.secret_key):
            raise ProviderError("PROVIDER_ACCESS_KEY_OR_SECRET_NOT_SET")

    def _sign(self, timestamp: str, method: str, path: str, body: str) -> str:
        message = f"{timestamp}\n{method}\n{path}\n{body}\n".encode("utf-8")
        return hmac.new(self.secret_key.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else ""
        timestamp = str(int(time.time()))
        headers = {
            "Content-Type": "application/json",
            "X-PR-Timestamp": timestamp,
            "Authorization": f"prsign {self.access_key}:{self._sign(timestamp, method, path, body)}",
        }

        try:
            if method == "GET":
                resp = self.http.get(self.base_url + path, headers=headers, debug=self.debug)
            else:
                resp = self.http.post(
                    self.base_url + path, headers=headers, content=body.encode("utf-8"), debug=self.debug
                )
        except Exception as exc:
            logger.warning("provider call failed path=%s err=%s", path, exc)
            raise ProviderError(f"provider unreachable: {exc}") from exc

        if resp.status_code >= 400:
            logger.warning("provider call rejected path=%s status=%s body=%s", path, resp.status_code, resp.text[:300])
            raise ProviderError(
                f"provider returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                response=resp.json,
            )

        return resp.json or {}

    def _post(self, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._request("POST", path, payload)

    def open_batch(self, description: str) -> ProviderBatch:
        data = self._post("/v1/batches", {"description": description, "sourceCurrency": "USD"})
        batch = data.get("batch") or {}
        if not batch.get("id"):
            raise ProviderError("provider batch response missing id", response=data)
        logger.info("provider batch opened batch_id=%s", batch["id"])
        return ProviderBatch(id=str(batch["id"]), status=batch.get("status"))

    def add_payment(
        self,
        batch_id: str,
        *,
        recipient_id: str,
        amount: Decimal,
        currency: str,
        external_id: str,
        memo: Optional[str] = None,
    ) -> ProviderPayment:
        payload: dict[str, Any] = {
            "recipient": {"id": recipient_id},
            "sourceAmount": str(Decimal(amount).quantize(Decimal("0.01"))),
            "sourceCurrency": currency,
            "externalId": external_id,
        }
        if memo:
            payload["memo"] = memo

        data = self._post(f"/v1/batches/{batch_id}/payments", payload)
        payment = data.get("payment") or {}
        if not payment.get("id"):
            raise ProviderError("provider payment response missing id", response=data)
        logger.info("provider payment added batch_id=%s payment_id=%s", batch_id, payment["id"])
        return ProviderPayment(id=str(payment["id"]), batch_id=batch_id, status=payment.get("status"))

    def generate_quote(self, batch_id: str) -> None:
        self._post(f"/v1/batches/{batch_id}/generate-quote")

    def start_processing(self, batch_id: str) -> None:
        self._post(f"/v1/batches/{batch_id}/start-processing")

    def get_payout_method(self, recipient_id: str) -> Optional[str]:
        data = self._request("GET", f"/v1/recipients/{recipient_id}")
        recipient = data.get("recipient") or {}
        method = recipient.get("payoutMethod")
        return str(method).lower() if method else None
