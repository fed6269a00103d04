from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
# bank, routing and card numbers keep their last four digits
_ACCOUNT_NUMBER_RE = re.compile(r"\b\d{8,34}\b")

# any text containing one of these is dropped whole
_CREDENTIAL_MARKERS = ("access_token", "refresh_token", "bearer", "prsign")

_KEY_SUBSTRINGS = (
    "token",
    "authorization",
    "secret",
    "signature",
    "password",
    "iban",
    "accountnum",
    "account_num",
    "swift",
    "routing",
)
# too short to match as substrings ("tin" is in "setting")
_KEY_EXACT = frozenset({"tin", "ssn", "taxid"})


def redact_text(value: str) -> str:
    if any(marker in value.lower() for marker in _CREDENTIAL_MARKERS):
        return REDACTED
    masked = _EMAIL_RE.sub(lambda m: f"{m.group(1)}***{m.group(2)}", value)
    return _ACCOUNT_NUMBER_RE.sub(lambda m: "*" * (len(m.group(0)) - 4) + m.group(0)[-4:], masked)


def is_sensitive_key(key: str) -> bool:
    lowered = (key or "").lower()
    return lowered in _KEY_EXACT or any(part in lowered for part in _KEY_SUBSTRINGS)


def redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return redact_dict(value)
    if isinstance(value, (list, tuple)):
        return [redact_value(v) for v in value]
    return value


def redact_dict(payload: dict[str, Any]) -> dict[str, Any]:
    """Copy of a webhook payload safe to log or show an operator."""
    return {k: REDACTED if is_sensitive_key(k) else redact_value(v) for k, v in payload.items()}
