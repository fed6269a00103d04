# app/webhooks/signature.py
from __future__ import annotations

import hashlib
import hmac
import re

SIGNATURE_HEADER = "x-provider-signature"
DELIVERY_HEADER = "x-provider-delivery"
CREATED_HEADER = "x-provider-created"

_SIGNATURE_RE = re.compile(r"^\s*t=(\d+),v1=([a-f0-9]{64})\s*$", re.IGNORECASE)

SECRET_NOT_CONFIGURED = "WEBHOOK_SECRET_NOT_CONFIGURED"
MISSING_SIGNATURE = "MISSING_SIGNATURE"
MALFORMED_SIGNATURE = "MALFORMED_SIGNATURE"
INVALID_SIGNATURE = "INVALID_SIGNATURE"


def compute_signature(secret: str, timestamp: str, raw: bytes) -> str:
    message = timestamp.encode("utf-8") + raw
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(*, raw: bytes, signature_header: str | None, secret: str | None) -> tuple[bool, str | None]:
    """
    Header format: t=<unix seconds>,v1=<hex hmac-sha256 of timestamp + raw body>.
    """
    if not secret or not secret.strip():
        return False, SECRET_NOT_CONFIGURED

    if not signature_header or not signature_header.strip():
        return False, MISSING_SIGNATURE

    m = _SIGNATURE_RE.match(signature_header)
    if not m:
        return False, MALFORMED_SIGNATURE

    timestamp, sig = m.group(1), m.group(2).lower()
    expected = compute_signature(secret, timestamp, raw)
    if not hmac.compare_digest(expected, sig):
        return False, INVALID_SIGNATURE

    return True, None
