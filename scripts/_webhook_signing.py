import hashlib
import hmac
import json
import time


def canonical_json_bytes(payload) -> bytes:
    return json.dumps(
        payload,
        separators=(",", ":"),
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")


def hmac_sha256_hex(secret: str, body_bytes: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body_bytes, hashlib.sha256).hexdigest()


def provider_signature_header(secret: str, body_bytes: bytes, timestamp: int | None = None) -> dict[str, str]:
    t = str(int(timestamp if timestamp is not None else time.time()))
    sig = hmac_sha256_hex(secret, t.encode("utf-8") + body_bytes)
    return {"x-provider-signature": f"t={t},v1={sig}"}


def provider_webhook_headers(
    secret: str,
    body_bytes: bytes,
    *,
    delivery_id: str,
    created: str = "2024-01-01T00:00:00Z",
    timestamp: int | None = None,
) -> dict[str, str]:
    headers = {
        "content-type": "application/json",
        "x-provider-delivery": delivery_id,
        "x-provider-created": created,
    }
    headers.update(provider_signature_header(secret, body_bytes, timestamp))
    return headers
