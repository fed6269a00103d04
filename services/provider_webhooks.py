# services/provider_webhooks.py
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from app.uow import PgUnitOfWork, UowFactory
from app.webhooks.handlers import Handler, build_handler_registry
from app.webhooks.repository import EVENT_ERROR, EVENT_PROCESSED
from app.webhooks.signature import (
    CREATED_HEADER,
    DELIVERY_HEADER,
    SECRET_NOT_CONFIGURED,
    SIGNATURE_HEADER,
    verify_signature,
)
from services import metrics
from services.errors import InternalError, InvalidRequestError, InvalidSignatureError
from services.redaction import redact_dict
from settings import settings

logger = logging.getLogger("finance.webhooks")

OUTCOME_PROCESSED = "processed"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_IGNORED = "ignored"
OUTCOME_ERROR = "error"

_registry: dict[str, Handler] = build_handler_registry()


def _lower_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {str(k).lower(): v for k, v in (headers or {}).items()}


def handle_provider_webhook(
    headers: Mapping[str, str],
    raw_body: bytes,
    parsed_body: Any,
    *,
    uow_factory: UowFactory = PgUnitOfWork,
    handlers: Optional[dict[str, Handler]] = None,
) -> dict[str, Any]:
    """
    received -> signature-checked -> dedup-checked -> dispatched -> processed | error

    Only a bad signature or a missing delivery id is rejected. Everything past
    that point is acknowledged, including duplicates and handler failures;
    the event log row carries the outcome.
    """
    h = _lower_headers(headers)
    handlers = _registry if handlers is None else handlers

    ok, err = verify_signature(
        raw=raw_body,
        signature_header=h.get(SIGNATURE_HEADER),
        secret=settings.PROVIDER_WEBHOOK_SECRET,
    )
    if err == SECRET_NOT_CONFIGURED:
        logger.error("provider webhook secret is not configured")
        raise InternalError(SECRET_NOT_CONFIGURED)
    if not ok:
        metrics.increment_webhook_event("unknown", "invalid_signature")
        logger.info("webhook rejected reason=%s", err)
        raise InvalidSignatureError("Missing or invalid signature!")

    event_id = (h.get(DELIVERY_HEADER) or "").strip()
    if not event_id:
        raise InvalidRequestError(f"missing {DELIVERY_HEADER} header")

    if not isinstance(parsed_body, dict):
        raise InvalidRequestError("webhook body must be a JSON object")

    model = str(parsed_body.get("model") or "")
    action = str(parsed_body.get("action") or "")
    event_key = f"{model}.{action}"

    with uow_factory() as uow:
        claimed = not uow.webhook_events.exists(event_id) and uow.webhook_events.claim(
            event_id=event_id,
            payload=parsed_body,
            event_time=h.get(CREATED_HEADER),
            model=model,
            action=action,
        )

    if not claimed:
        metrics.increment_webhook_event(event_key, OUTCOME_DUPLICATE)
        logger.info("webhook duplicate event_id=%s event=%s", event_id, event_key)
        return {"outcome": OUTCOME_DUPLICATE, "event_id": event_id, "event": event_key}

    logger.info(
        "webhook received event_id=%s event=%s body=%s",
        event_id,
        event_key,
        redact_dict(parsed_body.get("body") or {}),
    )

    handler = handlers.get(event_key)
    if handler is None:
        # row stays `logged`: kept for forensics, nothing to do
        metrics.increment_webhook_event(event_key, OUTCOME_IGNORED)
        logger.info("webhook ignored, no handler event_id=%s event=%s", event_id, event_key)
        return {"outcome": OUTCOME_IGNORED, "event_id": event_id, "event": event_key}

    try:
        result = handler(parsed_body.get("body") or {}, uow_factory=uow_factory)
    except Exception as exc:
        message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
        logger.exception("webhook handler failed event_id=%s event=%s", event_id, event_key)
        with uow_factory() as uow:
            uow.webhook_events.set_state(event_id, EVENT_ERROR, error_message=message)
        metrics.increment_webhook_event(event_key, OUTCOME_ERROR)
        return {"outcome": OUTCOME_ERROR, "event_id": event_id, "event": event_key, "error": message}

    with uow_factory() as uow:
        uow.webhook_events.set_state(event_id, EVENT_PROCESSED)

    metrics.increment_webhook_event(event_key, OUTCOME_PROCESSED)
    return {"outcome": OUTCOME_PROCESSED, "event_id": event_id, "event": event_key, "result": result}
