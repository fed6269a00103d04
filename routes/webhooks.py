# routes/webhooks.py
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from app.uow import UowFactory
from deps.services import get_uow_factory
from schemas import WebhookAck
from services.errors import FinanceError, InvalidRequestError, raise_http_from_finance_error
from services.provider_webhooks import handle_provider_webhook


router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])
logger = logging.getLogger("finance.webhooks")


def _parse_json(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None


@router.post("/provider", response_model=WebhookAck)
async def provider_webhook(req: Request, uow_factory: UowFactory = Depends(get_uow_factory)):
    # signature covers the exact bytes on the wire, so read them before parsing
    raw = await req.body()
    parsed = _parse_json(raw)

    try:
        result = handle_provider_webhook(dict(req.headers), raw, parsed, uow_factory=uow_factory)
    except InvalidRequestError as exc:
        logger.info("webhook rejected path=%s error=%s", req.url.path, exc.code)
        raise_http_from_finance_error(exc)
    except FinanceError as exc:
        raise_http_from_finance_error(exc)

    return WebhookAck(outcome=result["outcome"], event_id=result.get("event_id"), event=result.get("event"))
