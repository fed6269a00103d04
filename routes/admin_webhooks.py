# routes/admin_webhooks.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from app.uow import UowFactory
from deps.admin import require_admin
from deps.auth import CurrentUser
from deps.services import get_uow_factory
from services.redaction import redact_dict

router = APIRouter(prefix="/v1/admin/webhooks", tags=["admin_webhooks"])


@router.get("/events")
def list_events(
    status: str | None = Query(None, pattern="^(logged|processed|error)$"),
    limit: int = Query(50, ge=1, le=200),
    _admin: CurrentUser = Depends(require_admin),
    uow_factory: UowFactory = Depends(get_uow_factory),
):
    with uow_factory() as uow:
        rows = uow.webhook_events.list_events(status=status, limit=limit)
    return {"events": rows, "count": len(rows)}


@router.get("/events/{event_id}")
def get_event(
    event_id: str = Path(..., min_length=1, max_length=200),
    _admin: CurrentUser = Depends(require_admin),
    uow_factory: UowFactory = Depends(get_uow_factory),
):
    with uow_factory() as uow:
        row = uow.webhook_events.get(event_id)
    if not row:
        raise HTTPException(status_code=404, detail={"error": "NOT_FOUND", "message": "webhook event not found"})

    row["event_payload"] = redact_dict(row.get("event_payload") or {})
    return row
