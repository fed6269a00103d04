from __future__ import annotations

from fastapi import APIRouter, Depends

from app.uow import UowFactory
from deps.admin import require_admin
from deps.auth import CurrentUser
from deps.services import get_uow_factory
from schemas import RecipientLinkRequest, RecipientOut
from services.errors import FinanceError, raise_http_from_finance_error
from services.recipients import link_recipient

router = APIRouter(prefix="/v1/admin/recipients", tags=["admin-recipients"])


@router.post("", response_model=RecipientOut, status_code=201)
def link_provider_recipient(
    req: RecipientLinkRequest,
    _admin: CurrentUser = Depends(require_admin),
    uow_factory: UowFactory = Depends(get_uow_factory),
):
    try:
        row = link_recipient(req.user_id, req.recipient_id, uow_factory=uow_factory)
    except FinanceError as exc:
        raise_http_from_finance_error(exc)
    return RecipientOut(
        user_id=row["user_id"],
        recipient_id=row["recipient_id"],
        recipient_account_id=row.get("recipient_account_id"),
    )
