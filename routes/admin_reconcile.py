from __future__ import annotations

from fastapi import APIRouter, Depends

from app.uow import UowFactory
from deps.admin import require_admin
from deps.auth import CurrentUser
from deps.services import get_uow_factory
from schemas import ReconcileRequest, ReconcileResponse
from services.errors import FinanceError, raise_http_from_finance_error
from services.reconcile import reconcile_user_payments


router = APIRouter(prefix="/v1/admin/reconcile", tags=["admin-reconcile"])


@router.post("", response_model=ReconcileResponse)
def reconcile_users(
    req: ReconcileRequest,
    admin: CurrentUser = Depends(require_admin),
    uow_factory: UowFactory = Depends(get_uow_factory),
):
    try:
        summary = reconcile_user_payments(*req.user_ids, uow_factory=uow_factory)
    except FinanceError as exc:
        raise_http_from_finance_error(exc)
    return ReconcileResponse(**summary)
