# routes/admin_winnings.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.payments.state_machine import WinningUpdate
from app.uow import UowFactory
from app.winnings.model import NewWinning, PaymentDetail
from deps.admin import require_admin
from deps.auth import CurrentUser
from deps.services import get_access_control, get_uow_factory
from schemas import (
    AuditEntryOut,
    PayoutOut,
    WinningCreateRequest,
    WinningListResponse,
    WinningOut,
    WinningUpdateRequest,
    WinningUpdateResponse,
)
from services.access_control import AccessControl
from services.errors import FinanceError, InvalidRequestError, raise_http_from_finance_error
from services.payment_updates import apply_update
from services.winnings import (
    create_winning_with_payments,
    get_winning,
    get_winning_audit,
    get_winning_payouts,
    search_winnings,
)

router = APIRouter(prefix="/v1/admin/winnings", tags=["admin-winnings"])


@router.get("", response_model=WinningListResponse)
def list_winnings(
    winner_id: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: CurrentUser = Depends(require_admin),
    uow_factory: UowFactory = Depends(get_uow_factory),
    access: AccessControl = Depends(get_access_control),
):
    filters = {"winner_id": winner_id, "category": category, "status": status, "limit": limit, "offset": offset}
    filters = access.apply_filters(admin.user_id, admin.roles, filters)

    try:
        rows = search_winnings(filters, uow_factory=uow_factory)
    except FinanceError as exc:
        raise_http_from_finance_error(exc)

    return WinningListResponse(
        winnings=[WinningOut.from_domain(w, ps) for w, ps in rows],
        count=len(rows),
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=WinningOut, status_code=201)
def create_winning(
    req: WinningCreateRequest,
    admin: CurrentUser = Depends(require_admin),
    uow_factory: UowFactory = Depends(get_uow_factory),
):
    new = NewWinning(
        winner_id=req.winner_id,
        type=req.type,
        category=req.category,
        title=req.title,
        description=req.description,
        external_id=req.external_id,
        origin=req.origin,
        attributes=req.attributes,
        status=req.status,
        details=tuple(
            PaymentDetail(
                total_amount=d.total_amount,
                gross_amount=d.gross_amount,
                installment_number=d.installment_number,
                currency=d.currency,
                billing_account=d.billing_account,
                release_date=d.release_date,
            )
            for d in req.details
        ),
    )

    try:
        winning, payments = create_winning_with_payments(new, admin.user_id, uow_factory=uow_factory)
    except FinanceError as exc:
        raise_http_from_finance_error(exc)

    return WinningOut.from_domain(winning, payments)


@router.get("/{winning_id}", response_model=WinningOut)
def read_winning(
    winning_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    uow_factory: UowFactory = Depends(get_uow_factory),
    access: AccessControl = Depends(get_access_control),
):
    try:
        access.verify_access([winning_id], admin.user_id, admin.roles)
        winning, payments = get_winning(winning_id, uow_factory=uow_factory)
    except FinanceError as exc:
        raise_http_from_finance_error(exc)

    return WinningOut.from_domain(winning, payments)


@router.patch("/{winning_id}", response_model=WinningUpdateResponse)
def update_winning(
    winning_id: UUID,
    req: WinningUpdateRequest,
    admin: CurrentUser = Depends(require_admin),
    uow_factory: UowFactory = Depends(get_uow_factory),
    access: AccessControl = Depends(get_access_control),
):
    update = WinningUpdate(
        acting_user_id=admin.user_id,
        payment_id=req.payment_id,
        status=req.payment_status,
        release_date=req.release_date,
        amount=req.payment_amount,
        description=req.description,
        note=req.audit_note,
    )

    try:
        if not update.has_changes():
            raise InvalidRequestError("one of payment_status, release_date, payment_amount, description is required")
        access.verify_access([winning_id], admin.user_id, admin.roles)
        intents = apply_update(winning_id, update, uow_factory=uow_factory)
    except FinanceError as exc:
        raise_http_from_finance_error(exc)

    return WinningUpdateResponse(winning_id=winning_id, writes=len(intents))


@router.get("/{winning_id}/audit", response_model=list[AuditEntryOut])
def read_winning_audit(
    winning_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    uow_factory: UowFactory = Depends(get_uow_factory),
    access: AccessControl = Depends(get_access_control),
):
    try:
        access.verify_access([winning_id], admin.user_id, admin.roles)
        entries = get_winning_audit(winning_id, uow_factory=uow_factory)
    except FinanceError as exc:
        raise_http_from_finance_error(exc)

    return [AuditEntryOut.from_entry(e) for e in entries]


@router.get("/{winning_id}/payouts", response_model=list[PayoutOut])
def read_winning_payouts(
    winning_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    uow_factory: UowFactory = Depends(get_uow_factory),
    access: AccessControl = Depends(get_access_control),
):
    try:
        access.verify_access([winning_id], admin.user_id, admin.roles)
        releases = get_winning_payouts(winning_id, uow_factory=uow_factory)
    except FinanceError as exc:
        raise_http_from_finance_error(exc)

    return [PayoutOut.from_release(r) for r in releases]
