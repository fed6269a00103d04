# services/winnings.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

from app.eligibility.oracle import EligibilityOracle
from app.uow import PgUnitOfWork, UowFactory
from app.winnings.model import (
    AuditEntry,
    NewWinning,
    Payment,
    PaymentRelease,
    PaymentStatus,
    Winning,
    WinningType,
)
from services.access_control import ENGAGEMENT_PAYMENT_CATEGORY
from services.errors import InvalidRequestError, NotFoundError

logger = logging.getLogger("finance.winnings")

AUDIT_LIMIT = 1000


def _check_details(request: NewWinning) -> None:
    if not request.details:
        raise InvalidRequestError("at least one payment detail is required")

    seen: set[int] = set()
    for d in request.details:
        if d.installment_number < 1:
            raise InvalidRequestError("installment numbers start at 1")
        if d.installment_number in seen:
            raise InvalidRequestError(f"duplicate installment number {d.installment_number}")
        seen.add(d.installment_number)
        if Decimal(d.total_amount) < 0 or Decimal(d.gross_amount) < 0:
            raise InvalidRequestError("payment amounts must not be negative")


def create_winning_with_payments(
    request: NewWinning,
    created_by: str,
    *,
    uow_factory: UowFactory = PgUnitOfWork,
) -> tuple[Winning, list[Payment]]:
    """
    Insert a winning and one payment per installment detail, atomically.

    New payments start at version 1. Without an explicit status they are OWED
    when the winner is eligible right now and ON_HOLD otherwise.
    """
    _check_details(request)

    win_type = request.type
    if request.category == ENGAGEMENT_PAYMENT_CATEGORY and win_type != WinningType.PAYMENT:
        logger.warning(
            "engagement payment type overridden to PAYMENT winner_id=%s requested=%s",
            request.winner_id,
            win_type.value,
        )
        win_type = WinningType.PAYMENT

    with uow_factory() as uow:
        if request.status is not None:
            status = request.status
        else:
            eligible = EligibilityOracle.from_uow(uow).is_eligible(request.winner_id)
            status = PaymentStatus.OWED if eligible else PaymentStatus.ON_HOLD

        winning = uow.winnings.create(
            winner_id=request.winner_id,
            type=win_type.value,
            category=request.category,
            title=request.title,
            description=request.description,
            external_id=request.external_id,
            origin=request.origin,
            attributes=request.attributes,
            created_by=created_by,
        )

        payments = [
            uow.payments.create(
                winning_id=winning.id,
                installment_number=d.installment_number,
                gross_amount=Decimal(d.gross_amount),
                net_amount=Decimal(d.gross_amount),
                total_amount=Decimal(d.total_amount),
                currency=d.currency,
                status=status,
                billing_account=d.billing_account,
                release_date=d.release_date,
                created_by=created_by,
            )
            for d in sorted(request.details, key=lambda x: x.installment_number)
        ]

    logger.info(
        "winning created winning_id=%s winner_id=%s payments=%s status=%s",
        winning.id,
        winning.winner_id,
        len(payments),
        status.value,
    )
    return winning, payments


def get_winning(winning_id: UUID, *, uow_factory: UowFactory = PgUnitOfWork) -> tuple[Winning, list[Payment]]:
    with uow_factory() as uow:
        winning = uow.winnings.get(winning_id)
        if winning is None:
            raise NotFoundError(f"winning {winning_id} not found")
        return winning, uow.payments.list_for_winning(winning_id)


def search_winnings(
    filters: dict[str, Any],
    *,
    uow_factory: UowFactory = PgUnitOfWork,
) -> list[tuple[Winning, list[Payment]]]:
    limit = max(1, min(int(filters.get("limit") or 50), 200))
    offset = max(0, int(filters.get("offset") or 0))
    billing_accounts: Optional[Sequence[str]] = filters.get("billing_accounts")

    with uow_factory() as uow:
        winnings = uow.winnings.search(
            winner_id=filters.get("winner_id"),
            category=filters.get("category"),
            status=filters.get("status"),
            billing_accounts=billing_accounts,
            limit=limit,
            offset=offset,
        )
        return [(w, uow.payments.list_for_winning(w.id)) for w in winnings]


def get_winning_audit(winning_id: UUID, *, uow_factory: UowFactory = PgUnitOfWork) -> list[AuditEntry]:
    with uow_factory() as uow:
        return uow.audit.list_for_winning(winning_id, limit=AUDIT_LIMIT)


def get_winning_payouts(winning_id: UUID, *, uow_factory: UowFactory = PgUnitOfWork) -> list[PaymentRelease]:
    with uow_factory() as uow:
        return uow.releases.list_for_winning(winning_id)
