# services/payment_updates.py
from __future__ import annotations

import logging
import psycopg2
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from app.payments.state_machine import (
    AmountChange,
    AuditAppend,
    DescriptionChange,
    Intent,
    ReleaseDateChange,
    ReleaseFailure,
    StatusChange,
    WinningUpdate,
    plan_update,
    sets_owed,
)
from app.uow import PgUnitOfWork, UowFactory
from services import metrics
from services.db_errors import translate_db_error
from services.errors import ConflictError, FinanceError
from services.reconcile import reconcile_quietly
from settings import settings

logger = logging.getLogger("finance.payments")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _apply(uow, winning_id: UUID, acting_user_id: str, intent: Intent) -> None:
    if isinstance(intent, DescriptionChange):
        uow.winnings.update_description(winning_id, intent.description, acting_user_id=acting_user_id)
        ok = uow.payments.bump_version(
            intent.payment_id, expected_version=intent.expected_version, acting_user_id=acting_user_id
        )
    elif isinstance(intent, StatusChange):
        ok = uow.payments.update_status(
            intent.payment_id,
            expected_version=intent.expected_version,
            new_status=intent.new_status,
            acting_user_id=acting_user_id,
            clear_date_paid=intent.clear_date_paid,
        )
    elif isinstance(intent, ReleaseDateChange):
        ok = uow.payments.update_release_date(
            intent.payment_id,
            expected_version=intent.expected_version,
            release_date=intent.release_date,
            acting_user_id=acting_user_id,
        )
    elif isinstance(intent, AmountChange):
        ok = uow.payments.update_amount(
            intent.payment_id,
            expected_version=intent.expected_version,
            gross_amount=intent.gross_amount,
            net_amount=intent.net_amount,
            total_amount=intent.total_amount,
            acting_user_id=acting_user_id,
        )
    elif isinstance(intent, ReleaseFailure):
        uow.releases.mark_failed(intent.release_id)
        return
    elif isinstance(intent, AuditAppend):
        uow.audit.append(winning_id=winning_id, user_id=acting_user_id, action=intent.action, note=intent.note)
        return
    else:
        raise TypeError(f"unknown intent {intent!r}")

    if not ok:
        raise ConflictError(f"payment {intent.payment_id} was modified concurrently, reload and retry")


def apply_update(
    winning_id: UUID,
    request: WinningUpdate,
    *,
    now: Optional[datetime] = None,
    uow_factory: UowFactory = PgUnitOfWork,
) -> list[Intent]:
    """
    Apply an admin edit to a winning's payments as one transaction.

    Every targeted payment is validated first; then all writes run in order
    inside the same unit of work. A version mismatch on any write aborts the
    whole batch with ConflictError. When a payment moved to OWED the winner is
    reconciled afterwards, outside the transaction.
    """
    now = now or _utcnow()

    try:
        with uow_factory() as uow:
            winning = uow.winnings.get(winning_id)
            payments = uow.payments.list_for_winning(winning_id, request.payment_id) if winning else []

            pending_release = None
            if request.status is not None and payments:
                pending_release = uow.releases.latest_pending_for_winning(winning_id)

            intents = plan_update(
                winning,
                payments,
                request,
                pending_release=pending_release,
                now=now,
                revert_min_hours=settings.RELEASE_REVERT_MIN_HOURS,
            )

            for intent in intents:
                _apply(uow, winning_id, request.acting_user_id, intent)

    except FinanceError as exc:
        metrics.increment_payment_update(exc.code.lower())
        logger.info("payment update rejected winning_id=%s code=%s msg=%s", winning_id, exc.code, exc.message)
        raise
    except psycopg2.Error as exc:
        mapped = translate_db_error(exc)
        if mapped is None:
            raise
        metrics.increment_payment_update(mapped.code.lower())
        logger.warning("payment update db error winning_id=%s pgcode=%s", winning_id, getattr(exc, "pgcode", None))
        raise mapped from exc

    metrics.increment_payment_update("ok")
    logger.info(
        "payment update applied winning_id=%s payments=%s writes=%s by=%s",
        winning_id,
        len(payments),
        len(intents),
        request.acting_user_id,
    )

    if sets_owed(intents):
        reconcile_quietly(winning.winner_id, uow_factory=uow_factory)

    return intents
