# app/payments/state_machine.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence, Union
from uuid import UUID

from app.winnings.model import (
    CLEARS_DATE_PAID,
    EDITABLE_STATUSES,
    Payment,
    PaymentRelease,
    PaymentStatus,
    Winning,
)
from services.errors import InvalidRequestError, InvalidStateError, NotFoundError


@dataclass(frozen=True)
class WinningUpdate:
    acting_user_id: str
    payment_id: Optional[UUID] = None
    status: Optional[PaymentStatus] = None
    release_date: Optional[datetime] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = None
    note: Optional[str] = None

    def has_changes(self) -> bool:
        return any(
            v is not None for v in (self.status, self.release_date, self.amount, self.description)
        )


# ==========================================================
# Intents: what the executor will write, in order
# ==========================================================

@dataclass(frozen=True)
class DescriptionChange:
    payment_id: UUID
    expected_version: int
    description: str


@dataclass(frozen=True)
class StatusChange:
    payment_id: UUID
    expected_version: int
    old_status: PaymentStatus
    new_status: PaymentStatus
    clear_date_paid: bool


@dataclass(frozen=True)
class ReleaseDateChange:
    payment_id: UUID
    expected_version: int
    release_date: datetime


@dataclass(frozen=True)
class AmountChange:
    payment_id: UUID
    expected_version: int
    total_amount: Decimal
    # None for installments after the first: only the total moves
    gross_amount: Optional[Decimal]
    net_amount: Optional[Decimal]


@dataclass(frozen=True)
class ReleaseFailure:
    release_id: UUID


@dataclass(frozen=True)
class AuditAppend:
    action: str
    note: Optional[str]


Intent = Union[DescriptionChange, StatusChange, ReleaseDateChange, AmountChange, ReleaseFailure, AuditAppend]


def _hours_since(then: datetime, now: datetime) -> float:
    return (now - then) / timedelta(hours=1)


def _fmt_amount(value: Decimal) -> str:
    return str(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _fmt_date(value: Optional[datetime]) -> str:
    return value.isoformat() if value else "None"


def check_status_transition(
    payment: Payment,
    new_status: PaymentStatus,
    *,
    pending_release: Optional[PaymentRelease],
    now: datetime,
    revert_min_hours: int,
) -> bool:
    """
    Validate one requested status change against the payment's current status.
    Returns True when the pending release has to be marked FAILED.
    """
    current = payment.status

    if new_status == PaymentStatus.ON_HOLD_ADMIN:
        if current == PaymentStatus.PROCESSING:
            raise InvalidStateError("cannot put a processing payment on hold")
        return False

    if new_status == PaymentStatus.CANCELLED:
        if current == PaymentStatus.PROCESSING:
            raise InvalidStateError("cannot cancel processing payment")
        return False

    if new_status == PaymentStatus.OWED:
        if pending_release is not None:
            since = _hours_since(pending_release.release_date, now)
            if since < revert_min_hours:
                raise InvalidStateError(
                    "Cannot put a processing payment back to owed, unless it's been processing "
                    f"for at least {revert_min_hours} hours. Currently it's only been {since:.1f} hours"
                )
            return True

        if current not in (PaymentStatus.ON_HOLD_ADMIN, PaymentStatus.PAID):
            raise InvalidStateError(
                "cannot put a payment back to owed unless it is on hold by an admin, or it's been paid"
            )
        return False

    raise InvalidRequestError("invalid payment status provided")


def plan_update(
    winning: Optional[Winning],
    payments: Sequence[Payment],
    request: WinningUpdate,
    *,
    pending_release: Optional[PaymentRelease],
    now: datetime,
    revert_min_hours: int,
) -> list[Intent]:
    """
    Turn an admin edit into the ordered list of writes it implies.

    Pure: nothing is read or written here. Every payment is validated before
    the first intent is returned, so a rejected request produces no writes.
    Per payment the order is description, status, release date, amount, and
    each write expects the version the previous one left behind.
    """
    if winning is None or not payments:
        raise NotFoundError("failed to get current payments")

    if not request.has_changes():
        raise InvalidRequestError("nothing to update")

    if any(p.status == PaymentStatus.CANCELLED for p in payments):
        raise InvalidStateError("cannot update cancelled winnings")

    intents: list[Intent] = []
    fail_release = False
    note = request.note

    for payment in payments:
        version = payment.version
        audit = payment.is_primary

        if request.description is not None:
            intents.append(DescriptionChange(payment.id, version, request.description))
            version += 1
            if audit:
                intents.append(
                    AuditAppend(
                        f'Modified payment description from "{winning.description or ""}" '
                        f'to "{request.description}"',
                        note,
                    )
                )

        status = payment.status
        if request.status is not None:
            if check_status_transition(
                payment,
                request.status,
                pending_release=pending_release,
                now=now,
                revert_min_hours=revert_min_hours,
            ):
                fail_release = True

            clear = request.status == PaymentStatus.OWED and payment.status in CLEARS_DATE_PAID
            intents.append(StatusChange(payment.id, version, payment.status, request.status, clear))
            version += 1
            status = request.status
            if audit:
                intents.append(
                    AuditAppend(f"Modified payment status from {payment.status.value} to {request.status.value}", note)
                )

        if request.release_date is not None:
            if status not in EDITABLE_STATUSES:
                raise InvalidStateError(
                    "Cannot update release date for payment unless it's in one of the states: "
                    + ", ".join(s.value for s in EDITABLE_STATUSES)
                )
            intents.append(ReleaseDateChange(payment.id, version, request.release_date))
            version += 1
            if audit:
                intents.append(
                    AuditAppend(
                        f"Modified release date from {_fmt_date(payment.release_date)} "
                        f"to {_fmt_date(request.release_date)}",
                        note,
                    )
                )

        if request.amount is not None:
            if status not in EDITABLE_STATUSES:
                raise InvalidStateError(
                    "Cannot update payment amount unless it's in one of the states: "
                    + ", ".join(s.value for s in EDITABLE_STATUSES)
                )
            amount = Decimal(request.amount)
            if amount < 0:
                raise InvalidRequestError("payment amount must not be negative")

            if payment.is_primary:
                intents.append(AmountChange(payment.id, version, amount, amount, amount))
                intents.append(
                    AuditAppend(
                        f"Modified payment amount from {_fmt_amount(payment.total_amount)} to {_fmt_amount(amount)}",
                        note,
                    )
                )
            else:
                intents.append(AmountChange(payment.id, version, amount, None, None))
            version += 1

    if fail_release and pending_release is not None:
        intents.append(ReleaseFailure(pending_release.id))

    return intents


def sets_owed(intents: Sequence[Intent]) -> bool:
    return any(isinstance(i, StatusChange) and i.new_status == PaymentStatus.OWED for i in intents)
