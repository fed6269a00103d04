# services/wallet.py
from __future__ import annotations

from decimal import Decimal
from typing import Any

from app.eligibility.oracle import EligibilityOracle
from app.uow import PgUnitOfWork, UowFactory
from app.winnings.model import PaymentStatus

# statuses a winner still expects to be paid out
BALANCE_STATUSES = (PaymentStatus.OWED, PaymentStatus.ON_HOLD)


def get_wallet_summary(user_id: str, *, uow_factory: UowFactory = PgUnitOfWork) -> dict[str, Any]:
    """
    Per-status payment totals for one winner, the outstanding balance
    (OWED + ON_HOLD) and which payout prerequisites are still missing.
    """
    with uow_factory() as uow:
        totals = uow.payments.totals_by_status(user_id)
        oracle = EligibilityOracle.from_uow(uow)
        tax_form = oracle.has_active_tax_form(user_id)
        payout_method = oracle.has_verified_payout_method(user_id)
        identity = uow.identity_verifications.has_completed(user_id)

    balance = sum((t["total_amount"] for t in totals if t["status"] in BALANCE_STATUSES), Decimal("0"))
    owed = sum((t["total_amount"] for t in totals if t["status"] == PaymentStatus.OWED), Decimal("0"))

    return {
        "user_id": user_id,
        "balance": balance,
        "owed": owed,
        "totals": totals,
        "setup": {
            "tax_form": tax_form,
            "payout_method": payout_method,
            "identity_verification": identity,
        },
    }
