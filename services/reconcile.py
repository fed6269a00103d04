from __future__ import annotations

import logging
from typing import Any

from app.eligibility.oracle import EligibilityOracle
from app.uow import PgUnitOfWork, UowFactory
from services import metrics

logger = logging.getLogger("finance.reconcile")


def reconcile_user_payments(*user_ids: str, uow_factory: UowFactory = PgUnitOfWork) -> dict[str, Any]:
    """
    Bring each user's payments in line with their current eligibility.

    Eligible users get their ON_HOLD payments released to OWED; everyone else
    has OWED payments parked as ON_HOLD. One bulk update per direction, no
    version check. Running it twice without an eligibility change in between
    touches nothing the second time.
    """
    summary: dict[str, Any] = {
        "users": 0,
        "eligible": [],
        "ineligible": [],
        "set_owed": 0,
        "set_on_hold": 0,
    }

    with uow_factory() as uow:
        eligible, ineligible = EligibilityOracle.from_uow(uow).split_by_eligibility(user_ids)
        summary["users"] = len(eligible) + len(ineligible)
        summary["eligible"] = eligible
        summary["ineligible"] = ineligible

        if eligible:
            summary["set_owed"] = uow.payments.toggle_user_payments(eligible, set_on_hold=False)
        if ineligible:
            summary["set_on_hold"] = uow.payments.toggle_user_payments(ineligible, set_on_hold=True)

    metrics.increment_reconcile_run(changed=bool(summary["set_owed"] or summary["set_on_hold"]))
    logger.info(
        "reconcile users=%s eligible=%s set_owed=%s set_on_hold=%s",
        summary["users"],
        len(eligible),
        summary["set_owed"],
        summary["set_on_hold"],
    )
    return summary


def reconcile_quietly(*user_ids: str, uow_factory: UowFactory = PgUnitOfWork) -> dict[str, Any] | None:
    """
    Follow-up reconcile after a committed change. A failure here must not undo
    or fail the change that triggered it, so it is logged and dropped.
    """
    try:
        return reconcile_user_payments(*user_ids, uow_factory=uow_factory)
    except Exception:
        logger.exception("follow-up reconcile failed users=%s", ",".join(u for u in user_ids if u))
        return None
