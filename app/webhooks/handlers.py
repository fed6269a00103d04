# app/webhooks/handlers.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from app.eligibility.repository import (
    IDENTITY_VERIFICATION_ACTIVE,
    IDENTITY_VERIFICATION_INACTIVE,
    PAYMENT_METHOD_CONNECTED,
    PAYMENT_METHOD_INACTIVE,
    TAX_FORM_ACTIVE,
    TAX_FORM_INACTIVE,
)
from app.releases.external_id import parse_external_id
from app.releases.repository import RELEASE_FINAL_FAILURES, RELEASE_PROCESSED
from app.uow import PgUnitOfWork, UowFactory
from app.winnings.model import PaymentStatus
from services.errors import ConflictError, InvalidRequestError, InvalidStateError, NotFoundError
from services.reconcile import reconcile_user_payments

logger = logging.getLogger("finance.webhooks.handlers")

Handler = Callable[..., Optional[dict[str, Any]]]

_SETTLEMENT_STATUSES = {
    "processed": PaymentStatus.PAID,
    "failed": PaymentStatus.FAILED,
    "returned": PaymentStatus.RETURNED,
}

# a provider may return funds after it already reported them as processed
_SETTLEMENT_SOURCES = {
    PaymentStatus.PAID: (PaymentStatus.PROCESSING,),
    PaymentStatus.FAILED: (PaymentStatus.PROCESSING,),
    PaymentStatus.RETURNED: (PaymentStatus.PROCESSING, PaymentStatus.PAID),
}


def _unwrap(body: Any, key: str) -> dict[str, Any]:
    """
    Provider bodies nest the resource under its model name, e.g.
    {"payment": {...}}. Flat bodies are accepted as well.
    """
    if isinstance(body, dict) and isinstance(body.get(key), dict):
        return body[key]
    if isinstance(body, dict):
        return body
    raise InvalidRequestError(f"unexpected {key} payload")


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


# ==========================================================
# payment.processed | payment.failed | payment.returned
# ==========================================================

def handle_payment_settlement(body: dict[str, Any], *, uow_factory: UowFactory = PgUnitOfWork) -> dict[str, Any]:
    data = _unwrap(body, "payment")
    status_raw = (data.get("status") or "").strip().lower()
    if status_raw not in _SETTLEMENT_STATUSES:
        raise InvalidRequestError(f"unsupported payment status: {status_raw or 'missing'}")

    payment_status = _SETTLEMENT_STATUSES[status_raw]
    if payment_status == PaymentStatus.PAID:
        release_status = RELEASE_PROCESSED
        metadata: dict[str, Any] = {}
    else:
        release_status = status_raw.upper()
        errors = data.get("errors") or []
        metadata = {
            "failureMessage": data.get("failureMessage"),
            "returnedNote": data.get("returnedNote"),
            "errors": ", ".join(str(e) for e in errors) if errors else None,
        }

    release_id, winning_ids = parse_external_id(data.get("externalId"))

    with uow_factory() as uow:
        release = uow.releases.get(release_id, for_update=True)
        if release is None:
            raise NotFoundError(f"payment release {release_id} not found")

        if release.status in RELEASE_FINAL_FAILURES:
            raise InvalidStateError(
                f"Not processing payment release {release_id} because it was already marked as '{release.status}'."
            )

        linked = set(uow.releases.winning_ids_for_release(release_id))
        if not linked:
            raise NotFoundError(f"no winnings linked to payment release {release_id}")

        if not winning_ids:
            winning_ids = sorted(linked, key=str)
        unknown = [w for w in winning_ids if w not in linked]
        if unknown:
            raise InvalidRequestError(
                f"winnings {', '.join(str(w) for w in unknown)} are not part of payment release {release_id}"
            )

        payment_ids = uow.releases.payment_ids_for_release(release_id, winning_ids)
        updated = uow.payments.settle_payments(
            payment_ids,
            payment_status,
            from_statuses=_SETTLEMENT_SOURCES[payment_status],
        )
        if updated != len(payment_ids):
            raise ConflictError("Not all rows were updated! Please check the provided winnings IDs and status.")

        uow.releases.update_status(release_id, release_status, metadata=metadata)

    logger.info(
        "settlement applied release_id=%s status=%s winnings=%s",
        release_id,
        payment_status.value,
        len(winning_ids),
    )
    return {"release_id": str(release_id), "status": payment_status.value, "winnings": len(winning_ids)}


# ==========================================================
# recipientAccount.created | updated | deleted
# ==========================================================

def _sync_payment_method_status(uow, recipient: dict[str, Any]) -> str:
    status = PAYMENT_METHOD_CONNECTED if uow.recipients.has_account(recipient["id"]) else PAYMENT_METHOD_INACTIVE
    uow.payment_methods.set_status(recipient["user_payment_method_id"], status)
    return status


def handle_recipient_account_upsert(body: dict[str, Any], *, uow_factory: UowFactory = PgUnitOfWork) -> Optional[dict[str, Any]]:
    """
    Keep the recipient's single primary payout account in step with the
    provider: create or repoint it when the account is primary, drop it when
    the same account stops being primary.
    """
    data = _unwrap(body, "account")
    recipient_id = data.get("recipientId")
    account_id = data.get("recipientAccountId") or data.get("id")
    is_primary = data.get("status") == "primary" and data.get("primary") is True

    with uow_factory() as uow:
        recipient = uow.recipients.get_by_recipient_id(recipient_id) if recipient_id else None
        if recipient is None:
            logger.error("recipient not found recipient_id=%s while updating payout method", recipient_id)
            return None

        current = recipient.get("account_row_id")

        if current is None and not is_primary:
            return None

        if current is None:
            uow.recipients.create_account(recipient["id"], account_id)
        elif is_primary:
            uow.recipients.update_account(current, account_id)
        elif recipient.get("recipient_account_id") == account_id:
            uow.recipients.delete_account(current)

        status = _sync_payment_method_status(uow, recipient)
        user_id = recipient["user_id"]

    reconcile_user_payments(user_id, uow_factory=uow_factory)
    return {"user_id": user_id, "payment_method_status": status}


def handle_recipient_account_deleted(body: dict[str, Any], *, uow_factory: UowFactory = PgUnitOfWork) -> Optional[dict[str, Any]]:
    data = _unwrap(body, "account")
    account_id = data.get("id") or data.get("recipientAccountId")

    with uow_factory() as uow:
        found = uow.recipients.find_account(account_id) if account_id else None
        if found is None:
            logger.info("recipient payout account not found account_id=%s while deleting", account_id)
            return None

        uow.recipients.delete_account(found["account_row_id"])
        status = _sync_payment_method_status(uow, found)
        user_id = found["user_id"]

    reconcile_user_payments(user_id, uow_factory=uow_factory)
    return {"user_id": user_id, "payment_method_status": status}


# ==========================================================
# taxForm.status_updated
# ==========================================================

def handle_tax_form_status_updated(body: dict[str, Any], *, uow_factory: UowFactory = PgUnitOfWork) -> Optional[dict[str, Any]]:
    tax_form = _unwrap(body, "taxForm")
    data = tax_form.get("data") if isinstance(tax_form.get("data"), dict) else tax_form

    recipient_id = data.get("recipientId")
    tax_form_id = data.get("taxFormId")
    form_status = (data.get("status") or "").strip().lower()
    if not tax_form_id:
        raise InvalidRequestError("taxFormId is required")

    with uow_factory() as uow:
        recipient = uow.recipients.get_by_recipient_id(recipient_id) if recipient_id else None
        if recipient is None:
            logger.error("recipient not found recipient_id=%s tax_form_id=%s", recipient_id, tax_form_id)
            return None

        user_id = recipient["user_id"]
        existing = uow.tax_forms.get(user_id, tax_form_id)

        if existing and form_status == "voided":
            uow.tax_forms.delete(user_id, tax_form_id)
            outcome = "deleted"
        else:
            uow.tax_forms.upsert(
                user_id=user_id,
                tax_form_id=tax_form_id,
                status=TAX_FORM_ACTIVE if form_status == "reviewed" else TAX_FORM_INACTIVE,
                date_filed=_parse_ts(data.get("signedAt")),
            )
            outcome = "updated" if existing else "created"

    reconcile_user_payments(user_id, uow_factory=uow_factory)
    return {"user_id": user_id, "tax_form": outcome}


# ==========================================================
# recipientVerification.status_updated
# ==========================================================

def handle_recipient_verification_status_updated(
    body: dict[str, Any], *, uow_factory: UowFactory = PgUnitOfWork
) -> dict[str, Any]:
    data = _unwrap(body, "recipientVerification")
    recipient_id = data.get("recipientId")
    verification_id = data.get("id")
    if not verification_id:
        raise InvalidRequestError("verification id is required")

    status = (
        IDENTITY_VERIFICATION_ACTIVE
        if (data.get("status") or "").strip().lower() == "approved"
        else IDENTITY_VERIFICATION_INACTIVE
    )

    with uow_factory() as uow:
        recipient = uow.recipients.get_by_recipient_id(recipient_id) if recipient_id else None
        if recipient is None:
            raise NotFoundError(f"recipient {recipient_id} not found")

        user_id = recipient["user_id"]
        uow.identity_verifications.upsert(
            user_id=user_id,
            verification_id=str(verification_id),
            status=status,
            date_filed=_parse_ts(data.get("submittedAt")),
        )

    logger.info("identity verification updated user_id=%s status=%s", user_id, status)
    reconcile_user_payments(user_id, uow_factory=uow_factory)
    return {"user_id": user_id, "identity_verification": status}


def build_handler_registry() -> dict[str, Handler]:
    return {
        "payment.processed": handle_payment_settlement,
        "payment.failed": handle_payment_settlement,
        "payment.returned": handle_payment_settlement,
        "recipientAccount.created": handle_recipient_account_upsert,
        "recipientAccount.updated": handle_recipient_account_upsert,
        "recipientAccount.deleted": handle_recipient_account_deleted,
        "taxForm.status_updated": handle_tax_form_status_updated,
        "recipientVerification.status_updated": handle_recipient_verification_status_updated,
    }
