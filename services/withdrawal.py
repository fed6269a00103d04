# services/withdrawal.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

from app.eligibility.oracle import EligibilityOracle
from app.providers.base import ProviderError
from app.providers.factory import get_provider
from app.releases.external_id import encode_external_id
from app.uow import PgUnitOfWork, UowFactory
from app.winnings.model import Payment, PaymentStatus
from app.winnings.repository import distinct
from services import metrics
from services.db_errors import is_lock_not_available
from services.errors import (
    ConflictError,
    FinanceError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    UpstreamFailureError,
)
from settings import settings

logger = logging.getLogger("finance.withdrawal")

DEFAULT_CURRENCY = "USD"
_CENTS = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_releasable(payments: Sequence[Payment], requested: Sequence[UUID], now: datetime) -> None:
    if len(payments) < len(requested):
        raise NotFoundError("Some winnings were not found!")

    if any(p.status != PaymentStatus.OWED for p in payments):
        raise InvalidStateError(
            "Some or all of the winnings you requested to process are either on hold or already paid."
        )

    if any(p.date_paid is not None for p in payments):
        raise InvalidStateError("Some or all of the winnings you requested to process are already paid.")

    if any(p.release_date is not None and p.release_date > now for p in payments):
        raise InvalidStateError(
            "Some or all of the winnings you requested to process are not released yet (release date)."
        )


def _check_total(payments: Sequence[Payment]) -> Decimal:
    total = sum((p.total_amount for p in payments), Decimal("0"))
    minimum = Decimal(settings.PROVIDER_MIN_PAYMENT_AMOUNT)
    if total < minimum:
        raise InvalidRequestError(
            f"The withdrawal amount is below the minimum required threshold of ${minimum} USD. "
            f"Please select winnings that sum up to ${minimum} USD or more to proceed."
        )
    return total


def payout_fee(total: Decimal, payout_method: Optional[str]) -> Decimal:
    """
    Fee withheld for payout methods the provider charges for, e.g. 3% capped
    at $25 for PayPal. Zero when the fee is off or the method differs.
    """
    percent = Decimal(settings.PROVIDER_PAYPAL_FEE_PERCENT or 0)
    if percent <= 0 or (payout_method or "").lower() != settings.PROVIDER_FEE_PAYOUT_METHOD.lower():
        return Decimal("0")

    fee = total * percent / Decimal(100)
    if settings.PROVIDER_PAYPAL_FEE_MAX_AMOUNT is not None:
        fee = min(fee, Decimal(settings.PROVIDER_PAYPAL_FEE_MAX_AMOUNT))
    return fee.quantize(_CENTS, rounding=ROUND_HALF_UP)


def _fee_enabled() -> bool:
    return Decimal(settings.PROVIDER_PAYPAL_FEE_PERCENT or 0) > 0


def withdraw(
    user_id: str,
    user_handle: str,
    winning_ids: Sequence[UUID],
    memo: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
    uow_factory: UowFactory = PgUnitOfWork,
    provider=None,
) -> dict[str, Any]:
    """
    Pay out the caller's OWED winnings in one provider payment.

    Everything up to and including registering the payment with the provider
    happens in one transaction: a provider failure rolls back the PROCESSING
    flips and the release row. Quote generation and batch kick-off run after
    commit and are only logged when they fail.
    """
    now = now or _utcnow()
    provider = provider or get_provider()
    requested = distinct(winning_ids)
    if not requested:
        raise InvalidRequestError("winning ids are required")

    if memo and not settings.ACCEPT_CUSTOM_PAYMENTS_MEMO:
        memo = None

    logger.info(
        "withdrawal requested user_id=%s handle=%s winnings=%s",
        user_id,
        user_handle,
        ",".join(str(w) for w in requested),
    )

    try:
        with uow_factory() as uow:
            oracle = EligibilityOracle.from_uow(uow)
            if not oracle.has_active_tax_form(user_id):
                raise InvalidRequestError("Please complete your tax form before making a withdrawal.")

            payment_method = uow.payment_methods.get_connected(user_id)
            if not payment_method:
                raise InvalidRequestError("Please add a payment method before making a withdrawal.")

            try:
                payments = uow.payments.lock_releasable(user_id, requested)
            except Exception as exc:
                if is_lock_not_available(exc):
                    logger.warning("withdrawal denied, payment rows locked user_id=%s", user_id)
                    raise InvalidStateError(
                        "Some or all of the winnings you requested to process are either processing, "
                        "on hold or already paid."
                    ) from exc
                raise

            _check_releasable(payments, requested, now)
            total = _check_total(payments)

            recipient = uow.recipients.get_by_user_id(user_id)
            if not recipient:
                raise InvalidRequestError(f"Payout recipient not found for user {user_handle}({user_id})!")

            payout_method = payment_method.get("payment_method_type")
            if _fee_enabled():
                try:
                    payout_method = provider.get_payout_method(recipient["recipient_id"]) or payout_method
                except ProviderError as exc:
                    logger.error("provider payout method lookup failed user_id=%s err=%s", user_id, exc)
                    raise UpstreamFailureError(f"Failed to load payout details: {exc}") from exc

            fee = payout_fee(total, payout_method)
            net = total - fee

            payment_ids = [p.id for p in payments]
            flipped = uow.payments.set_processing(payment_ids)
            if flipped != len(payment_ids):
                raise ConflictError("Failed to update payment processing state!")

            release = uow.releases.create(
                user_id=user_id,
                total_net_amount=net,
                payment_ids=payment_ids,
                payment_method_id=payment_method.get("id"),
                payee_id=recipient["recipient_id"],
                metadata={
                    "netAmount": str(net),
                    "feeAmount": str(fee),
                    "totalAmount": str(total),
                    "payoutMethod": payout_method,
                    "feePercent": str(settings.PROVIDER_PAYPAL_FEE_PERCENT),
                    "feeMaxAmount": (
                        str(settings.PROVIDER_PAYPAL_FEE_MAX_AMOUNT)
                        if settings.PROVIDER_PAYPAL_FEE_MAX_AMOUNT is not None
                        else None
                    ),
                },
            )

            currency = payments[0].currency or DEFAULT_CURRENCY
            try:
                batch = provider.open_batch(f"{user_id}_{user_handle}")
                provider_payment = provider.add_payment(
                    batch.id,
                    recipient_id=recipient["recipient_id"],
                    amount=net,
                    currency=currency,
                    external_id=encode_external_id(release.id, requested),
                    memo=memo,
                )
            except ProviderError as exc:
                logger.error("provider batch setup failed user_id=%s release_id=%s err=%s", user_id, release.id, exc)
                raise UpstreamFailureError(f"Failed to create provider payment: {exc}") from exc

            uow.releases.set_external_transaction_id(release.id, provider_payment.id)

    except FinanceError as exc:
        metrics.increment_withdrawal(exc.code.lower())
        raise

    metrics.increment_withdrawal("ok")
    logger.info(
        "withdrawal committed user_id=%s release_id=%s batch_id=%s total=%s fee=%s",
        user_id,
        release.id,
        batch.id,
        total,
        fee,
    )

    for step in (provider.generate_quote, provider.start_processing):
        try:
            step(batch.id)
        except ProviderError as exc:
            logger.error("provider %s failed batch_id=%s err=%s", step.__name__, batch.id, exc)

    return {
        "release_id": release.id,
        "batch_id": batch.id,
        "total_amount": total,
        "net_amount": net,
        "fee_amount": fee,
        "payment_ids": payment_ids,
    }
