# app/providers/mock.py
from __future__ import annotations

from decimal import Decimal
from itertools import count
from typing import Any, Optional

from app.providers.base import ProviderBatch, ProviderError, ProviderPayment


class MockProvider:
    """
    Test/dev provider: records every call and hands out deterministic ids.

    `fail_on` names the calls that should raise ProviderError, e.g.
    {"open_batch"} or {"start_processing"}. `payout_methods` maps recipient
    ids to the payout method the provider reports for them.
    """

    def __init__(self, *, fail_on: set[str] | None = None, payout_methods: dict[str, str] | None = None):
        self.fail_on = set(fail_on or ())
        self.payout_methods = dict(payout_methods or {})
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._ids = count(1)

    def _record(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))
        if name in self.fail_on:
            raise ProviderError(f"mock {name} failure", status_code=503)

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for n, kwargs in self.calls if n == name]

    def open_batch(self, description: str) -> ProviderBatch:
        self._record("open_batch", description=description)
        return ProviderBatch(id=f"mock-batch-{next(self._ids)}", status="open")

    def add_payment(
        self,
        batch_id: str,
        *,
        recipient_id: str,
        amount: Decimal,
        currency: str,
        external_id: str,
        memo: Optional[str] = None,
    ) -> ProviderPayment:
        self._record(
            "add_payment",
            batch_id=batch_id,
            recipient_id=recipient_id,
            amount=amount,
            currency=currency,
            external_id=external_id,
            memo=memo,
        )
        return ProviderPayment(id=f"mock-payment-{next(self._ids)}", batch_id=batch_id, status="pending")

    def generate_quote(self, batch_id: str) -> None:
        self._record("generate_quote", batch_id=batch_id)

    def start_processing(self, batch_id: str) -> None:
        self._record("start_processing", batch_id=batch_id)

    def get_payout_method(self, recipient_id: str) -> Optional[str]:
        self._record("get_payout_method", recipient_id=recipient_id)
        return self.payout_methods.get(recipient_id, "bank-transfer")
