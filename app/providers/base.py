# app/providers/base.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol


class ProviderError(Exception):
    """The payout provider refused or failed a call."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, response: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


@dataclass(frozen=True)
class ProviderBatch:
    id: str
    status: Optional[str] = None


@dataclass(frozen=True)
class ProviderPayment:
    id: str
    batch_id: str
    status: Optional[str] = None


class ProviderClient(Protocol):
    def open_batch(self, description: str) -> ProviderBatch: ...

    def add_payment(
        self,
        batch_id: str,
        *,
        recipient_id: str,
        amount: Decimal,
        currency: str,
        external_id: str,
        memo: Optional[str] = None,
    ) -> ProviderPayment: ...

    def generate_quote(self, batch_id: str) -> None: ...

    def start_processing(self, batch_id: str) -> None: ...

    def get_payout_method(self, recipient_id: str) -> Optional[str]: ...
