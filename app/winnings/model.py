from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID


class PaymentStatus(str, Enum):
    OWED = "OWED"
    ON_HOLD = "ON_HOLD"
    ON_HOLD_ADMIN = "ON_HOLD_ADMIN"
    PROCESSING = "PROCESSING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    RETURNED = "RETURNED"


class WinningType(str, Enum):
    PAYMENT = "PAYMENT"
    REWARD = "REWARD"


# statuses in which an admin may still edit release date / amount
EDITABLE_STATUSES = (PaymentStatus.OWED, PaymentStatus.ON_HOLD, PaymentStatus.ON_HOLD_ADMIN)

# moving back to OWED from one of these wipes date_paid
CLEARS_DATE_PAID = (
    PaymentStatus.PAID,
    PaymentStatus.PROCESSING,
    PaymentStatus.RETURNED,
    PaymentStatus.FAILED,
)


@dataclass(frozen=True)
class Winning:
    id: UUID
    winner_id: str
    type: str
    category: Optional[str]
    title: Optional[str]
    description: Optional[str]
    external_id: Optional[str]
    origin: Optional[str]
    attributes: dict[str, Any] = field(default_factory=dict)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Payment:
    id: UUID
    winning_id: UUID
    installment_number: int
    gross_amount: Decimal
    net_amount: Decimal
    total_amount: Decimal
    currency: str
    status: PaymentStatus
    release_date: Optional[datetime]
    date_paid: Optional[datetime]
    version: int
    billing_account: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_primary(self) -> bool:
        return self.installment_number == 1


@dataclass(frozen=True)
class PaymentRelease:
    id: UUID
    user_id: str
    total_net_amount: Decimal
    status: str
    payment_method_id: Optional[UUID]
    payee_id: Optional[str]
    external_transaction_id: Optional[str]
    metadata: dict[str, Any]
    release_date: datetime
    payment_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class AuditEntry:
    id: UUID
    winning_id: UUID
    user_id: str
    action: str
    note: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class PaymentDetail:
    total_amount: Decimal
    gross_amount: Decimal
    installment_number: int
    currency: str = "USD"
    billing_account: Optional[str] = None
    release_date: Optional[datetime] = None


@dataclass(frozen=True)
class NewWinning:
    winner_id: str
    type: WinningType
    category: Optional[str]
    title: Optional[str]
    description: Optional[str]
    details: tuple[PaymentDetail, ...]
    external_id: Optional[str] = None
    origin: Optional[str] = None
    attributes: dict[str, Any] = field(default_factory=dict)
    # explicit initial status; otherwise derived from eligibility
    status: Optional[PaymentStatus] = None
