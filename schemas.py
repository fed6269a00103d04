# schemas.py
from __future__ import annotations

from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, List

from app.winnings.model import AuditEntry, Payment, PaymentRelease, PaymentStatus, Winning, WinningType


# -------- ADMIN WINNINGS --------
class WinningUpdateRequest(BaseModel):
    payment_id: Optional[UUID] = None
    payment_status: Optional[PaymentStatus] = None
    release_date: Optional[datetime] = None
    payment_amount: Optional[Decimal] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, max_length=2000)
    audit_note: Optional[str] = Field(default=None, max_length=2000)


class WinningUpdateResponse(BaseModel):
    ok: bool = True
    winning_id: UUID
    writes: int


class PaymentDetailIn(BaseModel):
    total_amount: Decimal = Field(ge=0)
    gross_amount: Decimal = Field(ge=0)
    installment_number: int = Field(ge=1)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    billing_account: Optional[str] = None
    release_date: Optional[datetime] = None


class WinningCreateRequest(BaseModel):
    winner_id: str = Field(min_length=1)
    type: WinningType
    category: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    external_id: Optional[str] = None
    origin: Optional[str] = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    status: Optional[PaymentStatus] = None
    details: List[PaymentDetailIn] = Field(min_length=1)


class PaymentOut(BaseModel):
    payment_id: UUID
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

    @classmethod
    def from_payment(cls, p: Payment) -> "PaymentOut":
        return cls(
            payment_id=p.id,
            installment_number=p.installment_number,
            gross_amount=p.gross_amount,
            net_amount=p.net_amount,
            total_amount=p.total_amount,
            currency=p.currency,
            status=p.status,
            release_date=p.release_date,
            date_paid=p.date_paid,
            version=p.version,
            billing_account=p.billing_account,
        )


class WinningOut(BaseModel):
    winning_id: UUID
    winner_id: str
    type: str
    category: Optional[str]
    title: Optional[str]
    description: Optional[str]
    external_id: Optional[str]
    origin: Optional[str]
    attributes: dict[str, Any]
    created_at: Optional[datetime]
    payments: List[PaymentOut]

    @classmethod
    def from_domain(cls, w: Winning, payments: List[Payment]) -> "WinningOut":
        return cls(
            winning_id=w.id,
            winner_id=w.winner_id,
            type=w.type,
            category=w.category,
            title=w.title,
            description=w.description,
            external_id=w.external_id,
            origin=w.origin,
            attributes=w.attributes,
            created_at=w.created_at,
            payments=[PaymentOut.from_payment(p) for p in payments],
        )


class WinningListResponse(BaseModel):
    winnings: List[WinningOut]
    count: int
    limit: int
    offset: int


class AuditEntryOut(BaseModel):
    id: UUID
    user_id: str
    action: str
    note: Optional[str]
    created_at: datetime

    @classmethod
    def from_entry(cls, e: AuditEntry) -> "AuditEntryOut":
        return cls(id=e.id, user_id=e.user_id, action=e.action, note=e.note, created_at=e.created_at)


class PayoutOut(BaseModel):
    release_id: UUID
    status: str
    total_net_amount: Decimal
    external_transaction_id: Optional[str]
    payee_id: Optional[str]
    release_date: datetime
    metadata: dict[str, Any]

    @classmethod
    def from_release(cls, r: PaymentRelease) -> "PayoutOut":
        return cls(
            release_id=r.id,
            status=r.status,
            total_net_amount=r.total_net_amount,
            external_transaction_id=r.external_transaction_id,
            payee_id=r.payee_id,
            release_date=r.release_date,
            metadata=r.metadata,
        )


# -------- WALLET --------
class StatusTotal(BaseModel):
    status: PaymentStatus
    payments: int
    total_amount: Decimal


class PayoutSetup(BaseModel):
    tax_form: bool
    payout_method: bool
    identity_verification: bool


class WalletSummaryResponse(BaseModel):
    user_id: str
    balance: Decimal
    owed: Decimal
    totals: List[StatusTotal]
    setup: PayoutSetup


# -------- RECONCILE --------
class ReconcileRequest(BaseModel):
    user_ids: List[str] = Field(min_length=1, max_length=500)


class ReconcileResponse(BaseModel):
    users: int
    eligible: List[str]
    ineligible: List[str]
    set_owed: int
    set_on_hold: int


# -------- WITHDRAWAL --------
class WithdrawRequest(BaseModel):
    winnings_ids: List[UUID] = Field(min_length=1, max_length=500)
    payment_memo: Optional[str] = Field(default=None, max_length=500)


class WithdrawResponse(BaseModel):
    release_id: UUID
    batch_id: str
    total_amount: Decimal
    net_amount: Decimal
    fee_amount: Decimal
    payment_ids: List[UUID]


# -------- WEBHOOKS --------
class WebhookAck(BaseModel):
    ok: bool = True
    outcome: str
    event_id: Optional[str] = None
    event: Optional[str] = None


# -------- RECIPIENTS --------
class RecipientLinkRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=200)
    recipient_id: str = Field(min_length=1, max_length=200)


class RecipientOut(BaseModel):
    user_id: str
    recipient_id: str
    recipient_account_id: Optional[str] = None
