# app/uow.py
from __future__ import annotations

from typing import Callable, Protocol

from db import get_conn
from app.eligibility.repository import IdentityVerificationRepository, PaymentMethodRepository, TaxFormRepository
from app.recipients.repository import RecipientRepository
from app.releases.repository import ReleaseRepository
from app.webhooks.repository import WebhookEventRepository
from app.winnings.repository import AuditRepository, PaymentRepository, WinningRepository


class UnitOfWork(Protocol):
    winnings: WinningRepository
    payments: PaymentRepository
    audit: AuditRepository
    releases: ReleaseRepository
    tax_forms: TaxFormRepository
    payment_methods: PaymentMethodRepository
    identity_verifications: IdentityVerificationRepository
    recipients: RecipientRepository
    webhook_events: WebhookEventRepository

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> bool | None: ...


UowFactory = Callable[[], UnitOfWork]


class PgUnitOfWork:
    """
    One pooled connection, one transaction.
    Commits on clean exit, rolls back when the block raises.
    """

    def __init__(self):
        self._cm = None
        self.conn = None

    def __enter__(self) -> "PgUnitOfWork":
        self._cm = get_conn()
        self.conn = self._cm.__enter__()

        self.winnings = WinningRepository(self.conn)
        self.payments = PaymentRepository(self.conn)
        self.audit = AuditRepository(self.conn)
        self.releases = ReleaseRepository(self.conn)
        self.tax_forms = TaxFormRepository(self.conn)
        self.payment_methods = PaymentMethodRepository(self.conn)
        self.identity_verifications = IdentityVerificationRepository(self.conn)
        self.recipients = RecipientRepository(self.conn)
        self.webhook_events = WebhookEventRepository(self.conn)
        return self

    def __exit__(self, exc_type, exc, tb):
        cm, self._cm = self._cm, None
        self.conn = None
        return cm.__exit__(exc_type, exc, tb)
