# services/access_control.py
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol, Sequence
from uuid import UUID

from app.uow import PgUnitOfWork, UowFactory
from services.errors import ForbiddenError

logger = logging.getLogger("finance.access")

ROLE_PAYMENT_ADMIN = "Payment Admin"
ROLE_PAYMENT_EDITOR = "Payment Editor"
ROLE_PAYMENT_BA_ADMIN = "Payment BA Admin"
ROLE_ENGAGEMENT_PAYMENT_APPROVER = "Engagement Payment Approver"

ENGAGEMENT_PAYMENT_CATEGORY = "ENGAGEMENT_PAYMENT"

BillingAccountLookup = Callable[[str], Sequence[str]]


class RoleAccessProvider(Protocol):
    role_name: str

    def apply_filter(self, user_id: str, filters: dict[str, Any]) -> dict[str, Any]: ...

    def verify_access(self, winning_ids: Sequence[UUID], user_id: str) -> None: ...


def _norm(role: Optional[str]) -> str:
    return (role or "").strip().lower()


class AccessControl:
    """
    Role name -> provider. A user holding several scoped roles gets every
    matching provider's filter applied in turn; access checks must all pass.
    """

    def __init__(self):
        self._providers: dict[str, RoleAccessProvider] = {}

    def register(self, provider: RoleAccessProvider) -> None:
        self._providers[_norm(provider.role_name)] = provider

    def providers_for(self, roles: Sequence[str]) -> list[RoleAccessProvider]:
        out = []
        for r in roles or ():
            p = self._providers.get(_norm(r))
            if p is not None:
                out.append(p)
        return out

    def apply_filters(self, user_id: str, roles: Sequence[str], filters: dict[str, Any]) -> dict[str, Any]:
        out = dict(filters)
        for p in self.providers_for(roles):
            if hasattr(p, "apply_filter"):
                out = p.apply_filter(user_id, out)
        return out

    def verify_access(self, winning_ids: Sequence[UUID], user_id: str, roles: Sequence[str]) -> None:
        for p in self.providers_for(roles):
            if hasattr(p, "verify_access"):
                p.verify_access(list(winning_ids), user_id)


class EngagementPaymentApproverProvider:
    role_name = ROLE_ENGAGEMENT_PAYMENT_APPROVER

    def __init__(self, uow_factory: UowFactory = PgUnitOfWork):
        self.uow_factory = uow_factory

    def apply_filter(self, user_id: str, filters: dict[str, Any]) -> dict[str, Any]:
        return {**filters, "category": ENGAGEMENT_PAYMENT_CATEGORY}

    def verify_access(self, winning_ids: Sequence[UUID], user_id: str) -> None:
        with self.uow_factory() as uow:
            categories = uow.winnings.categories_for(winning_ids)

        bad = sorted({str(c) for c in categories.values() if c != ENGAGEMENT_PAYMENT_CATEGORY})
        if bad:
            logger.info("access denied role=%s user_id=%s categories=%s", self.role_name, user_id, bad)
            raise ForbiddenError(
                f"{self.role_name} user is trying to access winning with category='{', '.join(bad)}'"
            )


class BillingAccountAdminProvider:
    role_name = ROLE_PAYMENT_BA_ADMIN

    def __init__(self, billing_accounts_for_user: BillingAccountLookup, uow_factory: UowFactory = PgUnitOfWork):
        self.billing_accounts_for_user = billing_accounts_for_user
        self.uow_factory = uow_factory

    def apply_filter(self, user_id: str, filters: dict[str, Any]) -> dict[str, Any]:
        return {**filters, "billing_accounts": [str(b) for b in self.billing_accounts_for_user(user_id)]}

    def verify_access(self, winning_ids: Sequence[UUID], user_id: str) -> None:
        with self.uow_factory() as uow:
            accounts = {
                p.billing_account
                for wid in winning_ids
                for p in uow.payments.list_for_winning(wid)
                if p.billing_account is not None
            }

        if not accounts:
            return

        allowed = {str(b) for b in self.billing_accounts_for_user(user_id)}
        if any(str(a) not in allowed for a in accounts):
            logger.info("access denied role=%s user_id=%s", self.role_name, user_id)
            raise ForbiddenError("BA admin user does not have access to the billing account for this winnings")


def no_billing_accounts(user_id: str) -> Sequence[str]:
    return ()


def build_access_control(
    *,
    billing_accounts_for_user: BillingAccountLookup = no_billing_accounts,
    uow_factory: UowFactory = PgUnitOfWork,
) -> AccessControl:
    ac = AccessControl()
    ac.register(EngagementPaymentApproverProvider(uow_factory))
    ac.register(BillingAccountAdminProvider(billing_accounts_for_user, uow_factory))
    return ac
