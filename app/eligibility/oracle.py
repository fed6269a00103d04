# app/eligibility/oracle.py
from __future__ import annotations

from typing import Iterable


class EligibilityOracle:
    """
    Answers "may this user be paid right now?".

    A user is eligible when they have an ACTIVE tax form association and a
    CONNECTED payout method. Reads are point in time; nothing is cached and
    read errors propagate to the caller.
    """

    def __init__(self, tax_forms, payment_methods):
        self.tax_forms = tax_forms
        self.payment_methods = payment_methods

    @classmethod
    def from_uow(cls, uow) -> "EligibilityOracle":
        return cls(uow.tax_forms, uow.payment_methods)

    def has_active_tax_form(self, user_id: str) -> bool:
        return self.tax_forms.has_active_tax_form(user_id)

    def has_verified_payout_method(self, user_id: str) -> bool:
        return self.payment_methods.has_verified_payment_method(user_id)

    def is_eligible(self, user_id: str) -> bool:
        return self.has_active_tax_form(user_id) and self.has_verified_payout_method(user_id)

    def split_by_eligibility(self, user_ids: Iterable[str]) -> tuple[list[str], list[str]]:
        ordered: list[str] = []
        seen: set[str] = set()
        for uid in user_ids:
            if not uid or uid in seen:
                continue
            seen.add(uid)
            ordered.append(uid)

        if not ordered:
            return [], []

        with_tax = self.tax_forms.users_with_active_tax_form(ordered)
        with_method = self.payment_methods.users_with_verified_payment_method(ordered)

        eligible = [u for u in ordered if u in with_tax and u in with_method]
        ineligible = [u for u in ordered if not (u in with_tax and u in with_method)]
        return eligible, ineligible
