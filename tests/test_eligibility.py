from app.eligibility.oracle import EligibilityOracle
from app.eligibility.repository import PAYMENT_METHOD_INACTIVE, TAX_FORM_INACTIVE


def _oracle(uow_factory):
    with uow_factory() as uow:
        return EligibilityOracle.from_uow(uow)


def test_user_with_form_and_method_is_eligible(store, uow_factory):
    store.make_eligible("u1")
    oracle = _oracle(uow_factory)
    assert oracle.has_active_tax_form("u1")
    assert oracle.has_verified_payout_method("u1")
    assert oracle.is_eligible("u1")


def test_missing_either_half_is_ineligible(store, uow_factory):
    store.set_tax_form("only-form")
    store.set_payment_method("only-method")
    store.set_tax_form("inactive-form", status=TAX_FORM_INACTIVE)
    store.set_payment_method("inactive-form")
    store.set_tax_form("inactive-method")
    store.set_payment_method("inactive-method", status=PAYMENT_METHOD_INACTIVE)

    oracle = _oracle(uow_factory)
    for uid in ("only-form", "only-method", "inactive-form", "inactive-method", "nobody"):
        assert oracle.is_eligible(uid) is False, uid


def test_split_dedupes_and_keeps_order(store, uow_factory):
    store.make_eligible("b")
    store.make_eligible("d")

    eligible, ineligible = _oracle(uow_factory).split_by_eligibility(["a", "b", "", "c", "b", "d", "a"])
    assert eligible == ["b", "d"]
    assert ineligible == ["a", "c"]


def test_split_of_nothing_is_empty(uow_factory):
    assert _oracle(uow_factory).split_by_eligibility([]) == ([], [])
