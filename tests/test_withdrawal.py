from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.providers.mock import MockProvider
from app.releases.external_id import parse_external_id
from app.winnings.model import PaymentStatus
from services.errors import InvalidRequestError, InvalidStateError, NotFoundError, UpstreamFailureError
from services.withdrawal import withdraw
from settings import settings


@pytest.fixture
def payee(store):
    store.make_eligible("u1")
    store.add_recipient("u1", "R-100", account_id="A-1")
    return "u1"


def test_withdraw_two_winnings_over_minimum(store, uow_factory, provider, payee, monkeypatch):
    monkeypatch.setattr(settings, "PROVIDER_MIN_PAYMENT_AMOUNT", Decimal("50"))
    w1, (p1,) = store.add_winning(payee, ["40.00"])
    w2, (p2,) = store.add_winning(payee, ["70.00"])

    result = withdraw(payee, "handle", [w1.id, w2.id], uow_factory=uow_factory, provider=provider)

    assert result["total_amount"] == Decimal("110.00")
    assert result["batch_id"] == "mock-batch-1"
    assert set(result["payment_ids"]) == {p1.id, p2.id}
    assert store.payments[p1.id].status == PaymentStatus.PROCESSING
    assert store.payments[p2.id].status == PaymentStatus.PROCESSING

    release = store.releases[result["release_id"]]
    assert release.status == "PROCESSING"
    assert release.total_net_amount == Decimal("110.00")
    assert release.metadata["feeAmount"] == "0"
    assert release.metadata["netAmount"] == "110.00"
    assert release.payee_id == "R-100"
    assert release.external_transaction_id == "mock-payment-2"
    assert set(release.payment_ids) == {p1.id, p2.id}

    (added,) = provider.calls_to("add_payment")
    assert added["amount"] == Decimal("110.00")
    assert added["recipient_id"] == "R-100"
    rid, wids = parse_external_id(added["external_id"])
    assert rid == release.id
    assert wids == [w1.id, w2.id]

    assert provider.calls_to("open_batch")[0]["description"] == "u1_handle"
    assert len(provider.calls_to("generate_quote")) == 1
    assert len(provider.calls_to("start_processing")) == 1
    assert provider.calls_to("get_payout_method") == []


def test_below_minimum_mutates_nothing(store, uow_factory, provider, payee, monkeypatch):
    monkeypatch.setattr(settings, "PROVIDER_MIN_PAYMENT_AMOUNT", Decimal("50"))
    w, (p,) = store.add_winning(payee, ["10.00"])

    with pytest.raises(InvalidRequestError) as ei:
        withdraw(payee, "handle", [w.id], uow_factory=uow_factory, provider=provider)

    assert "$50" in ei.value.message
    assert store.payments[p.id].status == PaymentStatus.OWED
    assert store.releases == {}
    assert provider.calls == []


def test_provider_failure_rolls_back(store, uow_factory, payee):
    provider = MockProvider(fail_on={"add_payment"})
    w, (p,) = store.add_winning(payee, ["25.00"])

    with pytest.raises(UpstreamFailureError):
        withdraw(payee, "handle", [w.id], uow_factory=uow_factory, provider=provider)

    assert store.payments[p.id].status == PaymentStatus.OWED
    assert store.payments[p.id].version == 1
    assert store.releases == {}


def test_post_commit_provider_failure_is_only_logged(store, uow_factory, payee, caplog):
    provider = MockProvider(fail_on={"start_processing"})
    w, (p,) = store.add_winning(payee, ["25.00"])

    result = withdraw(payee, "handle", [w.id], uow_factory=uow_factory, provider=provider)

    assert store.payments[p.id].status == PaymentStatus.PROCESSING
    assert result["release_id"] in store.releases
    assert "start_processing failed" in caplog.text


def test_locked_rows_are_invalid_state(store, uow_factory, provider, payee):
    w, (p,) = store.add_winning(payee, ["25.00"])
    store.locked.add(p.id)

    with pytest.raises(InvalidStateError):
        withdraw(payee, "handle", [w.id], uow_factory=uow_factory, provider=provider)
    assert store.payments[p.id].status == PaymentStatus.OWED


def test_second_withdrawal_of_same_winning_is_rejected(store, uow_factory, provider, payee):
    w, (p,) = store.add_winning(payee, ["25.00"])
    withdraw(payee, "handle", [w.id], uow_factory=uow_factory, provider=provider)

    with pytest.raises(InvalidStateError):
        withdraw(payee, "handle", [w.id], uow_factory=uow_factory, provider=provider)
    assert len(store.releases) == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"status": PaymentStatus.ON_HOLD},
        {"date_paid": datetime(2025, 1, 1, tzinfo=timezone.utc)},
        {"release_date": datetime.now(timezone.utc) + timedelta(days=3)},
    ],
)
def test_unreleasable_payments_are_invalid_state(store, uow_factory, provider, payee, kwargs):
    w, _ = store.add_winning(payee, ["25.00"], **kwargs)
    with pytest.raises(InvalidStateError):
        withdraw(payee, "handle", [w.id], uow_factory=uow_factory, provider=provider)


def test_someone_elses_winning_is_not_found(store, uow_factory, provider, payee):
    other, _ = store.add_winning("someone-else", ["25.00"])
    mine, _ = store.add_winning(payee, ["25.00"])

    with pytest.raises(NotFoundError):
        withdraw(payee, "handle", [mine.id, other.id], uow_factory=uow_factory, provider=provider)


def test_duplicate_ids_are_collapsed(store, uow_factory, provider, payee):
    w, (p,) = store.add_winning(payee, ["25.00"])
    result = withdraw(payee, "handle", [w.id, w.id], uow_factory=uow_factory, provider=provider)
    assert result["payment_ids"] == [p.id]


def test_missing_tax_form_or_payment_method(store, uow_factory, provider):
    w, _ = store.add_winning("nobody", ["25.00"])
    with pytest.raises(InvalidRequestError, match="tax form"):
        withdraw("nobody", "h", [w.id], uow_factory=uow_factory, provider=provider)

    store.set_tax_form("nobody")
    with pytest.raises(InvalidRequestError, match="payment method"):
        withdraw("nobody", "h", [w.id], uow_factory=uow_factory, provider=provider)


def test_missing_recipient(store, uow_factory, provider):
    store.make_eligible("u2")
    w, (p,) = store.add_winning("u2", ["25.00"])
    with pytest.raises(InvalidRequestError, match="recipient"):
        withdraw("u2", "h", [w.id], uow_factory=uow_factory, provider=provider)
    assert store.payments[p.id].status == PaymentStatus.OWED


def test_memo_only_forwarded_when_enabled(store, uow_factory, provider, payee, monkeypatch):
    w1, _ = store.add_winning(payee, ["25.00"])
    withdraw(payee, "h", [w1.id], "thanks!", uow_factory=uow_factory, provider=provider)
    assert provider.calls_to("add_payment")[-1]["memo"] is None

    monkeypatch.setattr(settings, "ACCEPT_CUSTOM_PAYMENTS_MEMO", True)
    w2, _ = store.add_winning(payee, ["25.00"])
    withdraw(payee, "h", [w2.id], "thanks!", uow_factory=uow_factory, provider=provider)
    assert provider.calls_to("add_payment")[-1]["memo"] == "thanks!"


def test_empty_request_rejected(uow_factory, provider):
    with pytest.raises(InvalidRequestError):
        withdraw("u1", "h", [], uow_factory=uow_factory, provider=provider)


# ---------------------------
# payout fee
# ---------------------------

@pytest.fixture
def paypal_fee(monkeypatch):
    monkeypatch.setattr(settings, "PROVIDER_PAYPAL_FEE_PERCENT", Decimal("2"))
    monkeypatch.setattr(settings, "PROVIDER_PAYPAL_FEE_MAX_AMOUNT", Decimal("1.00"))


def test_paypal_fee_is_withheld_and_recorded(store, uow_factory, payee, paypal_fee):
    provider = MockProvider(payout_methods={"R-100": "PayPal"})
    w, (p,) = store.add_winning(payee, ["30.00"])

    result = withdraw(payee, "h", [w.id], uow_factory=uow_factory, provider=provider)

    assert result["fee_amount"] == Decimal("0.60")
    assert result["net_amount"] == Decimal("29.40")
    assert provider.calls_to("add_payment")[0]["amount"] == Decimal("29.40")

    release = store.releases[result["release_id"]]
    assert release.total_net_amount == Decimal("29.40")
    assert release.metadata["netAmount"] == "29.40"
    assert release.metadata["feeAmount"] == "0.60"
    assert release.metadata["totalAmount"] == "30.00"
    assert release.metadata["payoutMethod"] == "PayPal"


def test_paypal_fee_is_capped(store, uow_factory, payee, paypal_fee):
    provider = MockProvider(payout_methods={"R-100": "paypal"})
    w, _ = store.add_winning(payee, ["500.00"])

    result = withdraw(payee, "h", [w.id], uow_factory=uow_factory, provider=provider)

    assert result["fee_amount"] == Decimal("1.00")
    assert store.releases[result["release_id"]].total_net_amount == Decimal("499.00")


def test_no_fee_for_other_payout_methods(store, uow_factory, payee, paypal_fee):
    provider = MockProvider(payout_methods={"R-100": "bank-transfer"})
    w, _ = store.add_winning(payee, ["30.00"])

    result = withdraw(payee, "h", [w.id], uow_factory=uow_factory, provider=provider)

    assert result["fee_amount"] == Decimal("0")
    assert provider.calls_to("add_payment")[0]["amount"] == Decimal("30.00")


def test_payout_method_lookup_failure_rolls_back(store, uow_factory, payee, paypal_fee):
    provider = MockProvider(fail_on={"get_payout_method"})
    w, (p,) = store.add_winning(payee, ["30.00"])

    with pytest.raises(UpstreamFailureError):
        withdraw(payee, "h", [w.id], uow_factory=uow_factory, provider=provider)

    assert store.payments[p.id].status == PaymentStatus.OWED
    assert store.releases == {}
    assert provider.calls_to("open_batch") == []
