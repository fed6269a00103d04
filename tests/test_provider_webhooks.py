import uuid

import pytest

from app.eligibility.repository import (
    IDENTITY_VERIFICATION_ACTIVE,
    IDENTITY_VERIFICATION_INACTIVE,
    PAYMENT_METHOD_CONNECTED,
    PAYMENT_METHOD_INACTIVE,
    TAX_FORM_ACTIVE,
)
from app.releases.external_id import encode_external_id
from app.winnings.model import PaymentStatus
from services import metrics
from services.errors import InternalError, InvalidRequestError, InvalidSignatureError
from services.provider_webhooks import handle_provider_webhook
from services.withdrawal import withdraw
from settings import settings
from tests.conftest import parse, signed_webhook, webhook_payload


def _deliver(payload, uow_factory, *, delivery_id="evt-1", secret=None):
    kwargs = {"delivery_id": delivery_id}
    if secret is not None:
        kwargs["secret"] = secret
    body, headers = signed_webhook(payload, **kwargs)
    return handle_provider_webhook(headers, body, parse(body), uow_factory=uow_factory)


@pytest.fixture
def processing(store, uow_factory, provider):
    """Two winnings withdrawn together: both PROCESSING under one release."""
    store.make_eligible("u1")
    store.add_recipient("u1", "R-1", account_id="A-1")
    w1, (p1,) = store.add_winning("u1", ["20.00"])
    w2, (p2,) = store.add_winning("u1", ["30.00"])
    result = withdraw("u1", "h", [w1.id, w2.id], uow_factory=uow_factory, provider=provider)
    external_id = provider.calls_to("add_payment")[0]["external_id"]
    return result["release_id"], external_id, (p1, p2)


def _settlement(status, external_id, **extra):
    return webhook_payload("payment", status, {"payment": {"status": status, "externalId": external_id, **extra}})


def test_processed_marks_payments_paid(store, uow_factory, processing):
    release_id, external_id, payments = processing

    out = _deliver(_settlement("processed", external_id), uow_factory)

    assert out["outcome"] == "processed"
    assert out["event"] == "payment.processed"
    for p in payments:
        assert store.payments[p.id].status == PaymentStatus.PAID
        assert store.payments[p.id].date_paid is not None
    assert store.releases[release_id].status == "PROCESSED"
    assert store.webhook_events["evt-1"]["status"] == "processed"


def test_duplicate_delivery_applied_once(store, uow_factory, processing):
    _, external_id, (p1, _) = processing
    payload = _settlement("processed", external_id)

    first = _deliver(payload, uow_factory)
    version_after_first = store.payments[p1.id].version
    second = _deliver(payload, uow_factory)

    assert first["outcome"] == "processed"
    assert second["outcome"] == "duplicate"
    assert len(store.webhook_events) == 1
    assert store.payments[p1.id].version == version_after_first
    assert 'outcome="duplicate"' in metrics.render_prometheus()


def test_failed_settlement_records_reason(store, uow_factory, processing):
    release_id, external_id, payments = processing

    _deliver(_settlement("failed", external_id, failureMessage="account closed", errors=["E1", "E2"]), uow_factory)

    assert [store.payments[p.id].status for p in payments] == [PaymentStatus.FAILED] * 2
    release = store.releases[release_id]
    assert release.status == "FAILED"
    assert release.metadata["failureMessage"] == "account closed"
    assert release.metadata["errors"] == "E1, E2"


def test_settlement_after_final_failure_is_refused(store, uow_factory, processing):
    release_id, external_id, payments = processing
    _deliver(_settlement("returned", external_id, returnedNote="bounced"), uow_factory, delivery_id="evt-1")

    out = _deliver(_settlement("processed", external_id), uow_factory, delivery_id="evt-2")

    assert out["outcome"] == "error"
    assert store.webhook_events["evt-2"]["status"] == "error"
    assert "RETURNED" in store.webhook_events["evt-2"]["error_message"]
    assert [store.payments[p.id].status for p in payments] == [PaymentStatus.RETURNED] * 2


def test_write_failure_midway_rolls_back_the_event(store, uow_factory, processing):
    release_id, external_id, (p1, p2) = processing
    store.fail_on_update.add(p2.id)

    out = _deliver(_settlement("processed", external_id), uow_factory)

    assert out["outcome"] == "error"
    assert store.payments[p1.id].status == PaymentStatus.PROCESSING
    assert store.payments[p2.id].status == PaymentStatus.PROCESSING
    assert store.releases[release_id].status == "PROCESSING"
    assert store.webhook_events["evt-1"]["status"] == "error"


def test_bare_release_id_resolves_winnings_through_release(store, uow_factory, processing):
    release_id, _, payments = processing

    _deliver(_settlement("processed", str(release_id)), uow_factory)

    assert [store.payments[p.id].status for p in payments] == [PaymentStatus.PAID] * 2


def test_foreign_winning_in_external_id_is_refused(store, uow_factory, processing):
    release_id, _, (p1, p2) = processing
    _, (foreign,) = store.add_winning("u2", ["500.00"])
    external_id = encode_external_id(release_id, [p1.winning_id, foreign.winning_id])

    out = _deliver(_settlement("processed", external_id), uow_factory)

    assert out["outcome"] == "error"
    assert "not part of payment release" in store.webhook_events["evt-1"]["error_message"]
    assert store.payments[foreign.id].status == PaymentStatus.OWED
    assert store.payments[foreign.id].date_paid is None
    assert store.payments[p1.id].status == PaymentStatus.PROCESSING
    assert store.releases[release_id].status == "PROCESSING"


def test_unknown_winning_id_next_to_installments_is_refused(store, uow_factory, provider):
    store.make_eligible("u1")
    store.add_recipient("u1", "R-1", account_id="A-1")
    winning, (first, second) = store.add_winning("u1", ["60.00", "40.00"])
    result = withdraw("u1", "h", [winning.id], uow_factory=uow_factory, provider=provider)
    external_id = encode_external_id(result["release_id"], [winning.id, uuid.uuid4()])

    out = _deliver(_settlement("processed", external_id), uow_factory)

    assert out["outcome"] == "error"
    assert store.payments[first.id].status == PaymentStatus.PROCESSING
    assert store.payments[second.id].status == PaymentStatus.OWED


def test_settlement_only_touches_payments_of_the_release(store, uow_factory, provider):
    store.make_eligible("u1")
    store.add_recipient("u1", "R-1", account_id="A-1")
    winning, (first, second) = store.add_winning("u1", ["60.00", "40.00"])
    result = withdraw("u1", "h", [winning.id], uow_factory=uow_factory, provider=provider)
    external_id = provider.calls_to("add_payment")[0]["external_id"]

    out = _deliver(_settlement("processed", external_id), uow_factory)

    assert out["outcome"] == "processed"
    assert store.payments[first.id].status == PaymentStatus.PAID
    assert store.payments[second.id].status == PaymentStatus.OWED
    assert store.releases[result["release_id"]].status == "PROCESSED"


def test_returned_after_processed_moves_paid_to_returned(store, uow_factory, processing):
    release_id, external_id, payments = processing
    _deliver(_settlement("processed", external_id), uow_factory, delivery_id="evt-1")

    out = _deliver(_settlement("returned", external_id, returnedNote="bounced"), uow_factory, delivery_id="evt-2")

    assert out["outcome"] == "processed"
    assert [store.payments[p.id].status for p in payments] == [PaymentStatus.RETURNED] * 2
    assert store.releases[release_id].status == "RETURNED"


def test_bad_signature_rejected_and_not_logged(store, uow_factory):
    with pytest.raises(InvalidSignatureError):
        _deliver(webhook_payload("payment", "processed", {}), uow_factory, secret="not-the-secret")
    assert store.webhook_events == {}


def test_missing_secret_is_internal_error(uow_factory, monkeypatch):
    monkeypatch.setattr(settings, "PROVIDER_WEBHOOK_SECRET", "")
    with pytest.raises(InternalError):
        _deliver(webhook_payload("payment", "processed", {}), uow_factory)


def test_missing_delivery_id_rejected(uow_factory):
    body, headers = signed_webhook(webhook_payload("payment", "processed", {}), delivery_id="x")
    headers.pop("x-provider-delivery")
    with pytest.raises(InvalidRequestError):
        handle_provider_webhook(headers, body, parse(body), uow_factory=uow_factory)


def test_unknown_event_is_kept_as_logged(store, uow_factory):
    out = _deliver(webhook_payload("batch", "updated", {"batch": {"id": "B1"}}), uow_factory)

    assert out["outcome"] == "ignored"
    assert store.webhook_events["evt-1"]["status"] == "logged"


# ---------------------------
# eligibility-changing events
# ---------------------------

def _tax_form(recipient_id, status, tax_form_id="TF-9"):
    return webhook_payload(
        "taxForm",
        "status_updated",
        {"taxForm": {"data": {"recipientId": recipient_id, "taxFormId": tax_form_id, "status": status}}},
    )


def test_reviewed_tax_form_releases_held_payments(store, uow_factory):
    store.add_recipient("u5", "R-5", account_id="A-5")
    _, (p,) = store.add_winning("u5", ["9"], status=PaymentStatus.ON_HOLD)

    out = _deliver(_tax_form("R-5", "reviewed"), uow_factory)

    assert out["outcome"] == "processed"
    assert store.tax_forms[("u5", "TF-9")]["tax_form_status"] == TAX_FORM_ACTIVE
    assert store.payments[p.id].status == PaymentStatus.OWED


def test_voided_tax_form_is_removed_and_payments_held(store, uow_factory):
    store.add_recipient("u5", "R-5", account_id="A-5")
    store.set_tax_form("u5", tax_form_id="TF-9")
    _, (p,) = store.add_winning("u5", ["9"], status=PaymentStatus.OWED)

    _deliver(_tax_form("R-5", "voided"), uow_factory)

    assert ("u5", "TF-9") not in store.tax_forms
    assert store.payments[p.id].status == PaymentStatus.ON_HOLD


def test_primary_account_created_connects_payment_method(store, uow_factory):
    recipient = store.add_recipient("u6", "R-6")
    store.set_tax_form("u6")
    _, (p,) = store.add_winning("u6", ["9"], status=PaymentStatus.ON_HOLD)

    payload = webhook_payload(
        "recipientAccount",
        "created",
        {"account": {"recipientId": "R-6", "id": "A-6", "status": "primary", "primary": True}},
    )
    _deliver(payload, uow_factory)

    assert store.payment_methods[recipient["user_payment_method_id"]]["status"] == PAYMENT_METHOD_CONNECTED
    assert store.payments[p.id].status == PaymentStatus.OWED


def test_account_deleted_disconnects_and_holds(store, uow_factory):
    recipient = store.add_recipient("u7", "R-7", account_id="A-7")
    store.set_tax_form("u7")
    _, (p,) = store.add_winning("u7", ["9"], status=PaymentStatus.OWED)

    _deliver(webhook_payload("recipientAccount", "deleted", {"account": {"id": "A-7"}}), uow_factory)

    assert store.recipient_accounts == {}
    assert store.payment_methods[recipient["user_payment_method_id"]]["status"] == PAYMENT_METHOD_INACTIVE
    assert store.payments[p.id].status == PaymentStatus.ON_HOLD


def test_unknown_recipient_is_processed_without_changes(store, uow_factory):
    out = _deliver(_tax_form("R-unknown", "reviewed"), uow_factory)
    assert out["outcome"] == "processed"
    assert store.tax_forms == {}


def _verification(recipient_id, status, verification_id="IDV-1", **extra):
    return webhook_payload(
        "recipientVerification",
        "status_updated",
        {"recipientVerification": {"id": verification_id, "recipientId": recipient_id, "status": status, **extra}},
    )


def test_approved_verification_is_recorded_and_reconciles(store, uow_factory):
    store.add_recipient("u8", "R-8", account_id="A-8")
    store.set_tax_form("u8")
    _, (p,) = store.add_winning("u8", ["9"], status=PaymentStatus.ON_HOLD)

    out = _deliver(_verification("R-8", "approved", submittedAt="2026-02-01T10:00:00Z"), uow_factory)

    assert out["outcome"] == "processed"
    row = store.identity_verifications["u8"]
    assert row["verification_status"] == IDENTITY_VERIFICATION_ACTIVE
    assert row["verification_id"] == "IDV-1"
    assert row["date_filed"].year == 2026
    assert store.payments[p.id].status == PaymentStatus.OWED


def test_later_verification_overwrites_the_users_row(store, uow_factory):
    store.add_recipient("u8", "R-8", account_id="A-8")

    _deliver(_verification("R-8", "approved"), uow_factory, delivery_id="evt-1")
    _deliver(_verification("R-8", "rejected", verification_id="IDV-2"), uow_factory, delivery_id="evt-2")

    assert list(store.identity_verifications) == ["u8"]
    row = store.identity_verifications["u8"]
    assert row["verification_id"] == "IDV-2"
    assert row["verification_status"] == IDENTITY_VERIFICATION_INACTIVE


def test_verification_for_unknown_recipient_is_an_error(store, uow_factory):
    out = _deliver(_verification("R-nobody", "approved"), uow_factory)

    assert out["outcome"] == "error"
    assert store.identity_verifications == {}
