import pytest

from app.eligibility.repository import PAYMENT_METHOD_INACTIVE
from services.errors import ConflictError, InvalidRequestError
from services.recipients import link_recipient


def test_link_creates_inactive_payment_method(store, uow_factory):
    row = link_recipient("u1", "R-1", uow_factory=uow_factory)

    assert row["recipient_id"] == "R-1"
    assert row["recipient_account_id"] is None
    assert store.payment_methods[row["user_payment_method_id"]]["status"] == PAYMENT_METHOD_INACTIVE


def test_relinking_same_pair_is_idempotent(store, uow_factory):
    first = link_recipient("u1", "R-1", uow_factory=uow_factory)
    second = link_recipient("u1", "R-1", uow_factory=uow_factory)

    assert second["id"] == first["id"]
    assert len(store.recipients) == 1
    assert len(store.payment_methods) == 1


def test_recipient_ownership_conflicts(store, uow_factory):
    link_recipient("u1", "R-1", uow_factory=uow_factory)

    with pytest.raises(ConflictError):
        link_recipient("u1", "R-2", uow_factory=uow_factory)
    with pytest.raises(ConflictError):
        link_recipient("u2", "R-1", uow_factory=uow_factory)
    assert len(store.recipients) == 1


def test_blank_ids_rejected(uow_factory):
    with pytest.raises(InvalidRequestError):
        link_recipient(" ", "R-1", uow_factory=uow_factory)


def test_admin_link_endpoint(client, admin_headers, store):
    r = client.post("/v1/admin/recipients", json={"user_id": "u9", "recipient_id": "R-9"}, headers=admin_headers)
    assert r.status_code == 201, r.text
    assert r.json() == {"user_id": "u9", "recipient_id": "R-9", "recipient_account_id": None}

    r = client.post("/v1/admin/recipients", json={"user_id": "u10", "recipient_id": "R-9"}, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["detail"]["error"] == "CONFLICT"
