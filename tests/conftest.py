# tests/conftest.py
from __future__ import annotations

import json
import os
import sys
from decimal import Decimal
from typing import Dict, Optional, Sequence

import pytest
from fastapi.testclient import TestClient

from app.providers.mock import MockProvider
from deps.services import get_payout_provider, get_uow_factory
from main import app
from security import create_access_token
from services import metrics
from settings import settings
from tests.fakes import InMemoryStore, uow_factory_for

SCRIPT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "scripts"))
if SCRIPT_DIR not in sys.path:
    sys.path.insert(0, SCRIPT_DIR)

from _webhook_signing import canonical_json_bytes, provider_webhook_headers  # noqa: E402


WEBHOOK_SECRET = "whsec_pytest_0123456789"
ADMIN_ID = "admin-1"


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch):
    monkeypatch.setattr(settings, "PROVIDER_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "PROVIDER_MIN_PAYMENT_AMOUNT", Decimal("0"))
    monkeypatch.setattr(settings, "ACCEPT_CUSTOM_PAYMENTS_MEMO", False)
    monkeypatch.setattr(settings, "RELEASE_REVERT_MIN_HOURS", 12)
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    return uow_factory_for(store)


@pytest.fixture
def provider() -> MockProvider:
    return MockProvider()


# ---------------------------
# Client + Auth Helpers
# ---------------------------

@pytest.fixture
def client(uow_factory, provider):
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[get_payout_provider] = lambda: provider
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(user_id: str, *, roles: Sequence[str] = (), handle: Optional[str] = None) -> Dict[str, str]:
    token = create_access_token(user_id, handle=handle, roles=roles)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return auth_headers(ADMIN_ID, roles=["Payment Admin"], handle="admin")


def signed_webhook(payload: dict, *, delivery_id: str, secret: str = WEBHOOK_SECRET):
    body = canonical_json_bytes(payload)
    return body, provider_webhook_headers(secret, body, delivery_id=delivery_id)


def webhook_payload(model: str, action: str, body: dict) -> dict:
    return {"model": model, "action": action, "body": body}


def parse(raw: bytes) -> dict:
    return json.loads(raw.decode("utf-8"))
