from contextlib import contextmanager

import routes.health as health_routes
from settings import settings


class _Cursor:
    def __init__(self, rows):
        self.rows = rows

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None):
        pass

    def fetchone(self):
        return self.rows.pop(0)


class _Conn:
    def __init__(self, rows):
        self.rows = rows

    def cursor(self):
        return _Cursor(self.rows)


def _fake_get_conn(rows):
    queue = list(rows)

    @contextmanager
    def get_conn():
        yield _Conn(queue)

    return get_conn


def _broken_get_conn():
    @contextmanager
    def get_conn():
        raise RuntimeError("connection refused")
        yield

    return get_conn


def test_health(client, monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("GIT_SHA", "abc123")

    data = client.get("/health").json()
    assert data == {"ok": True, "env": "test", "provider_mode": "sandbox", "git_sha": "abc123"}


def test_healthz_reports_db_failure(client, monkeypatch):
    monkeypatch.setattr(health_routes, "get_conn", _broken_get_conn())

    r = client.get("/healthz")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["ok"] is True
    assert data["db_ok"] is False
    assert "connection refused" in data["db_error"]


def test_readyz_when_migrated(client, monkeypatch):
    # SELECT 1, then to_regclass, then alembic_version
    monkeypatch.setattr(health_routes, "get_conn", _fake_get_conn([(1,), ("alembic_version",), ("0001",)]))

    data = client.get("/readyz").json()
    assert data["db_ok"] is True
    assert data["migrations_ok"] is True
    assert data["ready"] is True
    assert data["migration_revision"] == health_routes.MIGRATION_REVISION


def test_readyz_without_migrations(client, monkeypatch):
    monkeypatch.setattr(health_routes, "get_conn", _fake_get_conn([(1,), (None,)]))

    data = client.get("/readyz").json()
    assert data["ready"] is False
    assert data["migrations_ok"] is False


def test_readyz_needs_webhook_secret_and_provider_keys(client, monkeypatch):
    monkeypatch.setattr(health_routes, "get_conn", _fake_get_conn([(1,), ("alembic_version",), ("0001",)]))
    monkeypatch.setattr(settings, "PROVIDER_WEBHOOK_SECRET", "")
    monkeypatch.setattr(settings, "PROVIDER_MODE", "real")
    monkeypatch.setattr(settings, "PROVIDER_ACCESS_KEY", "")

    data = client.get("/readyz").json()
    assert data["migrations_ok"] is True
    assert data["webhook_secret_ok"] is False
    assert data["provider_ok"] is False
    assert data["ready"] is False
