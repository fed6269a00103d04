from __future__ import annotations

import os

from fastapi import APIRouter

from db import get_conn
from settings import settings

router = APIRouter(tags=["health"])

MIGRATION_REVISION = "0001_baseline_schema"


def _probe_db() -> dict:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
    except Exception as exc:
        return {"db_ok": False, "db_error": f"{type(exc).__name__}: {exc}"}
    return {"db_ok": True, "db_error": None}


def _migrations_applied() -> bool:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT to_regclass('public.alembic_version');")
                if not cur.fetchone()[0]:
                    return False
                cur.execute("SELECT version_num FROM alembic_version LIMIT 1;")
                row = cur.fetchone()
    except Exception:
        return False
    return bool(row and row[0])


def _provider_configured() -> bool:
    if settings.PROVIDER_MODE == "sandbox":
        return True
    return bool(settings.PROVIDER_ACCESS_KEY and settings.PROVIDER_SECRET_KEY)


def _build_info() -> dict:
    return {
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": (os.getenv("GIT_SHA") or "").strip() or None,
    }


@router.get("/health")
def health():
    return {
        "ok": True,
        "env": (os.getenv("ENVIRONMENT") or "").strip(),
        "provider_mode": settings.PROVIDER_MODE,
        "git_sha": _build_info()["git_sha"],
    }


@router.get("/healthz")
def healthz():
    return {"ok": True, **_build_info(), **_probe_db()}


@router.get("/readyz")
def readyz():
    """Ready once the schema is migrated and the provider side can be reached and verified."""
    db = _probe_db()
    checks = {
        "migrations_ok": db["db_ok"] and _migrations_applied(),
        "provider_ok": _provider_configured(),
        "webhook_secret_ok": bool(settings.PROVIDER_WEBHOOK_SECRET),
    }
    return {
        "ready": db["db_ok"] and all(checks.values()),
        **db,
        **checks,
        "migration_revision": MIGRATION_REVISION,
    }
