# app/providers/factory.py
from __future__ import annotations

import logging
from typing import Any, Dict
from urllib.parse import urlparse

from settings import settings

logger = logging.getLogger("finance.providers")

_PROVIDER_CACHE: Dict[str, Any] = {}

_LOCAL_DB_HOSTS = {"localhost", "127.0.0.1", "::1", "db", "postgres"}


def get_provider():
    mode = (settings.PROVIDER_MODE or "sandbox").strip().lower()

    if mode in _PROVIDER_CACHE:
        return _PROVIDER_CACHE[mode]

    if mode == "sandbox":
        from app.providers.mock import MockProvider
        provider = MockProvider()
    else:
        from app.providers.batch_client import BatchPayoutClient
        provider = BatchPayoutClient()

    _PROVIDER_CACHE[mode] = provider
    return provider


def reset_provider_cache() -> None:
    _PROVIDER_CACHE.clear()


def warn_if_sandbox_on_remote_db() -> bool:
    """
    Sandbox mode against a non-local database usually means PROVIDER_MODE
    was left unset in a deployment: withdrawals would go to the mock and sit
    in PROCESSING. Returns True when the warning was logged.
    """
    mode = (settings.PROVIDER_MODE or "sandbox").strip().lower()
    if mode != "sandbox":
        return False

    host = urlparse(settings.DATABASE_URL or "").hostname or "localhost"
    if host.lower() in _LOCAL_DB_HOSTS:
        return False

    logger.warning(
        "PROVIDER_MODE=sandbox with non-local database host=%s: withdrawals will NOT reach the payout provider",
        host,
    )
    return True
