# services/db_errors.py
from __future__ import annotations

from services.errors import ConflictError, FinanceError, InternalError, InvalidStateError

LOCK_NOT_AVAILABLE = "55P03"
UNIQUE_VIOLATION = "23505"
SERIALIZATION_FAILURE = "40001"
QUERY_CANCELED = "57014"

# SQLSTATE -> (error class, message)
DB_ERROR_MAP: dict[str, tuple[type[FinanceError], str]] = {
    LOCK_NOT_AVAILABLE: (InvalidStateError, "Some or all of the requested payments are locked by another operation."),
    UNIQUE_VIOLATION: (ConflictError, "Duplicate record."),
    SERIALIZATION_FAILURE: (ConflictError, "Concurrent modification, please retry."),
    QUERY_CANCELED: (InternalError, "Database statement timed out."),
}


def _extract_pgcode(exc: BaseException) -> str | None:
    """
    SQLSTATE from a psycopg2 error, looking at the exception itself and then
    its diagnostics.
    """
    code = getattr(exc, "pgcode", None)
    if code:
        return code

    diag = getattr(exc, "diag", None)
    if diag is not None:
        val = getattr(diag, "sqlstate", None)
        if isinstance(val, str) and val:
            return val

    return None


def is_lock_not_available(exc: BaseException) -> bool:
    return _extract_pgcode(exc) == LOCK_NOT_AVAILABLE


def translate_db_error(exc: BaseException) -> FinanceError | None:
    """
    Map a known database failure to a core error; None means "not ours,
    let it propagate".
    """
    code = _extract_pgcode(exc)
    if code and code in DB_ERROR_MAP:
        cls, message = DB_ERROR_MAP[code]
        return cls(message)
    return None
