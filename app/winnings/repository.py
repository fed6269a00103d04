# app/winnings/repository.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence
from uuid import UUID

from psycopg2.extras import Json, RealDictCursor

from app.winnings.model import AuditEntry, Payment, PaymentStatus, Winning


_PAYMENT_COLUMNS = """
  p.payment_id,
  p.winnings_id,
  p.installment_number,
  p.gross_amount,
  p.net_amount,
  p.total_amount,
  p.currency,
  p.payment_status,
  p.release_date,
  p.date_paid,
  p.version,
  p.billing_account,
  p.created_by,
  p.updated_by,
  p.created_at,
  p.updated_at
"""


def _payment_from_row(row: dict[str, Any]) -> Payment:
    return Payment(
        id=row["payment_id"],
        winning_id=row["winnings_id"],
        installment_number=int(row["installment_number"]),
        gross_amount=Decimal(row["gross_amount"] or 0),
        net_amount=Decimal(row["net_amount"] or 0),
        total_amount=Decimal(row["total_amount"] or 0),
        currency=row["currency"],
        status=PaymentStatus(row["payment_status"]),
        release_date=row["release_date"],
        date_paid=row["date_paid"],
        version=int(row["version"] or 1),
        billing_account=row.get("billing_account"),
        created_by=row.get("created_by"),
        updated_by=row.get("updated_by"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _winning_from_row(row: dict[str, Any]) -> Winning:
    return Winning(
        id=row["winning_id"],
        winner_id=row["winner_id"],
        type=row["type"],
        category=row.get("category"),
        title=row.get("title"),
        description=row.get("description"),
        external_id=row.get("external_id"),
        origin=row.get("origin"),
        attributes=row.get("attributes") or {},
        created_by=row.get("created_by"),
        created_at=row.get("created_at"),
    )


class WinningRepository:
    def __init__(self, conn):
        self.conn = conn

    def get(self, winning_id: UUID) -> Optional[Winning]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                SELECT winning_id, winner_id, type, category, title, description,
                       external_id, origin, attributes, created_by, created_at
                FROM winnings
                WHERE winning_id = %s
                """,
                (winning_id,),
            )
            row = cur.fetchone()
            return _winning_from_row(row) if row else None

    def create(
        self,
        *,
        winner_id: str,
        type: str,
        category: Optional[str],
        title: Optional[str],
        description: Optional[str],
        external_id: Optional[str],
        origin: Optional[str],
        attributes: dict[str, Any] | None,
        created_by: str,
    ) -> Winning:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                INSERT INTO winnings (
                  winner_id, type, category, title, description,
                  external_id, origin, attributes, created_by
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s::jsonb, %s)
                RETURNING winning_id, winner_id, type, category, title, description,
                          external_id, origin, attributes, created_by, created_at
                """,
                (
                    winner_id,
                    type,
                    category,
                    title,
                    description,
                    external_id,
                    origin,
                    Json(attributes or {}),
                    created_by,
                ),
            )
            return _winning_from_row(cur.fetchone())

    def update_description(self, winning_id: UUID, description: str, *, acting_user_id: str) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE winnings
                SET description = %s, updated_at = now(), updated_by = %s
                WHERE winning_id = %s
                """,
                (description, acting_user_id, winning_id),
            )

    def categories_for(self, winning_ids: Sequence[UUID]) -> dict[UUID, Optional[str]]:
        if not winning_ids:
            return {}
        with self.conn.cursor() as cur:
            cur.execute(
                "SELECT winning_id, category FROM winnings WHERE winning_id = ANY(%s::uuid[])",
                ([str(w) for w in winning_ids],),
            )
            return {row[0]: row[1] for row in cur.fetchall()}

    def search(
        self,
        *,
        winner_id: str | None = None,
        category: str | None = None,
        status: str | None = None,
        billing_accounts: Sequence[str] | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Winning]:
        where = []
        params: list[Any] = []

        if winner_id:
            where.append("w.winner_id = %s")
            params.append(winner_id)
        if category:
            where.append("w.category = %s")
            params.append(category)
        if status:
            where.append(
                "EXISTS (SELECT 1 FROM payment p WHERE p.winnings_id = w.winning_id AND p.payment_status = %s)"
            )
            params.append(status)
        if billing_accounts is not None:
            where.append(
                "EXISTS (SELECT 1 FROM payment p WHERE p.winnings_id = w.winning_id AND p.billing_account = ANY(%s))"
            )
            params.append(list(billing_accounts))

        where_sql = ("WHERE " + " AND ".join(where)) if where else ""
        params.extend([limit, offset])

        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                SELECT w.winning_id, w.winner_id, w.type, w.category, w.title, w.description,
                       w.external_id, w.origin, w.attributes, w.created_by, w.created_at
                FROM winnings w
                {where_sql}
                ORDER BY w.created_at DESC
                LIMIT %s OFFSET %s
                """,
                tuple(params),
            )
            return [_winning_from_row(r) for r in cur.fetchall()]


class PaymentRepository:
    """
    Every per-payment write is gated on the caller's expected version and
    returns True only when exactly one row was touched.
    """

    def __init__(self, conn):
        self.conn = conn

    # ==========================================================
    # Reads
    # ==========================================================

    def list_for_winning(self, winning_id: UUID, payment_id: UUID | None = None) -> list[Payment]:
        payment_filter = ""
        params: list[Any] = [winning_id]
        if payment_id:
            payment_filter = "AND p.payment_id = %s"
            params.append(payment_id)

        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                SELECT {_PAYMENT_COLUMNS}
                FROM payment p
                WHERE p.winnings_id = %s
                {payment_filter}
                ORDER BY p.installment_number
                """,
                tuple(params),
            )
            return [_payment_from_row(r) for r in cur.fetchall()]

    def totals_by_status(self, user_id: str) -> list[dict[str, Any]]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                SELECT p.payment_status AS status,
                       COUNT(*) AS payments,
                       COALESCE(SUM(p.total_amount), 0) AS total_amount
                FROM payment p
                INNER JOIN winnings w ON w.winning_id = p.winnings_id
                WHERE w.winner_id = %s
                GROUP BY p.payment_status
                ORDER BY p.payment_status
                """,
                (user_id,),
            )
            return [
                {
                    "status": PaymentStatus(r["status"]),
                    "payments": int(r["payments"]),
                    "total_amount": Decimal(r["total_amount"]),
                }
                for r in cur.fetchall()
            ]

    def lock_releasable(self, user_id: str, winning_ids: Sequence[UUID]) -> list[Payment]:
        """
        Installment-1 rows of the user's requested winnings, row-locked for the
        rest of the transaction. NOWAIT: a concurrent withdrawal fails fast.
        """
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                SELECT {_PAYMENT_COLUMNS}
                FROM payment p
                INNER JOIN winnings w ON w.winning_id = p.winnings_id
                WHERE p.winnings_id = ANY(%s::uuid[])
                  AND p.installment_number = 1
                  AND w.winner_id = %s
                FOR UPDATE OF p NOWAIT
                """,
                ([str(w) for w in winning_ids], user_id),
            )
            return [_payment_from_row(r) for r in cur.fetchall()]

    # ==========================================================
    # Version-gated single-payment writes
    # ==========================================================

    def update_status(
        self,
        payment_id: UUID,
        *,
        expected_version: int,
        new_status: PaymentStatus,
        acting_user_id: str,
        clear_date_paid: bool = False,
    ) -> bool:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE payment
                SET
                  payment_status = %s,
                  date_paid = CASE WHEN %s THEN NULL ELSE date_paid END,
                  version = version + 1,
                  updated_at = now(),
                  updated_by = %s
                WHERE payment_id = %s
                  AND version = %s
                """,
                (new_status.value, clear_date_paid, acting_user_id, payment_id, expected_version),
            )
            return cur.rowcount == 1

    def update_release_date(
        self,
        payment_id: UUID,
        *,
        expected_version: int,
        release_date: datetime,
        acting_user_id: str,
    ) -> bool:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE payment
                SET
                  release_date = %s,
                  version = version + 1,
                  updated_at = now(),
                  updated_by = %s
                WHERE payment_id = %s
                  AND version = %s
                  AND payment_status IN ('OWED', 'ON_HOLD', 'ON_HOLD_ADMIN')
                """,
                (release_date, acting_user_id, payment_id, expected_version),
            )
            return cur.rowcount == 1

    def update_amount(
        self,
        payment_id: UUID,
        *,
        expected_version: int,
        gross_amount: Decimal | None,
        net_amount: Decimal | None,
        total_amount: Decimal,
        acting_user_id: str,
    ) -> bool:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE payment
                SET
                  gross_amount = COALESCE(%s, gross_amount),
                  net_amount = COALESCE(%s, net_amount),
                  total_amount = %s,
                  version = version + 1,
                  updated_at = now(),
                  updated_by = %s
                WHERE payment_id = %s
                  AND version = %s
                  AND payment_status IN ('OWED', 'ON_HOLD', 'ON_HOLD_ADMIN')
                """,
                (gross_amount, net_amount, total_amount, acting_user_id, payment_id, expected_version),
            )
            return cur.rowcount == 1

    def bump_version(self, payment_id: UUID, *, expected_version: int, acting_user_id: str) -> bool:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE payment
                SET version = version + 1, updated_at = now(), updated_by = %s
                WHERE payment_id = %s
                  AND version = %s
                """,
                (acting_user_id, payment_id, expected_version),
            )
            return cur.rowcount == 1

    # ==========================================================
    # Bulk writes
    # ==========================================================

    def set_processing(self, payment_ids: Sequence[UUID]) -> int:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE payment
                SET
                  payment_status = 'PROCESSING',
                  version = version + 1,
                  updated_at = now()
                WHERE payment_id = ANY(%s::uuid[])
                  AND payment_status = 'OWED'
                  AND date_paid IS NULL
                """,
                ([str(p) for p in payment_ids],),
            )
            return cur.rowcount

    def settle_payments(
        self,
        payment_ids: Sequence[UUID],
        status: PaymentStatus,
        *,
        from_statuses: Sequence[PaymentStatus],
    ) -> int:
        """
        Provider settlement of a release's payments. Rows that have left
        `from_statuses` in the meantime are not touched and not counted.
        """
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE payment
                SET
                  payment_status = %s,
                  date_paid = CASE WHEN %s = 'PAID' THEN now() ELSE date_paid END,
                  version = version + 1,
                  updated_at = now()
                WHERE payment_id = ANY(%s::uuid[])
                  AND payment_status = ANY(%s)
                """,
                (
                    status.value,
                    status.value,
                    [str(p) for p in payment_ids],
                    [s.value for s in from_statuses],
                ),
            )
            return cur.rowcount

    def toggle_user_payments(self, user_ids: Sequence[str], *, set_on_hold: bool) -> int:
        """
        Background sweep: no version check, last writer wins.
        """
        target, source = ("ON_HOLD", "OWED") if set_on_hold else ("OWED", "ON_HOLD")
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE payment
                SET payment_status = %s, updated_at = now()
                FROM winnings w
                WHERE payment.payment_status = %s
                  AND payment.winnings_id = w.winning_id
                  AND w.winner_id = ANY(%s)
                """,
                (target, source, list(user_ids)),
            )
            return cur.rowcount

    def create(
        self,
        *,
        winning_id: UUID,
        installment_number: int,
        gross_amount: Decimal,
        net_amount: Decimal,
        total_amount: Decimal,
        currency: str,
        status: PaymentStatus,
        billing_account: str | None,
        release_date: datetime | None,
        created_by: str,
    ) -> Payment:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                INSERT INTO payment (
                  winnings_id, installment_number,
                  gross_amount, net_amount, total_amount, currency,
                  payment_status, release_date, billing_account,
                  version, created_by
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, COALESCE(%s, now()), %s, 1, %s)
                RETURNING payment_id, winnings_id, installment_number,
                          gross_amount, net_amount, total_amount, currency,
                          payment_status, release_date, date_paid, version,
                          billing_account, created_by, updated_by, created_at, updated_at
                """,
                (
                    winning_id,
                    installment_number,
                    gross_amount,
                    net_amount,
                    total_amount,
                    currency,
                    status.value,
                    release_date,
                    billing_account,
                    created_by,
                ),
            )
            return _payment_from_row(cur.fetchone())


class AuditRepository:
    def __init__(self, conn):
        self.conn = conn

    def append(self, *, winning_id: UUID, user_id: str, action: str, note: str | None = None) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO audit (winnings_id, user_id, action, note)
                VALUES (%s, %s, %s, %s);
                """,
                (winning_id, user_id, action, note),
            )

    def list_for_winning(self, winning_id: UUID, *, limit: int = 1000) -> list[AuditEntry]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                SELECT id, winnings_id, user_id, action, note, created_at
                FROM audit
                WHERE winnings_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (winning_id, limit),
            )
            return [
                AuditEntry(
                    id=r["id"],
                    winning_id=r["winnings_id"],
                    user_id=r["user_id"],
                    action=r["action"],
                    note=r["note"],
                    created_at=r["created_at"],
                )
                for r in cur.fetchall()
            ]


def distinct(values: Iterable[Any]) -> list[Any]:
    seen = set()
    out = []
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out
