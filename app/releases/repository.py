# app/releases/repository.py
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

from psycopg2.extras import Json, RealDictCursor

from app.winnings.model import PaymentRelease


RELEASE_PROCESSING = "PROCESSING"
RELEASE_PROCESSED = "PROCESSED"
RELEASE_FAILED = "FAILED"
RELEASE_RETURNED = "RETURNED"

# terminal failure states a settlement webhook must not overwrite
RELEASE_FINAL_FAILURES = (RELEASE_FAILED, RELEASE_RETURNED)


_RELEASE_SELECT = """
SELECT
  r.payment_release_id,
  r.user_id,
  r.total_net_amount,
  r.status,
  r.payment_method_id,
  r.payee_id,
  r.external_transaction_id,
  r.metadata,
  r.release_date,
  COALESCE(
    ARRAY(
      SELECT a.payment_id
      FROM payment_release_associations a
      WHERE a.payment_release_id = r.payment_release_id
      ORDER BY a.payment_id
    ),
    '{}'
  ) AS payment_ids
FROM payment_releases r
"""


def _release_from_row(row: dict[str, Any]) -> PaymentRelease:
    return PaymentRelease(
        id=row["payment_release_id"],
        user_id=row["user_id"],
        total_net_amount=Decimal(row["total_net_amount"] or 0),
        status=row["status"],
        payment_method_id=row.get("payment_method_id"),
        payee_id=row.get("payee_id"),
        external_transaction_id=row.get("external_transaction_id"),
        metadata=row.get("metadata") or {},
        release_date=row["release_date"],
        payment_ids=tuple(row.get("payment_ids") or ()),
    )


class ReleaseRepository:
    def __init__(self, conn):
        self.conn = conn

    def get(self, release_id: UUID, *, for_update: bool = False) -> Optional[PaymentRelease]:
        lock = "FOR UPDATE OF r" if for_update else ""
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                {_RELEASE_SELECT}
                WHERE r.payment_release_id = %s
                {lock}
                """,
                (release_id,),
            )
            row = cur.fetchone()
            return _release_from_row(row) if row else None

    def latest_pending_for_winning(self, winning_id: UUID) -> Optional[PaymentRelease]:
        """
        Most recent release still in flight at the provider for any of the
        winning's payments.
        """
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                {_RELEASE_SELECT}
                WHERE r.status = %s
                  AND EXISTS (
                    SELECT 1
                    FROM payment_release_associations a
                    INNER JOIN payment p ON p.payment_id = a.payment_id
                    WHERE a.payment_release_id = r.payment_release_id
                      AND p.winnings_id = %s
                  )
                ORDER BY r.release_date DESC
                LIMIT 1
                """,
                (RELEASE_PROCESSING, winning_id),
            )
            row = cur.fetchone()
            return _release_from_row(row) if row else None

    def list_for_winning(self, winning_id: UUID) -> list[PaymentRelease]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                {_RELEASE_SELECT}
                WHERE EXISTS (
                    SELECT 1
                    FROM payment_release_associations a
                    INNER JOIN payment p ON p.payment_id = a.payment_id
                    WHERE a.payment_release_id = r.payment_release_id
                      AND p.winnings_id = %s
                  )
                ORDER BY r.release_date DESC
                """,
                (winning_id,),
            )
            return [_release_from_row(r) for r in cur.fetchall()]

    def winning_ids_for_release(self, release_id: UUID) -> list[UUID]:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                SELECT DISTINCT p.winnings_id
                FROM payment_release_associations a
                INNER JOIN payment p ON p.payment_id = a.payment_id
                WHERE a.payment_release_id = %s
                """,
                (release_id,),
            )
            return [row[0] for row in cur.fetchall()]

    def payment_ids_for_release(self, release_id: UUID, winning_ids: Sequence[UUID]) -> list[UUID]:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                SELECT a.payment_id
                FROM payment_release_associations a
                INNER JOIN payment p ON p.payment_id = a.payment_id
                WHERE a.payment_release_id = %s
                  AND p.winnings_id = ANY(%s::uuid[])
                ORDER BY a.payment_id
                """,
                (release_id, [str(w) for w in winning_ids]),
            )
            return [row[0] for row in cur.fetchall()]

    def create(
        self,
        *,
        user_id: str,
        total_net_amount: Decimal,
        payment_ids: Sequence[UUID],
        payment_method_id: UUID | None,
        payee_id: str | None,
        metadata: dict[str, Any] | None = None,
        status: str = RELEASE_PROCESSING,
    ) -> PaymentRelease:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                INSERT INTO payment_releases (
                  user_id, total_net_amount, status,
                  payment_method_id, payee_id, metadata
                )
                VALUES (%s, %s, %s, %s, %s, %s::jsonb)
                RETURNING payment_release_id, user_id, total_net_amount, status,
                          payment_method_id, payee_id, external_transaction_id,
                          metadata, release_date
                """,
                (user_id, total_net_amount, status, payment_method_id, payee_id, Json(metadata or {})),
            )
            row = cur.fetchone()

            for payment_id in payment_ids:
                cur.execute(
                    """
                    INSERT INTO payment_release_associations (payment_release_id, payment_id)
                    VALUES (%s, %s)
                    """,
                    (row["payment_release_id"], payment_id),
                )

        row = dict(row)
        row["payment_ids"] = list(payment_ids)
        return _release_from_row(row)

    def set_external_transaction_id(self, release_id: UUID, external_transaction_id: str) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE payment_releases
                SET external_transaction_id = %s, updated_at = now()
                WHERE payment_release_id = %s
                """,
                (external_transaction_id, release_id),
            )

    def update_status(self, release_id: UUID, status: str, *, metadata: dict[str, Any] | None = None) -> int:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE payment_releases
                SET
                  status = %s,
                  metadata = COALESCE(metadata, '{}'::jsonb) || %s::jsonb,
                  updated_at = now()
                WHERE payment_release_id = %s
                """,
                (status, Json(metadata or {}), release_id),
            )
            return cur.rowcount

    def mark_failed(self, release_id: UUID) -> int:
        return self.update_status(release_id, RELEASE_FAILED)
