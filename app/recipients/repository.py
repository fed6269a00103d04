# app/recipients/repository.py
from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from psycopg2.extras import RealDictCursor


class RecipientRepository:
    """
    Provider-side identity of a payee: the recipient row plus, at most, one
    primary payout account.
    """

    def __init__(self, conn):
        self.conn = conn

    def get_by_user_id(self, user_id: str) -> Optional[dict[str, Any]]:
        return self._get_one("r.user_id = %s", user_id)

    def get_by_recipient_id(self, recipient_id: str) -> Optional[dict[str, Any]]:
        return self._get_one("r.recipient_id = %s", recipient_id)

    def _get_one(self, predicate: str, value: Any) -> Optional[dict[str, Any]]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                SELECT
                  r.id,
                  r.user_id,
                  r.recipient_id,
                  r.user_payment_method_id,
                  pm.id AS account_row_id,
                  pm.recipient_account_id
                FROM provider_recipient r
                LEFT JOIN provider_recipient_payment_method pm
                  ON pm.provider_recipient_id = r.id
                WHERE {predicate}
                LIMIT 1
                """,
                (value,),
            )
            row = cur.fetchone()
            return dict(row) if row else None

    def create(self, *, user_id: str, recipient_id: str, user_payment_method_id: UUID) -> dict[str, Any]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                INSERT INTO provider_recipient (user_id, recipient_id, user_payment_method_id)
                VALUES (%s, %s, %s)
                RETURNING id, user_id, recipient_id, user_payment_method_id
                """,
                (user_id, recipient_id, user_payment_method_id),
            )
            row = dict(cur.fetchone())
            row["account_row_id"] = None
            row["recipient_account_id"] = None
            return row

    # ==========================================================
    # Primary payout account
    # ==========================================================

    def find_account(self, recipient_account_id: str) -> Optional[dict[str, Any]]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                SELECT
                  pm.id AS account_row_id,
                  pm.recipient_account_id,
                  r.id,
                  r.user_id,
                  r.recipient_id,
                  r.user_payment_method_id
                FROM provider_recipient_payment_method pm
                INNER JOIN provider_recipient r ON r.id = pm.provider_recipient_id
                WHERE pm.recipient_account_id = %s
                LIMIT 1
                """,
                (recipient_account_id,),
            )
            row = cur.fetchone()
            return dict(row) if row else None

    def create_account(self, recipient_row_id: UUID, recipient_account_id: str) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO provider_recipient_payment_method (provider_recipient_id, recipient_account_id)
                VALUES (%s, %s)
                """,
                (recipient_row_id, recipient_account_id),
            )

    def update_account(self, account_row_id: UUID, recipient_account_id: str) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE provider_recipient_payment_method
                SET recipient_account_id = %s, updated_at = now()
                WHERE id = %s
                """,
                (recipient_account_id, account_row_id),
            )

    def delete_account(self, account_row_id: UUID) -> int:
        with self.conn.cursor() as cur:
            cur.execute("DELETE FROM provider_recipient_payment_method WHERE id = %s", (account_row_id,))
            return cur.rowcount

    def has_account(self, recipient_row_id: UUID) -> bool:
        with self.conn.cursor() as cur:
            cur.execute(
                "SELECT 1 FROM provider_recipient_payment_method WHERE provider_recipient_id = %s LIMIT 1",
                (recipient_row_id,),
            )
            return cur.fetchone() is not None
