# app/eligibility/repository.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from psycopg2.extras import RealDictCursor


TAX_FORM_ACTIVE = "ACTIVE"
TAX_FORM_INACTIVE = "INACTIVE"

PAYMENT_METHOD_CONNECTED = "CONNECTED"
PAYMENT_METHOD_INACTIVE = "INACTIVE"

IDENTITY_VERIFICATION_ACTIVE = "ACTIVE"
IDENTITY_VERIFICATION_INACTIVE = "INACTIVE"

# payment_method.payment_method_type for payouts routed through the provider
PROVIDER_PAYMENT_METHOD_TYPE = "PROVIDER_PAYOUT"


class TaxFormRepository:
    def __init__(self, conn):
        self.conn = conn

    def has_active_tax_form(self, user_id: str) -> bool:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                SELECT 1
                FROM user_tax_form_associations
                WHERE user_id = %s AND tax_form_status = %s
                LIMIT 1
                """,
                (user_id, TAX_FORM_ACTIVE),
            )
            return cur.fetchone() is not None

    def users_with_active_tax_form(self, user_ids: list[str]) -> set[str]:
        if not user_ids:
            return set()
        with self.conn.cursor() as cur:
            cur.execute(
                """
                SELECT DISTINCT user_id
                FROM user_tax_form_associations
                WHERE user_id = ANY(%s) AND tax_form_status = %s
                """,
                (list(user_ids), TAX_FORM_ACTIVE),
            )
            return {row[0] for row in cur.fetchall()}

    def get(self, user_id: str, tax_form_id: str) -> Optional[dict[str, Any]]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                SELECT id, user_id, tax_form_id, tax_form_status, date_filed
                FROM user_tax_form_associations
                WHERE user_id = %s AND tax_form_id = %s
                """,
                (user_id, tax_form_id),
            )
            row = cur.fetchone()
            return dict(row) if row else None

    def upsert(self, *, user_id: str, tax_form_id: str, status: str, date_filed: datetime | None) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO user_tax_form_associations (user_id, tax_form_id, tax_form_status, date_filed)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (user_id, tax_form_id) DO UPDATE
                SET tax_form_status = EXCLUDED.tax_form_status,
                    date_filed = COALESCE(EXCLUDED.date_filed, user_tax_form_associations.date_filed),
                    updated_at = now()
                """,
                (user_id, tax_form_id, status, date_filed),
            )

    def delete(self, user_id: str, tax_form_id: str) -> int:
        with self.conn.cursor() as cur:
            cur.execute(
                "DELETE FROM user_tax_form_associations WHERE user_id = %s AND tax_form_id = %s",
                (user_id, tax_form_id),
            )
            return cur.rowcount


class PaymentMethodRepository:
    def __init__(self, conn):
        self.conn = conn

    def has_verified_payment_method(self, user_id: str) -> bool:
        return self.get_connected(user_id) is not None

    def users_with_verified_payment_method(self, user_ids: list[str]) -> set[str]:
        if not user_ids:
            return set()
        with self.conn.cursor() as cur:
            cur.execute(
                """
                SELECT DISTINCT user_id
                FROM user_payment_methods
                WHERE user_id = ANY(%s) AND status = %s
                """,
                (list(user_ids), PAYMENT_METHOD_CONNECTED),
            )
            return {row[0] for row in cur.fetchall()}

    def get_connected(self, user_id: str) -> Optional[dict[str, Any]]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                SELECT upm.id, upm.user_id, upm.payment_method_id, upm.status,
                       pm.payment_method_type, pm.name
                FROM user_payment_methods upm
                INNER JOIN payment_method pm ON pm.payment_method_id = upm.payment_method_id
                WHERE upm.user_id = %s AND upm.status = %s
                ORDER BY upm.created_at DESC
                LIMIT 1
                """,
                (user_id, PAYMENT_METHOD_CONNECTED),
            )
            row = cur.fetchone()
            return dict(row) if row else None

    def get_or_create_for_provider(self, user_id: str) -> UUID:
        """
        The user's association row for provider payouts. Created INACTIVE
        the first time a recipient shows up for the user.
        """
        with self.conn.cursor() as cur:
            cur.execute(
                """
                SELECT upm.id
                FROM user_payment_methods upm
                INNER JOIN payment_method pm ON pm.payment_method_id = upm.payment_method_id
                WHERE upm.user_id = %s AND pm.payment_method_type = %s
                LIMIT 1
                """,
                (user_id, PROVIDER_PAYMENT_METHOD_TYPE),
            )
            row = cur.fetchone()
            if row:
                return row[0]

            cur.execute(
                """
                INSERT INTO user_payment_methods (user_id, payment_method_id, status)
                SELECT %s, pm.payment_method_id, %s
                FROM payment_method pm
                WHERE pm.payment_method_type = %s
                RETURNING id
                """,
                (user_id, PAYMENT_METHOD_INACTIVE, PROVIDER_PAYMENT_METHOD_TYPE),
            )
            row = cur.fetchone()
            if not row:
                raise RuntimeError("payment_method row for provider payouts is missing")
            return row[0]

    def set_status(self, user_payment_method_id: UUID, status: str) -> int:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE user_payment_methods
                SET status = %s, updated_at = now()
                WHERE id = %s
                """,
                (status, user_payment_method_id),
            )
            return cur.rowcount


class IdentityVerificationRepository:
    """One verification row per user, overwritten by every provider update."""

    def __init__(self, conn):
        self.conn = conn

    def has_completed(self, user_id: str) -> bool:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                SELECT 1
                FROM user_identity_verification_associations
                WHERE user_id = %s AND verification_status = %s
                LIMIT 1
                """,
                (user_id, IDENTITY_VERIFICATION_ACTIVE),
            )
            return cur.fetchone() is not None

    def get(self, user_id: str) -> Optional[dict[str, Any]]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                SELECT id, user_id, verification_id, verification_status, date_filed
                FROM user_identity_verification_associations
                WHERE user_id = %s
                """,
                (user_id,),
            )
            row = cur.fetchone()
            return dict(row) if row else None

    def upsert(self, *, user_id: str, verification_id: str, status: str, date_filed: datetime | None) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO user_identity_verification_associations (
                  user_id, verification_id, verification_status, date_filed
                )
                VALUES (%s, %s, %s, COALESCE(%s, now()))
                ON CONFLICT (user_id) DO UPDATE
                SET verification_id = EXCLUDED.verification_id,
                    verification_status = EXCLUDED.verification_status,
                    date_filed = EXCLUDED.date_filed,
                    updated_at = now()
                """,
                (user_id, verification_id, status, date_filed),
            )
