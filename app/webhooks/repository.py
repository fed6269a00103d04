#app/webhooks/repository.py
from __future__ import annotations

from typing import Any

from psycopg2.extensions import connection as PGConn
from psycopg2.extras import Json, RealDictCursor


EVENT_LOGGED = "logged"
EVENT_PROCESSED = "processed"
EVENT_ERROR = "error"


class WebhookEventRepository:
    """
    provider_webhook_log: one row per delivery id, written before dispatch.
    NOTE: caller commits.
    """

    def __init__(self, conn: PGConn):
        self.conn = conn

    def exists(self, event_id: str) -> bool:
        with self.conn.cursor() as cur:
            cur.execute("SELECT 1 FROM provider_webhook_log WHERE event_id = %s", (event_id,))
            return cur.fetchone() is not None

    def claim(
        self,
        *,
        event_id: str,
        payload: dict[str, Any] | None,
        event_time: str | None,
        model: str,
        action: str,
    ) -> bool:
        """
        Insert the delivery in `logged` state.
        Returns False when another delivery with the same id got there first.
        """
        sql = """
        INSERT INTO provider_webhook_log (
          event_id, event_time, event_payload, event_model, event_action, status, created_by
        )
        VALUES (
          %(event_id)s, %(event_time)s, %(payload)s, %(model)s, %(action)s, %(status)s, 'system'
        )
        ON CONFLICT (event_id) DO NOTHING
        RETURNING event_id
        """
        params = {
            "event_id": event_id,
            "event_time": event_time,
            "payload": Json(payload or {}),
            "model": model,
            "action": action,
            "status": EVENT_LOGGED,
        }
        with self.conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.fetchone() is not None

    def set_state(self, event_id: str, status: str, *, error_message: str | None = None) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE provider_webhook_log
                SET status = %s, error_message = %s, updated_at = now()
                WHERE event_id = %s
                """,
                (status, error_message, event_id),
            )

    def get(self, event_id: str) -> dict[str, Any] | None:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                SELECT event_id, event_time, event_payload, event_model, event_action,
                       status, error_message, created_at, updated_at
                FROM provider_webhook_log
                WHERE event_id = %s
                """,
                (event_id,),
            )
            row = cur.fetchone()
            return dict(row) if row else None

    def list_events(self, *, status: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        limit = max(1, min(int(limit or 50), 200))
        where_sql = "WHERE status = %(status)s" if status else ""
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                SELECT event_id, event_time, event_model, event_action,
                       status, error_message, created_at, updated_at
                FROM provider_webhook_log
                {where_sql}
                ORDER BY created_at DESC
                LIMIT %(limit)s
                """,
                {"status": status, "limit": limit},
            )
            return [dict(r) for r in cur.fetchall()]
