from datetime import datetime

from psycopg.rows import dict_row

from doclink.database.connection import get_connection
from doclink.database.models import SessionRecord


class SessionRepository:
    """Database operations for the transport_sessions table."""

    def mark_connected(self, user_id: str, account_ref: str, connected_at: datetime) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO transport_sessions (user_id, account_ref, connected, connected_at)
                VALUES (%s, %s, TRUE, %s)
                ON CONFLICT (user_id) DO UPDATE SET
                    account_ref = EXCLUDED.account_ref,
                    connected = TRUE,
                    connected_at = EXCLUDED.connected_at,
                    updated_at = NOW()
                """,
                (user_id, account_ref, connected_at),
            )
            conn.commit()

    def mark_disconnected(self, user_id: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE transport_sessions
                SET connected = FALSE, disconnected_at = NOW(), updated_at = NOW()
                WHERE user_id = %s
                """,
                (user_id,),
            )
            conn.commit()

    def find_active(self) -> list[SessionRecord]:
        """Sessions that were connected when the process last ran."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT user_id, account_ref, connected, connected_at, disconnected_at
                    FROM transport_sessions
                    WHERE connected = TRUE
                    ORDER BY connected_at DESC
                    """
                )
                rows = cur.fetchall()
        return [SessionRecord(**row) for row in rows]

    def find_by_user(self, user_id: str) -> SessionRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT user_id, account_ref, connected, connected_at, disconnected_at
                    FROM transport_sessions WHERE user_id = %s
                    """,
                    (user_id,),
                )
                row = cur.fetchone()
        return SessionRecord(**row) if row is not None else None
