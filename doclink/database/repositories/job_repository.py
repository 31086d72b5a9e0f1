from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from doclink.database.connection import get_connection
from doclink.database.models import JobRecord, JobStatus

STALLED_ERROR = "Job stalled: worker stopped before finishing the attempt"

_JOB_COLUMNS = """
    id, document_id, user_id, payload, status, attempts, max_attempts,
    priority, timeout_ms, error_message, available_at, locked_at,
    created_at, updated_at
"""


def _to_record(row: dict[str, Any]) -> JobRecord:
    return JobRecord(
        id=row["id"],
        document_id=row["document_id"],
        user_id=row["user_id"],
        payload=row["payload"],
        status=row["status"],
        attempts=row["attempts"],
        max_attempts=row["max_attempts"],
        priority=row["priority"],
        timeout_ms=row["timeout_ms"],
        error_message=row["error_message"],
        available_at=row["available_at"],
        locked_at=row["locked_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class JobRepository:
    """Database operations for the processing_jobs table."""

    def insert(
        self,
        document_id: int,
        user_id: str,
        payload: dict[str, Any],
        *,
        priority: int,
        max_attempts: int,
        timeout_ms: int,
    ) -> int | None:
        """Insert a pending job. Returns None if the document already has one."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO processing_jobs
                        (document_id, user_id, payload, priority, max_attempts, timeout_ms)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (document_id) DO NOTHING
                    RETURNING id
                    """,
                    (document_id, user_id, Jsonb(payload), priority, max_attempts, timeout_ms),
                )
                row = cur.fetchone()
            conn.commit()
        return row[0] if row is not None else None

    def claim_next_job(self, conn: psycopg.Connection[Any]) -> JobRecord | None:
        """Claim the next available job using SELECT FOR UPDATE SKIP LOCKED."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                SELECT {_JOB_COLUMNS}
                FROM processing_jobs
                WHERE status = 'pending'
                  AND available_at <= NOW()
                  AND attempts < max_attempts
                ORDER BY priority, available_at, created_at
                LIMIT 1
                FOR UPDATE SKIP LOCKED
                """
            )
            row = cur.fetchone()

        if row is None:
            conn.commit()
            return None

        conn.execute(
            """
            UPDATE processing_jobs
            SET status = 'processing', locked_at = NOW(), updated_at = NOW()
            WHERE id = %s
            """,
            (row["id"],),
        )
        conn.commit()

        record = _to_record(row)
        record.status = JobStatus.PROCESSING.value
        return record

    def mark_done(self, job_id: int) -> None:
        """Mark a job as done."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET status = 'done', attempts = attempts + 1, error_message = NULL,
                    locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (job_id,),
            )
            conn.commit()

    def mark_failed(self, job_id: int, error: str) -> None:
        """Mark a job as permanently failed."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET status = 'failed', attempts = attempts + 1, error_message = %s,
                    locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (error, job_id),
            )
            conn.commit()

    def schedule_retry(self, job_id: int, delay_seconds: float, error: str) -> None:
        """Count the failed attempt and return the job to pending after a delay."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET attempts = attempts + 1, status = 'pending', error_message = %s,
                    available_at = NOW() + make_interval(secs => %s),
                    locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (error, delay_seconds, job_id),
            )
            conn.commit()

    def recover_stalled(self, stall_timeout_seconds: int) -> list[JobRecord]:
        """Count the stalled attempt of jobs locked longer than the stall timeout.

        Jobs with attempts left go back to pending; the rest are marked failed.
        Returns every recovered job as updated.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE processing_jobs
                    SET attempts = attempts + 1,
                        status = CASE WHEN attempts + 1 >= max_attempts
                                      THEN %(failed)s ELSE %(pending)s END,
                        error_message = %(error)s,
                        locked_at = NULL, updated_at = NOW()
                    WHERE status = %(processing)s
                      AND locked_at < NOW() - make_interval(secs => %(timeout)s)
                    RETURNING {_JOB_COLUMNS}
                    """,
                    {
                        "failed": JobStatus.FAILED.value,
                        "pending": JobStatus.PENDING.value,
                        "processing": JobStatus.PROCESSING.value,
                        "error": STALLED_ERROR,
                        "timeout": stall_timeout_seconds,
                    },
                )
                rows = cur.fetchall()
            conn.commit()
        return [_to_record(row) for row in rows]

    def prune(self, retain_completed: int, retain_failed: int) -> int:
        """Delete the oldest finished jobs beyond the retention limits."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    DELETE FROM processing_jobs
                    WHERE id IN (
                        SELECT id FROM (
                            SELECT id, status, ROW_NUMBER() OVER (
                                PARTITION BY status ORDER BY updated_at DESC, id DESC
                            ) AS rn
                            FROM processing_jobs
                            WHERE status IN ('done', 'failed')
                        ) ranked
                        WHERE (status = 'done' AND rn > %s)
                           OR (status = 'failed' AND rn > %s)
                    )
                    """,
                    (retain_completed, retain_failed),
                )
                count = cur.rowcount
            conn.commit()
        return count

    def count_by_state(self) -> dict[str, int]:
        """Counts keyed by waiting/delayed/active/completed/failed."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT
                        COUNT(*) FILTER (
                            WHERE status = 'pending' AND available_at <= NOW()
                        ) AS waiting,
                        COUNT(*) FILTER (
                            WHERE status = 'pending' AND available_at > NOW()
                        ) AS delayed,
                        COUNT(*) FILTER (WHERE status = 'processing') AS active,
                        COUNT(*) FILTER (WHERE status = 'done') AS completed,
                        COUNT(*) FILTER (WHERE status = 'failed') AS failed
                    FROM processing_jobs
                    """
                )
                row = cur.fetchone()
        if row is None:
            return {"waiting": 0, "delayed": 0, "active": 0, "completed": 0, "failed": 0}
        return {key: int(value or 0) for key, value in row.items()}

    def find_by_id(self, job_id: int) -> JobRecord | None:
        """Find a job by ID."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_JOB_COLUMNS} FROM processing_jobs WHERE id = %s",
                    (job_id,),
                )
                row = cur.fetchone()
        return _to_record(row) if row is not None else None

    def find_by_document(self, document_id: int) -> JobRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_JOB_COLUMNS} FROM processing_jobs WHERE document_id = %s",
                    (document_id,),
                )
                row = cur.fetchone()
        return _to_record(row) if row is not None else None
