from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from doclink.database.connection import get_connection
from doclink.database.models import StageMetricRecord

PROCESSING_TIME = "processing_time"


class MetricsRepository:
    """Database operations for stage_metrics, system_metrics and document_detections."""

    def insert_stage_metric(self, metric: StageMetricRecord) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO stage_metrics
                    (document_id, job_id, attempt, stage, started_at, completed_at,
                     duration_ms, success, error_message)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    metric.document_id,
                    metric.job_id,
                    metric.attempt,
                    metric.stage,
                    metric.started_at,
                    metric.completed_at,
                    metric.duration_ms,
                    metric.success,
                    metric.error_message,
                ),
            )
            conn.commit()

    def insert_system_metric(
        self,
        metric_type: str,
        value: float,
        *,
        document_id: int | None,
        success: bool,
        within_target: bool | None,
        metadata: dict[str, Any],
    ) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO system_metrics
                    (metric_type, metric_value, document_id, success, within_target, metadata)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (metric_type, value, document_id, success, within_target, Jsonb(metadata)),
            )
            conn.commit()

    def insert_detection(
        self,
        user_id: str,
        success: bool,
        notes: str | None,
        message_id: str | None = None,
    ) -> bool:
        """Record a detection outcome, one row per inbound message.

        A later outcome for the same message replaces the earlier one.
        Returns True if this is the first detection of the message.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO document_detections
                        (user_id, transport_message_id, success, notes)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (user_id, transport_message_id) DO UPDATE
                        SET success = EXCLUDED.success,
                            notes = EXCLUDED.notes,
                            detected_at = NOW()
                    RETURNING (xmax = 0) AS inserted
                    """,
                    (user_id, message_id, success, notes),
                )
                row = cur.fetchone()
            conn.commit()
        return bool(row[0]) if row is not None else True

    def processing_time_aggregate(self, target_ms: int) -> dict[str, Any]:
        """Aggregate successful processing_time metrics against the latency target."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT
                        AVG(metric_value) AS avg_ms,
                        MIN(metric_value) AS min_ms,
                        MAX(metric_value) AS max_ms,
                        COUNT(*) AS total,
                        COUNT(*) FILTER (WHERE metric_value <= %s) AS within_target
                    FROM system_metrics
                    WHERE metric_type = %s AND success = TRUE
                    """,
                    (target_ms, PROCESSING_TIME),
                )
                row = cur.fetchone()
        return dict(row) if row is not None else {}

    def recent_processing_times(self, limit: int) -> list[dict[str, Any]]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT document_id, metric_value, success, within_target,
                           metadata, recorded_at
                    FROM system_metrics
                    WHERE metric_type = %s
                    ORDER BY recorded_at DESC, id DESC
                    LIMIT %s
                    """,
                    (PROCESSING_TIME, limit),
                )
                return list(cur.fetchall())

    def detection_aggregate(self, user_id: str | None = None) -> dict[str, Any]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT
                        COUNT(*) AS total,
                        COUNT(*) FILTER (WHERE success) AS successful
                    FROM document_detections
                    WHERE %(user_id)s::text IS NULL OR user_id = %(user_id)s::text
                    """,
                    {"user_id": user_id},
                )
                row = cur.fetchone()
        return dict(row) if row is not None else {}

    def find_stage_metrics(self, document_id: int) -> list[StageMetricRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT document_id, job_id, attempt, stage, started_at, completed_at,
                           duration_ms, success, error_message
                    FROM stage_metrics
                    WHERE document_id = %s
                    ORDER BY id
                    """,
                    (document_id,),
                )
                rows = cur.fetchall()
        return [StageMetricRecord(**row) for row in rows]
