import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

import psycopg

from doclink.config.settings import Settings
from doclink.database.models import StageMetricRecord
from doclink.database.repositories.document_repository import DocumentRepository
from doclink.database.repositories.metrics_repository import PROCESSING_TIME, MetricsRepository
from doclink.logging.logger import Log
from doclink.metrics.models import MetricsSummary, ProcessingTimeEntry


class MetricsRecorder:
    """Writes stage, latency and detection metrics, and summarizes them.

    Metrics are observational: a failed write is logged and dropped so it
    never changes the outcome of the job being measured.
    """

    def __init__(
        self,
        metrics_repo: MetricsRepository,
        doc_repo: DocumentRepository,
        settings: Settings,
    ) -> None:
        self._metrics_repo = metrics_repo
        self._doc_repo = doc_repo
        self._settings = settings

    @contextmanager
    def time_stage(
        self,
        stage: str,
        *,
        document_id: int,
        job_id: int | None,
        attempt: int,
    ) -> Iterator[None]:
        """Record one stage attempt around the wrapped block. Errors are re-raised."""
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()
        error: str | None = None
        try:
            yield
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            raise
        finally:
            duration_ms = int((time.monotonic() - start) * 1000)
            self.record_stage(
                StageMetricRecord(
                    document_id=document_id,
                    job_id=job_id,
                    attempt=attempt,
                    stage=stage,
                    started_at=started_at,
                    completed_at=datetime.now(timezone.utc),
                    duration_ms=duration_ms,
                    success=error is None,
                    error_message=error,
                )
            )

    def record_stage(self, metric: StageMetricRecord) -> None:
        try:
            self._metrics_repo.insert_stage_metric(metric)
        except psycopg.Error as exc:
            Log.warning(
                f"Failed to record stage metric: {exc}",
                document_id=metric.document_id,
                stage=metric.stage,
            )

    def record_processing_time(
        self,
        document_id: int,
        duration_ms: int,
        *,
        success: bool,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        within_target = duration_ms <= self._settings.target_processing_time_ms
        try:
            self._metrics_repo.insert_system_metric(
                PROCESSING_TIME,
                duration_ms,
                document_id=document_id,
                success=success,
                within_target=within_target,
                metadata=metadata or {},
            )
        except psycopg.Error as exc:
            Log.warning(f"Failed to record processing time: {exc}", document_id=document_id)
            return
        if not within_target:
            Log.warning(
                f"Document {document_id} took {duration_ms}ms, "
                f"target is {self._settings.target_processing_time_ms}ms"
            )

    def record_detection(
        self,
        user_id: str,
        success: bool,
        notes: str | None = None,
        *,
        message_id: str | None = None,
    ) -> bool:
        """Record a detection. Returns False if the message was already detected.

        A failed write counts as a first detection.
        """
        try:
            return self._metrics_repo.insert_detection(user_id, success, notes, message_id)
        except psycopg.Error as exc:
            Log.warning(f"Failed to record detection: {exc}", user_id=user_id)
            return True

    def summary(self, recent_limit: int = 10) -> MetricsSummary:
        target_ms = self._settings.target_processing_time_ms
        timing = self._metrics_repo.processing_time_aggregate(target_ms)
        detections = self._metrics_repo.detection_aggregate()
        recent = [
            ProcessingTimeEntry(
                document_id=row["document_id"],
                duration_ms=float(row["metric_value"]),
                success=row["success"],
                within_target=row["within_target"],
                recorded_at=row["recorded_at"],
            )
            for row in self._metrics_repo.recent_processing_times(recent_limit)
        ]
        return MetricsSummary(
            target_time_ms=target_ms,
            avg_time_ms=round(float(timing.get("avg_ms") or 0), 2),
            min_time_ms=float(timing.get("min_ms") or 0),
            max_time_ms=float(timing.get("max_ms") or 0),
            total_processed=int(timing.get("total") or 0),
            within_target_count=int(timing.get("within_target") or 0),
            total_detections=int(detections.get("total") or 0),
            successful_detections=int(detections.get("successful") or 0),
            min_detection_accuracy=self._settings.min_detection_accuracy,
            document_counts=self._doc_repo.count_by_status(),
            recent=tuple(recent),
        )
