from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class ProcessingTimeEntry:
    document_id: int | None
    duration_ms: float
    success: bool
    within_target: bool | None
    recorded_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "timeMs": self.duration_ms,
            "success": self.success,
            "withinTarget": self.within_target,
            "recordedAt": self.recorded_at.isoformat() if self.recorded_at else None,
        }


@dataclass(frozen=True)
class MetricsSummary:
    """Operator view of latency, detection accuracy and document outcomes."""

    target_time_ms: int
    avg_time_ms: float
    min_time_ms: float
    max_time_ms: float
    total_processed: int
    within_target_count: int
    total_detections: int
    successful_detections: int
    min_detection_accuracy: float
    document_counts: dict[str, int] = field(default_factory=dict)
    recent: tuple[ProcessingTimeEntry, ...] = ()

    @property
    def compliance_rate_percent(self) -> float:
        if self.total_processed == 0:
            return 0.0
        return round(100.0 * self.within_target_count / self.total_processed, 2)

    @property
    def accuracy_percent(self) -> float:
        if self.total_detections == 0:
            return 0.0
        return round(100.0 * self.successful_detections / self.total_detections, 2)

    @property
    def meets_accuracy_target(self) -> bool:
        if self.total_detections == 0:
            return False
        return self.successful_detections / self.total_detections >= self.min_detection_accuracy

    def to_dict(self) -> dict[str, Any]:
        return {
            "targetTimeMs": self.target_time_ms,
            "avgTimeMs": self.avg_time_ms,
            "minTimeMs": self.min_time_ms,
            "maxTimeMs": self.max_time_ms,
            "totalProcessed": self.total_processed,
            "withinTargetCount": self.within_target_count,
            "complianceRatePercent": self.compliance_rate_percent,
            "detection": {
                "totalDetections": self.total_detections,
                "successfulDetections": self.successful_detections,
                "accuracyPercent": self.accuracy_percent,
                "meetsTarget": self.meets_accuracy_target,
            },
            "documents": dict(self.document_counts),
            "recent": [entry.to_dict() for entry in self.recent],
        }
