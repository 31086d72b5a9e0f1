from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class DocumentStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.COMPLETED, DocumentStatus.FAILED)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class JobRecord:
    """Represents a row from the processing_jobs table."""

    id: int
    document_id: int
    user_id: str
    payload: dict[str, Any]
    status: str
    attempts: int
    max_attempts: int
    priority: int = 1
    timeout_ms: int = 90_000
    error_message: str | None = None
    available_at: datetime | None = None
    locked_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def attempt_number(self) -> int:
        """1-based number of the attempt currently being made."""
        return self.attempts + 1


@dataclass
class DocumentRecord:
    """Represents a row from the documents table."""

    id: int
    uuid: str
    user_id: str
    filename: str
    mime_type: str
    size_bytes: int
    payload_location: str
    transport_message_id: str
    peer_ref: str
    status: DocumentStatus
    error_message: str | None = None
    uploaded_at: datetime | None = None
    processed_at: datetime | None = None
    processing_duration_ms: int | None = None


@dataclass
class SessionRecord:
    """Represents a row from the transport_sessions table."""

    user_id: str
    account_ref: str | None
    connected: bool
    connected_at: datetime | None = None
    disconnected_at: datetime | None = None


@dataclass
class StageMetricRecord:
    """Represents a row from the stage_metrics table."""

    document_id: int
    job_id: int | None
    attempt: int
    stage: str
    started_at: datetime
    completed_at: datetime
    duration_ms: int
    success: bool
    error_message: str | None = None
