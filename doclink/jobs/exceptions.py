class QueueError(Exception):
    """Base exception for job queue errors."""


class QueueTimeoutError(QueueError):
    """Raised when a job attempt exceeds its allotted time."""


class JobPayloadError(QueueError):
    """Raised when a queued payload does not match the ProcessingJob schema."""
