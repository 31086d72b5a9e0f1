import uuid
from enum import Enum

from doclink.config.settings import Settings
from doclink.connection.exceptions import NotConnectedError, TransportConnectionError
from doclink.connection.manager import ConnectionManager
from doclink.connection.transport import InboundMessage
from doclink.database.models import DocumentRecord, DocumentStatus
from doclink.database.repositories.document_repository import DocumentRepository
from doclink.jobs.models import ProcessingJob, SourceRef
from doclink.jobs.queue import JobQueue
from doclink.logging.logger import Log
from doclink.metrics.recorder import MetricsRecorder
from doclink.notify import formatter
from doclink.notify.notifier import Notifier
from doclink.storage.file_store import FileStore

DEFAULT_MIME_TYPE = "application/octet-stream"


class RouteOutcome(str, Enum):
    IGNORED = "ignored"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"
    ACCEPTED = "accepted"
    FAILED = "failed"


def normalize_mime_type(mime_type: str | None) -> str:
    if not mime_type:
        return DEFAULT_MIME_TYPE
    return mime_type.split(";", 1)[0].strip().lower() or DEFAULT_MIME_TYPE


class MessageRouter:
    """Turns inbound transport messages into stored documents and queued jobs."""

    def __init__(
        self,
        *,
        connections: ConnectionManager,
        notifier: Notifier,
        file_store: FileStore,
        doc_repo: DocumentRepository,
        job_queue: JobQueue,
        metrics: MetricsRecorder,
        settings: Settings,
    ) -> None:
        self._connections = connections
        self._notifier = notifier
        self._file_store = file_store
        self._doc_repo = doc_repo
        self._job_queue = job_queue
        self._metrics = metrics
        self._settings = settings
        self._supported = {normalize_mime_type(m) for m in settings.supported_mime_types}

    def handle(self, user_id: str, message: InboundMessage) -> RouteOutcome:
        if message.from_me or message.is_broadcast or not message.is_document:
            return RouteOutcome.IGNORED

        filename = message.filename or f"document-{message.message_id}"
        mime_type = normalize_mime_type(message.mime_type)
        Log.info(
            f"Document detected: {filename} ({mime_type})",
            user_id=user_id,
            message_id=message.message_id,
        )

        if mime_type not in self._supported:
            return self._reject(
                user_id,
                message,
                f"unsupported mime type {mime_type}",
                formatter.format_unsupported(filename, mime_type, sorted(self._supported)),
            )

        if message.size_bytes is not None and message.size_bytes > self._settings.max_file_size_bytes:
            return self._reject_oversized(user_id, message, filename, message.size_bytes)

        existing = self._doc_repo.find_by_source(user_id, message.message_id)
        if existing is not None:
            return self._handle_redelivery(existing, message)

        try:
            data = self._connections.download_media(user_id, message)
        except (NotConnectedError, TransportConnectionError) as exc:
            Log.error(f"Download failed for {filename}: {exc}", user_id=user_id)
            return self._reject(
                user_id,
                message,
                f"download failed: {exc}",
                formatter.format_failure(filename),
                outcome=RouteOutcome.FAILED,
            )

        if len(data) > self._settings.max_file_size_bytes:
            return self._reject_oversized(user_id, message, filename, len(data))

        self._metrics.record_detection(user_id, True, message_id=message.message_id)
        return self._accept(user_id, message, filename, mime_type, data)

    def _accept(
        self,
        user_id: str,
        message: InboundMessage,
        filename: str,
        mime_type: str,
        data: bytes,
    ) -> RouteOutcome:
        document_uuid = uuid.uuid4().hex
        location = self._file_store.save(user_id, document_uuid, filename, data)
        document = self._doc_repo.create(
            uuid=document_uuid,
            user_id=user_id,
            filename=filename,
            mime_type=mime_type,
            size_bytes=len(data),
            payload_location=location,
            transport_message_id=message.message_id,
            peer_ref=message.peer_ref,
        )
        if document is None:
            # lost a race with a concurrent delivery of the same message
            self._file_store.delete(location)
            Log.info("Duplicate delivery, document already stored", user_id=user_id)
            return RouteOutcome.DUPLICATE

        self._job_queue.enqueue(self._job_for(document))
        self._notifier.try_send(
            user_id, message.peer_ref, formatter.format_acknowledgment(filename)
        )
        Log.info(
            f"Document {document.id} accepted ({len(data)} bytes)",
            user_id=user_id,
        )
        return RouteOutcome.ACCEPTED

    def _handle_redelivery(self, document: DocumentRecord, message: InboundMessage) -> RouteOutcome:
        Log.info(
            f"Message already routed to document {document.id} ({document.status.value})",
            user_id=document.user_id,
            message_id=message.message_id,
        )
        if document.status is DocumentStatus.QUEUED:
            self._job_queue.enqueue(self._job_for(document))
        return RouteOutcome.DUPLICATE

    def _reject_oversized(
        self,
        user_id: str,
        message: InboundMessage,
        filename: str,
        size_bytes: int,
    ) -> RouteOutcome:
        limit = self._settings.max_file_size_bytes
        return self._reject(
            user_id,
            message,
            f"file too large: {size_bytes} bytes",
            formatter.format_oversized(filename, size_bytes, limit),
        )

    def _reject(
        self,
        user_id: str,
        message: InboundMessage,
        reason: str,
        notice: str,
        outcome: RouteOutcome = RouteOutcome.REJECTED,
    ) -> RouteOutcome:
        """Record the failed detection and tell the sender, once per message."""
        first = self._metrics.record_detection(
            user_id, False, reason, message_id=message.message_id
        )
        if not first:
            Log.info(
                f"Message already rejected ({reason}), not notifying again",
                user_id=user_id,
                message_id=message.message_id,
            )
            return RouteOutcome.DUPLICATE
        self._notifier.try_send(user_id, message.peer_ref, notice)
        return outcome

    @staticmethod
    def _job_for(document: DocumentRecord) -> ProcessingJob:
        return ProcessingJob(
            document_id=document.id,
            user_id=document.user_id,
            filename=document.filename,
            mime_type=document.mime_type,
            payload_location=document.payload_location,
            source_ref=SourceRef(
                transport_message_id=document.transport_message_id,
                peer_ref=document.peer_ref,
            ),
        )
