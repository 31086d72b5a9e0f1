import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path

from doclink.analysis.factory import AnalyzerFactory
from doclink.config.settings import Settings
from doclink.database.models import DocumentRecord, DocumentStatus, JobRecord
from doclink.database.repositories.document_repository import DocumentRepository
from doclink.extraction.factory import ExtractorFactory
from doclink.jobs.exceptions import QueueTimeoutError
from doclink.jobs.models import ProcessingJob
from doclink.logging.logger import Log
from doclink.metrics.recorder import MetricsRecorder
from doclink.notify import formatter
from doclink.notify.exceptions import NotifyError
from doclink.notify.notifier import Notifier
from doclink.pipeline.context import PipelineContext, PipelineStep
from doclink.pipeline.exceptions import DocumentStateError
from doclink.pipeline.steps import AnalyzeStep, ExtractTextStep, NotifyStep, PersistSummaryStep
from doclink.storage.file_store import FileStore


class Processor:
    """Runs one delivery of a processing job through the pipeline.

    Pipeline: extract -> analyze -> persist -> notify.

    A stage failure is recorded on the document and re-raised so the job
    runner can decide whether to retry. Notify failures are logged only.
    """

    def __init__(
        self,
        *,
        steps: Sequence[PipelineStep],
        notify_step: PipelineStep,
        doc_repo: DocumentRepository,
        metrics: MetricsRecorder,
        notifier: Notifier,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._steps = list(steps)
        self._notify_step = notify_step
        self._doc_repo = doc_repo
        self._metrics = metrics
        self._notifier = notifier
        self._monotonic = monotonic

    def process(self, job: JobRecord, deadline: float | None = None) -> None:
        """Process the job's document.

        Args:
            job: The claimed job.
            deadline: `time.monotonic()` value after which the attempt is abandoned.

        Raises:
            JobPayloadError: if the job payload is malformed.
            QueueTimeoutError: if the deadline passes between stages.
            Exception: whatever a stage raised.
        """
        payload = ProcessingJob.from_payload(job.payload)
        document = self._doc_repo.find_by_id(payload.document_id)
        context = PipelineContext(
            job=payload,
            job_id=job.id,
            attempt=job.attempt_number,
            document=document,
        )
        Log.info(
            f"Processing document {document.id} for job {job.id} (attempt {context.attempt})",
            user_id=payload.user_id,
        )

        if document.status is DocumentStatus.COMPLETED:
            context.summary = self._doc_repo.find_summary(document.id)
            if context.summary is None:
                raise DocumentStateError(f"Document {document.id} is completed without a summary")
            Log.info(f"Document {document.id} already completed, resending result")
            self._notify(context)
            return
        if document.status is DocumentStatus.FAILED:
            Log.warning(f"Document {document.id} already failed, nothing to do")
            return

        self._doc_repo.mark_processing(document.id)
        for step in self._steps:
            try:
                self._check_deadline(deadline, step)
                with self._metrics.time_stage(
                    step.stage.value,
                    document_id=document.id,
                    job_id=job.id,
                    attempt=context.attempt,
                ):
                    context = step.run(context)
            except Exception as exc:
                self._doc_repo.record_attempt_error(
                    document.id, f"{step.stage.value}: {exc}"
                )
                raise

        self._notify(context)
        if context.summary_created:
            self._metrics.record_processing_time(
                document.id,
                _elapsed_ms(document),
                success=True,
                metadata={"filename": payload.filename, "attempt": context.attempt},
            )
        Log.info(f"Document {document.id} processed", user_id=payload.user_id)

    def fail_document(self, job: JobRecord, error: str) -> None:
        """Terminally fail the job's document and tell the user."""
        if not self._doc_repo.mark_failed(job.document_id, error):
            Log.info(f"Document {job.document_id} already terminal, not failing it")
            return
        document = self._doc_repo.find_by_id(job.document_id)
        self._metrics.record_processing_time(
            document.id,
            _elapsed_ms(document),
            success=False,
            metadata={"filename": document.filename, "error": error},
        )
        self._notifier.try_send(
            document.user_id,
            document.peer_ref,
            formatter.format_failure(document.filename),
        )

    def _notify(self, context: PipelineContext) -> None:
        try:
            with self._metrics.time_stage(
                self._notify_step.stage.value,
                document_id=context.document.id,
                job_id=context.job_id,
                attempt=context.attempt,
            ):
                self._notify_step.run(context)
        except NotifyError as exc:
            Log.warning(
                f"Result for document {context.document.id} not delivered: {exc}",
                user_id=context.job.user_id,
            )
        except Exception as exc:
            Log.error(
                f"Unexpected error delivering result for document {context.document.id}: {exc}",
                user_id=context.job.user_id,
            )

    def _check_deadline(self, deadline: float | None, step: PipelineStep) -> None:
        if deadline is not None and self._monotonic() >= deadline:
            raise QueueTimeoutError(f"Job deadline passed before {step.stage.value}")


def _elapsed_ms(document: DocumentRecord) -> int:
    if document.uploaded_at is None:
        return 0
    elapsed = datetime.now(timezone.utc) - document.uploaded_at
    return max(0, int(elapsed.total_seconds() * 1000))


def build_processor(
    settings: Settings,
    *,
    notifier: Notifier,
    metrics: MetricsRecorder,
    doc_repo: DocumentRepository | None = None,
    files_root: Path | None = None,
) -> Processor:
    """Build a Processor with all required adapters."""
    doc_repo = doc_repo or DocumentRepository()
    file_store = FileStore(files_root=files_root or settings.files_root)
    steps: list[PipelineStep] = [
        ExtractTextStep(
            file_store,
            ExtractorFactory.create(settings),
            min_chars=settings.min_extracted_chars,
        ),
        AnalyzeStep(AnalyzerFactory.create(settings)),
        PersistSummaryStep(doc_repo),
    ]
    return Processor(
        steps=steps,
        notify_step=NotifyStep(notifier),
        doc_repo=doc_repo,
        metrics=metrics,
        notifier=notifier,
    )
