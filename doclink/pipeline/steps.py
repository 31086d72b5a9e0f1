from doclink.analysis.base import BaseAnalyzer
from doclink.database.repositories.document_repository import DocumentRepository
from doclink.extraction.exceptions import ExtractionError
from doclink.extraction.factory import ExtractorFactory
from doclink.logging.logger import Log
from doclink.notify.notifier import Notifier
from doclink.pipeline.context import PipelineContext, PipelineStep, Stage
from doclink.pipeline.exceptions import FileReadError
from doclink.storage.file_store import FileStore


class ExtractTextStep(PipelineStep):
    stage = Stage.EXTRACTION

    def __init__(
        self,
        file_store: FileStore,
        extractors: ExtractorFactory,
        min_chars: int = 10,
    ) -> None:
        self._file_store = file_store
        self._extractors = extractors
        self._min_chars = min_chars

    def run(self, context: PipelineContext) -> PipelineContext:
        try:
            context.raw_bytes = self._file_store.load(context.job.payload_location)
        except FileReadError as exc:
            raise ExtractionError(str(exc)) from exc
        extractor = self._extractors.for_mime_type(context.job.mime_type)
        text = extractor.extract(context.raw_bytes).strip()
        if len(text) < self._min_chars:
            raise ExtractionError(
                f"Extracted {len(text)} chars from {context.job.filename}, "
                f"need at least {self._min_chars}"
            )
        context.extracted_text = text
        Log.info(
            f"Extracted {len(text)} chars from document {context.job.document_id}",
            job_id=context.job_id,
        )
        return context


class AnalyzeStep(PipelineStep):
    stage = Stage.ANALYSIS

    def __init__(self, analyzer: BaseAnalyzer) -> None:
        self._analyzer = analyzer

    def run(self, context: PipelineContext) -> PipelineContext:
        context.summary = self._analyzer.analyze(context.extracted_text, context.job.filename)
        Log.info(
            f"Analyzed document {context.job.document_id}: {context.summary.title!r}",
            job_id=context.job_id,
        )
        return context


class PersistSummaryStep(PipelineStep):
    stage = Stage.PERSISTENCE

    def __init__(self, doc_repo: DocumentRepository) -> None:
        self._doc_repo = doc_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.summary is None:
            raise ValueError("PipelineContext.summary must be set before persist")
        context.summary_created = self._doc_repo.complete_with_summary(
            context.job.document_id, context.summary
        )
        if not context.summary_created:
            Log.info(
                f"Summary for document {context.job.document_id} already stored",
                job_id=context.job_id,
            )
        return context


class NotifyStep(PipelineStep):
    stage = Stage.NOTIFY

    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.summary is None:
            raise ValueError("PipelineContext.summary must be set before notify")
        self._notifier.send_summary(
            context.job.user_id,
            context.job.source_ref.peer_ref,
            context.job.filename,
            context.summary,
        )
        return context
