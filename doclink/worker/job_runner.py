import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from doclink.analysis.exceptions import AnalysisFormatError
from doclink.config.settings import Settings
from doclink.database.models import JobRecord
from doclink.database.repositories.job_repository import JobRepository
from doclink.jobs.backoff import exponential_delay
from doclink.jobs.exceptions import JobPayloadError, QueueTimeoutError
from doclink.logging.logger import Log
from doclink.pipeline.processor import Processor


class JobRunner:
    """Run one job attempt under its timeout, then apply the retry policy."""

    def __init__(
        self,
        processor: Processor,
        job_repo: JobRepository,
        settings: Settings,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._processor = processor
        self._job_repo = job_repo
        self._settings = settings
        # abandoned attempts keep their thread until the next stage boundary
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.worker_concurrency * 2,
            thread_name_prefix="job",
        )

    def run(self, job: JobRecord) -> None:
        """Execute a single job with error handling."""
        Log.info(f"Running job {job.id} (attempt {job.attempt_number}/{job.max_attempts})")
        timeout_seconds = job.timeout_ms / 1000
        deadline = time.monotonic() + timeout_seconds
        future = self._executor.submit(self._processor.process, job, deadline)
        try:
            future.result(timeout=timeout_seconds)
        except FutureTimeoutError:
            future.add_done_callback(lambda f: self._log_abandoned(job, f))
            self._handle_failure(
                job, QueueTimeoutError(f"Job {job.id} timed out after {job.timeout_ms}ms")
            )
            return
        except Exception as exc:
            self._handle_failure(job, exc)
            return
        self._job_repo.mark_done(job.id)
        Log.info(f"Job {job.id} completed successfully")

    def fail_stalled(self, job: JobRecord) -> None:
        """Fail the document of a job that stalled on its last attempt.

        The job row is already failed by stalled-job recovery.
        """
        error = job.error_message or "Job stalled"
        Log.error(f"Job {job.id} permanently failed after {job.attempts} attempts: {error}")
        self._processor.fail_document(job, error)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def _handle_failure(self, job: JobRecord, exc: Exception) -> None:
        """Schedule a delayed retry, or fail the job and its document when out of attempts."""
        error = str(exc) or type(exc).__name__
        if isinstance(exc, AnalysisFormatError):
            Log.warning(f"Job {job.id} got a malformed analysis response: {error}")
        else:
            Log.error(f"Job {job.id} failed: {error}")

        exhausted = job.attempt_number >= job.max_attempts
        if exhausted or isinstance(exc, JobPayloadError):
            self._job_repo.mark_failed(job.id, error)
            self._processor.fail_document(job, error)
            Log.error(f"Job {job.id} permanently failed after {job.attempt_number} attempts")
            return

        delay = exponential_delay(
            self._settings.job_backoff_base_seconds,
            job.attempts,
            cap_seconds=self._settings.job_backoff_max_seconds,
        )
        self._job_repo.schedule_retry(job.id, delay, error)
        Log.warning(
            f"Job {job.id} will be retried in {delay:.0f}s "
            f"(attempt {job.attempt_number + 1}/{job.max_attempts})"
        )

    @staticmethod
    def _log_abandoned(job: JobRecord, future: Future[None]) -> None:
        exc = future.exception()
        outcome = f"failed: {exc}" if exc is not None else "finished"
        Log.debug(f"Abandoned attempt of job {job.id} {outcome}")
