import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from doclink.config.settings import Settings
from doclink.database.connection import get_connection
from doclink.database.models import JobRecord
from doclink.database.repositories.job_repository import JobRepository
from doclink.jobs.queue import JobQueue
from doclink.logging.logger import Log
from doclink.worker.job_runner import JobRunner


class Worker:
    """Poll loop: wait for a free slot -> claim -> dispatch to the pool."""

    def __init__(
        self,
        job_repo: JobRepository,
        job_runner: JobRunner,
        job_queue: JobQueue,
        settings: Settings,
        monotonic: Callable[[], float] = time.monotonic,
        on_maintenance: Callable[[], None] | None = None,
    ) -> None:
        self._job_repo = job_repo
        self._job_runner = job_runner
        self._job_queue = job_queue
        self._settings = settings
        self._monotonic = monotonic
        self._on_maintenance = on_maintenance
        self._slots = threading.Semaphore(settings.worker_concurrency)
        self._stop = threading.Event()
        self._executor = ThreadPoolExecutor(
            max_workers=settings.worker_concurrency,
            thread_name_prefix="worker",
        )
        self._last_maintenance = monotonic()

    def stop(self) -> None:
        """Ask the poll loop to exit. In-flight jobs are drained by run()."""
        self._stop.set()

    def run(self, max_jobs: int | None = None) -> None:
        """Main poll loop. Runs until stop() or interrupt, then drains in-flight jobs.

        If max_jobs is set, stop after dispatching that many jobs (for testing).
        """
        Log.info(f"Worker started, polling for jobs with {self._settings.worker_concurrency} slots")
        poll = self._settings.job_poll_interval_seconds
        dispatched = 0
        try:
            while not self._stop.is_set():
                if max_jobs is not None and dispatched >= max_jobs:
                    break
                self._maybe_run_maintenance()
                if not self._slots.acquire(timeout=poll):
                    continue
                job = self._try_claim_job()
                if job is None:
                    self._slots.release()
                    Log.debug("No jobs available, sleeping")
                    self._stop.wait(poll)
                    continue
                self._executor.submit(self._run_job, job)
                dispatched += 1
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")
        finally:
            self._executor.shutdown(wait=True)
            Log.info(f"Worker stopped after dispatching {dispatched} jobs")

    def _run_job(self, job: JobRecord) -> None:
        try:
            self._job_runner.run(job)
        except Exception:
            Log.exception(f"Job {job.id} could not be finalized")
        finally:
            self._slots.release()

    def _try_claim_job(self) -> JobRecord | None:
        """Attempt to claim the next pending job. Gracefully handle DB errors."""
        try:
            with get_connection() as conn:
                return self._job_repo.claim_next_job(conn)
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None

    def recover_stalled(self) -> None:
        """Requeue stalled jobs and fail the documents of those out of attempts."""
        for job in self._job_queue.recover_stalled():
            self._job_runner.fail_stalled(job)

    def _maybe_run_maintenance(self) -> None:
        now = self._monotonic()
        if now - self._last_maintenance < self._settings.maintenance_interval_seconds:
            return
        self._last_maintenance = now
        try:
            self.recover_stalled()
            self._job_queue.prune()
            if self._on_maintenance is not None:
                self._on_maintenance()
        except Exception as exc:
            Log.warning(f"Queue maintenance failed, will retry: {exc}")
