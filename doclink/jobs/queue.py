from doclink.config.settings import Settings
from doclink.database.models import JobRecord, JobStatus
from doclink.database.repositories.job_repository import JobRepository
from doclink.jobs.models import ProcessingJob
from doclink.logging.logger import Log


class JobQueue:
    """Producer-side view of the processing_jobs table."""

    def __init__(self, job_repo: JobRepository, settings: Settings) -> None:
        self._job_repo = job_repo
        self._settings = settings

    def enqueue(
        self,
        job: ProcessingJob,
        *,
        priority: int | None = None,
        timeout_ms: int | None = None,
    ) -> int | None:
        """Add a job for the document. Returns None if it is already queued."""
        job_id = self._job_repo.insert(
            job.document_id,
            job.user_id,
            job.to_payload(),
            priority=priority if priority is not None else self._settings.job_priority,
            max_attempts=self._settings.max_job_attempts,
            timeout_ms=timeout_ms if timeout_ms is not None else self._settings.job_timeout_ms,
        )
        if job_id is None:
            Log.info(f"Document {job.document_id} already has a job, enqueue skipped")
        else:
            Log.info(f"Enqueued job {job_id} for document {job.document_id}", user_id=job.user_id)
        return job_id

    def stats(self) -> dict[str, int]:
        counts = self._job_repo.count_by_state()
        return {**counts, "total": sum(counts.values())}

    def prune(self) -> int:
        removed = self._job_repo.prune(
            self._settings.retain_completed_jobs,
            self._settings.retain_failed_jobs,
        )
        if removed:
            Log.info(f"Pruned {removed} finished jobs")
        return removed

    def recover_stalled(self) -> list[JobRecord]:
        """Requeue stalled jobs, counting the lost attempt.

        Returns the stalled jobs that ran out of attempts and are now failed;
        their documents still need to be failed by the caller.
        """
        recovered = self._job_repo.recover_stalled(self._settings.job_stall_timeout_seconds)
        exhausted = [job for job in recovered if job.status == JobStatus.FAILED.value]
        if recovered:
            Log.warning(
                f"Recovered {len(recovered)} stalled jobs, "
                f"{len(recovered) - len(exhausted)} requeued, {len(exhausted)} out of attempts"
            )
        return exhausted
