import threading
from unittest.mock import MagicMock, patch

from doclink.database.models import JobRecord
from doclink.worker.worker import Worker


def _make_worker(
    concurrency: int = 2, monotonic: MagicMock | None = None
) -> tuple[Worker, MagicMock, MagicMock]:
    """Create a Worker with mocked dependencies."""
    mock_runner = MagicMock()
    mock_queue = MagicMock()
    settings = MagicMock(
        job_poll_interval_seconds=0,
        worker_concurrency=concurrency,
        maintenance_interval_seconds=60,
    )
    worker = Worker(
        MagicMock(),
        mock_runner,
        mock_queue,
        settings,
        monotonic=monotonic or MagicMock(return_value=0.0),
    )
    return worker, mock_runner, mock_queue


def _make_job(job_id: int = 1) -> JobRecord:
    return JobRecord(
        id=job_id,
        document_id=10,
        user_id="user-1",
        payload={},
        status="processing",
        attempts=0,
        max_attempts=3,
    )


class TestWorkerDispatch:
    def test_dispatches_job_to_runner(self) -> None:
        worker, mock_runner, _queue = _make_worker()
        job = _make_job()

        with patch.object(worker, "_try_claim_job", side_effect=[job, KeyboardInterrupt]):
            worker.run()

        mock_runner.run.assert_called_once_with(job)

    def test_dispatches_multiple_jobs(self) -> None:
        worker, mock_runner, _queue = _make_worker()

        with patch.object(
            worker, "_try_claim_job", side_effect=[_make_job(1), _make_job(2), KeyboardInterrupt]
        ):
            worker.run()

        assert mock_runner.run.call_count == 2

    def test_stops_after_max_jobs(self) -> None:
        worker, mock_runner, _queue = _make_worker()

        with patch.object(
            worker, "_try_claim_job", side_effect=[_make_job(1), _make_job(2), _make_job(3)]
        ):
            worker.run(max_jobs=2)

        assert mock_runner.run.call_count == 2

    def test_runner_failure_releases_the_slot(self) -> None:
        worker, mock_runner, _queue = _make_worker(concurrency=1)
        mock_runner.run.side_effect = [RuntimeError("db gone"), None]

        with patch.object(
            worker, "_try_claim_job", side_effect=[_make_job(1), _make_job(2), KeyboardInterrupt]
        ):
            worker.run()

        assert mock_runner.run.call_count == 2

    def test_concurrency_is_bounded(self) -> None:
        worker, mock_runner, _queue = _make_worker(concurrency=2)
        lock = threading.Lock()
        running = 0
        peak = 0

        def slow_run(job: JobRecord) -> None:
            nonlocal running, peak
            with lock:
                running += 1
                peak = max(peak, running)
            threading.Event().wait(0.05)
            with lock:
                running -= 1

        mock_runner.run.side_effect = slow_run
        jobs = [_make_job(i) for i in range(5)]

        with patch.object(worker, "_try_claim_job", side_effect=jobs):
            worker.run(max_jobs=5)

        assert mock_runner.run.call_count == 5
        assert peak <= 2


class TestWorkerSleep:
    def test_sleeps_when_no_job(self) -> None:
        worker, mock_runner, _queue = _make_worker()

        with (
            patch.object(worker, "_try_claim_job", side_effect=[None, KeyboardInterrupt]),
            patch.object(worker._stop, "wait") as mock_wait,
        ):
            worker.run()

        mock_wait.assert_called_once_with(0)
        mock_runner.run.assert_not_called()


class TestWorkerMaintenance:
    def test_runs_maintenance_when_interval_elapsed(self) -> None:
        clock = MagicMock(side_effect=[0.0, 61.0, 61.0, 61.0])
        worker, _runner, mock_queue = _make_worker(monotonic=clock)

        with patch.object(worker, "_try_claim_job", side_effect=[None, KeyboardInterrupt]):
            worker.run()

        mock_queue.recover_stalled.assert_called_once()
        mock_queue.prune.assert_called_once()

    def test_skips_maintenance_before_interval(self) -> None:
        worker, _runner, mock_queue = _make_worker()

        with patch.object(worker, "_try_claim_job", side_effect=KeyboardInterrupt):
            worker.run()

        mock_queue.recover_stalled.assert_not_called()

    def test_maintenance_failure_does_not_stop_the_loop(self) -> None:
        clock = MagicMock(side_effect=[0.0, 61.0, 61.0, 61.0])
        worker, mock_runner, mock_queue = _make_worker(monotonic=clock)
        mock_queue.recover_stalled.side_effect = Exception("db down")
        job = _make_job()

        with patch.object(worker, "_try_claim_job", side_effect=[job, KeyboardInterrupt]):
            worker.run()

        mock_runner.run.assert_called_once_with(job)

    def test_exhausted_stalled_jobs_fail_their_documents(self) -> None:
        worker, mock_runner, mock_queue = _make_worker()
        stalled = _make_job(job_id=4)
        mock_queue.recover_stalled.return_value = [stalled]

        worker.recover_stalled()

        mock_runner.fail_stalled.assert_called_once_with(stalled)

    def test_maintenance_runs_the_report_callback(self) -> None:
        clock = MagicMock(side_effect=[0.0, 61.0, 61.0, 61.0])
        report = MagicMock()
        worker = Worker(
            MagicMock(),
            MagicMock(),
            MagicMock(),
            MagicMock(
                job_poll_interval_seconds=0,
                worker_concurrency=1,
                maintenance_interval_seconds=60,
            ),
            monotonic=clock,
            on_maintenance=report,
        )

        with patch.object(worker, "_try_claim_job", side_effect=[None, KeyboardInterrupt]):
            worker.run()

        report.assert_called_once_with()


class TestWorkerShutdown:
    def test_handles_keyboard_interrupt(self) -> None:
        worker, _runner, _queue = _make_worker()

        with patch.object(worker, "_try_claim_job", side_effect=KeyboardInterrupt):
            worker.run()  # Should not raise

    def test_stop_before_run_claims_nothing(self) -> None:
        worker, mock_runner, _queue = _make_worker()
        worker.stop()

        with patch.object(worker, "_try_claim_job") as mock_claim:
            worker.run()

        mock_claim.assert_not_called()
        mock_runner.run.assert_not_called()


class TestTryClaimJob:
    def test_database_error_returns_none(self) -> None:
        worker, _runner, _queue = _make_worker()

        with patch("doclink.worker.worker.get_connection", side_effect=Exception("refused")):
            assert worker._try_claim_job() is None
