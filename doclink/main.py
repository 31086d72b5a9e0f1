import signal
from functools import partial
from types import FrameType

import psycopg

from doclink.config.settings import Settings
from doclink.connection.credentials import FileCredentialStore
from doclink.connection.factory import TransportFactory
from doclink.connection.manager import ConnectionManager
from doclink.connection.registry import ConnectionRegistry
from doclink.connection.state_machine import Challenge, ConnectionHooks
from doclink.database.connection import close_pool, init_pool
from doclink.database.repositories.document_repository import DocumentRepository
from doclink.database.repositories.job_repository import JobRepository
from doclink.database.repositories.metrics_repository import MetricsRepository
from doclink.database.repositories.session_repository import SessionRepository
from doclink.jobs.queue import JobQueue
from doclink.logging.logger import Log
from doclink.metrics.recorder import MetricsRecorder
from doclink.notify.notifier import Notifier
from doclink.pipeline.processor import build_processor
from doclink.router.router import MessageRouter
from doclink.storage.file_store import FileStore
from doclink.worker.job_runner import JobRunner
from doclink.worker.worker import Worker


def _on_challenge(user_id: str, challenge: Challenge) -> None:
    Log.info(
        "Challenge waiting to be shown to the user",
        user_id=user_id,
        expires_at=challenge.expires_at.isoformat(),
    )


def _on_give_up(user_id: str, attempts: int) -> None:
    Log.error(f"Reconnect abandoned after {attempts} attempts; manual connect required", user_id=user_id)


def _on_logged_out(user_id: str) -> None:
    Log.warning("Session logged out; user must pair again", user_id=user_id)


def build_connection_manager(settings: Settings) -> ConnectionManager:
    return ConnectionManager(
        registry=ConnectionRegistry(),
        transport=TransportFactory.create(settings),
        credentials=FileCredentialStore(settings.credentials_root),
        sessions=SessionRepository(),
        settings=settings,
        hooks=ConnectionHooks(
            on_challenge=_on_challenge,
            on_give_up=_on_give_up,
            on_logged_out=_on_logged_out,
        ),
    )


def connect_configured_users(connections: ConnectionManager, settings: Settings) -> list[str]:
    """Connect configured users that session restore did not already pick up."""
    known = set(connections.user_ids())
    configured = dict.fromkeys(settings.connect_user_ids)
    pending = [user_id for user_id in configured if user_id not in known]
    for user_id in pending:
        connections.connect(user_id)
    if pending:
        Log.info(f"Connecting {len(pending)} configured users")
    return pending


def log_status_report(
    connections: ConnectionManager, metrics: MetricsRecorder, job_queue: JobQueue
) -> None:
    for user_id in connections.user_ids():
        Log.info(f"Connection status {connections.status(user_id).to_dict()}", user_id=user_id)
    try:
        Log.info(f"Queue stats {job_queue.stats()}")
        Log.info(f"Metrics summary {metrics.summary().to_dict()}")
    except psycopg.Error as exc:
        Log.warning(f"Status report incomplete: {exc}")


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> connect users -> run worker."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    connections: ConnectionManager | None = None
    try:
        job_repo = JobRepository()
        doc_repo = DocumentRepository()
        metrics = MetricsRecorder(MetricsRepository(), doc_repo, settings)
        connections = build_connection_manager(settings)
        notifier = Notifier(connections)
        job_queue = JobQueue(job_repo, settings)
        router = MessageRouter(
            connections=connections,
            notifier=notifier,
            file_store=FileStore(settings.files_root),
            doc_repo=doc_repo,
            job_queue=job_queue,
            metrics=metrics,
            settings=settings,
        )
        connections.set_message_handler(router.handle)

        processor = build_processor(settings, notifier=notifier, metrics=metrics, doc_repo=doc_repo)
        job_runner = JobRunner(processor, job_repo, settings)
        worker = Worker(
            job_repo,
            job_runner,
            job_queue,
            settings,
            on_maintenance=partial(log_status_report, connections, metrics, job_queue),
        )

        def request_stop(signum: int, _frame: FrameType | None) -> None:
            Log.info(f"Received {signal.Signals(signum).name}, stopping")
            worker.stop()

        signal.signal(signal.SIGTERM, request_stop)
        signal.signal(signal.SIGINT, request_stop)

        worker.recover_stalled()
        connections.restore_sessions()
        connect_configured_users(connections, settings)
        worker.run()
        job_runner.shutdown()
        log_status_report(connections, metrics, job_queue)
    finally:
        if connections is not None:
            connections.shutdown()
        close_pool()
        Log.info("Shutdown complete")


if __name__ == "__main__":
    main()
