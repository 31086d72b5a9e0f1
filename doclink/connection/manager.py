from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace

from doclink.config.settings import Settings
from doclink.connection.actor import UserConnection
from doclink.connection.credentials import BaseCredentialStore
from doclink.connection.exceptions import NotConnectedError
from doclink.connection.registry import ConnectionRegistry
from doclink.connection.scheduler import Scheduler, ThreadingScheduler
from doclink.connection.state_machine import (
    ConnectionHooks,
    ConnectionState,
    ConnectionStateMachine,
    ConnectionStatus,
    ConnectRequested,
    DisconnectRequested,
    ReconnectPolicy,
    ShutdownRequested,
)
from doclink.connection.transport import BaseTransport, InboundMessage
from doclink.database.repositories.session_repository import SessionRepository
from doclink.logging.logger import Log

MessageHandler = Callable[[str, InboundMessage], object]


class ConnectionManager:
    """Entry point for everything that touches a user's transport session.

    One UserConnection per user lives in the injected registry. Lifecycle
    commands are queued to the user's actor; sends and downloads run
    directly under the actor's lock. Inbound messages are handed to the
    message handler on a separate executor so routing never blocks the
    actor thread.
    """

    def __init__(
        self,
        *,
        registry: ConnectionRegistry,
        transport: BaseTransport,
        credentials: BaseCredentialStore,
        sessions: SessionRepository,
        settings: Settings,
        scheduler: Scheduler | None = None,
        hooks: ConnectionHooks | None = None,
        inbound_executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._credentials = credentials
        self._sessions = sessions
        self._settings = settings
        self._scheduler = scheduler or ThreadingScheduler()
        self._policy = ReconnectPolicy.from_settings(settings)
        self._hooks = replace(hooks or ConnectionHooks(), on_message=self._on_message)
        self._executor = inbound_executor or ThreadPoolExecutor(
            max_workers=settings.inbound_handler_threads,
            thread_name_prefix="inbound",
        )
        self._message_handler: MessageHandler | None = None

    def set_message_handler(self, handler: MessageHandler) -> None:
        self._message_handler = handler

    def connect(self, user_id: str) -> None:
        connection = self._registry.get_or_create(user_id, self._build_connection)
        connection.submit(ConnectRequested())

    def disconnect(self, user_id: str) -> None:
        """Log the user out and drop their connection. Safe to call repeatedly."""
        connection = self._registry.remove(user_id)
        if connection is None:
            self._credentials.clear(user_id)
            self._sessions.mark_disconnected(user_id)
            return
        connection.submit(DisconnectRequested())
        connection.wait_idle()
        connection.stop()

    def send_result(self, user_id: str, peer_ref: str, text: str) -> None:
        """Send text through the user's live session.

        Raises:
            NotConnectedError: if the user has no live session.
            TransportConnectionError: if the transport fails the send.
        """
        self._require(user_id).send_text(peer_ref, text)

    def download_media(self, user_id: str, message: InboundMessage) -> bytes:
        return self._require(user_id).download(message)

    def status(self, user_id: str) -> ConnectionStatus:
        connection = self._registry.get(user_id)
        if connection is None:
            return ConnectionStatus(
                user_id=user_id,
                state=ConnectionState.DISCONNECTED,
                connected=False,
                reconnecting=False,
                reconnect_attempts=0,
                max_reconnect_attempts=self._policy.max_attempts,
            )
        return connection.status()

    def user_ids(self) -> list[str]:
        """Users with a live connection actor, whatever their state."""
        return self._registry.user_ids()

    def restore_sessions(self) -> int:
        """Reconnect every user whose durable session is marked connected."""
        sessions = self._sessions.find_active()
        for session in sessions:
            self.connect(session.user_id)
        Log.info(f"Restoring {len(sessions)} transport sessions")
        return len(sessions)

    def shutdown(self) -> None:
        """Close every handle without logging out, then stop the actors."""
        connections = self._registry.drain()
        for connection in connections:
            connection.submit(ShutdownRequested())
        for connection in connections:
            connection.wait_idle()
            connection.stop()
        self._executor.shutdown(wait=True, cancel_futures=True)
        Log.info(f"Connection manager stopped, closed {len(connections)} sessions")

    def _require(self, user_id: str) -> UserConnection:
        connection = self._registry.get(user_id)
        if connection is None:
            raise NotConnectedError(f"User {user_id} is not connected")
        return connection

    def _build_connection(self, user_id: str) -> UserConnection:
        connection: UserConnection | None = None

        def post(command: object) -> None:
            if connection is not None:
                connection.submit(command)  # type: ignore[arg-type]

        machine = ConnectionStateMachine(
            user_id,
            transport=self._transport,
            credentials=self._credentials,
            sessions=self._sessions,
            scheduler=self._scheduler,
            policy=self._policy,
            hooks=self._hooks,
            post=post,
            challenge_ttl_seconds=self._settings.challenge_ttl_seconds,
        )
        connection = UserConnection(machine)
        return connection

    def _on_message(self, user_id: str, message: InboundMessage) -> None:
        if self._message_handler is None:
            Log.warning("Inbound message dropped, no handler set", user_id=user_id)
            return
        future = self._executor.submit(self._message_handler, user_id, message)
        future.add_done_callback(self._log_handler_failure)

    @staticmethod
    def _log_handler_failure(future: Future[object]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            Log.error(f"Inbound message handler failed: {exc}")
