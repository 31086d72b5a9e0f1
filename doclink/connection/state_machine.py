"""Per-user transport lifecycle.

    disconnected -> connecting -> awaiting_challenge | connected
    any live state -> reconnecting -> connecting ...
    any state -> logged_out (terminal until a manual connect)

The machine is not thread-safe. Its owner feeds it one item at a time
(see UserConnection), so every transition for a user is serialized.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import psycopg

from doclink.config.settings import Settings
from doclink.connection.credentials import BaseCredentialStore
from doclink.connection.exceptions import (
    LoggedOutError,
    NotConnectedError,
    TransportConnectionError,
)
from doclink.connection.scheduler import Cancellable, Scheduler
from doclink.connection.transport import (
    BaseTransport,
    ChallengeIssued,
    CredentialsUpdated,
    InboundMessage,
    MessageReceived,
    TransportClosed,
    TransportEvent,
    TransportHandle,
    TransportOpened,
)
from doclink.database.repositories.session_repository import SessionRepository
from doclink.jobs.backoff import exponential_delay
from doclink.logging.logger import Log


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_CHALLENGE = "awaiting_challenge"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    LOGGED_OUT = "logged_out"


@dataclass(frozen=True)
class ReconnectPolicy:
    """Backoff ladder for unexpected disconnects plus the bootstrap heuristic.

    `bootstrap_grace_seconds` and `bootstrap_retry_delay_seconds` are tuning
    knobs for startup races, not correctness parameters.
    """

    base_delay_seconds: float = 5.0
    growth_factor: float = 2.0
    max_delay_seconds: float = 30.0
    max_attempts: int = 10
    bootstrap_grace_seconds: float = 5.0
    bootstrap_retry_delay_seconds: float = 20.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReconnectPolicy":
        return cls(
            base_delay_seconds=settings.reconnect_base_delay_seconds,
            growth_factor=settings.reconnect_growth_factor,
            max_delay_seconds=settings.reconnect_max_delay_seconds,
            max_attempts=settings.max_reconnect_attempts,
            bootstrap_grace_seconds=settings.bootstrap_grace_seconds,
            bootstrap_retry_delay_seconds=settings.bootstrap_retry_delay_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before reconnect attempt number `attempt` (1-based)."""
        return exponential_delay(
            self.base_delay_seconds,
            attempt - 1,
            factor=self.growth_factor,
            cap_seconds=self.max_delay_seconds,
        )


@dataclass(frozen=True)
class Challenge:
    payload: str
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class ConnectionStatus:
    user_id: str
    state: ConnectionState
    connected: bool
    reconnecting: bool
    reconnect_attempts: int
    max_reconnect_attempts: int
    gave_up: bool = False
    connected_at: datetime | None = None
    challenge: str | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "reconnecting": self.reconnecting,
            "reconnectAttempts": self.reconnect_attempts,
            "maxReconnectAttempts": self.max_reconnect_attempts,
            "state": self.state.value,
            "gaveUp": self.gave_up,
            "connectedAt": self.connected_at.isoformat() if self.connected_at else None,
            "challenge": self.challenge,
            "lastError": self.last_error,
        }


def _noop(*_args: object) -> None:
    return None


@dataclass
class ConnectionHooks:
    """Callbacks fired by the state machine. All run on the user's actor thread."""

    on_challenge: Callable[[str, Challenge], None] = _noop
    on_ready: Callable[[str, str], None] = _noop
    on_give_up: Callable[[str, int], None] = _noop
    on_logged_out: Callable[[str], None] = _noop
    on_message: Callable[[str, InboundMessage], None] = _noop


@dataclass
class Session:
    """In-memory session state for one user."""

    user_id: str
    state: ConnectionState = ConnectionState.DISCONNECTED
    credential_ref: str | None = None
    connected_at: datetime | None = None
    last_challenge: Challenge | None = None
    reconnect_attempts: int = 0
    last_error: str | None = None
    gave_up: bool = False
    attempt_started_at: float | None = None
    challenge_this_attempt: bool = False


@dataclass(frozen=True)
class ConnectRequested:
    pass


@dataclass(frozen=True)
class DisconnectRequested:
    pass


@dataclass(frozen=True)
class ShutdownRequested:
    pass


@dataclass(frozen=True)
class ReconnectDue:
    timer_id: int


@dataclass(frozen=True)
class TransportSignal:
    """A transport event tagged with the handle generation that produced it."""

    generation: int
    event: TransportEvent


Command = ConnectRequested | DisconnectRequested | ShutdownRequested | ReconnectDue | TransportSignal


class ConnectionStateMachine:
    """Owns one user's transport handle and applies lifecycle transitions."""

    def __init__(
        self,
        user_id: str,
        *,
        transport: BaseTransport,
        credentials: BaseCredentialStore,
        sessions: SessionRepository,
        scheduler: Scheduler,
        policy: ReconnectPolicy,
        hooks: ConnectionHooks,
        post: Callable[[Command], None],
        challenge_ttl_seconds: int = 30,
        monotonic: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.session = Session(user_id=user_id, credential_ref=user_id)
        self._transport = transport
        self._credentials = credentials
        self._sessions = sessions
        self._scheduler = scheduler
        self._policy = policy
        self._hooks = hooks
        self._post = post
        self._challenge_ttl = timedelta(seconds=challenge_ttl_seconds)
        self._monotonic = monotonic
        self._now = now
        self._handle: TransportHandle | None = None
        self._generation = 0
        self._timer: Cancellable | None = None
        self._timer_id = 0

    @property
    def user_id(self) -> str:
        return self.session.user_id

    @property
    def state(self) -> ConnectionState:
        return self.session.state

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def dispatch(self, command: Command) -> None:
        if isinstance(command, TransportSignal):
            self._on_transport_signal(command)
        elif isinstance(command, ConnectRequested):
            self.connect()
        elif isinstance(command, DisconnectRequested):
            self.disconnect()
        elif isinstance(command, ShutdownRequested):
            self.shutdown()
        elif isinstance(command, ReconnectDue):
            self._on_reconnect_due(command.timer_id)
        else:
            raise TypeError(f"Unknown command {command!r}")

    def connect(self) -> None:
        s = self.session
        if s.state is ConnectionState.CONNECTED:
            Log.debug("Connect ignored, already connected", user_id=s.user_id)
            return
        if s.state is ConnectionState.RECONNECTING and not s.gave_up:
            Log.debug("Connect ignored, reconnect already scheduled", user_id=s.user_id)
            return
        if s.gave_up or s.state in (ConnectionState.LOGGED_OUT, ConnectionState.DISCONNECTED):
            s.reconnect_attempts = 0
            s.gave_up = False
        self._cancel_timer()
        self._open_handle()

    def disconnect(self) -> None:
        """Log out best-effort and forget the session. Idempotent."""
        s = self.session
        self._cancel_timer()
        if self._handle is not None:
            try:
                self._handle.logout()
            except Exception as exc:
                Log.warning(f"Transport logout failed: {exc}", user_id=s.user_id)
        self._teardown_handle()
        self._reset(ConnectionState.DISCONNECTED)
        self._credentials.clear(s.user_id)
        Log.info("Disconnected", user_id=s.user_id)
        self._mark_session_disconnected()

    def shutdown(self) -> None:
        """Close the handle but keep credentials and the durable session for restore."""
        self._cancel_timer()
        self._teardown_handle()
        self._reset(ConnectionState.DISCONNECTED)

    def send_text(self, peer_ref: str, text: str) -> None:
        """Send through the live handle.

        Raises:
            NotConnectedError: if the user is not connected.
            LoggedOutError: if the transport revoked the session.
            TransportConnectionError: if the transport rejects the send.
        """
        self._require_live_handle().send_text(peer_ref, text)

    def download(self, message: InboundMessage) -> bytes:
        return self._require_live_handle().download(message)

    def status(self) -> ConnectionStatus:
        s = self.session
        challenge = s.last_challenge
        if challenge is not None and challenge.is_expired(self._now()):
            challenge = None
        return ConnectionStatus(
            user_id=s.user_id,
            state=s.state,
            connected=s.state is ConnectionState.CONNECTED,
            reconnecting=s.state is ConnectionState.RECONNECTING and not s.gave_up,
            reconnect_attempts=s.reconnect_attempts,
            max_reconnect_attempts=self._policy.max_attempts,
            gave_up=s.gave_up,
            connected_at=s.connected_at,
            challenge=challenge.payload if challenge else None,
            last_error=s.last_error,
        )

    def _require_live_handle(self) -> TransportHandle:
        if self.session.state is ConnectionState.LOGGED_OUT:
            raise LoggedOutError(f"User {self.user_id} is logged out")
        if self.session.state is not ConnectionState.CONNECTED or self._handle is None:
            raise NotConnectedError(f"User {self.user_id} is not connected")
        return self._handle

    def _open_handle(self) -> None:
        s = self.session
        self._teardown_handle()
        s.state = ConnectionState.CONNECTING
        s.attempt_started_at = self._monotonic()
        s.challenge_this_attempt = False
        generation = self._generation

        def listener(event: TransportEvent) -> None:
            self._post(TransportSignal(generation, event))

        Log.info(
            "Opening transport",
            user_id=s.user_id,
            generation=generation,
            attempt=s.reconnect_attempts,
        )
        try:
            self._handle = self._transport.open(
                s.user_id, self._credentials.load(s.user_id), listener
            )
        except TransportConnectionError as exc:
            self._on_closed(TransportClosed(code=None, reason=str(exc)), open_failed=True)

    def _teardown_handle(self) -> None:
        """Invalidate the current handle so its late events are dropped."""
        handle, self._handle = self._handle, None
        self._generation += 1
        if handle is None:
            return
        try:
            handle.close()
        except Exception as exc:
            Log.warning(f"Closing stale transport handle failed: {exc}", user_id=self.user_id)

    def _on_transport_signal(self, signal: TransportSignal) -> None:
        if signal.generation != self._generation:
            Log.debug(
                "Dropping event from stale handle",
                user_id=self.user_id,
                event=type(signal.event).__name__,
            )
            return
        event = signal.event
        if isinstance(event, ChallengeIssued):
            self._on_challenge(event)
        elif isinstance(event, TransportOpened):
            self._on_opened(event)
        elif isinstance(event, TransportClosed):
            self._on_closed(event)
        elif isinstance(event, CredentialsUpdated):
            self._credentials.save(self.user_id, event.blob)
        elif isinstance(event, MessageReceived):
            self._hooks.on_message(self.user_id, event.message)

    def _on_challenge(self, event: ChallengeIssued) -> None:
        s = self.session
        issued_at = self._now()
        s.state = ConnectionState.AWAITING_CHALLENGE
        s.reconnect_attempts = 0
        s.challenge_this_attempt = True
        s.last_challenge = Challenge(
            payload=event.payload,
            issued_at=issued_at,
            expires_at=issued_at + self._challenge_ttl,
        )
        Log.info(
            f"Challenge issued, expires in {self._challenge_ttl.seconds}s",
            user_id=s.user_id,
        )
        self._hooks.on_challenge(s.user_id, s.last_challenge)

    def _on_opened(self, event: TransportOpened) -> None:
        s = self.session
        s.state = ConnectionState.CONNECTED
        s.reconnect_attempts = 0
        s.gave_up = False
        s.connected_at = self._now()
        s.last_challenge = None
        s.last_error = None
        Log.info("Transport connected", user_id=s.user_id, account=event.account_ref)
        try:
            self._sessions.mark_connected(s.user_id, event.account_ref, s.connected_at)
        except psycopg.Error as exc:
            Log.warning(f"Failed to record connected session: {exc}", user_id=s.user_id)
        self._hooks.on_ready(s.user_id, event.account_ref)

    def _on_closed(self, event: TransportClosed, *, open_failed: bool = False) -> None:
        previous = self.session.state
        self.session.last_error = event.reason
        self._teardown_handle()
        self._apply_close(event, previous, open_failed)
        if previous is ConnectionState.CONNECTED or event.logged_out:
            self._mark_session_disconnected()

    def _mark_session_disconnected(self) -> None:
        """Durable write after the in-memory transition; a database outage only logs."""
        try:
            self._sessions.mark_disconnected(self.user_id)
        except psycopg.Error as exc:
            Log.warning(f"Failed to record disconnected session: {exc}", user_id=self.user_id)

    def _apply_close(
        self, event: TransportClosed, previous: ConnectionState, open_failed: bool
    ) -> None:
        s = self.session
        if event.logged_out:
            self._cancel_timer()
            s.state = ConnectionState.LOGGED_OUT
            s.gave_up = False
            self._credentials.clear(s.user_id)
            Log.error("Transport logged out; fresh credentials required", user_id=s.user_id)
            self._hooks.on_logged_out(s.user_id)
            return

        if not open_failed and self._is_bootstrap_failure(previous):
            s.state = ConnectionState.RECONNECTING
            delay = self._policy.bootstrap_retry_delay_seconds
            Log.warning(
                f"Connection dropped during bootstrap, retrying in {delay}s",
                user_id=s.user_id,
                code=event.code,
            )
            self._schedule_reconnect(delay)
            return

        s.state = ConnectionState.RECONNECTING
        s.reconnect_attempts += 1
        if s.reconnect_attempts > self._policy.max_attempts:
            self._cancel_timer()
            s.gave_up = True
            Log.error(
                f"Giving up after {self._policy.max_attempts} reconnect attempts",
                user_id=s.user_id,
                reason=event.reason,
            )
            self._hooks.on_give_up(s.user_id, s.reconnect_attempts - 1)
            return

        delay = self._policy.delay_for(s.reconnect_attempts)
        Log.warning(
            f"Connection closed, reconnecting in {delay}s",
            user_id=s.user_id,
            code=event.code,
            attempt=s.reconnect_attempts,
        )
        self._schedule_reconnect(delay)

    def _is_bootstrap_failure(self, previous: ConnectionState) -> bool:
        s = self.session
        if previous is not ConnectionState.CONNECTING or s.challenge_this_attempt:
            return False
        if s.attempt_started_at is None:
            return False
        elapsed = self._monotonic() - s.attempt_started_at
        return elapsed <= self._policy.bootstrap_grace_seconds

    def _schedule_reconnect(self, delay: float) -> None:
        self._cancel_timer()
        self._timer_id += 1
        timer_id = self._timer_id
        self._timer = self._scheduler.call_later(
            delay, lambda: self._post(ReconnectDue(timer_id))
        )

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        self._timer_id += 1
        if timer is not None:
            timer.cancel()

    def _on_reconnect_due(self, timer_id: int) -> None:
        if timer_id != self._timer_id or self.session.state is not ConnectionState.RECONNECTING:
            return
        self._timer = None
        Log.info(
            "Reconnecting",
            user_id=self.user_id,
            attempt=self.session.reconnect_attempts,
        )
        self._open_handle()

    def _reset(self, state: ConnectionState) -> None:
        s = self.session
        s.state = state
        s.connected_at = None
        s.last_challenge = None
        s.reconnect_attempts = 0
        s.gave_up = False
        s.attempt_started_at = None
        s.challenge_this_attempt = False
