"""In-memory transport.

Use this module as a reference when implementing an adapter for a real
messaging library: implement BaseTransport and TransportHandle and
register the provider in TransportFactory.
"""

import threading
import uuid

from doclink.connection.exceptions import TransportConnectionError
from doclink.connection.transport import (
    BaseTransport,
    ChallengeIssued,
    CredentialsUpdated,
    InboundMessage,
    MessageReceived,
    TransportClosed,
    TransportEvent,
    TransportHandle,
    TransportListener,
    TransportOpened,
)


class ExampleHandle(TransportHandle):
    """Handle whose network side is driven by method calls."""

    def __init__(self, user_id: str, listener: TransportListener) -> None:
        self.user_id = user_id
        self.sent: list[tuple[str, str]] = []
        self.media: dict[str, bytes] = {}
        self.logged_out = False
        self.closed = False
        self.fail_sends = False
        self._listener = listener
        self._lock = threading.Lock()

    def send_text(self, peer_ref: str, text: str) -> None:
        if self.closed or self.fail_sends:
            raise TransportConnectionError("example transport: send failed")
        with self._lock:
            self.sent.append((peer_ref, text))

    def download(self, message: InboundMessage) -> bytes:
        if self.closed:
            raise TransportConnectionError("example transport: handle closed")
        try:
            return self.media[message.message_id]
        except KeyError:
            raise TransportConnectionError(
                f"example transport: no media for message {message.message_id}"
            ) from None

    def logout(self) -> None:
        self.logged_out = True

    def close(self) -> None:
        self.closed = True

    def emit(self, event: TransportEvent) -> None:
        self._listener(event)

    def emit_challenge(self, payload: str | None = None) -> None:
        self.emit(ChallengeIssued(payload or f"challenge-{uuid.uuid4().hex[:12]}"))

    def emit_open(self, account_ref: str | None = None) -> None:
        self.emit(TransportOpened(account_ref or f"{self.user_id}@example"))

    def emit_close(self, code: int | None = 500, reason: str = "connection lost") -> None:
        self.emit(TransportClosed(code=code, reason=reason))

    def deliver(self, message: InboundMessage, content: bytes | None = None) -> None:
        if content is not None:
            self.media[message.message_id] = content
        self.emit(MessageReceived(message))


class ExampleTransport(BaseTransport):
    """Transport that never touches the network.

    With `auto_open` the handle completes the handshake inside `open()`: a
    user without credentials gets a challenge, a credentials update and then
    an open event; a user with credentials is opened directly.
    """

    def __init__(self, *, auto_open: bool = True) -> None:
        self.auto_open = auto_open
        self.handles: list[ExampleHandle] = []
        self.fail_next_opens = 0

    def open(
        self,
        user_id: str,
        credentials: bytes | None,
        listener: TransportListener,
    ) -> ExampleHandle:
        if self.fail_next_opens > 0:
            self.fail_next_opens -= 1
            raise TransportConnectionError("example transport: open refused")
        handle = ExampleHandle(user_id, listener)
        self.handles.append(handle)
        if self.auto_open:
            if credentials is None:
                handle.emit_challenge()
                handle.emit(CredentialsUpdated(f"example-creds:{user_id}".encode()))
            handle.emit_open()
        return handle

    @property
    def latest(self) -> ExampleHandle:
        return self.handles[-1]
