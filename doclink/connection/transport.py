"""Transport contract: what the connection state machine needs from a messaging library."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

LOGGED_OUT_CODE = 401


@dataclass(frozen=True)
class InboundMessage:
    """A message delivered by the transport to one user's session."""

    message_id: str
    peer_ref: str
    kind: str
    from_me: bool = False
    filename: str | None = None
    mime_type: str | None = None
    size_bytes: int | None = None
    caption: str | None = None
    timestamp: int | None = None

    @property
    def is_document(self) -> bool:
        return self.kind == "document"

    @property
    def is_broadcast(self) -> bool:
        return "broadcast" in self.peer_ref


@dataclass(frozen=True)
class ChallengeIssued:
    payload: str


@dataclass(frozen=True)
class TransportOpened:
    account_ref: str


@dataclass(frozen=True)
class TransportClosed:
    code: int | None
    reason: str

    @property
    def logged_out(self) -> bool:
        return self.code == LOGGED_OUT_CODE


@dataclass(frozen=True)
class CredentialsUpdated:
    blob: bytes


@dataclass(frozen=True)
class MessageReceived:
    message: InboundMessage


TransportEvent = (
    ChallengeIssued | TransportOpened | TransportClosed | CredentialsUpdated | MessageReceived
)
TransportListener = Callable[[TransportEvent], None]


class TransportHandle(ABC):
    """One live session with the messaging network."""

    @abstractmethod
    def send_text(self, peer_ref: str, text: str) -> None:
        """Send a text message.

        Raises:
            TransportConnectionError: if the message could not be sent.
        """

    @abstractmethod
    def download(self, message: InboundMessage) -> bytes:
        """Fetch the media attached to an inbound message.

        Raises:
            TransportConnectionError: if the media could not be fetched.
        """

    @abstractmethod
    def logout(self) -> None:
        """Revoke the session on the network side."""

    @abstractmethod
    def close(self) -> None:
        """Drop the connection without revoking the session. Must be idempotent."""


class BaseTransport(ABC):
    """Factory for transport handles."""

    @abstractmethod
    def open(
        self,
        user_id: str,
        credentials: bytes | None,
        listener: TransportListener,
    ) -> TransportHandle:
        """Start connecting and return the handle immediately.

        Lifecycle events are reported to `listener`, possibly from another
        thread. Without credentials the transport issues a challenge first.

        Raises:
            TransportConnectionError: if the connection cannot even be started.
        """
