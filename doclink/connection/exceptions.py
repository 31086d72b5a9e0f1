class ConnectionManagerError(Exception):
    """Base exception for transport connection errors."""


class TransportConnectionError(ConnectionManagerError):
    """Transient transport failure; the connection is retried with backoff."""


class NotConnectedError(ConnectionManagerError):
    """Raised when an operation needs a live session and the user has none."""


class LoggedOutError(NotConnectedError):
    """The transport revoked the session; fresh credentials are required."""
