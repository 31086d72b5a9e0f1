from doclink.analysis.models import Summary
from doclink.connection.exceptions import NotConnectedError, TransportConnectionError
from doclink.connection.manager import ConnectionManager
from doclink.logging.logger import Log
from doclink.notify import formatter
from doclink.notify.exceptions import NotifyError


class Notifier:
    """Delivers user-facing messages through the user's live session.

    Holds no transport handle: every send goes through the ConnectionManager,
    and "not connected" surfaces as NotifyError for the caller to tolerate.
    """

    def __init__(self, connections: ConnectionManager) -> None:
        self._connections = connections

    def send_summary(self, user_id: str, peer_ref: str, filename: str, summary: Summary) -> None:
        self.send(user_id, peer_ref, formatter.format_summary(filename, summary))

    def send(self, user_id: str, peer_ref: str, text: str) -> None:
        """Send text to a peer.

        Raises:
            NotifyError: if the user is not connected or the transport fails.
        """
        try:
            self._connections.send_result(user_id, peer_ref, text)
        except (NotConnectedError, TransportConnectionError) as exc:
            raise NotifyError(f"Could not deliver message to {peer_ref}: {exc}") from exc
        Log.debug("Message delivered", user_id=user_id, peer=peer_ref)

    def try_send(self, user_id: str, peer_ref: str, text: str) -> bool:
        """Best-effort send. Returns False and logs instead of raising."""
        try:
            self.send(user_id, peer_ref, text)
        except NotifyError as exc:
            Log.warning(str(exc), user_id=user_id)
            return False
        except Exception as exc:
            Log.error(f"Unexpected error delivering message to {peer_ref}: {exc}", user_id=user_id)
            return False
        return True
