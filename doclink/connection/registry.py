import threading
from collections.abc import Callable

from doclink.connection.actor import UserConnection


class ConnectionRegistry:
    """Process-wide map of user id -> live UserConnection.

    Populated by ConnectionManager.connect/restore_sessions and emptied by
    ConnectionManager.shutdown.
    """

    def __init__(self) -> None:
        self._connections: dict[str, UserConnection] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> UserConnection | None:
        with self._lock:
            return self._connections.get(user_id)

    def get_or_create(
        self,
        user_id: str,
        factory: Callable[[str], UserConnection],
    ) -> UserConnection:
        """Return the user's connection, creating and starting it if missing."""
        with self._lock:
            connection = self._connections.get(user_id)
            if connection is None:
                connection = factory(user_id)
                connection.start()
                self._connections[user_id] = connection
            return connection

    def remove(self, user_id: str) -> UserConnection | None:
        with self._lock:
            return self._connections.pop(user_id, None)

    def drain(self) -> list[UserConnection]:
        """Remove and return every connection."""
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
            return connections

    def user_ids(self) -> list[str]:
        with self._lock:
            return list(self._connections)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
