from abc import ABC, abstractmethod
from pathlib import Path

from doclink.storage.file_store import safe_segment


class BaseCredentialStore(ABC):
    """Persists the opaque credential blob a transport needs to resume a session."""

    @abstractmethod
    def load(self, user_id: str) -> bytes | None:
        """Return the stored blob, or None if the user has none."""

    @abstractmethod
    def save(self, user_id: str, blob: bytes) -> None:
        """Replace the stored blob."""

    @abstractmethod
    def clear(self, user_id: str) -> None:
        """Forget the user's credentials. No-op if none are stored."""


class FileCredentialStore(BaseCredentialStore):
    """Keeps one credentials file per user: {root}/{user_id}/credentials.bin."""

    FILENAME = "credentials.bin"

    def __init__(self, root: Path) -> None:
        self._root = root

    def load(self, user_id: str) -> bytes | None:
        path = self._path(user_id)
        if not path.exists():
            return None
        return path.read_bytes()

    def save(self, user_id: str, blob: bytes) -> None:
        path = self._path(user_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(self.FILENAME + ".part")
        tmp.write_bytes(blob)
        tmp.replace(path)

    def clear(self, user_id: str) -> None:
        self._path(user_id).unlink(missing_ok=True)

    def _path(self, user_id: str) -> Path:
        return self._root / safe_segment(user_id) / self.FILENAME
