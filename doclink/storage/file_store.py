import re
from pathlib import Path, PurePosixPath

from doclink.pipeline.exceptions import FileReadError

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._@+-]")


def safe_segment(value: str) -> str:
    """Make a user or message identifier usable as one path segment."""
    cleaned = _UNSAFE_CHARS.sub("_", value).strip(".")
    if not cleaned:
        raise ValueError(f"Identifier {value!r} cannot be used as a path segment")
    return cleaned


class FileStore:
    """Stores uploaded payloads under a root directory.

    Locations are relative POSIX paths ({user_id}/{uuid}{suffix}) so they
    stay valid if the root is mounted elsewhere.
    """

    FILES_ROOT = Path("/app/files")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = files_root if files_root is not None else self.FILES_ROOT

    def save(self, user_id: str, uuid: str, filename: str, data: bytes) -> str:
        """Write payload bytes and return their location."""
        suffix = PurePosixPath(filename).suffix.lower()
        if not re.fullmatch(r"\.[a-z0-9]{1,8}", suffix):
            suffix = ""
        location = f"{safe_segment(user_id)}/{uuid}{suffix}"
        path = self._resolve(location)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".part")
        tmp.write_bytes(data)
        tmp.replace(path)
        return location

    def load(self, location: str) -> bytes:
        """Read payload bytes.

        Raises:
            FileReadError: if the location is invalid or the file is unreadable.
        """
        path = self._resolve(location)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise FileReadError(f"Cannot read payload at {location}: {exc}") from exc

    def delete(self, location: str) -> None:
        self._resolve(location).unlink(missing_ok=True)

    def _resolve(self, location: str) -> Path:
        relative = PurePosixPath(location)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise FileReadError(f"Invalid payload location: {location!r}")
        return self._files_root.joinpath(*relative.parts)
