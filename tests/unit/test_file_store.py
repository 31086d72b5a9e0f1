from pathlib import Path

import pytest

from doclink.pipeline.exceptions import FileReadError
from doclink.storage.file_store import FileStore, safe_segment


class TestSafeSegment:
    def test_keeps_plain_identifiers(self) -> None:
        assert safe_segment("user-1@example") == "user-1@example"

    def test_replaces_separators(self) -> None:
        assert safe_segment("a/b\\c") == "a_b_c"

    def test_rejects_dot_only(self) -> None:
        with pytest.raises(ValueError):
            safe_segment("..")


class TestFileStore:
    def test_save_and_load(self, tmp_path: Path) -> None:
        store = FileStore(tmp_path)
        location = store.save("user-1", "abc", "Report.PDF", b"data")
        assert location == "user-1/abc.pdf"
        assert store.load(location) == b"data"
        assert (tmp_path / "user-1" / "abc.pdf").read_bytes() == b"data"

    def test_save_leaves_no_partial_file(self, tmp_path: Path) -> None:
        FileStore(tmp_path).save("u", "abc", "a.txt", b"x")
        assert [p.name for p in (tmp_path / "u").iterdir()] == ["abc.txt"]

    def test_odd_suffix_is_dropped(self, tmp_path: Path) -> None:
        location = FileStore(tmp_path).save("u", "abc", "weird.ext with space", b"x")
        assert location == "u/abc"

    def test_load_missing_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileReadError, match="Cannot read payload"):
            FileStore(tmp_path).load("u/missing.pdf")

    @pytest.mark.parametrize("location", ["/etc/passwd", "../outside", "u/../../x", ""])
    def test_rejects_escaping_locations(self, tmp_path: Path, location: str) -> None:
        with pytest.raises(FileReadError, match="Invalid payload location"):
            FileStore(tmp_path).load(location)

    def test_delete_is_idempotent(self, tmp_path: Path) -> None:
        store = FileStore(tmp_path)
        location = store.save("u", "abc", "a.txt", b"x")
        store.delete(location)
        store.delete(location)
        assert not (tmp_path / "u" / "abc.txt").exists()
