"""Tests for the directory-tree storage adapter."""

from pathlib import Path

import pytest

from exportsync.errors import DeleteError, ListError, TransferError
from exportsync.storage import CHUNK_SIZE, LocalStorage
from tests.conftest import export_path


def _write(root: Path, container: str, path: str, data: bytes = b"{}\n") -> Path:
    target = root / container / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return target


def _all(pages) -> list[str]:
    return [name for page in pages for name in page]


class TestListing:
    def test_containers_filtered_by_prefix(self, tmp_path):
        for name in ("am-a", "am-b", "insights"):
            (tmp_path / name).mkdir()
        (tmp_path / "am-file.txt").write_text("not a container")
        storage = LocalStorage(tmp_path)
        assert _all(storage.iter_container_pages("am-")) == ["am-a", "am-b"]

    def test_container_pages_respect_page_size(self, tmp_path):
        for i in range(5):
            (tmp_path / f"am-{i}").mkdir()
        pages = list(LocalStorage(tmp_path, page_size=2).iter_container_pages("am-"))
        assert [len(p) for p in pages] == [2, 2, 1]

    def test_missing_root_raises_list_error(self, tmp_path):
        with pytest.raises(ListError):
            _all(LocalStorage(tmp_path / "missing").iter_container_pages("am-"))

    def test_files_listed_as_relative_posix_paths(self, tmp_path):
        _write(tmp_path, "am-a", export_path(minute=0))
        _write(tmp_path, "am-a", export_path(minute=5))
        names = _all(LocalStorage(tmp_path).iter_file_pages("am-a"))
        assert names == sorted([export_path(minute=0), export_path(minute=5)])

    def test_missing_container_raises_list_error(self, tmp_path):
        with pytest.raises(ListError, match="container not found"):
            _all(LocalStorage(tmp_path).iter_file_pages("am-gone"))

    def test_empty_container(self, tmp_path):
        (tmp_path / "am-a").mkdir()
        assert _all(LocalStorage(tmp_path).iter_file_pages("am-a")) == []

    def test_page_size_must_be_positive(self, tmp_path):
        with pytest.raises(ValueError):
            LocalStorage(tmp_path, page_size=0)


class TestOpenRead:
    def test_streams_file_content(self, tmp_path):
        _write(tmp_path, "am-a", export_path(), b'{"a":1}\n{"a":2}\n')
        with LocalStorage(tmp_path).open_read("am-a", export_path()) as chunks:
            assert b"".join(chunks) == b'{"a":1}\n{"a":2}\n'

    def test_large_file_is_chunked(self, tmp_path):
        _write(tmp_path, "am-a", export_path(), b"x" * (CHUNK_SIZE + 10))
        with LocalStorage(tmp_path).open_read("am-a", export_path()) as chunks:
            sizes = [len(c) for c in chunks]
        assert sizes == [CHUNK_SIZE, 10]

    def test_missing_file_raises_transfer_error(self, tmp_path):
        (tmp_path / "am-a").mkdir()
        with pytest.raises(TransferError):
            with LocalStorage(tmp_path).open_read("am-a", export_path()):
                pass  # pragma: no cover


class TestDelete:
    def test_removes_file(self, tmp_path):
        target = _write(tmp_path, "am-a", export_path())
        LocalStorage(tmp_path).delete("am-a", export_path())
        assert not target.exists()

    def test_prunes_empty_partition_folders(self, tmp_path):
        _write(tmp_path, "am-a", export_path())
        LocalStorage(tmp_path).delete("am-a", export_path())
        container = tmp_path / "am-a"
        assert container.is_dir()
        assert list(container.iterdir()) == []

    def test_keeps_folders_with_remaining_files(self, tmp_path):
        _write(tmp_path, "am-a", export_path(minute=0))
        sibling = _write(tmp_path, "am-a", export_path(minute=0, seq=1))
        LocalStorage(tmp_path).delete("am-a", export_path(minute=0))
        assert sibling.exists()

    def test_missing_file_raises_delete_error(self, tmp_path):
        (tmp_path / "am-a").mkdir()
        with pytest.raises(DeleteError):
            LocalStorage(tmp_path).delete("am-a", export_path())
