"""Tests for codefixer/archive_writer.py."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path
from unittest.mock import patch

import pytest

from codefixer.archive_reader import read_archive
from codefixer.archive_writer import write_archive, write_archive_to_path
from codefixer.errors import ArchiveWriteError
from codefixer.schema import ProjectFile


def _entries(data: bytes) -> dict[str, str]:
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return {name: zf.read(name).decode("utf-8") for name in zf.namelist()}


class TestWriteArchive:
    def test_empty_list_gives_valid_empty_zip(self) -> None:
        data = write_archive([])
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert zf.namelist() == []

    def test_entries_in_input_order_and_deflated(self) -> None:
        data = write_archive(
            [
                ProjectFile(filename="src/b.py", content="b"),
                ProjectFile(filename="a.py", content="a"),
            ]
        )
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert zf.namelist() == ["src/b.py", "a.py"]
            assert all(i.compress_type == zipfile.ZIP_DEFLATED for i in zf.infolist())

    def test_accepts_plain_mappings(self) -> None:
        data = write_archive([{"filename": "x.txt", "content": "héllo"}])
        assert _entries(data) == {"x.txt": "héllo"}

    def test_invalid_items_skipped(self, caplog) -> None:
        items = [
            {"filename": "ok.py", "content": "1"},
            {"filename": "nocontent.py"},
            {"content": "orphan"},
            {"filename": "num.py", "content": 42},
            {"filename": "../escape.py", "content": "x"},
            "not a mapping",
        ]
        with caplog.at_level("WARNING", logger="codefixer.archive_writer"):
            data = write_archive(items)
        assert _entries(data) == {"ok.py": "1"}
        assert sum(r.levelname == "WARNING" for r in caplog.records) == 5

    def test_reader_sees_the_same_files(self) -> None:
        files = [
            ProjectFile(filename="main.py", content="print('hi')\n"),
            ProjectFile(filename="web/index.html", content="<p>é</p>"),
        ]
        result = read_archive(write_archive(files))
        assert result.files == files

    def test_zip_failure_becomes_archive_write_error(self) -> None:
        with patch("codefixer.archive_writer.zipfile.ZipFile", side_effect=OSError("disk")):
            with pytest.raises(ArchiveWriteError, match="disk"):
                write_archive([ProjectFile(filename="a.py", content="a")])


class TestWriteArchiveToPath:
    def test_writes_file_creating_parents(self, tmp_path: Path) -> None:
        target = tmp_path / "out" / "fixed.zip"
        returned = write_archive_to_path([{"filename": "a.py", "content": "a"}], target)
        assert returned == target
        assert _entries(target.read_bytes()) == {"a.py": "a"}

    def test_unwritable_target_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        with pytest.raises(ArchiveWriteError):
            write_archive_to_path([], blocker / "fixed.zip")
