"""
tests/test_archive_reader.py
─────────────────────────────────────────────────────────────────────────────
Tests for codefixer/archive_reader.py — filtering, decoding, limits, and
single-file uploads.
"""

from __future__ import annotations

import io
import zipfile
from pathlib import Path
from unittest.mock import patch

import pytest

from codefixer.archive_reader import (
    is_eligible_filename,
    normalize_project_path,
    read_archive,
    read_archive_file,
    read_single_file,
)
from codefixer.errors import ArchiveError, UploadInputError

# ─────────────────────────────────────────────────────────────────────────────
# normalize_project_path
# ─────────────────────────────────────────────────────────────────────────────


class TestNormalizeProjectPath:
    def test_backslashes_become_forward_slashes(self) -> None:
        assert normalize_project_path("src\\lib\\a.js") == "src/lib/a.js"

    def test_dot_segments_collapse(self) -> None:
        assert normalize_project_path("./src//a.js") == "src/a.js"

    @pytest.mark.parametrize("name", ["/etc/passwd", "../secret.txt", "a/../../b.txt", "C:/x.py", ""])
    def test_unsafe_names_rejected(self, name: str) -> None:
        assert normalize_project_path(name) is None

    def test_inner_parent_reference_that_stays_inside_is_kept(self) -> None:
        assert normalize_project_path("src/../a.js") == "a.js"


# ─────────────────────────────────────────────────────────────────────────────
# is_eligible_filename
# ─────────────────────────────────────────────────────────────────────────────


class TestIsEligibleFilename:
    @pytest.mark.parametrize(
        "name", ["app.py", "src/App.TSX", "styles/main.scss", "schema.sql", "notes.txt"]
    )
    def test_allowed_extensions(self, name: str) -> None:
        assert is_eligible_filename(name)

    @pytest.mark.parametrize("name", [".env", ".gitignore", "Dockerfile", "Procfile", "README.md"])
    def test_special_filenames(self, name: str) -> None:
        assert is_eligible_filename(name)

    @pytest.mark.parametrize("name", ["package-lock.json", "web/yarn.lock", "pnpm-lock.yaml"])
    def test_deny_list_wins_over_allow_list(self, name: str) -> None:
        assert not is_eligible_filename(name)

    @pytest.mark.parametrize("name", ["logo.png", "app.exe", "Makefile", ".DS_Store"])
    def test_other_files_rejected(self, name: str) -> None:
        assert not is_eligible_filename(name)


# ─────────────────────────────────────────────────────────────────────────────
# read_archive
# ─────────────────────────────────────────────────────────────────────────────


class TestReadArchive:
    def test_scenario_node_modules_and_lock_file_excluded(self, make_zip) -> None:
        zip_bytes = make_zip(
            {
                "src/a.js": "x",
                "node_modules/lib/b.js": "module.exports = 1;",
                "package-lock.json": "{}",
            }
        )
        result = read_archive(zip_bytes)
        assert [(f.filename, f.content) for f in result.files] == [("src/a.js", "x")]
        assert result.warnings == []

    def test_dot_directories_skipped_but_dotfiles_kept(self, make_zip) -> None:
        zip_bytes = make_zip(
            {
                ".git/config.txt": "[core]",
                ".github/workflows/ci.yml": "on: push",
                "nested/.venv/lib/site.py": "pass",
                ".env": "KEY=1",
                "app/.gitignore": "*.pyc",
            }
        )
        names = [f.filename for f in read_archive(zip_bytes).files]
        assert names == [".env", "app/.gitignore"]

    def test_count_matches_eligible_entries(self, make_zip) -> None:
        entries = {
            "main.py": "print(1)",
            "lib/util.go": "package lib",
            "Dockerfile": "FROM python",
            "docs/readme.md": "# docs",
            "img/logo.png": b"\x89PNG",
            "yarn.lock": "# lock",
            "node_modules/x/index.js": "",
        }
        result = read_archive(make_zip(entries))
        assert len(result.files) == 4

    def test_archive_order_preserved(self, make_zip) -> None:
        zip_bytes = make_zip({"b.py": "b", "a.py": "a", "c.py": "c"})
        assert [f.filename for f in read_archive(zip_bytes).files] == ["b.py", "a.py", "c.py"]

    def test_duplicate_paths_collapse_to_last_entry(self) -> None:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("src/a.js", "first")
            zf.writestr("lib/b.js", "b")
            zf.writestr("./src/a.js", "second")
            zf.writestr("src//a.js", "third")
        result = read_archive(buffer.getvalue())
        assert [(f.filename, f.content) for f in result.files] == [
            ("src/a.js", "third"),
            ("lib/b.js", "b"),
        ]
        assert [w.filename for w in result.warnings] == ["src/a.js", "src/a.js"]

    def test_directory_entries_ignored(self) -> None:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("src/", "")
            zf.writestr("src/a.py", "a = 1")
        result = read_archive(buffer.getvalue())
        assert [f.filename for f in result.files] == ["src/a.py"]

    def test_non_utf8_entry_skipped_with_warning(self, make_zip, caplog) -> None:
        zip_bytes = make_zip({"good.py": "ok", "bad.py": b"\xff\xfe\x00bad"})
        with caplog.at_level("WARNING", logger="codefixer.archive_reader"):
            result = read_archive(zip_bytes)
        assert [f.filename for f in result.files] == ["good.py"]
        assert [w.filename for w in result.warnings] == ["bad.py"]
        assert any("bad.py" in r.getMessage() for r in caplog.records)

    def test_unsafe_entry_skipped_with_warning(self, make_zip) -> None:
        zip_bytes = make_zip({"../evil.py": "boom", "safe.py": "ok"})
        result = read_archive(zip_bytes)
        assert [f.filename for f in result.files] == ["safe.py"]
        assert result.warnings[0].filename == "../evil.py"

    def test_oversized_entry_skipped(self, make_zip) -> None:
        zip_bytes = make_zip({"big.txt": "x" * 64, "small.txt": "y"})
        with patch("codefixer.archive_reader.MAX_ENTRY_SIZE", 32):
            result = read_archive(zip_bytes)
        assert [f.filename for f in result.files] == ["small.txt"]
        assert result.warnings[0].filename == "big.txt"

    def test_not_a_zip_raises(self) -> None:
        with pytest.raises(ArchiveError, match="not a valid zip"):
            read_archive(b"definitely not a zip")

    def test_no_eligible_files_raises(self, make_zip) -> None:
        zip_bytes = make_zip({"logo.png": b"\x89PNG", "node_modules/a.js": "x"})
        with pytest.raises(ArchiveError, match="empty"):
            read_archive(zip_bytes)

    def test_empty_archive_raises(self, make_zip) -> None:
        with pytest.raises(ArchiveError):
            read_archive(make_zip({}))

    def test_oversized_upload_raises(self, make_zip) -> None:
        zip_bytes = make_zip({"a.py": "a"})
        with patch("codefixer.archive_reader.MAX_UPLOAD_SIZE", 10):
            with pytest.raises(UploadInputError, match="exceeds"):
                read_archive(zip_bytes)

    def test_read_archive_file(self, make_zip, tmp_path: Path) -> None:
        path = tmp_path / "project.zip"
        path.write_bytes(make_zip({"main.rs": "fn main() {}"}))
        result = read_archive_file(path)
        assert result.files[0].filename == "main.rs"


# ─────────────────────────────────────────────────────────────────────────────
# read_single_file
# ─────────────────────────────────────────────────────────────────────────────


class TestReadSingleFile:
    def test_happy_path(self) -> None:
        result = read_single_file("script.py", b"print('x')\n")
        assert len(result.files) == 1
        assert result.files[0].filename == "script.py"
        assert result.files[0].content == "print('x')\n"

    def test_client_path_reduced_to_basename(self) -> None:
        result = read_single_file("C:\\Users\\me\\app.js", b"let a;")
        assert result.files[0].filename == "app.js"

    def test_missing_filename_raises(self) -> None:
        with pytest.raises(UploadInputError):
            read_single_file(None, b"data")

    def test_empty_data_raises(self) -> None:
        with pytest.raises(UploadInputError, match="empty"):
            read_single_file("a.py", b"")

    def test_unsupported_type_raises(self) -> None:
        with pytest.raises(UploadInputError, match="Unsupported"):
            read_single_file("photo.jpg", b"\xff\xd8")

    def test_non_utf8_raises(self) -> None:
        with pytest.raises(UploadInputError, match="UTF-8"):
            read_single_file("a.py", b"\xff\xfe\x00")
