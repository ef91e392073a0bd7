"""
codefixer/archive_writer.py
-----------------------------------------------------------------------------
Serialise a list of ``{filename, content}`` items into a zip archive.

- An empty list produces a valid, zero-entry archive.  "No changes" is a
  normal outcome, not an error.
- Items with a missing filename or non-string content are skipped one at a
  time with a logged warning.
- Entries are written in input order with DEFLATE at level 9.
- Filenames go through the same normalisation as uploads, so an archive
  produced here never contains absolute or ``..`` paths.
"""

from __future__ import annotations

import io
import logging
import zipfile
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from codefixer.archive_reader import normalize_project_path
from codefixer.errors import ArchiveWriteError
from codefixer.schema import ProjectFile

logger = logging.getLogger(__name__)

_COMPRESSLEVEL = 9


def _item_fields(item: Any) -> tuple[Any, Any]:
    if isinstance(item, ProjectFile):
        return item.filename, item.content
    if isinstance(item, Mapping):
        return item.get("filename"), item.get("content")
    return None, None


def _write_entries(zf: zipfile.ZipFile, files: Iterable[Any]) -> int:
    written = 0
    for index, item in enumerate(files):
        filename, content = _item_fields(item)
        if not isinstance(filename, str) or not isinstance(content, str):
            logger.warning("Skipping archive item %d: missing filename or non-string content", index)
            continue
        arcname = normalize_project_path(filename)
        if arcname is None:
            logger.warning("Skipping archive item %d: unsafe filename %r", index, filename)
            continue
        zf.writestr(arcname, content.encode("utf-8"))
        written += 1
    return written


def write_archive(files: Iterable[Any]) -> bytes:
    """
    Build a zip archive in memory.

    Parameters
    ----------
    files : ``ProjectFile`` records or ``{"filename", "content"}`` mappings.

    Returns
    -------
    bytes : Raw zip bytes, ready to stream to the client.

    Raises
    ------
    ArchiveWriteError : If the zip stream cannot be written.
    """
    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(
            buffer, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=_COMPRESSLEVEL
        ) as zf:
            written = _write_entries(zf, files)
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        logger.error("Archive write failed: %s: %s", type(exc).__name__, exc)
        raise ArchiveWriteError(f"Failed to create the ZIP archive: {exc}") from exc

    data = buffer.getvalue()
    logger.info("Archive created in memory: %d entries, %d bytes", written, len(data))
    return data


def write_archive_to_path(files: Iterable[Any], path: Path) -> Path:
    """
    Write the archive to ``path`` (parent directories are created).

    Raises
    ------
    ArchiveWriteError : If the file cannot be written.
    """
    data = write_archive(files)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as exc:
        raise ArchiveWriteError(f"Failed to write ZIP archive to {path}: {exc}") from exc
    return path
