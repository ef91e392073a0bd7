"""
codefixer/archive_reader.py
-----------------------------------------------------------------------------
Turn an uploaded project (a zip archive or one loose file) into a list of
``ProjectFile`` records.

The whole archive is read in memory with :mod:`zipfile`; nothing is extracted
to disk, so there is no temporary directory to clean up afterwards.

Filtering rules
---------------
1. Any entry below a directory named ``node_modules``, ``.git``, or any
   directory starting with a dot is skipped.
2. A basename on the deny-list (lock files) is skipped, even if it would
   otherwise be allowed.
3. What remains is kept if its lowercase basename is on the special-name
   allow-list, or its lowercase extension is on the extension allow-list.

Eligible entries are decoded as UTF-8.  An entry that cannot be read or
decoded is skipped with a warning; it never fails the whole upload.

Filenames are unique in the result.  When several entries normalise to the
same path, the last one in the archive wins and keeps the position of the
first.
"""

from __future__ import annotations

import io
import logging
import posixpath
import zipfile
from pathlib import Path, PurePosixPath

from codefixer.errors import ArchiveError, UploadInputError
from codefixer.schema import FileWarning, ProjectFile, UploadResult

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ALLOWED_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".js", ".ts", ".jsx", ".tsx", ".py", ".html", ".css", ".scss", ".less",
        ".json", ".xml", ".yaml", ".yml", ".md", ".txt", ".java", ".c", ".cpp",
        ".h", ".hpp", ".cs", ".php", ".rb", ".go", ".swift", ".kt", ".kts",
        ".dart", ".rs", ".sh", ".pl", ".lua", ".sql", ".r", ".m", ".scala",
        ".groovy", ".vue",
    }
)  # fmt: skip

# Matched against the lowercase basename, for files without a useful extension.
SPECIAL_FILENAMES: frozenset[str] = frozenset(
    {".env", ".gitignore", "dockerfile", "procfile", "readme.md"}
)

# Generated files that are large and useless as model context.
EXCLUDED_FILENAMES: frozenset[str] = frozenset(
    {"package-lock.json", "yarn.lock", "pnpm-lock.yaml"}
)

SKIPPED_DIRECTORIES: frozenset[str] = frozenset({"node_modules", ".git"})

MAX_UPLOAD_SIZE: int = 52_428_800  # 50 MB per uploaded archive
MAX_ENTRY_SIZE: int = 5_242_880  # 5 MB per file inside the archive


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def normalize_project_path(name: str) -> str | None:
    """
    Normalise an archive entry or model-supplied filename.

    Backslashes become forward slashes, ``.`` segments and duplicate slashes
    collapse.  Returns ``None`` for names that are empty, absolute, or climb
    out of the project root with ``..``.
    """
    cleaned = name.replace("\\", "/").strip()
    if not cleaned or cleaned.startswith("/"):
        return None
    # Windows drive letters survive the replace above ("C:/x").
    if len(cleaned) > 1 and cleaned[1] == ":":
        return None
    normalized = posixpath.normpath(cleaned)
    if normalized in (".", "") or normalized == ".." or normalized.startswith("../"):
        return None
    return normalized


def _in_skipped_directory(path: str) -> bool:
    """True if any *directory* component of ``path`` must not be descended."""
    for part in PurePosixPath(path).parts[:-1]:
        lowered = part.lower()
        if lowered in SKIPPED_DIRECTORIES or lowered.startswith("."):
            return True
    return False


def is_eligible_filename(path: str) -> bool:
    """
    Apply the deny-list and the two allow-lists to a file's basename.

    The directory part of ``path`` is not considered here; see
    :func:`_in_skipped_directory`.
    """
    basename = PurePosixPath(path).name.lower()
    if basename in EXCLUDED_FILENAMES:
        return False
    if basename in SPECIAL_FILENAMES:
        return True
    return PurePosixPath(basename).suffix in ALLOWED_EXTENSIONS


# ---------------------------------------------------------------------------
# Zip archives
# ---------------------------------------------------------------------------


def read_archive(zip_bytes: bytes) -> UploadResult:
    """
    Read every eligible text file from an in-memory zip archive.

    Parameters
    ----------
    zip_bytes : Raw bytes of the uploaded archive.

    Returns
    -------
    UploadResult : Eligible files in archive order, plus warnings for
                   entries that were eligible but had to be skipped.

    Raises
    ------
    UploadInputError
        If the upload is larger than ``MAX_UPLOAD_SIZE``.
    ArchiveError
        If the bytes are not a zip archive, or no eligible file survives
        filtering.
    """
    if len(zip_bytes) > MAX_UPLOAD_SIZE:
        raise UploadInputError(
            f"Upload size ({len(zip_bytes):,} bytes) exceeds the "
            f"{MAX_UPLOAD_SIZE:,}-byte limit."
        )
    if not zipfile.is_zipfile(io.BytesIO(zip_bytes)):
        raise ArchiveError("Uploaded file is not a valid zip archive.")

    collected: dict[str, ProjectFile] = {}
    warnings: list[FileWarning] = []
    scanned = 0

    try:
        with zipfile.ZipFile(io.BytesIO(zip_bytes), mode="r") as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                scanned += 1

                path = normalize_project_path(info.filename)
                if path is None:
                    logger.warning("Skipping unsafe archive entry %r", info.filename)
                    warnings.append(
                        FileWarning(filename=info.filename, detail="Unsafe path, skipped.")
                    )
                    continue

                if _in_skipped_directory(path) or not is_eligible_filename(path):
                    continue

                if info.file_size > MAX_ENTRY_SIZE:
                    logger.warning(
                        "Skipping %s: %d bytes exceeds per-file limit", path, info.file_size
                    )
                    warnings.append(
                        FileWarning(
                            filename=path,
                            detail=f"File is larger than {MAX_ENTRY_SIZE:,} bytes, skipped.",
                        )
                    )
                    continue

                try:
                    content = zf.read(info).decode("utf-8")
                except (UnicodeDecodeError, zipfile.BadZipFile, OSError, RuntimeError) as exc:
                    # RuntimeError covers encrypted entries.
                    logger.warning("Failed to read %s: %s: %s", path, type(exc).__name__, exc)
                    warnings.append(
                        FileWarning(filename=path, detail="Could not be read as UTF-8 text.")
                    )
                    continue

                if path in collected:
                    logger.warning("Duplicate archive entry %s; keeping the later copy", path)
                    warnings.append(
                        FileWarning(
                            filename=path,
                            detail="Duplicate entry in the archive, the later copy was kept.",
                        )
                    )
                collected[path] = ProjectFile(filename=path, content=content)
    except zipfile.BadZipFile as exc:
        raise ArchiveError(f"Uploaded archive is corrupt: {exc}") from exc

    files = list(collected.values())
    logger.info(
        "Read archive: %d entries scanned, %d files collected, %d warnings",
        scanned,
        len(files),
        len(warnings),
    )

    if not files:
        raise ArchiveError("The ZIP file seems to be empty or could not be processed.")

    return UploadResult(files=files, warnings=warnings)


def read_archive_file(path: Path) -> UploadResult:
    """Read an archive from disk; see :func:`read_archive`."""
    with path.open("rb") as fh:
        return read_archive(fh.read())


# ---------------------------------------------------------------------------
# Single files
# ---------------------------------------------------------------------------


def read_single_file(filename: str | None, data: bytes) -> UploadResult:
    """
    Wrap one uploaded text file as a single-file project.

    Only the basename of ``filename`` is kept; browsers may send a full
    client-side path.

    Raises
    ------
    UploadInputError
        If no filename or no data was sent, the file type is not supported,
        the file is too large, or the bytes are not UTF-8 text.
    """
    if not filename or not filename.strip():
        raise UploadInputError("No file uploaded.")
    basename = PurePosixPath(filename.replace("\\", "/")).name
    if not basename or basename in (".", ".."):
        raise UploadInputError("No file uploaded.")
    if not data:
        raise UploadInputError(f"Uploaded file '{basename}' is empty.")
    if not is_eligible_filename(basename):
        raise UploadInputError(f"Unsupported file type: '{basename}'.")
    if len(data) > MAX_ENTRY_SIZE:
        raise UploadInputError(
            f"Uploaded file '{basename}' exceeds the {MAX_ENTRY_SIZE:,}-byte limit."
        )
    try:
        content = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise UploadInputError(f"Uploaded file '{basename}' is not UTF-8 text.") from exc

    logger.info("Read single file %s (%d bytes)", basename, len(data))
    return UploadResult(files=[ProjectFile(filename=basename, content=content)])
