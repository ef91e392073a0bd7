"""
codefixer/reconciler.py
-----------------------------------------------------------------------------
Merge the model's file operations into the current project state.

Merge policy
------------
The working state is an insertion-ordered ``dict`` of filename → content
built from the prior files, so original files keep their order and newly
created files follow in the order the model emitted them.

=========== ============================================================
action      effect on the state
=========== ============================================================
created     ``state[filename] = content``  (last write wins)
modified    ``state[filename] = content``  (last write wins)
deleted     ``state.pop(filename)``; unknown names only produce a warning
unchanged   no effect
=========== ============================================================

Records are validated one by one.  A malformed record (not an object, no
string filename, unknown action, missing content, unsafe path) is skipped
with a :class:`FileWarning`; the rest of the round still applies.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from codefixer.archive_reader import normalize_project_path
from codefixer.schema import FileAction, FileOperation, FileWarning, ProjectFile

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    file_changes: list[FileOperation] = field(default_factory=list)
    updated_state: list[ProjectFile] = field(default_factory=list)
    warnings: list[FileWarning] = field(default_factory=list)


def _validate(raw: Any) -> FileOperation | FileWarning:
    """Turn one raw record into a FileOperation, or explain why not."""
    if not isinstance(raw, dict):
        return FileWarning(detail="AI returned a malformed file operation object.")

    filename = raw.get("filename")
    action = raw.get("action")
    if not isinstance(filename, str) or not isinstance(action, str):
        return FileWarning(
            filename=filename if isinstance(filename, str) else "N/A",
            detail="AI returned a file operation without a string filename and action.",
        )

    path = normalize_project_path(filename)
    if path is None:
        return FileWarning(filename=filename, detail="Unsafe or empty file path, skipped.")

    try:
        kind = FileAction(action.strip().lower())
    except ValueError:
        return FileWarning(filename=path, detail=f"Unknown AI action: '{action}'.")

    content = raw.get("content")
    if kind in (FileAction.CREATED, FileAction.MODIFIED) and not isinstance(content, str):
        return FileWarning(
            filename=path,
            detail=f"Marked '{kind.value}' but AI content was missing or not a string.",
        )

    explanation = raw.get("explanation")
    return FileOperation(
        filename=path,
        content=content if isinstance(content, str) else None,
        action=kind,
        explanation=explanation if isinstance(explanation, str) else None,
    )


def reconcile(
    prior_files: Iterable[ProjectFile],
    operations: Sequence[Any],
) -> ReconcileResult:
    """
    Apply ``operations`` to ``prior_files``.

    Parameters
    ----------
    prior_files : The project state before this round.
    operations  : Raw ``file_operations`` records from the model reply.

    Returns
    -------
    ReconcileResult
        ``file_changes`` holds only operations that changed the state, in
        emission order; ``updated_state`` is the full materialised state.
    """
    state: dict[str, str] = {}
    for f in prior_files:
        state[f.filename] = f.content

    result = ReconcileResult()

    for raw in operations:
        op = _validate(raw)
        if isinstance(op, FileWarning):
            logger.warning("Skipping file operation for %s: %s", op.filename, op.detail)
            result.warnings.append(op)
            continue

        if op.action in (FileAction.CREATED, FileAction.MODIFIED):
            state[op.filename] = op.content
            result.file_changes.append(op)
        elif op.action is FileAction.DELETED:
            if op.filename in state:
                del state[op.filename]
                result.file_changes.append(op)
            else:
                result.warnings.append(
                    FileWarning(
                        filename=op.filename,
                        detail="Marked 'deleted' but no such file exists in the project.",
                    )
                )
        # FileAction.UNCHANGED leaves the state alone.

    result.updated_state = [
        ProjectFile(filename=name, content=content) for name, content in state.items()
    ]
    return result
