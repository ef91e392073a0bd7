"""
codefixer/schema.py
-----------------------------------------------------------------------------
Pydantic v2 models for every request / response object in the CodeFixer API,
plus the domain records that flow between pipeline stages.

Design principles
-----------------
• Keep models thin – no business logic here.
• Python attributes are snake_case; the JSON wire format is camelCase
  (``fileChanges``, ``userPrompt``, ``projectState`` ...) to match the
  frontend contract.  Both spellings are accepted on input.
• Every field has a ``description`` so FastAPI's OpenAPI UI is immediately
  useful.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# -----------------------------------------------------------------------------
# Domain records
# -----------------------------------------------------------------------------


class _WireModel(BaseModel):
    """Base for models whose JSON keys are camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


class ProjectFile(_WireModel):
    """
    One file of the user's project.

    ``filename`` is a forward-slash path relative to the project root and is
    the key of the file within a project state.
    """

    filename: str = Field(
        ...,
        min_length=1,
        description="Forward-slash path relative to the project root.",
        examples=["src/index.js", "README.md"],
    )
    content: str = Field(
        ...,
        description="Full UTF-8 text content of the file.",
    )

    @field_validator("filename")
    @classmethod
    def filename_not_blank(cls, v: str) -> str:
        """Normalise separators and reject whitespace-only names."""
        v = v.strip().replace("\\", "/")
        if not v:
            raise ValueError("filename must not be empty or whitespace")
        return v


class FileAction(str, Enum):
    """What a file operation does to the project state."""

    CREATED = "created"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    DELETED = "deleted"


class FileOperation(_WireModel):
    """
    A single file-level change proposed by the model and applied by the
    reconciler.

    ``content`` is present for ``created`` / ``modified`` and absent for
    ``deleted``.
    """

    filename: str = Field(..., description="Path of the affected file.")
    content: str | None = Field(
        default=None,
        description="New file content (created / modified only).",
    )
    action: FileAction = Field(..., description="created, modified, unchanged or deleted.")
    explanation: str | None = Field(
        default=None,
        description="One-sentence summary of the change, as written by the model.",
    )


class FileWarning(_WireModel):
    """A non-fatal note about a file or operation that was skipped."""

    filename: str = Field(
        default="N/A",
        description="The file the warning is about, or 'N/A' when unknown.",
    )
    detail: str = Field(..., description="Human-readable reason.")


class UploadResult(_WireModel):
    """Outcome of reading an uploaded archive or single file."""

    files: list[ProjectFile] = Field(
        default_factory=list,
        description="Eligible files, in archive order.",
    )
    warnings: list[FileWarning] = Field(
        default_factory=list,
        description="Entries that were eligible but could not be read.",
    )


class FixResult(_WireModel):
    """Outcome of one AI refinement round."""

    file_changes: list[FileOperation] = Field(
        default_factory=list,
        alias="fileChanges",
        description="Only the operations that changed the project state.",
    )
    suggested_changes: list[str] = Field(
        default_factory=list,
        alias="suggestedChanges",
        description="Follow-up suggestions from the model.",
    )
    updated_project_state: list[ProjectFile] = Field(
        default_factory=list,
        alias="updatedProjectState",
        description="Full project state after merging the operations.",
    )
    warnings: list[FileWarning] = Field(
        default_factory=list,
        description="Operations that were malformed and skipped.",
    )


# -----------------------------------------------------------------------------
# Request bodies
# -----------------------------------------------------------------------------


class FixRequest(_WireModel):
    """
    Request body for POST /api/fix.

    The client sends its whole current project state plus an optional
    instruction.  An empty or missing ``userPrompt`` asks for a general
    cleanup pass.
    """

    files: list[ProjectFile] = Field(
        ...,
        description="Current project state as a file list.",
    )
    user_prompt: str | None = Field(
        default=None,
        alias="userPrompt",
        description="Free-text instruction for the model.  Optional.",
        examples=["Add input validation to the signup handler."],
    )


class DownloadRequest(_WireModel):
    """
    Request body for POST /api/download.

    Items are accepted as arbitrary JSON values so that the archive writer can
    skip individual malformed entries instead of rejecting the whole request.
    """

    project_state: list[Any] = Field(
        ...,
        alias="projectState",
        description="List of {filename, content} objects to archive.",
    )
    filename: str | None = Field(
        default=None,
        description="Optional download name for the archive.",
        examples=["fixed-project.zip"],
    )


# -----------------------------------------------------------------------------
# Response envelopes
# -----------------------------------------------------------------------------


class UploadResponse(UploadResult):
    """Response body for POST /api/upload and POST /api/upload-single."""

    success: bool = Field(default=True, description="Always true on 200 responses.")
    message: str = Field(..., description="Human-readable status line.")


class FixResponse(FixResult):
    """Response body for POST /api/fix."""

    success: bool = Field(default=True, description="Always true on 200 responses.")
    message: str = Field(..., description="Human-readable summary of the round.")


class ErrorResponse(_WireModel):
    """Envelope returned for every handled failure."""

    success: bool = Field(default=False, description="Always false.")
    message: str = Field(..., description="What went wrong, safe to show to users.")
