"""
codefixer/errors.py
-----------------------------------------------------------------------------
Error taxonomy for the CodeFixer pipeline.

Every failure a route handler can surface is a subclass of
:class:`CodeFixerError` carrying the HTTP status code it maps to.  The
exception handlers registered in ``codefixer.main`` turn these into the
``{"success": false, "message": ...}`` envelope the frontend expects, so the
domain modules never import FastAPI for error signalling.

Status mapping
--------------
UploadInputError       → 400  (no file, wrong type, oversize upload)
ArchiveError           → 400  (corrupt zip, or no eligible entries)
AIRequestError         → 500  (transport failure talking to the model)
AIResponseFormatError  → 500  (model returned non-JSON / wrong shape)
ArchiveWriteError      → 500  (zip serialisation failed)
RateLimitExceeded      → 429  (too many requests from one client address)
"""

from __future__ import annotations


class CodeFixerError(Exception):
    """Base class for all errors the API reports to the client."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UploadInputError(CodeFixerError):
    """The request did not carry a usable upload."""

    status_code = 400


class ArchiveError(CodeFixerError):
    """The uploaded archive is corrupt or contains no eligible files."""

    status_code = 400


class AIRequestError(CodeFixerError):
    """The request to the generative-AI service could not be completed."""

    status_code = 500


class AIResponseFormatError(CodeFixerError):
    """
    The model replied, but not with the JSON object we asked for.

    ``raw_response`` keeps the unparsed reply for server-side diagnostics.
    It is never included in ``message``, which is what the client sees.
    """

    status_code = 500

    def __init__(self, message: str, raw_response: str | None = None) -> None:
        super().__init__(message)
        self.raw_response = raw_response


class ArchiveWriteError(CodeFixerError):
    """Writing the output zip failed."""

    status_code = 500


class RateLimitExceeded(CodeFixerError):
    """A client address exhausted its request budget for the current window."""

    status_code = 429

    def __init__(
        self, message: str, retry_after: int, headers: dict[str, str] | None = None
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.headers = dict(headers or {})
