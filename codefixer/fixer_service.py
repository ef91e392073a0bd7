"""
codefixer/fixer_service.py
-----------------------------------------------------------------------------
One refinement round: call the model, merge its operations, report.

``FixerService`` is built once in ``codefixer.main.create_app`` and handed
to route handlers through a FastAPI dependency, so tests can swap in a fake
gateway without patching module globals.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence

from codefixer.ai_gateway import AIGateway
from codefixer.errors import UploadInputError
from codefixer.reconciler import reconcile
from codefixer.schema import FixResult, ProjectFile

logger = logging.getLogger(__name__)


class FixerService:
    def __init__(self, gateway: AIGateway) -> None:
        self.gateway = gateway

    def fix(self, files: Sequence[ProjectFile], user_prompt: str | None = None) -> FixResult:
        """
        Send ``files`` to the model and merge its reply into them.

        Raises
        ------
        UploadInputError : ``files`` is empty.
        AIRequestError, AIResponseFormatError : from the gateway.
        """
        if not files:
            raise UploadInputError("No files provided for fixing. Please upload a project first.")

        reply = self.gateway.request_fix(files, user_prompt)
        merged = reconcile(files, reply.file_operations)

        counts = Counter(op.action.value for op in merged.file_changes)
        logger.info(
            "Round applied: created=%d modified=%d deleted=%d skipped=%d; state now %d files",
            counts["created"],
            counts["modified"],
            counts["deleted"],
            len(merged.warnings),
            len(merged.updated_state),
        )

        return FixResult(
            file_changes=merged.file_changes,
            suggested_changes=reply.suggested_changes,
            updated_project_state=merged.updated_state,
            warnings=merged.warnings,
        )

    @staticmethod
    def summarize(result: FixResult) -> str:
        """Human-readable status line for a finished round."""
        if not result.file_changes:
            return "AI processing complete. No files were changed."
        counts = Counter(op.action.value for op in result.file_changes)
        return (
            f"Project processing complete. {len(result.file_changes)} file change(s) applied "
            f"(Created: {counts['created']}, Modified: {counts['modified']}, "
            f"Deleted: {counts['deleted']})."
        )
