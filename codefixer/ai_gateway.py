"""
codefixer/ai_gateway.py
-----------------------------------------------------------------------------
Send a bundled project plus a user instruction to the model and get back a
validated reply envelope.

Steps for one round
-------------------
1. Render the fix directive (``prompts/fix_directive.txt``) with the user's
   command and the file bundle.  An empty command becomes the general
   cleanup instruction; the request is still made.
2. Call Gemini through :func:`codefixer.gemini_client.gemini_generate`,
   wrapped in a :class:`codefixer.retry.RetryPolicy`.
3. Strip an optional markdown code fence from the reply.
4. Parse strictly as JSON and check the envelope shape: an object with
   ``file_operations`` and ``suggested_changes`` arrays.

Individual file-operation records are *not* validated here; that is the
reconciler's job, so one bad record costs a warning instead of the round.

Transport failures become :class:`AIRequestError`; anything wrong with what
the model said becomes :class:`AIResponseFormatError`.  The raw reply is
logged server-side only, never put into an error message.
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from codefixer.bundle_builder import build_bundle
from codefixer.config import Settings
from codefixer.errors import AIRequestError, AIResponseFormatError
from codefixer.file_loaders import (
    GENERAL_CLEANUP,
    SYSTEM_INSTRUCTION,
    load_directive_template,
    load_prompt,
)
from codefixer.gemini_client import gemini_generate
from codefixer.retry import RetryPolicy, fixed_backoff
from codefixer.schema import ProjectFile

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$", re.IGNORECASE)

_MALFORMED_MESSAGE = "AI returned malformed JSON. Check server logs for the raw output."


@dataclass
class AIReply:
    """The model's reply after envelope validation."""

    file_operations: list[Any]
    suggested_changes: list[str]
    usage: dict = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Reply parsing
# -----------------------------------------------------------------------------


def strip_code_fence(text: str) -> str:
    """
    Remove a surrounding ```` ``` ```` / ```` ```json ```` fence, if any.

    Text without a fence is returned trimmed but otherwise untouched.
    """
    trimmed = text.strip()
    match = _FENCE_RE.match(trimmed)
    if match:
        return match.group(1).strip()
    return trimmed


def parse_ai_response(text: str) -> AIReply:
    """
    Parse the model's reply into an :class:`AIReply`.

    Raises
    ------
    AIResponseFormatError
        If the reply is not valid JSON, is not an object, or lacks either
        of the ``file_operations`` / ``suggested_changes`` arrays.
    """
    candidate = strip_code_fence(text)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse AI JSON response: %s. Raw response: %r", exc, text)
        raise AIResponseFormatError(_MALFORMED_MESSAGE, raw_response=text) from exc

    if (
        not isinstance(data, dict)
        or not isinstance(data.get("file_operations"), list)
        or not isinstance(data.get("suggested_changes"), list)
    ):
        logger.error(
            "AI response was not an object with 'file_operations' and "
            "'suggested_changes' arrays. Raw response: %r",
            text,
        )
        raise AIResponseFormatError(_MALFORMED_MESSAGE, raw_response=text)

    suggestions = [s for s in data["suggested_changes"] if isinstance(s, str)]
    if len(suggestions) != len(data["suggested_changes"]):
        logger.debug("Dropped non-string entries from suggested_changes")

    return AIReply(file_operations=data["file_operations"], suggested_changes=suggestions)


# -----------------------------------------------------------------------------
# Gateway
# -----------------------------------------------------------------------------


class AIGateway:
    """
    Client for one model refinement round.

    The ``generate`` callable defaults to :func:`gemini_generate` and is a
    seam for tests and alternative backends.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        base_url: str,
        read_timeout: float,
        retry_policy: RetryPolicy | None = None,
        generate: Callable[..., tuple[str, dict]] = gemini_generate,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.read_timeout = read_timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self._generate = generate

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        generate: Callable[..., tuple[str, dict]] = gemini_generate,
        sleep: Callable[[float], None] = time.sleep,
    ) -> AIGateway:
        policy = RetryPolicy(
            max_attempts=settings.ai_max_attempts,
            backoff=fixed_backoff(settings.ai_retry_delay_seconds),
            sleep=sleep,
        )
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_api_base,
            read_timeout=settings.ai_timeout_seconds,
            retry_policy=policy,
            generate=generate,
        )

    @staticmethod
    def effective_command(user_prompt: str | None) -> str:
        """The user's instruction, or the general cleanup one when blank."""
        if user_prompt and user_prompt.strip():
            return user_prompt.strip()
        return load_prompt(GENERAL_CLEANUP)

    def build_prompt(self, files: Sequence[ProjectFile], user_prompt: str | None) -> str:
        """Render the fix directive for ``files`` and ``user_prompt``."""
        return load_directive_template().substitute(
            user_command=self.effective_command(user_prompt),
            project_files=build_bundle(files),
        )

    def request_fix(self, files: Sequence[ProjectFile], user_prompt: str | None = None) -> AIReply:
        """
        Run one round against the model.

        Raises
        ------
        AIRequestError        : No API key, HTTP error, timeout, or network
                                failure after the retry budget.
        AIResponseFormatError : The model's reply is unusable.
        """
        if not self.api_key:
            raise AIRequestError("AI service is not configured: GEMINI_API_KEY is missing.")

        prompt = self.build_prompt(files, user_prompt)
        system_instruction = load_prompt(SYSTEM_INSTRUCTION)

        logger.info(
            "Sending prompt to %s for %d files (%d chars). User prompt: %r",
            self.model,
            len(files),
            len(prompt),
            (user_prompt or "").strip() or "General Analysis",
        )

        def _call() -> tuple[str, dict]:
            return self._generate(
                api_key=self.api_key,
                model=self.model,
                system_instruction=system_instruction,
                prompt=prompt,
                base_url=self.base_url,
                read_timeout=self.read_timeout,
            )

        try:
            text, usage = self.retry_policy.call(_call, description="Gemini request")
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Gemini returned HTTP %s: %s",
                exc.response.status_code,
                exc.response.text[:500],
            )
            raise AIRequestError(
                f"AI service returned HTTP {exc.response.status_code}."
            ) from exc
        except httpx.TimeoutException as exc:
            logger.error("Gemini request timed out after %.0fs", self.read_timeout)
            raise AIRequestError("AI service request timed out.") from exc
        except httpx.HTTPError as exc:
            raise AIRequestError(
                f"Could not reach the AI service: {type(exc).__name__}."
            ) from exc
        except ValueError as exc:
            logger.error("Gemini returned an unusable response: %s", exc)
            raise AIResponseFormatError(
                "Received an invalid or empty response from the AI service."
            ) from exc

        reply = parse_ai_response(text)
        reply.usage = usage
        logger.info(
            "Parsed AI response: %d file operations, %d suggestions",
            len(reply.file_operations),
            len(reply.suggested_changes),
        )
        return reply
