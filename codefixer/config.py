"""
codefixer/config.py
-----------------------------------------------------------------------------
Environment-driven settings for the CodeFixer API.

Values are read from the process environment, after loading a ``.env`` file
if one is present.  ``Settings.from_env()`` is called once by
``codefixer.main.create_app`` and the resulting object is handed to the
services that need it, so nothing else in the package reads ``os.environ``.

Environment variables
---------------------
GEMINI_API_KEY            – API key for the Gemini ``generateContent`` API.
GEMINI_MODEL              – Model identifier (default: gemini-1.5-flash).
GEMINI_API_BASE           – REST base URL (default: the public v1beta root).
AI_TIMEOUT_SECONDS        – Read timeout for one model call (default: 300).
AI_MAX_ATTEMPTS           – Attempts on transient network failure (default: 3).
AI_RETRY_DELAY_SECONDS    – Fixed delay between attempts (default: 2).
REQUIRE_API_KEY           – Abort startup when the key is missing (default: true).
RATE_LIMIT_REQUESTS       – Requests allowed per client per window (default: 100).
RATE_LIMIT_WINDOW_SECONDS – Rate-limit window length (default: 900).
LOG_LEVEL                 – Logging level name (default: INFO).
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration."""

    gemini_api_key: str | None = None
    gemini_model: str = "gemini-1.5-flash"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    ai_timeout_seconds: float = 300.0
    ai_max_attempts: int = 3
    ai_retry_delay_seconds: float = 2.0
    require_api_key: bool = True
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 900
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        """
        Build settings from the environment.

        ``load_dotenv`` never overrides variables that are already set, so
        values exported by the process manager win over the ``.env`` file.
        """
        load_dotenv()
        api_key = (os.getenv("GEMINI_API_KEY") or "").strip() or None
        return cls(
            gemini_api_key=api_key,
            gemini_model=os.getenv("GEMINI_MODEL", cls.gemini_model),
            gemini_api_base=os.getenv("GEMINI_API_BASE", cls.gemini_api_base).rstrip("/"),
            ai_timeout_seconds=_env_float("AI_TIMEOUT_SECONDS", cls.ai_timeout_seconds),
            ai_max_attempts=_env_int("AI_MAX_ATTEMPTS", cls.ai_max_attempts),
            ai_retry_delay_seconds=_env_float(
                "AI_RETRY_DELAY_SECONDS", cls.ai_retry_delay_seconds
            ),
            require_api_key=_env_bool("REQUIRE_API_KEY", cls.require_api_key),
            rate_limit_requests=_env_int("RATE_LIMIT_REQUESTS", cls.rate_limit_requests),
            rate_limit_window_seconds=_env_int(
                "RATE_LIMIT_WINDOW_SECONDS", cls.rate_limit_window_seconds
            ),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )
