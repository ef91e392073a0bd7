"""Shared fixtures for the CodeFixer test suite."""

from __future__ import annotations

import io
import json
import zipfile
from collections.abc import Callable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from codefixer.ai_gateway import AIGateway
from codefixer.config import Settings
from codefixer.main import create_app
from codefixer.schema import ProjectFile


class FakeGenerate:
    """
    Stand-in for ``gemini_generate`` that records its calls.

    ``reply`` is returned as the model text; ``side_effects`` (exceptions)
    are raised in order before any reply is returned.
    """

    def __init__(self, reply: str = "") -> None:
        self.reply = reply
        self.side_effects: list[BaseException] = []
        self.calls: list[dict] = []

    def __call__(self, **kwargs) -> tuple[str, dict]:
        self.calls.append(kwargs)
        if self.side_effects:
            raise self.side_effects.pop(0)
        return self.reply, {"prompt_tokens": 10, "output_tokens": 5, "total_tokens": 15}


def ai_reply(file_operations: list, suggested_changes: list | None = None) -> str:
    """Serialise a model reply the way Gemini's JSON mode returns it."""
    return json.dumps(
        {
            "file_operations": file_operations,
            "suggested_changes": suggested_changes or [],
        }
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        gemini_api_key="test-key",
        gemini_model="gemini-test",
        gemini_api_base="http://test/v1beta",
        ai_timeout_seconds=5.0,
        ai_max_attempts=3,
        ai_retry_delay_seconds=0.0,
        rate_limit_requests=1000,
        rate_limit_window_seconds=60,
    )


@pytest.fixture()
def fake_generate() -> FakeGenerate:
    return FakeGenerate(reply=ai_reply([]))


@pytest.fixture()
def gateway(settings: Settings, fake_generate: FakeGenerate) -> AIGateway:
    """Real gateway wired to the fake transport, with no retry sleeps."""
    return AIGateway.from_settings(settings, generate=fake_generate, sleep=lambda _s: None)


@pytest.fixture()
def app(settings: Settings, gateway: AIGateway) -> FastAPI:
    return create_app(settings, gateway=gateway)


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture()
def make_zip() -> Callable[[dict[str, str | bytes]], bytes]:
    """Build an in-memory zip from a {name: content} mapping."""

    def _make(entries: dict[str, str | bytes]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
            for name, content in entries.items():
                zf.writestr(name, content)
        return buffer.getvalue()

    return _make


@pytest.fixture()
def sample_files() -> list[ProjectFile]:
    return [
        ProjectFile(filename="src/index.js", content="console.log('hi');\n"),
        ProjectFile(filename="README.md", content="# Demo\n"),
    ]
