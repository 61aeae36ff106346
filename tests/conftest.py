"""
Pytest fixtures for Room Recap tests.

Provides:
- scripted httpx transports for the provider clients
- fake transcoder, transcriber, mailer and LLM collaborators
- a FastAPI test client wired with those fakes
"""

from __future__ import annotations

import os
from typing import Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from recap.main import create_app
from recap.services.config import (
    AppConfig,
    IngestConfig,
    MailConfig,
    StorageConfig,
    SummarizationConfig,
)
from recap.services.errors import TranscodeError, UpstreamError
from recap.services.llm import LLMProvider
from recap.services.summarization import SummarizationService
from recap.services.transcription import TranscriptionProvider, TranscriptionResult


class ScriptedTransport:
    """Replays canned responses in order and records every request it saw."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeTranscoder:
    def __init__(self, fail: bool = False, failures: int = 0):
        self.fail = fail
        self.failures = failures
        self.calls: list[tuple[str, str]] = []

    async def to_wav(self, source: str, target: str) -> str:
        self.calls.append((source, target))
        if self.fail or len(self.calls) <= self.failures:
            raise TranscodeError("ffmpeg exited with 1: Invalid data found when processing input")
        with open(target, "wb") as f:
            f.write(b"RIFF\x00\x00\x00\x00WAVEfmt ")
        return target


class FakeTranscriber(TranscriptionProvider):
    def __init__(self, transcript: str = "hola a todos", error: Optional[Exception] = None):
        self.transcript = transcript
        self.error = error
        self.calls: list[dict] = []

    async def transcribe(self, audio_path: str) -> TranscriptionResult:
        self.calls.append({"path": audio_path, "existed": os.path.exists(audio_path)})
        if self.error is not None:
            raise self.error
        return TranscriptionResult(transcript=self.transcript)


class FakeMailer:
    def __init__(self, enabled: bool = True, failing=()):
        self.enabled = enabled
        self.failing = set(failing)
        self.sent: list[dict] = []

    async def send_summary(self, to, subject, summary, participants=None):
        if to in self.failing:
            raise UpstreamError(f"Mail delivery to {to} failed: 500", status=500)
        self.sent.append(
            {
                "to": to,
                "subject": subject,
                "summary": summary,
                "participants": list(participants or []),
            }
        )


class FakeLLM(LLMProvider):
    def __init__(
        self,
        chat_result: str = "**Participants**\n- Ana",
        chat_error: Optional[Exception] = None,
        respond_result: tuple[str, int] = ("responses output", 200),
        respond_error: Optional[Exception] = None,
    ):
        self.chat_result = chat_result
        self.chat_error = chat_error
        self.respond_result = respond_result
        self.respond_error = respond_error
        self.chat_calls: list[tuple[str, str, int]] = []
        self.respond_calls: list[str] = []

    async def chat(self, system_prompt, user_prompt, max_tokens=1200):
        self.chat_calls.append((system_prompt, user_prompt, max_tokens))
        if self.chat_error is not None:
            raise self.chat_error
        return self.chat_result

    async def respond(self, text):
        self.respond_calls.append(text)
        if self.respond_error is not None:
            raise self.respond_error
        return self.respond_result


@pytest.fixture
def scripted():
    """Factory: ``scripted(httpx.Response(...), ...)`` -> ScriptedTransport."""
    return ScriptedTransport


@pytest.fixture
def make_llm():
    return FakeLLM


@pytest.fixture
def make_mailer():
    return FakeMailer


@pytest.fixture
def make_transcoder():
    return FakeTranscoder


@pytest.fixture
def transcoder():
    return FakeTranscoder()


@pytest.fixture
def failing_transcoder():
    return FakeTranscoder(fail=True)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def chunk_file(tmp_path):
    """A small webm chunk on disk."""
    path = tmp_path / "audio-1700000000000-abc123.webm"
    path.write_bytes(b"\x1a\x45\xdf\xa3" + b"\x00" * 5000)
    return str(path)


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        mail=MailConfig(api_key="re_test"),
        storage=StorageConfig(temp_path=str(tmp_path / "tmp")),
        ingest=IngestConfig(min_chunk_bytes=4000),
    )


@pytest.fixture
def client(tmp_path, app_config, transcriber, mailer, llm):
    app = create_app(
        cwd=str(tmp_path),
        config=app_config,
        transcriber=transcriber,
        summarizer=SummarizationService(SummarizationConfig(), provider=llm),
        mailer=mailer,
        setup_logging=False,
    )
    with TestClient(app) as test_client:
        yield test_client
