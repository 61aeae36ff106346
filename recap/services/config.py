"""Runtime configuration parsed from ``config.json`` plus environment overrides.

The file lives in the app-level data directory.  Secrets are normally kept
out of it and supplied through the environment (or a ``.env`` file loaded at
boot), so every environment variable wins over the corresponding file value.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

_logger = logging.getLogger("recap.config")

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class TranscriptionConfig:
    api_key: str = ""
    base_url: str = "https://api.groq.com/openai/v1"
    model: str = "whisper-large-v3-turbo"
    transcode_on_server: bool = False
    timeout_seconds: float = 60.0


@dataclass(frozen=True)
class TranscoderConfig:
    ffmpeg_path: str = "ffmpeg"
    timeout_seconds: float = 120.0


@dataclass(frozen=True)
class SummarizationConfig:
    api_key: str = ""
    base_url: str = ""
    model: str = "deepseek-chat"
    max_tokens: int = 1200
    timeout_seconds: float = 120.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.base_url)


@dataclass(frozen=True)
class MailConfig:
    api_key: str = ""
    sender: str = "Room Recap <noreply@example.com>"
    api_url: str = "https://api.resend.com/emails"
    log_dir: str = ""
    timeout_seconds: float = 60.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class RegistryConfig:
    base_url: str = ""
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class StorageConfig:
    temp_path: str = ""
    extra_transcript_roots: tuple[str, ...] = ()


@dataclass(frozen=True)
class IngestConfig:
    min_chunk_bytes: int = 4000
    max_chunk_bytes: int = 15 * 1024 * 1024


@dataclass(frozen=True)
class AppConfig:
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    transcoder: TranscoderConfig = field(default_factory=TranscoderConfig)
    summarization: SummarizationConfig = field(default_factory=SummarizationConfig)
    mail: MailConfig = field(default_factory=MailConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)


def read_config_file(config_path: str) -> dict:
    """Read config from file, returning empty dict if not found."""
    if not os.path.exists(config_path):
        _logger.info("Config file missing: %s", config_path)
        return {}
    with open(config_path, "r", encoding="utf-8") as config_file:
        data = json.load(config_file)
    if not isinstance(data, dict):
        _logger.warning("Config file is not a JSON object, ignoring: %s", config_path)
        return {}
    return data


def _pick(section: dict, key: str, environ: Mapping[str, str], env_key: Optional[str], default):
    if env_key and environ.get(env_key):
        return environ[env_key]
    value = section.get(key)
    if value is None or value == "":
        return default
    return value


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def parse_app_config(config_dict: dict, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build an ``AppConfig`` from a parsed ``config.json`` and the environment.

    Expected file layout (every section and key optional)::

        {
            "transcription": {"api_key": "...", "base_url": "...", "model": "...",
                              "transcode_on_server": false},
            "transcoder": {"ffmpeg_path": "ffmpeg", "timeout_seconds": 120},
            "summarization": {"api_key": "...", "base_url": "...", "model": "deepseek-chat"},
            "mail": {"api_key": "...", "sender": "...", "log_dir": "..."},
            "registry": {"base_url": "..."},
            "storage": {"temp_path": "...", "extra_transcript_roots": ["..."]},
            "ingest": {"min_chunk_bytes": 4000, "max_chunk_bytes": 15728640}
        }
    """
    env = os.environ if environ is None else environ

    stt = config_dict.get("transcription", {}) or {}
    defaults = TranscriptionConfig()
    transcription = TranscriptionConfig(
        api_key=str(_pick(stt, "api_key", env, "GROQ_API_KEY", "")),
        base_url=str(_pick(stt, "base_url", env, "GROQ_BASE_URL", defaults.base_url)).rstrip("/"),
        model=str(_pick(stt, "model", env, "GROQ_MODEL", defaults.model)),
        transcode_on_server=_as_bool(
            _pick(stt, "transcode_on_server", env, "TRANSCODE_ON_SERVER", False)
        ),
        timeout_seconds=float(stt.get("timeout_seconds", defaults.timeout_seconds)),
    )

    tc = config_dict.get("transcoder", {}) or {}
    transcoder = TranscoderConfig(
        ffmpeg_path=str(_pick(tc, "ffmpeg_path", env, "FFMPEG_PATH", "ffmpeg")),
        timeout_seconds=float(tc.get("timeout_seconds", TranscoderConfig.timeout_seconds)),
    )

    llm = config_dict.get("summarization", {}) or {}
    summarization = SummarizationConfig(
        api_key=str(_pick(llm, "api_key", env, "DEEPSEEK_API_KEY", "")),
        base_url=str(_pick(llm, "base_url", env, "DEEPSEEK_BASE_URL", "")).rstrip("/"),
        model=str(_pick(llm, "model", env, "DEEPSEEK_MODEL", SummarizationConfig.model)),
        max_tokens=int(llm.get("max_tokens", SummarizationConfig.max_tokens)),
        timeout_seconds=float(llm.get("timeout_seconds", SummarizationConfig.timeout_seconds)),
    )

    mail_dict = config_dict.get("mail", {}) or {}
    mail = MailConfig(
        api_key=str(_pick(mail_dict, "api_key", env, "RESEND_API_KEY", "")),
        sender=str(_pick(mail_dict, "sender", env, "MAIL_FROM", MailConfig.sender)),
        api_url=str(_pick(mail_dict, "api_url", env, None, MailConfig.api_url)),
        log_dir=str(_pick(mail_dict, "log_dir", env, "MAIL_LOG_PATH", "")),
        timeout_seconds=float(mail_dict.get("timeout_seconds", MailConfig.timeout_seconds)),
    )

    reg = config_dict.get("registry", {}) or {}
    registry = RegistryConfig(
        base_url=str(_pick(reg, "base_url", env, "BACKEND_BASE", "")).rstrip("/"),
        timeout_seconds=float(reg.get("timeout_seconds", RegistryConfig.timeout_seconds)),
    )

    st = config_dict.get("storage", {}) or {}
    extra_roots = st.get("extra_transcript_roots", []) or []
    if isinstance(extra_roots, str):
        extra_roots = [extra_roots]
    storage = StorageConfig(
        temp_path=str(_pick(st, "temp_path", env, "STORAGE_TEMP_PATH", "")),
        extra_transcript_roots=tuple(str(path) for path in extra_roots if path),
    )

    ing = config_dict.get("ingest", {}) or {}
    ingest = IngestConfig(
        min_chunk_bytes=int(ing.get("min_chunk_bytes", IngestConfig.min_chunk_bytes)),
        max_chunk_bytes=int(ing.get("max_chunk_bytes", IngestConfig.max_chunk_bytes)),
    )

    return AppConfig(
        transcription=transcription,
        transcoder=transcoder,
        summarization=summarization,
        mail=mail,
        registry=registry,
        storage=storage,
        ingest=ingest,
    )
