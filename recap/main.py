import logging
import os
from datetime import datetime, timezone
from typing import Optional, Sequence

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recap.context import AppContext
from recap.routers.audio import create_audio_router
from recap.services.audio_transcoder import AudioTranscoder
from recap.services.config import AppConfig, parse_app_config, read_config_file
from recap.services.crash_logging import enable_crash_logging
from recap.services.logging_setup import configure_logging
from recap.services.mailer import ResendMailer
from recap.services.recipients import (
    MeetingRegistryClient,
    SummaryDelivery,
    build_recipient_resolver,
)
from recap.services.session_finalizer import SessionFinalizer
from recap.services.summarization import SummarizationService
from recap.services.transcript_normalizer import RegexTranscriptNormalizer
from recap.services.transcript_store import DirectoryRoot, TranscriptRoot, TranscriptStore
from recap.services.transcription import TranscriptionProvider, WhisperApiProvider


def create_app(
    *,
    cwd: Optional[str] = None,
    config: Optional[AppConfig] = None,
    transcriber: Optional[TranscriptionProvider] = None,
    summarizer: Optional[SummarizationService] = None,
    mailer: Optional[ResendMailer] = None,
    registry: Optional[MeetingRegistryClient] = None,
    roots: Optional[Sequence[TranscriptRoot]] = None,
    setup_logging: bool = True,
) -> FastAPI:
    """Build the application.

    Every collaborator can be injected; whatever is not passed in is built
    from ``data/config.json`` and the environment (``.env`` included).
    """
    cwd = cwd or os.getcwd()
    if setup_logging:
        logs_dir = os.path.join(cwd, "logs")
        configure_logging(logs_dir)
        enable_crash_logging(logs_dir)
    logger = logging.getLogger("recap.boot")
    logger.info("Boot: starting create_app cwd=%s", cwd)

    config_path = os.path.join(cwd, "data", "config.json")
    if config is None:
        env_path = os.path.join(cwd, ".env")
        if os.path.exists(env_path):
            load_dotenv(env_path)
            logger.info("Boot: loaded environment from %s", env_path)
        config = parse_app_config(read_config_file(config_path))

    ctx = AppContext(
        cwd=cwd,
        temp_dir=config.storage.temp_path or os.path.join(cwd, "tmp"),
        config_path=config_path,
        extra_transcript_roots=config.storage.extra_transcript_roots,
        mail_log_dir=config.mail.log_dir,
    )
    ctx.ensure_dirs()
    logger.info(
        "Boot: temp_dir=%s transcript_roots=%s", ctx.temp_dir, ctx.transcript_root_dirs
    )
    logger.info(
        "Boot: transcription=%s summarization=%s mail=%s registry=%s",
        bool(config.transcription.api_key),
        config.summarization.enabled,
        config.mail.enabled,
        bool(config.registry.base_url),
    )

    if transcriber is None:
        transcoder = AudioTranscoder(
            ffmpeg_path=config.transcoder.ffmpeg_path,
            timeout_seconds=config.transcoder.timeout_seconds,
        )
        transcriber = WhisperApiProvider(config.transcription, transcoder)
    store = TranscriptStore(roots or [DirectoryRoot(d) for d in ctx.transcript_root_dirs])
    summarizer = summarizer or SummarizationService(config.summarization)
    mailer = mailer or ResendMailer(config.mail, ctx.mail_log_dir)
    registry = registry or MeetingRegistryClient(config.registry)
    finalizer = SessionFinalizer(
        store=store,
        normalizer=RegexTranscriptNormalizer(),
        summarizer=summarizer,
        mailer=mailer,
        resolver=build_recipient_resolver(registry),
        delivery=SummaryDelivery(mailer),
    )

    app = FastAPI(title="Room Recap", version="0.1.0")
    app.state.ctx = ctx
    app.state.config = config
    app.state.store = store
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(create_audio_router(ctx, config, transcriber, store, finalizer, mailer))
    logger.info("Boot: audio router mounted")

    @app.get("/health")
    def health() -> dict:
        return {"ok": True, "now": datetime.now(timezone.utc).isoformat()}

    logger.info("Boot: create_app complete")
    return app
