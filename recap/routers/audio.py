import logging
import os
import time
import uuid
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from recap.services.errors import ConfigError, UpstreamError

_CHUNK_EXTENSIONS = {
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/opus": ".opus",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/wave": ".wav",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
}


class EmailTestRequest(BaseModel):
    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    participants: Optional[list[str]] = Field(None, description="Names listed in the email")


def _media_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_audio_content_type(content_type: Optional[str]) -> bool:
    return _media_type(content_type).startswith("audio/")


def chunk_extension(content_type: Optional[str]) -> str:
    return _CHUNK_EXTENSIONS.get(_media_type(content_type), ".webm")


def _declared_length(request: Request) -> Optional[int]:
    try:
        return int(request.headers["content-length"])
    except (KeyError, ValueError):
        return None


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def create_audio_router(ctx, config, transcriber, store, finalizer, mailer) -> APIRouter:
    router = APIRouter(prefix="/api/audio", tags=["audio"])
    logger = logging.getLogger("recap.api.audio")
    min_chunk_bytes = config.ingest.min_chunk_bytes
    max_chunk_bytes = config.ingest.max_chunk_bytes

    @router.post("/transcribe-chunk")
    async def transcribe_chunk(
        request: Request,
        room_id: Optional[str] = Query(None, alias="roomId"),
        user_id: Optional[str] = Query(None, alias="userId"),
        email: Optional[str] = Query(None),
    ):
        content_type = request.headers.get("content-type", "")
        if not is_audio_content_type(content_type):
            logger.warning("Chunk rejected: unsupported content_type=%s", content_type)
            return _failure(415, "Chunk must be audio/*")
        declared = _declared_length(request)
        if declared is not None and declared > max_chunk_bytes:
            logger.warning("Chunk rejected: declared size=%d limit=%d", declared, max_chunk_bytes)
            return _failure(413, "Chunk too large")

        body = await request.body()
        if len(body) > max_chunk_bytes:
            logger.warning("Chunk rejected: size=%d limit=%d", len(body), max_chunk_bytes)
            return _failure(413, "Chunk too large")
        logger.info(
            "Chunk received: room=%s user=%s email=%s size=%d content_type=%s",
            room_id,
            user_id,
            email,
            len(body),
            content_type,
        )
        if len(body) < min_chunk_bytes:
            return _failure(400, "Chunk too small")

        head_hex = " ".join(f"{b:02x}" for b in body[:12])
        os.makedirs(ctx.chunks_dir, exist_ok=True)
        filename = f"audio-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}{chunk_extension(content_type)}"
        chunk_path = os.path.join(ctx.chunks_dir, filename)

        try:
            with open(chunk_path, "wb") as chunk_file:
                chunk_file.write(body)
            result = await transcriber.transcribe(chunk_path)
        except ConfigError as exc:
            logger.error("Transcription not configured: %s", exc)
            return _failure(500, str(exc))
        except UpstreamError as exc:
            logger.warning("Transcription failed: %s", exc)
            return _failure(502, str(exc))
        except Exception as exc:
            logger.exception("transcribe-chunk error: %s", exc)
            return _failure(500, str(exc))
        finally:
            try:
                os.remove(chunk_path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning("Failed to remove chunk %s: %s", chunk_path, exc)

        logger.info("Transcribe result: retried=%s transcoded=%s", result.retried, result.transcoded)

        owner = user_id or "unknown"
        room = room_id or "global"
        try:
            await store.append(room, owner, result.transcript, speaker=owner)
        except OSError as exc:
            logger.warning("Failed to append transcript: %s", exc)

        return {
            "success": True,
            "transcription": result.transcript,
            "retried": result.retried,
            "transcoded": result.transcoded,
            "headHex": head_hex,
            "size": len(body),
        }

    @router.post("/finalize")
    async def finalize(
        room_id: Optional[str] = Query(None, alias="roomId"),
        user_id: Optional[str] = Query(None, alias="userId"),
        email: Optional[str] = Query(None),
    ):
        room = room_id or "global"
        try:
            result = await finalizer.finalize(room, user_id=user_id or None, email=email or None)
        except Exception as exc:
            logger.exception("finalize error: %s", exc)
            return _failure(500, str(exc))
        return result.to_response()

    @router.get("/diagnostics")
    async def diagnostics(room_id: Optional[str] = Query(None, alias="roomId")):
        room = room_id or "global"
        results = await store.diagnostics(room)
        return {"success": True, "room": room, "results": [r.to_dict() for r in results]}

    @router.post("/test-email")
    async def test_email(payload: Optional[EmailTestRequest] = None):
        if payload is None or not payload.to:
            return _failure(400, "to is required")
        if not mailer.enabled:
            return _failure(500, "RESEND_API_KEY not configured")
        try:
            await mailer.send_summary(
                payload.to,
                payload.subject or "Room Recap test: summary email",
                payload.body or "This is a test email from Room Recap.",
                payload.participants or None,
            )
        except Exception as exc:
            logger.warning("test-email send error: %s", exc)
            return _failure(500, str(exc))
        return {"success": True, "message": "Test email sent (attempted). Check logs and spam folder."}

    return router
