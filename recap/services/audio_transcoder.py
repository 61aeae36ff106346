from __future__ import annotations

import asyncio
import logging
import os

from recap.services.errors import TranscodeError

TRANSCODABLE_EXTENSIONS = (".webm", ".ogg", ".opus")


def is_transcodable(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in TRANSCODABLE_EXTENSIONS


class AudioTranscoder:
    """Converts audio chunks to mono 16 kHz wav with an external ffmpeg."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout_seconds: float = 120.0) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._timeout = timeout_seconds
        self._logger = logging.getLogger("recap.transcoder")

    def _command(self, source: str, target: str) -> list[str]:
        return [
            self._ffmpeg_path,
            "-hide_banner",
            "-loglevel",
            "error",
            "-y",
            "-i",
            source,
            "-ar",
            "16000",
            "-ac",
            "1",
            target,
        ]

    async def to_wav(self, source: str, target: str) -> str:
        cmd = self._command(source, target)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise TranscodeError(f"ffmpeg is not available: {self._ffmpeg_path}") from exc
        except OSError as exc:
            raise TranscodeError(f"ffmpeg could not be started: {exc}") from exc

        try:
            _, stderr_raw = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise TranscodeError(f"ffmpeg timed out after {self._timeout:.0f}s") from exc

        if proc.returncode != 0:
            stderr = stderr_raw.decode("utf-8", errors="replace").strip()
            raise TranscodeError(f"ffmpeg exited with {proc.returncode}: {stderr[-1200:]}")

        self._logger.info("Transcoded %s -> %s", os.path.basename(source), os.path.basename(target))
        return target
