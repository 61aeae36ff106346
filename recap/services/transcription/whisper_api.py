from __future__ import annotations

import json
import logging
import os
import re
from typing import Optional

import httpx

from recap.services.audio_transcoder import AudioTranscoder, is_transcodable
from recap.services.config import TranscriptionConfig
from recap.services.errors import (
    ConfigError,
    TranscodeError,
    UnprocessableMediaError,
    UpstreamError,
)
from recap.services.transcription.base import TranscriptionProvider, TranscriptionResult

# Phrases the provider uses when it cannot decode the uploaded container.
_UNPROCESSABLE_RE = re.compile(r"could not process file|is it a valid media file", re.IGNORECASE)

_CONTENT_TYPES = {
    ".wav": "audio/wav",
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".opus": "audio/ogg",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
}


def _content_type(path: str) -> str:
    return _CONTENT_TYPES.get(os.path.splitext(path)[1].lower(), "audio/webm")


def is_unprocessable_media(body: str) -> bool:
    return bool(_UNPROCESSABLE_RE.search(body or ""))


def extract_transcript(response: httpx.Response) -> str:
    """Pull the transcript out of whichever response shape the provider returned."""
    try:
        payload = response.json()
    except ValueError:
        logging.getLogger("recap.transcription").warning(
            "Transcription response is not JSON, using raw body"
        )
        return response.text
    if isinstance(payload, dict):
        if payload.get("text"):
            return str(payload["text"])
        results = payload.get("results")
        if isinstance(results, list) and results and isinstance(results[0], dict):
            if results[0].get("text"):
                return str(results[0]["text"])
        if payload.get("transcript"):
            return str(payload["transcript"])
    return json.dumps(payload, ensure_ascii=False)


class WhisperApiProvider(TranscriptionProvider):
    """Speech-to-text over an OpenAI-compatible ``/audio/transcriptions`` endpoint.

    Groq is the default target.  When the provider answers that it cannot
    process the uploaded media, the original chunk is transcoded to wav and
    the upload is retried once; no other failure is retried.
    """

    def __init__(
        self,
        config: TranscriptionConfig,
        transcoder: AudioTranscoder,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transcoder = transcoder
        self._transport = transport
        self._logger = logging.getLogger("recap.transcription.whisper_api")

    @property
    def url(self) -> str:
        return f"{self._config.base_url.rstrip('/')}/audio/transcriptions"

    async def transcribe(self, audio_path: str) -> TranscriptionResult:
        if not self._config.api_key:
            raise ConfigError("GROQ_API_KEY not configured")

        try:
            self._logger.debug("Transcribing %s (%d bytes)", audio_path, os.path.getsize(audio_path))
        except OSError as exc:
            self._logger.warning("Could not stat %s: %s", audio_path, exc)

        temp_paths: list[str] = []
        send_path = audio_path
        transcode_attempted = False
        retried = False
        try:
            if self._config.transcode_on_server and is_transcodable(audio_path):
                wav_path = f"{audio_path}.wav"
                temp_paths.append(wav_path)
                try:
                    send_path = await self._transcoder.to_wav(audio_path, wav_path)
                    # A wav the provider still rejects gains nothing from a second transcode.
                    transcode_attempted = True
                    self._logger.info("Pre-transcoded to wav: %s", wav_path)
                except TranscodeError as exc:
                    self._logger.warning("Pre-transcode failed, sending original file: %s", exc)
                    send_path = audio_path

            while True:
                try:
                    response = await self._submit(send_path)
                    break
                except UnprocessableMediaError as exc:
                    if transcode_attempted:
                        raise
                    transcode_attempted = True
                    retried = True
                    self._logger.info("Provider could not process file, transcoding and retrying once")
                    retry_path = f"{audio_path}.retry.wav"
                    temp_paths.append(retry_path)
                    try:
                        send_path = await self._transcoder.to_wav(audio_path, retry_path)
                    except TranscodeError as transcode_exc:
                        self._logger.error("Retry transcode failed: %s", transcode_exc)
                        raise UpstreamError(
                            f"Transcription failed and transcode retry failed: {exc.body}",
                            status=exc.status,
                            body=exc.body,
                        ) from transcode_exc

            transcript = extract_transcript(response)
            transcoded = send_path != audio_path
            return TranscriptionResult(transcript=transcript, retried=retried, transcoded=transcoded)
        finally:
            for path in temp_paths:
                _remove_quietly(path, self._logger)

    async def _submit(self, send_path: str) -> httpx.Response:
        with open(send_path, "rb") as audio_file:
            audio_bytes = audio_file.read()
        files = {"file": (os.path.basename(send_path), audio_bytes, _content_type(send_path))}
        self._logger.info(
            "Sending file to transcription provider: file=%s model=%s",
            os.path.basename(send_path),
            self._config.model,
        )
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._config.timeout_seconds
            ) as client:
                response = await client.post(
                    self.url,
                    headers={"Authorization": f"Bearer {self._config.api_key}"},
                    data={"model": self._config.model},
                    files=files,
                )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Transcription request failed: {exc}") from exc

        if response.is_success:
            return response

        body = response.text
        self._logger.error(
            "Transcription provider failed: status=%s body=%s", response.status_code, body[:2000]
        )
        message = f"Transcription failed: {response.status_code} {body}"
        if is_unprocessable_media(body):
            raise UnprocessableMediaError(message, status=response.status_code, body=body)
        raise UpstreamError(message, status=response.status_code, body=body)


def _remove_quietly(path: str, logger: logging.Logger) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("Failed to remove temp file %s: %s", path, exc)
