"""Tests for the speech-to-text client and its transcode-and-retry protocol."""

import os

import httpx
import pytest

from recap.services.config import TranscriptionConfig
from recap.services.errors import ConfigError, UnprocessableMediaError, UpstreamError
from recap.services.transcription import WhisperApiProvider, extract_transcript

UNPROCESSABLE_BODY = '{"error":{"message":"could not process file - is it a valid media file?"}}'


def _provider(transcoder, transport, **overrides):
    config = TranscriptionConfig(api_key="gsk_test", **overrides)
    return WhisperApiProvider(config, transcoder, transport=transport.transport)


async def test_success_on_first_attempt(chunk_file, transcoder, scripted):
    transport = scripted(httpx.Response(200, json={"text": "hola a todos"}))
    result = await _provider(transcoder, transport).transcribe(chunk_file)

    assert result.transcript == "hola a todos"
    assert result.retried is False
    assert result.transcoded is False
    assert transcoder.calls == []
    request = transport.requests[0]
    assert str(request.url) == "https://api.groq.com/openai/v1/audio/transcriptions"
    assert request.headers["Authorization"] == "Bearer gsk_test"
    assert b'name="model"' in request.content
    assert b"whisper-large-v3-turbo" in request.content


async def test_unprocessable_media_is_transcoded_and_retried_once(chunk_file, transcoder, scripted):
    transport = scripted(
        httpx.Response(400, text=UNPROCESSABLE_BODY),
        httpx.Response(200, json={"text": "segundo intento"}),
    )
    result = await _provider(transcoder, transport).transcribe(chunk_file)

    assert result.transcript == "segundo intento"
    assert result.retried is True
    assert result.transcoded is True
    assert transcoder.calls == [(chunk_file, f"{chunk_file}.retry.wav")]
    assert len(transport.requests) == 2
    assert b".retry.wav" in transport.requests[1].content
    assert not os.path.exists(f"{chunk_file}.retry.wav")


async def test_never_retries_twice(chunk_file, transcoder, scripted):
    transport = scripted(
        httpx.Response(400, text=UNPROCESSABLE_BODY),
        httpx.Response(400, text=UNPROCESSABLE_BODY),
    )
    with pytest.raises(UnprocessableMediaError) as excinfo:
        await _provider(transcoder, transport).transcribe(chunk_file)

    assert excinfo.value.status == 400
    assert len(transport.requests) == 2
    assert len(transcoder.calls) == 1


async def test_other_failures_are_not_retried(chunk_file, transcoder, scripted):
    transport = scripted(httpx.Response(500, text="internal error"))
    with pytest.raises(UpstreamError) as excinfo:
        await _provider(transcoder, transport).transcribe(chunk_file)

    assert not isinstance(excinfo.value, UnprocessableMediaError)
    assert excinfo.value.status == 500
    assert "internal error" in str(excinfo.value)
    assert len(transport.requests) == 1
    assert transcoder.calls == []


async def test_network_failure_is_upstream_error(chunk_file, transcoder, scripted):
    transport = scripted(httpx.ConnectError("connection refused"))
    with pytest.raises(UpstreamError):
        await _provider(transcoder, transport).transcribe(chunk_file)
    assert transcoder.calls == []


async def test_missing_key_is_config_error(chunk_file, transcoder, scripted):
    transport = scripted()
    provider = WhisperApiProvider(TranscriptionConfig(), transcoder, transport=transport.transport)
    with pytest.raises(ConfigError):
        await provider.transcribe(chunk_file)
    assert transport.requests == []


async def test_failed_retry_transcode_reports_original_failure(chunk_file, failing_transcoder, scripted):
    transport = scripted(httpx.Response(400, text=UNPROCESSABLE_BODY))
    with pytest.raises(UpstreamError) as excinfo:
        await _provider(failing_transcoder, transport).transcribe(chunk_file)

    assert type(excinfo.value) is UpstreamError
    assert "could not process file" in str(excinfo.value)
    assert len(transport.requests) == 1


async def test_pre_transcode_counts_as_the_only_transcode(chunk_file, transcoder, scripted):
    transport = scripted(httpx.Response(400, text=UNPROCESSABLE_BODY))
    provider = _provider(transcoder, transport, transcode_on_server=True)
    with pytest.raises(UnprocessableMediaError):
        await provider.transcribe(chunk_file)

    assert transcoder.calls == [(chunk_file, f"{chunk_file}.wav")]
    assert len(transport.requests) == 1
    assert not os.path.exists(f"{chunk_file}.wav")


async def test_pre_transcode_success_sends_wav(chunk_file, transcoder, scripted):
    transport = scripted(httpx.Response(200, json={"text": "ok"}))
    result = await _provider(transcoder, transport, transcode_on_server=True).transcribe(chunk_file)

    assert result.transcoded is True
    assert result.retried is False
    assert b"audio/wav" in transport.requests[0].content


async def test_failed_pre_transcode_sends_original(chunk_file, failing_transcoder, scripted):
    transport = scripted(httpx.Response(200, json={"text": "ok"}))
    provider = _provider(failing_transcoder, transport, transcode_on_server=True)
    result = await provider.transcribe(chunk_file)

    assert result.transcript == "ok"
    assert result.transcoded is False
    assert b"audio/webm" in transport.requests[0].content


async def test_failed_pre_transcode_keeps_the_retry(chunk_file, make_transcoder, scripted):
    transcoder = make_transcoder(failures=1)
    transport = scripted(
        httpx.Response(400, text=UNPROCESSABLE_BODY),
        httpx.Response(200, json={"text": "ok"}),
    )
    result = await _provider(transcoder, transport, transcode_on_server=True).transcribe(chunk_file)

    assert result.transcript == "ok"
    assert result.retried is True
    assert result.transcoded is True
    assert transcoder.calls == [
        (chunk_file, f"{chunk_file}.wav"),
        (chunk_file, f"{chunk_file}.retry.wav"),
    ]
    assert b"audio/webm" in transport.requests[0].content
    assert b".retry.wav" in transport.requests[1].content
    assert not os.path.exists(f"{chunk_file}.retry.wav")


@pytest.mark.parametrize(
    "response,expected",
    [
        (httpx.Response(200, json={"results": [{"text": "from results"}]}), "from results"),
        (httpx.Response(200, json={"transcript": "from transcript"}), "from transcript"),
        (httpx.Response(200, json={"segments": []}), '{"segments": []}'),
        (httpx.Response(200, text="plain words"), "plain words"),
    ],
)
def test_extract_transcript_shapes(response, expected):
    assert extract_transcript(response) == expected
