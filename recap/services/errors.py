from __future__ import annotations

from typing import Optional


class RecapError(RuntimeError):
    pass


class ConfigError(RecapError):
    """A required provider credential or endpoint is not configured."""


class UpstreamError(RecapError):
    """A provider rejected a request or could not be reached."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class UnprocessableMediaError(UpstreamError):
    """The speech-to-text provider could not decode the uploaded media.

    Recovered locally by a single transcode-and-retry; only surfaces when
    that recovery is not available.
    """


class TranscodeError(RecapError):
    pass
