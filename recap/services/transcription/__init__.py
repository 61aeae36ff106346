from recap.services.transcription.base import TranscriptionProvider, TranscriptionResult
from recap.services.transcription.whisper_api import WhisperApiProvider, extract_transcript

__all__ = [
    "TranscriptionProvider",
    "TranscriptionResult",
    "WhisperApiProvider",
    "extract_transcript",
]
