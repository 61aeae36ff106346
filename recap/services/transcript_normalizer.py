"""Speaker attribution heuristics for aggregated transcripts."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

UNKNOWN_SPEAKER = "[Unknown]"

_HEADER_RE = re.compile(r"^---\s*transcript-")
# Optional "(chat)" marker, a 1-60 char name, then ":", fullwidth ":" or "-".
_NAME_RE = re.compile(r"^(?:\(chat\)\s*)?([\w\-.\s]{1,60})\s*[:：-]\s*(.+)$", re.IGNORECASE)
_CHAT_LOOSE_RE = re.compile(r"\(chat\)\s*([\w\-.\s]{1,60})\s*[:：-]\s*(.+)$", re.IGNORECASE)


@dataclass(frozen=True)
class NormalizedTranscript:
    text: str
    participants: tuple[str, ...] = ()


class TranscriptNormalizer(Protocol):
    def normalize(self, raw_text: str) -> NormalizedTranscript:
        ...


class RegexTranscriptNormalizer:
    """Rewrites lines to ``Name: message`` and collects the distinct names.

    Best effort only: any failure hands back the raw text with no participants.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger("recap.normalizer")

    def normalize(self, raw_text: str) -> NormalizedTranscript:
        try:
            return self._normalize(raw_text)
        except Exception as exc:
            self._logger.warning("Transcript preprocessing failed: %s", exc)
            return NormalizedTranscript(text=raw_text or "", participants=())

    def _normalize(self, raw_text: str) -> NormalizedTranscript:
        participants: dict[str, None] = {}
        lines: list[str] = []
        for raw_line in (raw_text or "").splitlines():
            line = raw_line.strip()
            if not line:
                continue
            if _HEADER_RE.match(line):
                lines.append(line)
                continue
            match = _NAME_RE.match(line) or _CHAT_LOOSE_RE.search(line)
            if match:
                name = match.group(1).strip()
                message = match.group(2).strip()
                participants[name] = None
                lines.append(f"{name}: {message}")
                continue
            lines.append(f"{UNKNOWN_SPEAKER}: {line}")
        return NormalizedTranscript(text="\n".join(lines), participants=tuple(participants))


def normalize(raw_text: str) -> NormalizedTranscript:
    return RegexTranscriptNormalizer().normalize(raw_text)
