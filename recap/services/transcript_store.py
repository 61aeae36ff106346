"""Per-(room, owner) transcript files spread over ordered storage roots.

Chunk transcripts are appended to the first (primary) root.  Older
deployments wrote into sibling directories, so finalize searches every root
in priority order and takes the files of the first root that has any match
for the room.  Matches are never merged across roots.
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

PREVIEW_LINES = 8
PREVIEW_CHARS = 2000


_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9._-]")


def safe_name_part(value: str) -> str:
    """Client-supplied ids end up in file names; keep them to a flat safe charset."""
    return _UNSAFE_NAME_RE.sub("_", value or "") or "_"


def transcript_prefix(room: str) -> str:
    return f"transcript-{safe_name_part(room)}-"


def transcript_filename(room: str, owner: str) -> str:
    return f"{transcript_prefix(room)}{safe_name_part(owner)}.txt"


class TranscriptRoot(ABC):
    """A flat namespace of transcript files."""

    @property
    @abstractmethod
    def label(self) -> str:
        raise NotImplementedError

    @property
    @abstractmethod
    def location(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def list_names(self) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def read(self, name: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def append(self, name: str, text: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, name: str) -> None:
        raise NotImplementedError

    def path_for(self, name: str) -> str:
        return os.path.join(self.location, name)


class DirectoryRoot(TranscriptRoot):
    def __init__(self, directory: str, label: Optional[str] = None) -> None:
        self._directory = directory
        self._label = label or os.path.basename(os.path.normpath(directory))

    @property
    def label(self) -> str:
        return self._label

    @property
    def location(self) -> str:
        return self._directory

    def list_names(self) -> list[str]:
        if not os.path.isdir(self._directory):
            return []
        return sorted(
            name
            for name in os.listdir(self._directory)
            if os.path.isfile(os.path.join(self._directory, name))
        )

    def read(self, name: str) -> str:
        # Legacy roots may hold files written by other tools; undecodable bytes become U+FFFD.
        with open(self.path_for(name), "r", encoding="utf-8", errors="replace") as f:
            return f.read()

    def append(self, name: str, text: str) -> None:
        os.makedirs(self._directory, exist_ok=True)
        with open(self.path_for(name), "a", encoding="utf-8") as f:
            f.write(text)

    def delete(self, name: str) -> None:
        os.remove(self.path_for(name))


class MemoryRoot(TranscriptRoot):
    """In-memory root, handy for tests and dry runs."""

    def __init__(self, label: str = "memory") -> None:
        self._label = label
        self.files: dict[str, str] = {}

    @property
    def label(self) -> str:
        return self._label

    @property
    def location(self) -> str:
        return f"memory://{self._label}"

    def path_for(self, name: str) -> str:
        return f"{self.location}/{name}"

    def list_names(self) -> list[str]:
        return sorted(self.files)

    def read(self, name: str) -> str:
        try:
            return self.files[name]
        except KeyError as exc:
            raise FileNotFoundError(self.path_for(name)) from exc

    def append(self, name: str, text: str) -> None:
        self.files[name] = self.files.get(name, "") + text

    def delete(self, name: str) -> None:
        try:
            del self.files[name]
        except KeyError as exc:
            raise FileNotFoundError(self.path_for(name)) from exc


@dataclass(frozen=True)
class TranscriptRef:
    root: TranscriptRoot
    name: str

    @property
    def path(self) -> str:
        return self.root.path_for(self.name)


@dataclass(frozen=True)
class TranscriptAggregate:
    text: str = ""
    refs: tuple[TranscriptRef, ...] = ()

    @property
    def paths(self) -> list[str]:
        return [ref.path for ref in self.refs]


@dataclass
class RootDiagnostics:
    directory: str
    files: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"dir": self.directory, "files": list(self.files)}


class TranscriptStore:
    def __init__(self, roots: Sequence[TranscriptRoot]) -> None:
        if not roots:
            raise ValueError("TranscriptStore needs at least one root")
        self._roots = list(roots)
        self._logger = logging.getLogger("recap.transcripts")

    @property
    def roots(self) -> list[TranscriptRoot]:
        return list(self._roots)

    @property
    def primary(self) -> TranscriptRoot:
        return self._roots[0]

    @staticmethod
    def format_line(speaker: str, text: str, when: Optional[datetime] = None) -> str:
        stamp = (when or datetime.now(timezone.utc)).isoformat(timespec="milliseconds")
        stamp = stamp.replace("+00:00", "Z")
        return f"[{stamp}] {speaker}: {text}\n"

    async def append(
        self, room: str, owner: str, text: str, speaker: Optional[str] = None
    ) -> TranscriptRef:
        """Append one timestamped line to the ``(room, owner)`` file of the primary root."""
        name = transcript_filename(room, owner)
        self.primary.append(name, self.format_line(speaker or owner, text))
        return TranscriptRef(self.primary, name)

    def _matching_names(self, root: TranscriptRoot, room: str, owner: Optional[str]) -> list[str]:
        names = root.list_names()
        if owner:
            wanted = transcript_filename(room, owner)
            return [wanted] if wanted in names else []
        prefix = transcript_prefix(room)
        return [name for name in names if name.startswith(prefix)]

    async def aggregate(self, room: str, owner: Optional[str] = None) -> TranscriptAggregate:
        for root in self._roots:
            try:
                found = self._matching_names(root, room, owner)
            except OSError as exc:
                self._logger.warning("Failed to list transcript root %s: %s", root.location, exc)
                continue
            if not found:
                continue

            parts: list[str] = []
            refs: list[TranscriptRef] = []
            for name in found:
                try:
                    content = root.read(name)
                except (OSError, ValueError) as exc:
                    self._logger.warning("Failed reading transcript %s: %s", root.path_for(name), exc)
                    continue
                parts.append(f"\n--- {name} (from {root.label}) ---\n{content}")
                refs.append(TranscriptRef(root, name))
            # First root with any match wins, even if some of its files were unreadable.
            return TranscriptAggregate(text="".join(parts), refs=tuple(refs))
        return TranscriptAggregate()

    async def delete(self, refs: Iterable[TranscriptRef]) -> int:
        """Remove the given transcripts; failures are logged and skipped."""
        removed = 0
        for ref in refs:
            try:
                ref.root.delete(ref.name)
                removed += 1
            except OSError as exc:
                self._logger.warning("Failed to delete transcript %s: %s", ref.path, exc)
        return removed

    async def diagnostics(self, room: str) -> list[RootDiagnostics]:
        """Preview every matching transcript in every root, for troubleshooting."""
        results: list[RootDiagnostics] = []
        prefix = transcript_prefix(room)
        for root in self._roots:
            try:
                matched = [name for name in root.list_names() if name.startswith(prefix)]
            except OSError as exc:
                self._logger.warning("Failed to list transcript root %s: %s", root.location, exc)
                continue
            if not matched:
                continue
            entry = RootDiagnostics(directory=root.location)
            for name in matched:
                try:
                    full = root.read(name)
                    preview = "\n".join(full.splitlines()[:PREVIEW_LINES])[:PREVIEW_CHARS]
                except (OSError, ValueError) as exc:
                    preview = f"Failed to read: {exc}"
                entry.files.append({"name": name, "preview": preview})
            results.append(entry)
        return results
