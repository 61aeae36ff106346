"""Application context: single source of truth for runtime paths.

Every service and router receives this object instead of individual path
strings.  It is a plain object rather than a module-level singleton so tests
can build one per temporary directory.
"""

from __future__ import annotations

import os
from typing import Sequence


class AppContext:
    """Holds all runtime directory paths for the application."""

    def __init__(
        self,
        *,
        cwd: str,
        temp_dir: str,
        config_path: str,
        extra_transcript_roots: Sequence[str] = (),
        mail_log_dir: str = "",
    ) -> None:
        self._cwd = cwd
        self._temp_dir = temp_dir
        self._config_path = config_path
        self._extra_transcript_roots = tuple(extra_transcript_roots)
        self._mail_log_dir = mail_log_dir

    # ── Working storage ────────────────────────────────────────────────

    @property
    def temp_dir(self) -> str:
        return self._temp_dir

    @property
    def chunks_dir(self) -> str:
        return self._temp_dir

    @property
    def transcripts_dir(self) -> str:
        return os.path.join(self._temp_dir, "transcripts")

    @property
    def transcript_root_dirs(self) -> list[str]:
        """Transcript directories in search priority order; the first is written to."""
        roots = [self.transcripts_dir]
        for path in self._extra_transcript_roots:
            resolved = path if os.path.isabs(path) else os.path.join(self._cwd, path)
            resolved = os.path.normpath(resolved)
            if resolved not in roots:
                roots.append(resolved)
        return roots

    # ── Config ─────────────────────────────────────────────────────────

    @property
    def config_path(self) -> str:
        return self._config_path

    # ── Logs (stay in cwd, not in temp storage) ────────────────────────

    @property
    def logs_dir(self) -> str:
        return os.path.join(self._cwd, "logs")

    @property
    def mail_log_dir(self) -> str:
        return self._mail_log_dir or self._temp_dir

    # ── Helpers ────────────────────────────────────────────────────────

    def ensure_dirs(self) -> None:
        """Create all required directories if they don't exist."""
        for d in (self.temp_dir, self.transcripts_dir, self.logs_dir, self.mail_log_dir):
            os.makedirs(d, exist_ok=True)
