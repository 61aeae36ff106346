import faulthandler
import os
from typing import Optional, TextIO

_crash_file_handle: Optional[TextIO] = None


def enable_crash_logging(logs_dir: str) -> str:
    """Dump Python tracebacks of every thread to ``crash.log`` on fatal signals.

    Idempotent: the handle stays open for the life of the process.
    """
    global _crash_file_handle
    crash_log_path = os.path.join(logs_dir, "crash.log")
    if _crash_file_handle is not None:
        return crash_log_path
    os.makedirs(logs_dir, exist_ok=True)
    _crash_file_handle = open(crash_log_path, "a", encoding="utf-8")
    faulthandler.enable(file=_crash_file_handle, all_threads=True)
    return crash_log_path
