import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "[%(asctime)s] [%(name)s] %(message)s"
LOG_DATEFMT = "%H:%M:%S"
LOG_MAX_BYTES = 5_000_000
LOG_BACKUPS = 3

# Loggers that get the shared handlers instead of propagating to root.
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
# Chatty third-party loggers capped at WARNING.
_QUIET_LOGGERS = ("httpx", "httpcore")


def _handlers(log_path: str) -> list[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, LOG_DATEFMT)
    to_file = RotatingFileHandler(
        log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    to_file.setLevel(logging.DEBUG)
    to_stream = logging.StreamHandler()
    to_stream.setLevel(logging.INFO)
    for handler in (to_file, to_stream):
        handler.setFormatter(formatter)
    return [to_file, to_stream]


def _install(logger: logging.Logger, level: int, handlers: list[logging.Handler]) -> None:
    logger.setLevel(level)
    logger.handlers = list(handlers)
    logger.propagate = False


def configure_logging(logs_dir: str) -> str:
    """Send every log record to a per-boot file under ``logs_dir`` and to stderr.

    Returns the path of the new ``server_<timestamp>.log``.
    """
    os.makedirs(logs_dir, exist_ok=True)
    log_path = os.path.join(logs_dir, f"server_{datetime.now():%Y-%m-%d_%H-%M-%S}.log")
    handlers = _handlers(log_path)

    _install(logging.getLogger(), logging.DEBUG, handlers)
    for name in _SERVER_LOGGERS:
        _install(logging.getLogger(name), logging.INFO, handlers)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("recap.boot").info("Logging initialized: %s", log_path)
    return log_path
