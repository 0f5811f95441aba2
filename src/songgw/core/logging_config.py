"""Process-wide logging setup for the gateway.

`configure_logging` is called once by the composition root. It sends
DEBUG/INFO to stdout and WARNING+ to stderr, and stamps every record with
the request id and job id bound for the current task. Uvicorn reuses this
setup because `main` starts it with `log_config=None`.
"""

from __future__ import annotations

import contextvars
import logging
import sys
from typing import Iterable, Optional

# set per request by the FastAPI middleware
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("correlation_id", default="-")
# set by the status and submission routes once the job id is known
job_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("job_id", default="-")

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)s %(name)s rid=%(correlation_id)s job=%(job_id)s: %(message)s"

# third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("aiohttp.access", "uvicorn.access")


def coerce_level(level: int | str | None) -> int:
    """Accept 'debug', 'INFO', 10 or None; unknown names fall back to INFO."""
    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(str(level).strip().upper(), logging.INFO)


def bind_job_id(job_id: Optional[str]) -> contextvars.Token:
    return job_id_var.set(job_id or "-")


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        record.job_id = job_id_var.get()
        return True


class _LevelBand(logging.Filter):
    def __init__(self, upper: int):
        super().__init__()
        self.upper = upper

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self.upper


def _stream_handler(stream, lower: int, upper: Optional[int], formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(stream=stream)
    handler.setLevel(lower)
    if upper is not None:
        handler.addFilter(_LevelBand(upper))
    handler.addFilter(_ContextFilter())
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: int | str | None = None,
    fmt: Optional[str] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    quiet = tuple(quiet)
    root = logging.getLogger()
    root.setLevel(coerce_level(level))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(fmt or DEFAULT_FORMAT)
    root.addHandler(_stream_handler(sys.stdout, logging.DEBUG, logging.INFO, formatter))
    root.addHandler(_stream_handler(sys.stderr, logging.WARNING, None, formatter))

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("songgw").debug(f"[logging:setup] level={logging.getLevelName(root.level)} quiet={list(quiet)}")
