import logging

from songgw.core.interfaces.logging import LoggingPort
from songgw.core.logging_config import coerce_level


class LoggingAdapter(LoggingPort):
    """LoggingPort backed by a named stdlib logger.

    Sinks, format and the request/job context filter are installed on the
    root logger by `configure_logging`; this adapter only sets its own
    level and lets records propagate.
    """

    def __init__(self, name: str = "songgw", log_level: int | str = logging.INFO):
        self._logger = logging.getLogger(name)
        self._logger.setLevel(coerce_level(log_level))
        self._logger.propagate = True

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, msg: str, *args) -> None:
        self._logger.debug(msg, *args)

    def info(self, msg: str, *args) -> None:
        self._logger.info(msg, *args)

    def warning(self, msg: str, *args) -> None:
        self._logger.warning(msg, *args)

    def error(self, msg: str, *args) -> None:
        self._logger.error(msg, *args)

    def exception(self, msg: str, *args) -> None:
        self._logger.exception(msg, *args)
