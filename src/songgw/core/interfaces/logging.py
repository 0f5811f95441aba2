from abc import ABC, abstractmethod


class LoggingPort(ABC):
    """What the core needs from logging.

    Messages are pre-formatted f-strings tagged `[area:action]`; positional
    args are passed through for %-style callers.
    """

    @abstractmethod
    def debug(self, msg: str, *args) -> None: ...

    @abstractmethod
    def info(self, msg: str, *args) -> None: ...

    @abstractmethod
    def warning(self, msg: str, *args) -> None: ...

    @abstractmethod
    def error(self, msg: str, *args) -> None: ...

    @abstractmethod
    def exception(self, msg: str, *args) -> None:
        """Log at ERROR with the active exception's traceback."""
