from typing import Any, Awaitable, Callable, Protocol


class RetryPort(Protocol):
    """Runs a provider call again while it keeps failing transiently.

    Only ProviderErrors flagged `transient` (no response, or an upstream
    5xx) earn another attempt; everything else, including 4xx answers and
    envelope failures, is raised on the first try. After the last attempt
    the final error is raised unchanged so its ErrorType survives.

    Callers may pass `attempts`, `wait_initial` or `wait_max` as keyword
    overrides; they are consumed here and not forwarded to `func`.
    """

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any: ...
