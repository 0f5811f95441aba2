import asyncio
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from songgw.core.exceptions import ProviderError


def is_transient(exc: BaseException) -> bool:
    """Only missing responses and 5xx are worth another attempt; 4xx never is."""
    return isinstance(exc, ProviderError) and exc.transient


class TenacityRetryAdapter:
    """Tenacity-based retry adapter implementing RetryPort.

    Exponential backoff with additive jitter. Call-time kwargs can override
    the default policy (attempts, wait_initial, wait_max).
    """

    def __init__(
        self,
        attempts: int = 3,
        wait_initial: float = 0.6,
        wait_max: float = 5.0,
        jitter: float = 0.25,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.attempts = attempts
        self.wait_initial = wait_initial
        self.wait_max = wait_max
        self.jitter = jitter
        self.sleep = sleep

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        attempts = kwargs.pop("attempts", self.attempts)
        wait_initial = kwargs.pop("wait_initial", self.wait_initial)
        wait_max = kwargs.pop("wait_max", self.wait_max)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_exponential(multiplier=wait_initial, max=wait_max) + wait_random(0, self.jitter),
            retry=retry_if_exception(is_transient),
            sleep=self.sleep,
            reraise=True,
        )
        async for attempt in retrying:  # pragma: no cover - control flow instrumentation
            with attempt:
                return await func(*args, **kwargs)
