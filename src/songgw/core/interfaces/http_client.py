from abc import ABC, abstractmethod
from typing import Any, Dict

class HttpClientPort(ABC):
    """Outbound HTTP used by the generation providers.

    Every method returns a dict with keys 'status' (int), 'headers' (dict) and
    'body' (parsed JSON, raw text, or None). HTTP error statuses are returned,
    not raised, so the provider can classify them. Only transport failures
    (timeouts, connection errors) raise.
    """

    @abstractmethod
    async def __aenter__(self) -> "HttpClientPort":
        """Open the underlying session."""

    @abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Close the session; never suppresses the exception."""

    @abstractmethod
    async def get(
        self,
        url: str,
        params: Dict[str, str] | None = None,
        headers: Dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Dict[str, Any]:
        """GET with query params. `timeout` (seconds) overrides the adapter default."""

    @abstractmethod
    async def post(
        self,
        url: str,
        json: Dict[str, Any] | None,
        headers: Dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Dict[str, Any]:
        """POST a JSON body."""

    @abstractmethod
    async def options(
        self,
        url: str,
        headers: Dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Dict[str, Any]:
        """OPTIONS request; providers use it as a no-charge reachability probe."""

    @abstractmethod
    async def close(self) -> None:
        ...

