import asyncio
import aiohttp
from typing import Any, Dict, Optional

from songgw.core.interfaces.http_client import HttpClientPort
from songgw.core.exceptions import ErrorType, ProviderError
from songgw.core.settings import logger


class AioHttpClientAdapter(HttpClientPort):
    """aiohttp implementation of HttpClientPort.

    HTTP error statuses come back as {"status", "headers", "body"} so the
    provider can classify them; timeouts and connection failures are
    raised as ProviderError(TIMEOUT / NETWORK_ERROR).
    """

    def __init__(self, default_total: float = 30.0):
        self._session: Optional[aiohttp.ClientSession] = None
        self._default_total: float = default_total
        self._default_sock_connect: float = 5.0
        self._default_client_timeout = aiohttp.ClientTimeout(
            total=self._default_total,
            sock_connect=self._default_sock_connect,
        )

    async def __aenter__(self):
        self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def _client_timeout(self, timeout: float | None) -> aiohttp.ClientTimeout:
        if timeout is None:
            return self._default_client_timeout
        return aiohttp.ClientTimeout(total=timeout, sock_connect=self._default_sock_connect)

    async def get(
        self,
        url: str,
        params: Dict[str, str] | None = None,
        headers: Dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Dict[str, Any]:
        return await self._request("GET", url, params=params, headers=headers, timeout=timeout)

    async def post(
        self,
        url: str,
        json: Dict[str, Any] | None,
        headers: Dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Dict[str, Any]:
        return await self._request("POST", url, json=json, headers=headers, timeout=timeout)

    async def options(
        self,
        url: str,
        headers: Dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Dict[str, Any]:
        return await self._request("OPTIONS", url, headers=headers, timeout=timeout)

    async def _request(
        self,
        method: str,
        url: str,
        timeout: float | None = None,
        **kwargs,
    ) -> Dict[str, Any]:
        if self._session is None:
            raise RuntimeError("AioHttpClientAdapter used outside `async with`; no session is open")

        try:
            async with self._session.request(
                method, url, timeout=self._client_timeout(timeout), **kwargs
            ) as response:
                text = await response.text()
                body: Any = None
                if text:
                    try:
                        body = await response.json(content_type=None)
                    except ValueError:
                        # not JSON; hand the raw text to the caller
                        body = text

                return {
                    "status": response.status,
                    "headers": dict(response.headers),
                    "body": body,
                }

        except asyncio.TimeoutError:
            logger.warning(f"[http:timeout] {method} {url}")
            raise ProviderError(
                ErrorType.TIMEOUT,
                "The request to the provider timed out.",
                diagnostic=f"{method} {url}",
            )

        except aiohttp.ClientError as client_error:
            logger.warning(f"[http:network] {method} {url}: {client_error}")
            raise ProviderError(
                ErrorType.NETWORK_ERROR,
                "There was a connection error with the provider.",
                diagnostic=f"{method} {url}: {client_error}",
            ) from client_error

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
