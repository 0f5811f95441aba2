"""Shared HTTP plumbing for the generation provider adapters.

Concrete providers only describe their payloads and endpoints; sending,
retrying transient failures, classifying upstream errors and the health
probe live here.
"""

from typing import Any, Dict, Optional

from songgw.core.exceptions import ErrorType, ProviderError, classify_http_status
from songgw.core.interfaces.generation_provider import GenerationProviderPort, HealthReport
from songgw.core.interfaces.http_client import HttpClientPort
from songgw.core.interfaces.retry import RetryPort
from songgw.core.models.providers_config import ProviderConfig
from songgw.core.settings import logger

USER_AGENT = "songgw/1.0"

JOB_ID_KEYS = ("jobId", "taskId", "task_id", "id")
RECORD_ID_KEYS = ("recordId", "record_id")


def clean_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None and empty-string values; providers reject explicit nulls."""
    return {k: v for k, v in payload.items() if v is not None and v != ""}


def upstream_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        for key in ("msg", "message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    elif isinstance(body, str) and body.strip():
        return body.strip()[:200]
    return fallback


def _pick(mapping: Any, keys) -> Optional[str]:
    if not isinstance(mapping, dict):
        return None
    for key in keys:
        value = mapping.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value):
            return str(value)
    return None


def extract_job_id(body: Any) -> Optional[str]:
    """Job handle from the top level of the body or from its `data` envelope."""
    if not isinstance(body, dict):
        return None
    return _pick(body.get("data"), JOB_ID_KEYS) or _pick(body, JOB_ID_KEYS)


def extract_record_id(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    return _pick(body.get("data"), RECORD_ID_KEYS) or _pick(body, RECORD_ID_KEYS)


def is_envelope_failure(body: Any) -> bool:
    """HTTP 200 answers that carry a failure code in the body."""
    if not isinstance(body, dict):
        return False
    code = body.get("code")
    return isinstance(code, int) and not isinstance(code, bool) and code >= 400


class HttpGenerationProvider(GenerationProviderPort):
    """Base class for HTTP/JSON generation providers.

    Args:
        config: Connection settings for this provider
        http_client: Shared outbound HTTP client
        retry: Backoff executor wrapped around every retryable call
        default_callback_url: Used when neither the call nor the config names one
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: HttpClientPort,
        retry: RetryPort,
        default_callback_url: Optional[str] = None,
    ):
        self.config = config
        self.name = config.name
        self._http = http_client
        self._retry = retry
        self._default_callback_url = default_callback_url

    @property
    def base_url(self) -> str:
        return str(self.config.base_url).rstrip("/")

    def describe(self) -> Dict[str, str]:
        return {"name": self.name, "baseUrl": self.base_url}

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if self.config.api_key is not None:
            headers["Authorization"] = f"Bearer {self.config.api_key.get_secret_value()}"
        return headers

    def resolve_callback_url(self, callback_url: Optional[str]) -> Optional[str]:
        cb = callback_url or self.config.callback_url or self._default_callback_url
        if not cb:
            logger.warning(f"[provider:{self.name}] no callback url configured; provider may reject the submission")
        return cb

    def _error_from_response(self, response: Dict[str, Any], action: str) -> ProviderError:
        status = response.get("status")
        body = response.get("body")
        error_type = classify_http_status(status, body)
        return ProviderError(
            error_type,
            upstream_message(body, f"{action} failed with HTTP {status}"),
            provider_name=self.name,
            upstream_status=status,
            upstream_body=body,
        )

    async def _send_once(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """One outbound call. 5xx answers are raised so the retry policy can see them."""
        headers = self._headers()
        timeout = self.config.timeout
        if method == "GET":
            response = await self._http.get(url, params=kwargs.get("params"), headers=headers, timeout=timeout)
        elif method == "POST":
            response = await self._http.post(url, json=kwargs.get("json"), headers=headers, timeout=timeout)
        else:
            response = await self._http.options(url, headers=headers, timeout=timeout)

        if response.get("status", 0) >= 500:
            raise self._error_from_response(response, f"{method} {url}")
        return response

    async def _send(self, method: str, url: str, retry: bool = True, **kwargs) -> Dict[str, Any]:
        try:
            if retry:
                return await self._retry.execute(self._send_once, method, url, **kwargs)
            return await self._send_once(method, url, **kwargs)
        except ProviderError as e:
            if e.provider_name is None:
                e.provider_name = self.name
            raise

    async def health(self) -> HealthReport:
        if self.config.api_key is None:
            return self._health_report(False, 401, "AUTH_ERROR", f"No API key configured for {self.name}")

        url = self.config.url_for(self.config.health_path)
        try:
            response = await self._send_once("OPTIONS", url)
        except ProviderError as e:
            if e.upstream_status is None:
                logger.warning(f"[provider:{self.name}] health probe unreachable: {e.message}")
                return self._health_report(False, 503, "UNAVAILABLE", e.message)
            logger.warning(f"[provider:{self.name}] health probe failed status={e.upstream_status}")
            return self._health_report(False, e.upstream_status, "HEALTH_CHECK_FAILED", e.message)

        status = response.get("status", 0)
        if status in (401, 403):
            return self._health_report(False, 401, "AUTH_ERROR", f"Authentication with {self.name} failed; check the API key")
        if status >= 400:
            return self._health_report(
                False,
                status,
                "HEALTH_CHECK_FAILED",
                upstream_message(response.get("body"), f"Health probe answered HTTP {status}"),
            )
        return self._health_report(True, 200, "OK", f"{self.name} is responding")

    def _health_report(self, ok: bool, status: int, reason: str, message: str) -> HealthReport:
        return HealthReport(
            ok=ok,
            status=status,
            reason=reason,
            message=message,
            provider=self.name,
            baseUrl=self.base_url,
        )
