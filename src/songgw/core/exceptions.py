from enum import StrEnum
from typing import Any, Optional

from songgw.core.models.job import ProviderErrorInfo


class ErrorType(StrEnum):
    AUTH_ERROR = "AUTH_ERROR"
    BAD_API_KEY = "BAD_API_KEY"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    NO_JOB_ID = "NO_JOB_ID"
    GEN_TIMEOUT = "GEN_TIMEOUT"
    GEN_ERROR = "GEN_ERROR"


AUTH_ERROR_TYPES = frozenset({ErrorType.AUTH_ERROR, ErrorType.BAD_API_KEY, ErrorType.FORBIDDEN})
RETRYABLE_ERROR_TYPES = frozenset({ErrorType.TIMEOUT, ErrorType.NETWORK_ERROR, ErrorType.UPSTREAM_ERROR})


def classify_http_status(status: Optional[int], body: Any = None) -> ErrorType:
    """Map an HTTP status (or an envelope `code` hidden in a 200 body) to an ErrorType.

    Aggregator APIs commonly answer HTTP 200 with `{"code": 429, "msg": ...}`;
    a numeric envelope code takes precedence over a 2xx transport status.
    """
    code = status
    if isinstance(body, dict):
        envelope_code = body.get("code")
        if isinstance(envelope_code, int) and envelope_code >= 400 and (status is None or status < 400):
            code = envelope_code

    if code is None:
        return ErrorType.NETWORK_ERROR
    if code == 401:
        return ErrorType.BAD_API_KEY
    if code == 403:
        return ErrorType.FORBIDDEN
    if code in (402, 429):
        return ErrorType.INSUFFICIENT_CREDITS
    if code in (400, 413, 422):
        return ErrorType.BAD_REQUEST
    if code == 404:
        return ErrorType.NOT_FOUND
    if code in (408, 504):
        return ErrorType.TIMEOUT
    if code >= 500:
        return ErrorType.UPSTREAM_ERROR
    return ErrorType.GEN_ERROR


class GenerationError(Exception):
    """Base exception for generation job failures.

    Attributes:
        message: Human-readable error description
        diagnostic: Technical diagnostic information for debugging
        job_id: Optional job identifier
    """
    def __init__(
        self,
        message: str,
        diagnostic: Optional[str] = None,
        job_id: Optional[str] = None
    ):
        self.message = message
        self.diagnostic = diagnostic
        self.job_id = job_id
        super().__init__(message)


class ProviderError(GenerationError):
    """Raised at the provider boundary for every classified upstream failure.

    Attributes:
        error_type: Classification driving retry / fallback / terminal decisions
        provider_name: Registry name of the provider
        upstream_status: HTTP status code from provider (None when no response arrived)
        upstream_body: Response body from provider (if available)
    """
    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        provider_name: Optional[str] = None,
        upstream_status: Optional[int] = None,
        upstream_body: Any = None,
        diagnostic: Optional[str] = None,
        job_id: Optional[str] = None
    ):
        self.error_type = error_type
        self.provider_name = provider_name
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body
        super().__init__(message=message, diagnostic=diagnostic, job_id=job_id)

    @property
    def transient(self) -> bool:
        """No response at all, or a 5xx. Only these are worth another attempt."""
        if self.error_type in (ErrorType.TIMEOUT, ErrorType.NETWORK_ERROR):
            return True
        return self.upstream_status is not None and self.upstream_status >= 500

    @property
    def retryable(self) -> bool:
        return self.error_type in RETRYABLE_ERROR_TYPES

    @property
    def is_auth_error(self) -> bool:
        return self.error_type in AUTH_ERROR_TYPES

    def to_info(self) -> ProviderErrorInfo:
        data = None
        if isinstance(self.upstream_body, dict):
            data = self.upstream_body
        elif self.upstream_body is not None:
            data = {"body": str(self.upstream_body)[:500]}
        return ProviderErrorInfo(
            type=str(self.error_type),
            message=self.message,
            code=str(self.upstream_status) if self.upstream_status is not None else None,
            data=data,
            retryable=self.retryable,
        )


class JobNotFoundError(GenerationError):
    """Raised by the request store for an unknown job id."""
    def __init__(self, job_id: str):
        super().__init__(message=f"Job not found: {job_id}", job_id=job_id)
