"""GenerationProviderPort: capability of one external audio generation vendor.

Implementations classify every failure at this boundary (see
`songgw.core.exceptions.ProviderError`) so the managers only ever see
ErrorType values, never transport details.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel


class SubmitResult(BaseModel):
    job_id: str
    record_id: Optional[str] = None
    raw: Any = None


class HealthReport(BaseModel):
    ok: bool
    status: int
    reason: str
    message: str
    provider: str
    baseUrl: str


class GenerationProviderPort(ABC):
    """Submit / poll / health operations against one external vendor."""

    name: str

    @abstractmethod
    async def submit(
        self,
        prompt: str,
        style: Optional[str] = None,
        tags: Optional[List[str]] = None,
        instrumental: bool = False,
        callback_url: Optional[str] = None,
        title: Optional[str] = None,
    ) -> SubmitResult:
        """Start a generation job.

        Returns a SubmitResult with a non-empty job_id or raises a classified
        ProviderError (NO_JOB_ID when the call succeeded but no handle could
        be extracted).
        """
        raise NotImplementedError

    @abstractmethod
    async def resolve_status(
        self, job_id: str, record_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Return the raw status payload, or None when the job is not known yet.

        Not-found is never an exception. Auth failures and exhausted transient
        failures raise ProviderError.
        """
        raise NotImplementedError

    @abstractmethod
    async def health(self) -> HealthReport:
        """Reachability probe distinguishing AUTH_ERROR from unavailability."""
        raise NotImplementedError

    @abstractmethod
    def describe(self) -> Dict[str, str]:
        """Return {'name': ..., 'baseUrl': ...} for diagnostics."""
        raise NotImplementedError


class ProviderSource(Protocol):
    """What the managers need from the provider registry."""

    @property
    def name(self) -> str:  # pragma: no cover - protocol
        ...

    @property
    def active(self) -> GenerationProviderPort:  # pragma: no cover - protocol
        ...
