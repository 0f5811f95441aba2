from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class JobStatus(StrEnum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.completed, JobStatus.failed})

# forward order; failed is reachable from any non-terminal state
_STATUS_RANK = {
    JobStatus.pending: 0,
    JobStatus.processing: 1,
    JobStatus.completed: 2,
    JobStatus.failed: 2,
}


class ProviderErrorInfo(BaseModel):
    """Structured failure stored on a job record and echoed to clients."""

    type: str
    message: str
    code: Optional[str] = None
    data: Optional[dict] = None
    retryable: bool = False


class JobPatch(BaseModel):
    """Partial update for a JobRecord. Unset fields are left untouched."""

    provider_job_id: Optional[str] = None
    provider_record_id: Optional[str] = None
    status: Optional[JobStatus] = None
    audio_url: Optional[str] = None
    provider_error: Optional[ProviderErrorInfo] = None


class JobRecord(BaseModel):
    """Durable lifecycle record of one generation request.

    Notes:
    - `id` is the client-facing correlation id and the store key. It is never
      the provider's handle; that lives in `provider_job_id` and may be null
      until the provider accepts the submission.
    - `provider_record_id` is a secondary handle some providers need to look
      up the finished asset.
    - Once `status` is terminal, `status`, `audio_url` and `provider_error`
      are frozen; `merged` silently drops later changes to them.
    """

    id: str
    provider: Optional[str] = None
    provider_job_id: Optional[str] = None
    provider_record_id: Optional[str] = None
    status: JobStatus = JobStatus.pending
    audio_url: Optional[str] = None
    provider_error: Optional[ProviderErrorInfo] = None

    # submission inputs, kept for diagnostics only
    prompt: Optional[str] = None
    style: Optional[str] = None
    tags: Optional[List[str]] = None
    instrumental: bool = False
    title: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.created_at).total_seconds()

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def merged(self, patch: JobPatch) -> "JobRecord":
        """Return a copy with `patch` applied under the forward-only rules.

        Provider identifiers are only backfilled, never overwritten. A status
        of lower rank than the stored one is ignored, and nothing touches the
        outcome fields of a terminal record.
        """
        updated = self.model_copy(deep=True)
        changed = False

        if patch.provider_job_id and not updated.provider_job_id:
            updated.provider_job_id = patch.provider_job_id
            changed = True
        if patch.provider_record_id and not updated.provider_record_id:
            updated.provider_record_id = patch.provider_record_id
            changed = True

        if not self.is_terminal():
            if patch.status is not None and patch.status != updated.status:
                if patch.status == JobStatus.failed or _STATUS_RANK[patch.status] > _STATUS_RANK[updated.status]:
                    updated.status = patch.status
                    changed = True
            if patch.audio_url and patch.audio_url != updated.audio_url:
                updated.audio_url = patch.audio_url
                changed = True
            if patch.provider_error is not None:
                updated.provider_error = patch.provider_error
                changed = True

        if changed:
            updated.touch()
        return updated


class NormalizedStatus(BaseModel):
    """Provider-agnostic view of one provider response. Never persisted."""

    status: JobStatus = JobStatus.processing
    audio_url: Optional[str] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    record_id: Optional[str] = None
    eta_seconds: Optional[float] = None
    raw_status: Optional[str] = None
    error_message: Optional[str] = None


class GenerationRequest(BaseModel):
    """Inbound submission body."""

    prompt: str = Field(min_length=1)
    style: Optional[str] = None
    tags: Optional[List[str]] = None
    instrumental: bool = False
    title: Optional[str] = None
    callbackUrl: Optional[str] = None
    id: Optional[str] = None


class StatusResponse(BaseModel):
    """Client-facing answer of the status query."""

    status: str
    audioUrl: Optional[str] = None
    progress: Optional[int] = None
    etaSeconds: Optional[float] = None
    startedAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    errorType: Optional[str] = None
    errorMessage: Optional[str] = None
    retryable: Optional[bool] = None
    message: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict; the optional error/message keys are dropped when unset."""
        payload = self.model_dump(mode="json")
        for key in ("errorType", "errorMessage", "retryable", "message"):
            if payload.get(key) is None:
                payload.pop(key, None)
        return payload
