"""StatusResolutionService: answers status polls for generation jobs.

Resolution is demand-driven; nothing runs between polls. Each poll walks
the record through one of four states:

- record missing: adopt the job when the caller knows the provider handle
- awaiting provider assignment: wait out the grace window, then GEN_TIMEOUT
- provider known: query the provider, normalize, persist, cache
- terminal: answer from the stored record without asking the provider

New information is persisted before the cache is refreshed and before the
answer leaves, so a crash never loses a state a client has already seen.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from songgw.core.config import StatusResolutionConfig
from songgw.core.exceptions import ErrorType, JobNotFoundError, ProviderError
from songgw.core.interfaces.generation_provider import ProviderSource
from songgw.core.interfaces.request_store import RequestStorePort
from songgw.core.managers.status_cache import StatusCache
from songgw.core.managers.status_normalizer import normalize_status
from songgw.core.models.job import (
    JobPatch,
    JobRecord,
    JobStatus,
    NormalizedStatus,
    ProviderErrorInfo,
    StatusResponse,
)
from songgw.core.settings import logger

DEFAULT_PROGRESS: Dict[JobStatus, int] = {
    JobStatus.completed: 100,
    JobStatus.failed: 100,
    JobStatus.pending: 0,
    JobStatus.processing: 50,
}

CALLBACK_JOB_ID_PATHS: Sequence[Sequence[str]] = (
    ("jobId",),
    ("taskId",),
    ("task_id",),
    ("id",),
    ("data", "taskId"),
    ("data", "task_id"),
    ("data", "id"),
)

CALLBACK_RECORD_ID_PATHS: Sequence[Sequence[str]] = (
    ("recordId",),
    ("record_id",),
    ("data", "recordId"),
    ("data", "record_id"),
)

MSG_NOT_PERSISTED = "Request not yet persisted; retry shortly."
MSG_ADOPT_FAILED = "Record not found; provider query failed. Retry shortly."
MSG_AWAITING_PROVIDER = "Request is initializing, waiting for provider assignment."
MSG_GEN_TIMEOUT = "Generation did not start within expected time"
MSG_AUTH_FAILED = "Authentication failed. Check API key and credits."


def default_progress(status: JobStatus | str) -> int:
    try:
        return DEFAULT_PROGRESS[JobStatus(status)]
    except ValueError:
        return 0


def _dig(payload: Any, path: Sequence[str]) -> Optional[str]:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    if isinstance(node, (str, int)) and not isinstance(node, bool) and str(node):
        return str(node)
    return None


def _first_id(payload: Any, paths: Sequence[Sequence[str]]) -> Optional[str]:
    for path in paths:
        value = _dig(payload, path)
        if value:
            return value
    return None


def generation_error(normalized: NormalizedStatus) -> ProviderErrorInfo:
    return ProviderErrorInfo(
        type=str(ErrorType.GEN_ERROR),
        message=normalized.error_message or "Generation failed",
        code=normalized.raw_status,
        retryable=False,
    )


class StatusResolutionService:
    """Resolves the client-facing status of a job.

    Args:
        providers: Registry holding the active provider
        store: Request store, the source of truth for job records
        cache: Micro-cache for status answers
        config: Timing knobs (grace window, re-query policy)
        sleep: Awaitable used between re-queries; injectable for tests
    """

    def __init__(
        self,
        providers: ProviderSource,
        store: RequestStorePort,
        cache: StatusCache,
        config: StatusResolutionConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._providers = providers
        self._store = store
        self._cache = cache
        self.config = config
        self._sleep = sleep

    # ---------------- Status query -----------------
    async def resolve(self, job_id: str, external_job_id: Optional[str] = None) -> StatusResponse:
        cached = self._cache.get(job_id)
        if cached is not None:
            logger.debug(f"[status:cache] hit job_id={job_id}")
            return StatusResponse.model_validate(cached)

        record = await self._store.get(job_id)
        if record is None:
            if external_job_id:
                return await self._adopt(job_id, external_job_id)
            return self._initializing(MSG_NOT_PERSISTED)

        if record.is_terminal():
            return self._remember(record, self.terminal_response(record))

        if not record.provider_job_id:
            return await self._await_assignment(record)

        try:
            normalized = await self._query(record.provider_job_id, record.provider_record_id)
        except ProviderError as e:
            return self._provider_failure(record, e)

        record = await self._store.update(record.id, self._patch_from(normalized))
        return self._remember(record, self._response_for(record, normalized))

    async def _adopt(self, job_id: str, external_job_id: str) -> StatusResponse:
        """Create the missing record from a provider handle the client already holds."""
        logger.info(f"[status:adopt] job_id={job_id} provider_job_id={external_job_id}")
        try:
            normalized = await self._query(external_job_id, None)
        except ProviderError as e:
            logger.warning(
                f"[status:adopt] provider query failed job_id={job_id} type={e.error_type} message={e.message}"
            )
            return self._initializing(MSG_ADOPT_FAILED)

        patch = self._patch_from(normalized)
        candidate = JobRecord(
            id=job_id,
            provider=self._providers.name,
            provider_job_id=external_job_id,
        ).merged(patch)
        await self._store.create(candidate)
        # another poll may have created it first; merge into whatever is stored
        record = await self._store.update(job_id, patch.model_copy(update={"provider_job_id": external_job_id}))
        return self._remember(record, self._response_for(record, normalized))

    async def _await_assignment(self, record: JobRecord) -> StatusResponse:
        age = record.age_seconds()
        if age <= self.config.grace_window:
            return self._initializing(MSG_AWAITING_PROVIDER, record)

        logger.warning(
            f"[status:grace] no provider handle after {age:.1f}s job_id={record.id}; failing with GEN_TIMEOUT"
        )
        record = await self._store.mark_failed(
            record.id,
            ProviderErrorInfo(
                type=str(ErrorType.GEN_TIMEOUT),
                message=MSG_GEN_TIMEOUT,
                code="TIMEOUT",
                data={"ageSeconds": round(age, 1)},
                retryable=False,
            ),
        )
        return self._remember(record, self.terminal_response(record))

    async def _query(self, provider_job_id: str, provider_record_id: Optional[str]) -> NormalizedStatus:
        provider = self._providers.active
        raw = await provider.resolve_status(provider_job_id, provider_record_id)
        normalized = normalize_status(raw)

        if normalized.status == JobStatus.completed and not normalized.audio_url:
            # providers report completion a moment before the asset url is published
            for attempt in range(1, self.config.empty_url_requeries + 1):
                await self._sleep(self.config.empty_url_requery_interval)
                try:
                    raw = await provider.resolve_status(
                        provider_job_id, provider_record_id or normalized.record_id
                    )
                except ProviderError as e:
                    logger.warning(
                        f"[status:requery] attempt={attempt} failed provider_job_id={provider_job_id} type={e.error_type}"
                    )
                    break
                candidate = normalize_status(raw)
                if candidate.audio_url:
                    normalized = candidate
                    break
            else:
                if self.config.empty_url_requeries:
                    logger.warning(
                        f"[status:requery] completed without audio url after {self.config.empty_url_requeries} re-queries provider_job_id={provider_job_id}"
                    )

        logger.debug(
            f"[status:query] provider_job_id={provider_job_id} raw_status={normalized.raw_status} status={normalized.status} audio={bool(normalized.audio_url)}"
        )
        return normalized

    @staticmethod
    def _patch_from(normalized: NormalizedStatus) -> JobPatch:
        return JobPatch(
            provider_record_id=normalized.record_id,
            status=normalized.status,
            audio_url=normalized.audio_url,
            provider_error=generation_error(normalized) if normalized.status == JobStatus.failed else None,
        )

    # ---------------- Answers -----------------
    def _remember(self, record: JobRecord, response: StatusResponse) -> StatusResponse:
        self._cache.set(record.id, response.to_payload(), terminal=record.is_terminal())
        return response

    @staticmethod
    def terminal_response(record: JobRecord) -> StatusResponse:
        """Answer built from stored fields only, so it is identical on every call."""
        if record.status == JobStatus.failed:
            error = record.provider_error
            return StatusResponse(
                status=str(JobStatus.failed),
                audioUrl=record.audio_url,
                progress=DEFAULT_PROGRESS[JobStatus.failed],
                startedAt=record.created_at,
                updatedAt=record.updated_at,
                errorType=error.type if error else str(ErrorType.GEN_ERROR),
                errorMessage=error.message if error else "Generation failed",
                retryable=bool(error.retryable) if error else False,
            )
        return StatusResponse(
            status=str(record.status),
            audioUrl=record.audio_url,
            progress=DEFAULT_PROGRESS[JobStatus.completed],
            startedAt=record.created_at,
            updatedAt=record.updated_at,
        )

    def _response_for(self, record: JobRecord, normalized: NormalizedStatus) -> StatusResponse:
        if record.is_terminal():
            return self.terminal_response(record)
        progress = normalized.progress
        if progress is None or normalized.status != record.status:
            progress = default_progress(record.status)
        return StatusResponse(
            status=str(record.status),
            audioUrl=record.audio_url,
            progress=progress,
            etaSeconds=normalized.eta_seconds,
            startedAt=record.created_at,
            updatedAt=record.updated_at,
        )

    @staticmethod
    def _initializing(message: str, record: Optional[JobRecord] = None) -> StatusResponse:
        return StatusResponse(
            status=str(JobStatus.pending),
            audioUrl=None,
            progress=0,
            startedAt=record.created_at if record else None,
            updatedAt=record.updated_at if record else None,
            message=message,
        )

    @staticmethod
    def _provider_failure(record: JobRecord, error: ProviderError) -> StatusResponse:
        if error.is_auth_error:
            logger.error(f"[status:provider] authentication failed job_id={record.id} message={error.message}")
            return StatusResponse(
                status="error",
                audioUrl=None,
                progress=0,
                startedAt=record.created_at,
                updatedAt=record.updated_at,
                errorType=str(ErrorType.AUTH_ERROR),
                errorMessage=error.message,
                retryable=False,
                message=MSG_AUTH_FAILED,
            )
        logger.warning(
            f"[status:provider] query failed job_id={record.id} type={error.error_type} message={error.message}"
        )
        return StatusResponse(
            status=str(JobStatus.processing),
            audioUrl=None,
            progress=0,
            startedAt=record.created_at,
            updatedAt=record.updated_at,
            errorType=str(error.error_type),
            errorMessage=error.message,
            retryable=True,
            message=f"Provider temporarily unavailable: {error.message}",
        )

    # ---------------- Provider callbacks -----------------
    async def ingest_callback(self, payload: Any) -> Optional[JobRecord]:
        """Apply a provider push notification to the matching record.

        Unknown jobs are ignored; the provider only needs an acknowledgement.
        """
        provider_job_id = _first_id(payload, CALLBACK_JOB_ID_PATHS)
        provider_record_id = _first_id(payload, CALLBACK_RECORD_ID_PATHS)

        record = None
        if provider_job_id:
            record = await self._store.get_by_provider_job_id(provider_job_id)
        if record is None and provider_record_id:
            record = await self._store.get_by_provider_record_id(provider_record_id)
        if record is None:
            logger.info(
                f"[callback:ingest] no record for provider_job_id={provider_job_id} provider_record_id={provider_record_id}"
            )
            return None

        normalized = normalize_status(payload)
        code = payload.get("code") if isinstance(payload, dict) else None
        if isinstance(code, int) and not isinstance(code, bool) and code >= 400:
            message = payload.get("msg") if isinstance(payload.get("msg"), str) else None
            normalized = normalized.model_copy(
                update={"status": JobStatus.failed, "error_message": message or normalized.error_message}
            )

        patch = self._patch_from(normalized)
        if provider_record_id:
            patch.provider_record_id = provider_record_id
        try:
            record = await self._store.update(record.id, patch)
        except JobNotFoundError:
            return None
        self._cache.invalidate(record.id)
        logger.info(
            f"[callback:ingest] job_id={record.id} status={record.status} audio={bool(record.audio_url)}"
        )
        return record

    # ---------------- Operator views -----------------
    async def provider_snapshot(self, record: JobRecord) -> Optional[Dict[str, Any]]:
        """Ask the provider about `record` right now, bypassing cache and store.

        Nothing is persisted. Returns None while the record has no provider
        handle; provider failures are reported in the result, not raised.
        """
        if not record.provider_job_id:
            return None
        try:
            raw = await self._providers.active.resolve_status(record.provider_job_id, record.provider_record_id)
        except ProviderError as e:
            logger.warning(f"[status:snapshot] provider query failed job_id={record.id} type={e.error_type}")
            return {"error": e.to_info().model_dump(mode="json", exclude_none=True)}
        return {"raw": raw, "normalized": normalize_status(raw).model_dump(mode="json")}
