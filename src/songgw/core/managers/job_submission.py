"""JobSubmissionManager: turns a GenerationRequest into a tracked job.

1. Create the pending record (idempotent on the job id).
2. Hand the request to the active provider.
3. Backfill the provider handles, or store the classified failure.

The record stays `pending` after a successful submission; the first status
poll moves it forward.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from typing import Optional, Set

from songgw.core.exceptions import ProviderError
from songgw.core.interfaces.generation_provider import ProviderSource
from songgw.core.interfaces.request_store import RequestStorePort
from songgw.core.models.job import GenerationRequest, JobPatch, JobRecord
from songgw.core.settings import logger


def new_job_id() -> str:
    return f"song_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class JobSubmissionManager:
    def __init__(self, providers: ProviderSource, store: RequestStorePort) -> None:
        self._providers = providers
        self._store = store
        self._tasks: Set[asyncio.Task] = set()

    async def _create_record(self, request: GenerationRequest, job_id: Optional[str]) -> JobRecord:
        record = JobRecord(
            id=job_id or request.id or new_job_id(),
            provider=self._providers.name,
            prompt=request.prompt,
            style=request.style,
            tags=request.tags,
            instrumental=request.instrumental,
            title=request.title,
        )
        return await self._store.create(record)

    async def submit(self, request: GenerationRequest, job_id: Optional[str] = None) -> JobRecord:
        record = await self._create_record(request, job_id)
        if record.provider_job_id or record.is_terminal():
            logger.info(f"[job:submit] job_id={record.id} already submitted; returning stored record")
            return record
        return await self._forward(record, request)

    async def submit_in_background(self, request: GenerationRequest, job_id: Optional[str] = None) -> JobRecord:
        """Create the record now and run the provider call as a tracked task.

        A submission that never finishes is caught by the grace window on
        the next status poll.
        """
        record = await self._create_record(request, job_id)
        if record.provider_job_id or record.is_terminal():
            return record
        task = asyncio.create_task(self._forward_in_background(record, request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"[job:submit] job_id={record.id} scheduled for background submission")
        return record

    async def _forward(self, record: JobRecord, request: GenerationRequest) -> JobRecord:
        provider = self._providers.active
        logger.info(f"[job:submit] job_id={record.id} provider={self._providers.name}")
        try:
            result = await provider.submit(
                prompt=request.prompt,
                style=request.style,
                tags=request.tags,
                instrumental=request.instrumental,
                callback_url=request.callbackUrl,
                title=request.title,
            )
        except ProviderError as e:
            logger.error(
                f"[job:submit] provider rejected job_id={record.id} type={e.error_type} status={e.upstream_status} message={e.message}"
            )
            return await self._store.mark_failed(record.id, e.to_info())

        updated = await self._store.update(
            record.id,
            JobPatch(provider_job_id=result.job_id, provider_record_id=result.record_id),
        )
        logger.info(f"[job:submit] job_id={record.id} provider_job_id={result.job_id}")
        return updated

    async def _forward_in_background(self, record: JobRecord, request: GenerationRequest) -> None:
        try:
            await self._forward(record, request)
        except asyncio.CancelledError:
            logger.warning(f"[job:submit] background submission cancelled job_id={record.id}")
            raise
        except Exception as exc:
            # the grace window fails the record on the next poll
            logger.error(f"[job:submit] background submission crashed job_id={record.id} error={exc}")

    @property
    def pending_submissions(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
