"""JSON-file implementation of RequestStorePort.

Records live in memory and every write flushes the whole set to disk with a
temp file + os.replace, so a crash never leaves a half-written file behind.
Read-modify-write on a record is serialized by a per-record asyncio.Lock;
flushes are serialized by a separate lock. Without a path the store keeps
records in memory only.
"""
from __future__ import annotations

import asyncio
import json
import os
import weakref
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from songgw.core.exceptions import ErrorType, JobNotFoundError
from songgw.core.interfaces.request_store import RequestStorePort
from songgw.core.models.job import JobPatch, JobRecord, JobStatus, ProviderErrorInfo
from songgw.core.settings import logger


class FileRequestStore(RequestStorePort):
    def __init__(self, path: str | Path | None = None) -> None:
        self._path: Optional[Path] = Path(path) if path else None
        self._records: Dict[str, JobRecord] = {}
        # a lock lives only while some coroutine holds or awaits it
        self._record_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._flush_lock = asyncio.Lock()
        self._load()

    def _lock_for(self, job_id: str) -> asyncio.Lock:
        lock = self._record_locks.get(job_id)
        if lock is None:
            lock = asyncio.Lock()
            self._record_locks[job_id] = lock
        return lock

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def _load(self) -> None:
        if self._path is None:
            return
        if not self._path.exists():
            logger.info(f"[store:load] no data file at {self._path}, starting empty")
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "[]")
        except (OSError, ValueError) as e:
            logger.error(f"[store:load] unreadable data file {self._path}: {e}; starting empty")
            return
        if not isinstance(raw, list):
            logger.error(f"[store:load] data file {self._path} does not hold a list; starting empty")
            return
        for item in raw:
            try:
                record = JobRecord.model_validate(item)
            except ValidationError as e:
                logger.warning(f"[store:load] skipping invalid record: {e.errors()[:1]}")
                continue
            self._records[record.id] = record
        logger.info(f"[store:load] loaded {len(self._records)} record(s) from {self._path}")

    def _write_snapshot(self, snapshot: List[dict]) -> None:
        assert self._path is not None
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, ensure_ascii=False, indent=2)
        os.replace(tmp, self._path)

    async def _flush(self) -> None:
        if self._path is None:
            return
        async with self._flush_lock:
            snapshot = [r.model_dump(mode="json") for r in self._records.values()]
            await asyncio.to_thread(self._write_snapshot, snapshot)
            logger.debug(f"[store:flush] saved {len(snapshot)} record(s) to {self._path}")

    async def create(self, record: JobRecord) -> JobRecord:
        async with self._lock_for(record.id):
            existing = self._records.get(record.id)
            if existing is not None:
                return deepcopy(existing)
            stored = deepcopy(record)
            self._records[record.id] = stored
            await self._flush()
            logger.info(f"[store:create] job_id={record.id} status={record.status}")
            return deepcopy(stored)

    async def get(self, job_id: str) -> Optional[JobRecord]:
        record = self._records.get(job_id)
        return deepcopy(record) if record else None

    async def get_by_provider_job_id(self, provider_job_id: str) -> Optional[JobRecord]:
        if not provider_job_id:
            return None
        for record in self._records.values():
            if record.provider_job_id == provider_job_id:
                return deepcopy(record)
        return None

    async def get_by_provider_record_id(self, provider_record_id: str) -> Optional[JobRecord]:
        if not provider_record_id:
            return None
        for record in self._records.values():
            if record.provider_record_id == provider_record_id:
                return deepcopy(record)
        return None

    async def update(self, job_id: str, patch: JobPatch) -> JobRecord:
        async with self._lock_for(job_id):
            current = self._records.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            merged = current.merged(patch)
            if merged == current:
                return deepcopy(current)
            self._records[job_id] = merged
            await self._flush()
            logger.debug(
                f"[store:update] job_id={job_id} status={merged.status} fields={sorted(patch.model_dump(exclude_none=True))}"
            )
            return deepcopy(merged)

    async def mark_failed(self, job_id: str, error: ProviderErrorInfo) -> JobRecord:
        record = await self.update(job_id, JobPatch(status=JobStatus.failed, provider_error=error))
        if record.status == JobStatus.failed and record.provider_error == error:
            logger.warning(f"[store:failed] job_id={job_id} type={error.type} message={error.message}")
        return record

    async def list(self, status: Optional[JobStatus] = None) -> Sequence[JobRecord]:
        records = list(self._records.values())
        if status is not None:
            records = [r for r in records if r.status == status]
        return [deepcopy(r) for r in records]

    async def stats(self) -> Dict[str, Any]:
        records = list(self._records.values())
        status_counts: Dict[str, int] = {}
        for record in records:
            status_counts[str(record.status)] = status_counts.get(str(record.status), 0) + 1
        created = sorted(r.created_at for r in records)
        return {
            "totalRequests": len(records),
            "statusCounts": status_counts,
            "failedByType": self._failed_by_type(records),
            "oldestRequest": created[0].isoformat() if created else None,
            "newestRequest": created[-1].isoformat() if created else None,
            "dataFile": str(self._path) if self._path else None,
        }

    @staticmethod
    def _failed_by_type(records: List[JobRecord]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for record in records:
            if record.status == JobStatus.failed:
                key = record.provider_error.type if record.provider_error else str(ErrorType.GEN_ERROR)
                counts[key] = counts.get(key, 0) + 1
        return counts
