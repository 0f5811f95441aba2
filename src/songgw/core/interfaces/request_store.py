"""RequestStorePort: hexagonal port for persisting and querying Job Records.

Async methods anticipate DB/network-backed adapters; the file-backed
implementation still uses async for interface uniformity.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

from songgw.core.models.job import JobPatch, JobRecord, JobStatus, ProviderErrorInfo


class RequestStorePort(ABC):
	"""Port abstraction for Job Record persistence."""

	@abstractmethod
	async def create(self, record: JobRecord) -> JobRecord:
		"""Persist a new record and return the stored instance.

		Idempotent: when a record with the same id exists, it is returned
		unchanged and nothing is written.
		"""
		raise NotImplementedError

	@abstractmethod
	async def get(self, job_id: str) -> Optional[JobRecord]:
		"""Return record or None if not found."""
		raise NotImplementedError

	@abstractmethod
	async def get_by_provider_job_id(self, provider_job_id: str) -> Optional[JobRecord]:
		raise NotImplementedError

	@abstractmethod
	async def get_by_provider_record_id(self, provider_record_id: str) -> Optional[JobRecord]:
		raise NotImplementedError

	@abstractmethod
	async def update(self, job_id: str, patch: JobPatch) -> JobRecord:
		"""Apply `patch` under the forward-only merge rules and persist.

		Raises JobNotFoundError for unknown ids.
		"""
		raise NotImplementedError

	@abstractmethod
	async def mark_failed(self, job_id: str, error: ProviderErrorInfo) -> JobRecord:
		"""Transition a non-terminal record to failed with the given error."""
		raise NotImplementedError

	@abstractmethod
	async def list(self, status: Optional[JobStatus] = None) -> Sequence[JobRecord]:
		raise NotImplementedError

	@abstractmethod
	async def stats(self) -> Dict[str, Any]:
		"""Aggregate counts for operator diagnostics."""
		raise NotImplementedError
