"""Tests for StatusResolutionService: the four record states and callback ingestion."""

from datetime import datetime, timedelta, timezone

import pytest

from songgw.adapters.request_store_file import FileRequestStore
from songgw.core.config import StatusResolutionConfig
from songgw.core.exceptions import ErrorType, ProviderError
from songgw.core.managers.status_cache import StatusCache
from songgw.core.managers.status_resolution import (
    MSG_AWAITING_PROVIDER,
    MSG_NOT_PERSISTED,
    StatusResolutionService,
)
from songgw.core.models.job import JobRecord, JobStatus

from fakes import FakeProvider, FakeRegistry

URL = "https://cdn.example/song.mp3"


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def store():
    return FileRequestStore()


@pytest.fixture
def sleep():
    return RecordingSleep()


def service(provider, store, sleep, cache=None, **config):
    return StatusResolutionService(
        FakeRegistry(provider),
        store,
        cache if cache is not None else StatusCache(ttl=1.5),
        StatusResolutionConfig(**config),
        sleep=sleep,
    )


def ago(seconds: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(seconds=seconds)


class TestProviderKnown:
    async def test_in_progress_answer(self, store, sleep):
        provider = FakeProvider(statuses=[{"code": 200, "data": {"status": "GENERATING", "progress": 40}}])
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))

        answer = await service(provider, store, sleep).resolve("song_1")

        assert answer.status == "processing"
        assert answer.progress == 40
        assert answer.audioUrl is None
        assert provider.status_calls == [("abc123", None)]
        assert (await store.get("song_1")).status == JobStatus.processing

    async def test_doubly_wrapped_audio_completes(self, store, sleep):
        provider = FakeProvider(statuses=[{"data": {"data": [{"audio_url": URL}]}}])
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))

        answer = await service(provider, store, sleep).resolve("song_1")

        assert answer.status == "completed"
        assert answer.audioUrl == URL
        assert answer.progress == 100
        stored = await store.get("song_1")
        assert stored.status == JobStatus.completed
        assert stored.audio_url == URL

    async def test_provider_reported_failure(self, store, sleep):
        provider = FakeProvider(
            statuses=[{"data": {"status": "SENSITIVE_WORD_ERROR", "errorMessage": "lyrics rejected"}}]
        )
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))

        answer = await service(provider, store, sleep).resolve("song_1")

        assert answer.status == "failed"
        assert answer.errorType == "GEN_ERROR"
        assert answer.errorMessage == "lyrics rejected"
        assert answer.retryable is False

    async def test_record_id_is_backfilled_and_reused(self, store, sleep):
        provider = FakeProvider(statuses=[{"data": {"status": "PENDING", "recordId": "rec-1"}}])
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))
        cache = StatusCache(ttl=0)
        svc = service(provider, store, sleep, cache=cache)

        await svc.resolve("song_1")
        await svc.resolve("song_1")

        assert (await store.get("song_1")).provider_record_id == "rec-1"
        assert provider.status_calls[-1] == ("abc123", "rec-1")

    async def test_answer_is_cached(self, store, sleep):
        provider = FakeProvider(statuses=[{"status": "running"}])
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))
        svc = service(provider, store, sleep)

        first = await svc.resolve("song_1")
        second = await svc.resolve("song_1")

        assert first.model_dump() == second.model_dump()
        assert len(provider.status_calls) == 1


class TestCompletedWithoutUrl:
    async def test_requeries_until_url_appears(self, store, sleep):
        provider = FakeProvider(
            statuses=[{"status": "SUCCESS"}, {"status": "SUCCESS"}, {"status": "SUCCESS", "audioUrl": URL}]
        )
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))

        answer = await service(provider, store, sleep).resolve("song_1")

        assert answer.audioUrl == URL
        assert sleep.delays == [2.0, 2.0]
        assert len(provider.status_calls) == 3

    async def test_gives_up_after_requery_budget(self, store, sleep):
        provider = FakeProvider(statuses=[{"status": "SUCCESS"}])
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))

        answer = await service(provider, store, sleep, empty_url_requeries=2).resolve("song_1")

        assert answer.status == "completed"
        assert answer.audioUrl is None
        assert len(sleep.delays) == 2
        assert len(provider.status_calls) == 3

    async def test_disabled(self, store, sleep):
        provider = FakeProvider(statuses=[{"status": "SUCCESS"}])
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))

        await service(provider, store, sleep, empty_url_requeries=0).resolve("song_1")

        assert sleep.delays == []
        assert len(provider.status_calls) == 1


class TestTerminal:
    async def test_terminal_answers_are_identical_and_skip_the_provider(self, store, sleep):
        provider = FakeProvider(statuses=[{"status": "PENDING"}])
        await store.create(
            JobRecord(id="song_1", provider_job_id="abc123", status=JobStatus.completed, audio_url=URL)
        )

        # fresh caches force the store path on every call
        first = await service(provider, store, sleep).resolve("song_1")
        second = await service(provider, store, sleep).resolve("song_1")

        assert first.model_dump() == second.model_dump()
        assert first.status == "completed"
        assert first.audioUrl == URL
        assert provider.status_calls == []

    async def test_terminal_answer_is_cached_without_expiry(self, store, sleep):
        await store.create(JobRecord(id="song_1", status=JobStatus.completed, audio_url=URL))
        cache = StatusCache(ttl=0)
        await service(FakeProvider(), store, sleep, cache=cache).resolve("song_1")
        assert cache.get("song_1")["status"] == "completed"


class TestAwaitingAssignment:
    async def test_within_grace_window(self, store, sleep):
        await store.create(JobRecord(id="song_1"))
        answer = await service(FakeProvider(), store, sleep).resolve("song_1")

        assert answer.status == "pending"
        assert answer.progress == 0
        assert answer.message == MSG_AWAITING_PROVIDER
        assert (await store.get("song_1")).status == JobStatus.pending

    @pytest.mark.parametrize("age, expected", [(7, "pending"), (9, "failed")])
    async def test_grace_window_boundary(self, store, sleep, age, expected):
        await store.create(JobRecord(id="song_1", created_at=ago(age), updated_at=ago(age)))

        answer = await service(FakeProvider(), store, sleep, grace_window=8).resolve("song_1")

        assert answer.status == expected
        if expected == "failed":
            assert answer.errorType == "GEN_TIMEOUT"
        else:
            assert answer.message == MSG_AWAITING_PROVIDER

    async def test_grace_window_expiry_fails_with_gen_timeout(self, store, sleep):
        provider = FakeProvider()
        await store.create(JobRecord(id="song_1", created_at=ago(20), updated_at=ago(20)))

        answer = await service(provider, store, sleep).resolve("song_1")

        assert answer.status == "failed"
        assert answer.errorType == "GEN_TIMEOUT"
        assert answer.retryable is False
        stored = await store.get("song_1")
        assert stored.provider_error.code == "TIMEOUT"
        assert stored.provider_error.data["ageSeconds"] >= 20
        assert provider.status_calls == []


class TestMissingRecord:
    async def test_not_persisted_yet(self, store, sleep):
        answer = await service(FakeProvider(), store, sleep).resolve("song_unknown")

        assert answer.status == "pending"
        assert answer.message == MSG_NOT_PERSISTED
        assert await store.get("song_unknown") is None

    async def test_adopts_with_external_job_id(self, store, sleep):
        provider = FakeProvider(statuses=[{"data": {"status": "SUCCESS", "audioUrl": URL}}])

        answer = await service(provider, store, sleep).resolve("song_x", external_job_id="abc123")

        assert answer.status == "completed"
        stored = await store.get("song_x")
        assert stored.provider_job_id == "abc123"
        assert stored.audio_url == URL
        assert provider.status_calls == [("abc123", None)]

    async def test_adoption_query_failure_is_initializing(self, store, sleep):
        provider = FakeProvider(statuses=[ProviderError(ErrorType.UPSTREAM_ERROR, "busy", upstream_status=503)])

        answer = await service(provider, store, sleep).resolve("song_x", external_job_id="abc123")

        assert answer.status == "pending"
        assert await store.get("song_x") is None


class TestProviderFailures:
    async def test_auth_failure_is_error_not_retryable(self, store, sleep):
        provider = FakeProvider(statuses=[ProviderError(ErrorType.AUTH_ERROR, "bad key", upstream_status=401)])
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))

        answer = await service(provider, store, sleep).resolve("song_1")

        assert answer.status == "error"
        assert answer.errorType == "AUTH_ERROR"
        assert answer.retryable is False
        assert (await store.get("song_1")).status == JobStatus.pending

    async def test_transient_failure_is_processing_and_not_cached(self, store, sleep):
        provider = FakeProvider(
            statuses=[
                ProviderError(ErrorType.UPSTREAM_ERROR, "HTTP 503", upstream_status=503),
                {"status": "running"},
            ]
        )
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))
        svc = service(provider, store, sleep)

        first = await svc.resolve("song_1")
        second = await svc.resolve("song_1")

        assert first.status == "processing"
        assert first.retryable is True
        assert first.errorType == "UPSTREAM_ERROR"
        assert second.retryable is None
        assert len(provider.status_calls) == 2


class TestCallbackIngest:
    async def test_completion_callback(self, store, sleep):
        cache = StatusCache()
        svc = service(FakeProvider(), store, sleep, cache=cache)
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))
        cache.set("song_1", {"status": "processing"})

        record = await svc.ingest_callback(
            {
                "code": 200,
                "msg": "All generated successfully.",
                "data": {"callbackType": "complete", "task_id": "abc123", "data": [{"audio_url": URL}]},
            }
        )

        assert record.id == "song_1"
        assert record.status == JobStatus.completed
        assert record.audio_url == URL
        assert cache.get("song_1") is None

    async def test_failure_code_in_envelope(self, store, sleep):
        svc = service(FakeProvider(), store, sleep)
        await store.create(JobRecord(id="song_1", provider_job_id="abc123"))

        record = await svc.ingest_callback({"code": 531, "msg": "generation failed", "data": {"taskId": "abc123"}})

        assert record.status == JobStatus.failed
        assert record.provider_error.type == "GEN_ERROR"
        assert record.provider_error.message == "generation failed"

    async def test_matched_by_record_id(self, store, sleep):
        svc = service(FakeProvider(), store, sleep)
        await store.create(JobRecord(id="song_1", provider_job_id="abc123", provider_record_id="rec-1"))

        record = await svc.ingest_callback({"recordId": "rec-1", "status": "running"})

        assert record.status == JobStatus.processing

    async def test_unknown_job_is_ignored(self, store, sleep):
        svc = service(FakeProvider(), store, sleep)
        assert await svc.ingest_callback({"taskId": "nobody"}) is None
        assert await svc.ingest_callback("not even json") is None


class TestProviderSnapshot:
    async def test_fresh_answer_is_not_persisted(self, store, sleep):
        provider = FakeProvider(statuses=[{"code": 200, "data": {"status": "SUCCESS", "audioUrl": URL}}])
        svc = service(provider, store, sleep)
        record = await store.create(JobRecord(id="song_1", provider_job_id="abc123", provider_record_id="rec-1"))

        snapshot = await svc.provider_snapshot(record)

        assert provider.status_calls == [("abc123", "rec-1")]
        assert snapshot["raw"]["data"]["status"] == "SUCCESS"
        assert snapshot["normalized"]["status"] == "completed"
        assert snapshot["normalized"]["audio_url"] == URL
        assert (await store.get("song_1")).status == JobStatus.pending

    async def test_without_provider_handle(self, store, sleep):
        provider = FakeProvider()
        record = await store.create(JobRecord(id="song_1"))

        assert await service(provider, store, sleep).provider_snapshot(record) is None
        assert provider.status_calls == []

    async def test_provider_error_is_reported(self, store, sleep):
        provider = FakeProvider(statuses=[ProviderError(ErrorType.AUTH_ERROR, "bad key", upstream_status=401)])
        record = await store.create(JobRecord(id="song_1", provider_job_id="abc123"))

        snapshot = await service(provider, store, sleep).provider_snapshot(record)

        assert snapshot == {"error": {"type": "AUTH_ERROR", "message": "bad key", "code": "401", "retryable": False}}
