"""Tests for the aggregator and direct provider adapters against a fake HTTP client."""

import pytest

from songgw.adapters.providers.aggregator import AggregatorProvider, is_not_found
from songgw.adapters.providers.direct import DirectProvider
from songgw.adapters.retry_tenacity import TenacityRetryAdapter
from songgw.core.exceptions import ErrorType, ProviderError
from songgw.core.managers.status_normalizer import normalize_status
from songgw.core.models.job import JobStatus

from fakes import FakeHttpClient, NoRetry, aggregator_config, direct_config, response

BASE = "http://agg.test/api/v1"
STATUS_URL = f"{BASE}/generate/status"
RECORD_URL = f"{BASE}/generate/record-info"
LEGACY_URL = f"{BASE}/task/status"
AUDIO = "https://cdn.example/abc.mp3"


async def _no_sleep(_):
    return None


def aggregator(responses, retry=None, **config):
    http = FakeHttpClient(responses)
    provider = AggregatorProvider(
        aggregator_config(**config),
        http,
        retry or NoRetry(),
        default_callback_url="http://fallback.test/api/song/callback",
    )
    return provider, http


class TestAggregatorSubmit:
    async def test_task_id_in_envelope(self):
        provider, http = aggregator({("POST", f"{BASE}/generate"): response(200, {"code": 200, "data": {"taskId": "abc123"}})})

        result = await provider.submit("a song about tea", style="jazz", tags=["calm", "night"])

        assert result.job_id == "abc123"
        payload = http.calls[0]["json"]
        assert payload["prompt"] == "a song about tea"
        assert payload["model"] == "V4"
        assert payload["customMode"] is False
        assert payload["instrumental"] is False
        assert payload["tags"] == "calm, night"
        assert payload["callBackUrl"] == payload["callbackUrl"] == "http://gateway.test/api/song/callback"
        assert "title" not in payload
        assert http.calls[0]["headers"]["Authorization"] == "Bearer secret-key"

    async def test_top_level_task_id(self):
        provider, _ = aggregator({("POST", f"{BASE}/generate"): response(200, {"taskId": "abc123"})})
        assert (await provider.submit("x")).job_id == "abc123"

    async def test_callback_argument_wins(self):
        provider, http = aggregator({("POST", f"{BASE}/generate"): response(200, {"taskId": "t"})})
        await provider.submit("x", callback_url="http://caller.test/cb")
        assert http.calls[0]["json"]["callbackUrl"] == "http://caller.test/cb"

    async def test_default_callback_when_config_has_none(self):
        provider, http = aggregator(
            {("POST", f"{BASE}/generate"): response(200, {"taskId": "t"})}, callback_url=None
        )
        await provider.submit("x")
        assert http.calls[0]["json"]["callBackUrl"] == "http://fallback.test/api/song/callback"

    @pytest.mark.parametrize(
        "status, body, expected",
        [
            (429, {"msg": "no credits"}, ErrorType.INSUFFICIENT_CREDITS),
            (200, {"code": 429, "msg": "no credits"}, ErrorType.INSUFFICIENT_CREDITS),
            (401, {"msg": "bad key"}, ErrorType.BAD_API_KEY),
            (403, None, ErrorType.FORBIDDEN),
            (400, {"msg": "prompt too long"}, ErrorType.BAD_REQUEST),
            (408, None, ErrorType.TIMEOUT),
        ],
    )
    async def test_rejections_are_classified(self, status, body, expected):
        provider, _ = aggregator({("POST", f"{BASE}/generate"): response(status, body)})
        with pytest.raises(ProviderError) as excinfo:
            await provider.submit("x")
        assert excinfo.value.error_type == expected
        assert excinfo.value.provider_name == "aggregator"

    async def test_success_without_handle_is_no_job_id(self):
        provider, _ = aggregator({("POST", f"{BASE}/generate"): response(200, {"code": 200, "data": {}})})
        with pytest.raises(ProviderError) as excinfo:
            await provider.submit("x")
        assert excinfo.value.error_type == ErrorType.NO_JOB_ID

    async def test_server_error_is_upstream_error_and_not_retried(self):
        calls = []

        class CountingRetry(NoRetry):
            async def execute(self, func, *args, **kwargs):
                calls.append(func)
                return await func(*args, **kwargs)

        provider, http = aggregator({("POST", f"{BASE}/generate"): response(503, "busy")}, retry=CountingRetry())
        with pytest.raises(ProviderError) as excinfo:
            await provider.submit("x")
        assert excinfo.value.error_type == ErrorType.UPSTREAM_ERROR
        assert calls == []
        assert len(http.calls) == 1


class TestAggregatorFallbackChain:
    async def test_step_two_answers_when_step_one_misses(self):
        provider, http = aggregator(
            {
                ("GET", STATUS_URL): response(404, {"code": 404}),
                ("GET", RECORD_URL): response(200, {"code": 200, "data": {"status": "SUCCESS", "audioUrl": AUDIO}}),
                ("GET", LEGACY_URL): response(200, {"code": 200, "data": {"status": "PENDING"}}),
            }
        )

        raw = await provider.resolve_status("abc123")

        assert normalize_status(raw).audio_url == AUDIO
        assert [c["url"] for c in http.calls] == [STATUS_URL, RECORD_URL]
        assert http.calls[1]["params"] == {"id": "abc123"}

    async def test_record_id_is_used_for_record_info(self):
        provider, http = aggregator(
            {
                ("GET", STATUS_URL): response(200, {"code": 200, "data": None}),
                ("GET", RECORD_URL, frozenset({("id", "rec-9")})): response(200, {"data": {"status": "SUCCESS"}}),
            }
        )
        raw = await provider.resolve_status("abc123", "rec-9")
        assert raw == {"data": {"status": "SUCCESS"}}

    @pytest.mark.parametrize(
        "miss",
        [
            response(404, None),
            response(200, {"code": 404, "msg": "no such task"}),
            response(200, None),
            response(200, {"code": 200, "data": None}),
        ],
    )
    async def test_not_found_shapes_advance(self, miss):
        assert is_not_found(miss)

    async def test_all_steps_missing_is_none(self):
        provider, http = aggregator({})
        assert await provider.resolve_status("abc123") is None
        assert len(http.calls) == 3

    async def test_auth_failure_raises(self):
        provider, http = aggregator({("GET", STATUS_URL): response(401, {"msg": "bad key"})})
        with pytest.raises(ProviderError) as excinfo:
            await provider.resolve_status("abc123")
        assert excinfo.value.error_type == ErrorType.AUTH_ERROR
        assert len(http.calls) == 1

    async def test_transient_failures_are_retried_then_raised(self):
        retry = TenacityRetryAdapter(attempts=2, wait_initial=0.01, wait_max=0.01, jitter=0, sleep=_no_sleep)
        provider, http = aggregator(
            {
                ("GET", STATUS_URL): response(503, "busy"),
                ("GET", RECORD_URL): response(502, "bad gateway"),
                ("GET", LEGACY_URL): response(500, "oops"),
            },
            retry=retry,
        )
        with pytest.raises(ProviderError) as excinfo:
            await provider.resolve_status("abc123")
        assert excinfo.value.upstream_status == 500
        assert excinfo.value.transient
        # two attempts per step
        assert len(http.calls) == 6

    async def test_transient_then_success_on_later_step(self):
        provider, _ = aggregator(
            {
                ("GET", STATUS_URL): response(503, "busy"),
                ("GET", RECORD_URL): response(200, {"data": {"status": "PENDING"}}),
            }
        )
        raw = await provider.resolve_status("abc123")
        assert normalize_status(raw).status == JobStatus.pending


class TestHealth:
    async def test_ok(self):
        provider, http = aggregator({("OPTIONS", f"{BASE}/generate"): response(204, None)})
        report = await provider.health()
        assert report.ok
        assert report.baseUrl == BASE
        assert http.calls[0]["method"] == "OPTIONS"

    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_error(self, status):
        provider, _ = aggregator({("OPTIONS", f"{BASE}/generate"): response(status, None)})
        report = await provider.health()
        assert not report.ok
        assert report.reason == "AUTH_ERROR"

    async def test_missing_key_needs_no_network(self):
        provider, http = aggregator({}, api_key=None)
        report = await provider.health()
        assert report.reason == "AUTH_ERROR"
        assert http.calls == []

    async def test_unreachable(self):
        provider, _ = aggregator(
            {("OPTIONS", f"{BASE}/generate"): ProviderError(ErrorType.NETWORK_ERROR, "refused")}
        )
        report = await provider.health()
        assert report.reason == "UNAVAILABLE"
        assert report.status == 503

    async def test_http_failure(self):
        provider, _ = aggregator({("OPTIONS", f"{BASE}/generate"): response(500, "boom")})
        report = await provider.health()
        assert report.reason == "HEALTH_CHECK_FAILED"
        assert report.status == 500


class TestDirectProvider:
    def provider(self, responses, retry=None):
        http = FakeHttpClient(responses)
        return DirectProvider(direct_config(), http, retry or NoRetry(), "http://gw.test/api/song/callback"), http

    async def test_submit(self):
        provider, http = self.provider(
            {("POST", "http://direct.test/v1/music/generate"): response(200, {"id": "d-1", "status": "queued"})}
        )
        result = await provider.submit("birthday song", style="pop", instrumental=True)

        assert result.job_id == "d-1"
        payload = http.calls[0]["json"]
        assert payload["prompt"] == "birthday song in pop style"
        assert payload["model"] == "suno-music-1"
        assert payload["instrumental"] is True
        assert payload["callback_url"] == "http://gw.test/api/song/callback"

    async def test_submit_rejected(self):
        provider, _ = self.provider({("POST", "http://direct.test/v1/music/generate"): response(402, {"message": "pay"})})
        with pytest.raises(ProviderError) as excinfo:
            await provider.submit("x")
        assert excinfo.value.error_type == ErrorType.INSUFFICIENT_CREDITS

    async def test_status_lookup(self):
        provider, _ = self.provider(
            {("GET", "http://direct.test/v1/music/status/d-1"): response(200, {"status": "complete", "audio_url": AUDIO})}
        )
        n = normalize_status(await provider.resolve_status("d-1"))
        assert n.status == JobStatus.completed
        assert n.audio_url == AUDIO

    async def test_unknown_job_is_none(self):
        provider, _ = self.provider({})
        assert await provider.resolve_status("nope") is None

    async def test_status_auth_failure(self):
        provider, _ = self.provider({("GET", "http://direct.test/v1/music/status/d-1"): response(403, None)})
        with pytest.raises(ProviderError) as excinfo:
            await provider.resolve_status("d-1")
        assert excinfo.value.is_auth_error

    @pytest.mark.parametrize("status", [401, 403])
    @pytest.mark.parametrize("body", [None, "", {}])
    async def test_status_auth_failure_with_empty_body(self, status, body):
        provider, _ = self.provider({("GET", "http://direct.test/v1/music/status/d-1"): response(status, body)})
        with pytest.raises(ProviderError) as excinfo:
            await provider.resolve_status("d-1")
        assert excinfo.value.error_type == ErrorType.AUTH_ERROR
        assert excinfo.value.upstream_status == status

    @pytest.mark.parametrize("body", [None, "", {}])
    async def test_empty_success_body_is_none(self, body):
        provider, _ = self.provider({("GET", "http://direct.test/v1/music/status/d-1"): response(200, body)})
        assert await provider.resolve_status("d-1") is None

    async def test_status_server_error_raises(self):
        provider, _ = self.provider({("GET", "http://direct.test/v1/music/status/d-1"): response(500, None)})
        with pytest.raises(ProviderError) as excinfo:
            await provider.resolve_status("d-1")
        assert excinfo.value.error_type == ErrorType.UPSTREAM_ERROR

    async def test_submit_server_error_is_sent_once(self):
        calls = []

        class CountingRetry(NoRetry):
            async def execute(self, func, *args, **kwargs):
                calls.append(func)
                return await func(*args, **kwargs)

        provider, http = self.provider(
            {("POST", "http://direct.test/v1/music/generate"): response(503, "busy")}, retry=CountingRetry()
        )
        with pytest.raises(ProviderError) as excinfo:
            await provider.submit("x")
        assert excinfo.value.error_type == ErrorType.UPSTREAM_ERROR
        assert calls == []
        assert len(http.calls) == 1
