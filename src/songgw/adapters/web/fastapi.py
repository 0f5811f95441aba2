# songgw/adapters/web/fastapi.py
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from songgw.core.exceptions import JobNotFoundError
from songgw.core.interfaces.generation_provider import ProviderSource
from songgw.core.interfaces.http_client import HttpClientPort
from songgw.core.interfaces.request_store import RequestStorePort
from songgw.core.logging_config import bind_job_id, correlation_id_var, job_id_var
from songgw.core.managers.job_submission import JobSubmissionManager
from songgw.core.managers.status_cache import StatusCache
from songgw.core.managers.status_resolution import StatusResolutionService
from songgw.core.models.job import GenerationRequest, JobRecord
from songgw.core.models.problem import ProblemDetails
from songgw.core.settings import logger

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}


@dataclass
class GatewayServices:
    """Everything the HTTP layer talks to, assembled by the composition root."""

    providers: ProviderSource
    store: RequestStorePort
    cache: StatusCache
    resolution: StatusResolutionService
    submission: JobSubmissionManager


def record_summary(record: JobRecord) -> dict:
    summary = {
        "id": record.id,
        "status": str(record.status),
        "provider": record.provider,
        "providerJobId": record.provider_job_id,
        "statusUrl": f"/api/song/status/{record.id}",
        "createdAt": record.created_at,
    }
    if record.provider_error is not None:
        summary["errorType"] = record.provider_error.type
        summary["errorMessage"] = record.provider_error.message
        summary["retryable"] = record.provider_error.retryable
    return jsonable_encoder(summary)


# Note: this a driver adapter, so it depends on the core managers
# but the core does not depend on this adapter
def create_app(
    http_client: HttpClientPort,
    services_factory: Callable[[HttpClientPort], GatewayServices],
):
    """Create the FastAPI app.

    Adapters and concrete infrastructure (store, registry, retry) are
    assembled outside and passed in through `services_factory`, which runs
    once the HTTP client session is open.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with http_client as client:
            services = services_factory(client)
            app.state.services = services
            app.state.started_at = time.monotonic()
            logger.info(f"[app:start] provider={services.providers.name}")
            try:
                yield
            finally:
                await services.submission.shutdown()
                logger.info("[app:stop] background submissions cancelled")

    app = FastAPI(title="Song Generation Gateway", lifespan=lifespan)

    def services(request: Request) -> GatewayServices:
        return request.app.state.services

    def render_problem(problem: ProblemDetails) -> JSONResponse:
        response = JSONResponse(
            status_code=problem.status,
            content=jsonable_encoder(problem.model_dump(exclude_none=True)),
            media_type="application/problem+json",
        )
        if problem.requestId:
            response.headers["X-Request-ID"] = problem.requestId
        return response

    def build_problem(status: int, title: str, detail: str, request: Request) -> ProblemDetails:
        # the middleware has already reset the context var when a crash reaches the 500 handler
        request_id = getattr(request.state, "request_id", None) or correlation_id_var.get()
        return ProblemDetails(title=title, status=status, detail=detail, instance=request.url.path).for_request(
            request_id
        )

    def validation_detail(errors) -> str:
        messages = []
        for err in errors:
            loc = ".".join(str(part) for part in err.get("loc", []) if part != "body")
            messages.append(f"{loc or 'body'}: {err.get('msg', 'invalid value')}")
        return "; ".join(messages) or "Invalid request payload"

    # Correlation ID middleware: assigns per-request id (header override) and exposes it to logging
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        cid = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        request.state.request_id = cid
        token = correlation_id_var.set(cid)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers["X-Request-ID"] = cid
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return render_problem(build_problem(400, "Invalid Request", validation_detail(exc.errors()), request))

    @app.exception_handler(JobNotFoundError)
    async def job_not_found_handler(request: Request, exc: JobNotFoundError):
        return render_problem(build_problem(404, "Job Not Found", exc.message, request))

    @app.exception_handler(Exception)
    async def unexpected_exception_handler(request: Request, exc: Exception):
        logger.exception(f"[app:error] unhandled {type(exc).__name__} on {request.url.path}: {exc}")
        problem = build_problem(
            500,
            "Internal Server Error",
            "An unexpected error occurred while processing your request.",
            request,
        )
        return render_problem(problem)

    # ---------------- Submission -----------------
    async def generate(request: Request):
        try:
            raw = await request.json()
        except ValueError:
            raw = None
        if not isinstance(raw, dict):
            return render_problem(build_problem(400, "Invalid Request", "Request body must be a JSON object", request))

        try:
            generation_request = GenerationRequest.model_validate(raw)
        except ValidationError as ve:
            return render_problem(build_problem(400, "Invalid Request", validation_detail(ve.errors()), request))

        prefer = request.headers.get("prefer", "")
        manager = services(request).submission
        if "respond-async" in prefer.lower():
            record = await manager.submit_in_background(generation_request)
        else:
            record = await manager.submit(generation_request)

        return JSONResponse(
            status_code=201,
            content=record_summary(record),
            headers={"Location": f"/api/song/status/{record.id}"},
        )

    app.add_api_route("/api/song/generate", generate, methods=["POST"])
    app.add_api_route("/api/generate", generate, methods=["POST"])

    # ---------------- Status -----------------
    async def song_status(request: Request, job_id: str, jobId: str | None = None):
        external = (jobId or "").strip() or None
        token = bind_job_id(job_id)
        try:
            answer = await services(request).resolution.resolve(job_id, external)
        finally:
            job_id_var.reset(token)
        return JSONResponse(status_code=200, content=answer.to_payload(), headers=NO_STORE_HEADERS)

    app.add_api_route("/api/song/status/{job_id}", song_status, methods=["GET"])
    app.add_api_route("/api/status/{job_id}", song_status, methods=["GET"])

    # ---------------- Provider callbacks -----------------
    @app.post("/api/song/callback")
    async def song_callback(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            logger.warning("[callback:ingest] body is not JSON; acknowledging anyway")
            payload = None
        await services(request).resolution.ingest_callback(payload)
        return {"ok": True}

    @app.get("/api/song/callback", response_class=PlainTextResponse)
    async def song_callback_probe():
        return "OK"

    # ---------------- Health -----------------
    @app.get("/api/song/provider/health")
    async def provider_health(request: Request):
        report = await services(request).providers.active.health()
        return JSONResponse(status_code=200 if report.ok else 503, content=report.model_dump())

    @app.get("/api/health")
    async def backend_health(request: Request):
        return {
            "ok": True,
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "provider": services(request).providers.name,
        }

    # ---------------- Operator views -----------------
    @app.post("/api/song/cache/invalidate/{job_id}")
    async def cache_invalidate(request: Request, job_id: str):
        invalidated = services(request).cache.invalidate(job_id)
        logger.info(f"[cache:invalidate] job_id={job_id} invalidated={invalidated}")
        return {"ok": True, "jobId": job_id, "invalidated": invalidated}

    @app.get("/api/song/cache/status/{job_id}")
    async def cache_status(request: Request, job_id: str):
        svc = services(request)
        record = await svc.store.get(job_id)
        return JSONResponse(
            content=jsonable_encoder(
                {
                    "jobId": job_id,
                    "cache": svc.cache.inspect(job_id),
                    "record": record.model_dump(mode="json") if record else None,
                }
            ),
            headers=NO_STORE_HEADERS,
        )

    @app.get("/api/song/debug/status/{job_id}")
    async def debug_status(request: Request, job_id: str):
        svc = services(request)
        record = await svc.store.get(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return JSONResponse(
            content=jsonable_encoder(
                {
                    "jobId": job_id,
                    "stored": record.model_dump(mode="json"),
                    "provider": await svc.resolution.provider_snapshot(record),
                    "checkedAt": datetime.now(timezone.utc),
                }
            ),
            headers=NO_STORE_HEADERS,
        )

    @app.get("/api/song/debug/stats")
    async def debug_stats(request: Request):
        svc = services(request)
        stats = await svc.store.stats()
        stats.update(
            {
                "cacheEntries": len(svc.cache),
                "pendingSubmissions": svc.submission.pending_submissions,
                "provider": svc.providers.name,
            }
        )
        return stats

    @app.get("/api/song/{job_id}")
    async def get_song(request: Request, job_id: str):
        record = await services(request).store.get(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return record.model_dump(mode="json")

    return app
