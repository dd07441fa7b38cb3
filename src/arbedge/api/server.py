"""
FastAPI server for the edge layer.

Serves cache-gated opportunity and asset-safety endpoints, a live
opportunity feed over server-sent events, the blacklist, the
path-restricted upstream proxy and a health check. All outcomes are
rendered through the uniform response envelope except proxy rejections,
which keep the flat ``{"error": code}`` shape proxy clients expect.
"""

import asyncio
import logging
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import orjson
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from arbedge import __version__
from arbedge.api.services import OPPORTUNITIES_PATH, SAFETY_PATH, Services, build_services
from arbedge.config.constants import (
    RATE_LIMIT_HEADER,
    RATE_REMAINING_HEADER,
    RATE_RESET_HEADER,
    STREAM_BATCH_LIMIT,
)
from arbedge.config.settings import Settings, get_settings
from arbedge.core.envelope import envelope_for_error, success_envelope
from arbedge.core.errors import (
    ApiError,
    ForbiddenError,
    NotFoundError,
    ProxyError,
    RateLimitError,
    UpstreamError,
    ValidationError,
)
from arbedge.core.models import (
    BlacklistRequest,
    Opportunity,
    OpportunityQuery,
    SafetyCheckRequest,
    SafetyQuery,
)
from arbedge.core.types import CachedResponse, CacheRequest
from arbedge.edge.rate_limiter import client_key
from arbedge.utils.time import LatencyTimer, format_iso_timestamp


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to build services from (defaults to environment).
        services: Pre-built service graph (tests inject fakes here).
    """
    settings = settings or get_settings()
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(f"Edge starting ({settings.environment}), engine at {settings.engine_url}")
        yield
        await services.close()
        logger.info("Edge stopped")

    app = FastAPI(title="Arbitrage Edge", version=__version__, lifespan=lifespan)
    app.state.services = services

    app.middleware("http")(enforce_rate_limit)
    app.middleware("http")(record_request)

    app.add_exception_handler(ProxyError, handle_proxy_error)  # type: ignore[arg-type]
    app.add_exception_handler(ApiError, handle_api_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.get("/")(get_index)
    app.get("/health")(get_health)
    app.api_route(OPPORTUNITIES_PATH, methods=["GET", "HEAD"])(get_opportunities)
    app.get(f"{OPPORTUNITIES_PATH}/stream")(stream_opportunities)
    app.api_route(SAFETY_PATH, methods=["GET", "HEAD"])(get_asset_safety)
    app.post(f"{SAFETY_PATH}/check")(post_safety_check)
    app.get("/api/assets/blacklist")(get_blacklist)
    app.post("/api/assets/blacklist")(post_blacklist)
    app.api_route("/api/proxy", methods=["GET", "POST"])(proxy_request)
    app.api_route("/api/proxy/{path:path}", methods=["GET", "POST"])(proxy_request)
    return app


# =============================================================================
# Helpers
# =============================================================================


def get_services(request: Request) -> Services:
    return request.app.state.services  # type: ignore[no-any-return]


def to_cache_request(request: Request) -> CacheRequest:
    url = request.url
    return CacheRequest(
        method=request.method,
        origin=f"{url.scheme}://{url.netloc}",
        path=url.path,
        query=tuple(request.query_params.multi_items()),
        headers={k.lower(): v for k, v in request.headers.items()},
    )


def to_response(cached: CachedResponse) -> Response:
    return Response(
        content=cached.body,
        status_code=cached.status,
        headers=cached.headers,
        media_type=cached.media_type,
    )


def json_response(payload: Any, status_code: int = 200) -> CachedResponse:
    return CachedResponse(status=status_code, body=orjson.dumps(payload))


def parse_model(model: type[M], data: dict[str, Any]) -> M:
    """Validate boundary input, mapping failures to a 400."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Invalid request data", details=format_errors(e.errors())) from e


def format_errors(errors: Any) -> list[dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in errors
    ]


def dump(records: list[Any]) -> list[dict[str, Any]]:
    return [r.model_dump(by_alias=True, mode="json") for r in records]


# =============================================================================
# Middleware & Error Handlers
# =============================================================================


async def record_request(request: Request, call_next: Any) -> Response:
    with LatencyTimer() as timer:
        response: Response = await call_next(request)
    route = getattr(request.scope.get("route"), "path", "unmatched")
    get_services(request).metrics.record_request(
        f"{request.method} {route}", response.status_code, timer.latency_us
    )
    return response


async def enforce_rate_limit(request: Request, call_next: Any) -> Response:
    """Per-client, per-path token bucket on API routes."""
    services = get_services(request)
    path = request.url.path
    rule = services.api_rate_limits.rule_for(path)
    if rule is None:
        return await call_next(request)

    peer = request.client.host if request.client else None
    key = f"ip:{client_key(request.headers, peer)}:{path}"
    allowed = services.api_limiter.consume(key, rule)
    reset_at = services.api_limiter.reset_at(key, rule)
    headers = {
        RATE_LIMIT_HEADER: str(rule.tokens),
        RATE_REMAINING_HEADER: str(services.api_limiter.remaining(key, rule)),
        RATE_RESET_HEADER: format_iso_timestamp(reset_at),
    }

    if not allowed:
        logger.info(f"API rate limit hit for {key}")
        services.metrics.increment_counter("api_rate_limited")
        headers["Retry-After"] = str(max(0, math.ceil((reset_at - services.clock.now_ms()) / 1000)))
        status, body = envelope_for_error(RateLimitError("Too many requests"))
        return Response(orjson.dumps(body), status_code=status, headers=headers, media_type="application/json")

    response: Response = await call_next(request)
    response.headers.update(headers)
    return response


async def handle_proxy_error(request: Request, exc: ProxyError) -> JSONResponse:
    return JSONResponse({"error": exc.code}, status_code=exc.status_code)


async def handle_api_error(request: Request, exc: ApiError) -> Response:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    status, body = envelope_for_error(exc)
    return Response(orjson.dumps(body), status_code=status, media_type="application/json")


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> Response:
    status, body = envelope_for_error(ValidationError("Invalid request data", details=format_errors(exc.errors())))
    return Response(orjson.dumps(body), status_code=status, media_type="application/json")


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> Response:
    error: ApiError
    if exc.status_code == 404:
        error = NotFoundError("Resource not found", details={"path": request.url.path})
    elif exc.status_code == 403:
        error = ForbiddenError(str(exc.detail))
    else:
        error = ApiError(str(exc.detail), code=f"HTTP_{exc.status_code}", status_code=exc.status_code)
    status, body = envelope_for_error(error)
    return Response(orjson.dumps(body), status_code=status, media_type="application/json")


async def handle_unexpected_error(request: Request, exc: Exception) -> Response:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    status, body = envelope_for_error(exc)
    return Response(orjson.dumps(body), status_code=status, media_type="application/json")


# =============================================================================
# Opportunities
# =============================================================================


async def get_opportunities(request: Request) -> Response:
    services = get_services(request)

    async def origin(req: CacheRequest) -> CachedResponse:
        query = parse_model(OpportunityQuery, req.query_dict())
        return json_response(success_envelope(await build_opportunities_page(services, query)))

    cached = await services.cache.handle(to_cache_request(request), services.opportunities_cache, origin)
    return to_response(cached)


async def build_opportunities_page(services: Services, query: OpportunityQuery) -> dict[str, Any]:
    persisted, (live, degraded) = await asyncio.gather(
        services.opportunities.list_opportunities(
            chain_id=query.chain_id,
            limit=services.settings.max_persisted_opportunities,
        ),
        fetch_live(services, query),
    )

    page = await services.aggregator.aggregate(
        persisted,
        live,
        query.filters,
        sort_by=query.sort_by,
        order=query.order,
        limit=query.limit,
        offset=query.offset,
    )
    services.metrics.increment_counter("opportunities_served", len(page.items))

    return {
        "opportunities": dump(page.items),
        "metadata": {
            "total": page.total,
            "limit": query.limit,
            "offset": query.offset,
            "degraded": degraded,
            "timestamp": services.clock.now_ms(),
        },
    }


async def fetch_live(services: Services, query: OpportunityQuery) -> tuple[list[Opportunity], bool]:
    """Live opportunities, or ``([], True)`` when the engine is unavailable."""
    params = query.engine_params(cap=services.settings.max_persisted_opportunities)
    try:
        return await services.engine.fetch_opportunities(params), False
    except UpstreamError as e:
        logger.warning(f"Engine opportunities unavailable, serving persisted only: {e.message}")
        services.metrics.increment_counter("engine_opportunities_failed")
        return [], True


async def stream_opportunities(request: Request) -> StreamingResponse:
    """Server-sent events carrying the engine's latest opportunities."""
    return StreamingResponse(
        opportunity_events(get_services(request)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def opportunity_events(services: Services) -> AsyncIterator[bytes]:
    """
    Emit one event immediately, then one per interval.

    Runs until the client disconnects, or until ``stream_max_events`` events
    have been sent when that setting is non-zero.
    """
    settings = services.settings
    sent = 0
    while not settings.stream_max_events or sent < settings.stream_max_events:
        if sent:
            await asyncio.sleep(settings.stream_interval_seconds)
        event = await latest_opportunities_event(services)
        yield b"data: " + orjson.dumps(event) + b"\n\n"
        sent += 1


async def latest_opportunities_event(services: Services) -> dict[str, Any]:
    try:
        opportunities = await services.engine.fetch_opportunities({"limit": str(STREAM_BATCH_LIMIT)})
    except UpstreamError as e:
        logger.warning(f"Opportunity stream fetch failed: {e.message}")
        services.metrics.increment_counter("stream_fetch_failed")
        return {"type": "error", "message": "Failed to fetch opportunities", "timestamp": services.clock.now_ms()}

    return {"type": "opportunities", "data": dump(opportunities), "timestamp": services.clock.now_ms()}


# =============================================================================
# Asset Safety
# =============================================================================


async def get_asset_safety(request: Request) -> Response:
    services = get_services(request)

    async def origin(req: CacheRequest) -> CachedResponse:
        query = parse_model(SafetyQuery, req.query_dict())
        addresses = query.address_list
        now = services.clock.now_ms()

        if not addresses:
            assets = await services.safety.list_all()
            metadata = {"total": len(assets), "timestamp": now}
        else:
            assets = await services.safety.evaluate(addresses, query.chain_id, query.force_refresh)
            metadata = {"total": len(assets), "evaluated": len(addresses), "timestamp": now}

        return json_response(success_envelope({"assets": dump(assets), "metadata": metadata}))

    cached = await services.cache.handle(to_cache_request(request), services.safety_cache, origin)
    return to_response(cached)


async def post_safety_check(request: Request, body: SafetyCheckRequest) -> Response:
    services = get_services(request)
    summary = await services.safety.check(body.addresses, body.chain_id)
    invalidate_safety_views(services)

    payload = {
        "assets": dump(summary.assets),
        "metadata": {
            "evaluated": summary.evaluated,
            "passed": summary.passed,
            "failed": summary.failed,
            "timestamp": services.clock.now_ms(),
        },
    }
    return to_response(json_response(success_envelope(payload)))


async def get_blacklist(request: Request) -> Response:
    services = get_services(request)
    blacklist = services.safety.blacklist
    payload = {
        "blacklist": dump(blacklist.entries),
        "metadata": {"count": len(blacklist), "updatedAt": blacklist.updated_at},
    }
    response = to_response(json_response(success_envelope(payload)))
    response.headers["Cache-Control"] = "public, max-age=3600"
    return response


async def post_blacklist(request: Request, body: BlacklistRequest) -> Response:
    services = get_services(request)
    added = await services.safety.blacklist_add(body.addresses, body.reason)
    invalidate_safety_views(services)

    payload = {
        "message": "Assets added to blacklist",
        "added": len(added),
        "total": len(services.safety.blacklist),
    }
    return to_response(json_response(success_envelope(payload)))


def invalidate_safety_views(services: Services) -> None:
    """Safety writes change both safety listings and opportunity scores."""
    services.cache.invalidate(SAFETY_PATH)
    services.cache.invalidate(OPPORTUNITIES_PATH)


# =============================================================================
# Upstream Proxy
# =============================================================================


async def proxy_request(request: Request, path: str = "") -> Response:
    services = get_services(request)
    peer = request.client.host if request.client else None
    body = await request.body() if request.method == "POST" else None

    result = await services.proxy.forward(
        method=request.method,
        path="/" + path.lstrip("/"),
        query_string=request.url.query,
        body=body,
        client=client_key(request.headers, peer),
    )
    return Response(
        content=result.body,
        status_code=result.status,
        headers=result.headers,
        media_type="application/json",
    )


# =============================================================================
# Service Endpoints
# =============================================================================


async def get_index(request: Request) -> dict[str, Any]:
    services = get_services(request)
    return {
        "name": "Arbitrage Edge",
        "version": __version__,
        "environment": services.settings.environment,
        "endpoints": {
            "health": "/health",
            "opportunities": OPPORTUNITIES_PATH,
            "opportunityStream": f"{OPPORTUNITIES_PATH}/stream",
            "assetSafety": SAFETY_PATH,
            "blacklist": "/api/assets/blacklist",
            "proxy": "/api/proxy",
        },
    }


async def get_health(request: Request) -> JSONResponse:
    services = get_services(request)
    engine_ok = await services.engine.health_check()

    status = {
        "status": "healthy" if engine_ok else "degraded",
        "version": __version__,
        "environment": services.settings.environment,
        "timestamp": services.clock.now_ms(),
        "checks": {
            "engine": engine_ok,
            "proxyConfigured": services.proxy.policy.configured,
        },
        "engineCircuit": services.engine.breaker.to_dict(),
        "cache": {
            "entries": len(services.cache.store),
            "pendingRefreshes": services.cache.refresher.pending_count,
        },
        "rateLimit": {"proxyBuckets": len(services.limiter.store), "apiBuckets": len(services.api_limiter.store)},
        "metrics": services.metrics.snapshot(),
    }
    return JSONResponse(status, status_code=200 if engine_ok else 503)
