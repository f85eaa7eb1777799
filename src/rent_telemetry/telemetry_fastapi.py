"""FastAPI-specific telemetry wiring."""

import logging
import time
from typing import Any

from fastapi import APIRouter, Body, FastAPI, HTTPException, Request, Response, status
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.routing import Match
from starlette.types import ASGIApp

from rent_telemetry.http_metrics import FRONTEND_METRIC_ADAPTER, HttpMetricsService
from rent_telemetry.tracing import TraceLifecycle

__all__ = [
    "HttpMetricsMiddleware",
    "create_metrics_router",
    "instrument_fastapi",
    "resolve_route_label",
]

LOGGER = logging.getLogger(__name__)

METRICS_PATH = "/metrics"
FRONTEND_METRICS_PATH = "/frontend-metrics"
EXCLUDED_TRACE_URLS = "/health,/metrics"


def resolve_route_label(request: Request) -> str:
    """Return the route template matching ``request``.

    Routing only happens after middleware runs, so the routes are matched
    here directly. Unmatched requests fall back to the raw path.

    :param request: Incoming request.
    :type request: Request
    :return: Route template such as ``/leases/{lease_id}``.
    :rtype: str
    """
    router = getattr(request.app, "router", None)
    for route in getattr(router, "routes", []):
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            path = getattr(route, "path", None)
            if isinstance(path, str):
                return path or "/"
    return request.url.path or "/unknown"


class HttpMetricsMiddleware(BaseHTTPMiddleware):
    """Records request counts, durations and in-flight requests."""

    def __init__(self, app: ASGIApp, metrics: HttpMetricsService) -> None:
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        route = resolve_route_label(request)
        if route == METRICS_PATH:
            return await call_next(request)

        method = request.method
        self.metrics.start_http_request(method, route)
        start = time.perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            self.metrics.observe_http_request(
                method, route, status_code, time.perf_counter() - start
            )


def create_metrics_router(metrics: HttpMetricsService) -> APIRouter:
    """Build the router exposing the scrape endpoint and browser ingestion.

    :param metrics: The service backing both endpoints.
    :type metrics: HttpMetricsService
    :return: Router with ``GET /metrics`` and ``POST /frontend-metrics``.
    :rtype: APIRouter
    """
    router = APIRouter()

    @router.get(METRICS_PATH, include_in_schema=False)
    def get_metrics() -> Response:
        return Response(content=metrics.get_metrics(), media_type=metrics.content_type)

    @router.post(FRONTEND_METRICS_PATH, status_code=status.HTTP_202_ACCEPTED)
    def post_frontend_metric(payload: dict[str, Any] = Body(...)) -> Response:
        try:
            metric = FRONTEND_METRIC_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            LOGGER.debug("Rejected frontend metric: %s", exc)
            raise HTTPException(
                status_code=422,
                detail="Invalid frontend metric payload.",
            ) from exc
        metrics.record_frontend_metric(metric)
        return Response(status_code=status.HTTP_202_ACCEPTED)

    return router


def instrument_fastapi(
    app: FastAPI, tracing: TraceLifecycle, metrics: HttpMetricsService
) -> None:
    """Attach request metrics, the metrics routes and tracing to ``app``.

    When tracing hasn't started yet the instrumentation falls back to the
    global tracer provider, which the lifecycle registers once it starts.
    The global provider is fixed at the first registration, so after a
    ``tracing.stop()`` and ``tracing.start()`` request spans still go to the
    first, already shut down, provider; only ``tracing.get_tracer()`` sees
    the new one.

    :param app: FastAPI application to instrument.
    :type app: FastAPI
    :param tracing: The process tracing lifecycle.
    :type tracing: TraceLifecycle
    :param metrics: The process HTTP metrics service.
    :type metrics: HttpMetricsService
    :raises ValueError: If the application is already instrumented.
    """
    if hasattr(app.state, "http_metrics"):
        raise ValueError("FastAPI application already instrumented.")

    app.add_middleware(HttpMetricsMiddleware, metrics=metrics)
    app.include_router(create_metrics_router(metrics))
    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=tracing.tracer_provider,
        excluded_urls=EXCLUDED_TRACE_URLS,
    )
    app.state.http_metrics = metrics
