"""
HTTP and browser metrics for the rent API server.

`HttpMetricsService` keeps the scrape-able Prometheus registry of the API
process: request counts, durations and in-flight requests, plus the web
vitals and client-side failures that the browser reports back. Every label
is normalised first so that ids, query strings or free text from clients
cannot blow up series cardinality.
"""

import math
import re
from typing import Annotated, Literal, Optional, Union

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

HTTP_DURATION_BUCKETS = (0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10)
WEB_VITAL_BUCKETS = (0.001, 0.01, 0.05, 0.1, 0.2, 0.5, 1, 2, 4, 8)

_UUID_RE = re.compile(
    r"\b[0-9a-f]{8}-[0-9a-f]{4}-[1-8][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}\b",
    re.IGNORECASE,
)
_NUMERIC_SEGMENT_RE = re.compile(r"/\d+(?=/|$)")
_WHITESPACE_RE = re.compile(r"\s+")


class _FrontendMetricBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    path: Optional[str] = None


class WebVitalMetric(_FrontendMetricBase):
    type: Literal["web_vital"]
    name: Optional[str] = None
    value: Optional[float] = None


class ClientErrorMetric(_FrontendMetricBase):
    type: Literal["client_error"]
    error_type: Optional[str] = Field(default=None, alias="errorType")


class ApiErrorMetric(_FrontendMetricBase):
    type: Literal["api_error"]
    method: Optional[str] = None
    endpoint: Optional[str] = None
    status_code: Optional[float] = Field(default=None, alias="statusCode")


FrontendMetric = Annotated[
    Union[WebVitalMetric, ClientErrorMetric, ApiErrorMetric],
    Field(discriminator="type"),
]
FRONTEND_METRIC_ADAPTER: TypeAdapter[FrontendMetric] = TypeAdapter(FrontendMetric)


def normalize_label_value(value: str, max_length: int) -> str:
    trimmed = value.strip()
    if not trimmed:
        return "unknown"
    return _WHITESPACE_RE.sub("_", trimmed)[:max_length]


def normalize_method(method: Optional[str]) -> str:
    if not method:
        return "UNKNOWN"
    return normalize_label_value(method.upper(), 12)


def normalize_status_code(status_code: Optional[float]) -> str:
    if not status_code or not math.isfinite(status_code):
        return "0"
    return str(math.trunc(status_code))


def normalize_route(route: Optional[str]) -> str:
    """Collapse a request path into a low-cardinality route label.

    Query strings are dropped; UUIDs and purely numeric segments become
    ``:id``.

    :param route: Raw route or path.
    :type route: str | None
    :return: The normalised route, always starting with ``/``.
    :rtype: str
    """
    raw_route = normalize_label_value(route if route is not None else "/unknown", 120)
    without_query = raw_route.split("?")[0] or "/unknown"
    collapsed = _NUMERIC_SEGMENT_RE.sub("/:id", _UUID_RE.sub(":id", without_query))
    return collapsed if collapsed.startswith("/") else f"/{collapsed}"


class HttpMetricsService:
    """Prometheus registry for the API server.

    :param registry: Registry to record into, a fresh one if omitted.
    :type registry: CollectorRegistry | None
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        ProcessCollector(namespace="backend", registry=self.registry)
        PlatformCollector(registry=self.registry)

        self._requests_total = Counter(
            "http_requests_total",
            "Total number of HTTP requests",
            labelnames=["method", "route", "status_code"],
            registry=self.registry,
        )
        self._request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            labelnames=["method", "route", "status_code"],
            buckets=HTTP_DURATION_BUCKETS,
            registry=self.registry,
        )
        self._requests_in_flight = Gauge(
            "http_requests_in_flight",
            "Current number of in-flight HTTP requests",
            labelnames=["method", "route"],
            registry=self.registry,
        )
        self._web_vital_value = Histogram(
            "frontend_web_vital_value",
            "Frontend Web Vitals values reported by clients",
            labelnames=["metric_name", "route"],
            buckets=WEB_VITAL_BUCKETS,
            registry=self.registry,
        )
        self._client_errors = Counter(
            "frontend_client_errors_total",
            "Frontend client-side errors reported by clients",
            labelnames=["error_type", "route"],
            registry=self.registry,
        )
        self._api_failures = Counter(
            "frontend_api_failures_total",
            "Frontend API failures reported by clients",
            labelnames=["method", "route", "status_code"],
            registry=self.registry,
        )

    def get_metrics(self) -> bytes:
        """Return the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)

    def start_http_request(self, method: str, route: str) -> None:
        self._requests_in_flight.labels(
            method=normalize_method(method), route=normalize_route(route)
        ).inc()

    def observe_http_request(
        self, method: str, route: str, status_code: int, duration_seconds: float
    ) -> None:
        """Record a finished request and release its in-flight slot.

        :param method: HTTP method.
        :type method: str
        :param route: Route template or path.
        :type route: str
        :param status_code: Response status code.
        :type status_code: int
        :param duration_seconds: Time spent handling the request.
        :type duration_seconds: float
        """
        method_label = normalize_method(method)
        route_label = normalize_route(route)
        status_label = normalize_status_code(status_code)

        self._requests_in_flight.labels(method=method_label, route=route_label).dec()
        self._requests_total.labels(
            method=method_label, route=route_label, status_code=status_label
        ).inc()
        self._request_duration.labels(
            method=method_label, route=route_label, status_code=status_label
        ).observe(duration_seconds)

    def record_frontend_metric(
        self, metric: Union[WebVitalMetric, ClientErrorMetric, ApiErrorMetric]
    ) -> None:
        """Record one metric reported by the browser.

        Web vitals without a name or value are ignored.
        """
        if isinstance(metric, WebVitalMetric):
            if not metric.name or metric.value is None:
                return
            self._web_vital_value.labels(
                metric_name=normalize_label_value(metric.name, 32),
                route=normalize_route(metric.path),
            ).observe(metric.value)
            return

        if isinstance(metric, ClientErrorMetric):
            self._client_errors.labels(
                error_type=normalize_label_value(metric.error_type or "unknown", 64),
                route=normalize_route(metric.path),
            ).inc()
            return

        if isinstance(metric, ApiErrorMetric):
            self._api_failures.labels(
                method=normalize_method(metric.method),
                route=normalize_route(metric.endpoint or metric.path),
                status_code=normalize_status_code(metric.status_code),
            ).inc()
