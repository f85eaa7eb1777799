from unittest.mock import Mock

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import ValidationError

from rent_telemetry import telemetry_fastapi
from rent_telemetry.http_metrics import HttpMetricsService
from rent_telemetry.telemetry_fastapi import create_metrics_router, instrument_fastapi
from rent_telemetry.tracing import TraceLifecycle


@pytest.fixture
def instrumentor(monkeypatch):
    mock_instrumentor = Mock()
    monkeypatch.setattr(telemetry_fastapi, "FastAPIInstrumentor", mock_instrumentor)
    return mock_instrumentor


@pytest.fixture
def metrics():
    return HttpMetricsService()


@pytest.fixture
def app(instrumentor, metrics):
    app = FastAPI()

    @app.get("/leases/{lease_id}")
    def get_lease(lease_id: int):
        return {"id": lease_id}

    @app.get("/boom")
    def boom():
        raise RuntimeError("kaboom")

    instrument_fastapi(app, TraceLifecycle(), metrics)
    return app


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


def requests_total(metrics, method, route, status_code):
    return metrics.registry.get_sample_value(
        "http_requests_total",
        {"method": method, "route": route, "status_code": status_code},
    )


def test_labels_requests_by_route_template(client, metrics):
    assert client.get("/leases/42").status_code == 200
    assert client.get("/leases/43").status_code == 200

    assert requests_total(metrics, "GET", "/leases/{lease_id}", "200") == 2
    assert (
        metrics.registry.get_sample_value(
            "http_requests_in_flight", {"method": "GET", "route": "/leases/{lease_id}"}
        )
        == 0
    )


def test_unmatched_requests_fall_back_to_path(client, metrics):
    assert client.get("/nope/7").status_code == 404

    assert requests_total(metrics, "GET", "/nope/:id", "404") == 1


def test_handler_errors_are_counted_as_server_errors(client, metrics):
    assert client.get("/boom").status_code == 500

    assert requests_total(metrics, "GET", "/boom", "500") == 1


def test_metrics_endpoint_serves_registry_and_is_not_counted(client, metrics):
    client.get("/leases/1")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in response.text
    assert 'route="/leases/{lease_id}"' in response.text
    assert 'route="/metrics"' not in response.text


def test_frontend_metrics_are_accepted(client, metrics):
    response = client.post(
        "/frontend-metrics",
        json={"type": "client_error", "errorType": "TypeError", "path": "/leases"},
    )

    assert response.status_code == 202
    assert (
        metrics.registry.get_sample_value(
            "frontend_client_errors_total",
            {"error_type": "TypeError", "route": "/leases"},
        )
        == 1
    )


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "unknown"},
        {"path": "/leases"},
        {"type": "web_vital", "value": "fast"},
    ],
)
def test_invalid_frontend_metrics_are_rejected(client, payload):
    response = client.post("/frontend-metrics", json=payload)

    assert response.status_code == 422
    assert response.json()["detail"] == "Invalid frontend metric payload."


def test_traces_with_lifecycle_provider(instrumentor, app):
    instrumentor.instrument_app.assert_called_once_with(
        app, tracer_provider=None, excluded_urls="/health,/metrics"
    )


def test_rejects_double_instrumentation(app, metrics):
    with pytest.raises(ValueError, match="already instrumented"):
        instrument_fastapi(app, TraceLifecycle(), metrics)


def test_invalid_frontend_metric_chains_validation_error(metrics, recwarn):
    router = create_metrics_router(metrics)
    endpoint = next(
        route.endpoint for route in router.routes if route.path == "/frontend-metrics"
    )

    with pytest.raises(HTTPException) as excinfo:
        endpoint({"type": "client_error", "errorType": ["not", "a", "string"]})

    assert excinfo.value.status_code == 422
    assert isinstance(excinfo.value.__cause__, ValidationError)
    assert not [w for w in recwarn if "HTTP_422" in str(w.message)]


def test_passes_started_lifecycle_provider(instrumentor, metrics):
    provider = Mock(name="provider")
    tracing = Mock(spec=TraceLifecycle, tracer_provider=provider)
    app = FastAPI()

    instrument_fastapi(app, tracing, metrics)

    instrumentor.instrument_app.assert_called_once_with(
        app, tracer_provider=provider, excluded_urls="/health,/metrics"
    )
