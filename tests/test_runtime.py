import signal
import threading
from unittest.mock import Mock

import pytest

from rent_telemetry.runtime import TelemetryRuntime


@pytest.fixture
def preserved_signals():
    """Put the process signal handlers back after each test."""
    saved = {signum: signal.getsignal(signum) for signum in (signal.SIGTERM, signal.SIGINT)}
    yield
    for signum, handler in saved.items():
        signal.signal(signum, handler)


@pytest.fixture
def runtime():
    tracing = Mock()
    tracing.stop.return_value = True
    profiler = Mock()
    profiler.stop.return_value = True
    return TelemetryRuntime("backend", tracing=tracing, profiler=profiler)


def test_start_blocking_starts_both_lifecycles(runtime):
    runtime.start_blocking()

    runtime.profiler.start.assert_called_once()
    runtime.tracing.start.assert_called_once()


def test_start_runs_bootstrap_in_background(runtime, preserved_signals):
    thread = runtime.start()
    thread.join(timeout=5)

    assert thread.name == "telemetry-bootstrap"
    assert thread.daemon is True
    runtime.tracing.start.assert_called_once()
    runtime.profiler.start.assert_called_once()


def test_bootstrap_failure_is_logged_not_raised(runtime, preserved_signals, caplog):
    runtime.tracing.start.side_effect = ConnectionError("collector unreachable")

    thread = runtime.start()
    thread.join(timeout=5)

    assert "Telemetry bootstrap failed for backend" in caplog.text
    assert "collector unreachable" in caplog.text
    # Signal handlers were wired before the bootstrap ran.
    assert signal.getsignal(signal.SIGTERM) is not signal.SIG_DFL


def test_start_blocking_propagates_failure(runtime):
    runtime.tracing.start.side_effect = ConnectionError("collector unreachable")

    with pytest.raises(ConnectionError):
        runtime.start_blocking()


def test_shutdown_stops_both_and_reports_failures(runtime):
    assert runtime.shutdown() is True

    runtime.tracing.stop.return_value = False
    assert runtime.shutdown() is False
    assert runtime.profiler.stop.call_count == 2
    assert runtime.tracing.stop.call_count == 2


def test_signal_handlers_installed_once(runtime, preserved_signals):
    runtime.install_signal_handlers()
    term_handler = signal.getsignal(signal.SIGTERM)
    int_handler = signal.getsignal(signal.SIGINT)

    runtime.install_signal_handlers()

    assert signal.getsignal(signal.SIGTERM) is term_handler
    assert signal.getsignal(signal.SIGINT) is int_handler


def test_signal_handler_shuts_down_then_defers_to_previous(runtime, preserved_signals):
    previous = Mock()
    signal.signal(signal.SIGTERM, previous)
    runtime.install_signal_handlers([signal.SIGTERM])

    handler = signal.getsignal(signal.SIGTERM)
    handler(signal.SIGTERM, None)

    runtime.tracing.stop.assert_called_once()
    runtime.profiler.stop.assert_called_once()
    previous.assert_called_once_with(signal.SIGTERM, None)
    assert signal.getsignal(signal.SIGTERM) is previous


def test_signal_handler_tolerates_stop_before_start(preserved_signals):
    previous = Mock()
    signal.signal(signal.SIGINT, previous)
    runtime = TelemetryRuntime("batch")
    runtime.install_signal_handlers([signal.SIGINT])

    signal.getsignal(signal.SIGINT)(signal.SIGINT, None)

    previous.assert_called_once()
    assert runtime.tracing.started is False
    assert runtime.profiler.started is False


def test_signal_handlers_skipped_outside_main_thread(runtime, preserved_signals):
    before = signal.getsignal(signal.SIGTERM)

    thread = threading.Thread(target=runtime.install_signal_handlers)
    thread.start()
    thread.join(timeout=5)

    assert signal.getsignal(signal.SIGTERM) is before
