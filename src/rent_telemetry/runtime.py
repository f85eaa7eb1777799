"""
Process-level telemetry bootstrap.

`TelemetryRuntime` is the composition root each entry point creates once. It
owns the tracing and profiling lifecycles (and, for batch workers, the job
metrics recorder), wires shutdown into SIGTERM/SIGINT synchronously, and
runs the potentially slow SDK start-up on a background thread so a hanging
collector never blocks signal handling.
"""

import logging
import signal
import threading
from types import FrameType
from typing import Callable, Iterable, Optional, Union

from rent_telemetry.job_metrics import JobMetricsRecorder
from rent_telemetry.logging_config import configure_logging
from rent_telemetry.profiling import ProfilerLifecycle
from rent_telemetry.tracing import TraceLifecycle

_LOGGER = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)

SignalHandler = Union[
    Callable[[int, Optional[FrameType]], object], int, signal.Handlers, None
]


class TelemetryRuntime:
    """Owns the telemetry lifecycles of one process.

    :param surface: Runtime surface, e.g. ``backend`` or ``batch``.
    :type surface: str
    :param tracing: Tracing lifecycle, built for ``surface`` if omitted.
    :type tracing: TraceLifecycle | None
    :param profiler: Profiling lifecycle, built for ``surface`` if omitted.
    :type profiler: ProfilerLifecycle | None
    :param job_metrics: Job metrics recorder for batch surfaces.
    :type job_metrics: JobMetricsRecorder | None
    """

    def __init__(
        self,
        surface: str,
        tracing: Optional[TraceLifecycle] = None,
        profiler: Optional[ProfilerLifecycle] = None,
        job_metrics: Optional[JobMetricsRecorder] = None,
    ) -> None:
        self.surface = surface
        self.tracing = tracing or TraceLifecycle(surface)
        self.profiler = profiler or ProfilerLifecycle(surface)
        self.job_metrics = job_metrics
        self.bootstrap_thread: Optional[threading.Thread] = None
        self._installed_signals: set[int] = set()

    def start_blocking(self) -> None:
        """Start profiling and tracing in the calling thread.

        :raises Exception: Propagated from the tracing exporter set-up.
        """
        self.profiler.start()
        self.tracing.start()

    def start(self) -> threading.Thread:
        """Install signal handlers, then start telemetry in the background.

        :return: The bootstrap thread, mainly so tests can join it.
        :rtype: threading.Thread
        """
        self.install_signal_handlers()

        thread = threading.Thread(
            target=self._bootstrap, name="telemetry-bootstrap", daemon=True
        )
        self.bootstrap_thread = thread
        thread.start()
        return thread

    def _bootstrap(self) -> None:
        try:
            self.start_blocking()
        except Exception:
            _LOGGER.exception("🔴 Telemetry bootstrap failed for %s.", self.surface)

    def shutdown(self) -> bool:
        """Stop tracing and profiling. Never raises.

        :return: True if both lifecycles shut down cleanly.
        :rtype: bool
        """
        tracing_ok = self.tracing.stop()
        profiler_ok = self.profiler.stop()
        return tracing_ok and profiler_ok

    def install_signal_handlers(
        self, signals: Iterable[signal.Signals] = SHUTDOWN_SIGNALS
    ) -> None:
        """Register shutdown on each signal, at most once per signal.

        Python only allows signal handlers in the main thread, so this is a
        no-op elsewhere.

        :param signals: The signals to hook.
        :type signals: Iterable[signal.Signals]
        """
        if threading.current_thread() is not threading.main_thread():
            _LOGGER.debug("🪄 Not in main thread; signal handlers not installed.")
            return

        for signum in signals:
            if signum in self._installed_signals:
                continue
            previous = signal.getsignal(signum)
            signal.signal(signum, self._make_signal_handler(previous))
            self._installed_signals.add(signum)

    def _make_signal_handler(
        self, previous: SignalHandler
    ) -> Callable[[int, Optional[FrameType]], None]:
        """Create a one-shot handler that shuts down then defers to ``previous``.

        :param previous: The handler that was installed before ours.
        :type previous: SignalHandler
        :return: Signal handler.
        :rtype: Callable[[int, FrameType | None], None]
        """
        restore = signal.SIG_DFL if previous is None else previous

        def handle(signum: int, frame: Optional[FrameType]) -> None:
            _LOGGER.info(
                "Received %s, shutting telemetry down.", signal.Signals(signum).name
            )
            self.shutdown()

            signal.signal(signum, restore)
            self._installed_signals.discard(signum)

            if callable(restore):
                restore(signum, frame)
            elif restore == signal.SIG_DFL:
                signal.raise_signal(signum)

        return handle


def bootstrap(surface: str, job_metrics: bool = False) -> TelemetryRuntime:
    """Configure logging and start telemetry for an entry point.

    :param surface: Runtime surface, e.g. ``backend`` or ``batch``.
    :type surface: str
    :param job_metrics: Whether to create a job metrics recorder.
    :type job_metrics: bool
    :return: The started runtime.
    :rtype: TelemetryRuntime
    """
    configure_logging()
    runtime = TelemetryRuntime(
        surface, job_metrics=JobMetricsRecorder() if job_metrics else None
    )
    runtime.start()
    _LOGGER.info("Telemetry bootstrap scheduled | surface=%s", surface)
    return runtime
