"""
Batch job metrics for the rent batch worker.

Defines the job outcome models and `JobMetricsRecorder`, which turns one
finished job run into Prometheus counter, histogram and gauge updates and
then pushes the whole registry to a push gateway. Batch processes are too
short-lived to be scraped, hence the push; the push is best effort and a
failed push never changes the outcome reported for the job.
"""

import functools
import logging
import time
from enum import StrEnum
from typing import Callable, Optional, TypeVar

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    pushadd_to_gateway,
)
from pydantic import BaseModel, Field

from rent_telemetry.telemetry_config import PushgatewaySettings

_LOGGER = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)

# Sub-second transactional batches up to 30 minute bulk imports.
JOB_DURATION_BUCKETS = (0.5, 1, 2, 5, 10, 30, 60, 120, 300, 900, 1800)


class JobStatus(StrEnum):
    """Outcome of a batch job run."""

    SUCCESS = "success"
    FAILED = "failed"


class RecordCounts(BaseModel):
    """Record counters a job may report. None means "not reported"."""

    records_total: Optional[int] = Field(default=None, ge=0)
    records_processed: Optional[int] = Field(default=None, ge=0)
    records_failed: Optional[int] = Field(default=None, ge=0)


class JobRunSummary(RecordCounts):
    """One completed job run, consumed by `JobMetricsRecorder.record`."""

    job: str
    status: JobStatus
    duration_seconds: float = Field(ge=0)


class JobMetricsRecorder:
    """Prometheus metrics for batch job executions.

    Provides helpers for recording:
    - run counts and durations by job and status
    - record totals, processed and failed counts by job
    - the last successful run time by job, for staleness alerts

    :param settings: Push gateway settings, read from env if omitted.
    :type settings: PushgatewaySettings | None
    :param registry: Registry to record into, a fresh one if omitted.
    :type registry: CollectorRegistry | None
    """

    def __init__(
        self,
        settings: Optional[PushgatewaySettings] = None,
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        self.settings = settings or PushgatewaySettings()
        self.registry = registry or CollectorRegistry()

        ProcessCollector(namespace="batch", registry=self.registry)
        PlatformCollector(registry=self.registry)

        self._job_runs = Counter(
            "batch_job_runs_total",
            "Total number of executed batch jobs",
            labelnames=["job", "status"],
            registry=self.registry,
        )
        self._job_duration = Histogram(
            "batch_job_duration_seconds",
            "Batch job execution duration in seconds",
            labelnames=["job", "status"],
            buckets=JOB_DURATION_BUCKETS,
            registry=self.registry,
        )
        self._records_total = Counter(
            "batch_records_total",
            "Total number of records considered by batch jobs",
            labelnames=["job"],
            registry=self.registry,
        )
        self._records_processed = Counter(
            "batch_records_processed_total",
            "Total number of records successfully processed by batch jobs",
            labelnames=["job"],
            registry=self.registry,
        )
        self._records_failed = Counter(
            "batch_records_failed_total",
            "Total number of records failed by batch jobs",
            labelnames=["job"],
            registry=self.registry,
        )
        self._last_success = Gauge(
            "batch_last_success_timestamp_seconds",
            "Unix timestamp of the latest successful batch job execution",
            labelnames=["job"],
            registry=self.registry,
        )

        if self.settings.enabled:
            _LOGGER.info(
                "📊 Batch metrics will be pushed | gateway=%s job=%s instance=%s",
                self.settings.url,
                self.settings.job,
                self.settings.instance,
            )

    def record(self, summary: JobRunSummary) -> bool:
        """Record a finished job run and push the registry.

        Zero and missing record counts add nothing, so "processed nothing"
        doesn't show up as a sample distinct from "didn't report".

        :param summary: The job run outcome.
        :type summary: JobRunSummary
        :return: False if the push failed, True otherwise.
        :rtype: bool
        """
        job = summary.job
        status = summary.status.value

        self._job_runs.labels(job=job, status=status).inc()
        self._job_duration.labels(job=job, status=status).observe(
            summary.duration_seconds
        )

        for counter, value in (
            (self._records_total, summary.records_total),
            (self._records_processed, summary.records_processed),
            (self._records_failed, summary.records_failed),
        ):
            if value:
                counter.labels(job=job).inc(value)

        if summary.status is JobStatus.SUCCESS:
            self._last_success.labels(job=job).set_to_current_time()

        return self.push(job)

    def push(self, command: str) -> bool:
        """Push the registry to the gateway, grouped by instance and command.

        Counters are cumulative, so a dropped push only delays visibility
        until the next successful one; there is no retry.

        :param command: The job identifier used as the ``command`` label.
        :type command: str
        :return: False if the push failed, True otherwise.
        :rtype: bool
        """
        if not self.settings.enabled:
            return True

        try:
            pushadd_to_gateway(
                self.settings.url,
                job=self.settings.job,
                registry=self.registry,
                grouping_key={
                    "instance": self.settings.instance,
                    "command": command,
                },
                timeout=self.settings.timeout_seconds,
            )
        except Exception as exc:
            _LOGGER.warning("Failed to push metrics for %s: %s", command, exc)
            return False
        return True

    def track(self, job: str) -> Callable[[F], F]:
        """Decorator that times a job function and records its outcome.

        If the function returns `RecordCounts` they are reported with the run.
        Exceptions are recorded as a failed run and re-raised.

        :param job: The job identifier.
        :type job: str
        :return: A decorator that wraps the function with job tracking.
        :rtype: Callable[[F], F]

        Usage example:
            @recorder.track("billing")
            def run_billing() -> RecordCounts: ...
        """

        def decorator(func: F) -> F:
            @functools.wraps(func)
            def wrapper(*args, **kwargs):
                start = time.perf_counter()
                try:
                    result = func(*args, **kwargs)
                except Exception:
                    self.record(
                        JobRunSummary(
                            job=job,
                            status=JobStatus.FAILED,
                            duration_seconds=time.perf_counter() - start,
                        )
                    )
                    raise

                counts = result if isinstance(result, RecordCounts) else RecordCounts()
                self.record(
                    JobRunSummary(
                        job=job,
                        status=JobStatus.SUCCESS,
                        duration_seconds=time.perf_counter() - start,
                        **counts.model_dump(include=set(RecordCounts.model_fields)),
                    )
                )
                return result

            return wrapper  # type: ignore

        return decorator
