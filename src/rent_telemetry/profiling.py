"""
Continuous profiling lifecycle for rent services.

`ProfilerLifecycle` mirrors `TraceLifecycle`: idempotent start, best-effort
stop, and restartable after a stop. It adds an eligibility gate so the
Pyroscope agent never runs under automated tests or CI, where its sampler
thread would outlive the test process teardown.
"""

import logging
from typing import Any, Optional

import pyroscope
from pydantic import BaseModel, Field

from rent_telemetry.config_resolver import (
    parse_delimited_pairs,
    resolve_profiler_identity,
    resolve_profiler_server_address,
)
from rent_telemetry.lifecycle import LifecycleState
from rent_telemetry.telemetry_config import DEFAULT_FLUSH_INTERVAL_MS, ProfilingSettings

_LOGGER = logging.getLogger(__name__)


class ProfilerOptions(BaseModel):
    """Resolved options handed to the Pyroscope agent."""

    application_name: str
    server_address: str
    auth_token: Optional[str] = None
    basic_auth_username: Optional[str] = None
    basic_auth_password: Optional[str] = None
    tenant_id: Optional[str] = None
    flush_interval_ms: int = DEFAULT_FLUSH_INTERVAL_MS
    tags: dict[str, str] = Field(default_factory=dict)

    @property
    def upload_interval_seconds(self) -> int:
        return max(1, self.flush_interval_ms // 1000)

    def to_configure_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``pyroscope.configure``.

        Unset credentials are left out so the agent keeps its own defaults.
        The agent takes no token argument; a token travels as a bearer
        ``Authorization`` header instead.
        """
        kwargs = self.model_dump(
            exclude_none=True, exclude={"auth_token", "flush_interval_ms"}
        )
        kwargs["upload_interval"] = self.upload_interval_seconds
        if self.auth_token:
            kwargs["http_headers"] = {"Authorization": f"Bearer {self.auth_token}"}
        return kwargs


class ProfilerLifecycle:
    """Idempotent start/stop around the Pyroscope agent.

    :param surface: Runtime surface used to resolve the application name.
    :type surface: str
    """

    def __init__(self, surface: str = "backend") -> None:
        self.surface = surface
        self.state = LifecycleState.STOPPED
        self.options: Optional[ProfilerOptions] = None

    @property
    def started(self) -> bool:
        return self.state is LifecycleState.STARTED

    def should_enable(self, settings: Optional[ProfilingSettings] = None) -> bool:
        """Whether profiling may run in this process.

        :param settings: Pre-read settings, read from env if omitted.
        :type settings: ProfilingSettings | None
        :return: False when force-disabled, under test/CI, or unconfigured.
        :rtype: bool
        """
        settings = settings or ProfilingSettings()
        if settings.force_disabled:
            return False
        if settings.under_test_or_ci:
            return False
        return resolve_profiler_server_address() is not None

    def build_options(
        self, settings: Optional[ProfilingSettings] = None
    ) -> Optional[ProfilerOptions]:
        """Resolve agent options from the environment.

        Base tags come first and ``PYROSCOPE_TAGS`` entries override them on
        key collision.

        :return: The options, or None when no server address is configured.
        :rtype: ProfilerOptions | None
        """
        settings = settings or ProfilingSettings()
        server_address = resolve_profiler_server_address()
        if server_address is None:
            return None

        identity = resolve_profiler_identity(self.surface)
        tags = {**identity, **parse_delimited_pairs(settings.tags)}

        return ProfilerOptions(
            application_name=identity["service"],
            server_address=server_address,
            auth_token=settings.auth_token,
            basic_auth_username=settings.basic_auth_user,
            basic_auth_password=settings.basic_auth_password,
            tenant_id=settings.tenant_id,
            flush_interval_ms=settings.flush_interval_ms,
            tags=tags,
        )

    def start(self) -> None:
        """Configure and start the profiler agent if eligible."""
        if self.started:
            return

        settings = ProfilingSettings()
        if not self.should_enable(settings):
            _LOGGER.debug("Profiling not enabled for this process.")
            return

        options = self.build_options(settings)
        if options is None:
            return

        pyroscope.configure(**options.to_configure_kwargs())

        self.options = options
        self.state = LifecycleState.STARTED
        _LOGGER.info(
            "🔥 Profiling started | application=%s server=%s upload_interval=%ss",
            options.application_name,
            options.server_address,
            options.upload_interval_seconds,
        )

    def stop(self) -> bool:
        """Stop the profiler agent, swallowing any failure.

        :return: False if the agent raised during shutdown, True otherwise.
        :rtype: bool
        """
        if not self.started:
            return True

        succeeded = True
        try:
            pyroscope.shutdown()
        except Exception as exc:
            succeeded = False
            _LOGGER.warning("Failed to stop profiler: %s", exc)
        finally:
            self.options = None
            self.state = LifecycleState.STOPPED

        _LOGGER.info("🔥 Profiling stopped.")
        return succeeded
