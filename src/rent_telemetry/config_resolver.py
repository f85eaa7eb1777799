"""
Environment resolution helpers for rent telemetry.

Operators edit these values by hand in deployment manifests, so every
function here tolerates missing or malformed input and degrades to an
empty or default value instead of raising. Precedence chains live in one
place so that each surface (backend, batch, web) resolves identically.
"""

import os
from typing import Mapping, Optional

TRACES_PATH_SUFFIX = "/v1/traces"

DEFAULT_SERVICE_VERSION = "0.0.0"
DEFAULT_ENVIRONMENT = "development"


def _first_set(env: Mapping[str, str], *names: str) -> Optional[str]:
    """Return the first trimmed, non-empty value among ``names``."""
    for name in names:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return None


def parse_delimited_pairs(raw: Optional[str]) -> dict[str, str]:
    """Parse a ``key=value,key=value`` string into a dict.

    Each entry is split on its first ``=`` only, so values may carry ``=``
    themselves (``region=ar=ba`` gives ``{"region": "ar=ba"}``). Entries
    without a key or with an empty value are dropped silently.

    :param raw: The raw environment value, possibly ``None``.
    :type raw: str | None
    :return: The parsed pairs.
    :rtype: dict[str, str]
    """
    if not raw:
        return {}

    pairs: dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue

        key, _, value = entry.partition("=")
        key = key.strip()
        value = value.strip()
        if not key or not value:
            continue

        pairs[key] = value
    return pairs


def resolve_export_endpoint(
    traces_endpoint: Optional[str], generic_endpoint: Optional[str]
) -> Optional[str]:
    """Resolve the OTLP traces URL.

    The traces-specific endpoint is used verbatim. The generic endpoint is a
    collector base URL, so ``/v1/traces`` is appended after trimming a
    trailing slash.

    :param traces_endpoint: Value of ``OTEL_EXPORTER_OTLP_TRACES_ENDPOINT``.
    :type traces_endpoint: str | None
    :param generic_endpoint: Value of ``OTEL_EXPORTER_OTLP_ENDPOINT``.
    :type generic_endpoint: str | None
    :return: The traces URL, or None when export should stay disabled.
    :rtype: str | None
    """
    specific = (traces_endpoint or "").strip()
    if specific:
        return specific

    generic = (generic_endpoint or "").strip()
    if not generic:
        return None

    if generic.endswith("/"):
        generic = generic[:-1]
    return f"{generic}{TRACES_PATH_SUFFIX}"


def default_service_name(surface: str) -> str:
    return f"rent-{surface.strip().lower()}"


def resolve_service_resource(
    surface: str,
    env: Optional[Mapping[str, str]] = None,
    default_name: Optional[str] = None,
    default_version: str = DEFAULT_SERVICE_VERSION,
) -> dict[str, str]:
    """Resolve the resource attributes shared by all telemetry of a process.

    Order of preference:
    - service.name: ``OTEL_SERVICE_NAME_<SURFACE>``, ``OTEL_SERVICE_NAME``, default
    - service.version: ``SERVICE_VERSION``, default
    - deployment.environment: ``OTEL_ENVIRONMENT``, ``ENV``, ``development``

    :param surface: The runtime surface, e.g. ``backend`` or ``batch``.
    :type surface: str
    :param env: Environment mapping, defaults to ``os.environ``.
    :type env: Mapping[str, str] | None
    :param default_name: Service name when nothing is configured.
    :type default_name: str | None
    :param default_version: Version when nothing is configured.
    :type default_version: str
    :return: Resource attributes keyed by semantic-convention name.
    :rtype: dict[str, str]
    """
    env = os.environ if env is None else env
    surface_key = surface.strip().upper()

    service_name = _first_set(
        env, f"OTEL_SERVICE_NAME_{surface_key}", "OTEL_SERVICE_NAME"
    ) or (default_name or default_service_name(surface))
    service_version = _first_set(env, "SERVICE_VERSION") or default_version
    environment = (
        _first_set(env, "OTEL_ENVIRONMENT", "ENV") or DEFAULT_ENVIRONMENT
    )

    return {
        "service.name": service_name,
        "service.version": service_version,
        "deployment.environment": environment,
    }


def resolve_profiler_server_address(
    env: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Return the Pyroscope server address, preferring the specific variable."""
    env = os.environ if env is None else env
    return _first_set(env, "PYROSCOPE_SERVER_ADDRESS", "PYROSCOPE_URL")


def resolve_profiler_identity(
    surface: str,
    env: Optional[Mapping[str, str]] = None,
    default_name: Optional[str] = None,
    default_version: str = DEFAULT_SERVICE_VERSION,
) -> dict[str, str]:
    """Resolve the base profiler tags: ``env``, ``service`` and ``version``.

    :param surface: The runtime surface, e.g. ``backend`` or ``batch``.
    :type surface: str
    :param env: Environment mapping, defaults to ``os.environ``.
    :type env: Mapping[str, str] | None
    :return: The base tag set, before any ``PYROSCOPE_TAGS`` are merged.
    :rtype: dict[str, str]
    """
    env = os.environ if env is None else env
    surface_key = surface.strip().upper()

    return {
        "env": _first_set(env, "PYROSCOPE_ENV", "ENV") or DEFAULT_ENVIRONMENT,
        "service": _first_set(
            env,
            f"PYROSCOPE_APPLICATION_NAME_{surface_key}",
            "PYROSCOPE_APPLICATION_NAME",
        )
        or (default_name or default_service_name(surface)),
        "version": _first_set(env, "SERVICE_VERSION") or default_version,
    }
