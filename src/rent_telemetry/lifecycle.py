from enum import StrEnum


class LifecycleState(StrEnum):
    """State of a wrapped exporter or profiler.

    Unlike most state machines ``STOPPED`` is not terminal: a stopped
    lifecycle may be started again and builds a fresh underlying instance.
    """

    STOPPED = "stopped"
    STARTED = "started"
