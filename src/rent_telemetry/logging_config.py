import logging
import logging.config
import os

_LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Exporter HTTP clients log every request at DEBUG.
_QUIET_LOGGERS = ("urllib3", "urllib3.connectionpool")


def get_logging_config(log_level: str = "INFO") -> dict:
    """Build the ``dictConfig`` shared by every rent telemetry surface.

    One stdout handler on the root logger; the exporter HTTP client loggers
    are held at WARNING whatever ``log_level`` is.

    :param log_level: Level name for the root logger and its handler.
    :type log_level: str
    :return: A config accepted by ``logging.config.dictConfig``.
    :rtype: dict
    """
    quiet = {name: {"level": "WARNING"} for name in _QUIET_LOGGERS}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"telemetry": {"format": LOG_FORMAT}},
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "telemetry",
                "level": log_level,
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"level": log_level, "handlers": ["stdout"]},
        "loggers": quiet,
    }


def resolve_log_level(level: object) -> int:
    """Translate a configured log level to ``logging`` constants.

    :param level: A level name or number.
    :type level: object
    :return: Numeric level recognised by the ``logging`` module.
    :rtype: int
    :raises ValueError: If the configured level is invalid.
    """
    if isinstance(level, int):
        return level

    if isinstance(level, str):
        resolved_level = logging.getLevelName(level.strip().upper())
        if isinstance(resolved_level, int):
            return resolved_level

    raise ValueError(f"Invalid log level: {level!r}")


def configure_logging(log_level: str | None = None) -> None:
    """Apply the shared stdout logging configuration.

    :param log_level: Level name, defaults to ``LOG_LEVEL`` or INFO.
    :type log_level: str | None
    """
    level_name = (log_level or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(resolve_log_level(level_name))

    logging.config.dictConfig(get_logging_config(level))

    _LOGGER.debug("🧵 Configured logging with level %s.", level)
