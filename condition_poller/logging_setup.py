import sys
from enum import Enum

from loguru import logger
from condition_poller.models import LogSettings


class Severity(str, Enum):
    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


SEVERITY_COLORS = {
    Severity.TRACE: "dim",
    Severity.DEBUG: "cyan",
    Severity.INFO: "white",
    Severity.SUCCESS: "green",
    Severity.WARNING: "yellow",
    Severity.ERROR: "red",
    Severity.CRITICAL: "magenta",
}

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} - {message}"


def severity_color(level_name: str) -> str:
    try:
        return SEVERITY_COLORS[Severity(level_name)]
    except ValueError:
        return "white"


def _console_format(record) -> str:
    color = severity_color(record["level"].name)
    return (
        "<green>{time:HH:mm:ss}</green> | "
        f"<{color}>{{level: <8}}</{color}> | "
        f"<{color}>{{message}}</{color}>\n{{exception}}"
    )


def configure_logging(settings: LogSettings) -> None:
    """Replace loguru's sinks with a colored stderr sink and, if settings.file
    is set, a file sink rotated at settings.rotation"""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.level,
        format=_console_format,
        colorize=settings.colorize,
    )
    if settings.file:
        logger.add(
            settings.file,
            level=settings.level,
            format=FILE_FORMAT,
            rotation=settings.rotation,
            retention=settings.retention,
            encoding="utf-8",
        )
