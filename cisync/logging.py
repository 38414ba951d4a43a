"""Logging helpers built on femtologging.

Modules obtain a logger with :func:`get_logger` and emit pre-formatted
messages through the ``log_*`` helpers, so every call site interpolates with
percent-style templates and femtologging receives finished strings.

Example:
>>> from cisync.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "applied %d image sets", 3)

"""

from __future__ import annotations

import enum
import typing as typ

from femtologging import basicConfig, get_logger


class LogLevel(enum.StrEnum):
    """Levels accepted by ``CISYNC_LOG_LEVEL``."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Normalize a log level string and report invalid inputs.

    Parameters
    ----------
    level : str | None
        Raw level, typically read from the environment.

    Returns
    -------
    tuple[str, bool]
        The level to use and ``True`` when the input was rejected in favour
        of ``INFO``.

    """
    if not level:
        return ("INFO", True)

    normalized = level.strip().upper()
    if normalized in LogLevel.__members__:
        return (normalized, False)

    return ("INFO", True)


def configure_logging(level: str | None, *, force: bool = False) -> tuple[str, bool]:
    """Install the femtologging root handler at the normalized level."""
    normalized, invalid = normalize_log_level(level)
    basicConfig(level=normalized, force=force)
    return (normalized, invalid)


class _SupportsLog(typ.Protocol):
    """Anything exposing femtologging's ``log`` signature."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: str,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None,
) -> None:
    message = template % args if args else template
    logger.log(level, message, exc_info=exc_info, stack_info=False)


def log_debug(logger: _SupportsLog, template: str, *args: object) -> None:
    """Log a DEBUG message with percent-style formatting."""
    _emit(logger, "DEBUG", template, args, None)


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log an INFO message with percent-style formatting."""
    _emit(logger, "INFO", template, args, exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log a WARNING message with percent-style formatting."""
    _emit(logger, "WARNING", template, args, exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log an ERROR message with percent-style formatting.

    Parameters
    ----------
    logger : _SupportsLog
        Logger that receives the formatted message.
    template : str
        Message template using percent-style placeholders.
    *args : object
        Values to interpolate into the template.
    exc_info : object | None, optional
        Exception information to attach to the record.

    """
    _emit(logger, "ERROR", template, args, exc_info)


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Log ``message`` at ERROR with ``exc`` attached as exc_info."""
    _emit(logger, "ERROR", message, (), exc)


__all__ = [
    "LogLevel",
    "configure_logging",
    "get_logger",
    "log_debug",
    "log_error",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
