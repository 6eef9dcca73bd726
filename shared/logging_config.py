"""Central logging configuration for the desktop application.

Logging is installed exactly once per process, before any other component
writes a record.  Two sinks are attached to the root logger:

* a console handler on ``sys.stdout`` for interactive runs;
* a file handler under the platform log directory that rolls over at UTC
  midnight, leaving one ``<name>.YYYY-MM-DD`` file per day.  Files from
  earlier months are removed by :func:`shared.log_retention.prune_stale_logs`
  on the next start.

Verbosity is a single filter expression shared by both sinks.  It is read
from ``AUTOUPDATE_LOG`` when set, e.g. ``AUTOUPDATE_LOG="warn,services.update=debug"``,
and otherwise from the configured default.
"""

from __future__ import annotations

import datetime
import logging
import logging.handlers
import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Mapping

from shared.log_paths import LoggingSetupError, resolve_log_directory
from shared.log_retention import ensure_directory, prune_stale_logs

if TYPE_CHECKING:
    from app.config import AppConfig

LOG_FILTER_ENV = "AUTOUPDATE_LOG"
DEFAULT_LOG_FILE_NAME = "app.log"
DEFAULT_FILTER_EXPRESSION = "info,services.update=debug"

_HANDLER_TAG = "_autoupdate_logging_handler"
_ACTIVE_GUARD: LoggingGuard | None = None

_CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(threadName)s:%(thread)d] %(message)s"

_LEVEL_NAMES: dict[str, int] = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "off": logging.CRITICAL + 1,
}

_LOGGER = logging.getLogger(__name__)


class LoggingAlreadyInitialisedError(LoggingSetupError):
    """Raised when the process-wide sinks are installed a second time."""


class LogFilterSyntaxError(ValueError):
    """Raised for malformed filter expressions."""


def _parse_level(token: str, expression: str) -> int:
    level = _LEVEL_NAMES.get(token.strip().lower())
    if level is None:
        raise LogFilterSyntaxError(f"Unknown log level {token!r} in {expression!r}")
    return level


@dataclass(frozen=True)
class LogFilter:
    """Per-target minimum levels parsed from a filter expression."""

    default_level: int = logging.INFO
    directives: tuple[tuple[str, int], ...] = ()

    @classmethod
    def parse(cls, expression: str) -> LogFilter:
        """Parse ``level`` and ``target=level`` tokens separated by commas."""

        default_level = logging.ERROR
        directives: dict[str, int] = {}
        for raw in expression.split(","):
            token = raw.strip()
            if not token:
                continue
            if "=" in token:
                target, _, level_name = token.partition("=")
                target = target.strip()
                if not target:
                    raise LogFilterSyntaxError(f"Missing target before '=' in {expression!r}")
                directives[target] = _parse_level(level_name, expression)
            else:
                default_level = _parse_level(token, expression)
        ordered = tuple(sorted(directives.items(), key=lambda item: len(item[0]), reverse=True))
        return cls(default_level=default_level, directives=ordered)

    def level_for(self, name: str) -> int:
        """Return the minimum level for logger ``name`` (longest prefix wins)."""

        for target, level in self.directives:
            if name == target or name.startswith(target + "."):
                return level
        return self.default_level

    @property
    def lowest_level(self) -> int:
        return min([self.default_level, *(level for _, level in self.directives)])

    def allows(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.level_for(record.name)


class _TargetLevelFilter(logging.Filter):
    def __init__(self, log_filter: LogFilter) -> None:
        super().__init__()
        self.log_filter = log_filter

    def filter(self, record: logging.LogRecord) -> bool:
        return self.log_filter.allows(record)


class _UTCFormatter(logging.Formatter):
    converter = time.gmtime

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = super().formatTime(record, "%Y-%m-%dT%H:%M:%S")
        return f"{stamp}.{int(record.msecs):03d}Z"


@dataclass
class LoggingGuard:
    """Process-lifetime handle for the installed sinks.

    The host keeps this object for the life of the process.  ``close`` flushes
    and detaches the handlers; the sinks cannot be installed again afterwards.
    """

    log_dir: Path
    log_path: Path
    log_filter: LogFilter
    filter_expression: str
    handlers: list[logging.Handler] = field(default_factory=list)
    pruned: list[Path] = field(default_factory=list)
    closed: bool = False

    def flush(self) -> None:
        for handler in self.handlers:
            handler.flush()

    def close(self) -> None:
        if self.closed:
            return
        root = logging.getLogger()
        for handler in self.handlers:
            root.removeHandler(handler)
            handler.close()
        self.closed = True


def resolve_filter_expression(
    default: str = DEFAULT_FILTER_EXPRESSION,
    environ: Mapping[str, str] | None = None,
) -> str:
    env = os.environ if environ is None else environ
    override = env.get(LOG_FILTER_ENV)
    if override and override.strip():
        return override.strip()
    return default


def _build_filter(expression: str, default: str) -> tuple[LogFilter, str, str | None]:
    error: str | None = None
    for candidate in (expression, default):
        try:
            return LogFilter.parse(candidate), candidate, error
        except LogFilterSyntaxError as exc:
            error = error or str(exc)
    return LogFilter.parse(DEFAULT_FILTER_EXPRESSION), DEFAULT_FILTER_EXPRESSION, error


def _console_available(handlers: Iterable[logging.Handler]) -> bool:
    stdout = getattr(sys, "stdout", None)
    if stdout is None:
        return False
    for handler in handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(
            handler, logging.FileHandler
        ):
            if getattr(handler, "stream", None) is stdout:
                return False
    return True


def install_sinks(
    log_dir: Path,
    *,
    file_name: str = DEFAULT_LOG_FILE_NAME,
    filter_expression: str | None = None,
    default_filter: str = DEFAULT_FILTER_EXPRESSION,
    console: bool = True,
) -> LoggingGuard:
    """Attach the console and daily-rotating file sinks to the root logger.

    Raises :class:`LoggingAlreadyInitialisedError` when called a second time
    in the same process.  ``filter_expression`` defaults to
    ``AUTOUPDATE_LOG`` or ``default_filter``.
    """

    global _ACTIVE_GUARD

    if _ACTIVE_GUARD is not None:
        raise LoggingAlreadyInitialisedError(
            f"Logging sinks are already installed in {_ACTIVE_GUARD.log_dir}"
        )

    requested = filter_expression or resolve_filter_expression(default_filter)
    log_filter, applied, filter_error = _build_filter(requested, default_filter)

    log_path = Path(log_dir) / file_name
    root = logging.getLogger()
    handlers: list[logging.Handler] = []

    file_handler = logging.handlers.TimedRotatingFileHandler(
        log_path,
        when="midnight",
        backupCount=0,
        encoding="utf-8",
        delay=True,
        utc=True,
    )
    file_handler.setFormatter(_UTCFormatter(_FILE_FORMAT))
    file_handler.addFilter(_TargetLevelFilter(log_filter))
    setattr(file_handler, _HANDLER_TAG, True)
    handlers.append(file_handler)

    if console and _console_available(root.handlers):
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(_UTCFormatter(_CONSOLE_FORMAT))
        stream_handler.addFilter(_TargetLevelFilter(log_filter))
        setattr(stream_handler, _HANDLER_TAG, True)
        handlers.append(stream_handler)

    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min(log_filter.lowest_level, logging.CRITICAL))

    guard = LoggingGuard(
        log_dir=Path(log_dir),
        log_path=log_path,
        log_filter=log_filter,
        filter_expression=applied,
        handlers=handlers,
    )
    _ACTIVE_GUARD = guard

    if filter_error is not None:
        _LOGGER.warning("Ignoring invalid log filter (%s); using %r", filter_error, applied)
    return guard


def initialise_logging(
    config: AppConfig | None = None,
    *,
    reference_time: datetime.datetime | None = None,
    console: bool = True,
) -> LoggingGuard:
    """Resolve, create, prune and install the application log sinks.

    Any :class:`~shared.log_paths.LoggingSetupError` raised here is fatal to
    start-up; no log destination exists yet, so callers report it on stderr.
    """

    if config is None:
        from app.config import get_app_config

        config = get_app_config()

    log_dir = resolve_log_directory(config.identifier)
    ensure_directory(log_dir)
    pruned = prune_stale_logs(log_dir, reference_time)
    guard = install_sinks(
        log_dir,
        file_name=config.logging.file_name,
        default_filter=config.logging.default_filter,
        console=console,
    )
    guard.pruned = pruned

    for path in pruned:
        _LOGGER.info("Cleaned up old log file: %s", path)
    _LOGGER.info(
        "Logging initialized. Log directory: %s (filter=%s)", log_dir, guard.filter_expression
    )
    return guard


def get_logging_guard() -> LoggingGuard | None:
    """Return the guard of the installed sinks, if any."""

    return _ACTIVE_GUARD


def _reset_for_tests() -> None:
    """Remove handlers installed by :func:`install_sinks`."""

    global _ACTIVE_GUARD

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            try:
                handler.close()
            except Exception:  # pragma: no cover - close should rarely fail
                pass
    root.setLevel(logging.WARNING)
    _ACTIVE_GUARD = None


__all__ = [
    "DEFAULT_FILTER_EXPRESSION",
    "LOG_FILTER_ENV",
    "LogFilter",
    "LogFilterSyntaxError",
    "LoggingAlreadyInitialisedError",
    "LoggingGuard",
    "get_logging_guard",
    "initialise_logging",
    "install_sinks",
    "resolve_filter_expression",
]
