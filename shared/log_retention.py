"""Creation and month-based retention of the log directory."""

from __future__ import annotations

import datetime
import os
from pathlib import Path

from shared.log_paths import LoggingSetupError


class LogDirectoryError(LoggingSetupError):
    """Raised when the log directory cannot be created."""


def ensure_directory(path: Path) -> Path:
    """Create ``path`` and any missing parents.

    Calling this for an existing directory is a no-op.  Filesystem failures
    are re-raised as :class:`LogDirectoryError` because nothing can be logged
    without the directory.
    """

    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise LogDirectoryError(f"Could not create log directory {path}: {exc}") from exc
    if not os.access(path, os.W_OK):
        raise LogDirectoryError(f"Log directory {path} is not writable")
    return path


def _as_utc(moment: datetime.datetime) -> datetime.datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(datetime.timezone.utc)


def _month_key(moment: datetime.datetime) -> tuple[int, int]:
    moment = _as_utc(moment)
    return moment.year, moment.month


def is_stale(modified: datetime.datetime, reference_time: datetime.datetime) -> bool:
    """Return ``True`` when ``modified`` falls in a month before ``reference_time``."""

    return _month_key(modified) < _month_key(reference_time)


def prune_stale_logs(
    path: Path, reference_time: datetime.datetime | None = None
) -> list[Path]:
    """Delete regular files under ``path`` last modified before the current month.

    Month boundaries are evaluated in UTC, the same clock the file sink rotates
    on.  Any failure while listing, inspecting or deleting an entry skips that
    entry; this function never raises.  Returns the deleted files.
    """

    reference = _as_utc(reference_time or datetime.datetime.now(datetime.timezone.utc))
    removed: list[Path] = []

    try:
        entries = list(os.scandir(path))
    except OSError:
        return removed

    for entry in sorted(entries, key=lambda item: item.name):
        try:
            if not entry.is_file(follow_symlinks=False):
                continue
            mtime = entry.stat(follow_symlinks=False).st_mtime
            modified = datetime.datetime.fromtimestamp(mtime, tz=datetime.timezone.utc)
            if not is_stale(modified, reference):
                continue
            os.remove(entry.path)
        except (OSError, ValueError, OverflowError):
            continue
        removed.append(Path(entry.path))

    return removed


__all__ = ["LogDirectoryError", "ensure_directory", "is_stale", "prune_stale_logs"]
