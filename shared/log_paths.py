"""Platform-aware resolution of the application log directory.

Each supported operating system family gets a small resolver object so the
branching stays exhaustive and can be exercised on any host by passing an
explicit :class:`PlatformFamily`, environment mapping and home directory.

``AUTOUPDATE_LOG_DIR``
    Directory that replaces the platform default entirely.
"""

from __future__ import annotations

import os
import sys
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping, Protocol

LOG_DIR_ENV = "AUTOUPDATE_LOG_DIR"
_LOGS_SEGMENT = "logs"


class LoggingSetupError(RuntimeError):
    """Base class for failures that prevent the log sinks from existing."""


class DirectoryResolutionError(LoggingSetupError):
    """Raised when the OS cannot supply the root of the log directory."""


class PlatformFamily(str, Enum):
    """Operating system families with distinct log directory conventions."""

    WINDOWS = "windows"
    MACOS = "macos"
    UNIX = "unix"


HomeProvider = Callable[[], Path]


class AppDirectoryResolver(Protocol):
    def data_dir(self, app_id: str) -> Path:
        """Return the per-user data directory for ``app_id``."""

    def log_dir(self, app_id: str) -> Path:
        """Return the log directory for ``app_id``."""


class _BaseResolver:
    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        home: HomeProvider | None = None,
    ) -> None:
        self._environ = os.environ if environ is None else environ
        self._home = home or Path.home

    def data_dir(self, app_id: str) -> Path:
        raise NotImplementedError

    def log_dir(self, app_id: str) -> Path:
        return self.data_dir(app_id) / _LOGS_SEGMENT

    def _home_dir(self) -> Path:
        try:
            home = Path(self._home())
        except (RuntimeError, KeyError, OSError) as exc:
            raise DirectoryResolutionError(f"Could not find home directory: {exc}") from exc
        if not str(home) or not home.is_absolute():
            raise DirectoryResolutionError(f"Could not find home directory (got {str(home)!r})")
        return home

    def _absolute_env(self, name: str) -> Path | None:
        value = self._environ.get(name)
        if not value:
            return None
        candidate = Path(value).expanduser()
        if not candidate.is_absolute():
            return None
        return candidate


class WindowsDirectoryResolver(_BaseResolver):
    """``%APPDATA%\\<app-id>\\logs``."""

    def data_dir(self, app_id: str) -> Path:
        data_root = self._absolute_env("APPDATA")
        if data_root is None:
            raise DirectoryResolutionError("Could not find data directory (APPDATA is not set)")
        return data_root / app_id


class MacOSDirectoryResolver(_BaseResolver):
    """``~/Library/Logs/<app-id>``; data lives under Application Support."""

    def data_dir(self, app_id: str) -> Path:
        return self._home_dir() / "Library" / "Application Support" / app_id

    def log_dir(self, app_id: str) -> Path:
        return self._home_dir() / "Library" / "Logs" / app_id


class UnixDirectoryResolver(_BaseResolver):
    """``$XDG_DATA_HOME/<app-id>/logs`` falling back to ``~/.local/share``."""

    def data_dir(self, app_id: str) -> Path:
        data_root = self._absolute_env("XDG_DATA_HOME")
        if data_root is None:
            try:
                data_root = self._home_dir() / ".local" / "share"
            except DirectoryResolutionError as exc:
                raise DirectoryResolutionError(
                    f"Could not find local data directory: {exc}"
                ) from exc
        return data_root / app_id


_RESOLVERS: dict[PlatformFamily, type[_BaseResolver]] = {
    PlatformFamily.WINDOWS: WindowsDirectoryResolver,
    PlatformFamily.MACOS: MacOSDirectoryResolver,
    PlatformFamily.UNIX: UnixDirectoryResolver,
}


def detect_platform(platform: str | None = None) -> PlatformFamily:
    """Map a ``sys.platform`` value onto a :class:`PlatformFamily`."""

    name = (platform if platform is not None else sys.platform).lower()
    if name.startswith("win") or name.startswith("cygwin"):
        return PlatformFamily.WINDOWS
    if name.startswith("darwin"):
        return PlatformFamily.MACOS
    return PlatformFamily.UNIX


def get_resolver(
    platform: PlatformFamily | str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    home: HomeProvider | None = None,
) -> AppDirectoryResolver:
    if platform is None:
        family = detect_platform()
    elif isinstance(platform, PlatformFamily):
        family = platform
    else:
        family = PlatformFamily(platform)
    return _RESOLVERS[family](environ=environ, home=home)


def _clean_app_id(app_id: str) -> str:
    if not app_id or not app_id.strip():
        raise DirectoryResolutionError("Application identifier is empty")
    return app_id.strip()


def resolve_log_directory(
    app_id: str,
    *,
    platform: PlatformFamily | str | None = None,
    environ: Mapping[str, str] | None = None,
    home: HomeProvider | None = None,
) -> Path:
    """Return the absolute log directory for ``app_id`` on ``platform``.

    ``AUTOUPDATE_LOG_DIR`` in ``environ`` takes precedence over the platform
    convention.  Raises :class:`DirectoryResolutionError` when the required
    root directory cannot be determined.
    """

    env = os.environ if environ is None else environ
    override = env.get(LOG_DIR_ENV)
    if override:
        return Path(override).expanduser().absolute()

    resolver = get_resolver(platform, environ=env, home=home)
    return resolver.log_dir(_clean_app_id(app_id))


def resolve_data_directory(
    app_id: str,
    *,
    platform: PlatformFamily | str | None = None,
    environ: Mapping[str, str] | None = None,
    home: HomeProvider | None = None,
) -> Path:
    """Return the per-user data directory for ``app_id`` on ``platform``."""

    resolver = get_resolver(platform, environ=environ, home=home)
    return resolver.data_dir(_clean_app_id(app_id))


__all__ = [
    "LOG_DIR_ENV",
    "AppDirectoryResolver",
    "DirectoryResolutionError",
    "LoggingSetupError",
    "MacOSDirectoryResolver",
    "PlatformFamily",
    "UnixDirectoryResolver",
    "WindowsDirectoryResolver",
    "detect_platform",
    "get_resolver",
    "resolve_data_directory",
    "resolve_log_directory",
]
