"""Data models used by the update service."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class UpdateManifest:
    """Release announced by the update service as newer than the running build."""

    version: str
    current_version: str
    download_url: str
    date: datetime.datetime | None = None
    body: str | None = None
    sha256: str | None = None
    signature: str | None = None


@dataclass(frozen=True)
class DownloadProgress:
    """Running totals of a single artefact download."""

    chunk: int
    downloaded: int
    total: int | None = None

    @property
    def fraction(self) -> float | None:
        if not self.total:
            return None
        return min(1.0, self.downloaded / self.total)


class UpdateState(str, Enum):
    """States of one check/download/install cycle."""

    IDLE = "idle"
    CHECKING = "checking"
    DOWNLOADING = "downloading"
    INSTALLED_PENDING_RESTART = "installed_pending_restart"
    NO_UPDATE = "no_update"
    CHECK_FAILED = "check_failed"
    INSTALL_FAILED = "install_failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        UpdateState.INSTALLED_PENDING_RESTART,
        UpdateState.NO_UPDATE,
        UpdateState.CHECK_FAILED,
        UpdateState.INSTALL_FAILED,
    }
)


class OutcomeKind(str, Enum):
    NO_UPDATE_AVAILABLE = "no_update_available"
    UPDATE_INSTALLED = "update_installed"
    CHECK_FAILED = "check_failed"
    INSTALL_FAILED = "install_failed"


@dataclass(frozen=True)
class UpdateOutcome:
    """Terminal result of an update cycle.  Only ever logged."""

    kind: OutcomeKind
    reason: str | None = None
    version: str | None = None

    @classmethod
    def no_update(cls) -> UpdateOutcome:
        return cls(OutcomeKind.NO_UPDATE_AVAILABLE)

    @classmethod
    def installed(cls, version: str | None = None) -> UpdateOutcome:
        return cls(OutcomeKind.UPDATE_INSTALLED, version=version)

    @classmethod
    def check_failed(cls, reason: str) -> UpdateOutcome:
        return cls(OutcomeKind.CHECK_FAILED, reason=reason)

    @classmethod
    def install_failed(cls, reason: str, version: str | None = None) -> UpdateOutcome:
        return cls(OutcomeKind.INSTALL_FAILED, reason=reason, version=version)

    @property
    def succeeded(self) -> bool:
        return self.kind in (OutcomeKind.NO_UPDATE_AVAILABLE, OutcomeKind.UPDATE_INSTALLED)


class UpdateError(RuntimeError):
    """Base class for recoverable update failures."""


class ClientBuildError(UpdateError):
    """Raised when the updater client cannot be configured."""


class UpdateCheckError(UpdateError):
    """Raised when the release service cannot be queried or understood."""


class InstallError(UpdateError):
    """Raised when the artefact cannot be downloaded, verified or staged."""
