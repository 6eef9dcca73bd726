"""Public API for the update service package."""

from __future__ import annotations

from services.update.builder import (
    TaskSpawner,
    build_updater_client,
    find_pending_update,
    schedule_startup_update_check,
    update_staging_directory,
    validate_endpoint,
)
from services.update.client import ReleaseServiceClient, UpdaterClient, parse_manifest
from services.update.constants import DISABLE_UPDATES_ENV, ENDPOINT_ENV
from services.update.installers import Installer, StagingInstaller, read_pending_update
from services.update.models import (
    ClientBuildError,
    DownloadProgress,
    InstallError,
    OutcomeKind,
    UpdateCheckError,
    UpdateError,
    UpdateManifest,
    UpdateOutcome,
    UpdateState,
)
from services.update.orchestrator import UpdateOrchestrator

__all__ = [
    "DISABLE_UPDATES_ENV",
    "ENDPOINT_ENV",
    "ClientBuildError",
    "DownloadProgress",
    "InstallError",
    "Installer",
    "OutcomeKind",
    "ReleaseServiceClient",
    "StagingInstaller",
    "TaskSpawner",
    "UpdateCheckError",
    "UpdateError",
    "UpdateManifest",
    "UpdateOrchestrator",
    "UpdateOutcome",
    "UpdateState",
    "UpdaterClient",
    "build_updater_client",
    "find_pending_update",
    "parse_manifest",
    "read_pending_update",
    "schedule_startup_update_check",
    "update_staging_directory",
    "validate_endpoint",
]
