"""Helpers for constructing and scheduling the update cycle."""

from __future__ import annotations

import logging
import os
import re
import threading
from pathlib import Path
from typing import Callable, Mapping, Protocol
from urllib.parse import urlsplit

from app.config import AppConfig, get_app_config
from app.version import get_app_version
from services.update.client import ReleaseServiceClient, UpdaterClient
from services.update.constants import (
    DISABLE_UPDATES_ENV,
    ENDPOINT_ENV,
    ENDPOINT_PLACEHOLDERS,
    ENDPOINT_SCHEMES,
    STAGING_DIRNAME,
)
from services.update.installers import Installer, StagingInstaller, read_pending_update
from services.update.models import ClientBuildError, UpdateOutcome
from services.update.orchestrator import ClientFactory, UpdateOrchestrator
from shared.log_paths import DirectoryResolutionError, resolve_data_directory

_LOGGER = logging.getLogger(__name__)


class TaskSpawner(Protocol):
    """Anything able to run ``target`` in the background without awaiting it."""

    def spawn(self, target: Callable[[], None], name: str) -> threading.Thread:
        ...


def validate_endpoint(endpoint: str) -> str:
    """Return ``endpoint`` stripped, or raise :class:`ClientBuildError`."""

    cleaned = endpoint.strip()
    for placeholder in ENDPOINT_PLACEHOLDERS:
        if placeholder in cleaned:
            raise ClientBuildError(
                f"Updater endpoint still contains the template placeholder {placeholder}: {cleaned}"
            )
    parts = urlsplit(cleaned)
    if parts.scheme.lower() not in ENDPOINT_SCHEMES or not parts.netloc:
        raise ClientBuildError(f"Updater endpoint is not an http(s) URL: {cleaned!r}")
    return cleaned


def update_staging_directory(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> Path:
    return resolve_data_directory(config.identifier, environ=environ) / STAGING_DIRNAME


def find_pending_update(
    config: AppConfig | None = None, *, environ: Mapping[str, str] | None = None
) -> dict | None:
    """Return the marker of an update staged by a previous launch, if any."""

    config = config or get_app_config()
    try:
        staging_root = update_staging_directory(config, environ=environ)
    except DirectoryResolutionError as exc:
        _LOGGER.debug("Skipping pending update lookup: %s", exc)
        return None
    return read_pending_update(staging_root)


def build_updater_client(
    config: AppConfig | None = None,
    *,
    installer: Installer | None = None,
    environ: Mapping[str, str] | None = None,
) -> ReleaseServiceClient:
    """Construct the release service client bound to this application."""

    config = config or get_app_config()
    env = os.environ if environ is None else environ

    endpoint = (env.get(ENDPOINT_ENV) or "").strip()
    if not endpoint:
        if not config.updater.endpoints:
            raise ClientBuildError("No updater endpoints configured")
        endpoint = config.updater.endpoints[0]
    endpoint = validate_endpoint(endpoint)

    if installer is None:
        try:
            staging_root = update_staging_directory(config, environ=env)
        except DirectoryResolutionError as exc:
            raise ClientBuildError(f"Cannot locate update staging directory: {exc}") from exc
        installer = StagingInstaller(staging_root)

    current_version = get_app_version()
    _LOGGER.debug("Building updater for %s %s against %s", config.identifier, current_version, endpoint)
    return ReleaseServiceClient(
        endpoint,
        installer,
        current_version=current_version,
        product_name=config.product_name,
        timeout=config.updater.timeout_seconds,
        chunk_size=config.updater.chunk_size,
    )


def _updates_disabled(environ: Mapping[str, str]) -> bool:
    value = environ.get(DISABLE_UPDATES_ENV, "").strip().lower()
    return value in {"1", "true", "yes", "on"}


def _spawn_daemon(target: Callable[[], None], name: str) -> threading.Thread:
    thread = threading.Thread(target=target, name=name, daemon=True)
    thread.start()
    return thread


def _thread_name(config: AppConfig) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", config.product_name.lower()).strip("-")
    return f"{slug or 'app'}-update"


def schedule_startup_update_check(
    host: TaskSpawner | None = None,
    *,
    config: AppConfig | None = None,
    enabled: bool = True,
    client_factory: ClientFactory | None = None,
    on_complete: Callable[[UpdateOutcome], None] | None = None,
    environ: Mapping[str, str] | None = None,
) -> threading.Thread | None:
    """Start the update cycle in the background and return without waiting.

    A windowed application never joins the returned thread.
    """

    env = os.environ if environ is None else environ
    if not enabled:
        _LOGGER.debug("Automatic updates disabled by caller")
        return None
    if _updates_disabled(env):
        _LOGGER.info("Automatic updates disabled by %s", DISABLE_UPDATES_ENV)
        return None

    config = config or get_app_config()
    if client_factory is None:

        def client_factory() -> UpdaterClient:
            return build_updater_client(config, environ=env)

    orchestrator = UpdateOrchestrator(client_factory)

    def _run() -> None:
        outcome = orchestrator.run()
        _LOGGER.debug("Update cycle finished: %s", outcome.kind.value)
        if on_complete is None:
            return
        try:
            on_complete(outcome)
        except Exception:  # pragma: no cover
            _LOGGER.exception("Update completion callback failed")

    spawn = host.spawn if host is not None else _spawn_daemon
    return spawn(_run, _thread_name(config))


__all__ = [
    "TaskSpawner",
    "build_updater_client",
    "find_pending_update",
    "schedule_startup_update_check",
    "update_staging_directory",
    "validate_endpoint",
]
