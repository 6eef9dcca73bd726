"""Single check/download/install cycle run in the background after start-up."""

from __future__ import annotations

import logging
from typing import Callable

from services.update.client import UpdaterClient
from services.update.models import (
    ClientBuildError,
    DownloadProgress,
    UpdateError,
    UpdateManifest,
    UpdateOutcome,
    UpdateState,
)

_LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[], UpdaterClient]


class UpdateOrchestrator:
    """Drive one update cycle and report every transition on the log.

    Failures never escape :meth:`run`; they end the cycle in a terminal state
    instead.  The cycle runs at most once per instance.
    """

    def __init__(self, client_factory: ClientFactory) -> None:
        self._client_factory = client_factory
        self._state = UpdateState.IDLE
        self._outcome: UpdateOutcome | None = None
        self._progress: DownloadProgress | None = None
        self._chunks = 0
        self._download_completed = False
        self._started = False

    @property
    def state(self) -> UpdateState:
        return self._state

    @property
    def outcome(self) -> UpdateOutcome | None:
        return self._outcome

    @property
    def progress(self) -> DownloadProgress | None:
        return self._progress

    def run(self) -> UpdateOutcome:
        if self._started:
            raise RuntimeError("The update cycle has already run in this process")
        self._started = True

        _LOGGER.info("Starting update check...")
        try:
            client = self._client_factory()
        except ClientBuildError as exc:
            _LOGGER.error("Failed to build updater: %s", exc)
            return self._finish(UpdateState.CHECK_FAILED, UpdateOutcome.check_failed(str(exc)))
        except Exception as exc:
            _LOGGER.exception("Unexpected error while building updater")
            return self._finish(UpdateState.CHECK_FAILED, UpdateOutcome.check_failed(repr(exc)))

        self._transition(UpdateState.CHECKING)
        try:
            manifest = client.check()
        except UpdateError as exc:
            _LOGGER.error("Failed to check for updates: %s", exc)
            return self._finish(UpdateState.CHECK_FAILED, UpdateOutcome.check_failed(str(exc)))
        except Exception as exc:
            _LOGGER.exception("Unexpected error while checking for updates")
            return self._finish(UpdateState.CHECK_FAILED, UpdateOutcome.check_failed(repr(exc)))

        if manifest is None:
            _LOGGER.info("No updates available. App is up to date.")
            return self._finish(UpdateState.NO_UPDATE, UpdateOutcome.no_update())

        return self._install(client, manifest)

    def _install(self, client: UpdaterClient, manifest: UpdateManifest) -> UpdateOutcome:
        _LOGGER.info(
            "Update available! Version: %s, Date: %s",
            manifest.version,
            manifest.date.isoformat() if manifest.date else None,
        )
        _LOGGER.info("Update body: %s", manifest.body or "")

        self._transition(UpdateState.DOWNLOADING)
        try:
            client.download_and_install(manifest, self._on_chunk, self._on_download_complete)
        except UpdateError as exc:
            _LOGGER.error("Failed to install update: %s", exc)
            return self._finish(
                UpdateState.INSTALL_FAILED,
                UpdateOutcome.install_failed(str(exc), version=manifest.version),
            )
        except Exception as exc:
            _LOGGER.exception("Unexpected error while installing update")
            return self._finish(
                UpdateState.INSTALL_FAILED,
                UpdateOutcome.install_failed(repr(exc), version=manifest.version),
            )

        _LOGGER.info("Update installed successfully! Restart required.")
        return self._finish(
            UpdateState.INSTALLED_PENDING_RESTART, UpdateOutcome.installed(manifest.version)
        )

    def _on_chunk(self, chunk: int, total: int | None) -> None:
        downloaded = (self._progress.downloaded if self._progress else 0) + chunk
        self._progress = DownloadProgress(chunk=chunk, downloaded=downloaded, total=total)
        self._chunks += 1
        _LOGGER.debug("Downloaded %d of %s bytes", downloaded, total)

    def _on_download_complete(self) -> None:
        if self._download_completed:
            _LOGGER.warning("Ignoring repeated download completion notice")
            return
        self._download_completed = True
        _LOGGER.info(
            "Download complete, preparing to install... (%d bytes in %d chunks)",
            self._progress.downloaded if self._progress else 0,
            self._chunks,
        )

    def _transition(self, state: UpdateState) -> None:
        _LOGGER.debug("Update state %s -> %s", self._state.value, state.value)
        self._state = state

    def _finish(self, state: UpdateState, outcome: UpdateOutcome) -> UpdateOutcome:
        self._transition(state)
        self._outcome = outcome
        return outcome


__all__ = ["ClientFactory", "UpdateOrchestrator"]
