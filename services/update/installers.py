"""Installer implementations applied to a downloaded artefact."""

from __future__ import annotations

import datetime
import json
import logging
import re
import shutil
from pathlib import Path
from typing import Protocol

from services.update.constants import PENDING_MARKER_NAME
from services.update.models import InstallError, UpdateManifest

_LOGGER = logging.getLogger(__name__)

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9._+-]")


class Installer(Protocol):
    """Protocol describing the platform-specific installation routine."""

    def install(self, artifact: Path, manifest: UpdateManifest) -> Path:
        """Apply ``artifact`` and return where the new version now lives."""


class StagingInstaller:
    """Stage the artefact for the next launch; the restart itself is external.

    The artefact is moved to ``<root>/<version>/`` and a ``pending.json``
    marker next to the version directories records what is waiting to be
    applied.
    """

    def __init__(self, staging_root: Path) -> None:
        self._staging_root = Path(staging_root)

    @property
    def staging_root(self) -> Path:
        return self._staging_root

    def install(self, artifact: Path, manifest: UpdateManifest) -> Path:
        target_dir = self._staging_root / _safe_segment(manifest.version)
        target = target_dir / artifact.name
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            if target.exists():
                target.unlink()
            shutil.move(str(artifact), str(target))
            self._write_marker(target, manifest)
        except OSError as exc:
            raise InstallError(f"Failed to stage update {manifest.version}: {exc}") from exc
        _LOGGER.info("Staged update %s at %s", manifest.version, target)
        return target

    def _write_marker(self, target: Path, manifest: UpdateManifest) -> None:
        payload = {
            "version": manifest.version,
            "previous_version": manifest.current_version,
            "artifact": str(target),
            "staged_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        }
        marker = self._staging_root / PENDING_MARKER_NAME
        marker.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        _LOGGER.debug("Pending update marker written to %s", marker)


def read_pending_update(staging_root: Path) -> dict | None:
    """Return the pending update marker under ``staging_root``, if readable."""

    marker = Path(staging_root) / PENDING_MARKER_NAME
    try:
        payload = json.loads(marker.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError):
        _LOGGER.debug("Unable to parse pending update marker at %s", marker, exc_info=True)
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def _safe_segment(value: str) -> str:
    cleaned = _UNSAFE_SEGMENT.sub("_", value.strip()).strip(".")
    return cleaned or "unknown"
