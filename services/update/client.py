"""Client for the remote release service.

The service answers a GET on the configured endpoint with either ``204 No
Content`` (nothing to install) or a JSON manifest::

    {
      "version": "1.2.0",
      "notes": "Bug fixes",
      "pub_date": "2024-03-01T12:00:00Z",
      "platforms": {
        "linux-x86_64": {"url": "https://.../app.tar.gz", "sha256": "..."}
      }
    }

A top-level ``url`` may replace the ``platforms`` table for single-artefact
releases.  ``{{target}}``, ``{{arch}}`` and ``{{current_version}}`` in the
endpoint are substituted before the request is made.
"""

from __future__ import annotations

import datetime
import http.client
import json
import logging
import platform as _platform
import re
import shutil
import tempfile
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Mapping, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import unquote, urlsplit
from urllib.request import Request, urlopen

from services.update.constants import DOWNLOAD_SUFFIX, MANIFEST_MEDIA_TYPE, USER_AGENT_TEMPLATE
from services.update.hashing import verify_sha256
from services.update.installers import Installer
from services.update.models import InstallError, UpdateCheckError, UpdateManifest
from services.update.versioning import is_version_newer
from shared.log_paths import PlatformFamily, detect_platform

_LOGGER = logging.getLogger(__name__)

ChunkCallback = Callable[[int, "int | None"], None]
DownloadCompleteCallback = Callable[[], None]

_TARGETS: dict[PlatformFamily, str] = {
    PlatformFamily.WINDOWS: "windows",
    PlatformFamily.MACOS: "darwin",
    PlatformFamily.UNIX: "linux",
}

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "x86_64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
    "i386": "i686",
    "i686": "i686",
    "x86": "i686",
    "armv7l": "armv7",
    "armv7": "armv7",
}

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._+-]")


class UpdaterClient(Protocol):
    """Capability consumed by the update orchestrator."""

    def check(self) -> UpdateManifest | None:
        """Return the manifest of a newer release, or ``None`` when current."""

    def download_and_install(
        self,
        manifest: UpdateManifest,
        on_chunk: ChunkCallback,
        on_download_complete: DownloadCompleteCallback,
    ) -> None:
        """Fetch and apply ``manifest``; raise :class:`InstallError` on failure."""


def current_target() -> str:
    return _TARGETS[detect_platform()]


def current_arch() -> str:
    machine = _platform.machine().strip().lower()
    return _ARCH_ALIASES.get(machine, machine or "unknown")


class ReleaseServiceClient:
    """Query a release endpoint and stream the announced artefact."""

    def __init__(
        self,
        endpoint: str,
        installer: Installer,
        *,
        current_version: str,
        product_name: str = "app",
        target: str | None = None,
        arch: str | None = None,
        timeout: float = 30.0,
        chunk_size: int = 64 * 1024,
        download_dir: Path | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._installer = installer
        self._current_version = current_version
        self._target = target or current_target()
        self._arch = arch or current_arch()
        self._timeout = timeout
        self._chunk_size = max(1, int(chunk_size))
        self._download_dir = download_dir
        self._user_agent = USER_AGENT_TEMPLATE.format(
            product=re.sub(r"\s+", "-", product_name.strip()) or "app",
            version=current_version,
        )

    @property
    def current_version(self) -> str:
        return self._current_version

    @property
    def platform_key(self) -> str:
        return f"{self._target}-{self._arch}"

    def endpoint_url(self) -> str:
        return (
            self._endpoint.replace("{{target}}", self._target)
            .replace("{{arch}}", self._arch)
            .replace("{{current_version}}", self._current_version)
        )

    def check(self) -> UpdateManifest | None:
        url = self.endpoint_url()
        _LOGGER.debug("Querying release service %s", url)
        request = Request(
            url, headers={"Accept": MANIFEST_MEDIA_TYPE, "User-Agent": self._user_agent}
        )
        try:
            with urlopen(request, timeout=self._timeout) as response:  # nosec - configured HTTPS endpoint
                status = getattr(response, "status", 200)
                if status == 204:
                    _LOGGER.debug("Release service reported no update (HTTP 204)")
                    return None
                raw = response.read()
        except HTTPError as exc:
            raise UpdateCheckError(f"Release service returned HTTP {exc.code} for {url}") from exc
        except (URLError, OSError, ValueError, http.client.HTTPException) as exc:
            raise UpdateCheckError(f"Failed to query release service {url}: {exc}") from exc

        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise UpdateCheckError(f"Release service returned an invalid manifest: {exc}") from exc

        manifest = parse_manifest(
            payload, current_version=self._current_version, platform_key=self.platform_key
        )
        if not is_version_newer(self._current_version, manifest.version):
            _LOGGER.debug(
                "Current version %s is up to date (remote %s)",
                self._current_version,
                manifest.version,
            )
            return None
        return manifest

    def download_and_install(
        self,
        manifest: UpdateManifest,
        on_chunk: ChunkCallback,
        on_download_complete: DownloadCompleteCallback,
    ) -> None:
        owns_dir = self._download_dir is None
        if owns_dir:
            try:
                download_dir = Path(tempfile.mkdtemp(prefix="autoupdate-"))
            except OSError as exc:
                raise InstallError(f"Failed to create download directory: {exc}") from exc
        else:
            download_dir = Path(self._download_dir)
        try:
            artifact = self._download(manifest, download_dir, on_chunk)
            on_download_complete()
            try:
                if manifest.sha256:
                    verify_sha256(artifact, manifest.sha256)
                    _LOGGER.debug("Verified SHA-256 of %s", artifact.name)
                self._installer.install(artifact, manifest)
            except OSError as exc:
                raise InstallError(f"Failed to install update {manifest.version}: {exc}") from exc
        finally:
            if owns_dir:
                shutil.rmtree(download_dir, ignore_errors=True)

    def _download(
        self, manifest: UpdateManifest, download_dir: Path, on_chunk: ChunkCallback
    ) -> Path:
        name = artifact_name(manifest)
        partial = download_dir / f"{name}{DOWNLOAD_SUFFIX}"
        request = Request(manifest.download_url, headers={"User-Agent": self._user_agent})
        downloaded = 0
        total: int | None = None
        try:
            download_dir.mkdir(parents=True, exist_ok=True)
            with urlopen(request, timeout=self._timeout) as response, partial.open("wb") as sink:  # nosec
                total = _content_length(response)
                while True:
                    chunk = response.read(self._chunk_size)
                    if not chunk:
                        break
                    sink.write(chunk)
                    downloaded += len(chunk)
                    on_chunk(len(chunk), total)
        except HTTPError as exc:
            _discard(partial)
            raise InstallError(
                f"Failed to download update {manifest.version}: HTTP {exc.code}"
            ) from exc
        except (URLError, OSError, ValueError, http.client.HTTPException) as exc:
            _discard(partial)
            raise InstallError(f"Failed to download update {manifest.version}: {exc}") from exc

        if downloaded == 0:
            _discard(partial)
            raise InstallError(f"Download of update {manifest.version} was empty")
        if total is not None and downloaded != total:
            _discard(partial)
            raise InstallError(
                f"Download of update {manifest.version} incomplete: {downloaded} of {total} bytes"
            )

        artifact = partial.with_name(name)
        try:
            partial.replace(artifact)
        except OSError as exc:
            raise InstallError(f"Failed to finalise download of {name}: {exc}") from exc
        return artifact


def parse_manifest(
    payload: Any, *, current_version: str, platform_key: str
) -> UpdateManifest:
    """Build an :class:`UpdateManifest` from the service's JSON document."""

    if not isinstance(payload, Mapping):
        raise UpdateCheckError("Release manifest is not a JSON object")

    version = str(payload.get("version") or "").strip().lstrip("v")
    if not version:
        raise UpdateCheckError("Release manifest is missing a version")

    artefact: Mapping[str, Any] = payload
    if not _clean_text(payload.get("url")):
        platforms = payload.get("platforms")
        entry = platforms.get(platform_key) if isinstance(platforms, Mapping) else None
        if not isinstance(entry, Mapping):
            raise UpdateCheckError(
                f"Release {version} has no artefact for platform {platform_key}"
            )
        artefact = entry

    url = _clean_text(artefact.get("url"))
    if url is None:
        raise UpdateCheckError(f"Release {version} artefact is missing a download URL")

    return UpdateManifest(
        version=version,
        current_version=current_version,
        download_url=url,
        date=_parse_date(payload.get("pub_date") or payload.get("date")),
        body=_clean_text(payload.get("notes") or payload.get("body")),
        sha256=_clean_text(artefact.get("sha256")),
        signature=_clean_text(artefact.get("signature")),
    )


def artifact_name(manifest: UpdateManifest) -> str:
    """Return a filesystem-safe file name for the artefact of ``manifest``."""

    path_name = unquote(PurePosixPath(urlsplit(manifest.download_url).path).name)
    cleaned = _UNSAFE_NAME.sub("_", path_name).strip("._")
    if cleaned:
        return cleaned
    return f"update-{_UNSAFE_NAME.sub('_', manifest.version)}"


def _content_length(response: Any) -> int | None:
    headers = getattr(response, "headers", None)
    raw = headers.get("Content-Length") if headers is not None else None
    if raw is None:
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def _parse_date(raw: object) -> datetime.datetime | None:
    text = _clean_text(raw)
    if text is None:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.datetime.fromisoformat(text)
    except ValueError:
        _LOGGER.debug("Ignoring unparseable release date %r", raw)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def _clean_text(raw: object) -> str | None:
    if not isinstance(raw, str):
        return None
    cleaned = raw.strip()
    return cleaned or None


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError:
        _LOGGER.debug("Unable to remove partial download at %s", path, exc_info=True)


__all__ = [
    "ChunkCallback",
    "DownloadCompleteCallback",
    "ReleaseServiceClient",
    "UpdaterClient",
    "artifact_name",
    "current_arch",
    "current_target",
    "parse_manifest",
]
