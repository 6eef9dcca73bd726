"""Build version of the running application.

The version comes only from build metadata: the ``VERSION`` file that
``scripts/stamp_version.py`` writes into the package at build time, or the
installed distribution's metadata.  Nothing in the process environment can
change it, so the update check always compares against what was shipped.
"""

from __future__ import annotations

from functools import lru_cache
from importlib import metadata, resources

DISTRIBUTION_NAME = "auto-update-app"
_FALLBACK_VERSION = "0.0.0-dev"


def normalize_version(raw_version: str) -> str:
    """Strip whitespace and a single leading ``v`` from a tag name."""

    version = raw_version.strip()
    if version.startswith("v"):
        version = version[1:]
    return version


def _stamped_version() -> str | None:
    try:
        text = resources.files(__package__).joinpath("VERSION").read_text(encoding="utf-8")
    except (FileNotFoundError, ModuleNotFoundError, OSError):
        return None
    return normalize_version(text) or None


def _distribution_version() -> str | None:
    try:
        return normalize_version(metadata.version(DISTRIBUTION_NAME)) or None
    except metadata.PackageNotFoundError:
        return None


@lru_cache(maxsize=1)
def get_app_version() -> str:
    """Return the stamped version, then the distribution version, then a dev marker."""

    for source in (_stamped_version, _distribution_version):
        version = source()
        if version:
            return version
    return _FALLBACK_VERSION


__all__ = ["DISTRIBUTION_NAME", "get_app_version", "normalize_version"]
