"""Integrity check for downloaded update artefacts."""

from __future__ import annotations

import hashlib
from pathlib import Path

from services.update.models import InstallError


def calculate_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as source:
        for chunk in iter(lambda: source.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_sha256(path: Path, expected: str) -> None:
    """Raise :class:`InstallError` unless ``path`` hashes to ``expected``."""

    expected_value = expected.strip().lower()
    if expected_value.startswith("sha256:"):
        expected_value = expected_value[len("sha256:"):]
    actual = calculate_sha256(path)
    if actual != expected_value:
        raise InstallError(
            f"Artefact hash mismatch: expected {expected_value} but received {actual}"
        )
