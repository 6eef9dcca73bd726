from __future__ import annotations

from pathlib import Path

import pytest

from services.update import InstallError, StagingInstaller, read_pending_update
from tests.unit.update_service_test_utils import make_manifest


def test_staging_installer_moves_artifact_and_writes_marker(tmp_path: Path) -> None:
    artifact = tmp_path / "download" / "app-1.1.0.tar.gz"
    artifact.parent.mkdir()
    artifact.write_bytes(b"payload")
    installer = StagingInstaller(tmp_path / "updates")

    staged = installer.install(artifact, make_manifest("1.1.0"))

    assert staged == tmp_path / "updates" / "1.1.0" / "app-1.1.0.tar.gz"
    assert staged.read_bytes() == b"payload"
    assert not artifact.exists()
    pending = read_pending_update(tmp_path / "updates")
    assert pending is not None
    assert pending["version"] == "1.1.0"
    assert pending["previous_version"] == "1.0.0"
    assert pending["artifact"] == str(staged)


def test_staging_installer_sanitises_version_directory(tmp_path: Path) -> None:
    artifact = tmp_path / "app.zip"
    artifact.write_bytes(b"x")

    staged = StagingInstaller(tmp_path / "updates").install(artifact, make_manifest("../../evil"))

    assert staged.parent.parent == tmp_path / "updates"


def test_staging_installer_reports_filesystem_errors(tmp_path: Path) -> None:
    blocker = tmp_path / "updates"
    blocker.write_text("not a directory", encoding="utf-8")
    artifact = tmp_path / "app.zip"
    artifact.write_bytes(b"x")

    with pytest.raises(InstallError, match="Failed to stage update"):
        StagingInstaller(blocker).install(artifact, make_manifest())


def test_read_pending_update_handles_missing_and_corrupt_markers(tmp_path: Path) -> None:
    assert read_pending_update(tmp_path) is None

    (tmp_path / "pending.json").write_text("{not json", encoding="utf-8")

    assert read_pending_update(tmp_path) is None
