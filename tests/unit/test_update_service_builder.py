from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable

import pytest

from app.config import AppConfig, UpdaterSettings
from app.version import get_app_version
from services.update import (
    ClientBuildError,
    OutcomeKind,
    ReleaseServiceClient,
    StagingInstaller,
    UpdateOutcome,
    build_updater_client,
    find_pending_update,
    schedule_startup_update_check,
    update_staging_directory,
    validate_endpoint,
)
from shared.log_paths import DirectoryResolutionError
from tests.unit.update_service_test_utils import RecordingInstaller, ScriptedUpdaterClient

VALID_ENDPOINT = "https://github.com/acme/app/releases/latest/download/latest.json"


class RecordingSpawner:
    def __init__(self) -> None:
        self.spawned: list[tuple[Callable[[], None], str]] = []

    def spawn(self, target: Callable[[], None], name: str) -> threading.Thread:
        self.spawned.append((target, name))
        return threading.Thread(target=target, name=name)


def _config(*endpoints: str) -> AppConfig:
    return AppConfig(updater=UpdaterSettings(endpoints=tuple(endpoints)))


@pytest.mark.parametrize(
    "endpoint",
    [
        "https://github.com/{{owner}}/{{repo}}/releases/latest/download/latest.json",
        "ftp://example.com/latest.json",
        "not a url",
    ],
)
def test_validate_endpoint_rejects_unusable_values(endpoint: str) -> None:
    with pytest.raises(ClientBuildError):
        validate_endpoint(endpoint)


def test_build_updater_client_requires_an_endpoint() -> None:
    with pytest.raises(ClientBuildError, match="No updater endpoints"):
        build_updater_client(_config(), installer=RecordingInstaller(), environ={})


def test_build_updater_client_rejects_template_endpoint() -> None:
    with pytest.raises(ClientBuildError, match="placeholder"):
        build_updater_client(
            _config("https://github.com/{{owner}}/{{repo}}/releases/latest/download/latest.json"),
            installer=RecordingInstaller(),
            environ={},
        )


def test_build_updater_client_binds_identity(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("services.update.builder.get_app_version", lambda: "1.4.0")

    client = build_updater_client(
        _config(VALID_ENDPOINT), installer=RecordingInstaller(), environ={}
    )

    assert isinstance(client, ReleaseServiceClient)
    assert client.current_version == "1.4.0"
    assert client.endpoint_url() == VALID_ENDPOINT


def test_endpoint_environment_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("services.update.builder.get_app_version", lambda: "1.0.0")
    override = "https://mirror.example.com/latest.json"

    client = build_updater_client(
        _config(), installer=RecordingInstaller(), environ={"AUTOUPDATE_UPDATE_ENDPOINT": override}
    )

    assert client.endpoint_url() == override


def test_default_installer_stages_under_data_directory(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    captured: list[StagingInstaller] = []
    monkeypatch.setattr(
        "services.update.builder.resolve_data_directory",
        lambda app_id, environ=None: tmp_path / app_id,
    )
    monkeypatch.setattr(
        "services.update.builder.ReleaseServiceClient",
        lambda endpoint, installer, **kwargs: captured.append(installer),
    )

    build_updater_client(_config(VALID_ENDPOINT), environ={})

    assert isinstance(captured[0], StagingInstaller)
    assert captured[0].staging_root == tmp_path / AppConfig().identifier / "updates"


def test_schedule_skips_when_disabled() -> None:
    spawner = RecordingSpawner()

    assert schedule_startup_update_check(spawner, config=_config(), enabled=False) is None
    assert spawner.spawned == []


def test_schedule_skips_when_disabled_by_environment() -> None:
    spawner = RecordingSpawner()

    result = schedule_startup_update_check(
        spawner, config=_config(), environ={"AUTOUPDATE_DISABLE_UPDATES": "1"}
    )

    assert result is None
    assert spawner.spawned == []


def test_schedule_uses_host_spawner_without_running_inline() -> None:
    spawner = RecordingSpawner()
    client = ScriptedUpdaterClient()

    schedule_startup_update_check(
        spawner, config=_config(), client_factory=lambda: client, environ={}
    )

    assert [name for _, name in spawner.spawned] == ["auto-update-app-update"]
    assert client.events == []


def test_schedule_runs_cycle_on_daemon_thread() -> None:
    outcomes: list[UpdateOutcome] = []
    thread_names: list[str] = []
    client = ScriptedUpdaterClient()

    def factory() -> ScriptedUpdaterClient:
        thread_names.append(threading.current_thread().name)
        return client

    thread = schedule_startup_update_check(
        config=_config(), client_factory=factory, on_complete=outcomes.append, environ={}
    )
    assert thread is not None
    assert thread.daemon
    thread.join(timeout=5)

    assert [outcome.kind for outcome in outcomes] == [OutcomeKind.NO_UPDATE_AVAILABLE]
    assert thread_names == ["auto-update-app-update"]


def test_schedule_with_unbuildable_client_ends_in_check_failed() -> None:
    outcomes: list[UpdateOutcome] = []

    thread = schedule_startup_update_check(
        config=_config(), on_complete=outcomes.append, environ={}
    )
    assert thread is not None
    thread.join(timeout=5)

    assert outcomes[0].kind is OutcomeKind.CHECK_FAILED
    assert "No updater endpoints" in (outcomes[0].reason or "")


def test_client_version_ignores_runtime_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_REF_NAME", "v99.0.0")
    monkeypatch.setenv("AUTOUPDATE_APP_VERSION", "v98.0.0")

    client = build_updater_client(
        _config(VALID_ENDPOINT), installer=RecordingInstaller(), environ={}
    )

    assert client.current_version == get_app_version()
    assert client.current_version not in {"99.0.0", "98.0.0"}


def test_find_pending_update_reads_staged_marker(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(
        "services.update.builder.resolve_data_directory",
        lambda app_id, environ=None: tmp_path / app_id,
    )
    config = _config()
    assert find_pending_update(config, environ={}) is None

    staging = update_staging_directory(config, environ={})
    staging.mkdir(parents=True)
    (staging / "pending.json").write_text('{"version": "1.2.0"}', encoding="utf-8")

    assert find_pending_update(config, environ={}) == {"version": "1.2.0"}


def test_find_pending_update_without_home_returns_none(monkeypatch: pytest.MonkeyPatch) -> None:
    def no_home(app_id, environ=None):
        raise DirectoryResolutionError("Could not find home directory")

    monkeypatch.setattr("services.update.builder.resolve_data_directory", no_home)

    assert find_pending_update(_config(), environ={}) is None
