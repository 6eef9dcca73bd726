from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_project_root_on_path()

from app.config import reset_app_config_cache  # noqa: E402
from app.version import get_app_version  # noqa: E402
from shared import logging_config  # noqa: E402

_ISOLATED_ENV = (
    "AUTOUPDATE_LOG",
    "AUTOUPDATE_LOG_DIR",
    "AUTOUPDATE_UPDATE_ENDPOINT",
    "AUTOUPDATE_DISABLE_UPDATES",
)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """Keep tests independent of the developer's environment and of each other."""

    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    logging_config._reset_for_tests()
    reset_app_config_cache()
    get_app_version.cache_clear()  # type: ignore[attr-defined]
    try:
        yield
    finally:
        logging_config._reset_for_tests()
        reset_app_config_cache()
        get_app_version.cache_clear()  # type: ignore[attr-defined]
