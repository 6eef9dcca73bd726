"""Process entry point composing logging start-up and the background update."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from dataclasses import dataclass, field
from typing import Callable

from app.config import AppConfig, get_app_config
from app.version import get_app_version
from services.update import UpdateOutcome, find_pending_update, schedule_startup_update_check
from shared.log_paths import LoggingSetupError
from shared.logging_config import LoggingGuard, initialise_logging

_LOGGER = logging.getLogger(__name__)

WindowFactory = Callable[["HostApplication"], None]


@dataclass
class HostApplication:
    """Application handle handed to background services."""

    config: AppConfig
    version: str
    logging_guard: LoggingGuard | None = None
    tasks: list[threading.Thread] = field(default_factory=list)

    def spawn(self, target: Callable[[], None], name: str) -> threading.Thread:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self.tasks.append(thread)
        return thread


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--no-update-check",
        action="store_true",
        help="Skip the background update check for this launch.",
    )
    parser.add_argument(
        "--wait-for-update",
        action="store_true",
        help="Block until the background update cycle finishes even when a window is shown.",
    )
    return parser.parse_args(argv)


def start_application(
    config: AppConfig | None = None, *, console: bool = True
) -> HostApplication:
    """Install logging and log the start-up banner.

    Raises :class:`~shared.log_paths.LoggingSetupError` when no log sink can
    be created.
    """

    config = config or get_app_config()
    guard = initialise_logging(config, console=console)
    version = get_app_version()
    _LOGGER.info("Starting %s", config.product_name)
    _LOGGER.info("Version: %s", version)
    _LOGGER.info("Logs will be written to: %s", guard.log_dir)
    pending = find_pending_update(config)
    if pending is not None:
        _LOGGER.info(
            "Update %s is staged and waiting for a restart: %s",
            pending.get("version"),
            pending.get("artifact"),
        )
    return HostApplication(config=config, version=version, logging_guard=guard)


def _log_outcome(outcome: UpdateOutcome) -> None:
    _LOGGER.debug("Background update outcome: %s (%s)", outcome.kind.value, outcome.reason)


def main(argv: list[str] | None = None, *, window_factory: WindowFactory | None = None) -> int:
    args = parse_args(argv)

    try:
        host = start_application()
    except LoggingSetupError as exc:
        print(f"Failed to set up logging: {exc}", file=sys.stderr)
        return 1

    update_task = schedule_startup_update_check(
        host,
        config=host.config,
        enabled=not args.no_update_check,
        on_complete=_log_outcome,
    )
    _LOGGER.info("App setup complete")

    if window_factory is not None:
        window_factory(host)

    # Without a window the process would exit and kill the daemon mid-cycle.
    if update_task is not None and (args.wait_for_update or window_factory is None):
        update_task.join()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
