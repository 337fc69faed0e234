"""
Sync daemon entrypoint for the SolarGuardian mirror.

Builds the components (tree store, API client, credential manager, pipeline,
scheduler), starts the scheduler and waits for SIGTERM/SIGINT. Startup
authenticates once; when that fails the daemon logs the error, publishes
``info.connection = false`` and exits without polling.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-19: Initial creation, adapted from the edge daemon main loop

TODO:
- None
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime, timedelta

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging for the sync daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _masked_secret(value: str | None) -> str:
    """Return a short non-reversible fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup, excluding secrets.

    The app secret is only logged as a fingerprint.

    Args:
        settings: A GuardianSettings instance (or any object with the same attrs).
    """
    logger.info(
        "Sync daemon starting with config: "
        "api_base_url=%s, app_key=%s, poll_interval_ms=%s, "
        "request_timeout_s=%s, page_size=%s, history_window_h=%s, "
        "alarm_window_days=%s, token_refresh_interval_s=%s, "
        "store_path=%s, health_path=%s, app_secret_masked=%s",
        settings.api_base_url,  # type: ignore[attr-defined]
        settings.app_key,  # type: ignore[attr-defined]
        settings.poll_interval_ms,  # type: ignore[attr-defined]
        settings.request_timeout_s,  # type: ignore[attr-defined]
        settings.page_size,  # type: ignore[attr-defined]
        settings.history_window_h,  # type: ignore[attr-defined]
        settings.alarm_window_days,  # type: ignore[attr-defined]
        settings.token_refresh_interval_s,  # type: ignore[attr-defined]
        settings.store_path,  # type: ignore[attr-defined]
        settings.health_path,  # type: ignore[attr-defined]
        _masked_secret(settings.app_secret),  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def run_daemon(settings: object, shutdown_event: asyncio.Event) -> bool:
    """Build all components from *settings* and run until shutdown.

    Returns:
        ``False`` if startup authentication failed, ``True`` after a
        graceful shutdown.
    """
    from guardian.src.auth import CredentialManager
    from guardian.src.client import ApiClient
    from guardian.src.health import ConnectivityState, HealthWriter
    from guardian.src.pipeline import SyncPipeline
    from guardian.src.scheduler import Scheduler
    from guardian.src.store import TreeStore

    health = HealthWriter(settings.health_path)  # type: ignore[attr-defined]

    async with (
        TreeStore(settings.store_path) as store,  # type: ignore[attr-defined]
        ApiClient(
            settings.api_base_url,  # type: ignore[attr-defined]
            timeout_s=settings.request_timeout_s,  # type: ignore[attr-defined]
        ) as client,
    ):
        pipeline = SyncPipeline(
            client,
            store,
            page_size=settings.page_size,  # type: ignore[attr-defined]
            history_window=timedelta(hours=settings.history_window_h),  # type: ignore[attr-defined]
            alarm_window=timedelta(days=settings.alarm_window_days),  # type: ignore[attr-defined]
        )
        scheduler = Scheduler(
            credentials=CredentialManager(client),
            pipeline=pipeline,
            connectivity=ConnectivityState(store, health),
            app_key=settings.app_key,  # type: ignore[attr-defined]
            app_secret=settings.app_secret,  # type: ignore[attr-defined]
            poll_interval_ms=settings.poll_interval_ms,  # type: ignore[attr-defined]
            token_refresh_interval_s=settings.token_refresh_interval_s,  # type: ignore[attr-defined]
            health=health,
        )

        if not await scheduler.start():
            return False

        await shutdown_event.wait()
        await scheduler.stop()
    logger.info("Shutdown complete")
    return True


async def async_main() -> int:
    """Async entrypoint: load config, install signal handlers, run daemon.

    Returns:
        Process exit code.
    """
    from guardian.src.config import GuardianSettings

    settings = GuardianSettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    started = await run_daemon(settings, shutdown_event)
    return 0 if started else 1


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the sync daemon."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
