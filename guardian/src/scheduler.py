"""
Scheduler driving the sync pipeline at a fixed interval.

State machine:

- IDLE:    created, not authenticated.
- RUNNING: credential acquired; one cycle ran immediately at start and a
           timer triggers another every ``poll_interval_ms``.
- STOPPED: terminal; the timer is cancelled and connectivity is cleared.

``start()`` moves IDLE -> RUNNING only if the credential manager acquires a
token. On AuthError the connectivity flag is set to false, the error is
logged and the scheduler stays IDLE; there is no automatic retry.

At most one cycle runs at a time. A timer tick that fires while the previous
cycle is still running is skipped with a warning.

``stop()`` does not wait for an in-flight cycle to finish: the cycle task is
cancelled and its remote calls are abandoned. Each entity's writes are
committed atomically, so an abandoned cycle leaves the tree consistent.

The token is captured at start and reused for every cycle. When
``token_refresh_interval_s`` is positive, a cycle first re-authenticates if the
held token is older than that interval; a failed refresh clears connectivity
and skips that cycle only.

CHANGELOG:
- 2026-10-19: Initial creation, adapted from the edge poll loop

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from guardian.src.errors import AuthError

if TYPE_CHECKING:
    from guardian.src.auth import CredentialManager
    from guardian.src.health import ConnectivityState, HealthWriter
    from guardian.src.pipeline import CycleReport, SyncPipeline

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS: int = 300_000
"""Poll interval used when none is configured (5 minutes)."""


class SchedulerState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class Scheduler:
    """Owns the credential, the poll timer and the single-flight guard.

    Args:
        credentials: Credential manager used to authenticate.
        pipeline: The stage pipeline run on every cycle.
        connectivity: Connectivity flag published to consumers.
        app_key: SolarGuardian application key.
        app_secret: SolarGuardian application secret.
        poll_interval_ms: Milliseconds between cycle starts.
        token_refresh_interval_s: Re-authenticate before a cycle when the
            token is at least this old. ``0`` disables refresh.
        health: HealthWriter instance, or None to skip health writes.
    """

    def __init__(
        self,
        *,
        credentials: CredentialManager,
        pipeline: SyncPipeline,
        connectivity: ConnectivityState,
        app_key: str,
        app_secret: str,
        poll_interval_ms: int | None = DEFAULT_POLL_INTERVAL_MS,
        token_refresh_interval_s: float = 0,
        health: HealthWriter | None = None,
    ) -> None:
        self._credentials = credentials
        self._pipeline = pipeline
        self._connectivity = connectivity
        self._app_key = app_key
        self._app_secret = app_secret
        self._poll_interval_ms = poll_interval_ms or DEFAULT_POLL_INTERVAL_MS
        self._token_refresh_interval_s = token_refresh_interval_s
        self._health = health

        self._state = SchedulerState.IDLE
        self._cycle_lock = asyncio.Lock()
        self._timer: asyncio.Task[None] | None = None
        self._cycle_task: asyncio.Task[CycleReport | None] | None = None
        self._last_report: CycleReport | None = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def poll_interval_ms(self) -> int:
        return self._poll_interval_ms

    @property
    def last_report(self) -> CycleReport | None:
        """Report of the most recent finished cycle."""
        return self._last_report

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Authenticate, run one cycle immediately and start the timer.

        Returns:
            ``True`` if the scheduler is RUNNING, ``False`` if
            authentication failed and it stayed IDLE.

        Raises:
            RuntimeError: If the scheduler was already stopped.
        """
        if self._state is SchedulerState.STOPPED:
            raise RuntimeError("Scheduler is stopped and cannot be restarted")
        if self._state is SchedulerState.RUNNING:
            return True

        try:
            await self._credentials.acquire(self._app_key, self._app_secret)
        except AuthError as exc:
            logger.error("Authentication failed, polling not started: %s", exc)
            await self._connectivity.set(False)
            return False

        await self._connectivity.set(True)
        self._state = SchedulerState.RUNNING
        logger.info(
            "Connected to SolarGuardian API, polling every %d ms",
            self._poll_interval_ms,
        )

        self._trigger()
        self._timer = asyncio.create_task(self._timer_loop(), name="guardian-timer")
        return True

    async def stop(self) -> None:
        """Stop polling. Terminal; safe to call more than once."""
        if self._state is SchedulerState.STOPPED:
            return
        self._state = SchedulerState.STOPPED

        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None

        if self._cycle_task is not None and not self._cycle_task.done():
            logger.info("Abandoning in-flight sync cycle")
            self._cycle_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cycle_task

        await self._connectivity.set(False)
        logger.info("Scheduler stopped")

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleReport | None:
        """Run one pipeline pass unless another one is in progress.

        Returns:
            The cycle report, or ``None`` if the cycle was skipped (another
            cycle running, no credential, or a failed token refresh).
        """
        if self._cycle_lock.locked():
            logger.warning("Previous sync cycle still running, skipping this one")
            return None

        async with self._cycle_lock:
            if not await self._ensure_fresh_token():
                return None
            credential = self._credentials.current
            if credential is None:
                logger.error("No credential available, skipping sync cycle")
                return None

            try:
                report = await self._pipeline.run_cycle(credential.token)
            except Exception:
                logger.error("Sync cycle error", exc_info=True)
                return None

            self._last_report = report
            if self._health is not None:
                try:
                    self._health.record_cycle(report)
                except Exception:
                    logger.warning("Failed to write health file", exc_info=True)
            return report

    def _trigger(self) -> None:
        """Start a cycle task unless one is still running."""
        if self._cycle_task is not None and not self._cycle_task.done():
            logger.warning("Previous sync cycle still running, skipping this tick")
            return
        self._cycle_task = asyncio.create_task(self.run_cycle(), name="guardian-cycle")

    async def _timer_loop(self) -> None:
        interval_s = self._poll_interval_ms / 1000.0
        while self._state is SchedulerState.RUNNING:
            await asyncio.sleep(interval_s)
            if self._state is SchedulerState.RUNNING:
                self._trigger()

    async def _ensure_fresh_token(self) -> bool:
        """Re-authenticate if refresh is enabled and the token is too old."""
        if self._token_refresh_interval_s <= 0:
            return True
        age = self._credentials.age_s()
        if age is not None and age < self._token_refresh_interval_s:
            return True

        try:
            await self._credentials.refresh()
        except AuthError as exc:
            logger.error("Token refresh failed, skipping sync cycle: %s", exc)
            await self._connectivity.set(False)
            return False

        if not self._connectivity.connected:
            await self._connectivity.set(True)
        return True
