"""
Connectivity flag and health file for the sync daemon.

:class:`ConnectivityState` holds the single boolean that tells consumers
whether the last credential acquisition succeeded. It is written to the tree
at ``info.connection`` and mirrored into the health file.

:class:`HealthWriter` writes a JSON health file with four fields:
- connected: Current connectivity flag.
- last_cycle_ts: ISO timestamp of the most recent finished sync cycle.
- last_cycle_failed_stages: Names of the stages that failed in that cycle.
- cycles: Number of cycles finished since start.

The file is rewritten on every state change, providing a liveness signal that
Docker HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-19: Initial creation, adapted from the edge health writer
- 2026-10-19: Health file write failures are logged instead of raised

TODO:
- None
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from guardian.src.pipeline import CycleReport
    from guardian.src.store import TreeStore

logger = logging.getLogger(__name__)

CONNECTION_PATH = "info.connection"
"""Tree path of the connectivity flag."""


class HealthWriter:
    """Writes sync health status to a JSON file.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._connected: bool = False
        self._last_cycle_ts: str | None = None
        self._last_cycle_failed_stages: list[str] = []
        self._cycles: int = 0

    def set_connected(self, connected: bool) -> None:
        """Update the connectivity flag and write health file."""
        self._connected = connected
        self._write()

    def record_cycle(self, report: CycleReport) -> None:
        """Record a finished cycle and write health file."""
        finished = report.finished_at or datetime.now(tz=UTC)
        self._last_cycle_ts = finished.isoformat()
        self._last_cycle_failed_stages = report.failed_stages
        self._cycles += 1
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "connected": self._connected,
            "last_cycle_ts": self._last_cycle_ts,
            "last_cycle_failed_stages": self._last_cycle_failed_stages,
            "cycles": self._cycles,
        }
        self.path.write_text(json.dumps(data))


class ConnectivityState:
    """The connectivity flag exposed to tree consumers.

    Args:
        store: Opened tree store receiving ``info.connection``.
        health: Optional health writer mirroring the flag.
    """

    def __init__(self, store: TreeStore, health: HealthWriter | None = None) -> None:
        self._store = store
        self._health = health
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def set(self, connected: bool) -> None:
        """Set the flag and publish it to the store and health file.

        A health file that cannot be written is logged and otherwise ignored.
        """
        self._connected = connected
        await self._store.create_if_absent(
            CONNECTION_PATH, "state", "Connected to SolarGuardian API"
        )
        await self._store.write_value(CONNECTION_PATH, connected)
        if self._health is not None:
            try:
                self._health.set_connected(connected)
            except Exception:
                logger.warning("Failed to write health file", exc_info=True)
