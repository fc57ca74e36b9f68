"""Periodic cleanup of thread links and relay history.

Runs on a fixed cadence (daily by default) as a cancellable asyncio task
owned by the server lifecycle. ``run_once`` performs one sweep directly.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from repo_relay.config import RelayConfig
from repo_relay.guard import RelayHistoryGuard
from repo_relay.links import ThreadLinkStore

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    links_removed: int = 0
    history_removed: int = 0


class CleanupScheduler:
    """Sweeps stale links and history every ``cleanup_interval_hours``."""

    def __init__(
        self,
        links: ThreadLinkStore,
        guard: RelayHistoryGuard,
        config: RelayConfig,
    ) -> None:
        self._links = links
        self._guard = guard
        self._config = config
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self.last_report: CleanupReport | None = None

    @property
    def is_running(self) -> bool:
        """Whether the background task is active."""
        return self._running

    @property
    def interval_seconds(self) -> float:
        return self._config.cleanup_interval_hours * 3600

    def start(self) -> None:
        """Start the background cleanup task (first sweep after one interval)."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.ensure_future(self._loop())

    def stop(self) -> None:
        """Cancel the background cleanup task."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def run_once(self) -> CleanupReport:
        """One sweep. Link cleanup goes through the store's own lock."""
        report = CleanupReport(
            links_removed=await self._links.cleanup_old_links(
                self._config.link_max_age_days
            ),
            history_removed=self._guard.cleanup(self._config.history_max_age_days),
        )
        logger.info(
            "Cleanup removed %d link(s), %d history entr(ies)",
            report.links_removed,
            report.history_removed,
        )
        self.last_report = report
        return report

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Error in cleanup sweep")
