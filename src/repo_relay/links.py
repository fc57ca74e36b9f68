"""Thread link store - maps origin issue threads to relayed target threads.

The store owns:
- Link storage (``"{origin_repo}#{origin_issue}"`` -> ThreadLink)
- Persistence (the whole map as one JSON object, via atomic_write_json)
- Age-based cleanup
- Queries for status and reporting

At most one link exists per origin thread; linking again replaces the
previous target. The map is hydrated from disk once, on first access,
and written back in full after every mutation. All access, including
the background cleanup, is serialized by a single asyncio lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from repo_relay import conventions
from repo_relay.fileutil import atomic_write_json, read_json
from repo_relay.models import ThreadLink, utcnow

logger = logging.getLogger(__name__)


def link_key(repo: str, issue: int | str) -> str:
    return f"{repo}#{issue}"


class ThreadLinkStore:
    """Durable origin -> target thread mapping.

    Args:
        persistence_path: JSON file for persistence. None keeps links in
            memory only (useful in tests).
        clock: Source of "now" for link timestamps and cleanup cutoffs.
    """

    def __init__(
        self,
        persistence_path: Path | None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._persistence_path = persistence_path
        self._clock = clock
        self._links: dict[str, ThreadLink] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    # --- Persistence ---

    def _ensure_loaded(self) -> None:
        """Hydrate from disk the first time; never again for this store."""
        if self._loaded:
            return
        if self._persistence_path is not None:
            data = read_json(self._persistence_path)
            if data:
                self._links = {
                    key: ThreadLink.from_dict(value) for key, value in data.items()
                }
            logger.info(
                "Loaded %d thread links from %s",
                len(self._links),
                self._persistence_path,
            )
        self._loaded = True

    def _save(self) -> None:
        if self._persistence_path is None:
            return
        atomic_write_json(
            self._persistence_path,
            {key: link.to_dict() for key, link in self._links.items()},
        )

    # --- Mutations ---

    async def link_thread(
        self,
        origin_repo: str,
        origin_issue: int,
        target_repo: str,
        target_issue: int,
        metadata: dict[str, Any] | None = None,
    ) -> ThreadLink:
        """Link an origin thread to a target thread, replacing any previous link."""
        key = link_key(origin_repo, origin_issue)
        link = ThreadLink(
            target=link_key(target_repo, target_issue),
            timestamp=self._clock(),
            metadata=dict(metadata or {}),
        )
        async with self._lock:
            self._ensure_loaded()
            self._links[key] = link
            self._save()
        logger.info("Linked thread: %s -> %s", key, link.target)
        return link

    async def unlink_thread(self, origin_repo: str, origin_issue: int) -> bool:
        """Remove the link for an origin thread. True if one existed."""
        key = link_key(origin_repo, origin_issue)
        async with self._lock:
            self._ensure_loaded()
            existed = self._links.pop(key, None) is not None
            if existed:
                self._save()
        if existed:
            logger.info("Unlinked thread: %s", key)
        return existed

    async def cleanup_old_links(
        self, max_age_days: int = conventions.DEFAULT_LINK_MAX_AGE_DAYS
    ) -> int:
        """Remove links created strictly before the age cutoff."""
        cutoff = self._clock() - timedelta(days=max_age_days)
        async with self._lock:
            self._ensure_loaded()
            stale = [k for k, link in self._links.items() if link.timestamp < cutoff]
            for key in stale:
                del self._links[key]
            if stale:
                self._save()
        if stale:
            logger.info("Cleaned up %d old thread links", len(stale))
        return len(stale)

    # --- Queries ---

    async def get_linked_thread(
        self, origin_repo: str, origin_issue: int
    ) -> ThreadLink | None:
        async with self._lock:
            self._ensure_loaded()
            return self._links.get(link_key(origin_repo, origin_issue))

    async def get_all_thread_links(self) -> list[dict[str, Any]]:
        """Every link as ``{"key": ..., **link}`` for reporting."""
        async with self._lock:
            self._ensure_loaded()
            return [
                {"key": key, **link.to_dict()} for key, link in self._links.items()
            ]

    async def get_links_for_repo(self, origin_repo: str) -> list[dict[str, Any]]:
        """Links whose origin thread lives in *origin_repo*."""
        prefix = f"{origin_repo}#"
        return [
            entry
            for entry in await self.get_all_thread_links()
            if entry["key"].startswith(prefix)
        ]
