"""Spam and loop prevention.

Two independent checks run before every relay:
- Loop: a body that already carries a relay marker was written by the
  relay itself and must never be relayed again.
- Dedup: the (origin, issue, body, target) tuple is hashed into a
  signature; a signature already present in history is not relayed twice.

History is an in-memory map bounded by a ceiling. When it overflows, the
oldest slice (by processed time) is evicted in one batch.
"""

from __future__ import annotations

import hashlib
import logging
import math
import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from repo_relay import conventions
from repo_relay.models import RelayHistoryEntry, utcnow

logger = logging.getLogger(__name__)


def compute_signature(
    origin_repo: str,
    origin_issue: int | str | None,
    message: str | None,
    target_repo: str,
) -> str:
    """Deterministic short digest identifying one relay attempt."""
    content = f"{origin_repo}#{origin_issue}:{target_repo}:{message or ''}"
    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
    return digest[: conventions.SIGNATURE_LENGTH]


def is_relayed_message(body: str | None) -> bool:
    """Whether *body* contains any marker the relay writes into its output."""
    if not body:
        return False
    return any(marker in body for marker in conventions.RELAY_MARKERS)


class RelayHistoryGuard:
    """Owns the relay history map. All access is serialized by one lock.

    Two concurrent attempts with the same signature may both pass
    ``contains`` before either calls ``record``; the relay accepts that
    as a possible duplicate issue, never as corrupted state.
    """

    def __init__(
        self,
        max_size: int = conventions.DEFAULT_MAX_RELAY_HISTORY,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._clock = clock
        self._entries: dict[str, RelayHistoryEntry] = {}
        self._lock = threading.Lock()

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def contains(self, signature: str) -> bool:
        with self._lock:
            return signature in self._entries

    def record(
        self,
        signature: str,
        *,
        origin_repo: str,
        origin_issue: int,
        target_repo: str,
        target_issue: int,
        sender: str,
        created_at: datetime | None = None,
    ) -> RelayHistoryEntry:
        """Add a completed relay and evict the oldest batch if over the ceiling."""
        now = self._clock()
        entry = RelayHistoryEntry(
            origin_repo=origin_repo,
            origin_issue=origin_issue,
            target_repo=target_repo,
            target_issue=target_issue,
            created_at=created_at or now,
            sender=sender,
            signature=signature,
            processed_at=now,
        )
        with self._lock:
            # Re-recording moves the signature to the newest position
            self._entries.pop(signature, None)
            self._entries[signature] = entry
            evicted = self._evict_locked()
            total = len(self._entries)
        if evicted:
            logger.info("Evicted %d oldest relay history entries", evicted)
        logger.info("Added relay to history: %s (total: %d)", signature, total)
        return entry

    def _evict_locked(self) -> int:
        if len(self._entries) <= self._max_size:
            return 0
        fraction = conventions.HISTORY_EVICTION_FRACTION
        batch = max(1, math.floor(self._max_size * fraction))
        # sorted() is stable, so equal processed_at keeps insertion order
        oldest = sorted(self._entries.values(), key=lambda e: e.processed_at)[:batch]
        for entry in oldest:
            del self._entries[entry.signature]
        return len(oldest)

    def entries(self, limit: int = 100) -> list[RelayHistoryEntry]:
        """Newest entries first."""
        with self._lock:
            ordered = list(self._entries.values())
        ordered.reverse()
        ordered.sort(key=lambda e: e.processed_at, reverse=True)
        return ordered[:limit]

    def cleanup(
        self, max_age_days: int = conventions.DEFAULT_HISTORY_MAX_AGE_DAYS
    ) -> int:
        """Remove entries processed strictly before the age cutoff."""
        cutoff = self._clock() - timedelta(days=max_age_days)
        with self._lock:
            stale = [s for s, e in self._entries.items() if e.processed_at < cutoff]
            for signature in stale:
                del self._entries[signature]
        if stale:
            logger.info("Cleaned up %d old relay history entries", len(stale))
        return len(stale)
