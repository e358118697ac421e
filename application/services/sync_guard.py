"""Per-collection guard that keeps concurrent syncs of one collection apart."""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator

from domain.entities import SyncState
from domain.errors import SyncInProgressError

logger = logging.getLogger(__name__)

DEFAULT_SYNC_TTL_SECONDS = 30 * 60


class CollectionSyncGuard:
    """Lease table keyed by collection id.

    A second ``begin`` for a collection that is still syncing is rejected,
    not queued. Leases older than ``ttl_seconds`` are considered abandoned
    by a crashed worker and may be taken over.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SYNC_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._states: dict[str, SyncState] = {}

    def begin(self, collection_id: str) -> SyncState:
        now = self._clock()
        with self._lock:
            current = self._states.get(collection_id)
            if current is not None and current.status == "syncing":
                if now - current.started_at < self._ttl:
                    raise SyncInProgressError(collection_id)
                logger.warning("Taking over stale sync lease for collection %s", collection_id)
            state = SyncState(collection_id=collection_id, status="syncing", started_at=now)
            self._states[collection_id] = state
            return state

    def finish(
        self,
        collection_id: str,
        error: str | None = None,
        lease: SyncState | None = None,
    ) -> SyncState | None:
        with self._lock:
            state = self._states.get(collection_id)
            if state is None:
                return None
            if lease is not None and state is not lease:
                # The lease expired and was taken over; the new holder reports.
                return None
            state.status = "error" if error else "done"
            state.error = error
            state.finished_at = self._clock()
            return state

    def status(self, collection_id: str) -> SyncState | None:
        with self._lock:
            return self._states.get(collection_id)

    @contextmanager
    def hold(self, collection_id: str) -> Iterator[SyncState]:
        state = self.begin(collection_id)
        try:
            yield state
        except Exception as exc:
            self.finish(collection_id, error=str(exc) or exc.__class__.__name__, lease=state)
            raise
        else:
            self.finish(collection_id, lease=state)


__all__ = ["CollectionSyncGuard", "DEFAULT_SYNC_TTL_SECONDS"]
