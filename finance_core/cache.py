"""Stale-while-revalidate query cache.

Keys are tuples such as ``("expenses", user_id, "current-month")``.
Invalidation works on key prefixes, so invalidating ``("expenses", user_id)``
marks every expense query for that user stale. Stale entries keep serving
their last value while a refresh runs.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Hashable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

QueryKey = Tuple[Hashable, ...]
Loader = Callable[[], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry:
    value: Any
    fetched_at: datetime
    invalidated: bool = False

    def is_stale(self, now: datetime, stale_after: timedelta) -> bool:
        return self.invalidated or now - self.fetched_at >= stale_after


class QueryCache:
    """Keyed cache that serves stale data while refreshing it.

    Without an ``executor`` a stale entry is refreshed inline before the call
    returns; if that refresh fails the stale value is served and the error is
    logged. With an executor the refresh is submitted and the stale value is
    returned immediately.
    """

    def __init__(
        self,
        stale_after: timedelta = timedelta(seconds=30),
        *,
        clock: Callable[[], datetime] = _utcnow,
        executor: Optional[Executor] = None,
    ) -> None:
        self._stale_after = stale_after
        self._clock = clock
        self._executor = executor
        self._entries: Dict[QueryKey, CacheEntry] = {}
        self._refreshing: Set[QueryKey] = set()
        # Bumped by invalidate/remove; a load that saw an older generation
        # is stored already invalidated.
        self._generations: Dict[QueryKey, int] = {}
        self._loading: Dict[QueryKey, int] = {}
        self._lock = threading.RLock()

    def fetch(self, key: QueryKey, loader: Loader) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and not entry.is_stale(self._clock(), self._stale_after):
                return entry.value

        if entry is None:
            # Nothing to fall back to; load errors propagate to the caller.
            return self._load(key, loader)

        if self._executor is not None:
            self._schedule_refresh(key, loader)
            return entry.value

        try:
            return self._load(key, loader)
        except Exception:
            logger.warning("Refreshing %r failed; serving stale data", key, exc_info=True)
            return entry.value

    def peek(self, key: QueryKey) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: QueryKey, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())

    def invalidate(self, prefix: QueryKey = ()) -> int:
        """Mark every entry whose key starts with ``prefix`` stale."""
        with self._lock:
            keys = self._matching(prefix)
            for key in keys:
                self._entries[key].invalidated = True
            self._bump_generations(prefix)
        logger.debug("Invalidated %d queries under %r", len(keys), prefix)
        return len(keys)

    def remove(self, prefix: QueryKey = ()) -> int:
        with self._lock:
            keys = self._matching(prefix)
            for key in keys:
                del self._entries[key]
            self._bump_generations(prefix)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._bump_generations(())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _matching(self, prefix: QueryKey) -> List[QueryKey]:
        size = len(prefix)
        return [key for key in self._entries if key[:size] == tuple(prefix)]

    def _bump_generations(self, prefix: QueryKey) -> None:
        size = len(prefix)
        for key in set(self._entries) | set(self._loading):
            if key[:size] == tuple(prefix):
                self._generations[key] = self._generations.get(key, 0) + 1

    def _load(self, key: QueryKey, loader: Loader) -> Any:
        with self._lock:
            generation = self._generations.get(key, 0)
            self._loading[key] = self._loading.get(key, 0) + 1
        try:
            value = loader()
            with self._lock:
                # A mutation landed while loading; the value may predate it.
                changed = self._generations.get(key, 0) != generation
                self._entries[key] = CacheEntry(
                    value=value, fetched_at=self._clock(), invalidated=changed
                )
            return value
        finally:
            with self._lock:
                self._loading[key] -= 1
                if not self._loading[key]:
                    del self._loading[key]

    def _schedule_refresh(self, key: QueryKey, loader: Loader) -> None:
        with self._lock:
            if key in self._refreshing:
                return
            self._refreshing.add(key)

        def refresh() -> None:
            try:
                self._load(key, loader)
            except Exception:
                logger.warning("Background refresh of %r failed", key, exc_info=True)
            finally:
                with self._lock:
                    self._refreshing.discard(key)

        self._executor.submit(refresh)
