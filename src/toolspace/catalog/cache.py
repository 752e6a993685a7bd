"""In-memory namespace/operation cache with usage tracking and eviction."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from .constants import DEFAULT_MAX_CACHE_AGE, DEFAULT_MAX_NAMESPACES, DEFAULT_PINNED_TOP_K, NAMESPACE_SEPARATOR
from .models import Operation

logger = logging.getLogger(__name__)


@dataclass
class NamespaceEntry:
    """Backing state of one cached namespace. Replaced as a whole on ``put``."""

    operations: dict[str, Operation]
    loaded_at: float
    last_access: float = field(default=0.0)


class CatalogCache:
    """Store namespace operation sets and evict stale or excess namespaces.

    Every public method holds a single lock, so a reader observes a namespace
    either fully present or fully absent even while a sweep is running.
    Usage counts are lifetime counters; they survive eviction and are reset
    only by :meth:`clear`.
    """

    def __init__(
        self,
        max_age: float = DEFAULT_MAX_CACHE_AGE,
        max_namespaces: int = DEFAULT_MAX_NAMESPACES,
        pinned_top_k: int = DEFAULT_PINNED_TOP_K,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_age = max_age
        self.max_namespaces = max_namespaces
        self.pinned_top_k = pinned_top_k
        self._clock = clock
        self._lock = threading.Lock()
        self._namespaces: dict[str, NamespaceEntry] = {}
        self._usage: dict[str, int] = {}
        self._sweeper: asyncio.Task | None = None

    def put(self, namespace_id: str, operations: Iterable[Operation]) -> tuple[Operation, ...]:
        """Replace the operations of ``namespace_id`` and return them."""
        now = self._clock()
        entry = NamespaceEntry(
            operations={op.name: op for op in operations},
            loaded_at=now,
            last_access=now,
        )
        with self._lock:
            self._namespaces[namespace_id] = entry
        logger.debug("Cached %s operations for namespace '%s'", len(entry.operations), namespace_id)
        return tuple(entry.operations.values())

    def get(self, qualified_name: str) -> Operation | None:
        namespace_id = qualified_name.split(NAMESPACE_SEPARATOR, 1)[0]
        with self._lock:
            entry = self._namespaces.get(namespace_id)
            if entry is None:
                return None
            operation = entry.operations.get(qualified_name)
            if operation is not None:
                self._touch(namespace_id, entry)
            return operation

    def list_namespace_operations(self, namespace_id: str) -> tuple[Operation, ...]:
        with self._lock:
            entry = self._namespaces.get(namespace_id)
            if entry is None:
                return ()
            self._touch(namespace_id, entry)
            return tuple(entry.operations.values())

    def lookup_namespace(self, namespace_id: str) -> tuple[Operation, ...] | None:
        """Like :meth:`list_namespace_operations` but ``None`` when the namespace is absent."""
        with self._lock:
            entry = self._namespaces.get(namespace_id)
            if entry is None:
                return None
            self._touch(namespace_id, entry)
            return tuple(entry.operations.values())

    def is_loaded(self, namespace_id: str) -> bool:
        with self._lock:
            return namespace_id in self._namespaces

    def namespaces(self) -> list[str]:
        with self._lock:
            return list(self._namespaces)

    def usage_count(self, namespace_id: str) -> int:
        with self._lock:
            return self._usage.get(namespace_id, 0)

    def top_used(self, limit: int = DEFAULT_PINNED_TOP_K, present_only: bool = False) -> list[str]:
        """Return up to ``limit`` namespace ids ordered by usage count."""
        with self._lock:
            return self._top_used(limit, present_only)

    def sweep(self, now: float | None = None) -> list[str]:
        """Evict stale namespaces, then enforce the namespace ceiling.

        Returns the evicted namespace ids in eviction order.
        """
        with self._lock:
            now = self._clock() if now is None else now
            pinned = set(self._top_used(self.pinned_top_k, present_only=True))
            evicted: list[str] = []

            for namespace_id, entry in list(self._namespaces.items()):
                if namespace_id in pinned:
                    continue
                if now - entry.last_access > self.max_age:
                    self._evict(namespace_id)
                    evicted.append(namespace_id)

            excess = len(self._namespaces) - self.max_namespaces
            if excess > 0:
                by_access = sorted(self._namespaces.items(), key=lambda item: (item[1].last_access, item[0]))
                # Unpinned first; pinned only when they alone exceed the ceiling
                ordered = [ns for ns, _ in by_access if ns not in pinned] + [ns for ns, _ in by_access if ns in pinned]
                for namespace_id in ordered[:excess]:
                    self._evict(namespace_id)
                    evicted.append(namespace_id)

        if evicted:
            logger.info("Evicted %s namespaces from catalog cache: %s", len(evicted), ", ".join(evicted))
        return evicted

    def clear(self) -> None:
        with self._lock:
            self._namespaces.clear()
            self._usage.clear()

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total_tools": sum(len(e.operations) for e in self._namespaces.values()),
                "total_namespaces": len(self._namespaces),
                "top_used_namespaces": self._top_used(self.pinned_top_k, present_only=False),
            }

    def start_sweeper(self, interval: float) -> asyncio.Task:
        """Run :meth:`sweep` every ``interval`` seconds in a background task."""
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper
        self._sweeper = asyncio.create_task(self._sweep_forever(interval), name="catalog-cache-sweeper")
        return self._sweeper

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception:  # noqa: BLE001
                logger.exception("Catalog cache sweep failed")

    def _touch(self, namespace_id: str, entry: NamespaceEntry) -> None:
        entry.last_access = self._clock()
        self._usage[namespace_id] = self._usage.get(namespace_id, 0) + 1

    def _top_used(self, limit: int, present_only: bool) -> list[str]:
        candidates = [
            (ns, count)
            for ns, count in self._usage.items()
            if count > 0 and (not present_only or ns in self._namespaces)
        ]
        candidates.sort(key=lambda item: (-item[1], item[0]))
        return [ns for ns, _ in candidates[:limit]]

    def _evict(self, namespace_id: str) -> None:
        self._namespaces.pop(namespace_id, None)
