"""Lazy namespace loading, priority preloading and the discovery listing."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from toolspace.config.schema import CatalogConfig

from .cache import CatalogCache
from .constants import PREDICTIVE_LOAD_COUNT
from .discovery import build_descriptors, paginate, parse_cursor, sort_descriptors
from .models import DiscoveryDescriptor, DiscoveryPage, NamespaceInfo, Operation
from .resolver import NamespaceResolver
from .upstream import UpstreamCatalogClient

logger = logging.getLogger(__name__)


@dataclass
class LoaderMetrics:
    """Running counters for namespace loads and listings."""

    tools_loaded: int = 0
    namespaces_loaded: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    listing_requests: int = 0
    total_load_time_ms: float = 0.0

    @property
    def average_load_time_ms(self) -> float:
        if not self.namespaces_loaded:
            return 0.0
        return self.total_load_time_ms / self.namespaces_loaded


@dataclass
class _TimedValue:
    value: Any
    fetched_at: float


class IntelligentLoader:
    """Populate the catalog cache from the upstream on demand.

    Loads are single-flight per namespace: concurrent callers asking for the
    same unloaded namespace share one upstream fetch and receive the same
    operations (or the same error).
    """

    def __init__(
        self,
        upstream: UpstreamCatalogClient,
        resolver: NamespaceResolver,
        cache: CatalogCache,
        config: CatalogConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.upstream = upstream
        self.resolver = resolver
        self.cache = cache
        self.config = config or CatalogConfig()
        self._clock = clock

        self._loaded: set[str] = set()
        self._in_flight: dict[str, asyncio.Task] = {}
        self._init_task: asyncio.Task | None = None
        self._generation = 0
        self.metrics = LoaderMetrics()

        self._namespace_list: _TimedValue | None = None
        self._apps: _TimedValue | None = None
        self._routing: dict[str, NamespaceInfo] = {}

    # ------------------------------------------------------------------
    # Initialization and preloading
    # ------------------------------------------------------------------
    @property
    def initialized(self) -> bool:
        return self._init_task is not None and self._init_task.done()

    async def initialize(self, wait: bool = False) -> None:
        """Start preloading priority namespaces. Runs at most once until :meth:`clear_caches`."""
        if self._init_task is None:
            logger.info("Initializing tool loader; preloading %s", ", ".join(self.config.preload_namespaces) or "nothing")
            self._init_task = asyncio.create_task(self._preload_priority_namespaces(), name="catalog-preload")
        if wait:
            await self.wait_until_initialized()

    async def wait_until_initialized(self) -> None:
        if self._init_task is not None:
            await asyncio.shield(self._init_task)

    async def _preload_priority_namespaces(self) -> None:
        names = list(self.config.preload_namespaces)
        if not names:
            return
        start = self._clock()
        if self.config.parallel_preload:
            await asyncio.gather(*(self._preload_one(name) for name in names))
        else:
            for name in names:
                await self._preload_one(name)
        logger.info("Priority namespaces pre-loaded in %.0fms", (self._clock() - start) * 1000)

    async def _preload_one(self, namespace_id: str) -> None:
        try:
            await self.load_namespace(namespace_id)
            logger.debug("Pre-loaded namespace '%s'", namespace_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to pre-load namespace '%s': %s", namespace_id, exc)

    # ------------------------------------------------------------------
    # Namespace loading
    # ------------------------------------------------------------------
    @property
    def loaded_namespaces(self) -> set[str]:
        """Namespaces loaded by this loader and still present in the cache."""
        self._loaded &= set(self.cache.namespaces())
        return set(self._loaded)

    def is_loading(self, namespace_id: str) -> bool:
        return namespace_id in self._in_flight

    async def load_namespace(self, namespace_id: str, credential: str | None = None) -> tuple[Operation, ...]:
        cached = self.cache.lookup_namespace(namespace_id)
        if cached is not None:
            self.metrics.cache_hits += 1
            return cached
        self._loaded.discard(namespace_id)

        task = self._in_flight.get(namespace_id)
        if task is None:
            task = asyncio.create_task(self._do_load(namespace_id, credential), name=f"catalog-load-{namespace_id}")
            task.add_done_callback(_consume_exception)
            self._in_flight[namespace_id] = task
        else:
            logger.debug("Joining in-flight load of namespace '%s'", namespace_id)
        # Caller cancellation must not abort a load other callers may share
        return await asyncio.shield(task)

    async def _do_load(self, namespace_id: str, credential: str | None) -> tuple[Operation, ...]:
        start = self._clock()
        generation = self._generation
        self.metrics.cache_misses += 1
        try:
            source_name = self.resolver.reverse_resolve(namespace_id)
            logger.debug("Loading namespace '%s' (app: '%s')", namespace_id, source_name)
            specs = await self.upstream.list_operations(source_name, credential)
            now = time.time()
            operations = [Operation.from_spec(spec, namespace_id, source_name, now) for spec in specs]
            if generation != self._generation:
                # Caches were reset while this load was running
                logger.debug("Discarding stale load of namespace '%s'", namespace_id)
                return tuple(operations)
            registered = self.cache.put(namespace_id, operations)
            self._loaded.add(namespace_id)

            elapsed_ms = (self._clock() - start) * 1000
            self.metrics.namespaces_loaded += 1
            self.metrics.tools_loaded += len(registered)
            self.metrics.total_load_time_ms += elapsed_ms
            logger.info("Loaded namespace '%s': %s tools in %.0fms", namespace_id, len(registered), elapsed_ms)
            return registered
        except Exception as exc:
            logger.error("Failed to load namespace '%s': %s", namespace_id, exc)
            raise
        finally:
            if self._in_flight.get(namespace_id) is asyncio.current_task():
                del self._in_flight[namespace_id]

    async def optimize_based_on_usage(self) -> list[str]:
        """Reload the most used namespaces that are no longer cached."""
        if not self.config.predictive_loading:
            return []
        targets = [ns for ns in self.cache.top_used(PREDICTIVE_LOAD_COUNT) if not self.cache.is_loaded(ns)]
        if targets:
            logger.info("Predictively loading top used namespaces: %s", ", ".join(targets))
        for namespace_id in targets:
            try:
                await self.load_namespace(namespace_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to predictively load '%s': %s", namespace_id, exc)
        return targets

    # ------------------------------------------------------------------
    # Namespace catalog
    # ------------------------------------------------------------------
    def _fresh(self, cached: _TimedValue | None, ttl: float) -> bool:
        return cached is not None and self._clock() - cached.fetched_at <= ttl

    async def fetch_namespaces(self, credential: str | None = None, force_refresh: bool = False) -> list[NamespaceInfo]:
        """Return the upstream namespace list, reusing it while within ``namespace_list_ttl``."""
        if not force_refresh and self._fresh(self._namespace_list, self.config.namespace_list_ttl):
            return list(self._namespace_list.value)

        namespaces = await self.upstream.list_namespaces(credential)
        self._namespace_list = _TimedValue(list(namespaces), self._clock())
        self._routing = {info.name: info for info in namespaces}
        self.resolver.update_snapshot(info.name for info in namespaces)
        logger.debug("Loaded %s namespaces with connection metadata", len(namespaces))
        return list(namespaces)

    async def fetch_apps(self, credential: str | None = None) -> list[str]:
        """Return the legacy app listing, reusing it while within ``apps_ttl``."""
        if self._fresh(self._apps, self.config.apps_ttl):
            return list(self._apps.value)

        apps = await self.upstream.list_apps(credential)
        self._apps = _TimedValue(list(apps), self._clock())
        if self._namespace_list is None:
            self.resolver.update_snapshot(apps)
        return list(apps)

    async def list_sources(self, credential: str | None = None) -> list[NamespaceInfo]:
        """Return known namespaces in upstream order, falling back to the legacy app listing."""
        try:
            return await self.fetch_namespaces(credential)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Namespace listing failed, using legacy app listing: %s", exc)
        return [NamespaceInfo(name=app) for app in await self.fetch_apps(credential)]

    def routing_for(self, source_name: str) -> NamespaceInfo | None:
        return self._routing.get(source_name)

    # ------------------------------------------------------------------
    # Discovery listing
    # ------------------------------------------------------------------
    async def get_discovery_listing(
        self,
        cursor: str | None = None,
        page_size: int | None = None,
        credential: str | None = None,
    ) -> DiscoveryPage:
        parse_cursor(cursor)
        self.metrics.listing_requests += 1
        descriptors = sort_descriptors(await self.get_discovery_descriptors(credential))
        page = paginate(descriptors, cursor, self.config.page_size if page_size is None else page_size)
        logger.debug(
            "Returning %s discovery tools (cursor: %s, next: %s)",
            len(page.descriptors),
            cursor or "start",
            page.next_cursor or "end",
        )
        return page

    async def get_discovery_descriptors(self, credential: str | None = None) -> list[DiscoveryDescriptor]:
        """Return unsorted descriptors, degrading through the fallback chain rather than returning nothing."""
        try:
            namespaces = await self.fetch_namespaces(credential)
            if namespaces:
                return build_descriptors(self.resolver, namespaces)
            logger.warning("Upstream returned no namespaces; trying legacy app discovery")
        except Exception as exc:  # noqa: BLE001
            logger.error("Error getting discovery tools: %s", exc)

        try:
            apps = await self.fetch_apps(credential)
            if apps:
                logger.info("Using legacy app discovery for %s apps", len(apps))
                return build_descriptors(self.resolver, [NamespaceInfo(name=app) for app in apps], humanize=False)
            logger.warning("Legacy app discovery returned no apps")
        except Exception as exc:  # noqa: BLE001
            logger.error("Fallback discovery also failed: %s", exc)

        logger.warning("Using built-in discovery tools for %s", ", ".join(self.config.fallback_namespaces))
        return self.fallback_descriptors()

    def fallback_descriptors(self) -> list[DiscoveryDescriptor]:
        infos = [NamespaceInfo(name=name) for name in self.config.fallback_namespaces]
        return build_descriptors(self.resolver, infos, humanize=False)

    # ------------------------------------------------------------------
    # Metrics and reset
    # ------------------------------------------------------------------
    def get_metrics(self) -> dict[str, Any]:
        metrics = asdict(self.metrics)
        metrics["average_load_time_ms"] = self.metrics.average_load_time_ms
        metrics["loaded_namespaces"] = sorted(self.loaded_namespaces)
        metrics["registry_stats"] = self.cache.stats()
        return metrics

    def clear_caches(self) -> None:
        """Reset loader state for a forced refresh.

        In-flight loads finish but are no longer joined, and their results are
        neither cached nor counted.
        """
        self._generation += 1
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._init_task = None
        self._loaded.clear()
        self._in_flight.clear()
        self._namespace_list = None
        self._apps = None
        self._routing.clear()
        self.metrics = LoaderMetrics()

    async def aclose(self) -> None:
        """Cancel preloading and every in-flight load, then reset state."""
        tasks = list(self._in_flight.values())
        if self._init_task is not None:
            tasks.append(self._init_task)
        self.clear_caches()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug("Stopped %s loader tasks", len(tasks))


def _consume_exception(task: asyncio.Task) -> None:
    # Waiters may all have been cancelled; mark the error as retrieved
    if not task.cancelled():
        task.exception()
