"""In-process cache of loaded HED schemas.

Provides:
    * :func:`normalize_version` turning free-form version specifiers into
      stable cache keys.
    * :class:`HedSchemaCache`, an unbounded dictionary cache keyed by the
      normalized specifier, with single-flight loading.
    * :func:`get_schema_cache`, the lazily created process-wide instance.

Loading a schema is slow (``hedtools`` reads XML from disk or downloads it)
so a loaded schema is kept for the life of the process. Entries never expire;
they are removed only by :meth:`HedSchemaCache.remove` or
:meth:`HedSchemaCache.clear`.

Quick example::

    from hed_mcp_server.cache import HedSchemaCache
    cache = HedSchemaCache()
    schemas = await cache.get_or_create("8.4.0, sc:score_2.0.0")
    assert cache.has("8.4.0,sc:score_2.0.0")
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from . import hed_library

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from .monitoring import PerformanceMonitor  # noqa: F401

logger = logging.getLogger(__name__)

SchemaLoader = Callable[[str], Any]


def normalize_version(hed_version: Any) -> Any:
    """Normalize a schema version specifier into a cache key.

    Parts are split on commas, trimmed, empty parts dropped and the rest
    rejoined with ``,`` in their original order.

    Args:
        hed_version: Raw specifier, e.g. ``" 8.4.0 , sc:score_2.0.0,"``.

    Returns:
        The normalized key (``"8.4.0,sc:score_2.0.0"``). Non-string or empty
        input is returned unchanged.

    Example:
        >>> normalize_version("8.3.0,  lang_1.1.0")
        '8.3.0,lang_1.1.0'
    """
    if not isinstance(hed_version, str) or not hed_version:
        return hed_version
    return ",".join(part.strip() for part in hed_version.split(",") if part.strip())


@dataclass
class CacheEntry:
    """A loaded schema and when it was stored."""

    schemas: Any
    raw_version: str
    timestamp: float = field(default_factory=time.time)


class HedSchemaCache:
    """Cache of loaded HED schemas keyed by normalized version.

    Notes:
        * Concurrent first requests for the same key share one in-flight load;
          a failed load is forgotten so the next request retries.
        * The loader runs in a worker thread unless it is a coroutine function.
    """

    def __init__(
        self, loader: Optional[SchemaLoader] = None, enable_monitoring: bool = True
    ):
        """Initialize an empty cache.

        Args:
            loader: Callable mapping the raw version string to a schema handle.
                Defaults to :func:`hed_library.load_schemas`.
            enable_monitoring: Report hits and misses to the process monitor.
        """
        self._loader = loader
        self._cache: Dict[str, CacheEntry] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self.enable_monitoring = enable_monitoring

        self._monitor = None
        if enable_monitoring:
            from .monitoring import get_monitor

            self._monitor = get_monitor()

    async def _load(self, raw_version: str) -> Any:
        loader = self._loader or hed_library.load_schemas
        if inspect.iscoroutinefunction(loader):
            return await loader(raw_version)
        return await asyncio.to_thread(loader, raw_version)

    async def _load_and_store(self, key: str, hed_version: str) -> Any:
        try:
            logger.info(f"Loading HED schema {hed_version!r}")
            schemas = await self._load(hed_version)
        except Exception as e:
            logger.error(f"Failed to load HED schema {hed_version!r}: {e}")
            raise
        else:
            self._cache[key] = CacheEntry(schemas=schemas, raw_version=hed_version)
            self._update_size()
            return schemas
        finally:
            self._pending.pop(key, None)

    @staticmethod
    def _retrieve_exception(task: asyncio.Task) -> None:
        # A load whose callers were all cancelled would otherwise log
        # "exception was never retrieved".
        if not task.cancelled():
            task.exception()

    async def get_or_create(self, hed_version: str) -> Any:
        """Return the schema for ``hed_version``, loading it on first use.

        The loader receives the original string; the result is stored under
        the normalized key. The load runs in its own task, so cancelling one
        caller leaves the load and the other callers waiting on it untouched.

        Raises:
            Exception: Whatever the loader raised. No entry is stored.
        """
        start_time = time.time()
        key = normalize_version(hed_version)

        entry = self._cache.get(key)
        if entry is not None:
            logger.debug(f"Schema cache hit for {key!r}")
            self._record(hit=True, start_time=start_time)
            return entry.schemas

        task = self._pending.get(key)
        if task is not None:
            logger.debug(f"Waiting for in-flight load of {key!r}")
        else:
            self._record(hit=False, start_time=start_time)
            task = asyncio.ensure_future(self._load_and_store(key, hed_version))
            task.add_done_callback(self._retrieve_exception)
            self._pending[key] = task
        return await asyncio.shield(task)

    def has(self, hed_version: str) -> bool:
        """Return True if a schema for ``hed_version`` is cached."""
        return normalize_version(hed_version) in self._cache

    def remove(self, hed_version: str) -> bool:
        """Evict one version. Returns True if an entry was removed."""
        removed = self._cache.pop(normalize_version(hed_version), None) is not None
        if removed:
            if self._monitor:
                self._monitor.record_cache_eviction()
            self._update_size()
        return removed

    def clear(self) -> None:
        """Evict every cached schema."""
        if self._monitor:
            for _ in range(len(self._cache)):
                self._monitor.record_cache_eviction()
        self._cache.clear()
        self._update_size()

    def get_cache_stats(self) -> Dict[str, Any]:
        """Return the cached keys (insertion order) and their count."""
        return {"keys": list(self._cache), "size": len(self._cache)}

    def _record(self, hit: bool, start_time: float) -> None:
        if not (self.enable_monitoring and self._monitor):
            return
        response_time = time.time() - start_time
        if hit:
            self._monitor.record_cache_hit(response_time)
        else:
            self._monitor.record_cache_miss(response_time)

    def _update_size(self) -> None:
        if self.enable_monitoring and self._monitor:
            self._monitor.update_cache_size(len(self._cache))


# Global cache instance
_schema_cache: Optional[HedSchemaCache] = None


def get_schema_cache() -> HedSchemaCache:
    """Return (and lazily create) the process-wide schema cache."""
    global _schema_cache
    if _schema_cache is None:
        _schema_cache = HedSchemaCache()
    return _schema_cache
