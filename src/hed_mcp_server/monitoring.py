"""Performance monitoring for the schema cache, REST endpoints and MCP tools.

Components record lightweight events here instead of aggregating metrics
themselves; the REST layer exposes the consolidated view under ``/metrics``.
Everything is in-process, no external backend is required.

Collected domains:
        * Schema cache performance (hit/miss ratio, evictions, size)
        * REST endpoint latency & error rates
        * MCP tool call latency & failure rates
        * Recent errors (fixed-size deque for debugging / introspection)

Thread safety is provided by one shared re-entrant lock, so the monitor can be
updated from request handlers and worker threads alike.

Example (recording a tool call)::

        from hed_mcp_server.monitoring import get_monitor
        monitor = get_monitor()
        monitor.record_tool_call("validateHedString", response_time=0.12, failed=False)
        print(monitor.get_performance_summary()["tools"]["total_calls"])  # -> 1

Example (cache instrumentation)::

        monitor.record_cache_hit(response_time=0.001)
        monitor.record_cache_miss(response_time=1.4)
        print(monitor.get_cache_analytics()["performance"]["hit_rate_percent"])  # 50.0
"""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class CacheMetrics:
    """Aggregate schema cache metrics.

    Attributes:
        hits: Lookups answered from the cache.
        misses: Lookups that triggered a schema load.
        evictions: Entries removed explicitly.
        total_requests: hits + misses.
        hit_rate: Hit ratio (0..1) updated per request.
        average_response_time: Mean lookup time in seconds (loads included).
        cache_size: Current number of cached schemas.
    """

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    total_requests: int = 0
    hit_rate: float = 0.0
    average_response_time: float = 0.0
    cache_size: int = 0


@dataclass
class EndpointMetrics:
    """Aggregated metrics for one REST route or MCP tool.

    Attributes:
        total_requests: Count of invocations.
        total_response_time: Cumulative latency (seconds).
        average_response_time: Mean latency (seconds).
        error_count: Failed invocations (HTTP >= 400, or a tool that failed).
        error_rate: error_count / total_requests (0..1).
        last_accessed: Datetime of most recent invocation.
        response_times: Rolling window of recent latencies.
    """

    total_requests: int = 0
    total_response_time: float = 0.0
    average_response_time: float = 0.0
    error_count: int = 0
    error_rate: float = 0.0
    last_accessed: Optional[datetime] = None
    response_times: deque = field(default_factory=lambda: deque(maxlen=100))

    def record(self, response_time: float, failed: bool, detailed: bool) -> None:
        self.total_requests += 1
        self.total_response_time += response_time
        self.average_response_time = self.total_response_time / self.total_requests
        self.last_accessed = datetime.now()
        if detailed:
            self.response_times.append(response_time)
        if failed:
            self.error_count += 1
        self.error_rate = self.error_count / self.total_requests


def _ms(seconds: float) -> float:
    return round(seconds * 1000, 2)


class PerformanceMonitor:
    """Central coordinator for recording and querying metrics.

    Intended to be shared as a singleton within a process (see
    :func:`get_monitor`).
    """

    def __init__(self, enable_detailed_tracking: bool = True):
        """Initialize performance monitor.

        Args:
            enable_detailed_tracking: If False, skips the per-request latency
                deque to minimize overhead.
        """
        self.enable_detailed_tracking = enable_detailed_tracking
        self.start_time = datetime.now()
        self._lock = threading.RLock()

        self.cache_metrics = CacheMetrics()
        self.endpoint_metrics: Dict[str, EndpointMetrics] = defaultdict(EndpointMetrics)
        self.tool_metrics: Dict[str, EndpointMetrics] = defaultdict(EndpointMetrics)
        self.recent_errors: deque = deque(maxlen=100)

    # ---------------- Cache -----------------
    def record_cache_hit(self, response_time: float = 0.0) -> None:
        """Record a cache hit."""
        with self._lock:
            self.cache_metrics.hits += 1
            self.cache_metrics.total_requests += 1
            self._update_cache_metrics(response_time)

    def record_cache_miss(self, response_time: float = 0.0) -> None:
        """Record a cache miss."""
        with self._lock:
            self.cache_metrics.misses += 1
            self.cache_metrics.total_requests += 1
            self._update_cache_metrics(response_time)

    def record_cache_eviction(self) -> None:
        with self._lock:
            self.cache_metrics.evictions += 1

    def update_cache_size(self, cache_size: int) -> None:
        with self._lock:
            self.cache_metrics.cache_size = cache_size

    def _update_cache_metrics(self, response_time: float) -> None:
        total = self.cache_metrics.total_requests
        self.cache_metrics.hit_rate = self.cache_metrics.hits / total
        if response_time > 0:
            current_avg = self.cache_metrics.average_response_time
            self.cache_metrics.average_response_time = (
                current_avg * (total - 1) + response_time
            ) / total

    # ---------------- Requests -----------------
    def record_endpoint_request(
        self, endpoint: str, response_time: float, status_code: int = 200
    ) -> None:
        """Record a REST endpoint invocation.

        Args:
            endpoint: Request path.
            response_time: Handling time in seconds.
            status_code: HTTP status (>=400 counts as error).
        """
        failed = status_code >= 400
        with self._lock:
            self.endpoint_metrics[endpoint].record(
                response_time, failed, self.enable_detailed_tracking
            )
            if failed:
                self._remember_error("endpoint", endpoint, status_code, response_time)

    def record_tool_call(
        self, tool_name: str, response_time: float, failed: bool = False
    ) -> None:
        """Record an MCP tool invocation.

        Args:
            tool_name: Name of the tool called.
            response_time: Handling time in seconds.
            failed: True when the tool could not produce a result.
        """
        with self._lock:
            self.tool_metrics[tool_name].record(
                response_time, failed, self.enable_detailed_tracking
            )
            if failed:
                self._remember_error("tool", tool_name, None, response_time)

    def _remember_error(
        self, kind: str, name: str, status_code: Optional[int], response_time: float
    ) -> None:
        self.recent_errors.append(
            {
                "kind": kind,
                "name": name,
                "status_code": status_code,
                "timestamp": datetime.now().isoformat(),
                "response_time": response_time,
            }
        )

    # ---------------- Reporting -----------------
    @staticmethod
    def _summarize(metrics: Dict[str, EndpointMetrics], label: str) -> List[Dict[str, Any]]:
        ranked = sorted(metrics.items(), key=lambda x: x[1].total_requests, reverse=True)
        return [
            {
                label: name,
                "requests": m.total_requests,
                "avg_response_time_ms": _ms(m.average_response_time),
                "error_rate": round(m.error_rate * 100, 2),
            }
            for name, m in ranked[:10]
        ]

    def get_performance_summary(self) -> Dict[str, Any]:
        """Return a JSON-ready snapshot of cache, API and tool metrics."""
        with self._lock:
            uptime = (datetime.now() - self.start_time).total_seconds()
            return {
                "timestamp": datetime.now().isoformat(),
                "uptime_seconds": round(uptime, 2),
                "cache": {
                    "hit_rate": round(self.cache_metrics.hit_rate * 100, 2),
                    "total_requests": self.cache_metrics.total_requests,
                    "hits": self.cache_metrics.hits,
                    "misses": self.cache_metrics.misses,
                    "evictions": self.cache_metrics.evictions,
                    "average_response_time_ms": _ms(
                        self.cache_metrics.average_response_time
                    ),
                    "cache_size": self.cache_metrics.cache_size,
                },
                "api": {
                    "total_requests": sum(
                        m.total_requests for m in self.endpoint_metrics.values()
                    ),
                    "top_endpoints": self._summarize(self.endpoint_metrics, "endpoint"),
                },
                "tools": {
                    "total_calls": sum(m.total_requests for m in self.tool_metrics.values()),
                    "by_tool": self._summarize(self.tool_metrics, "tool"),
                },
                "errors": {
                    "total_recent_errors": len(self.recent_errors),
                    "recent": list(self.recent_errors)[-20:],
                },
            }

    def get_cache_analytics(self) -> Dict[str, Any]:
        """Return schema cache analytics with a coarse efficiency rating."""
        with self._lock:
            hit_rate = self.cache_metrics.hit_rate
            if hit_rate > 0.9:
                efficiency = "excellent"
            elif hit_rate > 0.8:
                efficiency = "good"
            elif hit_rate > 0.6:
                efficiency = "fair"
            else:
                efficiency = "poor"
            return {
                "performance": {
                    "hit_rate_percent": round(hit_rate * 100, 2),
                    "miss_rate_percent": round((1 - hit_rate) * 100, 2)
                    if self.cache_metrics.total_requests
                    else 0.0,
                    "average_response_time_ms": _ms(
                        self.cache_metrics.average_response_time
                    ),
                    "cache_efficiency": efficiency,
                },
                "usage": {
                    "total_requests": self.cache_metrics.total_requests,
                    "cache_hits": self.cache_metrics.hits,
                    "cache_misses": self.cache_metrics.misses,
                    "evictions": self.cache_metrics.evictions,
                    "cache_size_entries": self.cache_metrics.cache_size,
                },
            }

    def reset_metrics(self) -> None:
        """Reset all counters (primarily for tests or manual re-baselining)."""
        with self._lock:
            self.cache_metrics = CacheMetrics()
            self.endpoint_metrics.clear()
            self.tool_metrics.clear()
            self.recent_errors.clear()
            self.start_time = datetime.now()


# Global performance monitor instance
_monitor: Optional[PerformanceMonitor] = None


def get_monitor() -> PerformanceMonitor:
    """Return (and lazily initialize) the process-wide monitor."""
    global _monitor
    if _monitor is None:
        _monitor = PerformanceMonitor()
    return _monitor


def initialize_monitor(enable_detailed_tracking: bool = True) -> PerformanceMonitor:
    """Force re-initialization of the global monitor."""
    global _monitor
    _monitor = PerformanceMonitor(enable_detailed_tracking)
    return _monitor
