"""Tests for the in-process performance monitor."""

from hed_mcp_server.monitoring import PerformanceMonitor, get_monitor, initialize_monitor


class TestCacheMetrics:
    def test_hit_rate_and_average(self):
        monitor = PerformanceMonitor()

        monitor.record_cache_miss(response_time=0.3)
        monitor.record_cache_hit(response_time=0.1)

        metrics = monitor.cache_metrics
        assert (metrics.hits, metrics.misses, metrics.total_requests) == (1, 1, 2)
        assert metrics.hit_rate == 0.5
        assert abs(metrics.average_response_time - 0.2) < 1e-9

    def test_analytics_efficiency(self):
        monitor = PerformanceMonitor()
        monitor.record_cache_miss()
        for _ in range(9):
            monitor.record_cache_hit()
        monitor.record_cache_eviction()
        monitor.update_cache_size(3)

        analytics = monitor.get_cache_analytics()

        assert analytics["performance"]["hit_rate_percent"] == 90.0
        assert analytics["performance"]["miss_rate_percent"] == 10.0
        assert analytics["performance"]["cache_efficiency"] == "good"
        assert analytics["usage"]["evictions"] == 1
        assert analytics["usage"]["cache_size_entries"] == 3

    def test_empty_analytics(self):
        analytics = PerformanceMonitor().get_cache_analytics()
        assert analytics["performance"]["miss_rate_percent"] == 0.0
        assert analytics["performance"]["cache_efficiency"] == "poor"


class TestRequestMetrics:
    """Test endpoint and tool accounting."""

    def test_endpoint_errors_are_remembered(self):
        monitor = PerformanceMonitor()

        monitor.record_endpoint_request("GET /health", 0.01, 200)
        monitor.record_endpoint_request("GET /nope", 0.02, 404)

        assert monitor.endpoint_metrics["GET /nope"].error_rate == 1.0
        assert monitor.endpoint_metrics["GET /health"].error_count == 0
        assert [e["name"] for e in monitor.recent_errors] == ["GET /nope"]
        assert monitor.recent_errors[0]["status_code"] == 404

    def test_tool_calls(self):
        monitor = PerformanceMonitor()

        monitor.record_tool_call("validateHedString", 0.1)
        monitor.record_tool_call("validateHedString", 0.3)
        monitor.record_tool_call("getFileFromPath", 0.01, failed=True)

        summary = monitor.get_performance_summary()
        assert summary["tools"]["total_calls"] == 3
        by_tool = {t["tool"]: t for t in summary["tools"]["by_tool"]}
        assert by_tool["validateHedString"]["requests"] == 2
        assert by_tool["validateHedString"]["avg_response_time_ms"] == 200.0
        assert by_tool["getFileFromPath"]["error_rate"] == 100.0
        assert summary["errors"]["total_recent_errors"] == 1

    def test_detailed_tracking_can_be_disabled(self):
        monitor = PerformanceMonitor(enable_detailed_tracking=False)
        monitor.record_tool_call("validateHedTsv", 0.1)
        assert len(monitor.tool_metrics["validateHedTsv"].response_times) == 0

    def test_reset(self):
        monitor = PerformanceMonitor()
        monitor.record_cache_hit()
        monitor.record_endpoint_request("GET /api", 0.01, 500)
        monitor.record_tool_call("parseHedSidecar", 0.01)

        monitor.reset_metrics()

        summary = monitor.get_performance_summary()
        assert summary["cache"]["total_requests"] == 0
        assert summary["api"]["total_requests"] == 0
        assert summary["tools"]["total_calls"] == 0
        assert summary["errors"]["recent"] == []


def test_global_monitor():
    monitor = initialize_monitor()
    assert get_monitor() is monitor
