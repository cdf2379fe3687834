"""Tests for schema version normalization and the schema cache."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from hed_mcp_server.cache import HedSchemaCache, get_schema_cache, normalize_version


class TestNormalizeVersion:
    """Test version specifier normalization."""

    @pytest.mark.parametrize(
        "raw",
        ["8.4.0, lib_1.0.0", " 8.4.0,lib_1.0.0 ", "8.4.0,lib_1.0.0", "8.4.0,,lib_1.0.0"],
    )
    def test_equivalent_spellings_share_a_key(self, raw):
        assert normalize_version(raw) == "8.4.0,lib_1.0.0"

    @pytest.mark.parametrize(
        "raw", ["8.4.0", " 8.3.0 , sc:score_2.0.0,", ",,", "lang_1.1.0,  8.4.0"]
    )
    def test_idempotent(self, raw):
        once = normalize_version(raw)
        assert normalize_version(once) == once

    def test_order_preserved(self):
        assert normalize_version("sc:score_2.0.0, 8.4.0") == "sc:score_2.0.0,8.4.0"

    @pytest.mark.parametrize("raw", ["", None, 8, ["8.4.0"]])
    def test_empty_or_non_string_returned_unchanged(self, raw):
        assert normalize_version(raw) is raw


class TestHedSchemaCache:
    """Test load-once caching, eviction and failure handling."""

    @pytest.mark.asyncio
    async def test_equivalent_versions_load_once(self, schema_cache, schema_loader, fake_schema):
        first = await schema_cache.get_or_create("8.4.0, lib_1.0.0")
        second = await schema_cache.get_or_create(" 8.4.0,lib_1.0.0 ")

        assert first is second is fake_schema
        schema_loader.assert_called_once_with("8.4.0, lib_1.0.0")

    @pytest.mark.asyncio
    async def test_distinct_versions_load_separately(self, schema_cache, schema_loader):
        await schema_cache.get_or_create("8.3.0")
        await schema_cache.get_or_create("8.4.0")

        assert schema_loader.call_count == 2
        stats = schema_cache.get_cache_stats()
        assert stats == {"keys": ["8.3.0", "8.4.0"], "size": 2}

    @pytest.mark.asyncio
    async def test_remove_forces_reload(self, schema_cache, schema_loader):
        await schema_cache.get_or_create("8.4.0")
        assert schema_cache.has(" 8.4.0")

        assert schema_cache.remove("8.4.0 ") is True
        assert not schema_cache.has("8.4.0")
        assert schema_cache.remove("8.4.0") is False

        await schema_cache.get_or_create("8.4.0")
        assert schema_loader.call_count == 2

    @pytest.mark.asyncio
    async def test_clear(self, schema_cache):
        await schema_cache.get_or_create("8.3.0")
        await schema_cache.get_or_create("8.4.0")

        schema_cache.clear()

        assert schema_cache.get_cache_stats() == {"keys": [], "size": 0}

    @pytest.mark.asyncio
    async def test_loader_failure_propagates_without_entry(self):
        loader = Mock(side_effect=[ValueError("unknown version"), "schema"])
        cache = HedSchemaCache(loader=loader, enable_monitoring=False)

        with pytest.raises(ValueError, match="unknown version"):
            await cache.get_or_create("9.9.9")
        assert not cache.has("9.9.9")

        # Failed loads are not remembered; the next call retries.
        assert await cache.get_or_create("9.9.9") == "schema"
        assert loader.call_count == 2

    @pytest.mark.asyncio
    async def test_coroutine_loader_is_awaited(self, fake_schema):
        loader = AsyncMock(return_value=fake_schema)
        cache = HedSchemaCache(loader=loader, enable_monitoring=False)

        assert await cache.get_or_create("8.4.0") is fake_schema
        loader.assert_awaited_once_with("8.4.0")

    @pytest.mark.asyncio
    async def test_concurrent_first_loads_share_one_call(self, fake_schema):
        calls = []

        async def slow_loader(version):
            calls.append(version)
            await asyncio.sleep(0.05)
            return fake_schema

        cache = HedSchemaCache(loader=slow_loader, enable_monitoring=False)
        results = await asyncio.gather(
            cache.get_or_create("8.4.0"),
            cache.get_or_create(" 8.4.0"),
            cache.get_or_create("8.4.0,"),
        )

        assert all(result is fake_schema for result in results)
        assert calls == ["8.4.0"]

    @pytest.mark.asyncio
    async def test_concurrent_waiters_see_the_failure(self):
        async def failing_loader(version):
            await asyncio.sleep(0.05)
            raise RuntimeError("download failed")

        cache = HedSchemaCache(loader=failing_loader, enable_monitoring=False)
        results = await asyncio.gather(
            cache.get_or_create("8.4.0"),
            cache.get_or_create("8.4.0"),
            return_exceptions=True,
        )

        assert all(isinstance(r, RuntimeError) for r in results)
        assert cache.get_cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_records_hits_and_misses(self, monitor, schema_loader):
        cache = HedSchemaCache(loader=schema_loader)

        await cache.get_or_create("8.4.0")
        await cache.get_or_create("8.4.0")
        await cache.get_or_create("8.4.0")

        assert monitor.cache_metrics.misses == 1
        assert monitor.cache_metrics.hits == 2
        assert monitor.cache_metrics.cache_size == 1

    def test_global_cache_is_shared(self):
        assert get_schema_cache() is get_schema_cache()

    @pytest.mark.asyncio
    async def test_cancelling_first_caller_keeps_shared_load(self, fake_schema):
        release = asyncio.Event()
        calls = []

        async def gated_loader(version):
            calls.append(version)
            await release.wait()
            return fake_schema

        cache = HedSchemaCache(loader=gated_loader, enable_monitoring=False)
        first = asyncio.create_task(cache.get_or_create("8.4.0"))
        await asyncio.sleep(0)
        second = asyncio.create_task(cache.get_or_create("8.4.0"))
        await asyncio.sleep(0)

        first.cancel()
        await asyncio.sleep(0)
        release.set()

        assert await second is fake_schema
        with pytest.raises(asyncio.CancelledError):
            await first
        assert calls == ["8.4.0"]
        assert cache.has("8.4.0")

    @pytest.mark.asyncio
    async def test_load_completes_after_its_only_caller_is_cancelled(self, fake_schema):
        release = asyncio.Event()

        async def gated_loader(version):
            await release.wait()
            return fake_schema

        cache = HedSchemaCache(loader=gated_loader, enable_monitoring=False)
        caller = asyncio.create_task(cache.get_or_create("8.4.0"))
        await asyncio.sleep(0)
        caller.cancel()
        release.set()

        assert await cache.get_or_create("8.4.0") is fake_schema
        assert cache.has("8.4.0")

    @pytest.mark.asyncio
    async def test_clear_records_evictions(self, monitor, schema_loader):
        cache = HedSchemaCache(loader=schema_loader)
        await cache.get_or_create("8.3.0")
        await cache.get_or_create("8.4.0")

        cache.clear()

        assert monitor.cache_metrics.evictions == 2
        assert monitor.cache_metrics.cache_size == 0
