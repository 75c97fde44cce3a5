"""
Tests for the in-process response cache.
"""
import pytest
from unittest.mock import AsyncMock, patch

from app.core.cache import CacheService, cache_service, invalidate_upsell_cache


class TestCacheService:
    """Test get-or-compute memoization."""

    @pytest.mark.asyncio
    async def test_remember_computes_once(self):
        cache = CacheService()
        compute = AsyncMock(return_value={"rules": [1, 2]})

        first = await cache.remember("key", 30, compute)
        second = await cache.remember("key", 30, compute)

        assert first == second == {"rules": [1, 2]}
        compute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_returned_values_are_copies(self):
        cache = CacheService()
        value = await cache.remember("key", 30, AsyncMock(return_value={"items": []}))
        value["items"].append("mutated")

        assert cache.get("key") == {"items": []}

    def test_expired_entry_is_dropped(self):
        cache = CacheService()
        with patch("app.core.cache.time.monotonic", return_value=100.0):
            cache.set("key", "value", ttl=30)
        with patch("app.core.cache.time.monotonic", return_value=131.0):
            assert cache.get("key") is None

    def test_entry_without_ttl_never_expires(self):
        cache = CacheService()
        cache.set("key", "value")
        assert cache.get("key") == "value"

    @pytest.mark.asyncio
    async def test_compute_errors_propagate_and_are_not_cached(self):
        cache = CacheService()
        compute = AsyncMock(side_effect=RuntimeError("db down"))

        with pytest.raises(RuntimeError):
            await cache.remember("key", 30, compute)

        assert cache.get("key") is None

    def test_expired_entries_swept_on_write(self):
        cache = CacheService(capacity=10000)
        with patch("app.core.cache.time.monotonic", return_value=100.0):
            for index in range(500):
                cache.set(f"public:shop:bogus-{index}:upsell:rules", [], ttl=30)

        assert len(cache) == 500

        with patch("app.core.cache.time.monotonic", return_value=10100.0):
            cache.set("fresh", "value", ttl=30)
            assert cache.get("fresh") == "value"

        assert len(cache) == 1

    def test_capacity_evicts_least_recently_used(self):
        cache = CacheService(capacity=3)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.get("a")

        cache.set("d", 4)

        assert len(cache) == 3
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("d") == 4

    def test_overwriting_a_key_does_not_evict(self):
        cache = CacheService(capacity=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)

        assert cache.get("a") == 10
        assert cache.get("b") == 2

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            CacheService(capacity=0)

    @pytest.mark.asyncio
    async def test_delete_pattern(self):
        cache = CacheService()
        cache.set("shop:a:upsell:rules:all:all:all", 1)
        cache.set("shop:a:upsell:stats:r1", 2)
        cache.set("shop:ab:upsell:rules:all:all:all", 3)

        deleted = await cache.delete_pattern("shop:a:upsell:*")

        assert deleted == 2
        assert cache.get("shop:ab:upsell:rules:all:all:all") == 3


class TestInvalidateUpsellCache:
    """Test per-shop invalidation after rule mutations."""

    @pytest.mark.asyncio
    async def test_drops_shop_and_public_keys(self):
        cache_service.set("shop:s1:upsell:rules:all:all:all", [])
        cache_service.set("shop:s1:upsell:rule:r1", {})
        cache_service.set("public:shop:s1:upsell:rules", [])
        cache_service.set("public:upsell:rule:r1", {})
        cache_service.set("public:upsell:rule:r2", {})
        cache_service.set("shop:s2:upsell:rules:all:all:all", [])

        deleted = await invalidate_upsell_cache("s1", "r1")

        assert deleted == 4
        assert cache_service.get("public:upsell:rule:r2") == {}
        assert cache_service.get("shop:s2:upsell:rules:all:all:all") == []

    @pytest.mark.asyncio
    async def test_without_rule_id_keeps_public_rule_keys(self):
        cache_service.set("public:upsell:rule:r1", {})

        await invalidate_upsell_cache("s1")

        assert cache_service.get("public:upsell:rule:r1") == {}

    @pytest.mark.asyncio
    async def test_failures_are_not_raised(self):
        with patch.object(cache_service, "delete_pattern", AsyncMock(side_effect=RuntimeError("boom"))):
            deleted = await invalidate_upsell_cache("s1", "r1")

        assert deleted == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
