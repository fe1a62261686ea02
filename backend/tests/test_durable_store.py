"""
SQLite durable tier tests
持久化缓存层测试
"""

import pytest

from cache.durable_store import SQLiteCacheBackend
from cache.models import now_ms
from core.errors import CacheBackendError

HOUR_MS = 60 * 60 * 1000


class TestProfileTier:

    @pytest.mark.asyncio
    async def test_upsert_keeps_single_row(self, cache_backend):
        """测试：同一 key 写两次只保留最新值"""
        tier = cache_backend.profiles
        await tier.set("jack", {"name": "v1"})
        await tier.set("jack", {"name": "v2"})

        record = await tier.get("jack")

        assert record.value == {"name": "v2"}
        assert await tier.count() == 1

    @pytest.mark.asyncio
    async def test_keys_are_case_insensitive(self, cache_backend):
        tier = cache_backend.profiles
        await tier.set("Jack", {"name": "Jack"})

        record = await tier.get("JACK")

        assert record is not None
        assert record.key == "jack"

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, cache_backend):
        assert await cache_backend.profiles.get("nobody") is None

    @pytest.mark.asyncio
    async def test_stale_records_are_still_returned(self, cache_backend):
        """测试：get 不做新鲜度过滤，由调用方判断"""
        tier = cache_backend.profiles
        old = now_ms() - 30 * 24 * HOUR_MS
        await tier.set("jack", {"name": "old"}, cached_at=old)

        record = await tier.get("jack")

        assert record.cached_at == old
        assert not record.is_fresh(7 * 24 * 3600)


class TestScreenshotTier:

    @pytest.mark.asyncio
    async def test_bytes_round_trip(self, cache_backend):
        tier = cache_backend.screenshots
        await tier.set("jack_393x852_3_dark", b"\x89PNG-bytes")

        record = await tier.get("jack_393x852_3_dark")

        assert record.value == b"\x89PNG-bytes"
        assert record.is_fresh(3600)

    @pytest.mark.asyncio
    async def test_non_bytes_value_rejected(self, cache_backend):
        with pytest.raises(TypeError):
            await cache_backend.screenshots.set("key", "not-bytes")


class TestPruning:

    @pytest.mark.asyncio
    async def test_prune_removes_only_expired_rows(self, cache_backend):
        """测试：按 TTL 清理过期记录"""
        tier = cache_backend.screenshots
        await tier.set("old", b"a", cached_at=now_ms() - 2 * HOUR_MS)
        await tier.set("new", b"b")

        removed = await tier.prune_older_than(3600)

        assert removed == 1
        assert await tier.get("old") is None
        assert await tier.get("new") is not None

    @pytest.mark.asyncio
    async def test_tiers_prune_independently(self, cache_backend):
        old = now_ms() - 2 * HOUR_MS
        await cache_backend.profiles.set("jack", {"name": "Jack"}, cached_at=old)
        await cache_backend.screenshots.set("card", b"x", cached_at=old)

        await cache_backend.screenshots.prune_older_than(3600)

        assert await cache_backend.profiles.count() == 1
        assert await cache_backend.screenshots.count() == 0

    @pytest.mark.asyncio
    async def test_clear_and_delete(self, cache_backend):
        tier = cache_backend.profiles
        await tier.set("a", {})
        await tier.set("b", {})

        assert await tier.delete("a") is True
        assert await tier.delete("a") is False
        assert await tier.clear() == 1
        assert await tier.count() == 0


class TestBackendLifecycle:

    @pytest.mark.asyncio
    async def test_closed_backend_raises(self, tmp_path):
        backend = SQLiteCacheBackend(str(tmp_path / "closed.db"))
        await backend.initialize()
        await backend.close()

        with pytest.raises(CacheBackendError):
            await backend.profiles.get("jack")
        with pytest.raises(CacheBackendError):
            await backend.screenshots.set("key", b"x")

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, tmp_path):
        """测试：重启后数据仍在"""
        path = str(tmp_path / "nested" / "cards.db")
        backend = SQLiteCacheBackend(path)
        await backend.initialize()
        await backend.profiles.set("jack", {"name": "Jack"})
        await backend.close()

        reopened = SQLiteCacheBackend(path)
        await reopened.initialize()
        try:
            record = await reopened.profiles.get("jack")
            assert record.value == {"name": "Jack"}
            assert (await reopened.stats())["profiles"] == 1
        finally:
            await reopened.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, tmp_path):
        backend = SQLiteCacheBackend(str(tmp_path / "c.db"))
        await backend.initialize()
        await backend.close()
        await backend.close()
        assert not backend.is_open
