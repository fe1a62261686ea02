"""
BackgroundJanitor tests
"""

import asyncio

import pytest

from cache.janitor import BackgroundJanitor


class TestRunSweep:

    @pytest.mark.asyncio
    async def test_sync_and_async_sweeps(self):
        janitor = BackgroundJanitor()

        async def async_sweep():
            return 2

        janitor.register("sync", 60, lambda: 3)
        janitor.register("async", 60, async_sweep)

        assert await janitor.run_sweep("sync") == 3
        assert await janitor.run_sweep("async") == 2

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_other_sweeps(self):
        """测试：单个清理失败不影响其他清理"""
        janitor = BackgroundJanitor()
        calls = []

        def broken():
            calls.append("broken")
            raise RuntimeError("database is locked")

        def healthy():
            calls.append("healthy")
            return 1

        janitor.register("broken", 60, broken)
        janitor.register("healthy", 60, healthy)

        results = await janitor.run_all()

        assert results == {"broken": None, "healthy": 1}
        assert calls == ["broken", "healthy"]
        stats = janitor.stats()
        assert stats["broken"]["failures"] == 1
        assert "database is locked" in stats["broken"]["last_error"]
        assert stats["healthy"]["last_removed"] == 1

    @pytest.mark.asyncio
    async def test_failed_sweep_recovers_on_next_run(self):
        janitor = BackgroundJanitor()
        outcomes = [RuntimeError("boom"), 4]

        def flaky():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        janitor.register("flaky", 60, flaky)

        assert await janitor.run_sweep("flaky") is None
        assert await janitor.run_sweep("flaky") == 4
        assert janitor.stats()["flaky"]["last_error"] is None

    def test_duplicate_registration(self):
        janitor = BackgroundJanitor()
        janitor.register("tokens", 3600, lambda: 0)
        with pytest.raises(ValueError):
            janitor.register("tokens", 60, lambda: 0)


class TestScheduling:

    @pytest.mark.asyncio
    async def test_sweeps_run_on_their_own_schedule(self):
        janitor = BackgroundJanitor()
        fast_runs = []
        slow_runs = []

        def fast():
            fast_runs.append(1)
            raise RuntimeError("always fails")

        janitor.register("fast", 0.01, fast)
        janitor.register("slow", 60, lambda: slow_runs.append(1))

        await janitor.start()
        assert janitor.running
        await asyncio.sleep(0.1)
        await janitor.stop()

        assert len(fast_runs) >= 2
        assert slow_runs == []
        assert not janitor.running

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        janitor = BackgroundJanitor()
        await janitor.stop()
        assert not janitor.running
