"""
AppContext lifecycle tests
"""

import asyncio

import pytest

from conftest import FakeLauncher
from core.context import AppContext


class HangingLauncher(FakeLauncher):
    """Launcher whose stop() never finishes in time"""

    async def stop(self):
        await asyncio.sleep(5)
        self.stopped = True


class TestShutdown:

    @pytest.mark.asyncio
    async def test_shutdown_releases_everything(self, settings, http_client):
        """测试：关闭时停止清理任务、关闭浏览器和数据库"""
        launcher = FakeLauncher(close_error=True)
        context = AppContext(settings, launcher=launcher, http_client=http_client)
        await context.initialize()
        browser = await context.browser.acquire()
        assert context.janitor.running

        await context.shutdown()

        assert not context.janitor.running
        assert browser.closed
        assert launcher.stopped
        assert not context.cache_backend.is_open

    @pytest.mark.asyncio
    async def test_shutdown_within_deadline(self, app_context, launcher):
        await app_context.initialize()

        assert await app_context.shutdown_within(1.0) is True
        assert launcher.stopped
        assert not app_context.cache_backend.is_open

    @pytest.mark.asyncio
    async def test_hanging_step_misses_deadline(self, settings, http_client):
        launcher = HangingLauncher()
        context = AppContext(settings, launcher=launcher, http_client=http_client)
        await context.initialize()
        await context.browser.acquire()

        try:
            assert await context.shutdown_within(0.05) is False
            assert not launcher.stopped
            assert not context.janitor.running
        finally:
            await context.cache_backend.close()

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, app_context):
        await app_context.initialize(start_janitor=False)
        await app_context.initialize(start_janitor=False)

        assert app_context.cache_backend.is_open
        assert not app_context.janitor.running
        await app_context.shutdown()
