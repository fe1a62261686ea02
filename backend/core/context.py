"""
Application Context

Process-scoped owner of every shared resource: cache tiers, the browser
manager, rate limiters, the token store and the janitor. Request handlers
borrow these through FastAPI dependencies and never own them.

Lifecycle:
    context = AppContext(settings)
    await context.initialize()
    ...
    await context.shutdown()
"""

import asyncio
import logging
from typing import Optional

import httpx

from cache.disk_store import DiskAssetCache
from cache.durable_store import SQLiteCacheBackend
from cache.janitor import BackgroundJanitor
from profiles.service import ProfileService
from renderer.pipeline import RenderConfig, RenderPipeline
from renderer.process_manager import BrowserLauncher, BrowserProcessManager, PlaywrightLauncher
from security.rate_limiter import RateLimiter
from security.token_store import SecurityTokenStore
from .config import Settings

logger = logging.getLogger(__name__)


class AppContext:
    """
    Shared resources with explicit init/teardown
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        launcher: Optional[BrowserLauncher] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or Settings.from_env()
        s = self.settings

        # Cache tiers
        self.cache_backend = SQLiteCacheBackend(s.database_path)
        self.profile_cache = self.cache_backend.profiles
        self.screenshot_cache = self.cache_backend.screenshots
        self.disk_cache = DiskAssetCache(s.image_cache_dir)

        # Rendering
        self.browser = BrowserProcessManager(
            launcher or PlaywrightLauncher(engine=s.browser_engine),
            max_renders_before_restart=s.max_renders_before_restart,
            drain_timeout=s.drain_timeout,
        )
        self.pipeline = RenderPipeline(
            self.browser,
            self.profile_cache,
            self.screenshot_cache,
            RenderConfig(
                base_url=s.render_base_url,
                navigation_timeout=s.navigation_timeout,
                completion_timeout=s.completion_timeout,
                settle_delay=s.settle_delay,
                completion_selector=s.completion_selector,
                screenshot_cache_ttl=s.screenshot_cache_ttl,
            ),
        )

        # In-memory stores
        self.global_limiter = RateLimiter(
            s.global_rate_limit_max,
            s.global_rate_limit_window,
            name="global",
            capacity=s.rate_limit_capacity,
        )
        self.profile_limiter = RateLimiter(
            s.profile_rate_limit_max,
            s.profile_rate_limit_window,
            name="profile",
            capacity=s.rate_limit_capacity,
        )
        self.tokens = SecurityTokenStore(
            ttl_seconds=s.csrf_token_ttl,
            capacity=s.csrf_token_capacity,
        )

        self.profiles = ProfileService(
            self.profile_cache,
            self.disk_cache,
            self.profile_limiter,
            bearer_token=s.x_bearer_token,
            api_base_url=s.x_api_base_url,
            profile_cache_ttl=s.profile_cache_ttl,
            rate_limit_enabled=not s.disable_profile_rate_limit,
            max_asset_size_mb=s.max_asset_size_mb,
            timeout=s.provider_timeout,
            http_client=http_client,
        )

        self.janitor = BackgroundJanitor()
        self._register_sweeps()
        self._initialized = False

    def _register_sweeps(self) -> None:
        s = self.settings
        self.janitor.register("global_rate_limit", s.memory_sweep_interval, self.global_limiter.sweep)
        self.janitor.register("profile_rate_limit", s.memory_sweep_interval, self.profile_limiter.sweep)
        self.janitor.register("csrf_tokens", s.memory_sweep_interval, self.tokens.sweep)
        self.janitor.register(
            "profile_cache", s.durable_sweep_interval,
            lambda: self.profile_cache.prune_older_than(s.profile_cache_ttl),
        )
        self.janitor.register(
            "screenshot_cache", s.durable_sweep_interval,
            lambda: self.screenshot_cache.prune_older_than(s.screenshot_cache_ttl),
        )
        self.janitor.register(
            "disk_cache", s.durable_sweep_interval,
            lambda: self.disk_cache.prune_older_than(s.disk_cache_ttl),
        )

    async def initialize(self, start_janitor: bool = True) -> None:
        """Open storage and start background sweeps (browser stays lazy)"""
        if self._initialized:
            return
        self.disk_cache.initialize()
        await self.cache_backend.initialize()
        if start_janitor:
            await self.janitor.start()
        self._initialized = True
        if not self.profiles.enabled:
            logger.warning("X_BEARER_TOKEN not set - X API functionality disabled")
        logger.info("Backend initialized")

    async def shutdown(self) -> None:
        """
        Stop sweeps, close the browser, close storage

        Each step is best effort; errors are logged and the next step runs.
        """
        await self.janitor.stop()
        await self.browser.close()
        try:
            await self.profiles.aclose()
        except Exception as e:
            logger.error(f"Failed to close provider client: {e}")
        await self.cache_backend.close()
        self._initialized = False
        logger.info("Shutdown complete")

    async def shutdown_within(self, timeout: float) -> bool:
        """
        shutdown() bounded by timeout

        Returns:
            True if teardown finished in time
        """
        try:
            await asyncio.wait_for(self.shutdown(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.error(f"Shutdown did not finish within {timeout}s")
            return False
