"""
Card Render Pipeline

Turns (handle, width, height, scale, theme) into PNG bytes.

Flow:
1. Validate dimensions and handle (InvalidParameters)
2. Require a cached profile (NotCached) so arbitrary input can never
   reach the expensive render path
3. Serve a fresh screenshot-cache hit without touching the browser
4. Otherwise borrow the shared browser, capture in an isolated context,
   count the render and upsert the screenshot cache

A missing completion signal is not fatal: the page is captured anyway.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlencode, urlparse

from core.errors import CacheBackendError, CardServiceError, InvalidParameters, NotCached, RenderFailed
from core.handles import normalize_handle
from .process_manager import BrowserProcessManager

logger = logging.getLogger(__name__)

# Dimension limits (inclusive); 1200x1000 at scale 4 is the largest capture
MIN_WIDTH, MAX_WIDTH = 100, 1200
MIN_HEIGHT, MAX_HEIGHT = 100, 1000
MIN_SCALE, MAX_SCALE = 1, 4

THEMES = ("light", "dark")
LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")


@dataclass
class RenderRequest:
    handle: str
    width: int
    height: int
    scale: float
    theme: str

    @property
    def cache_key(self) -> str:
        return f"{self.handle}_{self.width}x{self.height}_{self.scale:g}_{self.theme}"


@dataclass
class RenderConfig:
    base_url: str = "http://localhost:8000"
    navigation_timeout: float = 30.0
    completion_timeout: float = 10.0
    settle_delay: float = 0.5
    completion_selector: str = "canvas"
    screenshot_cache_ttl: float = 60 * 60


def build_request(handle: Any, width: Any, height: Any, scale: Any, theme: Any) -> RenderRequest:
    """Validate raw parameters into a RenderRequest"""
    try:
        w = int(width)
        h = int(height)
        s = float(scale)
    except (TypeError, ValueError, OverflowError):
        raise InvalidParameters("Invalid dimensions")

    if w != float(width) or h != float(height):
        raise InvalidParameters("Invalid dimensions")
    if not (MIN_WIDTH <= w <= MAX_WIDTH and MIN_HEIGHT <= h <= MAX_HEIGHT and MIN_SCALE <= s <= MAX_SCALE):
        raise InvalidParameters("Invalid dimensions")

    if theme not in THEMES:
        raise InvalidParameters("Invalid theme")

    normalized = normalize_handle(handle)
    if normalized is None:
        raise InvalidParameters("Invalid username format")

    return RenderRequest(handle=normalized, width=w, height=h, scale=s, theme=theme)


class RenderPipeline:
    """
    Renders profile cards through the shared browser
    """

    def __init__(
        self,
        manager: BrowserProcessManager,
        profile_cache,
        screenshot_cache,
        config: Optional[RenderConfig] = None,
    ):
        self.manager = manager
        self.profile_cache = profile_cache
        self.screenshot_cache = screenshot_cache
        self.config = config or RenderConfig()

    async def render(self, handle: str, width: Any, height: Any, scale: Any, theme: str) -> bytes:
        """
        Render a card image

        Raises:
            InvalidParameters, NotCached, EngineUnavailable, RenderFailed
        """
        request = build_request(handle, width, height, scale, theme)

        if not await self._profile_cached(request.handle):
            raise NotCached()

        cached = await self._cached_screenshot(request.cache_key)
        if cached is not None:
            logger.info(f"[Render] Cache hit for {request.cache_key}")
            return cached

        image = await self.capture(request)

        try:
            await self.screenshot_cache.set(request.cache_key, image)
        except CacheBackendError as e:
            logger.warning(f"[Render] Screenshot not cached ({request.cache_key}): {e}")

        return image

    async def _profile_cached(self, handle: str) -> bool:
        try:
            return await self.profile_cache.get(handle) is not None
        except CacheBackendError as e:
            logger.warning(f"[Render] Profile cache unavailable, treating as miss: {e}")
            return False

    async def _cached_screenshot(self, key: str) -> Optional[bytes]:
        try:
            record = await self.screenshot_cache.get(key)
        except CacheBackendError as e:
            logger.warning(f"[Render] Screenshot cache unavailable, rendering: {e}")
            return None
        if record is not None and record.is_fresh(self.config.screenshot_cache_ttl):
            return record.value
        return None

    def target_url(self, request: RenderRequest) -> str:
        """Internal page that draws the card; never an external site"""
        query = urlencode({
            "u": request.handle,
            "screenshot": 1,
            "t": int(time.time() * 1000),
        })
        url = f"{self.config.base_url.rstrip('/')}/app/home?{query}"
        if urlparse(url).hostname not in LOCAL_HOSTS:
            logger.error(f"[Render] Blocked non-local render target: {url}")
            raise RenderFailed(detail=f"render target must be local: {url}")
        return url

    async def capture(self, request: RenderRequest) -> bytes:
        """Capture one card in an isolated browser context"""
        target = self.target_url(request)

        async with self.manager.lease() as browser:
            logger.info(
                f"[Render] Generating {request.handle} @ {request.width}x{request.height} "
                f"scale {request.scale:g} {request.theme}"
            )
            context = None
            try:
                context = await browser.new_context(
                    viewport={"width": request.width, "height": request.height},
                    device_scale_factor=request.scale,
                    color_scheme=request.theme,
                    bypass_csp=True,
                )
                page = await context.new_page()
                await page.goto(
                    target,
                    wait_until="networkidle",
                    timeout=self.config.navigation_timeout * 1000,
                )
                await self._wait_for_completion(page)
                image = await page.screenshot(type="png")
            except CardServiceError:
                raise
            except Exception as e:
                logger.error(f"[Render] Screenshot error for {request.handle}: {e}")
                raise RenderFailed(detail=str(e)) from e
            finally:
                if context is not None:
                    await self._dispose(context)

            self.manager.record_render()

        logger.info(
            f"[Render] Generated {request.handle} - {len(image)} bytes "
            f"(count: {self.manager.render_count})"
        )
        return image

    async def _wait_for_completion(self, page) -> None:
        # TODO: decide between retry-once and accepting the degraded capture
        try:
            await page.wait_for_selector(
                self.config.completion_selector,
                timeout=self.config.completion_timeout * 1000,
            )
            await page.evaluate("document.fonts.ready")
            await asyncio.sleep(self.config.settle_delay)
        except Exception as e:
            logger.info(f"[Render] Completion signal not seen, capturing anyway ({e})")

    @staticmethod
    async def _dispose(context) -> None:
        try:
            await context.close()
        except Exception as e:
            logger.warning(f"[Render] Ignoring context close error: {e}")
