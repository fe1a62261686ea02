"""
Browser Process Manager

Owns the single headless browser shared by every render request.

Lifecycle:
    UNSTARTED --acquire--> RUNNING --close/restart--> CLOSING --> UNSTARTED
    RUNNING --connection lost--> DISCONNECTED --acquire--> RUNNING (relaunch)

- Lazy launch on first acquire
- Single-flight: one lock guards every transition, so racing callers
  trigger exactly one launch and share its result
- Restart after N renders to bound browser memory growth; in-flight
  renders are drained first (bounded wait)
- A disconnected browser is discarded and relaunched unconditionally
- Missing Playwright / browser binary is permanent: EngineUnavailable,
  remembered and never retried
- Close failures are returned as CloseResult, logged and discarded
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, List, Optional, Protocol

from core.errors import EngineUnavailable, RenderFailed

logger = logging.getLogger(__name__)

SUPPORTED_ENGINES = ("webkit", "chromium", "firefox")


class BrowserState(str, Enum):
    UNSTARTED = "unstarted"
    RUNNING = "running"
    DISCONNECTED = "disconnected"
    CLOSING = "closing"


@dataclass
class CloseResult:
    """Outcome of a close attempt; callers log it and move on"""
    ok: bool
    error: Optional[BaseException] = None


class BrowserLauncher(Protocol):
    async def launch(self) -> Any: ...

    async def stop(self) -> None: ...


# ============================================
# Playwright launcher
# ============================================

class PlaywrightLauncher:
    """
    Launches headless browsers through Playwright

    Playwright is imported on first launch so the service starts (with the
    screenshot feature disabled) on hosts where it is not installed.
    """

    def __init__(self, engine: str = "webkit", args: Optional[List[str]] = None):
        if engine not in SUPPORTED_ENGINES:
            raise ValueError(f"Unsupported browser engine: {engine}")
        self.engine = engine
        self.args = args if args is not None else (
            ["--no-sandbox", "--disable-gpu", "--disable-dev-shm-usage"]
            if engine == "chromium" else []
        )
        self._playwright = None

    async def launch(self) -> Any:
        try:
            from playwright.async_api import Error as PlaywrightError
            from playwright.async_api import async_playwright
        except ImportError as e:
            raise EngineUnavailable(detail=f"playwright not available: {e}") from e

        if self._playwright is None:
            self._playwright = await async_playwright().start()

        browser_type = getattr(self._playwright, self.engine)
        try:
            browser = await browser_type.launch(headless=True, args=self.args)
        except PlaywrightError as e:
            if "Executable doesn't exist" in str(e):
                raise EngineUnavailable(detail=f"{self.engine} binary missing: {e}") from e
            raise

        logger.info(f"[Browser] Launched persistent {self.engine} instance")
        return browser

    async def stop(self) -> None:
        playwright, self._playwright = self._playwright, None
        if playwright is not None:
            await playwright.stop()


# ============================================
# Manager
# ============================================

class BrowserProcessManager:
    """
    Shared browser handle with restart policy
    """

    def __init__(
        self,
        launcher: BrowserLauncher,
        max_renders_before_restart: int = 100,
        drain_timeout: float = 15.0,
    ):
        self._launcher = launcher
        self.max_renders_before_restart = max_renders_before_restart
        self.drain_timeout = drain_timeout

        self._browser: Any = None
        self._closing = False
        self._render_count = 0
        self._launch_count = 0
        self._unavailable: Optional[EngineUnavailable] = None

        self._lock = asyncio.Lock()
        self._idle = asyncio.Condition()
        self._active_leases = 0

    # ============================================
    # Observability
    # ============================================

    @property
    def state(self) -> BrowserState:
        if self._closing:
            return BrowserState.CLOSING
        if self._browser is None:
            return BrowserState.UNSTARTED
        if not self._is_connected(self._browser):
            return BrowserState.DISCONNECTED
        return BrowserState.RUNNING

    @property
    def render_count(self) -> int:
        return self._render_count

    @property
    def launch_count(self) -> int:
        return self._launch_count

    @property
    def available(self) -> bool:
        return self._unavailable is None

    def stats(self) -> dict:
        return {
            "state": self.state.value,
            "render_count": self._render_count,
            "launch_count": self._launch_count,
            "active_renders": self._active_leases,
            "available": self.available,
        }

    @staticmethod
    def _is_connected(browser: Any) -> bool:
        try:
            return bool(browser.is_connected())
        except Exception:
            return False

    # ============================================
    # Acquisition
    # ============================================

    async def acquire(self) -> Any:
        """
        Get the live browser, launching or relaunching as needed

        Raises:
            EngineUnavailable: rendering capability cannot load (permanent)
            RenderFailed: launch failed for another reason
        """
        async with self._lock:
            return await self._ensure_browser()

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[Any]:
        """Borrow the browser for one render; restarts wait for leases to end"""
        async with self._lock:
            browser = await self._ensure_browser()
            self._active_leases += 1
        try:
            yield browser
        finally:
            async with self._idle:
                self._active_leases -= 1
                self._idle.notify_all()

    def record_render(self) -> None:
        """Count one successful render against the restart threshold"""
        self._render_count += 1

    async def _ensure_browser(self) -> Any:
        """Caller holds self._lock"""
        if self._unavailable is not None:
            raise self._unavailable

        if self._browser is not None:
            if not self._is_connected(self._browser):
                logger.warning("[Browser] Browser disconnected, relaunching")
                self._log_close(await self._close_browser(), "discarding disconnected browser")
            elif self._render_count >= self.max_renders_before_restart:
                logger.info(f"[Browser] Restarting after {self._render_count} renders to free memory...")
                await self._wait_for_drain()
                self._log_close(await self._close_browser(), "restart")

        if self._browser is None:
            await self._launch()

        return self._browser

    async def _launch(self) -> None:
        try:
            browser = await self._launcher.launch()
        except EngineUnavailable as e:
            self._unavailable = e
            logger.warning(f"[Browser] Rendering engine unavailable - screenshot feature disabled ({e})")
            raise
        except Exception as e:
            logger.error(f"[Browser] Launch failed: {e}", exc_info=True)
            raise RenderFailed(detail=f"browser launch failed: {e}") from e

        self._browser = browser
        self._render_count = 0
        self._launch_count += 1

    async def _wait_for_drain(self) -> None:
        async with self._idle:
            try:
                await asyncio.wait_for(
                    self._idle.wait_for(lambda: self._active_leases == 0),
                    timeout=self.drain_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"[Browser] {self._active_leases} renders still running after "
                    f"{self.drain_timeout}s, restarting anyway"
                )

    # ============================================
    # Teardown
    # ============================================

    async def _close_browser(self) -> CloseResult:
        """Caller holds self._lock"""
        browser, self._browser = self._browser, None
        self._render_count = 0
        if browser is None:
            return CloseResult(ok=True)

        self._closing = True
        try:
            await browser.close()
            return CloseResult(ok=True)
        except Exception as e:
            return CloseResult(ok=False, error=e)
        finally:
            self._closing = False

    @staticmethod
    def _log_close(result: CloseResult, reason: str) -> None:
        if not result.ok:
            logger.warning(f"[Browser] Ignoring close error ({reason}): {result.error}")

    async def reset(self) -> CloseResult:
        """Close the browser; the next acquire relaunches it"""
        async with self._lock:
            result = await self._close_browser()
        self._log_close(result, "reset")
        if result.ok:
            logger.info("[Browser] Closed persistent browser to clear cache")
        return result

    async def close(self) -> CloseResult:
        """Shut down the browser and the launcher (used at process exit)"""
        async with self._lock:
            result = await self._close_browser()
            try:
                await self._launcher.stop()
            except Exception as e:
                if result.ok:
                    result = CloseResult(ok=False, error=e)
        self._log_close(result, "shutdown")
        if result.ok:
            logger.info("[Browser] Browser closed")
        return result
