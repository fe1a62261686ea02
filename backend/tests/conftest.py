"""
Card backend test configuration

Fixtures build every component against temporary storage and replace
Playwright and the profile provider with in-process fakes:
- FakeLauncher / FakeBrowser / FakeContext / FakePage stand in for Playwright
- httpx.MockTransport stands in for the X API and image hosts
"""

import asyncio
import io
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest
from PIL import Image

# 添加 backend 目录到 Python 路径
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from cache.disk_store import DiskAssetCache
from cache.durable_store import SQLiteCacheBackend
from core.config import Settings
from core.context import AppContext
from renderer.pipeline import RenderConfig, RenderPipeline
from renderer.process_manager import BrowserProcessManager

FAKE_PNG = b"\x89PNG\r\n\x1a\nfake-card"


# ============================================
# Playwright fakes
# ============================================

class FakePage:
    def __init__(self, browser: "FakeBrowser"):
        self.browser = browser
        self.visited: List[str] = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        self.browser.visited.append(url)
        if self.browser.fail_goto:
            raise RuntimeError("net::ERR_CONNECTION_REFUSED")

    async def wait_for_selector(self, selector, timeout=None):
        if self.browser.missing_selector:
            raise asyncio.TimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def evaluate(self, expression):
        return None

    async def screenshot(self, type="png"):
        if self.browser.render_delay:
            await asyncio.sleep(self.browser.render_delay)
        return self.browser.image


class FakeContext:
    def __init__(self, browser: "FakeBrowser", options: Dict[str, Any]):
        self.browser = browser
        self.options = options
        self.closed = False

    async def new_page(self):
        return FakePage(self.browser)

    async def close(self):
        self.closed = True
        if self.browser.context_close_error:
            raise RuntimeError("context already closed")


class FakeBrowser:
    def __init__(self, **behaviour):
        self.connected = True
        self.closed = False
        self.close_error = behaviour.get("close_error", False)
        self.context_close_error = behaviour.get("context_close_error", False)
        self.fail_goto = behaviour.get("fail_goto", False)
        self.missing_selector = behaviour.get("missing_selector", False)
        self.render_delay = behaviour.get("render_delay", 0)
        self.image = behaviour.get("image", FAKE_PNG)
        self.contexts: List[FakeContext] = []
        self.visited: List[str] = []

    def is_connected(self):
        return self.connected

    async def new_context(self, **options):
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.connected = False
        self.closed = True
        if self.close_error:
            raise RuntimeError("browser has been closed")


class FakeLauncher:
    """Counts launches; launch_delay widens the race window"""

    def __init__(self, launch_delay: float = 0.0, error: Optional[BaseException] = None, **behaviour):
        self.launch_delay = launch_delay
        self.error = error
        self.behaviour = behaviour
        self.launches = 0
        self.attempts = 0
        self.stopped = False
        self.browsers: List[FakeBrowser] = []

    async def launch(self):
        self.attempts += 1
        if self.launch_delay:
            await asyncio.sleep(self.launch_delay)
        if self.error is not None:
            raise self.error
        self.launches += 1
        browser = FakeBrowser(**self.behaviour)
        self.browsers.append(browser)
        return browser

    async def stop(self):
        self.stopped = True


# ============================================
# Image / provider helpers
# ============================================

def make_image_bytes(fmt: str = "PNG", size=(8, 8)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, (29, 161, 242)).save(buf, format=fmt)
    return buf.getvalue()


def x_user(handle: str, **overrides) -> Dict[str, Any]:
    user = {
        "id": "12",
        "username": handle,
        "name": handle.title(),
        "description": "building things https://t.co/abc",
        "profile_image_url": f"https://pbs.example.com/{handle}_normal.jpg",
        "profile_banner_url": f"https://pbs.example.com/{handle}_banner",
        "verified": False,
        "url": "https://t.co/xyz",
        "created_at": "2006-03-21T20:50:14.000Z",
        "public_metrics": {"followers_count": 10, "following_count": 2, "tweet_count": 30},
        "entities": {
            "url": {"urls": [{"url": "https://t.co/xyz", "expanded_url": "https://example.com", "display_url": "example.com"}]},
            "description": {"urls": [{"url": "https://t.co/abc", "display_url": "abc.dev"}]},
        },
    }
    user.update(overrides)
    return user


class FakeProvider:
    """MockTransport handler for the X API plus image hosts"""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.api_calls = 0
        self.image_calls = 0
        self.image_body = make_image_bytes("JPEG")
        self.image_content_type = "image/jpeg"
        self.api_status = 200
        self.requested: List[str] = []

    def add_user(self, handle: str, **overrides) -> None:
        self.users[handle] = x_user(handle, **overrides)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requested.append(str(request.url))
        if request.url.path.startswith("/2/users/by/username/"):
            self.api_calls += 1
            if self.api_status != 200:
                return httpx.Response(self.api_status, json={"title": "error"})
            handle = request.url.path.rsplit("/", 1)[-1]
            user = self.users.get(handle)
            if user is None:
                return httpx.Response(200, json={"errors": [{"title": "Not Found Error"}]})
            return httpx.Response(200, json={"data": user})

        self.image_calls += 1
        return httpx.Response(
            200,
            content=self.image_body,
            headers={"content-type": self.image_content_type},
        )


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def settings(tmp_path):
    """Settings pointed at temporary storage with fast render timings"""
    return Settings(
        database_path=str(tmp_path / "db" / "cards.db"),
        image_cache_dir=str(tmp_path / "images"),
        render_base_url="http://localhost:8000",
        completion_timeout=0.05,
        settle_delay=0,
        drain_timeout=1.0,
        x_bearer_token="test-token",
        x_api_base_url="https://api.x.test",
    )


@pytest.fixture
async def cache_backend(tmp_path):
    """Open SQLite backend, closed after the test"""
    backend = SQLiteCacheBackend(str(tmp_path / "cache.db"))
    await backend.initialize()
    yield backend
    await backend.close()


@pytest.fixture
def disk_cache(tmp_path):
    cache = DiskAssetCache(str(tmp_path / "assets"))
    cache.initialize()
    return cache


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def manager(launcher):
    return BrowserProcessManager(launcher, max_renders_before_restart=100, drain_timeout=1.0)


@pytest.fixture
def pipeline(manager, cache_backend):
    return RenderPipeline(
        manager,
        cache_backend.profiles,
        cache_backend.screenshots,
        RenderConfig(completion_timeout=0.05, settle_delay=0),
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def http_client(provider):
    return httpx.AsyncClient(transport=httpx.MockTransport(provider))


@pytest.fixture
def app_context(settings, launcher, http_client):
    """AppContext with fake browser and provider (not initialized)"""
    return AppContext(settings, launcher=launcher, http_client=http_client)
