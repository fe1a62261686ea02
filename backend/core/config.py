"""
Service Configuration

Every tunable of the card service, read from environment variables.
Tests construct Settings(...) directly instead of touching the environment.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    """Runtime settings (durations in seconds)"""

    # ============================================
    # Storage
    # ============================================
    database_path: str = "./databases/cards.db"
    image_cache_dir: str = "./cache"

    # ============================================
    # Cache TTLs
    # ============================================
    profile_cache_ttl: float = 7 * 24 * 60 * 60       # 1 week
    screenshot_cache_ttl: float = 60 * 60              # 1 hour
    disk_cache_ttl: float = 7 * 24 * 60 * 60           # 1 week

    # ============================================
    # Browser / rendering
    # ============================================
    browser_engine: str = "webkit"
    max_renders_before_restart: int = 100
    drain_timeout: float = 15.0
    render_base_url: str = "http://localhost:8000"
    navigation_timeout: float = 30.0
    completion_timeout: float = 10.0
    settle_delay: float = 0.5
    completion_selector: str = "canvas"

    # ============================================
    # Rate limiting
    # ============================================
    global_rate_limit_max: int = 300
    global_rate_limit_window: float = 15 * 60
    profile_rate_limit_max: int = 3
    profile_rate_limit_window: float = 24 * 60 * 60
    rate_limit_capacity: int = 10000
    disable_profile_rate_limit: bool = False

    # ============================================
    # Anti-forgery tokens
    # ============================================
    csrf_token_ttl: float = 24 * 60 * 60
    csrf_token_capacity: int = 5000

    # ============================================
    # Janitor schedules
    # ============================================
    memory_sweep_interval: float = 60 * 60             # hourly
    durable_sweep_interval: float = 24 * 60 * 60       # daily

    # ============================================
    # Profile provider
    # ============================================
    x_bearer_token: str = ""
    x_api_base_url: str = "https://api.x.com"
    provider_timeout: float = 30.0
    max_asset_size_mb: int = 10

    # ============================================
    # Server
    # ============================================
    client_origin: str = "http://localhost:5173"
    shutdown_timeout: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment"""
        port = os.getenv("PORT", "8000")
        return cls(
            database_path=os.getenv("DATABASE_PATH", "./databases/cards.db"),
            image_cache_dir=os.getenv("IMAGE_CACHE_DIR", "./cache"),
            profile_cache_ttl=float(os.getenv("PROFILE_CACHE_TTL_HOURS", "168")) * 3600,
            screenshot_cache_ttl=float(os.getenv("SCREENSHOT_CACHE_TTL_MINUTES", "60")) * 60,
            disk_cache_ttl=float(os.getenv("DISK_CACHE_TTL_HOURS", "168")) * 3600,
            browser_engine=os.getenv("BROWSER_ENGINE", "webkit").lower(),
            max_renders_before_restart=int(os.getenv("MAX_RENDERS_BEFORE_RESTART", "100")),
            drain_timeout=float(os.getenv("BROWSER_DRAIN_TIMEOUT", "15")),
            render_base_url=os.getenv("RENDER_BASE_URL", f"http://localhost:{port}"),
            navigation_timeout=float(os.getenv("RENDER_NAVIGATION_TIMEOUT", "30")),
            completion_timeout=float(os.getenv("RENDER_COMPLETION_TIMEOUT", "10")),
            settle_delay=float(os.getenv("RENDER_SETTLE_DELAY_MS", "500")) / 1000,
            completion_selector=os.getenv("RENDER_COMPLETION_SELECTOR", "canvas"),
            global_rate_limit_max=int(os.getenv("RATE_LIMIT_GLOBAL_MAX", "300")),
            global_rate_limit_window=float(os.getenv("RATE_LIMIT_GLOBAL_WINDOW", "900")),
            profile_rate_limit_max=int(os.getenv("RATE_LIMIT_PROFILE_MAX", "3")),
            profile_rate_limit_window=float(os.getenv("RATE_LIMIT_PROFILE_WINDOW", "86400")),
            rate_limit_capacity=int(os.getenv("RATE_LIMIT_CAPACITY", "10000")),
            disable_profile_rate_limit=_env_bool("DISABLE_RATE_LIMIT"),
            csrf_token_ttl=float(os.getenv("CSRF_TOKEN_TTL_HOURS", "24")) * 3600,
            csrf_token_capacity=int(os.getenv("CSRF_TOKEN_CAPACITY", "5000")),
            memory_sweep_interval=float(os.getenv("MEMORY_SWEEP_INTERVAL", "3600")),
            durable_sweep_interval=float(os.getenv("DURABLE_SWEEP_INTERVAL", "86400")),
            x_bearer_token=os.getenv("X_BEARER_TOKEN", ""),
            x_api_base_url=os.getenv("X_API_BASE_URL", "https://api.x.com"),
            provider_timeout=float(os.getenv("X_API_TIMEOUT", "30")),
            max_asset_size_mb=int(os.getenv("IMAGE_MAX_SIZE_MB", "10")),
            client_origin=os.getenv("CLIENT_ORIGIN", "http://localhost:5173"),
            shutdown_timeout=float(os.getenv("SHUTDOWN_TIMEOUT", "10")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
