"""
Cache Module
缓存模块

Three cache tiers plus the in-memory building blocks:
- Durable profile cache and rendered image cache (SQLite)
- Disk-backed avatar/banner asset cache
- BoundedLRUMap for capped in-memory stores
- BackgroundJanitor for periodic pruning
"""

from .models import CacheRecord
from .lru_map import BoundedLRUMap
from .durable_store import SQLiteCacheBackend, DurableCacheTier
from .disk_store import DiskAssetCache
from .janitor import BackgroundJanitor

__all__ = [
    "CacheRecord",
    "BoundedLRUMap",
    "SQLiteCacheBackend",
    "DurableCacheTier",
    "DiskAssetCache",
    "BackgroundJanitor",
]
