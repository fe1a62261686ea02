"""
Cache record types shared by every tier
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


def now_ms() -> int:
    """Current time as epoch milliseconds"""
    return int(time.time() * 1000)


@dataclass
class CacheRecord:
    """
    One cached value
    缓存条目数据结构

    cached_at is epoch milliseconds. Tiers never filter stale records;
    callers decide freshness with is_fresh().
    """
    key: str
    value: Any
    cached_at: int
    content_type: Optional[str] = None   # Disk tier only

    def age_seconds(self, now: Optional[float] = None) -> float:
        current = time.time() if now is None else now
        return current - self.cached_at / 1000

    def is_fresh(self, ttl_seconds: float, now: Optional[float] = None) -> bool:
        """True while the record is younger than the tier TTL"""
        return self.age_seconds(now) < ttl_seconds

    @property
    def created_at(self) -> str:
        """Get ISO format creation time"""
        return datetime.fromtimestamp(self.cached_at / 1000).isoformat()
