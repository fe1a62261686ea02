"""
Cache API Routes
缓存 API 路由

Provides HTTP endpoints for cache operations:
- POST /clear-cache          - Clear disk images + profile cache, reset browser
- GET  /api/cache/stats      - Statistics for every tier and the browser
- POST /api/cache/cleanup    - Run every janitor sweep now
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from core.context import AppContext
from core.dependencies import get_context

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cache"])


# ============================================
# Response Models
# ============================================

class ClearCacheResponse(BaseModel):
    """Response model for clear-cache"""
    images: int
    profiles: int
    browser: str

class CacheStatsResponse(BaseModel):
    """Response model for stats endpoint"""
    durable: Dict[str, Any]
    disk: Dict[str, Any]
    browser: Dict[str, Any]
    rate_limits: Dict[str, Any]
    csrf_tokens: int
    janitor: Dict[str, Any]

class CleanupResponse(BaseModel):
    """Response model for cleanup endpoint"""
    success: bool
    removed: Dict[str, Optional[int]]


# ============================================
# API Endpoints
# ============================================

@router.post("/clear-cache", response_model=ClearCacheResponse)
async def clear_cache(context: AppContext = Depends(get_context)):
    """
    Clear all caches
    清空所有缓存

    Removes cached avatar/banner files and profile rows, then closes the
    shared browser so its own caches go too.
    """
    images = await context.disk_cache.clear()
    profiles = await context.profile_cache.clear()
    await context.browser.reset()
    logger.info(f"[Cache] Cleared {images} images, {profiles} profiles, browser reset")
    return ClearCacheResponse(images=images, profiles=profiles, browser="reset")


@router.get("/api/cache/stats", response_model=CacheStatsResponse)
async def get_cache_stats(context: AppContext = Depends(get_context)):
    """
    Get cache statistics
    获取缓存统计信息
    """
    return CacheStatsResponse(
        durable=await context.cache_backend.stats(),
        disk=context.disk_cache.get_stats(),
        browser=context.browser.stats(),
        rate_limits={
            "global": context.global_limiter.stats(),
            "profile": context.profile_limiter.stats(),
        },
        csrf_tokens=len(context.tokens),
        janitor=context.janitor.stats(),
    )


@router.post("/api/cache/cleanup", response_model=CleanupResponse)
async def cleanup_cache(context: AppContext = Depends(get_context)):
    """
    Run every sweep now instead of waiting for its schedule.
    A failed sweep reports null and does not stop the others.
    """
    removed = await context.janitor.run_all()
    return CleanupResponse(success=True, removed=removed)
