"""
Profile Service

Looks up X profiles for the card page:
- Profile cache first (no rate limit for cached responses)
- Narrow rate limit only on real provider calls (cache misses)
- Avatar and banner downloaded in parallel into the disk cache
- Normalized payload upserted into the profile cache (7 days)
"""

import asyncio
import logging
from io import BytesIO
from typing import Any, Dict, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from core.errors import (
    CacheBackendError,
    InvalidParameters,
    ProfileNotFound,
    ProviderError,
    ServiceDisabled,
)
from core.handles import normalize_handle

logger = logging.getLogger(__name__)

USER_FIELDS = [
    "profile_image_url", "profile_banner_url", "name", "description",
    "verified", "verified_type", "location", "url", "created_at",
    "public_metrics", "entities",
]

# Pillow format -> content type stored on disk
IMAGE_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}

DAILY_LIMIT_MESSAGE = "Daily limit reached. Try again tomorrow or use a previously searched profile."


def sniff_image(data: bytes) -> Optional[str]:
    """Content type of an image payload, or None if Pillow cannot read it"""
    try:
        with Image.open(BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None
    return IMAGE_FORMATS.get(fmt)


def normalize_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a provider user object into the card payload"""
    entities = user.get("entities") or {}
    url_entities = (entities.get("url") or {}).get("urls") or []
    url_entity = url_entities[0] if url_entities else {}

    description = user.get("description") or ""
    for url_info in (entities.get("description") or {}).get("urls") or []:
        if url_info.get("url") and url_info.get("display_url"):
            description = description.replace(url_info["url"], url_info["display_url"])

    metrics = user.get("public_metrics") or {}
    return {
        "id": user.get("id"),
        "username": user.get("username"),
        "name": user.get("name"),
        "profile_image_url": user.get("profile_image_url"),
        "profile_banner_url": user.get("profile_banner_url"),
        "description": description,
        "verified": user.get("verified"),
        "verified_type": user.get("verified_type"),
        "location": user.get("location"),
        "url": url_entity.get("expanded_url") or user.get("url"),
        "display_url": url_entity.get("display_url"),
        "created_at": user.get("created_at"),
        "followers_count": metrics.get("followers_count"),
        "following_count": metrics.get("following_count"),
        "tweet_count": metrics.get("tweet_count"),
    }


class ProfileService:
    """
    Provider client plus the cache writes that follow a successful fetch
    """

    def __init__(
        self,
        profile_cache,
        disk_cache,
        rate_limiter,
        bearer_token: str = "",
        api_base_url: str = "https://api.x.com",
        profile_cache_ttl: float = 7 * 24 * 60 * 60,
        rate_limit_enabled: bool = True,
        max_asset_size_mb: int = 10,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.profile_cache = profile_cache
        self.disk_cache = disk_cache
        self.rate_limiter = rate_limiter
        self.bearer_token = bearer_token
        self.api_base_url = api_base_url.rstrip("/")
        self.profile_cache_ttl = profile_cache_ttl
        self.rate_limit_enabled = rate_limit_enabled
        self.max_asset_size_bytes = max_asset_size_mb * 1024 * 1024

        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.bearer_token)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    # ============================================
    # Lookup
    # ============================================

    async def lookup(self, raw_handle: str, client_key: str) -> Dict[str, Any]:
        """
        Profile payload for handle

        Raises:
            InvalidParameters, ServiceDisabled, RateLimited, ProfileNotFound, ProviderError
        """
        handle = normalize_handle(raw_handle)
        if handle is None:
            raise InvalidParameters("Invalid username format")

        cached = await self._cached_profile(handle)
        if cached is not None:
            return cached

        if not self.enabled:
            raise ServiceDisabled()

        if self.rate_limit_enabled:
            self.rate_limiter.enforce(client_key, DAILY_LIMIT_MESSAGE)

        user = await self._fetch_user(handle)
        payload = normalize_user(user)

        avatar_id = f"{handle}_avatar"
        banner_id = f"{handle}_banner"
        hi_res_avatar = (user.get("profile_image_url") or "").replace("_normal", "_400x400") or None

        avatar_ok, banner_ok = await asyncio.gather(
            self.cache_asset(hi_res_avatar, avatar_id),
            self.cache_asset(user.get("profile_banner_url"), banner_id),
        )
        if avatar_ok:
            payload["profile_image_url"] = f"/images/{avatar_id}"
        if banner_ok:
            payload["profile_banner_url"] = f"/images/{banner_id}"

        try:
            await self.profile_cache.set(handle, payload)
            logger.info(f"[Profile] Cache miss {handle} - fetched from provider, cached")
        except CacheBackendError as e:
            logger.warning(f"[Profile] Could not cache {handle}: {e}")

        return payload

    async def _cached_profile(self, handle: str) -> Optional[Dict[str, Any]]:
        try:
            record = await self.profile_cache.get(handle)
        except CacheBackendError as e:
            logger.warning(f"[Profile] Profile cache unavailable, treating as miss: {e}")
            return None

        if record is None or not record.is_fresh(self.profile_cache_ttl):
            return None

        hours = round(record.age_seconds() / 3600)
        logger.info(f"[Profile] Cache hit {handle} (cached {hours}h ago)")
        return record.value

    async def _fetch_user(self, handle: str) -> Dict[str, Any]:
        url = f"{self.api_base_url}/2/users/by/username/{handle}"
        try:
            response = await self.http_client.get(
                url,
                params={"user.fields": ",".join(USER_FIELDS)},
                headers={"Authorization": f"Bearer {self.bearer_token}"},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"[Profile] Provider timeout for {handle}")
            raise ProviderError(detail=f"timeout: {e}") from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise ProfileNotFound() from e
            logger.error(f"[Profile] Provider HTTP error {e.response.status_code} for {handle}")
            raise ProviderError(detail=f"status {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[Profile] Provider error for {handle}: {e}")
            raise ProviderError(detail=str(e)) from e

        user = body.get("data") if isinstance(body, dict) else None
        if not user:
            raise ProfileNotFound()
        return user

    # ============================================
    # Assets
    # ============================================

    async def cache_asset(self, image_url: Optional[str], asset_id: str) -> bool:
        """
        Download one image into the disk cache

        Returns:
            True if cached, False otherwise (failures are logged, never raised)
        """
        if not image_url:
            return False

        try:
            response = await self.http_client.get(image_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"[Profile] Failed to download {asset_id}: {e}")
            return False

        data = response.content
        if len(data) > self.max_asset_size_bytes:
            logger.warning(f"[Profile] Image too large ({len(data)} bytes): {asset_id}")
            return False

        content_type = sniff_image(data)
        if content_type is None:
            logger.warning(f"[Profile] Discarding non-image payload for {asset_id}")
            return False

        try:
            await self.disk_cache.set(asset_id, data, content_type)
        except OSError as e:
            logger.error(f"[Profile] Failed to cache image {asset_id}: {e}")
            return False
        return True
