"""
Disk Asset Cache

File-based cache for avatar/banner images with:
- One file per asset id, extension reflecting the content type
- Staleness read from file modification time (no metadata file)
- TTL pruning by listing the cache directory

Cache structure:
cache_dir/
├── jack_avatar.jpg
├── jack_banner.png
└── ...
"""

import asyncio
import logging
import re
import time
from pathlib import Path
from typing import Optional

from .models import CacheRecord

logger = logging.getLogger(__name__)

ASSET_ID_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}

EXTENSION_CONTENT_TYPES = {ext: mime for mime, ext in CONTENT_TYPE_EXTENSIONS.items()}


def is_valid_asset_id(asset_id: str) -> bool:
    return bool(asset_id) and ASSET_ID_PATTERN.match(asset_id) is not None


class DiskAssetCache:
    """
    Maps asset ids to files in a single directory
    """

    def __init__(self, cache_dir: str = "./cache"):
        self.cache_dir = Path(cache_dir)
        self._lock = asyncio.Lock()

    def initialize(self) -> None:
        """Create cache directory if it doesn't exist."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"[DiskCache] Cache directory: {self.cache_dir}")

    @staticmethod
    def _check_id(asset_id: str) -> None:
        if not is_valid_asset_id(asset_id):
            raise ValueError(f"Invalid asset id: {asset_id!r}")

    def _candidates(self, asset_id: str):
        for ext in CONTENT_TYPE_EXTENSIONS.values():
            yield self.cache_dir / f"{asset_id}{ext}"

    def path_for(self, asset_id: str) -> Optional[Path]:
        """Existing file for asset id, or None"""
        self._check_id(asset_id)
        for path in self._candidates(asset_id):
            if path.is_file():
                return path
        return None

    async def get(self, asset_id: str) -> Optional[CacheRecord]:
        """
        Get cached asset.

        Returns:
            CacheRecord with bytes and content type, or None.
            Staleness is not checked here.
        """
        path = self.path_for(asset_id)
        if path is None:
            return None

        try:
            mtime = path.stat().st_mtime
            with open(path, "rb") as f:
                data = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"[DiskCache] Failed to read {path.name}: {e}")
            return None

        return CacheRecord(
            key=asset_id,
            value=data,
            cached_at=int(mtime * 1000),
            content_type=EXTENSION_CONTENT_TYPES.get(path.suffix, "image/jpeg"),
        )

    async def set(self, asset_id: str, data: bytes, content_type: str = "image/jpeg") -> Path:
        """
        Write asset, replacing any previous file for the same id.

        Returns:
            Path of the written file
        """
        self._check_id(asset_id)
        mime = content_type.split(";")[0].strip().lower()
        ext = CONTENT_TYPE_EXTENSIONS.get(mime, ".jpg")
        target = self.cache_dir / f"{asset_id}{ext}"

        async with self._lock:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            tmp = target.with_suffix(target.suffix + ".tmp")
            with open(tmp, "wb") as f:
                f.write(data)
            tmp.replace(target)

            # One id, one file
            for other in self._candidates(asset_id):
                if other != target and other.exists():
                    try:
                        other.unlink()
                    except OSError as e:
                        logger.warning(f"[DiskCache] Failed to remove stale {other.name}: {e}")

        logger.debug(f"[DiskCache] Cached: {target.name} ({len(data)} bytes)")
        return target

    async def prune_older_than(self, ttl_seconds: float) -> int:
        """
        Remove files whose mtime is older than ttl.

        Returns:
            Number of files removed.
        """
        if not self.cache_dir.exists():
            return 0

        now = time.time()
        removed = 0
        async with self._lock:
            for path in self.cache_dir.iterdir():
                try:
                    if not path.is_file():
                        continue
                    if now - path.stat().st_mtime > ttl_seconds:
                        path.unlink()
                        removed += 1
                except OSError as e:
                    logger.warning(f"[DiskCache] Skipping {path.name}: {e}")

        if removed:
            logger.info(f"[DiskCache] Removed {removed} expired disk images")
        return removed

    async def clear(self) -> int:
        """
        Remove every cached file.

        Returns:
            Number of files removed.
        """
        if not self.cache_dir.exists():
            return 0

        removed = 0
        async with self._lock:
            for path in self.cache_dir.iterdir():
                if path.is_file():
                    path.unlink()
                    removed += 1

        logger.info(f"[DiskCache] Cleared all {removed} files")
        return removed

    def get_stats(self) -> dict:
        """Get cache statistics."""
        files = [p for p in self.cache_dir.iterdir() if p.is_file()] if self.cache_dir.exists() else []
        total_size = sum(p.stat().st_size for p in files)
        return {
            "total_entries": len(files),
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
        }
