"""
Core Module

Shared configuration, error taxonomy and the process-scoped AppContext.
"""

from .config import Settings
from .errors import (
    CardServiceError,
    EngineUnavailable,
    InvalidParameters,
    NotCached,
    RenderFailed,
    RateLimited,
    CacheBackendError,
)

__all__ = [
    "Settings",
    "CardServiceError",
    "EngineUnavailable",
    "InvalidParameters",
    "NotCached",
    "RenderFailed",
    "RateLimited",
    "CacheBackendError",
]
