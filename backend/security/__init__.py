"""
Security Module

Sliding-window rate limiting and anti-forgery tokens.
"""

from .rate_limiter import RateLimiter, RateLimitDecision
from .token_store import SecurityTokenStore

__all__ = ["RateLimiter", "RateLimitDecision", "SecurityTokenStore"]
