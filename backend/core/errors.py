"""
Error Taxonomy

All failures the card service can surface. Each error carries the HTTP
status a route should answer with and a message that is safe to show to
clients; the FastAPI exception handler in main.py relies on both.

- EngineUnavailable: rendering capability cannot load (permanent)
- InvalidParameters / NotCached: caller errors, never retried
- RenderFailed: transient render failure
- RateLimited: expected outcome with a retry hint
- CacheBackendError: durable store I/O failure (callers treat it as a miss)
- ProfileNotFound / ProviderError: profile provider outcomes
"""

from typing import Optional


class CardServiceError(Exception):
    """Base class for every error raised by the card service"""

    status_code: int = 500
    message: str = "Server error"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None):
        super().__init__(detail or message or self.message)
        if message:
            self.message = message
        # Internal detail for logs, never sent to clients
        self.detail = detail


class EngineUnavailable(CardServiceError):
    status_code = 503
    message = "Screenshot service unavailable"


class InvalidParameters(CardServiceError):
    status_code = 400
    message = "Invalid parameters"


class NotCached(CardServiceError):
    status_code = 404
    message = "Profile not cached. View the profile first."


class RenderFailed(CardServiceError):
    status_code = 500
    message = "Failed to generate image"


class RateLimited(CardServiceError):
    status_code = 429
    message = "Too many requests, please try again later."

    def __init__(self, retry_after: int, message: Optional[str] = None):
        super().__init__(message)
        self.retry_after = retry_after


class CacheBackendError(CardServiceError):
    status_code = 500
    message = "Cache unavailable"


class ProfileNotFound(CardServiceError):
    status_code = 404
    message = "User not found"


class ProviderError(CardServiceError):
    status_code = 502
    message = "Failed to fetch user data"


class ServiceDisabled(CardServiceError):
    """A feature whose credentials are not configured"""

    status_code = 503
    message = "X API service unavailable"
