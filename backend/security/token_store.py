"""
Anti-forgery token store

One token per session, 24h lifetime, capped entry count.
"""

import hmac
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from cache.lru_map import BoundedLRUMap

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32  # 64 hex characters


@dataclass
class SecurityToken:
    token: str
    issued_at: float


class SecurityTokenStore:
    """
    Per-session CSRF tokens
    """

    def __init__(
        self,
        ttl_seconds: float = 24 * 60 * 60,
        capacity: int = 5000,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._tokens: BoundedLRUMap[str, SecurityToken] = BoundedLRUMap(capacity)

    def issue(self, session_id: str) -> str:
        """Create a fresh token for session, replacing any previous one"""
        token = secrets.token_hex(TOKEN_BYTES)
        self._tokens.set(session_id, SecurityToken(token=token, issued_at=self._clock()))
        return token

    def validate(self, session_id: str, presented: Optional[str]) -> bool:
        """
        True when presented matches the session token and it has not expired

        Expired tokens are removed here.
        """
        if not session_id or not presented:
            return False

        stored = self._tokens.get(session_id)
        if stored is None:
            return False

        if self._clock() - stored.issued_at >= self.ttl_seconds:
            self._tokens.delete(session_id)
            logger.info(f"[CSRF] Expired token removed for session {session_id}")
            return False

        # compare_digest only accepts ASCII str
        if not presented.isascii():
            return False
        return hmac.compare_digest(stored.token, presented)

    def revoke(self, session_id: str) -> bool:
        return self._tokens.delete(session_id)

    def sweep(self) -> int:
        """
        Remove expired tokens

        Returns:
            Number of tokens removed
        """
        now = self._clock()
        removed = 0
        for session_id, stored in self._tokens.items():
            if now - stored.issued_at >= self.ttl_seconds:
                self._tokens.delete(session_id)
                removed += 1
        return removed

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)
