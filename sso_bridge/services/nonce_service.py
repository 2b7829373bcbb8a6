"""Optional replay protection for SSO nonces.

The forum correlates the round trip on its own, so nonce tracking is off by
default. When switched on, a nonce can be turned into a signed response only
once within its TTL.
"""
import hashlib
import logging
import time
from collections import OrderedDict
from typing import Protocol

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

NONCE_KEY_PREFIX = "sso:nonce:"


class NonceLedger(Protocol):
    async def claim(self, nonce: str, ttl: int) -> bool:
        """Record ``nonce``; False if it was already claimed and has not expired."""
        ...


class MemoryNonceLedger:
    """Per-process ledger with TTL expiry and a hard cap on entries."""

    def __init__(self, max_entries: int = 10_000):
        self.max_entries = max_entries
        self._expiry: OrderedDict[str, float] = OrderedDict()

    def _prune(self, now: float) -> None:
        expired = [key for key, expires_at in self._expiry.items() if expires_at <= now]
        for key in expired:
            del self._expiry[key]
        evicted = 0
        while len(self._expiry) >= self.max_entries:
            self._expiry.popitem(last=False)
            evicted += 1
        if evicted:
            # Everything left after the expiry sweep is still live
            logger.warning(
                "Nonce ledger is full (%d entries), evicted %d unexpired nonce(s). "
                "Raise SSO_NONCE_MAX_ENTRIES or use the redis backend.",
                self.max_entries,
                evicted,
            )

    async def claim(self, nonce: str, ttl: int) -> bool:
        # No await between check and set, so this is atomic on the event loop
        now = time.monotonic()
        expires_at = self._expiry.get(nonce)
        if expires_at is not None and expires_at > now:
            return False

        self._expiry.pop(nonce, None)
        self._prune(now)
        self._expiry[nonce] = now + ttl
        return True

    def __len__(self) -> int:
        return len(self._expiry)


class RedisNonceLedger:
    """Shared ledger backed by ``SET NX EX``, safe across workers."""

    def __init__(self, redis: Redis):
        self.redis = redis

    @staticmethod
    def key_for(nonce: str) -> str:
        digest = hashlib.sha256(nonce.encode("utf-8")).hexdigest()
        return f"{NONCE_KEY_PREFIX}{digest}"

    async def claim(self, nonce: str, ttl: int) -> bool:
        created = await self.redis.set(self.key_for(nonce), "1", nx=True, ex=ttl)
        return bool(created)
