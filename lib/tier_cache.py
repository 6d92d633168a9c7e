"""
TTL cache for tiered spreadsheet snapshots.

Shared by every request in the process. Values are stored and
replaced whole. Expiry is checked on read, and every write drops
entries whose TTL has already elapsed.
"""
import time
from typing import Any, Callable


class TierCache:
    """
    In-memory key/value store with per-entry TTL.

    Usage:
        cache = TierCache()
        cache.set("tier:1:abc", metadata, ttl_seconds=300)

        value = cache.get("tier:1:abc")
        if value is None:
            # Miss or expired
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Initialize cache.

        Args:
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self._entries: dict[str, tuple[Any, float]] = {}
        self._clock = clock

    @property
    def size(self) -> int:
        """Number of stored entries, including ones not yet evicted."""
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        """
        Get a live value.

        Args:
            key: Cache key

        Returns:
            The value, or None on miss or after expiry
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """
        Store a value, replacing any previous entry for the key.

        Args:
            key: Cache key
            value: Value to store (never patched afterwards)
            ttl_seconds: Lifetime from now
        """
        now = self._clock()
        self._purge_expired(now)
        self._entries[key] = (value, now + ttl_seconds)

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]

    def clear_all(self) -> int:
        """
        Remove all entries.

        Returns:
            Number of entries removed
        """
        count = len(self._entries)
        self._entries.clear()
        return count


_tier_cache: TierCache | None = None


def get_tier_cache() -> TierCache:
    """Get the process-wide tier cache, creating it on first use."""
    global _tier_cache
    if _tier_cache is None:
        _tier_cache = TierCache()
    return _tier_cache


def reset_tier_cache() -> None:
    """Drop the process-wide cache (useful for testing)."""
    global _tier_cache
    _tier_cache = None
