"""
TTL-bounded key/value store

The primitive every cache in the package is built on, a thin layer over
cachetools.TLRUCache that adds per-entry TTLs, namespace (prefix)
operations and an injectable clock. All operations are plain synchronous
calls, so no two callers on the event loop can interleave inside one of them.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from cachetools import TLRUCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Stored value with its TTL and write time (epoch seconds)"""
    value: Any
    ttl: float
    created_at: float

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl


def _time_to_use(key: str, entry: CacheEntry, now: float) -> float:
    return now + entry.ttl


class TtlCache:
    """
    TTL key/value cache with an optional size bound

    Expired entries are never returned by get(), has() or keys(); they are
    dropped when touched or by an explicit sweep(). When max_size is
    exceeded, expired entries go first, then the least recently used one.

    Usage:
        cache = TtlCache(default_ttl=60.0)
        cache.set("devnet:MINT", price)
        cache.get("devnet:MINT")
        cache.set("devnet:SIG", result, ttl=10.0)
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_size: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
        name: str = "default",
    ):
        """
        Args:
            default_ttl: TTL in seconds used when set() is given none
            max_size: Maximum number of live entries (None for unbounded)
            clock: Time source returning epoch seconds (defaults to time.time)
            name: Label used in log messages
        """
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self._default_ttl = default_ttl
        self._clock = clock or time.time
        self._name = name
        self._entries = TLRUCache(
            maxsize=max_size if max_size is not None else math.inf,
            ttu=_time_to_use,
            timer=self._clock,
        )

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store value under key for ttl seconds (default_ttl if None)"""
        ttl = self._default_ttl if ttl is None else ttl
        # Rewrites count as the most recent use
        self._entries.pop(key, None)
        self._entries.expire()
        if self._entries.currsize >= self._entries.maxsize:
            logger.debug(f"Cache {self._name} full, evicting least recently used entry")
        self._entries[key] = CacheEntry(value=value, ttl=ttl, created_at=self._clock())

    def _entry(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for key, or default"""
        entry = self._entry(key)
        return default if entry is None else entry.value

    def has(self, key: str) -> bool:
        return key in self._entries

    def expires_at(self, key: str) -> Optional[float]:
        """Absolute expiry of a live entry, None if absent"""
        entry = self._entry(key)
        return None if entry is None else entry.expires_at

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def keys(self, prefix: Optional[str] = None) -> List[str]:
        """Live keys, optionally restricted to those starting with prefix"""
        self.sweep()
        keys = list(self._entries.keys())
        if prefix is None:
            return keys
        return [k for k in keys if k.startswith(prefix)]

    def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix, returns the count removed"""
        self.sweep()
        doomed = [k for k in list(self._entries.keys()) if k.startswith(prefix)]
        for key in doomed:
            self._entries.pop(key, None)
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Drop every expired entry, returns the count removed"""
        return len(self._entries.expire())

    def __len__(self) -> int:
        self.sweep()
        return self._entries.currsize

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __repr__(self) -> str:
        return f"TtlCache(name={self._name}, entries={self._entries.currsize}, ttl={self._default_ttl})"
