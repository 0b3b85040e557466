"""
Crypto materials cache.

A bounded, thread-safe LRU cache of negotiated encryption materials. An entry
stops being served once it is older than ``max_entry_age_ms`` or has been
used ``max_entry_uses`` times; expired entries are dropped lazily on lookup.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Mapping, Optional

from .context import serialize_context
from .errors import ConfigurationError

if TYPE_CHECKING:
    from .materials import CryptoMaterial

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> float:
    return time.time() * 1000.0


def cache_key(encryption_context: Mapping[str, str], provider_id: str) -> str:
    """Deterministic cache key for a context under a given provider."""
    digest = hashlib.sha256()
    digest.update(provider_id.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(serialize_context(encryption_context))
    return digest.hexdigest()


@dataclass
class CacheEntry:
    """Cached material with its age and usage bookkeeping."""

    material: CryptoMaterial
    created_at: float
    use_count: int = 0


@dataclass
class CacheStats:
    """Counters for cache diagnostics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0


class CryptoMaterialsCache:
    """
    LRU cache with age and use-count limits.

    All bookkeeping happens under one lock; a lookup and its use-count
    increment are a single atomic step.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        max_entry_age_ms: float = 300000,
        max_entry_uses: int = 1000,
        clock: Callable[[], float] = _wall_clock_ms,
    ) -> None:
        if max_entries < 1:
            raise ConfigurationError("max_entries must be at least 1")
        if max_entry_uses < 1:
            raise ConfigurationError("max_entry_uses must be at least 1")
        if max_entry_age_ms <= 0:
            raise ConfigurationError("max_entry_age_ms must be positive")

        self._max_entries = max_entries
        self._max_entry_age_ms = max_entry_age_ms
        self._max_entry_uses = max_entry_uses
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._stats = CacheStats()

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return (
            entry.use_count >= self._max_entry_uses
            or now - entry.created_at > self._max_entry_age_ms
        )

    def get(self, key: str) -> Optional[CryptoMaterial]:
        """
        Return the cached material for ``key`` and count one use of it.

        Returns None when the key is absent or its entry has expired.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                self._stats.misses += 1
                self._stats.evictions += 1
                logger.debug(
                    "Evicted expired cache entry after %d uses", entry.use_count
                )
                return None

            entry.use_count += 1
            self._entries.move_to_end(key)
            self._stats.hits += 1
            return entry.material

    def put(self, key: str, material: CryptoMaterial) -> None:
        """
        Store freshly negotiated material.

        The negotiating request counts as the entry's first use.
        """
        with self._lock:
            self._entries[key] = CacheEntry(
                material=material, created_at=self._clock(), use_count=1
            )
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                self._stats.evictions += 1
                logger.debug("Evicted least recently used cache entry")

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def stats(self) -> CacheStats:
        """Snapshot of the hit/miss/eviction counters."""
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
            )
