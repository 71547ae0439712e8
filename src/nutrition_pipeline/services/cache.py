"""Cache abstractions for nutrition lookups and per-run macro results."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

from nutrition_pipeline.domain.items import Item
from nutrition_pipeline.domain.nutrition import MacroResult


class Cache(Protocol):
    """Key-value cache with per-entry expiry."""

    def get(self, key: str) -> object | None:
        """Return a cached value if present and not expired."""

    def set(self, key: str, value: object, ttl_seconds: int) -> None:
        """Store a value for ttl_seconds."""


@dataclass
class _CacheEntry:
    value: object
    expires_at: datetime


@dataclass
class InMemoryCache(Cache):
    """Process-local TTL cache shared across pipeline runs."""

    max_entries: int = 5000
    _entries: dict[str, _CacheEntry] = field(default_factory=dict, repr=False)

    def get(self, key: str) -> object | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if datetime.now(tz=UTC) >= entry.expires_at:
            self._entries.pop(key, None)
            return None
        return entry.value

    def set(self, key: str, value: object, ttl_seconds: int) -> None:
        if key not in self._entries and len(self._entries) >= self.max_entries:
            # Oldest insertion goes first.
            self._entries.pop(next(iter(self._entries)))
        expires_at = datetime.now(tz=UTC) + timedelta(seconds=ttl_seconds)
        self._entries[key] = _CacheEntry(value=value, expires_at=expires_at)

    def __len__(self) -> int:
        return len(self._entries)


MacroCacheKey = tuple[str, float, str, str | None]


@dataclass
class MacroCache:
    """Macro results for a single pipeline run; never shared between runs."""

    _results: dict[MacroCacheKey, MacroResult] = field(default_factory=dict)
    hits: int = 0

    @staticmethod
    def key_for(item: Item) -> MacroCacheKey:
        state = item.resolution.state if item.resolution else item.state_hint
        return (item.key, item.quantity_value, item.quantity_unit, state)

    def get(self, item: Item) -> MacroResult | None:
        result = self._results.get(self.key_for(item))
        if result is not None:
            self.hits += 1
        return result

    def put(self, item: Item, result: MacroResult) -> None:
        self._results[self.key_for(item)] = result
