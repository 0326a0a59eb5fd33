"""Explicit cache objects passed by reference to their users."""

from collections import OrderedDict
from typing import Any, Generic, Hashable, Optional, Tuple, TypeVar

from ..interfaces import SystemTimeProvider, TimeProvider

V = TypeVar("V")


class BoundedSeenCache:
    """
    Fixed-capacity set of recently seen keys.

    Once full, adding a new key evicts the oldest one. Seeing a key again
    does not refresh its position.
    """

    def __init__(self, capacity: int = 10_000):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive: {capacity}")
        self._capacity = capacity
        self._keys: "OrderedDict[Hashable, None]" = OrderedDict()

    def add(self, key: Hashable) -> bool:
        """Record ``key``; returns False if it was already present."""
        if key in self._keys:
            return False
        self._keys[key] = None
        if len(self._keys) > self._capacity:
            self._keys.popitem(last=False)
        return True

    def __contains__(self, key: Hashable) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


class TTLCache(Generic[V]):
    """Key/value cache whose entries expire ``ttl`` seconds after being set."""

    def __init__(
        self,
        ttl: float,
        max_entries: int = 1024,
        time_provider: Optional[TimeProvider] = None,
    ):
        self._ttl = ttl
        self._max_entries = max_entries
        self._time = time_provider or SystemTimeProvider()
        self._entries: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._time.current_timestamp() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: V) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (self._time.current_timestamp() + self._ttl, value)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
