"""Mempool decoding and watching."""

from .cache import BoundedSeenCache, TTLCache
from .decoder import MempoolDecoder
from .watcher import MempoolWatcher

__all__ = ["BoundedSeenCache", "MempoolDecoder", "MempoolWatcher", "TTLCache"]
