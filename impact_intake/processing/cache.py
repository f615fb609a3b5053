"""
Best-effort in-memory cache of recent processing outcomes.

Never authoritative: the persisted submission is the source of truth.
"""

import threading
from collections import OrderedDict
from typing import Any


class ResultCache:
    """Thread-safe bounded LRU mapping of submission id to outcome."""

    def __init__(self, max_size: int = 256):
        if max_size < 0:
            raise ValueError("max_size must be >= 0")
        self.max_size = max_size
        self._items: OrderedDict[str, Any] = OrderedDict()
        self._lock = threading.Lock()

    def put(self, key: str, value: Any) -> None:
        if self.max_size == 0:
            return
        with self._lock:
            self._items[key] = value
            self._items.move_to_end(key)
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)

    def get(self, key: str) -> Any | None:
        with self._lock:
            value = self._items.get(key)
            if value is not None:
                self._items.move_to_end(key)
            return value

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
