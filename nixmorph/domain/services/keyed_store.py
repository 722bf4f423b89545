"""
Keyed Store

Architectural Intent:
- Thread-safe string-keyed map shared by concurrent host pipelines
- Backs both the build cache ("closure:<host>" -> store path) and the
  per-label-value semaphore registry ("<label>=<value>" -> semaphore)
- get_or_set is atomic: under concurrent first access exactly one default
  is installed and every caller sees that same value

Design Decisions:
- One lock per store; keys are independent and host counts stay in the
  low thousands, so there is no point in striping
- threading.Lock rather than asyncio.Lock: no operation awaits while holding
  it, and executor threads may touch the store too
"""

from __future__ import annotations
import threading
from typing import Generic, TypeVar

from nixmorph.domain.errors import KeyNotFoundError

T = TypeVar("T")


class KeyedStore(Generic[T]):
    def __init__(self, name: str = "store") -> None:
        self._name = name
        self._lock = threading.Lock()
        self._items: dict[str, T] = {}

    @property
    def name(self) -> str:
        return self._name

    def get(self, key: str) -> T:
        with self._lock:
            try:
                return self._items[key]
            except KeyError:
                raise KeyNotFoundError(self._name, key) from None

    def update(self, key: str, value: T) -> None:
        with self._lock:
            self._items[key] = value

    def get_or_set(self, key: str, default: T) -> T:
        with self._lock:
            return self._items.setdefault(key, default)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __repr__(self) -> str:
        return f"KeyedStore(name={self._name!r}, keys={len(self)})"
