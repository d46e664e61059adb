"""In-memory CRUD store for alert rules and report schedules.

Stands in for the persistence backend: ``list``, ``get``, ``create``,
``update`` and ``delete`` only, no business logic.  Every read returns a
deep copy so a caller working on a rule holds a consistent snapshot that
concurrent edits cannot change underneath it.
"""
from __future__ import annotations

import copy
import threading
from dataclasses import fields
from typing import Any, Generic, Iterable, Mapping, Protocol, TypeVar

from .errors import NotFoundError

T = TypeVar("T")


class Store(Protocol[T]):
    def list(self) -> list[T]: ...

    def get(self, item_id: str) -> T | None: ...

    def create(self, item: T) -> T: ...

    def update(self, item_id: str, changes: Mapping[str, Any]) -> T: ...

    def delete(self, item_id: str) -> bool: ...


class MemoryStore(Generic[T]):
    """Thread-safe dict-backed store keyed by the items' ``id`` attribute."""

    def __init__(self, items: Iterable[T] = ()) -> None:
        self._items: dict[str, T] = {}
        self._lock = threading.Lock()
        for item in items:
            self.create(item)

    def list(self) -> list[T]:
        with self._lock:
            return [copy.deepcopy(item) for item in self._items.values()]

    def get(self, item_id: str) -> T | None:
        with self._lock:
            item = self._items.get(item_id)
            return copy.deepcopy(item) if item is not None else None

    def create(self, item: T) -> T:
        item_id = getattr(item, "id")
        with self._lock:
            if item_id in self._items:
                raise ValueError(f"duplicate id {item_id!r}")
            self._items[item_id] = copy.deepcopy(item)
        return copy.deepcopy(item)

    def update(self, item_id: str, changes: Mapping[str, Any]) -> T:
        """Apply *changes* field by field; fields not named are left alone."""
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                raise NotFoundError(f"no item with id {item_id!r}")
            known = {f.name for f in fields(item)}  # type: ignore[arg-type]
            unknown = set(changes) - known
            if unknown:
                raise ValueError(f"unknown fields: {', '.join(sorted(unknown))}")
            for key, value in changes.items():
                setattr(item, key, copy.deepcopy(value))
            return copy.deepcopy(item)

    def delete(self, item_id: str) -> bool:
        with self._lock:
            return self._items.pop(item_id, None) is not None

    def __len__(self) -> int:
        return len(self._items)
