"""In-memory collection store.

Collections are keyed by schema name and hold records keyed by ``id``.
Missing collections behave as empty; missing records are reported as
``None``, never raised.
"""

import logging
import uuid
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)


class Store:
    """Process-lifetime mapping from collection name to records."""

    def __init__(self):
        self._collections: dict[str, dict[str, dict]] = {}

    def list(self, name: str) -> list[dict]:
        """All records of a collection in insertion order."""
        return [dict(r) for r in self._collections.get(name, {}).values()]

    def get(self, name: str, id: Any) -> dict | None:
        record = self._collections.get(name, {}).get(str(id))
        return dict(record) if record is not None else None

    def create(self, name: str, record: dict) -> dict:
        """Insert a record, generating an ``id`` when it has none.

        A record whose ``id`` already exists replaces the stored one.
        """
        stored = dict(record)
        if stored.get("id") in (None, ""):
            stored["id"] = str(uuid.uuid4())
        self._collections.setdefault(name, {})[str(stored["id"])] = stored
        return dict(stored)

    def update(self, name: str, id: Any, partial: dict) -> dict | None:
        """Shallow-merge ``partial`` into an existing record.

        The record keeps its ``id``. Returns None if the record is absent.
        """
        records = self._collections.get(name, {})
        key = str(id)
        if key not in records:
            return None
        merged = {**records[key], **partial, "id": records[key]["id"]}
        records[key] = merged
        return dict(merged)

    def delete(self, name: str, id: Any) -> dict | None:
        """Remove a record and return it, or None if it was absent."""
        removed = self._collections.get(name, {}).pop(str(id), None)
        return dict(removed) if removed is not None else None

    def clear(self, name: str | None = None) -> None:
        if name is None:
            self._collections.clear()
        else:
            self._collections.pop(name, None)

    def collections(self):
        return list(self._collections)

    def count(self, name: str) -> int:
        return len(self._collections.get(name, {}))

    def __contains__(self, name: str) -> bool:
        return name in self._collections


class StoreCall(NamedTuple):
    """What a store method returned, tagged with the method that returned it."""

    origin: str  # list / get / create / update / delete / clear
    value: Any


class TrackedStore:
    """Store view handed to handler scripts.

    Delegates to the real store and remembers the result of every call,
    so the handler executor can tell where a returned value came from.
    """

    def __init__(self, store: Store):
        self._store = store
        self.calls: list[StoreCall] = []

    def _track(self, origin: str, value: Any) -> Any:
        self.calls.append(StoreCall(origin, value))
        return value

    def list(self, name: str) -> list[dict]:
        return self._track("list", self._store.list(name))

    def get(self, name: str, id: Any) -> dict | None:
        return self._track("get", self._store.get(name, id))

    def create(self, name: str, record: dict) -> dict:
        return self._track("create", self._store.create(name, record))

    def update(self, name: str, id: Any, partial: dict) -> dict | None:
        return self._track("update", self._store.update(name, id, partial))

    def delete(self, name: str, id: Any) -> dict | None:
        return self._track("delete", self._store.delete(name, id))

    def clear(self, name: str | None = None) -> None:
        return self._track("clear", self._store.clear(name))

    def origin_of(self, value: Any) -> StoreCall | None:
        """The most recent call whose result is ``value`` itself."""
        for call in reversed(self.calls):
            if call.value is value:
                return call
        return None
