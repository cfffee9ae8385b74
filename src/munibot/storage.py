from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import Any, Callable

import msgpack


DEFAULT_STORE: dict[str, Any] = {
    "meta": {"version": 1, "namespace": "munibot"},
    "tables": {
        "guild_wallet": {},
        "guild_payout": {},
        "logging_channel": {},
        "autodelete_timer": {},
        "quote": {},
    },
    "logs": [],
}


class DocumentStore:
    """Schema-less documents keyed by (table, key), persisted to a single msgpack file.

    Document writes are flushed to disk before the call returns. The `logs` ring buffer
    is low priority and only marks the store dirty for `autosave_loop` to pick up.
    """

    def __init__(self, path: Path, namespace: str = "munibot") -> None:
        self.path = path
        self.namespace = namespace
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        self._dirty = False
        self._loaded = False
        self.data: dict[str, Any] = _clone_defaults()

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        async with self._lock:
            if not self.path.exists():
                self.data = _clone_defaults()
                self.data["meta"]["namespace"] = self.namespace
                await self._save_unlocked()
                self._loaded = True
                return
            raw = self.path.read_bytes()
            self.data = msgpack.unpackb(raw, raw=False)
            self._ensure_schema()
            self._loaded = True

    async def autosave_loop(self) -> None:
        while True:
            await asyncio.sleep(5)
            if self._dirty:
                await self.save()

    async def save(self) -> None:
        async with self._lock:
            await self._save_unlocked()

    async def _save_unlocked(self) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        packed = msgpack.packb(self.data, use_bin_type=True, default=str)
        tmp.write_bytes(packed)
        tmp.replace(self.path)
        self._dirty = False

    def touch(self) -> None:
        self._dirty = True

    def _ensure_schema(self) -> None:
        defaults = _clone_defaults()
        for key, value in defaults.items():
            if key not in self.data:
                self.data[key] = value
        tables = self.data["tables"]
        for table in defaults["tables"]:
            tables.setdefault(table, {})
        self._dirty = True

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        return self.data["tables"].setdefault(table, {})

    async def select(self, table: str, key: str) -> dict[str, Any] | None:
        async with self._lock:
            row = self._table(table).get(str(key))
            return dict(row) if row is not None else None

    async def select_all(self, table: str) -> list[dict[str, Any]]:
        async with self._lock:
            return [dict(row) for row in self._table(table).values()]

    async def query(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        async with self._lock:
            return [
                dict(row)
                for row in self._table(table).values()
                if all(row.get(field) == value for field, value in filters.items())
            ]

    async def create(self, table: str, content: dict[str, Any]) -> dict[str, Any]:
        key = uuid.uuid4().hex
        async with self._lock:
            row = {**content, "id": key}
            self._table(table)[key] = row
            await self._save_unlocked()
            return dict(row)

    async def create_numbered(self, table: str, content: dict[str, Any], field: str, **filters: Any) -> dict[str, Any]:
        """Insert a document whose `field` is one past the number of rows matching `filters`."""
        key = uuid.uuid4().hex
        async with self._lock:
            rows = self._table(table)
            number = 1 + sum(1 for row in rows.values() if all(row.get(name) == value for name, value in filters.items()))
            row = {**content, field: number, "id": key}
            rows[key] = row
            await self._save_unlocked()
            return dict(row)

    async def upsert(self, table: str, key: str, content: dict[str, Any]) -> dict[str, Any] | None:
        async with self._lock:
            row = {**content, "id": str(key)}
            self._table(table)[str(key)] = row
            await self._save_unlocked()
            return dict(row)

    async def merge(self, table: str, key: str, fields: dict[str, Any]) -> dict[str, Any] | None:
        """Update fields of an existing document; returns None when the document is absent."""
        async with self._lock:
            row = self._table(table).get(str(key))
            if row is None:
                return None
            row.update(fields)
            row["id"] = str(key)
            await self._save_unlocked()
            return dict(row)

    async def get_or_insert(self, table: str, key: str, content: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            rows = self._table(table)
            row = rows.get(str(key))
            if row is None:
                row = {**content, "id": str(key)}
                rows[str(key)] = row
                await self._save_unlocked()
            return dict(row)

    async def update(
        self,
        table: str,
        key: str,
        mutate: Callable[[dict[str, Any]], dict[str, Any]],
    ) -> dict[str, Any] | None:
        """Atomic read-modify-write of one document.

        `mutate` receives a copy and returns the replacement. Anything it raises propagates
        and leaves the stored document untouched.
        """
        async with self._lock:
            rows = self._table(table)
            row = rows.get(str(key))
            if row is None:
                return None
            updated = mutate(dict(row))
            updated["id"] = str(key)
            rows[str(key)] = updated
            await self._save_unlocked()
            return dict(updated)

    async def delete(self, table: str, key: str) -> dict[str, Any] | None:
        async with self._lock:
            row = self._table(table).pop(str(key), None)
            if row is None:
                return None
            await self._save_unlocked()
            return dict(row)


def _clone_defaults() -> dict[str, Any]:
    return msgpack.unpackb(msgpack.packb(DEFAULT_STORE, use_bin_type=True), raw=False)
