"""In-process LevelStore for embedding and tests."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager

from levelcore.exceptions import StoreError
from levelcore.store import PlayerLevelData


class _MemoryMigrationScope:
    def __init__(self, snapshot: dict[uuid.UUID, int]) -> None:
        self._snapshot = snapshot
        self._staged: dict[uuid.UUID, int] = {}
        self.applied: dict[uuid.UUID, int] = {}

    async def stream_all(self, batch_size: int) -> AsyncIterator[tuple[uuid.UUID, int]]:
        for index, (identity, xp) in enumerate(self._snapshot.items(), start=1):
            yield identity, xp
            if index % batch_size == 0:
                await asyncio.sleep(0)

    async def stage(self, rows: Sequence[tuple[uuid.UUID, int]]) -> None:
        for identity, xp in rows:
            if identity in self._staged:
                msg = f"Identity {identity} staged twice"
                raise StoreError(msg)
            self._staged[identity] = xp

    async def apply_staged(self) -> int:
        self.applied = {identity: xp for identity, xp in self._staged.items() if identity in self._snapshot}
        return len(self.applied)


class MemoryLevelStore:
    """Dict-backed store. Migration results become visible only on commit."""

    def __init__(self, rows: Mapping[uuid.UUID, int] | None = None, meta: Mapping[str, str] | None = None) -> None:
        self.rows: dict[uuid.UUID, int] = dict(rows or {})
        self.meta: dict[str, str] = dict(meta or {})
        self._migration_lock = asyncio.Lock()
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            msg = "Level store is closed"
            raise StoreError(msg)

    async def load(self, identity: uuid.UUID) -> PlayerLevelData | None:
        self._ensure_open()
        if identity not in self.rows:
            return None
        return PlayerLevelData(identity=identity, xp=self.rows[identity])

    async def save(self, data: PlayerLevelData) -> None:
        self._ensure_open()
        self.rows[data.identity] = data.xp

    async def exists(self, identity: uuid.UUID) -> bool:
        self._ensure_open()
        return identity in self.rows

    async def stream_all(self, batch_size: int = 10_000) -> AsyncIterator[tuple[uuid.UUID, int]]:
        self._ensure_open()
        for identity, xp in list(self.rows.items()):
            yield identity, xp

    async def get_meta(self, key: str) -> str | None:
        self._ensure_open()
        return self.meta.get(key)

    async def put_meta(self, key: str, value: str) -> None:
        await self.put_meta_many({key: value})

    async def put_meta_many(self, entries: Mapping[str, str]) -> None:
        self._ensure_open()
        self.meta.update(entries)

    @asynccontextmanager
    async def migration_scope(self) -> AsyncIterator[_MemoryMigrationScope]:
        self._ensure_open()
        async with self._migration_lock:
            scope = _MemoryMigrationScope(dict(self.rows))
            yield scope
            self.rows.update(scope.applied)

    async def close(self) -> None:
        self._closed = True
