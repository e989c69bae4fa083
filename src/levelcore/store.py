"""The storage contract the leveling core depends on.

The core never talks to a database directly. Anything that satisfies
``LevelStore`` can back a ``LevelService`` and a ``MigrationEngine``.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class PlayerLevelData:
    """Stored XP for one identity."""

    identity: uuid.UUID
    xp: int = 0


class MigrationScope(Protocol):
    """One transaction spanning a migration's read-then-write sequence.

    Staged rows are invisible until ``apply_staged`` runs, and nothing is
    durable until the owning context exits without an exception.
    """

    def stream_all(self, batch_size: int) -> AsyncIterator[tuple[uuid.UUID, int]]: ...

    async def stage(self, rows: Sequence[tuple[uuid.UUID, int]]) -> None: ...

    async def apply_staged(self) -> int: ...


class LevelStore(Protocol):
    async def load(self, identity: uuid.UUID) -> PlayerLevelData | None: ...

    async def save(self, data: PlayerLevelData) -> None: ...

    async def exists(self, identity: uuid.UUID) -> bool: ...

    def stream_all(self, batch_size: int = 10_000) -> AsyncIterator[tuple[uuid.UUID, int]]: ...

    async def get_meta(self, key: str) -> str | None: ...

    async def put_meta(self, key: str, value: str) -> None: ...

    async def put_meta_many(self, entries: Mapping[str, str]) -> None: ...

    def migration_scope(self) -> AbstractAsyncContextManager[MigrationScope]: ...

    async def close(self) -> None: ...
