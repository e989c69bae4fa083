"""LevelStore backed by an async SQLAlchemy engine (PostgreSQL or SQLite)."""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy import BigInteger, Column, MetaData, Table, Uuid, delete, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession, async_sessionmaker

from levelcore.database import create_engine, create_schema
from levelcore.db.models import LevelMeta, PlayerLevel
from levelcore.exceptions import StoreError
from levelcore.store import PlayerLevelData

logger = structlog.get_logger()

# Per-connection scratch area for staged migration results
xp_migration_scratch = Table(
    "xp_migration_scratch",
    MetaData(),
    Column("player_id", Uuid, primary_key=True),
    Column("xp", BigInteger, nullable=False),
    prefixes=["TEMPORARY"],
)


async def _stream_rows(conn: AsyncConnection, batch_size: int) -> AsyncIterator[tuple[uuid.UUID, int]]:
    """Forward-only read of every (player_id, xp), fetched batch_size rows at a time."""
    result = await conn.stream(
        select(PlayerLevel.player_id, PlayerLevel.xp).execution_options(yield_per=batch_size)
    )
    async for partition in result.partitions():
        for player_id, xp in partition:
            yield player_id, xp


class _SqlMigrationScope:
    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    def stream_all(self, batch_size: int) -> AsyncIterator[tuple[uuid.UUID, int]]:
        return _stream_rows(self._conn, batch_size)

    async def stage(self, rows: Sequence[tuple[uuid.UUID, int]]) -> None:
        if not rows:
            return
        await self._conn.execute(
            insert(xp_migration_scratch),
            [{"player_id": player_id, "xp": xp} for player_id, xp in rows],
        )

    async def apply_staged(self) -> int:
        """Copy staged XP over player_levels with one correlated UPDATE."""
        levels = PlayerLevel.__table__
        staged_xp = (
            select(xp_migration_scratch.c.xp)
            .where(xp_migration_scratch.c.player_id == levels.c.player_id)
            .scalar_subquery()
        )
        result = await self._conn.execute(
            update(levels)
            .where(levels.c.player_id.in_(select(xp_migration_scratch.c.player_id)))
            .values(xp=staged_xp)
        )
        return result.rowcount


class SqlLevelStore:
    """Durable identity -> XP mapping plus the formula metadata side table."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        self._closed = False

    @classmethod
    async def open(cls, url: str, *, pool_size: int = 10, max_overflow: int = 10) -> SqlLevelStore:
        """Create the engine and make sure both tables exist."""
        engine = create_engine(url, pool_size=pool_size, max_overflow=max_overflow)
        try:
            await create_schema(engine)
        except SQLAlchemyError as exc:
            await engine.dispose()
            msg = "Failed to create level tables"
            raise StoreError(msg) from exc
        logger.info("level_store_opened", backend=engine.dialect.name)
        return cls(engine)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    def _ensure_open(self) -> None:
        if self._closed:
            msg = "Level store is closed"
            raise StoreError(msg)

    def _upsert(self, model: Any, key_column: str, values: dict[str, Any]) -> Any:
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(model).values(**values)
        elif dialect == "sqlite":
            stmt = sqlite_insert(model).values(**values)
        else:
            msg = f"Upsert is not supported on {dialect}"
            raise StoreError(msg)
        return stmt.on_conflict_do_update(
            index_elements=[key_column],
            set_={column: getattr(stmt.excluded, column) for column in values if column != key_column},
        )

    async def load(self, identity: uuid.UUID) -> PlayerLevelData | None:
        self._ensure_open()
        try:
            async with self._sessions() as session:
                result = await session.execute(select(PlayerLevel.xp).where(PlayerLevel.player_id == identity))
                xp = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            msg = f"Failed to load level data for {identity}"
            raise StoreError(msg) from exc
        return None if xp is None else PlayerLevelData(identity=identity, xp=xp)

    async def save(self, data: PlayerLevelData) -> None:
        self._ensure_open()
        stmt = self._upsert(PlayerLevel, "player_id", {"player_id": data.identity, "xp": data.xp})
        try:
            async with self._sessions.begin() as session:
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            msg = f"Failed to save level data for {data.identity}"
            raise StoreError(msg) from exc

    async def exists(self, identity: uuid.UUID) -> bool:
        self._ensure_open()
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    select(PlayerLevel.player_id).where(PlayerLevel.player_id == identity)
                )
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as exc:
            msg = f"exists() failed for {identity}"
            raise StoreError(msg) from exc

    async def stream_all(self, batch_size: int = 10_000) -> AsyncIterator[tuple[uuid.UUID, int]]:
        self._ensure_open()
        try:
            async with self._engine.connect() as conn:
                async for row in _stream_rows(conn, batch_size):
                    yield row
        except SQLAlchemyError as exc:
            msg = "Failed to stream level data"
            raise StoreError(msg) from exc

    async def get_meta(self, key: str) -> str | None:
        self._ensure_open()
        try:
            async with self._sessions() as session:
                result = await session.execute(select(LevelMeta.meta_value).where(LevelMeta.meta_key == key))
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            msg = f"Failed to read meta key {key}"
            raise StoreError(msg) from exc

    async def put_meta(self, key: str, value: str) -> None:
        await self.put_meta_many({key: value})

    async def put_meta_many(self, entries: Mapping[str, str]) -> None:
        """Write several meta keys in one transaction."""
        self._ensure_open()
        try:
            async with self._sessions.begin() as session:
                for key, value in entries.items():
                    await session.execute(
                        self._upsert(LevelMeta, "meta_key", {"meta_key": key, "meta_value": value})
                    )
        except SQLAlchemyError as exc:
            msg = f"Failed to write meta keys {sorted(entries)}"
            raise StoreError(msg) from exc

    @asynccontextmanager
    async def migration_scope(self) -> AsyncIterator[_SqlMigrationScope]:
        """Hold one connection and one transaction for the whole migration.

        Leaving the block normally commits; any exception rolls back, so
        player_levels is either fully rewritten or untouched.
        """
        self._ensure_open()
        try:
            async with self._engine.connect() as conn:
                async with conn.begin():
                    await conn.run_sync(lambda sync_conn: xp_migration_scratch.create(sync_conn, checkfirst=True))
                    await conn.execute(delete(xp_migration_scratch))
                    yield _SqlMigrationScope(conn)
                    await conn.run_sync(lambda sync_conn: xp_migration_scratch.drop(sync_conn, checkfirst=True))
        except SQLAlchemyError as exc:
            msg = "Formula migration transaction failed"
            raise StoreError(msg) from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info("level_store_closing")
        await self._engine.dispose()
