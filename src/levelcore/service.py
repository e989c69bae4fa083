"""XP bookkeeping and level derivation for tracked identities."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable

import structlog

from levelcore.formulas.base import INT64_MAX
from levelcore.formulas.variants import LevelFormula
from levelcore.listeners import LevelChange, Listener, ListenerChannel, XpChange
from levelcore.ranks import Rank, RankBook
from levelcore.store import LevelStore, PlayerLevelData

logger = structlog.get_logger()


class LevelService:
    """Per-identity XP with write-through persistence and change notifications.

    State is loaded lazily from the store and kept for the life of the
    service. Every mutation takes the identity's lock, persists, and only
    then updates the cache, so a failed save leaves cache and store in
    agreement. Notifications run after the lock is released: XP gain/loss
    first, then level up/down.
    """

    def __init__(self, formula: LevelFormula, store: LevelStore, *, ranks: RankBook | None = None) -> None:
        self._formula = formula
        self._store = store
        self._ranks = ranks or RankBook()
        self._cache: dict[uuid.UUID, PlayerLevelData] = {}
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}

        self.level_up: ListenerChannel[LevelChange] = ListenerChannel("level_up")
        self.level_down: ListenerChannel[LevelChange] = ListenerChannel("level_down")
        self.xp_gain: ListenerChannel[XpChange] = ListenerChannel("xp_gain")
        self.xp_loss: ListenerChannel[XpChange] = ListenerChannel("xp_loss")

    @property
    def formula(self) -> LevelFormula:
        return self._formula

    def register_level_up_listener(self, listener: Listener[LevelChange]) -> None:
        self.level_up.register(listener)

    def unregister_level_up_listener(self, listener: Listener[LevelChange]) -> bool:
        return self.level_up.unregister(listener)

    def register_level_down_listener(self, listener: Listener[LevelChange]) -> None:
        self.level_down.register(listener)

    def unregister_level_down_listener(self, listener: Listener[LevelChange]) -> bool:
        return self.level_down.unregister(listener)

    def register_xp_gain_listener(self, listener: Listener[XpChange]) -> None:
        self.xp_gain.register(listener)

    def unregister_xp_gain_listener(self, listener: Listener[XpChange]) -> bool:
        return self.xp_gain.unregister(listener)

    def register_xp_loss_listener(self, listener: Listener[XpChange]) -> None:
        self.xp_loss.register(listener)

    def unregister_xp_loss_listener(self, listener: Listener[XpChange]) -> bool:
        return self.xp_loss.unregister(listener)

    async def get_xp(self, identity: uuid.UUID) -> int:
        return (await self._current(identity)).xp

    async def get_level(self, identity: uuid.UUID) -> int:
        return self._formula.level_for_xp((await self._current(identity)).xp)

    async def get_rank(self, identity: uuid.UUID) -> Rank | None:
        return self._ranks.rank_for_level(await self.get_level(identity))

    def get_xp_for_level(self, level: int) -> int:
        return self._formula.xp_for_level(level)

    async def add_xp(self, identity: uuid.UUID, amount: int) -> int:
        """Add XP and return the new total. Level-up fires only if the level rose."""
        old_xp, new_xp = await self._mutate(identity, lambda xp: xp + amount)
        old_level, new_level = self._levels(old_xp, new_xp)

        await self.xp_gain.dispatch(XpChange(identity=identity, amount=amount, old_xp=old_xp, new_xp=new_xp))
        if new_level > old_level:
            await self.level_up.dispatch(LevelChange(identity=identity, old_level=old_level, new_level=new_level))
        return new_xp

    async def remove_xp(self, identity: uuid.UUID, amount: int) -> int:
        """Remove XP (never below zero) and return the new total."""
        old_xp, new_xp = await self._mutate(identity, lambda xp: xp - amount)
        old_level, new_level = self._levels(old_xp, new_xp)

        await self.xp_loss.dispatch(XpChange(identity=identity, amount=amount, old_xp=old_xp, new_xp=new_xp))
        if new_level < old_level:
            await self.level_down.dispatch(LevelChange(identity=identity, old_level=old_level, new_level=new_level))
        return new_xp

    async def set_xp(self, identity: uuid.UUID, xp: int) -> int:
        """Assign XP directly (clamped at zero) and return it."""
        old_xp, new_xp = await self._mutate(identity, lambda _: xp)
        await self._notify_level_change(identity, old_xp, new_xp)
        return new_xp

    async def add_level(self, identity: uuid.UUID, levels: int) -> int:
        return await self._shift_level(identity, lambda level: level + levels)

    async def remove_level(self, identity: uuid.UUID, levels: int) -> int:
        return await self._shift_level(identity, lambda level: level - levels)

    async def set_level(self, identity: uuid.UUID, level: int) -> int:
        """Move to the XP floor of ``level`` and return the resulting level."""
        return await self._shift_level(identity, lambda _: level)

    async def _shift_level(self, identity: uuid.UUID, target: Callable[[int], int]) -> int:
        def compute(xp: int) -> int:
            level = target(self._formula.level_for_xp(xp))
            level = min(max(level, 0), self._formula.max_level)
            return self._formula.xp_for_level(level)

        old_xp, new_xp = await self._mutate(identity, compute)
        await self._notify_level_change(identity, old_xp, new_xp)
        return self._formula.level_for_xp(new_xp)

    def _lock_for(self, identity: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(identity)
        if lock is None:
            lock = self._locks.setdefault(identity, asyncio.Lock())
        return lock

    async def _load(self, identity: uuid.UUID) -> PlayerLevelData:
        """Cached state for ``identity``; the caller holds its lock."""
        data = self._cache.get(identity)
        if data is None:
            data = await self._store.load(identity) or PlayerLevelData(identity=identity, xp=0)
            self._cache[identity] = data
        return data

    async def _current(self, identity: uuid.UUID) -> PlayerLevelData:
        data = self._cache.get(identity)
        if data is not None:
            return data
        async with self._lock_for(identity):
            return await self._load(identity)

    async def _mutate(self, identity: uuid.UUID, compute: Callable[[int], int]) -> tuple[int, int]:
        async with self._lock_for(identity):
            current = await self._load(identity)
            new_xp = min(max(compute(current.xp), 0), INT64_MAX)
            updated = PlayerLevelData(identity=identity, xp=new_xp)
            await self._store.save(updated)
            self._cache[identity] = updated
        logger.debug("xp_updated", identity=str(identity), old_xp=current.xp, new_xp=new_xp)
        return current.xp, new_xp

    def _levels(self, old_xp: int, new_xp: int) -> tuple[int, int]:
        return self._formula.level_for_xp(old_xp), self._formula.level_for_xp(new_xp)

    async def _notify_level_change(self, identity: uuid.UUID, old_xp: int, new_xp: int) -> None:
        old_level, new_level = self._levels(old_xp, new_xp)
        change = LevelChange(identity=identity, old_level=old_level, new_level=new_level)
        if new_level > old_level:
            await self.level_up.dispatch(change)
        elif new_level < old_level:
            await self.level_down.dispatch(change)
