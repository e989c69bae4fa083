"""Level-preserving XP migration between level formulas.

When the configured formula differs from the one that produced the XP on
disk, every stored XP value is rewritten to the new formula's floor for
the level the identity had under the old formula. The rewrite runs in one
store transaction; the new descriptor is recorded only after it commits.
"""

from __future__ import annotations

import asyncio
import enum
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from levelcore.descriptor import META_PARAMS_KEY, META_TYPE_KEY, FormulaDescriptor
from levelcore.exceptions import MigrationError
from levelcore.formulas.factory import formula_from_descriptor
from levelcore.formulas.variants import LevelFormula
from levelcore.store import LevelStore

logger = structlog.get_logger()

DEFAULT_BATCH_SIZE = 10_000
DEFAULT_PROGRESS_EVERY = 50_000


class MigrationStatus(str, enum.Enum):
    BOOTSTRAPPED = "bootstrapped"  # no prior descriptor; adopted without rewriting
    UNCHANGED = "unchanged"
    MIGRATED = "migrated"
    DISABLED = "disabled"


@dataclass(frozen=True)
class MigrationResult:
    status: MigrationStatus
    rows: int = 0
    distinct_levels: int = 0
    previous: FormulaDescriptor | None = None
    elapsed_seconds: float = 0.0


class MigrationEngine:
    """Rewrites stored XP so each identity keeps its level under a new formula."""

    def __init__(
        self,
        store: LevelStore,
        *,
        data_dir: str | Path = ".",
        batch_size: int = DEFAULT_BATCH_SIZE,
        progress_every: int = DEFAULT_PROGRESS_EVERY,
        timeout_seconds: float | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> None:
        if batch_size < 1:
            msg = f"batch_size must be >= 1, got {batch_size}"
            raise ValueError(msg)
        self._store = store
        self._data_dir = data_dir
        self._batch_size = batch_size
        self._progress_every = max(1, progress_every)
        self._timeout = timeout_seconds
        self._on_progress = on_progress

    async def stored_descriptor(self) -> FormulaDescriptor | None:
        """Descriptor of the formula that produced the XP currently stored."""
        formula_type = await self._store.get_meta(META_TYPE_KEY)
        params = await self._store.get_meta(META_PARAMS_KEY)
        if formula_type is None or params is None:
            return None
        return FormulaDescriptor(type=formula_type, params=params)

    async def migrate_if_needed(
        self,
        new_formula: LevelFormula,
        new_descriptor: FormulaDescriptor,
        *,
        enabled: bool = True,
    ) -> MigrationResult:
        """Bring stored XP in line with ``new_formula``.

        Raises DescriptorError if the stored descriptor cannot be decoded and
        MigrationError if the rewrite fails; in both cases nothing persisted
        has changed.
        """
        if not enabled:
            logger.warning("formula_migration_disabled", formula_type=new_descriptor.type)
            return MigrationResult(status=MigrationStatus.DISABLED)

        previous = await self.stored_descriptor()
        if previous is None:
            await self._store.put_meta_many(new_descriptor.to_meta())
            logger.info("formula_descriptor_adopted", formula_type=new_descriptor.type, params=new_descriptor.params)
            return MigrationResult(status=MigrationStatus.BOOTSTRAPPED)

        if previous == new_descriptor:
            return MigrationResult(status=MigrationStatus.UNCHANGED, previous=previous)

        old_formula = formula_from_descriptor(previous, self._data_dir)

        logger.info(
            "formula_migration_started",
            from_type=previous.type,
            from_params=previous.params,
            to_type=new_descriptor.type,
            to_params=new_descriptor.params,
        )
        started = time.monotonic()
        try:
            if self._timeout is None:
                rows, distinct_levels = await self._rewrite(old_formula, new_formula)
            else:
                rows, distinct_levels = await asyncio.wait_for(
                    self._rewrite(old_formula, new_formula), timeout=self._timeout
                )
        except TimeoutError as exc:
            logger.error("formula_migration_timed_out", timeout_seconds=self._timeout)
            msg = f"Formula migration exceeded {self._timeout}s and was rolled back"
            raise MigrationError(msg) from exc
        except MigrationError:
            logger.error("formula_migration_failed", exc_info=True)
            raise
        except Exception as exc:
            logger.error("formula_migration_failed", exc_info=True)
            msg = "Failed to migrate XP to preserve levels"
            raise MigrationError(msg) from exc

        # Only record the new formula once the rewrite has committed
        await self._store.put_meta_many(new_descriptor.to_meta())

        elapsed = time.monotonic() - started
        logger.info(
            "formula_migration_completed",
            rows=rows,
            distinct_levels=distinct_levels,
            elapsed_seconds=round(elapsed, 3),
        )
        return MigrationResult(
            status=MigrationStatus.MIGRATED,
            rows=rows,
            distinct_levels=distinct_levels,
            previous=previous,
            elapsed_seconds=elapsed,
        )

    async def _rewrite(self, old_formula: LevelFormula, new_formula: LevelFormula) -> tuple[int, int]:
        new_xp_by_level: dict[int, int] = {}
        batch: list[tuple[uuid.UUID, int]] = []
        processed = 0

        async with self._store.migration_scope() as scope:
            async for identity, old_xp in scope.stream_all(self._batch_size):
                level = old_formula.level_for_xp(old_xp)
                new_xp = new_xp_by_level.get(level)
                if new_xp is None:
                    new_xp = _target_xp(new_formula, level)
                    new_xp_by_level[level] = new_xp

                batch.append((identity, new_xp))
                if len(batch) >= self._batch_size:
                    await scope.stage(batch)
                    batch = []

                processed += 1
                if processed % self._progress_every == 0:
                    self._report_progress(processed)

            if batch:
                await scope.stage(batch)
            await scope.apply_staged()

        return processed, len(new_xp_by_level)

    def _report_progress(self, processed: int) -> None:
        logger.info("formula_migration_progress", rows=processed)
        if self._on_progress is None:
            return
        try:
            self._on_progress(processed)
        except Exception:
            logger.warning("migration_progress_callback_failed", rows=processed, exc_info=True)


def _target_xp(new_formula: LevelFormula, level: int) -> int:
    """XP floor of ``level`` under the new formula, checked to map back to ``level``."""
    new_xp = new_formula.xp_for_level(level)
    if new_formula.level_for_xp(new_xp) != level:
        msg = (
            f"Level {level} cannot be preserved by the new {new_formula.formula_type.value} formula "
            f"(max level {new_formula.max_level})"
        )
        raise MigrationError(msg)
    return new_xp
