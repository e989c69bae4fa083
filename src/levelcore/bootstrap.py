"""Startup wiring: formula, store, migration, then the service."""

from __future__ import annotations

from types import TracebackType

import structlog

from levelcore.config import Settings, get_settings
from levelcore.descriptor import FormulaDescriptor, describe
from levelcore.formulas.factory import formula_from_settings
from levelcore.log_config import setup_logging
from levelcore.migration import MigrationEngine, MigrationResult
from levelcore.ranks import RankBook
from levelcore.service import LevelService
from levelcore.sql_store import SqlLevelStore
from levelcore.store import LevelStore

logger = structlog.get_logger()


class LevelingCore:
    """Owns a LevelService and the store behind it.

    The migration runs inside ``open`` before the service exists, so no
    live traffic can observe a half-migrated table.
    """

    def __init__(
        self,
        service: LevelService,
        store: LevelStore,
        descriptor: FormulaDescriptor,
        migration: MigrationResult,
        *,
        owns_store: bool = True,
    ) -> None:
        self.service = service
        self.store = store
        self.descriptor = descriptor
        self.migration = migration
        self._owns_store = owns_store
        self._closed = False

    @classmethod
    async def open(
        cls,
        settings: Settings | None = None,
        *,
        store: LevelStore | None = None,
        configure_logging: bool = False,
    ) -> LevelingCore:
        """Build everything from settings. Configuration or migration errors abort startup."""
        settings = settings or get_settings()
        if configure_logging:
            setup_logging(settings)

        formula = formula_from_settings(settings.formula, settings.data_dir)
        descriptor = describe(formula)
        ranks = RankBook.from_settings(settings.ranks)

        owns_store = store is None
        if store is None:
            store = await SqlLevelStore.open(
                settings.database_url,
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
            )

        try:
            engine = MigrationEngine(
                store,
                data_dir=settings.data_dir,
                batch_size=settings.migration_batch_size,
                progress_every=settings.migration_progress_every,
                timeout_seconds=settings.migration_timeout_seconds,
            )
            migration = await engine.migrate_if_needed(formula, descriptor, enabled=settings.formula.migrate_xp)
        except BaseException:
            if owns_store:
                await store.close()
            raise

        logger.info(
            "leveling_core_started",
            formula_type=descriptor.type,
            max_level=formula.max_level,
            migration=migration.status.value,
        )
        service = LevelService(formula, store, ranks=ranks)
        return cls(service, store, descriptor, migration, owns_store=owns_store)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_store:
            await self.store.close()

    async def __aenter__(self) -> LevelingCore:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
