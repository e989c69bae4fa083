"""Shared test fixtures."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from levelcore.config import get_settings
from levelcore.formulas.variants import ExponentialFormula, LinearFormula, TableFormula
from levelcore.memory_store import MemoryLevelStore
from levelcore.service import LevelService
from levelcore.sql_store import SqlLevelStore


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def player_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def memory_store() -> MemoryLevelStore:
    return MemoryLevelStore()


@pytest.fixture
def exponential() -> ExponentialFormula:
    return ExponentialFormula(base_xp=100.0, exponent=1.7)


@pytest.fixture
def linear() -> LinearFormula:
    return LinearFormula(xp_per_level=100)


@pytest.fixture
def small_table() -> TableFormula:
    return TableFormula(floors=(0, 100, 250), source="levels.csv")


@pytest.fixture
def linear_service(linear: LinearFormula, memory_store: MemoryLevelStore) -> LevelService:
    return LevelService(linear, memory_store)


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'levelcore.db'}"


@pytest_asyncio.fixture
async def sql_store(database_url: str) -> AsyncGenerator[SqlLevelStore, None]:
    """File-backed SQLite store, dropped with tmp_path."""
    store = await SqlLevelStore.open(database_url)
    yield store
    await store.close()
