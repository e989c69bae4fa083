"""XP and level progression engine."""

from levelcore.bootstrap import LevelingCore
from levelcore.descriptor import FormulaDescriptor, describe
from levelcore.exceptions import (
    ConfigurationError,
    DescriptorError,
    LevelCoreError,
    MigrationError,
    StoreError,
)
from levelcore.listeners import LevelChange, XpChange
from levelcore.migration import MigrationEngine, MigrationResult, MigrationStatus
from levelcore.service import LevelService
from levelcore.store import LevelStore, PlayerLevelData

__all__ = [
    "ConfigurationError",
    "DescriptorError",
    "FormulaDescriptor",
    "LevelChange",
    "LevelCoreError",
    "LevelService",
    "LevelStore",
    "LevelingCore",
    "MigrationEngine",
    "MigrationError",
    "MigrationResult",
    "MigrationStatus",
    "PlayerLevelData",
    "StoreError",
    "XpChange",
    "describe",
]
