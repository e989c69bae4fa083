"""Application settings via pydantic-settings."""

from functools import lru_cache

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_LEVEL = 100_000


class ExponentialSettings(BaseModel):
    base_xp: float = 100.0
    exponent: float = 1.7
    max_level: int = DEFAULT_MAX_LEVEL


class LinearSettings(BaseModel):
    xp_per_level: int = 100
    max_level: int = DEFAULT_MAX_LEVEL


class TableSettings(BaseModel):
    file: str = "levels.csv"


class CustomSettings(BaseModel):
    xp_for_level: str = ""
    constants: dict[str, float] = {}
    max_level: int = DEFAULT_MAX_LEVEL


class FormulaSettings(BaseModel):
    """Which level formula is active, plus the parameters of every variant."""

    type: str = "EXPONENTIAL"
    migrate_xp: bool = True
    exponential: ExponentialSettings = ExponentialSettings()
    linear: LinearSettings = LinearSettings()
    table: TableSettings = TableSettings()
    custom: CustomSettings = CustomSettings()


class RankSettings(BaseModel):
    id: str
    name: str
    min_level: int
    max_level: int


class Settings(BaseSettings):
    """Configuration loaded from environment variables with LEVELCORE_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="LEVELCORE_",
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    # --- Core ---
    data_dir: str = "./data"
    log_level: str = "INFO"
    log_format: str = "json"

    # --- Database ---
    database_url: str = "sqlite+aiosqlite:///./data/levelcore.db"
    db_pool_size: int = 10
    db_max_overflow: int = 10

    # --- Migration ---
    migration_batch_size: int = 10_000
    migration_progress_every: int = 50_000
    migration_timeout_seconds: float | None = None

    # --- Formula ---
    formula: FormulaSettings = FormulaSettings()

    # --- Ranks ---
    ranks: list[RankSettings] = []


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
