"""Load explicit level tables from ``level,xp`` CSV files."""

from __future__ import annotations

from pathlib import Path

import structlog

from levelcore.exceptions import ConfigurationError
from levelcore.formulas.variants import TableFormula

logger = structlog.get_logger()

DEFAULT_TABLE_CSV = """\
# level,xp (XP floor required for that level)
# Level 1 must be 0 XP
level,xp
1,0
2,100
3,250
4,450
5,700
6,1000
"""


def parse_level_table(text: str, source: str) -> TableFormula:
    """Parse and validate a level table. Any violation fails the whole load."""
    floors_by_level: dict[int, int] = {}

    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.lower().startswith("level"):
            continue

        parts = line.split(",")
        if len(parts) != 2:
            msg = f"{source}:{line_no}: expected 'level,xp', got {raw!r}"
            raise ConfigurationError(msg)

        try:
            level = int(parts[0].strip())
            xp = int(parts[1].strip())
        except ValueError as exc:
            msg = f"{source}:{line_no}: level and xp must be integers, got {raw!r}"
            raise ConfigurationError(msg) from exc

        if level < 1:
            msg = f"{source}:{line_no}: level must be >= 1, got {level}"
            raise ConfigurationError(msg)
        if xp < 0:
            msg = f"{source}:{line_no}: xp must be >= 0, got {xp}"
            raise ConfigurationError(msg)
        if level in floors_by_level:
            msg = f"{source}:{line_no}: duplicate level {level}"
            raise ConfigurationError(msg)

        floors_by_level[level] = xp

    if not floors_by_level:
        msg = f"{source} contains no level rows"
        raise ConfigurationError(msg)
    if 1 not in floors_by_level:
        msg = f"{source} must include level 1"
        raise ConfigurationError(msg)
    if floors_by_level[1] != 0:
        msg = f"{source}: level 1 must require 0 XP, got {floors_by_level[1]}"
        raise ConfigurationError(msg)

    max_level = max(floors_by_level)
    for level in range(1, max_level + 1):
        if level not in floors_by_level:
            msg = f"{source}: missing level {level} (levels must be contiguous from 1)"
            raise ConfigurationError(msg)

    return TableFormula(
        floors=tuple(floors_by_level[level] for level in range(1, max_level + 1)),
        source=source,
    )


def load_level_table(data_dir: str | Path, file_name: str, *, create_default: bool = True) -> TableFormula:
    """Load ``data_dir/file_name``, writing the default table first if it is missing."""
    path = Path(data_dir) / file_name

    try:
        if not path.exists():
            if not create_default:
                msg = f"Level table {path} does not exist"
                raise ConfigurationError(msg)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(DEFAULT_TABLE_CSV, encoding="utf-8")
            logger.info("level_table_created", path=str(path))
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Failed to read level table {path}"
        raise ConfigurationError(msg) from exc

    table = parse_level_table(text, file_name)
    logger.info("level_table_loaded", path=str(path), max_level=table.max_level)
    return table
