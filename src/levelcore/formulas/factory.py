"""Build level formulas from settings or from a stored descriptor."""

from __future__ import annotations

from pathlib import Path

from levelcore.config import FormulaSettings
from levelcore.descriptor import FormulaDescriptor, decode
from levelcore.formulas.base import FormulaType
from levelcore.formulas.table_loader import load_level_table
from levelcore.formulas.variants import (
    CustomFormula,
    ExponentialFormula,
    LevelFormula,
    LinearFormula,
)


def formula_from_settings(settings: FormulaSettings, data_dir: str | Path) -> LevelFormula:
    """Construct the configured formula. Invalid configuration raises ConfigurationError."""
    formula_type = FormulaType.parse(settings.type)

    if formula_type is FormulaType.EXPONENTIAL:
        return ExponentialFormula(
            base_xp=settings.exponential.base_xp,
            exponent=settings.exponential.exponent,
            max_level=settings.exponential.max_level,
        )
    if formula_type is FormulaType.LINEAR:
        return LinearFormula(
            xp_per_level=settings.linear.xp_per_level,
            max_level=settings.linear.max_level,
        )
    if formula_type is FormulaType.TABLE:
        return load_level_table(data_dir, settings.table.file)
    return CustomFormula(
        expression=settings.custom.xp_for_level,
        constants=settings.custom.constants,
        max_level=settings.custom.max_level,
    )


def formula_from_descriptor(descriptor: FormulaDescriptor, data_dir: str | Path) -> LevelFormula:
    """Rebuild the formula a descriptor was produced from.

    A table that has since been deleted is an error rather than being
    recreated with default contents.
    """
    params = decode(descriptor)

    if params.type is FormulaType.EXPONENTIAL:
        return ExponentialFormula(base_xp=params.base_xp, exponent=params.exponent, max_level=params.max_level)
    if params.type is FormulaType.LINEAR:
        return LinearFormula(xp_per_level=params.xp_per_level, max_level=params.max_level)
    if params.type is FormulaType.TABLE:
        return load_level_table(data_dir, params.file, create_default=False)
    return CustomFormula(expression=params.expression, constants=params.constants or {}, max_level=params.max_level)
