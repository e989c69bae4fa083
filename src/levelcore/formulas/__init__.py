"""Level formula variants and their construction."""

from levelcore.formulas.base import INT64_MAX, FormulaType
from levelcore.formulas.variants import (
    CustomFormula,
    ExponentialFormula,
    LevelFormula,
    LinearFormula,
    TableFormula,
)

__all__ = [
    "INT64_MAX",
    "CustomFormula",
    "ExponentialFormula",
    "FormulaType",
    "LevelFormula",
    "LinearFormula",
    "TableFormula",
]
