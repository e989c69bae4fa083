"""The closed set of level formulas.

Every variant maps a level to the XP floor required to be at that level
(``xp_for_level``) and an XP total back to a level (``level_for_xp``):

- ``xp_for_level(1) == 0``
- ``xp_for_level`` strictly increases up to ``max_level`` (linear with
  ``xp_per_level == 0`` is the one documented exception)
- ``level_for_xp(xp_for_level(level)) == level`` for every level up to ``max_level``
- ``level_for_xp`` is total over ``xp >= 0`` and never exceeds ``max_level``
"""

from __future__ import annotations

import bisect
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import ClassVar, Union

from levelcore.config import DEFAULT_MAX_LEVEL
from levelcore.exceptions import ConfigurationError
from levelcore.formulas.base import (
    INT64_MAX,
    FormulaType,
    check_max_level,
    check_strictly_increasing,
    clamp_xp,
    search_level,
)
from levelcore.formulas.expression import CompiledExpression

LEVEL_VARIABLE = "level"


@dataclass(frozen=True)
class ExponentialFormula:
    """``xp_for_level(L) = floor(base_xp * (L - 1) ** exponent)``."""

    formula_type: ClassVar[FormulaType] = FormulaType.EXPONENTIAL

    base_xp: float = 100.0
    exponent: float = 1.7
    max_level: int = DEFAULT_MAX_LEVEL

    def __post_init__(self) -> None:
        for name in ("base_xp", "exponent"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
                msg = f"Exponential formula {name} must be a finite number > 0, got {value!r}"
                raise ConfigurationError(msg)
        check_max_level(self.max_level)
        check_strictly_increasing(
            self.xp_for_level,
            self.max_level,
            f"Exponential formula (base_xp={self.base_xp}, exponent={self.exponent})",
        )

    def xp_for_level(self, level: int) -> int:
        if level <= 1:
            return 0
        if level > self.max_level:
            return INT64_MAX
        try:
            return clamp_xp(self.base_xp * math.pow(level - 1, self.exponent))
        except OverflowError:
            return INT64_MAX

    def level_for_xp(self, xp: int) -> int:
        return search_level(self.xp_for_level, xp, self.max_level)


@dataclass(frozen=True)
class LinearFormula:
    """``xp_for_level(L) = xp_per_level * (L - 1)``.

    With ``xp_per_level == 0`` every level costs nothing, so any XP total
    sits at ``max_level``.
    """

    formula_type: ClassVar[FormulaType] = FormulaType.LINEAR

    xp_per_level: int = 100
    max_level: int = DEFAULT_MAX_LEVEL

    def __post_init__(self) -> None:
        if isinstance(self.xp_per_level, bool) or not isinstance(self.xp_per_level, int) or self.xp_per_level < 0:
            msg = f"Linear formula xp_per_level must be an integer >= 0, got {self.xp_per_level!r}"
            raise ConfigurationError(msg)
        check_max_level(self.max_level)
        if self.xp_per_level * (self.max_level - 1) > INT64_MAX:
            msg = (
                f"Linear formula xp_per_level={self.xp_per_level} exceeds the XP range "
                f"before max_level {self.max_level}"
            )
            raise ConfigurationError(msg)

    def xp_for_level(self, level: int) -> int:
        if level <= 1:
            return 0
        if level > self.max_level:
            return INT64_MAX
        return min(self.xp_per_level * (level - 1), INT64_MAX)

    def level_for_xp(self, xp: int) -> int:
        if xp < 0:
            return 1
        if self.xp_per_level == 0:
            return self.max_level
        return min(self.max_level, 1 + xp // self.xp_per_level)


@dataclass(frozen=True)
class TableFormula:
    """Explicit XP floors: ``floors[i]`` is the floor of level ``i + 1``.

    The highest level in the table is the ceiling; asking for a level past
    it returns the ceiling's floor.
    """

    formula_type: ClassVar[FormulaType] = FormulaType.TABLE

    floors: tuple[int, ...]
    source: str = "levels.csv"

    def __post_init__(self) -> None:
        if not self.floors:
            msg = f"Level table {self.source} has no levels"
            raise ConfigurationError(msg)
        if self.floors[0] != 0:
            msg = f"Level table {self.source}: level 1 must require 0 XP, got {self.floors[0]}"
            raise ConfigurationError(msg)
        for index in range(1, len(self.floors)):
            if self.floors[index] <= self.floors[index - 1]:
                msg = (
                    f"Level table {self.source}: level {index + 1} needs {self.floors[index]} XP, "
                    f"which is not above level {index} ({self.floors[index - 1]} XP)"
                )
                raise ConfigurationError(msg)

    @property
    def max_level(self) -> int:
        return len(self.floors)

    def xp_for_level(self, level: int) -> int:
        if level <= 1:
            return 0
        return self.floors[min(level, self.max_level) - 1]

    def level_for_xp(self, xp: int) -> int:
        if xp < 0:
            return 1
        return bisect.bisect_right(self.floors, xp)


@dataclass(frozen=True)
class CustomFormula:
    """User-supplied expression over ``level`` and named constants."""

    formula_type: ClassVar[FormulaType] = FormulaType.CUSTOM

    expression: str
    constants: Mapping[str, float] = field(default_factory=dict)
    max_level: int = DEFAULT_MAX_LEVEL
    _compiled: CompiledExpression = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        check_max_level(self.max_level)
        compiled = CompiledExpression(self.expression, LEVEL_VARIABLE, self.constants)
        object.__setattr__(self, "_compiled", compiled)
        object.__setattr__(self, "constants", dict(sorted(self.constants.items())))
        # Evaluates every level, so domain errors also surface here
        check_strictly_increasing(self.xp_for_level, self.max_level, f"Custom XP expression {self.expression!r}")

    def xp_for_level(self, level: int) -> int:
        if level <= 1:
            return 0
        if level > self.max_level:
            return INT64_MAX
        try:
            value = self._compiled.evaluate(level)
        except (ArithmeticError, TypeError, ValueError) as exc:
            msg = f"Custom XP expression {self.expression!r} failed at level {level}: {exc}"
            raise ConfigurationError(msg) from exc
        return clamp_xp(value)

    def level_for_xp(self, xp: int) -> int:
        return search_level(self.xp_for_level, xp, self.max_level)


LevelFormula = Union[ExponentialFormula, LinearFormula, TableFormula, CustomFormula]
