"""Shared pieces of the level formula variants."""

from __future__ import annotations

import enum
import math
from collections.abc import Callable

from levelcore.exceptions import ConfigurationError

# XP is stored as a signed 64-bit integer; levels past the ceiling cost this much.
INT64_MAX = 2**63 - 1


class FormulaType(str, enum.Enum):
    EXPONENTIAL = "EXPONENTIAL"
    LINEAR = "LINEAR"
    TABLE = "TABLE"
    CUSTOM = "CUSTOM"

    @classmethod
    def parse(cls, raw: str | None) -> FormulaType:
        """Case-insensitive lookup; unknown names are a configuration error."""
        name = (raw or "").strip().upper()
        try:
            return cls(name)
        except ValueError:
            expected = ", ".join(member.value for member in cls)
            msg = f"Unknown formula type '{raw}'. Expected one of: {expected}"
            raise ConfigurationError(msg) from None


def check_max_level(max_level: int) -> None:
    if isinstance(max_level, bool) or not isinstance(max_level, int) or max_level < 1:
        msg = f"max_level must be an integer >= 1, got {max_level!r}"
        raise ConfigurationError(msg)


def check_strictly_increasing(xp_for_level: Callable[[int], int], max_level: int, label: str) -> None:
    """Require every floor in [2, max_level] to exceed the one below it.

    A repeated floor makes the lower of the two levels unreachable, so
    ``level_for_xp(xp_for_level(level)) == level`` would not hold.
    """
    previous = 0
    for level in range(2, max_level + 1):
        floor = xp_for_level(level)
        if floor <= previous:
            msg = (
                f"{label}: level {level} needs {floor} XP, which is not above level {level - 1} "
                f"({previous} XP). Lower max_level or steepen the curve"
            )
            raise ConfigurationError(msg)
        previous = floor


def clamp_xp(value: float) -> int:
    """Floor a computed XP value into the storable range [0, INT64_MAX]."""
    if value != value:  # NaN
        msg = "XP formula produced NaN"
        raise ConfigurationError(msg)
    if value <= 0:
        return 0
    if math.isinf(value) or value >= INT64_MAX:
        return INT64_MAX
    return min(math.floor(value), INT64_MAX)


def search_level(xp_for_level: Callable[[int], int], xp: int, max_level: int) -> int:
    """Return the greatest level in [1, max_level] whose XP floor is <= xp.

    Relies only on xp_for_level being non-decreasing: probes upward in
    doubling steps, then bisects the last step.
    """
    if xp < 0:
        return 1

    lo = 1
    step = 1
    hi = lo + step
    while hi <= max_level and xp_for_level(hi) <= xp:
        lo = hi
        step *= 2
        hi = lo + step
    hi = min(hi, max_level + 1)

    # xp_for_level(lo) <= xp, and hi is either past the ceiling or too expensive
    while hi - lo > 1:
        mid = (lo + hi) // 2
        if xp_for_level(mid) <= xp:
            lo = mid
        else:
            hi = mid
    return lo
