"""Named ranks covering ranges of levels."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from levelcore.config import RankSettings
from levelcore.exceptions import ConfigurationError


@dataclass(frozen=True)
class Rank:
    id: str
    name: str
    min_level: int
    max_level: int

    def contains(self, level: int) -> bool:
        return self.min_level <= level <= self.max_level


class RankBook:
    """Ranks ordered by ``min_level``; the first range containing a level wins."""

    def __init__(self, ranks: Iterable[Rank] = ()) -> None:
        ordered = sorted(ranks, key=lambda rank: rank.min_level)
        for rank in ordered:
            if rank.min_level > rank.max_level:
                msg = f"Rank '{rank.id}' has min_level {rank.min_level} above max_level {rank.max_level}"
                raise ConfigurationError(msg)
        self._ranks = tuple(ordered)

    @classmethod
    def from_settings(cls, entries: Iterable[RankSettings]) -> RankBook:
        return cls(
            Rank(id=entry.id, name=entry.name, min_level=entry.min_level, max_level=entry.max_level)
            for entry in entries
        )

    def __len__(self) -> int:
        return len(self._ranks)

    def rank_for_level(self, level: int) -> Rank | None:
        for rank in self._ranks:
            if rank.contains(level):
                return rank
        return None
