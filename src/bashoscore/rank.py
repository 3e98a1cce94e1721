"""Banzuke ranks and the rank groups used for picks."""

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from enum import IntEnum

from bashoscore.util import MalformedRank

logger = logging.getLogger(__name__)


class RankName(IntEnum):
    YOKOZUNA = 0
    OZEKI = 1
    SEKIWAKE = 2
    KOMUSUBI = 3
    MAEGASHIRA = 4

    @property
    def letter(self) -> str:
        return _NAME_LETTERS[self]

    @property
    def long_name(self) -> str:
        return self.name.capitalize()


class RankSide(IntEnum):
    EAST = 0
    WEST = 1

    @property
    def letter(self) -> str:
        return "e" if self is RankSide.EAST else "w"

    @property
    def long_name(self) -> str:
        return self.name.capitalize()


class RankGroup(IntEnum):
    TOP = 1  # Yokozuna, Ozeki
    SANYAKU = 2  # Sekiwake, Komusubi
    UPPER_MAEGASHIRA = 3
    MIDDLE_MAEGASHIRA = 4
    LOWER_MAEGASHIRA = 5

    @property
    def index(self) -> int:
        """Zero-based slot in a pick set."""
        return self.value - 1


RANK_GROUP_COUNT = len(RankGroup)

# (highest maegashira number in the band, group); numbers past the last
# band fall into LOWER_MAEGASHIRA.
MAEGASHIRA_GROUPS: tuple[tuple[int, RankGroup], ...] = (
    (5, RankGroup.UPPER_MAEGASHIRA),
    (10, RankGroup.MIDDLE_MAEGASHIRA),
)

# Largest allowed difference in rikishi count between maegashira bands:
# one east/west pair.
MAX_GROUP_SPREAD = 2

_NAME_LETTERS = {
    RankName.YOKOZUNA: "Y",
    RankName.OZEKI: "O",
    RankName.SEKIWAKE: "S",
    RankName.KOMUSUBI: "K",
    RankName.MAEGASHIRA: "M",
}
_LETTER_NAMES = {letter: name for name, letter in _NAME_LETTERS.items()}
_LETTER_SIDES = {
    "E": RankSide.EAST, "e": RankSide.EAST,
    "W": RankSide.WEST, "w": RankSide.WEST,
}


def group_for(name: RankName, number: int) -> RankGroup:
    """Rank group for a rank name and number."""
    if name in (RankName.YOKOZUNA, RankName.OZEKI):
        return RankGroup.TOP
    if name in (RankName.SEKIWAKE, RankName.KOMUSUBI):
        return RankGroup.SANYAKU
    for max_number, group in MAEGASHIRA_GROUPS:
        if number <= max_number:
            return group
    return RankGroup.LOWER_MAEGASHIRA


@dataclass(frozen=True, order=True)
class Rank:
    """A banzuke rank: name, number and side, in decreasing importance.

    "Less than" means a higher rank, so sorting ascending lists the
    strongest rank first.
    """

    name: RankName
    number: int
    side: RankSide

    @classmethod
    def parse(cls, code: str) -> "Rank":
        """Parse a compact rank code such as ``Y1e`` or ``M15W``."""
        if not isinstance(code, str) or len(code) < 2:
            raise MalformedRank(f"Rank code too short: {code!r}")
        name_char, num_str, side_char = code[0], code[1:-1], code[-1]
        name = _LETTER_NAMES.get(name_char)
        if name is None:
            raise MalformedRank(f"Unknown rank name {name_char!r} in {code!r}")
        side = _LETTER_SIDES.get(side_char)
        if side is None:
            raise MalformedRank(f"Unknown rank side {side_char!r} in {code!r}")
        if not num_str.isascii() or not num_str.isdigit():
            raise MalformedRank(f"Invalid rank number {num_str!r} in {code!r}")
        return cls(name=name, number=int(num_str), side=side)

    @classmethod
    def top(cls) -> "Rank":
        return cls(RankName.YOKOZUNA, 1, RankSide.EAST)

    def group(self) -> RankGroup:
        return group_for(self.name, self.number)

    def next_lower(self) -> "Rank":
        """The rank immediately below this one on a full banzuke.

        Sanyaku ranks are treated as holding a single slot per side, so
        Y1w is followed by O1e. Maegashira numbers continue indefinitely.
        """
        if self.side is RankSide.EAST:
            return Rank(self.name, self.number, RankSide.WEST)
        if self.name is not RankName.MAEGASHIRA:
            return Rank(RankName(self.name + 1), 1, RankSide.EAST)
        return Rank(self.name, self.number + 1, RankSide.EAST)

    def long_name(self) -> str:
        return f"{self.name.long_name} {self.number} {self.side.long_name}"

    def __str__(self) -> str:
        return f"{self.name.letter}{self.number}{self.side.letter}"


def group_of(rank: Rank) -> RankGroup:
    return rank.group()


def group_by_rank(rikishi: Iterable) -> list[tuple[RankName, int, object, object]]:
    """Pair rikishi sharing a rank name and number, strongest first.

    Takes anything with a ``rank`` attribute and returns
    ``(name, number, east, west)`` tuples; a side with nobody is None.
    """
    pairs: dict[tuple[RankName, int], list] = {}
    for r in sorted(rikishi, key=lambda r: r.rank):
        pair = pairs.setdefault((r.rank.name, r.rank.number), [None, None])
        if pair[r.rank.side] is not None:
            logger.warning("Two rikishi ranked %s; keeping %s", r.rank, r.name)
        pair[r.rank.side] = r
    return [(name, number, east, west) for (name, number), (east, west) in pairs.items()]


def check_group_balance(ranks: Iterable[Rank]) -> dict[RankGroup, int]:
    """Count roster ranks per group and flag uneven maegashira bands.

    The three maegashira groups should hold the same number of rikishi,
    give or take one east/west pair.
    """
    counts = Counter(r.group() for r in ranks)
    result = {g: counts.get(g, 0) for g in RankGroup}
    lower = [
        result[g] for g in (
            RankGroup.UPPER_MAEGASHIRA,
            RankGroup.MIDDLE_MAEGASHIRA,
            RankGroup.LOWER_MAEGASHIRA,
        )
    ]
    if max(lower) - min(lower) > MAX_GROUP_SPREAD:
        logger.warning(
            "Maegashira rank groups are unbalanced: %s",
            ", ".join(f"{g.value}={result[g]}" for g in RankGroup),
        )
    return result
