"""Data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from bashoscore.basho_id import BashoId
from bashoscore.rank import RANK_GROUP_COUNT, Rank

DAYS = 15

RikishiId = int
PlayerId = int
DayResult = bool | None  # True win / False loss / None no result or absent


@dataclass(frozen=True)
class Player:
    id: PlayerId
    name: str
    join_date: datetime | None = None
    emperors_cups: int = 0
    rank: Rank | None = None  # banzuke rank going into the basho, if ranked


@dataclass(frozen=True)
class Heya:
    id: int
    name: str
    oyakata_player_id: PlayerId
    members: tuple[Player, ...] = ()

    def oyakata(self) -> Player | None:
        return next((p for p in self.members if p.id == self.oyakata_player_id), None)


@dataclass(frozen=True)
class BashoInfo:
    id: BashoId
    start_date: datetime  # actual recorded start, UTC
    venue: str
    external_link: str | None = None

    def has_started(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.start_date <= now

    def link_url(self) -> str:
        return self.external_link or self.id.url_path()


@dataclass(frozen=True)
class BashoRikishi:
    """A rikishi's banzuke entry and day-by-day record for one basho."""

    id: RikishiId
    name: str
    rank: Rank
    results: tuple[DayResult, ...] = (None,) * DAYS
    is_kyujo: bool = False

    def __post_init__(self) -> None:
        if len(self.results) != DAYS:
            raise ValueError(
                f"Expected {DAYS} day results for {self.name}, got {len(self.results)}"
            )

    @property
    def wins(self) -> int:
        return sum(1 for r in self.results if r is True)

    @property
    def losses(self) -> int:
        return sum(1 for r in self.results if r is False)


@dataclass(frozen=True)
class BanzukeEntry:
    """A decoded banzuke row before it is matched to a rikishi id."""

    name: str
    rank: Rank
    results: tuple[DayResult, ...] = (None,) * DAYS
    is_kyujo: bool = False


@dataclass(frozen=True)
class PickRow:
    player: Player
    rikishi_id: RikishiId


@dataclass(frozen=True)
class RealPlayer:
    player: Player


@dataclass(frozen=True)
class TheoreticalBest:
    """Best possible picks: the most wins in every rank group."""


@dataclass(frozen=True)
class TheoreticalWorst:
    """Worst possible picks: the fewest wins in every rank group."""


ResultPlayer = RealPlayer | TheoreticalBest | TheoreticalWorst


@dataclass
class PlayerTournamentScore:
    player: ResultPlayer
    picks: tuple[RikishiId | None, ...] = (None,) * RANK_GROUP_COUNT
    total: int = 0
    days: tuple[int | None, ...] = (None,) * DAYS
    rank: int = 0  # 0 when unknown or synthetic
    is_self: bool = False

    @property
    def player_id(self) -> PlayerId | None:
        if isinstance(self.player, RealPlayer):
            return self.player.player.id
        return None

    def pick_rikishi(
        self, rikishi_by_id: dict[RikishiId, BashoRikishi],
    ) -> list[BashoRikishi | None]:
        return [
            rikishi_by_id.get(rid) if rid is not None else None
            for rid in self.picks
        ]


@dataclass
class NumericStats:
    total: int | None = None
    min: int | None = None
    max: int | None = None
    mean: float | None = None

    @classmethod
    def of(cls, values: list[int]) -> "NumericStats":
        if not values:
            return cls()
        return cls(
            total=sum(values),
            min=min(values),
            max=max(values),
            mean=sum(values) / len(values),
        )


@dataclass
class HistoricLeader:
    player: Player
    wins: NumericStats
    ranks: NumericStats
    ord: int = 0
    rank: Rank = field(default_factory=Rank.top)
    basho_count: int = 0
