"""CSV output for leaderboards and historic leaders."""

import csv
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TextIO

from bashoscore.models import (
    DAYS,
    BashoRikishi,
    HistoricLeader,
    Player,
    PlayerTournamentScore,
    RealPlayer,
    RikishiId,
    TheoreticalBest,
    TheoreticalWorst,
)
from bashoscore.rank import RANK_GROUP_COUNT, group_by_rank
from bashoscore.scoring import assign_ord

logger = logging.getLogger(__name__)

LEADERBOARD_COLUMNS = (
    ["rank", "player", "total"]
    + [f"group_{g}" for g in range(1, RANK_GROUP_COUNT + 1)]
    + [f"day_{d}" for d in range(1, DAYS + 1)]
)

HISTORIC_COLUMNS = [
    "ord", "rank", "player", "bashos", "total_wins", "min_wins", "max_wins",
    "mean_wins", "best_rank", "worst_rank", "mean_rank",
]


BANZUKE_COLUMNS = [
    "rank", "east", "east_record", "west", "west_record",
]

RANKING_COLUMNS = ["ord", "rank", "player", "past_year_wins"]


def player_label(score: PlayerTournamentScore) -> str:
    player = score.player
    if isinstance(player, RealPlayer):
        return player.player.name
    if isinstance(player, TheoreticalBest):
        return "(best possible)"
    if isinstance(player, TheoreticalWorst):
        return "(worst possible)"
    raise TypeError(f"Unknown result player {player!r}")


def _fmt(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def leaderboard_rows(
    scores: Sequence[PlayerTournamentScore],
    rikishi_by_id: Mapping[RikishiId, BashoRikishi],
) -> list[dict]:
    rows = []
    for s in scores:
        row = {
            "rank": "" if not isinstance(s.player, RealPlayer) else str(s.rank or "?"),
            "player": player_label(s),
            "total": str(s.total),
        }
        for g, rikishi in enumerate(s.pick_rikishi(rikishi_by_id), start=1):
            row[f"group_{g}"] = rikishi.name if rikishi else ""
        for d, wins in enumerate(s.days, start=1):
            row[f"day_{d}"] = _fmt(wins)
        rows.append(row)
    return rows


def _record(rikishi: BashoRikishi | None) -> str:
    if rikishi is None:
        return ""
    if rikishi.is_kyujo:
        return "kyujo"
    return f"{rikishi.wins}-{rikishi.losses}"


def banzuke_rows(rikishi_by_id: Mapping[RikishiId, BashoRikishi]) -> list[dict]:
    """One row per rank name and number, east beside west."""
    return [
        {
            "rank": f"{name.letter}{number}",
            "east": east.name if east else "",
            "east_record": _record(east),
            "west": west.name if west else "",
            "west_record": _record(west),
        }
        for name, number, east, west in group_by_rank(rikishi_by_id.values())
    ]


def historic_rows(leaders: Sequence[HistoricLeader]) -> list[dict]:
    return [
        {
            "ord": str(l.ord),
            "rank": str(l.rank),
            "player": l.player.name,
            "bashos": str(l.basho_count),
            "total_wins": _fmt(l.wins.total),
            "min_wins": _fmt(l.wins.min),
            "max_wins": _fmt(l.wins.max),
            "mean_wins": _fmt(l.wins.mean),
            "best_rank": _fmt(l.ranks.min),
            "worst_rank": _fmt(l.ranks.max),
            "mean_rank": _fmt(l.ranks.mean),
        }
        for l in leaders
    ]


def ranking_rows(ranking: Sequence[tuple[Player, int]]) -> list[dict]:
    """Players going into a basho, already sorted by past-year wins."""
    ords = assign_ord([wins for _, wins in ranking])
    return [
        {
            "ord": str(ord_),
            "rank": _fmt(player.rank),
            "player": player.name,
            "past_year_wins": str(wins),
        }
        for ord_, (player, wins) in zip(ords, ranking)
    ]


def write_rows(f: TextIO, rows: list[dict], fieldnames: list[str]) -> None:
    """Write rows as CSV with LF line endings."""
    writer = csv.DictWriter(
        f, fieldnames=fieldnames, quoting=csv.QUOTE_MINIMAL,
        lineterminator="\n",
    )
    writer.writeheader()
    writer.writerows(rows)


def _write_csv(path: Path, rows: list[dict], fieldnames: list[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        write_rows(f, rows, fieldnames)


def write_leaderboard_csv(
    scores: Sequence[PlayerTournamentScore],
    rikishi_by_id: Mapping[RikishiId, BashoRikishi],
    path: Path,
) -> None:
    rows = leaderboard_rows(scores, rikishi_by_id)
    _write_csv(path, rows, LEADERBOARD_COLUMNS)
    logger.info("Wrote %d leaderboard rows to %s", len(rows), path)


def write_historic_csv(leaders: Sequence[HistoricLeader], path: Path) -> None:
    rows = historic_rows(leaders)
    _write_csv(path, rows, HISTORIC_COLUMNS)
    logger.info("Wrote %d historic leader rows to %s", len(rows), path)
