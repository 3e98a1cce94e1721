"""Historic leaders across a window of past bashos."""

import logging
from collections.abc import Iterable, Mapping, Sequence

from bashoscore.basho_id import BashoId, BashoRange
from bashoscore.models import (
    HistoricLeader,
    NumericStats,
    PlayerId,
    PlayerTournamentScore,
    RealPlayer,
)
from bashoscore.rank import Rank
from bashoscore.scoring import assign_ord

logger = logging.getLogger(__name__)

VERY_FIRST_BASHO = BashoId(2019, 1)
LEADER_BASHO_COUNT_OPTIONS = (6, 3, 2)
DEFAULT_LEADER_BASHO_COUNT = 6
LEADERS_LIMIT = 500


def current_or_next_basho_id(last_completed: BashoId | None) -> BashoId:
    """The basho in session, or the one after the last completed basho."""
    if last_completed is None:
        return VERY_FIRST_BASHO
    return last_completed.next()


def leaders_window(
    current: BashoId, basho_count: int = DEFAULT_LEADER_BASHO_COUNT,
) -> BashoRange:
    if basho_count not in LEADER_BASHO_COUNT_OPTIONS:
        raise ValueError(
            f"basho_count must be one of {LEADER_BASHO_COUNT_OPTIONS}, got {basho_count}"
        )
    return current.window_of_size(basho_count)


def compute_historic(
    window: BashoRange,
    scores_by_basho: Mapping[BashoId, Sequence[PlayerTournamentScore]],
    limit: int | None = LEADERS_LIMIT,
) -> list[HistoricLeader]:
    """Rank players by total wins over every basho in ``window``.

    ``scores_by_basho`` holds the ranked, untruncated per-basho scores;
    bashos outside the window are ignored and a player missing from a
    basho simply contributes nothing for it. A ``limit`` of None keeps
    everyone.
    """
    wins: dict[PlayerId, list[int]] = {}
    ranks: dict[PlayerId, list[int]] = {}
    players = {}
    for basho_id in window:
        for score in scores_by_basho.get(basho_id, ()):
            if not isinstance(score.player, RealPlayer):
                continue
            player = score.player.player
            players.setdefault(player.id, player)
            wins.setdefault(player.id, []).append(score.total)
            if score.rank:
                ranks.setdefault(player.id, []).append(score.rank)

    leaders = [
        HistoricLeader(
            player=player,
            wins=NumericStats.of(wins[pid]),
            ranks=NumericStats.of(ranks.get(pid, [])),
            basho_count=len(wins[pid]),
        )
        for pid, player in players.items()
    ]
    leaders.sort(key=_sort_key)
    leaders = leaders[:limit]
    for leader, ord_ in zip(leaders, assign_ord([l.wins.total for l in leaders])):
        leader.ord = ord_
    assign_rank(leaders)
    logger.debug(
        "Computed %d historic leaders for %s..%s",
        len(leaders), window.start.id, window.end.id,
    )
    return leaders


def _sort_key(leader: HistoricLeader) -> tuple:
    best_rank = leader.ranks.min
    return (
        -(leader.wins.total or 0),
        -(leader.wins.max or 0),
        best_rank is None,
        best_rank or 0,
        leader.player.id,
    )


def assign_rank(leaders: Iterable[HistoricLeader]) -> None:
    """Give each run of equal ``ord`` the next banzuke rank from Y1e down."""
    rank = Rank.top()
    last_ord = None
    for leader in leaders:
        if last_ord is not None and leader.ord != last_ord:
            rank = rank.next_lower()
        leader.rank = rank
        last_ord = leader.ord


def self_leader_index(
    leaders: Sequence[HistoricLeader], player_id: PlayerId | None,
) -> int | None:
    if player_id is None:
        return None
    for i, leader in enumerate(leaders):
        if leader.player.id == player_id:
            return i
    return None
