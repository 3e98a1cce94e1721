"""Per-basho player scores and leaderboards."""

import logging
from collections.abc import Iterable, Mapping, Sequence

from bashoscore.basho_id import BashoId
from bashoscore.models import (
    DAYS,
    BashoRikishi,
    PickRow,
    Player,
    PlayerId,
    PlayerTournamentScore,
    RealPlayer,
    RikishiId,
    TheoreticalBest,
    TheoreticalWorst,
)
from bashoscore.rank import RANK_GROUP_COUNT, Rank
from bashoscore.util import DataIntegrityMismatch

logger = logging.getLogger(__name__)

DEFAULT_LEADERS_LIMIT = 100


def assign_ord(scores: Sequence[int]) -> list[int]:
    """Competition ranking for scores already sorted descending.

    Ties share a rank and the next distinct score resumes at its
    position: [10, 10, 8, 8, 8, 5] -> [1, 1, 3, 3, 3, 6].
    """
    ords: list[int] = []
    last_score = None
    ord_ = 1
    for i, score in enumerate(scores):
        if score != last_score:
            last_score = score
            ord_ = i + 1
        ords.append(ord_)
    return ords


def picks_to_days(
    picks: Sequence[BashoRikishi | None],
) -> tuple[tuple[int | None, ...], int]:
    """Sum picked rikishi wins per day.

    A day stays None until at least one pick has a result for it; absent
    days add nothing.
    """
    days: list[int | None] = [None] * DAYS
    total = 0
    for rikishi in picks:
        if rikishi is None:
            continue
        for day, win in enumerate(rikishi.results):
            if win is None:
                continue
            incr = 1 if win else 0
            days[day] = (days[day] or 0) + incr
            total += incr
    return tuple(days), total


def _slot_picks(
    player: Player,
    rikishi_ids: Iterable[RikishiId],
    rikishi_by_id: Mapping[RikishiId, BashoRikishi],
) -> list[BashoRikishi | None]:
    slots: list[BashoRikishi | None] = [None] * RANK_GROUP_COUNT
    for rid in rikishi_ids:
        rikishi = rikishi_by_id.get(rid)
        if rikishi is None:
            logger.warning(
                "Pick %d for player %s is not on the banzuke; ignored",
                rid, player.name,
            )
            continue
        idx = rikishi.rank.group().index
        if slots[idx] is not None:
            logger.warning(
                "Player %s has two picks in rank group %d (%s, %s)",
                player.name, idx + 1, slots[idx].name, rikishi.name,
            )
        slots[idx] = rikishi
    return slots


def _score(
    player,
    slots: Sequence[BashoRikishi | None],
    is_self: bool = False,
    stored_total: int | None = None,
) -> PlayerTournamentScore:
    days, total = picks_to_days(slots)
    if stored_total is not None and stored_total != total:
        raise DataIntegrityMismatch(
            f"Total wins mismatch for {player}: computed {total}, stored {stored_total}"
        )
    return PlayerTournamentScore(
        player=player,
        picks=tuple(r.id if r is not None else None for r in slots),
        total=total,
        days=days,
        is_self=is_self,
    )


def score_players(
    pick_rows: Iterable[PickRow],
    rikishi_by_id: Mapping[RikishiId, BashoRikishi],
    player_id: PlayerId | None = None,
    stored_totals: Mapping[PlayerId, int] | None = None,
) -> list[PlayerTournamentScore]:
    """Unranked scores for every player with at least one pick."""
    players: dict[PlayerId, Player] = {}
    picks: dict[PlayerId, list[RikishiId]] = {}
    for row in pick_rows:
        players.setdefault(row.player.id, row.player)
        picks.setdefault(row.player.id, []).append(row.rikishi_id)

    stored_totals = stored_totals or {}
    scores = []
    for pid, player in players.items():
        slots = _slot_picks(player, picks[pid], rikishi_by_id)
        scores.append(_score(
            RealPlayer(player),
            slots,
            is_self=pid == player_id,
            stored_total=stored_totals.get(pid),
        ))
    return scores


def basho_player_scores(
    pick_rows: Iterable[PickRow],
    rikishi_by_id: Mapping[RikishiId, BashoRikishi],
    stored_totals: Mapping[PlayerId, int] | None = None,
) -> list[PlayerTournamentScore]:
    """All player scores for a basho, ranked, without any limit."""
    scores = score_players(pick_rows, rikishi_by_id, stored_totals=stored_totals)
    scores.sort(key=lambda s: (-s.total, s.player_id))
    for score, ord_ in zip(scores, assign_ord([s.total for s in scores])):
        score.rank = ord_
    return scores


def make_min_max_results(
    rikishi_by_id: Mapping[RikishiId, BashoRikishi],
) -> tuple[PlayerTournamentScore, PlayerTournamentScore]:
    """Theoretical worst and best scores from the non-kyujo roster.

    Ties within a group go to the higher-ranked rikishi.
    """
    mins: list[BashoRikishi | None] = [None] * RANK_GROUP_COUNT
    maxes: list[BashoRikishi | None] = [None] * RANK_GROUP_COUNT
    for r in sorted(rikishi_by_id.values(), key=lambda r: r.rank):
        if r.is_kyujo:
            continue
        idx = r.rank.group().index
        if mins[idx] is None or r.wins < mins[idx].wins:
            mins[idx] = r
        if maxes[idx] is None or r.wins > maxes[idx].wins:
            maxes[idx] = r
    return _score(TheoreticalWorst(), mins), _score(TheoreticalBest(), maxes)


def _before_basho_key(score: PlayerTournamentScore) -> tuple:
    player = score.player.player
    return (
        -score.total,
        not score.is_self,
        player.rank is None,
        player.rank or Rank.top(),
        player.name.lower(),
        player.id,
    )


def compute_leaderboard(
    basho_id: BashoId,
    pick_rows: Iterable[PickRow],
    rikishi_by_id: Mapping[RikishiId, BashoRikishi],
    player_id: PlayerId | None = None,
    limit: int = DEFAULT_LEADERS_LIMIT,
    include_best_worst: bool = False,
    stored_totals: Mapping[PlayerId, int] | None = None,
) -> list[PlayerTournamentScore]:
    """Ranked leaderboard for one basho.

    The viewing player sorts first among equal totals and is always kept
    when the list is cut at ``limit``. A full list may have dropped tied
    players, so when the viewer ties the last row their rank is reported
    as 0 (unknown). Without best/worst rows, other ties go to the player
    with the higher rank going into the basho, then by name. With
    ``include_best_worst`` the theoretical best and worst rows bracket the
    list, unranked.
    """
    logger.debug(
        "Computing %d leaders for basho %s (player=%s best_worst=%s)",
        limit, basho_id.id, player_id, include_best_worst,
    )
    scores = score_players(pick_rows, rikishi_by_id, player_id, stored_totals)
    if include_best_worst:
        scores.sort(key=lambda s: (-s.total, not s.is_self, s.player_id))
    else:
        scores.sort(key=_before_basho_key)

    leaders = scores[:limit]
    self_row = next((s for s in scores if s.is_self), None)
    if self_row is not None and leaders and all(s is not self_row for s in leaders):
        logger.debug("Keeping self row for player %s past the limit", player_id)
        leaders[-1] = self_row
    full = limit > 0 and len(leaders) == limit

    for score, ord_ in zip(leaders, assign_ord([s.total for s in leaders])):
        score.rank = ord_
    if full and self_row is not None and self_row.total == leaders[-1].total:
        self_row.rank = 0

    if include_best_worst:
        worst, best = make_min_max_results(rikishi_by_id)
        leaders = [best, *leaders, worst]

    logger.info(
        "Leaderboard for %s: %d of %d players", basho_id.id, len(leaders), len(scores),
    )
    return leaders
