"""Pick validation and saving."""

import logging
import sqlite3
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone

from bashoscore import store
from bashoscore.basho_id import BashoId
from bashoscore.models import PlayerId, RikishiId
from bashoscore.rank import RANK_GROUP_COUNT, Rank, RankGroup
from bashoscore.util import (
    DuplicateRankGroup,
    InvalidPicks,
    RikishiNotOnBanzuke,
    TournamentAlreadyStarted,
)

logger = logging.getLogger(__name__)


def validate_picks(
    start_date: datetime,
    picks: Sequence[RikishiId | None],
    ranks_by_rikishi: Mapping[RikishiId, Rank],
    now: datetime | None = None,
) -> list[RankGroup]:
    """Check a pick set against the basho's actual start and its banzuke.

    Returns the rank group of each non-empty pick, in order.
    """
    now = now or datetime.now(timezone.utc)
    if start_date <= now:
        raise TournamentAlreadyStarted(
            f"Basho started at {start_date.isoformat()}; picks are locked"
        )
    if len(picks) > RANK_GROUP_COUNT:
        raise InvalidPicks(
            f"At most {RANK_GROUP_COUNT} picks allowed, got {len(picks)}"
        )

    groups = []
    for rikishi_id in picks:
        if rikishi_id is None:
            continue
        rank = ranks_by_rikishi.get(rikishi_id)
        if rank is None:
            raise RikishiNotOnBanzuke(f"Rikishi {rikishi_id} is not on the banzuke")
        groups.append(rank.group())
    logger.debug("Rank groups %s for picks %s", groups, list(picks))

    if len(set(groups)) != len(groups):
        raise DuplicateRankGroup(
            f"Picks must come from different rank groups, got {[g.value for g in groups]}"
        )
    return groups


def save_player_picks(
    conn: sqlite3.Connection,
    player_id: PlayerId,
    basho_id: BashoId,
    picks: Sequence[RikishiId | None],
    now: datetime | None = None,
) -> None:
    """Validate and replace a player's whole pick set for a basho.

    The start date check and the write happen in one transaction.
    """
    chosen = [p for p in picks if p is not None]
    with store.transaction(conn):
        start = store.start_date(conn, basho_id)
        ranks = store.banzuke_ranks(conn, basho_id, chosen)
        validate_picks(start, picks, ranks, now)
        store.replace_picks(conn, player_id, basho_id, chosen)
    logger.info(
        "Saved %d picks for player %d in basho %s", len(chosen), player_id, basho_id.id,
    )
