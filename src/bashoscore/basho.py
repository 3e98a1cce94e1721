"""Engine entry points that read from the store."""

import logging
import sqlite3
from collections.abc import Sequence
from datetime import datetime

from bashoscore import store
from bashoscore.basho_id import BashoId, BashoRange
from bashoscore.leaders import LEADERS_LIMIT, compute_historic, current_or_next_basho_id
from bashoscore.models import BanzukeEntry, HistoricLeader, PlayerId, PlayerTournamentScore
from bashoscore.scoring import DEFAULT_LEADERS_LIMIT, basho_player_scores, compute_leaderboard
from bashoscore.util import UnknownBasho

logger = logging.getLogger(__name__)


def import_banzuke(
    conn: sqlite3.Connection,
    basho_id: BashoId,
    venue: str,
    start: datetime,
    entries: Sequence[BanzukeEntry],
    external_link: str | None = None,
) -> list[PlayerTournamentScore]:
    """Store a banzuke with its results and refresh the players' totals."""
    with store.transaction(conn):
        store.update_basho(conn, basho_id, venue, start, entries, external_link)
        store.update_results(conn, basho_id, entries)
        scores = basho_player_scores(
            store.pick_rows(conn, basho_id), store.basho_rikishi(conn, basho_id),
        )
        store.upsert_basho_results(conn, basho_id, scores)
    return scores


def leaderboard(
    conn: sqlite3.Connection,
    basho_id: BashoId,
    player_id: PlayerId | None = None,
    limit: int = DEFAULT_LEADERS_LIMIT,
    include_best_worst: bool | None = None,
    heya_id: int | None = None,
) -> list[PlayerTournamentScore]:
    """Leaderboard from current rows, checked against the stored totals.

    Best/worst rows are included once the basho has started unless the
    caller says otherwise.
    """
    info = store.basho_info(conn, basho_id)
    if info is None:
        raise UnknownBasho(f"No basho {basho_id.id}")
    if include_best_worst is None:
        include_best_worst = info.has_started()
    return compute_leaderboard(
        basho_id,
        store.pick_rows(conn, basho_id, heya_id),
        store.basho_rikishi(conn, basho_id),
        player_id=player_id,
        limit=limit,
        include_best_worst=include_best_worst,
        stored_totals=store.basho_result_totals(conn, basho_id),
    )


def scores_for_window(
    conn: sqlite3.Connection, window: BashoRange,
) -> dict[BashoId, list[PlayerTournamentScore]]:
    scores = {}
    for basho_id in store.basho_ids_with_picks(conn, window):
        scores[basho_id] = basho_player_scores(
            store.pick_rows(conn, basho_id),
            store.basho_rikishi(conn, basho_id),
            store.basho_result_totals(conn, basho_id),
        )
    return scores


def historic_leaders(
    conn: sqlite3.Connection,
    window: BashoRange,
    limit: int | None = LEADERS_LIMIT,
) -> list[HistoricLeader]:
    logger.debug("Fetching %s leaders in %s..%s", limit, window.start.id, window.end.id)
    return compute_historic(window, scores_for_window(conn, window), limit)


def current_basho_id(conn: sqlite3.Connection) -> BashoId:
    return current_or_next_basho_id(store.last_completed_basho_id(conn))


def finalize_basho(conn: sqlite3.Connection, basho_id: BashoId) -> list[PlayerTournamentScore]:
    """Close out a basho.

    Stores every player's final total, awards the Emperor's Cup to every
    player ranked first and ranks players for the next basho by their
    wins over the bashos leading up to it.
    """
    logger.debug("Finalizing basho %s", basho_id.id)
    with store.transaction(conn):
        scores = basho_player_scores(
            store.pick_rows(conn, basho_id), store.basho_rikishi(conn, basho_id),
        )
        store.upsert_basho_results(conn, basho_id, scores)
        winners = [s for s in scores if s.rank == 1]
        store.replace_awards(conn, basho_id, (s.player_id for s in winners))

        window = basho_id.next().range_for_banzuke()
        leaders = historic_leaders(conn, window, limit=None)
        store.upsert_player_ranks(conn, window.end, leaders)
    for w in winners:
        logger.info("Emperor's Cup for %s: %s (%d wins)", basho_id.id, w.player.player.name, w.total)
    logger.info("Ranked %d players for %s", len(leaders), window.end.id)
    return scores
