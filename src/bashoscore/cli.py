"""CLI entry point."""

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path

from bashoscore import basho, picks, store, sumo_api
from bashoscore.basho_id import JST, BashoId
from bashoscore.io_csv import (
    BANZUKE_COLUMNS,
    HISTORIC_COLUMNS,
    LEADERBOARD_COLUMNS,
    RANKING_COLUMNS,
    banzuke_rows,
    historic_rows,
    leaderboard_rows,
    ranking_rows,
    write_historic_csv,
    write_leaderboard_csv,
    write_rows,
)
from bashoscore.leaders import (
    DEFAULT_LEADER_BASHO_COUNT,
    LEADER_BASHO_COUNT_OPTIONS,
    LEADERS_LIMIT,
    leaders_window,
    self_leader_index,
)
from bashoscore.rank import check_group_balance
from bashoscore.scoring import DEFAULT_LEADERS_LIMIT
from bashoscore.util import BashoScoreError

logger = logging.getLogger("bashoscore")


def _basho_arg(value: str) -> BashoId:
    try:
        return BashoId.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _start_arg(value: str) -> datetime:
    """Local (JST) start time as ``YYYY-MM-DD HH:MM``."""
    try:
        return datetime.strptime(value, "%Y-%m-%d %H:%M").replace(tzinfo=JST)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bashoscore",
        description="Score fantasy sumo picks and rank players.",
    )
    parser.add_argument(
        "--db", type=Path, default=None,
        help="SQLite database path (default: <project>/data/bashoscore.db)",
    )
    parser.add_argument(
        "--log-level", choices=["INFO", "DEBUG"], default="INFO",
        help="Logging level (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database schema")

    p = sub.add_parser("add-player", help="Register a player")
    p.add_argument("--name", required=True)

    p = sub.add_parser("import-banzuke", help="Import banzuke and results from sumo-api")
    p.add_argument("--basho", type=_basho_arg, required=True, help="YYYYMM")
    p.add_argument("--venue", default=None, help="Venue (default: usual venue)")
    p.add_argument(
        "--start", type=_start_arg, default=None,
        help="Actual start in JST, 'YYYY-MM-DD HH:MM' (default: expected start)",
    )
    p.add_argument("--link", default=None, help="External page for the basho")
    p.add_argument("--day", type=int, default=None, help="Report whether this day is complete")

    p = sub.add_parser("banzuke", help="Banzuke with win-loss records as CSV")
    p.add_argument("--basho", type=_basho_arg, required=True, help="YYYYMM")

    p = sub.add_parser("pick", help="Save a player's picks")
    p.add_argument("--basho", type=_basho_arg, required=True, help="YYYYMM")
    p.add_argument("--player", required=True, help="Player name")
    p.add_argument("rikishi", type=int, nargs="+", help="Up to five rikishi ids")

    p = sub.add_parser("leaderboard", help="Basho leaderboard as CSV")
    p.add_argument("--basho", type=_basho_arg, default=None, help="YYYYMM (default: current)")
    p.add_argument("--player", default=None, help="Viewing player name")
    p.add_argument("--heya", default=None, help="Only players in this heya")
    p.add_argument("--limit", type=int, default=DEFAULT_LEADERS_LIMIT)
    p.add_argument(
        "--best-worst", action=argparse.BooleanOptionalAction, default=None,
        help="Include theoretical best/worst rows (default: once started)",
    )
    p.add_argument("--out", type=Path, default=None, help="CSV output path (default: stdout)")

    p = sub.add_parser("historic", help="Historic leaders as CSV")
    p.add_argument(
        "--bashos", type=int, choices=LEADER_BASHO_COUNT_OPTIONS,
        default=DEFAULT_LEADER_BASHO_COUNT,
        help=f"Number of past bashos (default: {DEFAULT_LEADER_BASHO_COUNT})",
    )
    p.add_argument("--before", type=_basho_arg, default=None, help="YYYYMM (default: current)")
    p.add_argument("--player", default=None, help="Player to locate in the list")
    p.add_argument("--limit", type=int, default=LEADERS_LIMIT)
    p.add_argument("--out", type=Path, default=None, help="CSV output path (default: stdout)")

    p = sub.add_parser("finalize", help="Bestow Emperor's Cup awards for a basho")
    p.add_argument("--basho", type=_basho_arg, required=True, help="YYYYMM")

    p = sub.add_parser("ranking", help="Player ranks going into a basho as CSV")
    p.add_argument("--basho", type=_basho_arg, default=None, help="YYYYMM (default: current)")

    p = sub.add_parser("add-heya", help="Create a heya led by a player")
    p.add_argument("--name", required=True)
    p.add_argument("--oyakata", required=True, help="Player name")

    p = sub.add_parser("join-heya", help="Add a player to a heya")
    p.add_argument("--heya", required=True)
    p.add_argument("--player", required=True)

    return parser


def _default_db_path() -> Path:
    """``data/bashoscore.db`` beside the nearest pyproject.toml, else under cwd."""
    cwd = Path.cwd()
    root = next((p for p in (cwd, *cwd.parents) if (p / "pyproject.toml").exists()), cwd)
    return root / "data" / "bashoscore.db"


def _player_id(conn, name: str | None) -> int | None:
    if name is None:
        return None
    player = store.player_with_name(conn, name)
    if player is None:
        raise BashoScoreError(f"Unknown player {name!r}")
    return player.id


def _heya_id(conn, name: str | None) -> int | None:
    if name is None:
        return None
    heya = store.heya_with_name(conn, name)
    if heya is None:
        raise BashoScoreError(f"Unknown heya {name!r}")
    return heya.id


def _import_banzuke(conn, args: argparse.Namespace) -> None:
    basho_id = args.basho
    data, entries = sumo_api.fetch_banzuke(basho_id)
    check_group_balance(e.rank for e in entries)
    venue = args.venue or basho_id.expected_venue()
    start = args.start or basho_id.expected_start()
    scores = basho.import_banzuke(conn, basho_id, venue, start, entries, args.link)
    logger.info("Refreshed totals for %d players", len(scores))
    if args.day is not None:
        logger.info(
            "Day %d complete: %s", args.day, sumo_api.day_complete(data, args.day),
        )


def _leaderboard(conn, args: argparse.Namespace) -> None:
    basho_id = args.basho or basho.current_basho_id(conn)
    scores = basho.leaderboard(
        conn, basho_id,
        player_id=_player_id(conn, args.player),
        limit=args.limit,
        include_best_worst=args.best_worst,
        heya_id=_heya_id(conn, args.heya),
    )
    info = store.basho_info(conn, basho_id)
    logger.info("%s at %s: %s", basho_id, info.venue, info.link_url())
    rikishi = store.basho_rikishi(conn, basho_id)
    if args.out:
        write_leaderboard_csv(scores, rikishi, args.out)
    else:
        write_rows(sys.stdout, leaderboard_rows(scores, rikishi), LEADERBOARD_COLUMNS)


def _historic(conn, args: argparse.Namespace) -> None:
    before = args.before or basho.current_basho_id(conn)
    window = leaders_window(before, args.bashos)
    leaders = basho.historic_leaders(conn, window, args.limit)
    idx = self_leader_index(leaders, _player_id(conn, args.player))
    if args.player:
        if idx is None:
            logger.info("Player %s not among the leaders", args.player)
        else:
            logger.info("Player %s is #%d (%s)", args.player, leaders[idx].ord, leaders[idx].rank)
    if args.out:
        write_historic_csv(leaders, args.out)
    else:
        write_rows(sys.stdout, historic_rows(leaders), HISTORIC_COLUMNS)


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)-5s %(name)s: %(message)s",
    )

    db_path = args.db or _default_db_path()
    logger.info("Using database %s for %s", db_path, args.command)
    start_time = time.time()

    try:
        conn = store.connect(db_path)
        try:
            if args.command == "add-player":
                player = store.add_player(conn, args.name)
                logger.info("Added player %s (%d)", player.name, player.id)
            elif args.command == "import-banzuke":
                _import_banzuke(conn, args)
            elif args.command == "banzuke":
                rikishi = store.basho_rikishi(conn, args.basho)
                write_rows(sys.stdout, banzuke_rows(rikishi), BANZUKE_COLUMNS)
            elif args.command == "pick":
                picks.save_player_picks(
                    conn, _player_id(conn, args.player), args.basho, args.rikishi,
                )
            elif args.command == "leaderboard":
                _leaderboard(conn, args)
            elif args.command == "historic":
                _historic(conn, args)
            elif args.command == "finalize":
                basho.finalize_basho(conn, args.basho)
            elif args.command == "ranking":
                before = args.basho or basho.current_basho_id(conn)
                ranking = store.player_ranking(conn, before)
                write_rows(sys.stdout, ranking_rows(ranking), RANKING_COLUMNS)
            elif args.command == "add-heya":
                with store.transaction(conn):
                    heya = store.add_heya(conn, args.name, _player_id(conn, args.oyakata))
                logger.info("Added heya %s (%d)", heya.name, heya.id)
            elif args.command == "join-heya":
                store.add_heya_member(
                    conn, _heya_id(conn, args.heya), _player_id(conn, args.player),
                )
        finally:
            conn.close()
    except BashoScoreError as e:
        logger.error("Fatal error: %s", e)
        sys.exit(1)
    except Exception as e:
        logger.error("Unexpected error: %s", e, exc_info=True)
        sys.exit(1)

    logger.info("Elapsed: %.1fs", time.time() - start_time)
