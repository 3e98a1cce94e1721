"""SQLite storage: schema, transactions and typed row decoding.

Every function takes an explicit connection. Callers that need several
reads and writes to be atomic wrap them in ``transaction(conn)``.
"""

import logging
import sqlite3
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from bashoscore.basho_id import BashoId, BashoRange
from bashoscore.models import (
    DAYS,
    BanzukeEntry,
    BashoInfo,
    BashoRikishi,
    DayResult,
    Heya,
    HistoricLeader,
    PickRow,
    Player,
    PlayerId,
    PlayerTournamentScore,
    RikishiId,
)
from bashoscore.rank import Rank
from bashoscore.util import AmbiguousShikona, MalformedRank, UnknownBasho

logger = logging.getLogger(__name__)

EMPERORS_CUP = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS basho (
    id              INTEGER PRIMARY KEY,
    start_date      TEXT NOT NULL,
    venue           TEXT NOT NULL,
    external_link   TEXT
);

CREATE TABLE IF NOT EXISTS rikishi (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    family_name     TEXT NOT NULL,
    given_name      TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS banzuke (
    rikishi_id      INTEGER NOT NULL REFERENCES rikishi(id),
    basho_id        INTEGER NOT NULL REFERENCES basho(id),
    family_name     TEXT NOT NULL,
    given_name      TEXT NOT NULL DEFAULT '',
    rank            TEXT NOT NULL,
    kyujyo          INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (rikishi_id, basho_id)
);

CREATE TABLE IF NOT EXISTS torikumi (
    basho_id        INTEGER NOT NULL,
    day             INTEGER NOT NULL,
    rikishi_id      INTEGER NOT NULL,
    win             INTEGER NOT NULL,
    PRIMARY KEY (basho_id, day, rikishi_id),
    FOREIGN KEY (rikishi_id, basho_id) REFERENCES banzuke(rikishi_id, basho_id)
);

CREATE TABLE IF NOT EXISTS player (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL UNIQUE,
    join_date       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pick (
    player_id       INTEGER NOT NULL REFERENCES player(id),
    basho_id        INTEGER NOT NULL REFERENCES basho(id),
    rikishi_id      INTEGER NOT NULL,
    PRIMARY KEY (player_id, basho_id, rikishi_id)
);

CREATE INDEX IF NOT EXISTS pick_basho_id ON pick (basho_id);

CREATE TABLE IF NOT EXISTS award (
    basho_id        INTEGER NOT NULL REFERENCES basho(id),
    player_id       INTEGER NOT NULL REFERENCES player(id),
    type            INTEGER NOT NULL,
    PRIMARY KEY (basho_id, player_id, type)
);

CREATE TABLE IF NOT EXISTS basho_result (
    basho_id        INTEGER NOT NULL REFERENCES basho(id),
    player_id       INTEGER NOT NULL REFERENCES player(id),
    wins            INTEGER NOT NULL,
    rank            INTEGER NOT NULL,
    PRIMARY KEY (basho_id, player_id)
);

CREATE TABLE IF NOT EXISTS player_rank (
    player_id       INTEGER NOT NULL REFERENCES player(id),
    before_basho_id INTEGER NOT NULL,
    rank            TEXT NOT NULL,
    past_year_wins  INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (player_id, before_basho_id)
);

CREATE TABLE IF NOT EXISTS heya (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    name                TEXT NOT NULL UNIQUE,
    oyakata_player_id   INTEGER NOT NULL REFERENCES player(id)
);

CREATE TABLE IF NOT EXISTS heya_player (
    heya_id         INTEGER NOT NULL REFERENCES heya(id),
    player_id       INTEGER NOT NULL REFERENCES player(id),
    PRIMARY KEY (heya_id, player_id)
);
"""


def connect(path: Path | str) -> sqlite3.Connection:
    """Open a connection in autocommit mode and make sure the schema exists."""
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    init_db(conn)
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA)


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block in one write transaction; roll back on any error."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


def _to_text(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _from_text(s: str) -> datetime:
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------

def _player_from_row(row: sqlite3.Row) -> Player:
    keys = row.keys()
    return Player(
        id=row["player_id"] if "player_id" in keys else row["id"],
        name=row["name"],
        join_date=_from_text(row["join_date"]) if row["join_date"] else None,
        emperors_cups=row["emperors_cups"] if "emperors_cups" in keys else 0,
        rank=Rank.parse(row["rank"]) if "rank" in keys and row["rank"] else None,
    )


def add_player(
    conn: sqlite3.Connection, name: str, join_date: datetime | None = None,
) -> Player:
    join_date = join_date or datetime.now(timezone.utc)
    cur = conn.execute(
        "INSERT INTO player (name, join_date) VALUES (?, ?)",
        (name, _to_text(join_date)),
    )
    return Player(id=cur.lastrowid, name=name, join_date=join_date)


def player_with_name(conn: sqlite3.Connection, name: str) -> Player | None:
    row = conn.execute(
        """
        SELECT p.*, (
            SELECT COUNT(*) FROM award AS a WHERE a.player_id = p.id AND a.type = ?
        ) AS emperors_cups
        FROM player AS p
        WHERE p.name = ?
        """,
        (EMPERORS_CUP, name),
    ).fetchone()
    return _player_from_row(row) if row else None


# ---------------------------------------------------------------------------
# Basho
# ---------------------------------------------------------------------------

def basho_info(conn: sqlite3.Connection, basho_id: BashoId) -> BashoInfo | None:
    row = conn.execute(
        "SELECT * FROM basho WHERE id = ?", (basho_id.to_int(),),
    ).fetchone()
    if row is None:
        return None
    return BashoInfo(
        id=basho_id,
        start_date=_from_text(row["start_date"]),
        venue=row["venue"],
        external_link=row["external_link"],
    )


def start_date(conn: sqlite3.Connection, basho_id: BashoId) -> datetime:
    row = conn.execute(
        "SELECT start_date FROM basho WHERE id = ?", (basho_id.to_int(),),
    ).fetchone()
    if row is None:
        raise UnknownBasho(f"No basho {basho_id.id}")
    return _from_text(row["start_date"])


def last_completed_basho_id(conn: sqlite3.Connection) -> BashoId | None:
    """Latest basho that has had awards bestowed."""
    row = conn.execute(
        """
        SELECT MAX(id) AS id
        FROM basho AS b
        WHERE EXISTS (SELECT 1 FROM award AS a WHERE a.basho_id = b.id)
        """
    ).fetchone()
    return BashoId.from_int(row["id"]) if row["id"] is not None else None


def basho_ids_with_picks(
    conn: sqlite3.Connection, window: BashoRange,
) -> list[BashoId]:
    rows = conn.execute(
        """
        SELECT DISTINCT basho_id FROM pick
        WHERE basho_id >= ? AND basho_id < ?
        ORDER BY basho_id
        """,
        (window.start.to_int(), window.end.to_int()),
    ).fetchall()
    return [BashoId.from_int(r["basho_id"]) for r in rows]


def _rikishi_ids_by_name(
    conn: sqlite3.Connection, names: Iterable[str],
) -> dict[str, RikishiId]:
    names = list(names)
    if not names:
        return {}
    placeholders = ", ".join("?" for _ in names)
    ids: dict[str, RikishiId] = {}
    ambiguous = []
    for row in conn.execute(
        f"SELECT id, family_name FROM rikishi WHERE family_name IN ({placeholders})",
        names,
    ):
        if row["family_name"] in ids:
            ambiguous.append(row["family_name"])
        ids[row["family_name"]] = row["id"]
    if ambiguous:
        raise AmbiguousShikona(f"Ambiguous shikona: {', '.join(ambiguous)}")
    return ids


def update_basho(
    conn: sqlite3.Connection,
    basho_id: BashoId,
    venue: str,
    start: datetime,
    banzuke: Sequence[BanzukeEntry],
    external_link: str | None = None,
) -> dict[str, RikishiId]:
    """Upsert the basho row and its banzuke; returns shikona -> rikishi id."""
    conn.execute(
        """
        INSERT INTO basho (id, start_date, venue, external_link)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (id) DO UPDATE SET
            start_date = excluded.start_date,
            venue = excluded.venue,
            external_link = excluded.external_link
        """,
        (basho_id.to_int(), _to_text(start), venue, external_link),
    )
    ids = _rikishi_ids_by_name(conn, (e.name for e in banzuke))
    for entry in banzuke:
        rikishi_id = ids.get(entry.name)
        if rikishi_id is None:
            cur = conn.execute(
                "INSERT INTO rikishi (family_name) VALUES (?)", (entry.name,),
            )
            rikishi_id = ids[entry.name] = cur.lastrowid
            logger.debug("New rikishi %s (%d)", entry.name, rikishi_id)
        conn.execute(
            """
            INSERT INTO banzuke (rikishi_id, basho_id, family_name, rank, kyujyo)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (rikishi_id, basho_id) DO UPDATE SET
                family_name = excluded.family_name,
                rank = excluded.rank,
                kyujyo = excluded.kyujyo
            """,
            (rikishi_id, basho_id.to_int(), entry.name, str(entry.rank),
             int(entry.is_kyujo)),
        )
    logger.info("Updated basho %s with %d banzuke rows", basho_id.id, len(banzuke))
    return ids


def update_results(
    conn: sqlite3.Connection,
    basho_id: BashoId,
    entries: Sequence[BanzukeEntry],
) -> int:
    """Replace all recorded day results for the basho; returns rows written."""
    ids = {
        row["family_name"]: row["rikishi_id"]
        for row in conn.execute(
            "SELECT rikishi_id, family_name FROM banzuke WHERE basho_id = ?",
            (basho_id.to_int(),),
        )
    }
    conn.execute("DELETE FROM torikumi WHERE basho_id = ?", (basho_id.to_int(),))
    count = 0
    for entry in entries:
        rikishi_id = ids.get(entry.name)
        if rikishi_id is None:
            logger.warning("Rikishi %s not on banzuke for %s", entry.name, basho_id.id)
            continue
        for day, win in enumerate(entry.results, start=1):
            if win is None:
                continue
            conn.execute(
                "INSERT INTO torikumi (basho_id, day, rikishi_id, win) VALUES (?, ?, ?, ?)",
                (basho_id.to_int(), day, rikishi_id, int(win)),
            )
            count += 1
        conn.execute(
            "UPDATE banzuke SET kyujyo = ? WHERE basho_id = ? AND rikishi_id = ?",
            (int(entry.is_kyujo), basho_id.to_int(), rikishi_id),
        )
    logger.info("Wrote %d results for basho %s", count, basho_id.id)
    return count


def basho_rikishi(
    conn: sqlite3.Connection, basho_id: BashoId,
) -> dict[RikishiId, BashoRikishi]:
    """Banzuke with day results; rows with a malformed rank are skipped."""
    rows = conn.execute(
        """
        SELECT b.rikishi_id, b.family_name, b.rank, b.kyujyo, t.day, t.win
        FROM banzuke AS b
        LEFT JOIN torikumi AS t
            ON t.basho_id = b.basho_id AND t.rikishi_id = b.rikishi_id
        WHERE b.basho_id = ?
        ORDER BY b.rikishi_id, t.day
        """,
        (basho_id.to_int(),),
    ).fetchall()

    decoded: dict[RikishiId, tuple[str, Rank, bool, list[DayResult]]] = {}
    skipped = set()
    for row in rows:
        rid = row["rikishi_id"]
        if rid in skipped:
            continue
        if rid not in decoded:
            try:
                rank = Rank.parse(row["rank"])
            except MalformedRank as e:
                logger.warning("Skipping rikishi %d: %s", rid, e)
                skipped.add(rid)
                continue
            decoded[rid] = (row["family_name"], rank, bool(row["kyujyo"]), [None] * DAYS)
        day = row["day"]
        if day is not None and 1 <= day <= DAYS:
            decoded[rid][3][day - 1] = bool(row["win"])

    return {
        rid: BashoRikishi(
            id=rid, name=name, rank=rank, results=tuple(results), is_kyujo=kyujo,
        )
        for rid, (name, rank, kyujo, results) in decoded.items()
    }


def banzuke_ranks(
    conn: sqlite3.Connection,
    basho_id: BashoId,
    rikishi_ids: Iterable[RikishiId],
) -> dict[RikishiId, Rank]:
    rikishi_ids = list(rikishi_ids)
    if not rikishi_ids:
        return {}
    placeholders = ", ".join("?" for _ in rikishi_ids)
    rows = conn.execute(
        f"""
        SELECT rikishi_id, rank FROM banzuke
        WHERE basho_id = ? AND rikishi_id IN ({placeholders})
        """,
        [basho_id.to_int(), *rikishi_ids],
    ).fetchall()
    return {row["rikishi_id"]: Rank.parse(row["rank"]) for row in rows}


# ---------------------------------------------------------------------------
# Picks and awards
# ---------------------------------------------------------------------------

def pick_rows(
    conn: sqlite3.Connection, basho_id: BashoId, heya_id: int | None = None,
) -> list[PickRow]:
    """Picks with each player's rank going into the basho.

    With ``heya_id`` only members of that heya are returned.
    """
    heya_join = ""
    params: list = [basho_id.to_int()]
    if heya_id is not None:
        heya_join = "JOIN heya_player AS hp ON hp.player_id = pick.player_id AND hp.heya_id = ?"
        params.insert(0, heya_id)
    rows = conn.execute(
        f"""
        SELECT pick.player_id, pick.rikishi_id, p.name, p.join_date, pr.rank
        FROM pick
        JOIN player AS p ON p.id = pick.player_id
        {heya_join}
        LEFT JOIN player_rank AS pr
            ON pr.player_id = pick.player_id AND pr.before_basho_id = pick.basho_id
        WHERE pick.basho_id = ?
        ORDER BY pick.player_id, pick.rikishi_id
        """,
        params,
    ).fetchall()
    return [PickRow(player=_player_from_row(r), rikishi_id=r["rikishi_id"]) for r in rows]


def player_picks(
    conn: sqlite3.Connection, player_id: PlayerId, basho_id: BashoId,
) -> set[RikishiId]:
    return {
        row["rikishi_id"]
        for row in conn.execute(
            "SELECT rikishi_id FROM pick WHERE player_id = ? AND basho_id = ?",
            (player_id, basho_id.to_int()),
        )
    }


def replace_picks(
    conn: sqlite3.Connection,
    player_id: PlayerId,
    basho_id: BashoId,
    rikishi_ids: Iterable[RikishiId],
) -> None:
    conn.execute(
        "DELETE FROM pick WHERE player_id = ? AND basho_id = ?",
        (player_id, basho_id.to_int()),
    )
    # the stored total no longer matches the new picks
    conn.execute(
        "DELETE FROM basho_result WHERE player_id = ? AND basho_id = ?",
        (player_id, basho_id.to_int()),
    )
    for rikishi_id in rikishi_ids:
        logger.debug(
            "Inserting player %d pick %d for %s", player_id, rikishi_id, basho_id.id,
        )
        conn.execute(
            "INSERT INTO pick (player_id, basho_id, rikishi_id) VALUES (?, ?, ?)",
            (player_id, basho_id.to_int(), rikishi_id),
        )


def replace_awards(
    conn: sqlite3.Connection,
    basho_id: BashoId,
    player_ids: Iterable[PlayerId],
    award_type: int = EMPERORS_CUP,
) -> None:
    cur = conn.execute(
        "DELETE FROM award WHERE basho_id = ? AND type = ?",
        (basho_id.to_int(), award_type),
    )
    logger.debug("Deleted %d previously bestowed awards", cur.rowcount)
    for player_id in player_ids:
        conn.execute(
            "INSERT INTO award (basho_id, player_id, type) VALUES (?, ?, ?)",
            (basho_id.to_int(), player_id, award_type),
        )


# ---------------------------------------------------------------------------
# Materialised results and ranks
# ---------------------------------------------------------------------------

def upsert_basho_results(
    conn: sqlite3.Connection,
    basho_id: BashoId,
    scores: Iterable[PlayerTournamentScore],
) -> int:
    count = 0
    for score in scores:
        if score.player_id is None:
            continue
        conn.execute(
            """
            INSERT INTO basho_result (basho_id, player_id, wins, rank)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (basho_id, player_id) DO UPDATE SET
                wins = excluded.wins,
                rank = excluded.rank
            """,
            (basho_id.to_int(), score.player_id, score.total, score.rank),
        )
        count += 1
    logger.debug("Upserted %d basho results for %s", count, basho_id.id)
    return count


def basho_result_totals(
    conn: sqlite3.Connection, basho_id: BashoId,
) -> dict[PlayerId, int]:
    return {
        row["player_id"]: row["wins"]
        for row in conn.execute(
            "SELECT player_id, wins FROM basho_result WHERE basho_id = ?",
            (basho_id.to_int(),),
        )
    }


def upsert_player_ranks(
    conn: sqlite3.Connection,
    before_basho_id: BashoId,
    leaders: Iterable[HistoricLeader],
) -> int:
    count = 0
    for leader in leaders:
        conn.execute(
            """
            INSERT INTO player_rank (player_id, before_basho_id, rank, past_year_wins)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (player_id, before_basho_id) DO UPDATE SET
                rank = excluded.rank,
                past_year_wins = excluded.past_year_wins
            """,
            (leader.player.id, before_basho_id.to_int(), str(leader.rank),
             leader.wins.total or 0),
        )
        count += 1
    logger.debug("Upserted %d player ranks before %s", count, before_basho_id.id)
    return count


def player_ranking(
    conn: sqlite3.Connection, before_basho_id: BashoId,
) -> list[tuple[Player, int]]:
    """Ranked players going into a basho with their past-year wins."""
    rows = conn.execute(
        """
        SELECT p.*, pr.rank, pr.past_year_wins
        FROM player_rank AS pr
        JOIN player AS p ON p.id = pr.player_id
        WHERE pr.before_basho_id = ?
        ORDER BY pr.past_year_wins DESC, LOWER(p.name)
        """,
        (before_basho_id.to_int(),),
    ).fetchall()
    return [(_player_from_row(r), r["past_year_wins"]) for r in rows]


# ---------------------------------------------------------------------------
# Heya
# ---------------------------------------------------------------------------

def add_heya(conn: sqlite3.Connection, name: str, oyakata_player_id: PlayerId) -> Heya:
    """Create a heya with its oyakata as the first member."""
    cur = conn.execute(
        "INSERT INTO heya (name, oyakata_player_id) VALUES (?, ?)",
        (name, oyakata_player_id),
    )
    heya_id = cur.lastrowid
    add_heya_member(conn, heya_id, oyakata_player_id)
    return Heya(id=heya_id, name=name, oyakata_player_id=oyakata_player_id)


def add_heya_member(conn: sqlite3.Connection, heya_id: int, player_id: PlayerId) -> None:
    conn.execute(
        "INSERT INTO heya_player (heya_id, player_id) VALUES (?, ?)",
        (heya_id, player_id),
    )


def heya_with_name(conn: sqlite3.Connection, name: str) -> Heya | None:
    row = conn.execute("SELECT * FROM heya WHERE name = ?", (name,)).fetchone()
    if row is None:
        return None
    members = conn.execute(
        """
        SELECT p.*
        FROM heya_player AS hp
        JOIN player AS p ON p.id = hp.player_id
        WHERE hp.heya_id = ?
        ORDER BY p.name
        """,
        (row["id"],),
    ).fetchall()
    return Heya(
        id=row["id"],
        name=row["name"],
        oyakata_player_id=row["oyakata_player_id"],
        members=tuple(_player_from_row(m) for m in members),
    )
