"""Shared pytest fixtures: a sample roster and an in-memory store."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from bashoscore import store
from bashoscore.basho_id import BashoId
from bashoscore.models import BanzukeEntry, BashoRikishi
from bashoscore.rank import Rank

FIXTURES_DIR = Path(__file__).parent / "fixtures"

BASHO = BashoId(2025, 1)

# id, shikona, rank, first five days ("o" win, "x" loss, "-" no result), kyujo
ROSTER = [
    (1, "Terunofuji", "Y1e", "ooxoo", False),
    (2, "Kirishima", "O1w", "xoxxo", False),
    (3, "Wakatakakage", "S1e", "ooooo", False),
    (4, "Abi", "K1w", "xxxxx", False),
    (5, "Ura", "M1e", "oxoxo", False),
    (6, "Shodai", "M5w", "oooox", False),
    (7, "Tobizaru", "M6e", "xxoxx", False),
    (8, "Takayasu", "M10w", "ooxox", False),
    (9, "Ryuden", "M11e", "xoooo", False),
    (10, "Hokutofuji", "M16w", "-----", True),
]


def day_results(marks: str) -> tuple:
    """Expand "ox-" marks into a 15-day result tuple."""
    values = {"o": True, "x": False, "-": None}
    results = [values[c] for c in marks]
    return tuple(results + [None] * (15 - len(results)))


@pytest.fixture()
def rikishi_by_id() -> dict[int, BashoRikishi]:
    return {
        rid: BashoRikishi(
            id=rid, name=name, rank=Rank.parse(rank),
            results=day_results(marks), is_kyujo=kyujo,
        )
        for rid, name, rank, marks, kyujo in ROSTER
    }


@pytest.fixture()
def banzuke_entries() -> list[BanzukeEntry]:
    return [
        BanzukeEntry(
            name=name, rank=Rank.parse(rank),
            results=day_results(marks), is_kyujo=kyujo,
        )
        for _, name, rank, marks, kyujo in ROSTER
    ]


@pytest.fixture()
def conn():
    c = store.connect(":memory:")
    yield c
    c.close()


@pytest.fixture()
def future_start() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=7)


@pytest.fixture()
def loaded_conn(conn, banzuke_entries, future_start):
    """Store with BASHO, its banzuke and results, starting next week."""
    with store.transaction(conn):
        store.update_basho(conn, BASHO, "Tokyo", future_start, banzuke_entries)
        store.update_results(conn, BASHO, banzuke_entries)
    return conn


@pytest.fixture()
def banzuke_response() -> dict:
    return json.loads(
        (FIXTURES_DIR / "banzuke_202307.json").read_text(encoding="utf-8")
    )
