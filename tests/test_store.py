"""Tests for bashoscore.store."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from bashoscore import store
from bashoscore.basho_id import BashoId
from bashoscore.models import (
    BanzukeEntry,
    HistoricLeader,
    NumericStats,
    PlayerTournamentScore,
    RealPlayer,
    TheoreticalBest,
)
from bashoscore.rank import Rank
from bashoscore.util import AmbiguousShikona, UnknownBasho

from conftest import BASHO, day_results


class TestConnect:
    def test_creates_parent_dir(self, tmp_path) -> None:
        path = tmp_path / "nested" / "db.sqlite"
        conn = store.connect(path)
        try:
            assert path.exists()
        finally:
            conn.close()

    def test_reopen_keeps_data(self, tmp_path) -> None:
        path = tmp_path / "db.sqlite"
        conn = store.connect(path)
        store.add_player(conn, "Kachi")
        conn.close()
        conn = store.connect(path)
        try:
            assert store.player_with_name(conn, "Kachi") is not None
        finally:
            conn.close()


class TestTransaction:
    def test_commits(self, conn) -> None:
        with store.transaction(conn):
            store.add_player(conn, "Kachi")
        assert store.player_with_name(conn, "Kachi") is not None

    def test_rolls_back_on_error(self, conn) -> None:
        with pytest.raises(RuntimeError):
            with store.transaction(conn):
                store.add_player(conn, "Kachi")
                raise RuntimeError("boom")
        assert store.player_with_name(conn, "Kachi") is None
        assert not conn.in_transaction


class TestPlayers:
    def test_add_and_lookup(self, conn) -> None:
        joined = datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc)
        player = store.add_player(conn, "Kachi", join_date=joined)
        found = store.player_with_name(conn, "Kachi")
        assert found.id == player.id
        assert found.join_date == joined
        assert found.emperors_cups == 0

    def test_unknown(self, conn) -> None:
        assert store.player_with_name(conn, "nobody") is None

    def test_emperors_cups_counted(self, loaded_conn) -> None:
        player = store.add_player(loaded_conn, "Kachi")
        store.replace_awards(loaded_conn, BASHO, [player.id])
        assert store.player_with_name(loaded_conn, "Kachi").emperors_cups == 1


class TestBasho:
    def test_info(self, loaded_conn, future_start) -> None:
        info = store.basho_info(loaded_conn, BASHO)
        assert info.venue == "Tokyo"
        assert info.start_date == future_start
        assert not info.has_started()
        assert info.link_url() == "/basho/202501"

    def test_info_missing(self, conn) -> None:
        assert store.basho_info(conn, BASHO) is None

    def test_start_date_missing(self, conn) -> None:
        with pytest.raises(UnknownBasho):
            store.start_date(conn, BASHO)

    def test_update_basho_upserts(self, loaded_conn, banzuke_entries) -> None:
        new_start = datetime(2025, 1, 12, 6, tzinfo=timezone.utc)
        ids = store.update_basho(
            loaded_conn, BASHO, "Ryogoku", new_start, banzuke_entries,
            external_link="https://example.com/hatsu",
        )
        assert ids["Terunofuji"] == 1
        info = store.basho_info(loaded_conn, BASHO)
        assert info.venue == "Ryogoku"
        assert info.start_date == new_start
        assert info.link_url() == "https://example.com/hatsu"
        assert len(store.basho_rikishi(loaded_conn, BASHO)) == 10

    def test_rikishi_reused_across_bashos(self, loaded_conn, banzuke_entries, future_start) -> None:
        ids = store.update_basho(
            loaded_conn, BASHO.next(), "Osaka", future_start, banzuke_entries[:2],
        )
        assert ids == {"Terunofuji": 1, "Kirishima": 2}

    def test_ambiguous_shikona(self, conn, future_start) -> None:
        conn.execute("INSERT INTO rikishi (family_name) VALUES ('Ura')")
        conn.execute("INSERT INTO rikishi (family_name) VALUES ('Ura')")
        entry = BanzukeEntry(name="Ura", rank=Rank.parse("M1e"))
        with pytest.raises(AmbiguousShikona):
            store.update_basho(conn, BASHO, "Tokyo", future_start, [entry])


class TestResults:
    def test_round_trip(self, loaded_conn, rikishi_by_id) -> None:
        assert store.basho_rikishi(loaded_conn, BASHO) == rikishi_by_id

    def test_replaces_previous_results(self, loaded_conn) -> None:
        entry = BanzukeEntry(
            name="Terunofuji", rank=Rank.parse("Y1e"), results=day_results("xxxxxx"),
        )
        written = store.update_results(loaded_conn, BASHO, [entry])
        assert written == 6
        rikishi = store.basho_rikishi(loaded_conn, BASHO)
        assert rikishi[1].wins == 0
        assert rikishi[1].losses == 6
        # everyone else's results were cleared
        assert rikishi[3].wins == 0

    def test_unknown_name_skipped(self, loaded_conn) -> None:
        entry = BanzukeEntry(name="Nobody", rank=Rank.parse("M3e"), results=day_results("o"))
        assert store.update_results(loaded_conn, BASHO, [entry]) == 0

    def test_malformed_rank_skipped(self, loaded_conn) -> None:
        loaded_conn.execute(
            "UPDATE banzuke SET rank = 'J1e' WHERE rikishi_id = 10",
        )
        rikishi = store.basho_rikishi(loaded_conn, BASHO)
        assert 10 not in rikishi
        assert len(rikishi) == 9

    def test_banzuke_ranks(self, loaded_conn) -> None:
        ranks = store.banzuke_ranks(loaded_conn, BASHO, [1, 9, 42])
        assert ranks == {1: Rank.parse("Y1e"), 9: Rank.parse("M11e")}
        assert store.banzuke_ranks(loaded_conn, BASHO, []) == {}


class TestPicks:
    def test_pick_rows(self, loaded_conn) -> None:
        a = store.add_player(loaded_conn, "Kachi")
        b = store.add_player(loaded_conn, "Makekoshi")
        store.replace_picks(loaded_conn, b.id, BASHO, [4])
        store.replace_picks(loaded_conn, a.id, BASHO, [3, 1])
        rows = store.pick_rows(loaded_conn, BASHO)
        assert [(r.player.name, r.rikishi_id) for r in rows] == [
            ("Kachi", 1), ("Kachi", 3), ("Makekoshi", 4),
        ]
        assert all(r.player.rank is None for r in rows)

    def test_basho_ids_with_picks(self, loaded_conn, banzuke_entries, future_start) -> None:
        later = BASHO.incr(3)
        store.update_basho(loaded_conn, later, "Tokyo", future_start, banzuke_entries)
        player = store.add_player(loaded_conn, "Kachi")
        store.replace_picks(loaded_conn, player.id, BASHO, [1])
        store.replace_picks(loaded_conn, player.id, later, [1])
        assert store.basho_ids_with_picks(loaded_conn, later.window_of_size(6)) == [BASHO]
        assert store.basho_ids_with_picks(
            loaded_conn, later.next().window_of_size(6),
        ) == [BASHO, later]


class TestAwards:
    def test_last_completed(self, loaded_conn) -> None:
        assert store.last_completed_basho_id(loaded_conn) is None
        player = store.add_player(loaded_conn, "Kachi")
        store.replace_awards(loaded_conn, BASHO, [player.id])
        assert store.last_completed_basho_id(loaded_conn) == BashoId(2025, 1)

    def test_replace_awards(self, loaded_conn) -> None:
        a = store.add_player(loaded_conn, "Kachi")
        b = store.add_player(loaded_conn, "Makekoshi")
        store.replace_awards(loaded_conn, BASHO, [a.id])
        store.replace_awards(loaded_conn, BASHO, [b.id])
        assert store.player_with_name(loaded_conn, "Kachi").emperors_cups == 0
        assert store.player_with_name(loaded_conn, "Makekoshi").emperors_cups == 1


class TestBashoResults:
    def test_upsert_and_load(self, loaded_conn) -> None:
        player = store.add_player(loaded_conn, "Kachi")
        score = PlayerTournamentScore(player=RealPlayer(player), total=7, rank=1)
        best = PlayerTournamentScore(player=TheoreticalBest(), total=20)
        assert store.upsert_basho_results(loaded_conn, BASHO, [score, best]) == 1
        assert store.basho_result_totals(loaded_conn, BASHO) == {player.id: 7}

        score.total = 8
        store.upsert_basho_results(loaded_conn, BASHO, [score])
        assert store.basho_result_totals(loaded_conn, BASHO) == {player.id: 8}

    def test_new_picks_clear_total(self, loaded_conn) -> None:
        player = store.add_player(loaded_conn, "Kachi")
        score = PlayerTournamentScore(player=RealPlayer(player), total=4, rank=1)
        store.upsert_basho_results(loaded_conn, BASHO, [score])
        store.replace_picks(loaded_conn, player.id, BASHO, [3])
        assert store.basho_result_totals(loaded_conn, BASHO) == {}


class TestPlayerRanks:
    def _leader(self, player, wins: int, rank: str) -> HistoricLeader:
        return HistoricLeader(
            player=player, wins=NumericStats.of([wins]), ranks=NumericStats(),
            rank=Rank.parse(rank),
        )

    def test_ranking_order(self, loaded_conn) -> None:
        a = store.add_player(loaded_conn, "makekoshi")
        b = store.add_player(loaded_conn, "Kachi")
        c = store.add_player(loaded_conn, "Zensho")
        store.upsert_player_ranks(loaded_conn, BASHO, [
            self._leader(c, 12, "Y1e"), self._leader(a, 5, "Y1w"), self._leader(b, 5, "Y1w"),
        ])
        ranking = store.player_ranking(loaded_conn, BASHO)
        assert [(p.name, str(p.rank), wins) for p, wins in ranking] == [
            ("Zensho", "Y1e", 12), ("Kachi", "Y1w", 5), ("makekoshi", "Y1w", 5),
        ]
        assert store.player_ranking(loaded_conn, BASHO.next()) == []

    def test_upsert_replaces_rank(self, loaded_conn) -> None:
        player = store.add_player(loaded_conn, "Kachi")
        store.upsert_player_ranks(loaded_conn, BASHO, [self._leader(player, 3, "M2e")])
        store.upsert_player_ranks(loaded_conn, BASHO, [self._leader(player, 9, "O1e")])
        [(found, wins)] = store.player_ranking(loaded_conn, BASHO)
        assert found.rank == Rank.parse("O1e")
        assert wins == 9

    def test_pick_rows_carry_rank_into_basho(self, loaded_conn) -> None:
        ranked = store.add_player(loaded_conn, "Kachi")
        unranked = store.add_player(loaded_conn, "Shinjin")
        store.upsert_player_ranks(loaded_conn, BASHO, [self._leader(ranked, 9, "S1e")])
        store.upsert_player_ranks(loaded_conn, BASHO.next(), [self._leader(unranked, 1, "Y1e")])
        store.replace_picks(loaded_conn, ranked.id, BASHO, [1])
        store.replace_picks(loaded_conn, unranked.id, BASHO, [1])
        rows = store.pick_rows(loaded_conn, BASHO)
        assert {r.player.name: r.player.rank for r in rows} == {
            "Kachi": Rank.parse("S1e"), "Shinjin": None,
        }


class TestHeya:
    def test_add_and_lookup(self, conn) -> None:
        oyakata = store.add_player(conn, "Kachi")
        member = store.add_player(conn, "Ara")
        heya = store.add_heya(conn, "Isegahama", oyakata.id)
        store.add_heya_member(conn, heya.id, member.id)
        found = store.heya_with_name(conn, "Isegahama")
        assert found.id == heya.id
        assert [p.name for p in found.members] == ["Ara", "Kachi"]
        assert found.oyakata().name == "Kachi"

    def test_unknown(self, conn) -> None:
        assert store.heya_with_name(conn, "Nowhere") is None

    def test_duplicate_member_rejected(self, conn) -> None:
        oyakata = store.add_player(conn, "Kachi")
        heya = store.add_heya(conn, "Isegahama", oyakata.id)
        with pytest.raises(sqlite3.IntegrityError):
            store.add_heya_member(conn, heya.id, oyakata.id)

    def test_pick_rows_for_heya(self, loaded_conn) -> None:
        a = store.add_player(loaded_conn, "Kachi")
        b = store.add_player(loaded_conn, "Makekoshi")
        heya = store.add_heya(loaded_conn, "Isegahama", b.id)
        store.replace_picks(loaded_conn, a.id, BASHO, [1])
        store.replace_picks(loaded_conn, b.id, BASHO, [3, 4])
        rows = store.pick_rows(loaded_conn, BASHO, heya.id)
        assert [(r.player.name, r.rikishi_id) for r in rows] == [
            ("Makekoshi", 3), ("Makekoshi", 4),
        ]


def test_naive_datetimes_stored_as_utc(conn) -> None:
    naive = datetime(2024, 1, 2, 3, 4)
    store.add_player(conn, "Kachi", join_date=naive)
    found = store.player_with_name(conn, "Kachi")
    assert found.join_date == naive.replace(tzinfo=timezone.utc)
    assert found.join_date.utcoffset() == timedelta(0)
