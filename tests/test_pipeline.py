import csv
import json

import pytest

from cfb_reconcile.models.enums import Category, GameMatchStage, MatchStage
from cfb_reconcile.models.game import EspnGame, NcaaGame
from cfb_reconcile.models.team import EspnTeam, NcaaTeam
from cfb_reconcile.reporting.reports import BIND_CSV_HEADER, CONSOLIDATION_CSV_HEADER, write_reports
from cfb_reconcile.resolution.pipeline import ReconciliationInputs, reconcile
from cfb_reconcile.storage.store import CONSOLIDATION_KEY, binding_key

FOOTBALL = Category.FOOTBALL

ESPN_TEAMS = [
    EspnTeam(id="52", displayName="Towson Tigers", abbreviation="TOW", location="Towson", name="Tigers"),
    EspnTeam(
        id="500", displayName="Saint Francis Red Flash", abbreviation="SFPA", location="Saint Francis", name="Red Flash"
    ),
    EspnTeam(id="48", displayName="UD Blue Hens", abbreviation="DEL", location="UD", name="Blue Hens"),
]
NCAA_TEAMS = [
    NcaaTeam(school_name="Towson", ncaa_id="264"),
    NcaaTeam(school_name="Saint Francis", ncaa_id="100"),
    NcaaTeam(school_name="Delaware", ncaa_id="180"),
]


def espn_game(espn_id, when, home, away, title):
    return EspnGame(espn_id=espn_id, date_time=when, season=2024, home_espn_id=home, away_espn_id=away, title=title)


def ncaa_row(when, opponent, opponent_id, game_id):
    return NcaaGame(
        date=when,
        opponent_name=opponent,
        opponent_ncaa_id=opponent_id,
        ncaa_game_id=game_id,
        season=2024,
        home_team_ncaa_id="264",
    )


ESPN_SCHEDULE = [
    espn_game("401", "2024-09-07T17:00:00Z", "52", "500", "Saint Francis Red Flash at Towson Tigers"),
    espn_game("402", "2024-11-09T17:00:00Z", "500", "52", "Towson Tigers at Saint Francis Red Flash"),
    espn_game("410", "2024-09-21T16:00:00Z", "52", "48", "UD Blue Hens at Towson Tigers"),
    espn_game("411", "2024-10-19T16:00:00Z", "48", "52", "Towson Tigers at UD Blue Hens"),
]
NCAA_SCHEDULE = [
    ncaa_row("9/7/2024", "St. Francis", "999", "8001"),
    ncaa_row("11/9/2024", "@ St. Francis", "999", "8002"),
    ncaa_row("9/21/2024", "Delaware", "180", "9001"),
    ncaa_row("10/19/2024", "@ Delaware", "180", "9002"),
]


@pytest.fixture
def inputs():
    return ReconciliationInputs(
        category=FOOTBALL,
        espn_teams=ESPN_TEAMS,
        ncaa_teams=NCAA_TEAMS,
        espn_games_by_team={"52": ESPN_SCHEDULE},
        ncaa_games_by_team={"264": NCAA_SCHEDULE},
        head_coaches={"264": "Pete Shinnick"},
    )


@pytest.fixture
def bound_store(store):
    store.bind(FOOTBALL, "264", "52")
    store.bind(FOOTBALL, "100", "500")
    return store


class TestReconcile:
    def test_promotion_is_applied_and_teams_resolved_again(self, inputs, bound_store, policy):
        result = reconcile(inputs, bound_store, policy)

        assert result.promotion.consolidated == [("999", "100")]
        assert result.promotion.bound == [("180", "48")]
        assert bound_store.resolve(FOOTBALL, "999") == "100"

        delaware = next(t for t in result.teams.resolved if t.espn_id == "48")
        assert delaware.ncaa_id == "180"
        assert delaware.match_stage == MatchStage.BINDING
        assert result.teams.unmatched_ncaa == []

        towson = next(t for t in result.teams.resolved if t.espn_id == "52")
        assert towson.head_coach == "Pete Shinnick"

    def test_every_espn_game_is_linked_once(self, inputs, bound_store, policy):
        result = reconcile(inputs, bound_store, policy)
        assert result.games.links == {"401": "8001", "402": "8002", "410": "9001", "411": "9002"}
        assert all(g.match_stage == GameMatchStage.PER_TEAM for g in result.games.games)
        assert result.games.unmatched_espn == []
        assert result.games.unmatched_ncaa == []

    def test_game_ids_are_stable_across_runs(self, inputs, bound_store, policy):
        first = reconcile(inputs, bound_store, policy)
        second = reconcile(inputs, bound_store, policy)
        assert [g.id for g in first.games.games] == [g.id for g in second.games.games]
        assert second.promotion.consolidated == [] and second.promotion.bound == []

    def test_discovery_can_be_disabled(self, inputs, bound_store, policy):
        result = reconcile(inputs, bound_store, policy, discover=False)
        assert result.discovery.bindings == []
        assert bound_store.resolve(FOOTBALL, "999") == "999"
        delaware = next(t for t in result.teams.resolved if t.espn_id == "48")
        assert delaware.match_stage == MatchStage.UNBOUND

    def test_store_is_not_persisted_by_reconcile(self, inputs, bound_store, memory_cache, policy):
        reconcile(inputs, bound_store, policy)
        assert memory_cache.get(binding_key(FOOTBALL)) is None
        assert memory_cache.get(CONSOLIDATION_KEY) is None


class TestReports:
    def test_files_and_headers(self, inputs, bound_store, policy, tmp_path):
        result = reconcile(inputs, bound_store, policy)
        written = write_reports(result, tmp_path / "output", tmp_path / "processed")

        assert written["teams"] == tmp_path / "processed" / "teams.json"
        assert len(json.loads(written["teams"].read_text())) == 3
        assert len(json.loads(written["games"].read_text())) == 4
        assert json.loads(written["unmatched_espn_games"].read_text()) == []

        with open(written["binding_candidates"], newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0] == BIND_CSV_HEADER
        assert rows[1] == [
            "48",
            "180",
            "football",
            "UD Blue Hens at Towson Tigers",
            "Towson Tigers",
            "2",
            "false",
            "",
        ]

        with open(written["consolidation_candidates"], newline="") as f:
            rows = list(csv.DictReader(f))
        assert list(rows[0]) == CONSOLIDATION_CSV_HEADER
        assert (rows[0]["duplicate_id"], rows[0]["canonical_id"], rows[0]["reason"]) == (
            "999",
            "100",
            "unknown_ncaa_id",
        )

    def test_unmatched_games_are_listed(self, store, policy, tmp_path):
        inputs = ReconciliationInputs(
            espn_teams=ESPN_TEAMS[:1],
            espn_games_by_team={"52": [espn_game("499", "2024-08-31T16:00:00Z", "52", "777", "Mystery U at Towson Tigers")]},
            ncaa_games_by_team={"264": [ncaa_row("12/1/2024", "Elsewhere", None, "7777")]},
        )
        result = reconcile(inputs, store, policy)
        written = write_reports(result, tmp_path)

        (espn_row,) = json.loads(written["unmatched_espn_games"].read_text())
        assert espn_row["espn_id"] == "499"
        assert espn_row["home_team"] == "Towson Tigers"
        (ncaa_row_out,) = json.loads(written["unmatched_ncaa_games"].read_text())
        assert ncaa_row_out["ncaa_game_id"] == "7777"
        assert written["teams"].parent == tmp_path
