from cfb_reconcile.models.enums import Category
from cfb_reconcile.models.game import EspnGame, NcaaGame
from cfb_reconcile.models.team import ResolvedTeam
from cfb_reconcile.resolution.discovery import (
    REASON_SHARED_ESPN_TEAM,
    REASON_UNKNOWN_NCAA_ID,
    BindingDiscovery,
)

FOOTBALL = Category.FOOTBALL

TOWSON = ResolvedTeam(id="TOW00001", espn_id="52", ncaa_id="264", full_name="Towson Tigers", university="Towson")
SAINT_FRANCIS = ResolvedTeam(
    id="SFPA0001", espn_id="500", ncaa_id="100", full_name="Saint Francis Red Flash", university="Saint Francis"
)
DELAWARE_UNBOUND = ResolvedTeam(id="DEL00001", espn_id="48", full_name="Delaware Blue Hens", university="Delaware")


def espn_game(espn_id, when, home, away):
    return EspnGame(espn_id=espn_id, date_time=when, season=2024, home_espn_id=home, away_espn_id=away)


def ncaa_row(when, opponent, opponent_id, game_id, owner="264"):
    return NcaaGame(
        date=when,
        opponent_name=opponent,
        opponent_ncaa_id=opponent_id,
        ncaa_game_id=game_id,
        season=2024,
        home_team_ncaa_id=owner,
    )


def run(store, policy, teams, espn_games, ncaa_rows):
    discovery = BindingDiscovery(FOOTBALL, store, policy)
    result = discovery.discover(teams, {"52": espn_games}, {"264": ncaa_rows})
    return discovery, result


def bind_known(store):
    store.bind(FOOTBALL, "264", "52")
    store.bind(FOOTBALL, "100", "500")


class TestConsolidationDiscovery:
    def test_scenario_b_unknown_id_is_consolidated(self, store, policy):
        bind_known(store)
        espn_games = [
            espn_game("401", "2024-09-07T17:00:00Z", home="52", away="500"),
            espn_game("402", "2024-11-09T17:00:00Z", home="500", away="52"),
        ]
        rows = [
            ncaa_row("9/7/2024", "St. Francis", "999", "8001"),
            ncaa_row("11/9/2024", "@ St. Francis", "999", "8002"),
        ]
        discovery, result = run(store, policy, [TOWSON, SAINT_FRANCIS], espn_games, rows)

        (candidate,) = result.consolidations
        assert (candidate.duplicate_id, candidate.canonical_id) == ("999", "100")
        assert candidate.reason == REASON_UNKNOWN_NCAA_ID
        assert candidate.confidence == 2
        assert result.bindings == []

        promotion = discovery.promote(result)
        assert promotion.consolidated == [("999", "100")]
        assert store.resolve(FOOTBALL, "999") == "100"

    def test_consistent_opponents_produce_nothing(self, store, policy):
        bind_known(store)
        espn_games = [espn_game("401", "2024-09-07T17:00:00Z", home="52", away="500")]
        rows = [ncaa_row("9/7/2024", "Saint Francis", "100", "8001")]
        _, result = run(store, policy, [TOWSON, SAINT_FRANCIS], espn_games, rows)
        assert result.bindings == [] and result.consolidations == []

    def test_different_school_name_is_not_consolidated(self, store, policy):
        bind_known(store)
        espn_games = [espn_game("401", "2024-09-07T17:00:00Z", home="52", away="500")]
        rows = [ncaa_row("9/7/2024", "Villanova", "222", "8001")]
        _, result = run(store, policy, [TOWSON, SAINT_FRANCIS], espn_games, rows)
        assert result.consolidations == []

    def test_games_outside_the_window_are_not_correlated(self, store, policy):
        bind_known(store)
        espn_games = [espn_game("401", "2024-09-07T17:00:00Z", home="52", away="500")]
        rows = [ncaa_row("9/12/2024", "St. Francis", "999", "8001")]
        _, result = run(store, policy, [TOWSON, SAINT_FRANCIS], espn_games, rows)
        assert result.consolidations == []


class TestBindingDiscovery:
    espn_games = [
        espn_game("410", "2024-09-21T16:00:00Z", home="52", away="48"),
        espn_game("411", "2024-10-19T16:00:00Z", home="48", away="52"),
    ]
    rows = [
        ncaa_row("9/21/2024", "Delaware", "180", "9001"),
        ncaa_row("10/19/2024", "@ Delaware", "180", "9002"),
    ]

    def test_unbound_opponent_becomes_candidate(self, store, policy):
        store.bind(FOOTBALL, "264", "52")
        _, result = run(store, policy, [TOWSON, DELAWARE_UNBOUND], self.espn_games, self.rows)
        (candidate,) = result.bindings
        assert (candidate.espn_id, candidate.ncaa_id) == ("48", "180")
        assert candidate.confidence == 2
        assert candidate.bound_team_name == "Towson Tigers"
        assert candidate.opponent_name == "Delaware"
        assert candidate.already_bound is False

    def test_confident_candidate_is_promoted(self, store, policy):
        store.bind(FOOTBALL, "264", "52")
        discovery, result = run(store, policy, [TOWSON, DELAWARE_UNBOUND], self.espn_games, self.rows)
        promotion = discovery.promote(result)
        assert promotion.bound == [("180", "48")]
        assert store.espn_for(FOOTBALL, "180") == "48"

    def test_single_game_is_below_threshold(self, store, policy):
        store.bind(FOOTBALL, "264", "52")
        discovery, result = run(store, policy, [TOWSON, DELAWARE_UNBOUND], self.espn_games[:1], self.rows[:1])
        assert result.bindings[0].confidence == 1
        promotion = discovery.promote(result)
        assert promotion.bound == []
        assert promotion.skipped == 1
        assert store.espn_for(FOOTBALL, "180") is None

    def test_already_bound_ncaa_id_is_flagged_and_left_alone(self, store, policy):
        store.bind(FOOTBALL, "264", "52")
        store.bind(FOOTBALL, "180", "4800")
        discovery, result = run(store, policy, [TOWSON, DELAWARE_UNBOUND], self.espn_games, self.rows)
        (candidate,) = result.bindings
        assert candidate.already_bound is True
        assert candidate.existing_espn_id == "4800"
        discovery.promote(result)
        assert store.espn_for(FOOTBALL, "180") == "4800"

    def test_auto_promotion_can_be_disabled(self, store, policy):
        store.bind(FOOTBALL, "264", "52")
        manual = policy.model_copy(update={"auto_promote_bindings": False})
        discovery, result = run(store, manual, [TOWSON, DELAWARE_UNBOUND], self.espn_games, self.rows)
        promotion = discovery.promote(result)
        assert promotion.bound == []
        assert store.espn_for(FOOTBALL, "180") is None

    def test_two_ncaa_ids_for_one_espn_team_are_consolidated(self, store, policy):
        store.bind(FOOTBALL, "264", "52")
        rows = self.rows + [
            ncaa_row("9/21/2024", "Delaware", "181", "9003"),
            ncaa_row("10/19/2024", "@ Delaware", "181", "9004"),
        ]
        discovery, result = run(store, policy, [TOWSON, DELAWARE_UNBOUND], self.espn_games, rows)
        (candidate,) = result.consolidations
        assert (candidate.duplicate_id, candidate.canonical_id) == ("181", "180")
        assert candidate.reason == REASON_SHARED_ESPN_TEAM

        promotion = discovery.promote(result)
        assert promotion.consolidated == [("181", "180")]
        assert promotion.bound == [("180", "48")]
        assert store.espn_for(FOOTBALL, "181") == "48"
