from cfb_reconcile.models.team import CoordinatorRecord, ResolvedTeam
from cfb_reconcile.resolution.matchers import Claims, find_team_by_name, first_match, match_coordinator

TOWSON = ResolvedTeam(id="TOW00001", espn_id="52", ncaa_id="264", full_name="Towson Tigers", university="Towson")
MARYLAND = ResolvedTeam(id="MD000001", espn_id="120", ncaa_id="392", full_name="Maryland Terrapins", university="Maryland")
SAINT_FRANCIS = ResolvedTeam(id="SFPA0001", full_name="Saint Francis Red Flash", university="Saint Francis")
TEAMS = [TOWSON, MARYLAND, SAINT_FRANCIS]


class TestFindTeamByName:
    def test_exact_cleaned_name(self, policy):
        assert find_team_by_name("Towson", TEAMS, policy) is TOWSON
        assert find_team_by_name("St. Francis", TEAMS, policy) is SAINT_FRANCIS

    def test_fuzzy_fallback(self, policy):
        assert find_team_by_name("Towsen", TEAMS, policy) is TOWSON

    def test_nothing_for_unknown_or_empty(self, policy):
        assert find_team_by_name("Bowdoin", TEAMS, policy) is None
        assert find_team_by_name("", TEAMS, policy) is None
        assert find_team_by_name(None, TEAMS, policy) is None

    def test_equally_good_teams_give_none(self, policy):
        twins = [
            ResolvedTeam(id="CON00001", full_name="Concordia", university="Concordia"),
            ResolvedTeam(id="CON00002", full_name="Concordia", university="Concordia"),
        ]
        assert find_team_by_name("Concordia", twins, policy) is None


def test_claims_are_taken_once():
    claims = Claims()
    assert claims.claim("52", "264") is True
    assert not claims.is_free("52", None)
    assert not claims.is_free(None, "264")
    assert claims.claim("52", "999") is False
    assert claims.is_free(None, "999")


def test_first_match_stops_at_first_hit():
    calls = []

    def miss(query, pool):
        calls.append("miss")
        return None

    def hit(query, pool):
        calls.append("hit")
        return pool[0]

    def never(query, pool):
        calls.append("never")
        return pool[-1]

    assert first_match("x", ["a", "b"], [miss, hit, never]) == "a"
    assert calls == ["miss", "hit"]
    assert first_match("", ["a"], [hit]) is None


class TestMatchCoordinator:
    records = [
        CoordinatorRecord(team="Maryland", offensive_coordinator="Josh Gattis"),
        CoordinatorRecord(team="towsontigers", offensive_coordinator="Jared Ambrose"),
    ]

    def test_safe_match_on_full_name(self):
        assert match_coordinator(MARYLAND, self.records).offensive_coordinator == "Josh Gattis"

    def test_distinctive_word_contained(self):
        assert match_coordinator(TOWSON, self.records).offensive_coordinator == "Jared Ambrose"

    def test_no_match(self):
        assert match_coordinator(SAINT_FRANCIS, self.records) is None
