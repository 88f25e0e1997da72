import itertools
import random

from cfb_reconcile.models.enums import Category
from cfb_reconcile.models.game import NcaaGame
from cfb_reconcile.models.team import NcaaTeam
from cfb_reconcile.resolution.consolidation import ConsolidationMap

FOOTBALL = Category.FOOTBALL


def _assert_depth_one(cmap: ConsolidationMap, category=FOOTBALL):
    table = cmap.to_dict().get(category.value, {})
    for duplicate, canonical in table.items():
        assert canonical not in table, f"{duplicate} -> {canonical} is not terminal"
        assert duplicate != canonical


class TestResolve:
    def test_unknown_ids_pass_through(self):
        cmap = ConsolidationMap()
        assert cmap.resolve(FOOTBALL, "264") == "264"
        assert cmap.resolve(FOOTBALL, None) is None
        assert cmap.resolve(FOOTBALL, "") == ""

    def test_mappings_are_scoped_per_category(self):
        cmap = ConsolidationMap({"football": {"999": "100"}})
        assert cmap.resolve(FOOTBALL, "999") == "100"
        assert cmap.resolve(Category.BASKETBALL, "999") == "999"
        assert cmap.resolve("football", "999") == "100"


class TestAddMapping:
    def test_chain_is_flattened(self):
        cmap = ConsolidationMap()
        cmap.add_mapping(FOOTBALL, "a", "b")
        cmap.add_mapping(FOOTBALL, "b", "c")
        assert cmap.resolve(FOOTBALL, "a") == "c"
        assert cmap.resolve(FOOTBALL, "b") == "c"
        _assert_depth_one(cmap)

    def test_mapping_onto_a_duplicate_uses_its_canonical(self):
        cmap = ConsolidationMap()
        cmap.add_mapping(FOOTBALL, "b", "c")
        assert cmap.add_mapping(FOOTBALL, "a", "b") == "c"
        assert cmap.resolve(FOOTBALL, "a") == "c"

    def test_cycle_is_refused(self):
        cmap = ConsolidationMap()
        cmap.add_mapping(FOOTBALL, "a", "b")
        assert cmap.add_mapping(FOOTBALL, "b", "a") == "b"
        assert cmap.resolve(FOOTBALL, "a") == "b"
        assert cmap.resolve(FOOTBALL, "b") == "b"

    def test_self_mapping_is_refused(self):
        cmap = ConsolidationMap()
        assert cmap.add_mapping(FOOTBALL, "a", "a") == "a"
        assert len(cmap) == 0

    def test_acyclic_under_adversarial_orders(self):
        edges = [("1", "2"), ("2", "3"), ("3", "1"), ("4", "3"), ("5", "4"), ("2", "5")]
        for order in itertools.permutations(edges):
            cmap = ConsolidationMap()
            for duplicate, canonical in order:
                cmap.add_mapping(FOOTBALL, duplicate, canonical)
            _assert_depth_one(cmap)
            for node in "12345":
                resolved = cmap.resolve(FOOTBALL, node)
                assert cmap.resolve(FOOTBALL, resolved) == resolved

    def test_acyclic_under_random_insertions(self):
        rng = random.Random(7)
        cmap = ConsolidationMap()
        for _ in range(500):
            a, b = rng.sample([str(i) for i in range(30)], 2)
            cmap.add_mapping(FOOTBALL, a, b)
        _assert_depth_one(cmap)

    def test_constructor_ignores_cyclic_input(self):
        cmap = ConsolidationMap({"football": {"a": "b", "b": "a"}})
        _assert_depth_one(cmap)
        assert cmap.resolve(FOOTBALL, "a") == cmap.resolve(FOOTBALL, "b")


class TestRecordHelpers:
    def test_canonicalize_teams_and_games(self):
        cmap = ConsolidationMap({"football": {"999": "100"}})
        teams = cmap.canonicalize_teams(FOOTBALL, [NcaaTeam(school_name="St. Francis", ncaa_id="999")])
        assert teams[0].ncaa_id == "100"

        game = NcaaGame(date="9/7/2024", opponent_name="St. Francis", opponent_ncaa_id="999", season=2024, home_team_ncaa_id="264")
        (canonical,) = cmap.canonicalize_games(FOOTBALL, [game])
        assert canonical.opponent_ncaa_id == "100"
        assert canonical.home_team_ncaa_id == "264"

    def test_merge_keyed_concatenates_collapsed_keys(self):
        cmap = ConsolidationMap({"football": {"999": "100"}})
        merged = cmap.merge_keyed(FOOTBALL, {"100": [1], "999": [2], "264": [3]})
        assert merged == {"100": [1, 2], "264": [3]}

    def test_entry_for_finds_duplicate_keys(self):
        cmap = ConsolidationMap({"football": {"999": "100"}})
        assert cmap.entry_for(FOOTBALL, {"999": "coach"}, "100") == "coach"
        assert cmap.entry_for(FOOTBALL, {"264": "coach"}, "100") is None

    def test_duplicates_of(self):
        cmap = ConsolidationMap({"football": {"999": "100", "998": "100"}})
        assert cmap.duplicates_of(FOOTBALL, "100") == ["998", "999"]
