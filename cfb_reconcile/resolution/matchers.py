"""Ordered name-matching strategies and the claimed-set used by greedy matching.

A strategy is a pure function `(query, pool) -> Optional[match]`; callers try
them in order and stop at the first hit.
"""

from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, TypeVar

from cfb_reconcile.config.settings import MatchingPolicy
from cfb_reconcile.models.team import CoordinatorRecord, ResolvedTeam
from cfb_reconcile.normalization.names import clean_name, generate_acronym, is_safe_match
from cfb_reconcile.resolution.fuzzy import FuzzyIndex, FuzzyKey, is_ambiguous

T = TypeVar("T")
Strategy = Callable[[str, Sequence[T]], Optional[T]]


class Claims:
    """Ids consumed on each side of a two-population match."""

    def __init__(self):
        self.espn: Set[str] = set()
        self.ncaa: Set[str] = set()

    def is_free(self, espn_id: Optional[str], ncaa_id: Optional[str]) -> bool:
        return (espn_id is None or espn_id not in self.espn) and (
            ncaa_id is None or ncaa_id not in self.ncaa
        )

    def claim(self, espn_id: Optional[str], ncaa_id: Optional[str]) -> bool:
        """Claims both ids; False (and no change) when either is already taken."""
        if not self.is_free(espn_id, ncaa_id):
            return False
        if espn_id is not None:
            self.espn.add(espn_id)
        if ncaa_id is not None:
            self.ncaa.add(ncaa_id)
        return True


def first_match(query: str, pool: Sequence[T], strategies: Iterable[Strategy]) -> Optional[T]:
    if not query:
        return None
    for strategy in strategies:
        match = strategy(query, pool)
        if match is not None:
            return match
    return None


# --- team lookup by free-text name ---


class TeamNameLookup:
    """Resolves free-text team names (e.g. halves of a game title) to one ResolvedTeam.

    Strategies, in order: exact cleaned name, unique safe match, unique fuzzy
    best. Each returns None rather than pick between equally good teams.
    """

    def __init__(self, teams: Sequence[ResolvedTeam], policy: MatchingPolicy):
        self.teams = list(teams)
        self.policy = policy
        self._cleaned = [[clean_name(n) for n in t.names] for t in self.teams]
        self._index = FuzzyIndex(
            self.teams,
            [
                FuzzyKey("name", lambda t: clean_name(t.full_name or t.university), policy.fuzzy_name_weight),
                FuzzyKey("acronym", lambda t: generate_acronym(t.university or t.full_name), policy.fuzzy_acronym_weight),
            ],
        )
        self._memo: Dict[str, Optional[ResolvedTeam]] = {}
        self.strategies: List[Strategy] = [self.exact, self.safe, self.fuzzy]

    @staticmethod
    def _unique(hits: List[ResolvedTeam]) -> Optional[ResolvedTeam]:
        distinct = {t.id: t for t in hits}
        return next(iter(distinct.values())) if len(distinct) == 1 else None

    def exact(self, query: str, teams: Sequence[ResolvedTeam]) -> Optional[ResolvedTeam]:
        cleaned = clean_name(query)
        if not cleaned:
            return None
        return self._unique([t for t, names in zip(self.teams, self._cleaned) if cleaned in names])

    def safe(self, query: str, teams: Sequence[ResolvedTeam]) -> Optional[ResolvedTeam]:
        overlap = self.policy.safe_match_overlap
        return self._unique(
            [t for t, names in zip(self.teams, self._cleaned) if any(is_safe_match(query, n, overlap) for n in names)]
        )

    def fuzzy(self, query: str, teams: Sequence[ResolvedTeam]) -> Optional[ResolvedTeam]:
        hits = self._index.search(clean_name(query), self.policy.fuzzy_max_distance)
        if not hits or is_ambiguous(hits):
            return None
        return self.teams[hits[0].index]

    def find(self, name: Optional[str]) -> Optional[ResolvedTeam]:
        if not name:
            return None
        if name not in self._memo:
            self._memo[name] = first_match(name, self.teams, self.strategies)
        return self._memo[name]


def find_team_by_name(
    name: Optional[str], teams: Sequence[ResolvedTeam], policy: MatchingPolicy
) -> Optional[ResolvedTeam]:
    """Unique team for a free-text name: exact cleaned, then safe match, then fuzzy."""
    return TeamNameLookup(teams, policy).find(name)


# --- coordinator lookup ---


def exact_coordinator(query: str, records: Sequence[CoordinatorRecord]) -> Optional[CoordinatorRecord]:
    return next((r for r in records if r.team == query), None)


def safe_coordinator(query: str, records: Sequence[CoordinatorRecord]) -> Optional[CoordinatorRecord]:
    hits = [r for r in records if is_safe_match(query, r.team)]
    return hits[0] if len(hits) == 1 else None


# Words too common across school names to identify one on their own
_GENERIC_WORDS = {"state", "university", "college", "north", "south", "east", "west", "central", "southern", "northern", "eastern", "western"}


def coordinator_word_contained(min_length: int) -> Strategy:
    """A distinctive query word longer than `min_length` found inside the record's team name."""

    def strategy(query: str, records: Sequence[CoordinatorRecord]) -> Optional[CoordinatorRecord]:
        words = [w for w in query.lower().split() if len(w) > min_length and w not in _GENERIC_WORDS]
        if not words:
            return None
        return next((r for r in records if any(w in r.team.lower() for w in words)), None)

    return strategy


COORDINATOR_STRATEGIES: List[Strategy] = [
    exact_coordinator,
    safe_coordinator,
    coordinator_word_contained(3),
]


def match_coordinator(
    team: ResolvedTeam, records: Sequence[CoordinatorRecord]
) -> Optional[CoordinatorRecord]:
    for name in (team.full_name, team.short_name, team.university, team.abv):
        match = first_match(name or "", records, COORDINATOR_STRATEGIES)
        if match is not None:
            return match
    return None
