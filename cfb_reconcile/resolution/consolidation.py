"""Per-category map from duplicate NCAA ids to the canonical NCAA id.

Every NCAA id read from a raw record, cache key or binding table goes through
`ConsolidationMap.resolve` before it is used as a key anywhere else.
"""

from typing import Dict, Iterable, List, Mapping, Optional, TypeVar, Union

from loguru import logger

from cfb_reconcile.models.enums import Category
from cfb_reconcile.models.game import NcaaGame
from cfb_reconcile.models.team import NcaaTeam, ResolvedTeam

CategoryKey = Union[Category, str]
T = TypeVar("T")


def _key(category: CategoryKey) -> str:
    return category.value if isinstance(category, Category) else str(category)


class ConsolidationMap:
    """category -> (duplicate id -> canonical id), kept at depth one."""

    def __init__(self, mappings: Optional[Mapping[str, Mapping[str, str]]] = None):
        self._maps: Dict[str, Dict[str, str]] = {}
        for category, entries in (mappings or {}).items():
            for duplicate, canonical in entries.items():
                self.add_mapping(category, str(duplicate), str(canonical))

    def resolve(self, category: CategoryKey, ncaa_id: Optional[str]) -> Optional[str]:
        if not ncaa_id:
            return ncaa_id
        return self._maps.get(_key(category), {}).get(ncaa_id, ncaa_id)

    def add_mapping(self, category: CategoryKey, duplicate_id: str, canonical_id: str) -> str:
        """Maps `duplicate_id` onto the resolved form of `canonical_id`.

        Returns the canonical id actually stored. Entries that pointed at
        `duplicate_id` are re-pointed so every lookup stays a single step.
        """
        table = self._maps.setdefault(_key(category), {})
        resolved = table.get(canonical_id, canonical_id)
        if resolved == duplicate_id:
            logger.warning(
                f"Ignoring consolidation {duplicate_id} -> {canonical_id} in {_key(category)}: "
                f"{canonical_id} already resolves to {duplicate_id}"
            )
            return duplicate_id
        table[duplicate_id] = resolved
        for existing, target in table.items():
            if target == duplicate_id:
                table[existing] = resolved
        logger.debug(f"Consolidated {_key(category)} NCAA id {duplicate_id} -> {resolved}")
        return resolved

    def duplicates_of(self, category: CategoryKey, canonical_id: str) -> List[str]:
        return sorted(d for d, c in self._maps.get(_key(category), {}).items() if c == canonical_id)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {category: dict(table) for category, table in self._maps.items() if table}

    def __len__(self) -> int:
        return sum(len(table) for table in self._maps.values())

    # --- record helpers ---

    def canonicalize_teams(self, category: CategoryKey, teams: Iterable[NcaaTeam]) -> List[NcaaTeam]:
        result = []
        for team in teams:
            canonical = self.resolve(category, team.ncaa_id)
            result.append(team if canonical == team.ncaa_id else team.model_copy(update={"ncaa_id": canonical}))
        return result

    def canonicalize_resolved(self, category: CategoryKey, teams: Iterable[ResolvedTeam]) -> List[ResolvedTeam]:
        result = []
        for team in teams:
            canonical = self.resolve(category, team.ncaa_id)
            result.append(team if canonical == team.ncaa_id else team.model_copy(update={"ncaa_id": canonical}))
        return result

    def canonicalize_games(self, category: CategoryKey, games: Iterable[NcaaGame]) -> List[NcaaGame]:
        result = []
        for game in games:
            update = {}
            for field in ("home_team_ncaa_id", "opponent_ncaa_id"):
                value = getattr(game, field)
                canonical = self.resolve(category, value)
                if canonical != value:
                    update[field] = canonical
            result.append(game.model_copy(update=update) if update else game)
        return result

    def merge_keyed(self, category: CategoryKey, keyed: Mapping[str, List[T]]) -> Dict[str, List[T]]:
        """Re-keys {ncaa_id: [...]} through the resolver, concatenating lists that collapse."""
        merged: Dict[str, List[T]] = {}
        for ncaa_id, items in keyed.items():
            merged.setdefault(self.resolve(category, ncaa_id), []).extend(items)
        return merged

    def entry_for(self, category: CategoryKey, keyed: Mapping[str, T], ncaa_id: str) -> Optional[T]:
        """First entry in `keyed` whose key resolves to the same canonical id as `ncaa_id`."""
        canonical = self.resolve(category, ncaa_id)
        if canonical in keyed:
            return keyed[canonical]
        for key, value in keyed.items():
            if self.resolve(category, key) == canonical:
                return value
        return None
