from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from loguru import logger

from cfb_reconcile.models.enums import Category
from cfb_reconcile.models.team import CoordinatorRecord, ResolvedTeam
from cfb_reconcile.normalization.names import format_color
from cfb_reconcile.resolution.consolidation import ConsolidationMap
from cfb_reconcile.resolution.matchers import match_coordinator


class ColorExtractor(Protocol):
    def extract(self, logo_url: str) -> Optional[List[str]]:
        """Two dominant colors of the logo as hex strings, or None."""
        ...


class CachedColorExtractor:
    """Colors previously extracted from logos, keyed by logo URL.

    Accepts either {url: "#AAAAAA, #BBBBBB"} / {url: [..]} or the list form
    [{"url": ..., "colors": "#AAAAAA, #BBBBBB"}].
    """

    def __init__(self, table: Any = None):
        self._table: Dict[str, List[str]] = {}
        if isinstance(table, Mapping):
            items = table.items()
        else:
            items = ((row.get("url"), row.get("colors")) for row in (table or []) if isinstance(row, Mapping))
        for url, colors in items:
            parsed = self._parse(colors)
            if url and parsed:
                self._table[url] = parsed

    @staticmethod
    def _parse(colors: Any) -> List[str]:
        if isinstance(colors, str):
            colors = colors.split(",")
        if not isinstance(colors, (list, tuple)):
            return []
        return [c for c in (format_color(str(v)) for v in colors) if c]

    def extract(self, logo_url: str) -> Optional[List[str]]:
        return self._table.get(logo_url) or None

    def __len__(self) -> int:
        return len(self._table)


class TeamEnrichment:
    """Best-effort coach fields for resolved teams.

    Head coaches are keyed by NCAA id (canonicalized on the way in); the
    coordinator table is matched by name and also backs up the head coach.
    """

    def __init__(
        self,
        category: Category,
        consolidation: ConsolidationMap,
        head_coaches: Optional[Mapping[str, str]] = None,
        coordinators: Sequence[CoordinatorRecord] = (),
    ):
        self.category = category
        self.coordinators = list(coordinators)
        self.head_coaches: Dict[str, str] = {}
        for ncaa_id, coach in (head_coaches or {}).items():
            coach = (coach or "").strip()
            if coach:
                self.head_coaches.setdefault(consolidation.resolve(category, str(ncaa_id)), coach)

    def apply(self, team: ResolvedTeam) -> ResolvedTeam:
        coordinator = match_coordinator(team, self.coordinators) if self.coordinators else None
        head_coach = self.head_coaches.get(team.ncaa_id) if team.ncaa_id else None
        update = {
            "head_coach": head_coach or (coordinator.head_coach if coordinator else None) or team.head_coach,
            "offensive_coordinator": coordinator.offensive_coordinator if coordinator else team.offensive_coordinator,
            "defensive_coordinator": coordinator.defensive_coordinator if coordinator else team.defensive_coordinator,
        }
        if coordinator:
            logger.debug(f"Coordinator row '{coordinator.team}' matched {team.full_name}")
        return team.model_copy(update=update)
