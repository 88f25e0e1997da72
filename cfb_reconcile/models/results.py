from typing import Dict, List, Tuple

from pydantic import BaseModel, Field

from cfb_reconcile.models.binding import BindingCandidate, ConsolidationCandidate
from cfb_reconcile.models.enums import Category, MatchStage
from cfb_reconcile.models.game import EspnGame, NcaaGame, ResolvedGame
from cfb_reconcile.models.team import EspnTeam, NcaaTeam, ResolvedTeam


class TeamResolution(BaseModel):
    category: Category
    resolved: List[ResolvedTeam] = Field(default_factory=list)
    unmatched_espn: List[EspnTeam] = Field(default_factory=list)
    unmatched_ncaa: List[NcaaTeam] = Field(default_factory=list)
    # ncaa_id -> espn_id pairs confirmed during this run
    new_bindings: Dict[str, str] = Field(default_factory=dict)
    ambiguous: int = 0

    def count_by_stage(self) -> Dict[MatchStage, int]:
        counts: Dict[MatchStage, int] = {}
        for team in self.resolved:
            counts[team.match_stage] = counts.get(team.match_stage, 0) + 1
        return counts


class GameStats(BaseModel):
    per_team_matches: int = 0
    fallback_matches: int = 0
    collisions: int = 0
    ambiguous: int = 0
    synthesized: int = 0
    dropped_duplicates: int = 0


class GameResolution(BaseModel):
    category: Category
    games: List[ResolvedGame] = Field(default_factory=list)
    unmatched_espn: List[EspnGame] = Field(default_factory=list)
    unmatched_ncaa: List[NcaaGame] = Field(default_factory=list)
    # espn_id -> ncaa_game_id
    links: Dict[str, str] = Field(default_factory=dict)
    stats: GameStats = Field(default_factory=GameStats)


class DiscoveryResult(BaseModel):
    category: Category
    bindings: List[BindingCandidate] = Field(default_factory=list)
    consolidations: List[ConsolidationCandidate] = Field(default_factory=list)


class PromotionResult(BaseModel):
    consolidated: List[Tuple[str, str]] = Field(default_factory=list)
    bound: List[Tuple[str, str]] = Field(default_factory=list)
    skipped: int = 0


class ReconciliationResult(BaseModel):
    category: Category
    teams: TeamResolution
    games: GameResolution
    discovery: DiscoveryResult
    promotion: PromotionResult
