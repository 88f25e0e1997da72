from typing import List, Optional

from pydantic import BaseModel, Field, computed_field

from cfb_reconcile.models.enums import Category


class EvidenceGame(BaseModel):
    """A pair of games (one per source) that corroborates a candidate."""

    espn_game_id: Optional[str] = None
    ncaa_game_id: Optional[str] = None
    bound_team_id: Optional[str] = None


class BindingCandidate(BaseModel):
    """Proposed cross-source pairing for a team that has no binding yet."""

    category: Category
    espn_id: str
    ncaa_id: str
    bound_team_name: Optional[str] = None
    espn_game_title: Optional[str] = None
    opponent_name: Optional[str] = None
    evidence_games: List[EvidenceGame] = Field(default_factory=list)
    already_bound: bool = False
    existing_espn_id: Optional[str] = None

    @computed_field  # type: ignore[misc]
    @property
    def confidence(self) -> int:
        return len(self.evidence_games)

    def add_evidence(self, evidence: EvidenceGame) -> None:
        if evidence not in self.evidence_games:
            self.evidence_games.append(evidence)


class ConsolidationCandidate(BaseModel):
    """Two NCAA ids that look like the same school on the same source."""

    category: Category
    duplicate_id: str
    canonical_id: str
    reason: str
    duplicate_name: Optional[str] = None
    canonical_name: Optional[str] = None
    evidence_games: List[EvidenceGame] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def confidence(self) -> int:
        return len(self.evidence_games)

    def add_evidence(self, evidence: EvidenceGame) -> None:
        if evidence not in self.evidence_games:
            self.evidence_games.append(evidence)
