"""Learns new bindings and NCAA id consolidations from game correlations.

For every team bound on both sides, ESPN and NCAA games played within a few
days of each other are assumed to be the same contest, so their opponents
should be the same school. When they are not yet known to be, the pair is
evidence for a binding (unbound ESPN opponent) or a consolidation (NCAA
opponent id nobody owns, or several NCAA ids for one ESPN team).
"""

from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from loguru import logger

from cfb_reconcile.config.settings import MatchingPolicy
from cfb_reconcile.models.binding import BindingCandidate, ConsolidationCandidate, EvidenceGame
from cfb_reconcile.models.enums import Category
from cfb_reconcile.models.game import EspnGame, NcaaGame
from cfb_reconcile.models.results import DiscoveryResult, PromotionResult
from cfb_reconcile.models.team import ResolvedTeam
from cfb_reconcile.normalization.names import is_safe_match
from cfb_reconcile.resolution.games import (
    GameResolver,
    canonical_ncaa_games,
    dedupe_espn_games,
    index_espn_games,
    index_ncaa_games,
)
from cfb_reconcile.storage.store import ReconciliationStore

REASON_UNKNOWN_NCAA_ID = "unknown_ncaa_id"
REASON_SHARED_ESPN_TEAM = "shared_espn_team"


class BindingDiscovery:
    def __init__(self, category: Category, store: ReconciliationStore, policy: MatchingPolicy):
        self.category = category
        self.store = store
        self.policy = policy
        self._dates = GameResolver(category, store.consolidation, policy)

    def _names_match(self, name: Optional[str], team: ResolvedTeam) -> bool:
        overlap = self.policy.safe_match_overlap
        return any(is_safe_match(name, n, overlap) for n in team.names if n)

    def _correlations(
        self,
        bound: Sequence[ResolvedTeam],
        espn_index: Dict[str, List[EspnGame]],
        ncaa_index: Dict[str, List[NcaaGame]],
    ):
        """Yields (bound team, espn game, ncaa game, espn opponent id, ncaa opponent id)."""
        window = self.policy.discovery_window_days
        for team in bound:
            ncaa_games = ncaa_index.get(team.ncaa_id, [])
            for espn_game in espn_index.get(team.espn_id, []):
                espn_opponent = espn_game.opponent_of(team.espn_id)
                for ncaa_game in ncaa_games:
                    diff = self._dates.days_between(espn_game, ncaa_game)
                    if diff is None or diff >= window:
                        continue
                    ncaa_opponent = ncaa_game.opponent_of(team.ncaa_id)
                    if espn_opponent and ncaa_opponent:
                        yield team, espn_game, ncaa_game, espn_opponent, ncaa_opponent

    def discover(
        self,
        teams: Sequence[ResolvedTeam],
        espn_games_by_team: Mapping[str, Sequence[EspnGame]],
        ncaa_games_by_team: Mapping[str, Sequence[NcaaGame]],
    ) -> DiscoveryResult:
        consolidation = self.store.consolidation
        teams = consolidation.canonicalize_resolved(self.category, teams)
        by_espn = {t.espn_id: t for t in teams if t.espn_id}
        by_ncaa = {t.ncaa_id: t for t in teams if t.ncaa_id}
        bound = sorted((t for t in teams if t.is_bound), key=lambda t: t.id)
        espn_index = index_espn_games(dedupe_espn_games(espn_games_by_team))
        ncaa_index = index_ncaa_games(canonical_ncaa_games(self.category, consolidation, ncaa_games_by_team))

        bindings: Dict[Tuple[str, str], BindingCandidate] = {}
        consolidations: Dict[Tuple[str, str], ConsolidationCandidate] = {}
        for team, espn_game, ncaa_game, espn_opp, ncaa_opp in self._correlations(bound, espn_index, ncaa_index):
            espn_side = by_espn.get(espn_opp)
            ncaa_side = by_ncaa.get(ncaa_opp)
            if espn_side is not None and espn_side.ncaa_id == ncaa_opp:
                continue
            evidence = EvidenceGame(
                espn_game_id=espn_game.espn_id,
                ncaa_game_id=ncaa_game.ncaa_game_id or ncaa_game.dedup_key,
                bound_team_id=team.id,
            )
            opponent_name = ncaa_game.opponent.name or None

            if espn_side is not None and espn_side.is_bound:
                if ncaa_side is None and self._names_match(opponent_name, espn_side):
                    key = (ncaa_opp, espn_side.ncaa_id)
                    if key not in consolidations:
                        consolidations[key] = ConsolidationCandidate(
                            category=self.category,
                            duplicate_id=ncaa_opp,
                            canonical_id=espn_side.ncaa_id,
                            reason=REASON_UNKNOWN_NCAA_ID,
                            duplicate_name=opponent_name,
                            canonical_name=espn_side.university or espn_side.full_name,
                        )
                    consolidations[key].add_evidence(evidence)
                else:
                    logger.debug(
                        f"Inconsistent opponents for {team.full_name}: ESPN {espn_opp} "
                        f"(NCAA {espn_side.ncaa_id}) vs NCAA {ncaa_opp}"
                    )
                continue

            key = (espn_opp, ncaa_opp)
            if key not in bindings:
                existing = self.store.espn_for(self.category, ncaa_opp)
                bindings[key] = BindingCandidate(
                    category=self.category,
                    espn_id=espn_opp,
                    ncaa_id=ncaa_opp,
                    bound_team_name=team.full_name,
                    espn_game_title=espn_game.title,
                    opponent_name=opponent_name,
                    already_bound=existing is not None and existing != espn_opp,
                    existing_espn_id=existing,
                )
            bindings[key].add_evidence(evidence)

        for candidate in self._shared_espn_consolidations(bindings.values()):
            consolidations.setdefault((candidate.duplicate_id, candidate.canonical_id), candidate)

        result = DiscoveryResult(
            category=self.category,
            bindings=sorted(bindings.values(), key=lambda c: (-c.confidence, c.espn_id, c.ncaa_id)),
            consolidations=sorted(
                consolidations.values(), key=lambda c: (-c.confidence, c.duplicate_id, c.canonical_id)
            ),
        )
        logger.info(
            f"[{self.category.value}] Discovery: {len(result.bindings)} binding candidates, "
            f"{len(result.consolidations)} consolidation candidates"
        )
        return result

    def _shared_espn_consolidations(self, candidates) -> List[ConsolidationCandidate]:
        """Several confident NCAA ids correlated with one unbound ESPN team, named alike."""
        by_espn: Dict[str, List[BindingCandidate]] = {}
        for candidate in candidates:
            if candidate.confidence >= self.policy.promotion_min_confidence:
                by_espn.setdefault(candidate.espn_id, []).append(candidate)
        result = []
        overlap = self.policy.safe_match_overlap
        for espn_id, group in sorted(by_espn.items()):
            if len(group) < 2:
                continue
            group.sort(key=lambda c: (-c.confidence, c.ncaa_id))
            canonical = group[0]
            for other in group[1:]:
                if not is_safe_match(other.opponent_name, canonical.opponent_name, overlap):
                    continue
                result.append(
                    ConsolidationCandidate(
                        category=self.category,
                        duplicate_id=other.ncaa_id,
                        canonical_id=canonical.ncaa_id,
                        reason=REASON_SHARED_ESPN_TEAM,
                        duplicate_name=other.opponent_name,
                        canonical_name=canonical.opponent_name,
                        evidence_games=list(other.evidence_games),
                    )
                )
        return result

    def promote(self, result: DiscoveryResult) -> PromotionResult:
        """Applies confident candidates to the store: consolidations first, then bindings."""
        promotion = PromotionResult()
        threshold = self.policy.promotion_min_confidence

        for candidate in result.consolidations:
            if candidate.confidence < threshold:
                promotion.skipped += 1
                continue
            canonical = self.store.add_consolidation(self.category, candidate.duplicate_id, candidate.canonical_id)
            if canonical == candidate.duplicate_id:
                promotion.skipped += 1
                continue
            promotion.consolidated.append((candidate.duplicate_id, canonical))
            logger.info(
                f"[{self.category.value}] Consolidated NCAA {candidate.duplicate_id} -> {canonical} "
                f"({candidate.reason}, confidence {candidate.confidence})"
            )

        if not self.policy.auto_promote_bindings:
            promotion.skipped += len(result.bindings)
            return promotion

        # Re-key through the updated map; consolidated ids merge their evidence
        merged: Dict[Tuple[str, str], Set[Tuple]] = {}
        for candidate in result.bindings:
            ncaa_id = self.store.resolve(self.category, candidate.ncaa_id)
            evidence = merged.setdefault((candidate.espn_id, ncaa_id), set())
            evidence.update((e.espn_game_id, e.ncaa_game_id, e.bound_team_id) for e in candidate.evidence_games)

        partners_of_espn: Dict[str, Set[str]] = {}
        partners_of_ncaa: Dict[str, Set[str]] = {}
        for espn_id, ncaa_id in merged:
            partners_of_espn.setdefault(espn_id, set()).add(ncaa_id)
            partners_of_ncaa.setdefault(ncaa_id, set()).add(espn_id)

        for (espn_id, ncaa_id), evidence in sorted(merged.items()):
            unambiguous = len(partners_of_espn[espn_id]) == 1 and len(partners_of_ncaa[ncaa_id]) == 1
            free = self.store.espn_for(self.category, ncaa_id) is None and (
                self.store.ncaa_for(self.category, espn_id) is None
            )
            if len(evidence) < threshold or not unambiguous or not free:
                promotion.skipped += 1
                continue
            self.store.bind(self.category, ncaa_id, espn_id)
            promotion.bound.append((ncaa_id, espn_id))
            logger.info(
                f"[{self.category.value}] Bound NCAA {ncaa_id} -> ESPN {espn_id} (confidence {len(evidence)})"
            )

        logger.success(
            f"[{self.category.value}] Promotion: {len(promotion.consolidated)} consolidations, "
            f"{len(promotion.bound)} bindings, {promotion.skipped} skipped"
        )
        return promotion
