from datetime import datetime
from typing import Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from cfb_reconcile.config.settings import MatchingPolicy
from cfb_reconcile.models.enums import Category
from cfb_reconcile.models.game import EspnGame, NcaaGame
from cfb_reconcile.models.results import DiscoveryResult, PromotionResult, ReconciliationResult
from cfb_reconcile.models.team import CoordinatorRecord, EspnTeam, NcaaTeam
from cfb_reconcile.resolution.discovery import BindingDiscovery
from cfb_reconcile.resolution.enrichment import ColorExtractor, TeamEnrichment
from cfb_reconcile.resolution.games import GameResolver
from cfb_reconcile.resolution.teams import CrossCategoryIndex, TeamResolver
from cfb_reconcile.storage.store import ReconciliationStore


class ReconciliationInputs(BaseModel):
    """Everything one category's run reads, already normalized."""

    category: Category = Category.FOOTBALL
    espn_teams: List[EspnTeam] = Field(default_factory=list)
    ncaa_teams: List[NcaaTeam] = Field(default_factory=list)
    # keyed by the ESPN / NCAA id of the team whose schedule it is
    espn_games_by_team: Dict[str, List[EspnGame]] = Field(default_factory=dict)
    ncaa_games_by_team: Dict[str, List[NcaaGame]] = Field(default_factory=dict)
    head_coaches: Dict[str, str] = Field(default_factory=dict)
    coordinators: List[CoordinatorRecord] = Field(default_factory=list)
    # ESPN team lists of the other categories, for cross-category inference
    other_espn_teams: Dict[Category, List[EspnTeam]] = Field(default_factory=dict)


def _resolve_once(
    inputs: ReconciliationInputs,
    store: ReconciliationStore,
    policy: MatchingPolicy,
    color_extractor: Optional[ColorExtractor],
    as_of: Optional[datetime],
):
    category = inputs.category
    cross_category = None
    if inputs.other_espn_teams:
        cross_category = CrossCategoryIndex.build(category, store, inputs.other_espn_teams)
    enrichment = TeamEnrichment(category, store.consolidation, inputs.head_coaches, inputs.coordinators)
    teams = TeamResolver(
        category,
        store,
        policy,
        cross_category=cross_category,
        color_extractor=color_extractor,
        enrichment=enrichment,
    ).resolve(inputs.espn_teams, inputs.ncaa_teams)
    games = GameResolver(category, store.consolidation, policy, as_of=as_of).resolve(
        teams.resolved, inputs.espn_games_by_team, inputs.ncaa_games_by_team
    )
    return teams, games


def reconcile(
    inputs: ReconciliationInputs,
    store: ReconciliationStore,
    policy: MatchingPolicy,
    color_extractor: Optional[ColorExtractor] = None,
    as_of: Optional[datetime] = None,
    discover: bool = True,
) -> ReconciliationResult:
    """Teams, then games, then binding discovery for one category.

    When discovery promotes anything, teams and games are resolved once more
    so the returned result already reflects the new facts. The store is
    mutated in memory only; the caller commits it.
    """
    category = inputs.category
    logger.info(f"[{category.value}] Starting reconciliation")
    teams, games = _resolve_once(inputs, store, policy, color_extractor, as_of)

    discovery_engine = BindingDiscovery(category, store, policy)
    if discover:
        discovery = discovery_engine.discover(teams.resolved, inputs.espn_games_by_team, inputs.ncaa_games_by_team)
        promotion = discovery_engine.promote(discovery)
    else:
        discovery = DiscoveryResult(category=category)
        promotion = PromotionResult()

    if promotion.consolidated or promotion.bound:
        logger.info(f"[{category.value}] Store changed by promotion; resolving again")
        first_bindings = teams.new_bindings
        teams, games = _resolve_once(inputs, store, policy, color_extractor, as_of)
        teams.new_bindings = {**first_bindings, **teams.new_bindings}

    logger.success(
        f"[{category.value}] Reconciliation complete: {len(teams.resolved)} teams, {len(games.games)} games"
    )
    return ReconciliationResult(
        category=category, teams=teams, games=games, discovery=discovery, promotion=promotion
    )
