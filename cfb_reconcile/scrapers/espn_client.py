from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from cfb_reconcile.models.enums import Category
from cfb_reconcile.models.game import EspnGame
from cfb_reconcile.models.team import EspnTeam
from cfb_reconcile.normalization.normalizer import Normalizer
from cfb_reconcile.scrapers.base_scraper import AuthenticationError, BaseClient, ScraperError


class EspnClient(BaseClient):
    """Fetcher for the public ESPN site API (teams list and per-team schedules)."""

    source = "espn"

    def __init__(
        self,
        category: Category = Category.FOOTBALL,
        client: Optional[httpx.AsyncClient] = None,
        normalizer: Optional[Normalizer] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(client=client, timeout=timeout)
        self.category = category
        self.normalizer = normalizer or Normalizer(category)

    async def fetch_teams_raw(self, category: Optional[Category] = None) -> Dict[str, Any]:
        category = category or self.category
        return await self.get_json(category.teams_url, params={"limit": 1000})

    async def fetch_schedule_raw(self, espn_team_id: str, season: int, category: Optional[Category] = None) -> Dict[str, Any]:
        category = category or self.category
        return await self.get_json(category.schedule_url(espn_team_id), params={"season": season})

    async def fetch_teams(self, category: Optional[Category] = None) -> List[EspnTeam]:
        """Normalized team list; an empty list when the fetch fails."""
        category = category or self.category
        try:
            raw = await self.fetch_teams_raw(category)
        except AuthenticationError as e:
            logger.critical(f"ESPN rejected the teams request for {category.value}: {e}")
            return []
        except ScraperError as e:
            logger.error(f"Failed to fetch ESPN teams for {category.value}: {e}")
            return []
        teams = self.normalizer.normalize_espn_teams(raw)
        logger.info(f"Fetched {len(teams)} ESPN teams for {category.value}")
        return teams

    async def fetch_schedule(self, espn_team_id: str, season: int, category: Optional[Category] = None) -> List[EspnGame]:
        """Normalized schedule for one team and season; an empty list when the fetch fails."""
        try:
            raw = await self.fetch_schedule_raw(espn_team_id, season, category)
        except ScraperError as e:
            logger.error(f"Failed to fetch ESPN schedule for team {espn_team_id} ({season}): {e}")
            return []
        return self.normalizer.normalize_espn_schedule(raw, season)
