"""Gathers source data for a run: cached ESPN schedules and the NCAA scraper dumps."""

import asyncio
import json
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from cfb_reconcile.models.enums import Category
from cfb_reconcile.models.game import EspnGame, NcaaGame
from cfb_reconcile.models.team import CoordinatorRecord, NcaaTeam
from cfb_reconcile.normalization.normalizer import Normalizer
from cfb_reconcile.scrapers.espn_client import EspnClient
from cfb_reconcile.storage.cache_manager import CacheManager

NCAA_DUMP_FILES = {
    "teams": "teams.json",
    "team_ids": "team_ids.json",
    "details": "details.json",
    "coaches": "coaches.json",
    "coordinators": "coordinators.json",
    "schedules": "schedules.json",
}


def schedule_cache_key(category: Category, espn_team_id: str, season: int) -> str:
    return f"{category.value}_espn_schedule_{espn_team_id}_{season}"


async def collect_espn_schedules(
    client: EspnClient,
    cache: CacheManager,
    espn_team_ids: Iterable[str],
    seasons: Iterable[int],
    ttl: timedelta,
    concurrency: int = 8,
) -> Dict[str, List[EspnGame]]:
    """{espn_team_id: games across `seasons`}, one cache entry per team and season.

    Failed fetches are not cached so the next run tries again.
    """
    category = client.category
    semaphore = asyncio.Semaphore(concurrency)
    seasons = list(seasons)
    schedules: Dict[str, List[EspnGame]] = {}
    fetched = 0

    async def load(espn_team_id: str, season: int) -> List[EspnGame]:
        nonlocal fetched
        key = schedule_cache_key(category, espn_team_id, season)
        entry = cache.get(key, ttl)
        if entry is not None:
            try:
                return [EspnGame.model_validate(g) for g in entry.data]
            except (ValidationError, TypeError) as e:
                logger.warning(f"Discarding cached schedule '{key}': {e}")
                cache.invalidate(key)
        async with semaphore:
            games = await client.fetch_schedule(espn_team_id, season)
        fetched += 1
        if games:
            cache.set(key, [g.model_dump(mode="json") for g in games])
        return games

    async def load_team(espn_team_id: str) -> None:
        results = await asyncio.gather(*(load(espn_team_id, s) for s in seasons))
        schedules[espn_team_id] = [g for games in results for g in games]

    await asyncio.gather(*(load_team(str(t)) for t in dict.fromkeys(espn_team_ids)))
    logger.info(
        f"Collected ESPN schedules for {len(schedules)} {category.value} teams "
        f"({fetched} fetched, the rest from cache)"
    )
    return schedules


class NcaaDump(BaseModel):
    """Normalized contents of the NCAA scraper's JSON dumps."""

    teams: List[NcaaTeam] = Field(default_factory=list)
    teams_without_ids: List[NcaaTeam] = Field(default_factory=list)
    head_coaches: Dict[str, str] = Field(default_factory=dict)
    coordinators: List[CoordinatorRecord] = Field(default_factory=list)
    schedules: Dict[str, List[NcaaGame]] = Field(default_factory=dict)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        logger.warning(f"NCAA dump file {path} not found; treating as empty")
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Could not read NCAA dump file {path}: {e}")
        return default


def load_ncaa_dump(
    directory: Path, normalizer: Optional[Normalizer] = None, seasons: Optional[Iterable[int]] = None
) -> NcaaDump:
    """Reads the scraper dumps in `directory`; missing files mean no data."""
    normalizer = normalizer or Normalizer()
    directory = Path(directory)
    raw = {name: _read_json(directory / filename, None) for name, filename in NCAA_DUMP_FILES.items()}

    teams = normalizer.normalize_ncaa_teams(raw["teams"] or [], raw["details"] or {})
    bindings = normalizer.normalize_team_ids(raw["team_ids"] or [])
    with_ids, without_ids = normalizer.attach_native_ids(teams, bindings)

    schedules = normalizer.normalize_ncaa_schedules(raw["schedules"] or {})
    if seasons is not None:
        wanted = set(seasons)
        schedules = {k: [g for g in games if g.season in wanted] for k, games in schedules.items()}

    dump = NcaaDump(
        teams=with_ids,
        teams_without_ids=without_ids,
        head_coaches=normalizer.normalize_head_coaches(raw["coaches"] or {}),
        coordinators=normalizer.normalize_coordinators(raw["coordinators"] or []),
        schedules=schedules,
    )
    logger.info(
        f"Loaded NCAA dump from {directory}: {len(dump.teams)} teams with ids, "
        f"{sum(len(g) for g in dump.schedules.values())} schedule rows"
    )
    return dump
