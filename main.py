import sys
import asyncio
from datetime import datetime, timedelta
from typing import Dict, List

from cfb_reconcile.logging.setup import setup_logging
from cfb_reconcile.config.settings import settings

setup_logging()

from loguru import logger

from cfb_reconcile.models.enums import Category
from cfb_reconcile.models.results import ReconciliationResult
from cfb_reconcile.models.team import EspnTeam
from cfb_reconcile.normalization.normalizer import Normalizer
from cfb_reconcile.reporting.reports import write_reports
from cfb_reconcile.resolution.enrichment import CachedColorExtractor
from cfb_reconcile.resolution.pipeline import ReconciliationInputs, reconcile
from cfb_reconcile.scrapers.collector import collect_espn_schedules, load_ncaa_dump
from cfb_reconcile.scrapers.espn_client import EspnClient
from cfb_reconcile.storage.cache_manager import CacheManager
from cfb_reconcile.storage.store import ReconciliationStore

from rich import print
from rich.panel import Panel
from rich.table import Table

COLOR_CACHE_KEY = "team_logo_colors"


def seasons_to_collect() -> List[int]:
    current = settings.current_season or datetime.now().year
    return [current - i for i in range(settings.season_count)]


async def load_espn_teams(client: EspnClient, cache: CacheManager, category: Category) -> List[EspnTeam]:
    """Team list for `category`, from cache when fresh."""
    key = f"{category.value}_espn_teams"
    ttl = timedelta(days=settings.team_cache_ttl_days)
    entry = cache.get(key, ttl)
    if entry is not None:
        logger.info(f"Using cached ESPN teams for {category.value} (saved {entry.saved_at:%Y-%m-%d %H:%M})")
        return [EspnTeam.model_validate(t) for t in entry.data]
    teams = await client.fetch_teams(category)
    if teams:
        cache.set(key, [t.model_dump(mode="json") for t in teams])
    return teams


def print_summary(result: ReconciliationResult) -> None:
    table = Table(title=f"{result.category.value} reconciliation")
    table.add_column("Item")
    table.add_column("Count", justify="right")
    for stage, count in sorted(result.teams.count_by_stage().items(), key=lambda i: i[0].value):
        table.add_row(f"Teams ({stage.value})", str(count))
    table.add_row("Unmatched ESPN teams", str(len(result.teams.unmatched_espn)))
    table.add_row("Unmatched NCAA teams", str(len(result.teams.unmatched_ncaa)))
    stats = result.games.stats
    table.add_row("Games", str(len(result.games.games)))
    table.add_row("  per-team matches", str(stats.per_team_matches))
    table.add_row("  fallback matches", str(stats.fallback_matches))
    table.add_row("  NCAA-only games", str(stats.synthesized))
    table.add_row("  collisions / ambiguous", f"{stats.collisions} / {stats.ambiguous}")
    table.add_row("Unmatched ESPN games", str(len(result.games.unmatched_espn)))
    table.add_row("Unmatched NCAA games", str(len(result.games.unmatched_ncaa)))
    table.add_row("Binding candidates", str(len(result.discovery.bindings)))
    table.add_row("Consolidation candidates", str(len(result.discovery.consolidations)))
    table.add_row("Promoted bindings", str(len(result.promotion.bound)))
    table.add_row("Promoted consolidations", str(len(result.promotion.consolidated)))
    print(table)


async def main() -> None:
    """Main entry point for the application."""
    category = settings.category
    seasons = seasons_to_collect()
    logger.info(f"Starting {category.value} reconciliation for seasons {seasons}")

    cache = CacheManager(settings.cache_dir, default_ttl=timedelta(days=settings.team_cache_ttl_days))
    store = ReconciliationStore(
        CacheManager(settings.processed_dir / "store"), ttl=timedelta(days=settings.store_ttl_days)
    ).load()
    normalizer = Normalizer(category)
    client = EspnClient(category, normalizer=normalizer)
    try:
        espn_teams = await load_espn_teams(client, cache, category)
        if not espn_teams:
            logger.error("No ESPN teams available. Exiting.")
            return

        other_teams: Dict[Category, List[EspnTeam]] = {}
        for other in Category:
            if other != category and store.bindings_for(other):
                other_teams[other] = await load_espn_teams(client, cache, other)

        schedules = await collect_espn_schedules(
            client,
            cache,
            [t.id for t in espn_teams],
            seasons,
            ttl=timedelta(days=settings.schedule_cache_ttl_days),
        )
        dump = load_ncaa_dump(settings.ncaa_dump_dir, normalizer, seasons)
        color_entry = cache.get(COLOR_CACHE_KEY, timedelta(days=settings.store_ttl_days))
        colors = CachedColorExtractor(color_entry.data if color_entry else None)

        inputs = ReconciliationInputs(
            category=category,
            espn_teams=espn_teams,
            ncaa_teams=dump.teams,
            espn_games_by_team=schedules,
            ncaa_games_by_team=dump.schedules,
            head_coaches=dump.head_coaches,
            coordinators=dump.coordinators,
            other_espn_teams=other_teams,
        )
        result = reconcile(inputs, store, settings.matching_policy(), color_extractor=colors)
        result.teams.unmatched_ncaa.extend(dump.teams_without_ids)

        write_reports(result, settings.output_dir, settings.processed_dir)
        store.save_snapshot(category, "teams", result.teams.resolved)
        store.save_snapshot(category, "games", result.games.games)
        store.commit()

        print(
            Panel.fit(
                f"[bold green]{len(result.teams.resolved)}[/] teams, "
                f"[bold green]{len(result.games.games)}[/] games written to {settings.processed_dir}",
                title="Reconciliation complete",
            )
        )
        print_summary(result)

    finally:
        await client.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Execution interrupted by user (KeyboardInterrupt).")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Unhandled exception in main execution: {e}")
        sys.exit(1)
