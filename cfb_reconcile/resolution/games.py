"""Game resolution: ESPN schedule entries + NCAA schedule rows -> ResolvedGame.

Every ESPN game becomes exactly one ResolvedGame carrying at most one NCAA
game id; NCAA rows that nothing consumed become NCAA-only games when one of
their teams is resolved.
"""

import bisect
from collections import Counter
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple
from zoneinfo import ZoneInfo

from loguru import logger

from cfb_reconcile.config.settings import MatchingPolicy
from cfb_reconcile.models.enums import Category, GameMatchStage
from cfb_reconcile.models.game import EspnGame, NcaaGame, ResolvedGame
from cfb_reconcile.models.results import GameResolution, GameStats
from cfb_reconcile.models.team import ResolvedTeam
from cfb_reconcile.normalization.names import split_title
from cfb_reconcile.resolution.consolidation import ConsolidationMap
from cfb_reconcile.resolution.matchers import TeamNameLookup
from cfb_reconcile.utils.misc_utils import generate_game_id

_TIE_EPSILON_DAYS = 1e-6


def dedupe_espn_games(espn_games_by_team: Mapping[str, Sequence[EspnGame]]) -> List[EspnGame]:
    """One entry per espn_id (a game shows up on both teams' schedules)."""
    unique: Dict[str, EspnGame] = {}
    for games in espn_games_by_team.values():
        for game in games:
            unique.setdefault(game.espn_id, game)
    return sorted(unique.values(), key=lambda g: (g.date_time, g.espn_id))


def canonical_ncaa_games(
    category: Category, consolidation: ConsolidationMap, ncaa_games_by_team: Mapping[str, Sequence[NcaaGame]]
) -> List[NcaaGame]:
    """Schedule rows with canonical team ids, one per `dedup_key`.

    Rows are keyed by the NCAA id of the page they were scraped from; that key
    (canonicalized) becomes the row's `home_team_ncaa_id`.
    """
    merged = consolidation.merge_keyed(category, {k: list(v) for k, v in ncaa_games_by_team.items()})
    unique: Dict[str, NcaaGame] = {}
    for owner, games in merged.items():
        for game in consolidation.canonicalize_games(category, games):
            if owner and game.home_team_ncaa_id != owner:
                game = game.model_copy(update={"home_team_ncaa_id": owner})
            unique.setdefault(game.dedup_key, game)
    return sorted(unique.values(), key=lambda g: (g.game_date or date.min, g.dedup_key))


def index_espn_games(games: Iterable[EspnGame]) -> Dict[str, List[EspnGame]]:
    index: Dict[str, List[EspnGame]] = {}
    for game in games:
        for espn_id in dict.fromkeys((game.home_espn_id, game.away_espn_id)):
            index.setdefault(espn_id, []).append(game)
    return index


def index_ncaa_games(games: Iterable[NcaaGame]) -> Dict[str, List[NcaaGame]]:
    index: Dict[str, List[NcaaGame]] = {}
    for game in games:
        for ncaa_id in dict.fromkeys(filter(None, (game.home_team_ncaa_id, game.opponent_ncaa_id))):
            index.setdefault(ncaa_id, []).append(game)
    return index


class GameResolver:
    def __init__(
        self,
        category: Category,
        consolidation: ConsolidationMap,
        policy: MatchingPolicy,
        as_of: Optional[datetime] = None,
    ):
        self.category = category
        self.consolidation = consolidation
        self.policy = policy
        self.as_of = as_of
        self.tz = ZoneInfo(policy.local_timezone)
        month, day = (int(p) for p in policy.season_anchor_month_day.split("-"))
        self._anchor = (month, day)

    # --- dates ---

    def local_date(self, moment: datetime) -> date:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=ZoneInfo("UTC"))
        return moment.astimezone(self.tz).date()

    def _ncaa_moment(self, day: date) -> datetime:
        return datetime.combine(day, time(0, 0), tzinfo=self.tz)

    def days_between(self, espn_game: EspnGame, ncaa_game: NcaaGame) -> Optional[float]:
        game_date = ncaa_game.game_date
        if game_date is None:
            return None
        moment = espn_game.date_time
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=ZoneInfo("UTC"))
        return abs((moment - self._ncaa_moment(game_date)).total_seconds()) / 86400.0

    def _is_played_by(self, game: EspnGame) -> bool:
        if self.as_of is None:
            return True
        as_of = self.as_of if self.as_of.tzinfo else self.as_of.replace(tzinfo=ZoneInfo("UTC"))
        moment = game.date_time if game.date_time.tzinfo else game.date_time.replace(tzinfo=ZoneInfo("UTC"))
        return moment <= as_of

    # --- matching ---

    def _per_team_pass(
        self,
        teams: Sequence[ResolvedTeam],
        espn_index: Dict[str, List[EspnGame]],
        ncaa_index: Dict[str, List[NcaaGame]],
        links: Dict[str, NcaaGame],
        consumed: Set[str],
        stats: GameStats,
    ) -> None:
        for team in teams:
            if not team.is_bound:
                continue
            by_day: Dict[date, List[NcaaGame]] = {}
            for game in ncaa_index.get(team.ncaa_id, []):
                if game.game_date is not None:
                    by_day.setdefault(game.game_date, []).append(game)
            for espn_game in espn_index.get(team.espn_id, []):
                if espn_game.espn_id in links:
                    continue
                candidates = by_day.get(self.local_date(espn_game.date_time), [])
                free = [g for g in candidates if g.dedup_key not in consumed]
                if not free:
                    if candidates:
                        stats.collisions += 1
                    continue
                links[espn_game.espn_id] = free[0]
                consumed.add(free[0].dedup_key)
                stats.per_team_matches += 1

    def _side(self, espn_id: str, name: Optional[str], by_espn: Dict[str, ResolvedTeam], lookup: TeamNameLookup):
        return by_espn.get(espn_id) or lookup.find(name)

    def _fallback_candidates(
        self, espn_game: EspnGame, ncaa_ids: Set[str], ncaa_index: Dict[str, List[NcaaGame]]
    ) -> List[Tuple[float, NcaaGame]]:
        seen: Set[str] = set()
        candidates = []
        for ncaa_id in sorted(ncaa_ids):
            for game in ncaa_index.get(ncaa_id, []):
                if game.dedup_key in seen:
                    continue
                seen.add(game.dedup_key)
                diff = self.days_between(espn_game, game)
                if diff is None or diff > self.policy.max_match_window_days:
                    continue
                participants = {game.home_team_ncaa_id, game.opponent_ncaa_id}
                if diff <= self.policy.same_day_window_days:
                    ok = bool(ncaa_ids & participants)
                else:
                    ok = len(ncaa_ids) == 2 and ncaa_ids <= participants
                if ok:
                    candidates.append((diff, game))
        return sorted(candidates, key=lambda c: (c[0], c[1].dedup_key))

    def _fallback_pass(
        self,
        espn_games: Sequence[EspnGame],
        by_espn: Dict[str, ResolvedTeam],
        lookup: TeamNameLookup,
        ncaa_index: Dict[str, List[NcaaGame]],
        links: Dict[str, NcaaGame],
        consumed: Set[str],
        stats: GameStats,
    ) -> None:
        for espn_game in espn_games:
            if espn_game.espn_id in links or not self._is_played_by(espn_game):
                continue
            names = split_title(espn_game.title) or (None, None)
            away = self._side(espn_game.away_espn_id, names[0], by_espn, lookup)
            home = self._side(espn_game.home_espn_id, names[1], by_espn, lookup)
            ncaa_ids = {t.ncaa_id for t in (home, away) if t is not None and t.ncaa_id}
            if not ncaa_ids:
                continue
            candidates = self._fallback_candidates(espn_game, ncaa_ids, ncaa_index)
            free = [(d, g) for d, g in candidates if g.dedup_key not in consumed]
            stats.collisions += len(candidates) - len(free)
            if not free:
                continue
            if len(free) > 1 and free[1][0] - free[0][0] <= _TIE_EPSILON_DAYS:
                logger.debug(f"Ambiguous NCAA candidates for ESPN game {espn_game.espn_id}")
                stats.ambiguous += 1
                continue
            links[espn_game.espn_id] = free[0][1]
            consumed.add(free[0][1].dedup_key)
            stats.fallback_matches += 1

    # --- venue and week inference ---

    @staticmethod
    def _home_venues(espn_games: Sequence[EspnGame], by_espn: Dict[str, ResolvedTeam]) -> Dict[str, str]:
        counts: Dict[str, Counter] = {}
        for game in espn_games:
            team = by_espn.get(game.home_espn_id)
            if team is None or not game.venue or game.neutral_site:
                continue
            counts.setdefault(team.id, Counter())[game.venue] += 1
        return {team_id: counter.most_common(1)[0][0] for team_id, counter in counts.items()}

    @staticmethod
    def _week_table(espn_games: Sequence[EspnGame], tz_date) -> Dict[int, Tuple[List[date], List[int]]]:
        rows: Dict[int, List[Tuple[date, int]]] = {}
        for game in espn_games:
            if game.week is not None:
                rows.setdefault(game.season, []).append((tz_date(game.date_time), game.week))
        table = {}
        for season, entries in rows.items():
            entries.sort()
            table[season] = ([d for d, _ in entries], [w for _, w in entries])
        return table

    def anchor_week(self, season: int, game_date: date) -> int:
        month, day = self._anchor
        return max(0, (game_date - date(season, month, day)).days // 7 + 1)

    def infer_week(self, season: int, game_date: Optional[date], weeks) -> Optional[int]:
        if game_date is None:
            return None
        dates, numbers = weeks.get(season, ([], []))
        if dates:
            window = timedelta(days=self.policy.week_borrow_window_days)
            pos = bisect.bisect_left(dates, game_date)
            best = None
            for i in (pos - 1, pos):
                if 0 <= i < len(dates):
                    gap = abs(dates[i] - game_date)
                    if gap <= window and (best is None or gap < best[0]):
                        best = (gap, numbers[i])
            if best is not None:
                return best[1]
        return self.anchor_week(season, game_date)

    # --- synthesis ---

    def _team_name(self, team: Optional[ResolvedTeam], fallback: Optional[str]) -> Optional[str]:
        return team.full_name if team else fallback

    def _from_espn(
        self,
        game: EspnGame,
        link: Optional[NcaaGame],
        stage: GameMatchStage,
        by_espn: Dict[str, ResolvedTeam],
        lookup: TeamNameLookup,
        venues: Dict[str, str],
        weeks,
    ) -> ResolvedGame:
        names = split_title(game.title) or (None, None)
        away = self._side(game.away_espn_id, names[0], by_espn, lookup)
        home = self._side(game.home_espn_id, names[1], by_espn, lookup)
        winner = None
        if game.winner_espn_id:
            winner = home if game.winner_espn_id == game.home_espn_id else away
        game_date = self.local_date(game.date_time)
        venue = game.venue
        if not venue and home is not None and not game.neutral_site:
            venue = venues.get(home.id)
        return ResolvedGame(
            id=generate_game_id(self.category.game_prefix, game.espn_id, game.short_title),
            category=self.category,
            espn_id=game.espn_id,
            ncaa_game_id=link.ncaa_game_id if link else None,
            season=game.season,
            week=game.week if game.week is not None else self.infer_week(game.season, game_date, weeks),
            date_time=game.date_time,
            game_date=game_date,
            title=game.title,
            short_title=game.short_title,
            venue=venue,
            neutral_site=game.neutral_site,
            home_id=home.id if home else None,
            away_id=away.id if away else None,
            home_team_name=self._team_name(home, names[1]),
            away_team_name=self._team_name(away, names[0]),
            home_score=game.home_score,
            away_score=game.away_score,
            winner_id=winner.id if winner else None,
            match_stage=stage,
        )

    def _from_ncaa(
        self, game: NcaaGame, by_ncaa: Dict[str, ResolvedTeam], venues: Dict[str, str], weeks
    ) -> Optional[ResolvedGame]:
        scraped = by_ncaa.get(game.home_team_ncaa_id)
        other = by_ncaa.get(game.opponent_ncaa_id) if game.opponent_ncaa_id else None
        if scraped is None and other is None:
            return None
        opponent = game.opponent
        scraped_name = scraped.full_name if scraped else None
        other_name = other.full_name if other else opponent.name or None

        parsed = game.parsed_score
        scraped_score = parsed.team_score if parsed else None
        other_score = parsed.opponent_score if parsed else None
        winner = None
        if parsed:
            result = parsed.result or ("W" if scraped_score > other_score else "L" if scraped_score < other_score else "T")
            winner = scraped if result == "W" else other if result == "L" else None

        if opponent.scraped_team_home:
            home, away = scraped, other
            home_name, away_name = scraped_name, other_name
            home_score, away_score = scraped_score, other_score
        else:
            home, away = other, scraped
            home_name, away_name = other_name, scraped_name
            home_score, away_score = other_score, scraped_score

        neutral = opponent.neutral_site is not None
        venue = opponent.neutral_site if neutral else (venues.get(home.id) if home else None)
        joiner = "vs" if neutral else "at"
        title = f"{away_name} {joiner} {home_name}" if away_name and home_name else None
        native = game.ncaa_game_id or game.dedup_key
        return ResolvedGame(
            id=generate_game_id(self.category.game_prefix, f"N{native}", game.date),
            category=self.category,
            ncaa_game_id=game.ncaa_game_id,
            season=game.season,
            week=self.infer_week(game.season, game.game_date, weeks),
            game_date=game.game_date,
            title=title,
            venue=venue,
            neutral_site=neutral,
            home_id=home.id if home else None,
            away_id=away.id if away else None,
            home_team_name=home_name,
            away_team_name=away_name,
            home_score=home_score,
            away_score=away_score,
            winner_id=winner.id if winner else None,
            match_stage=GameMatchStage.NCAA_ONLY,
        )

    @staticmethod
    def _enforce_unique(games: Sequence[ResolvedGame], stats: GameStats) -> List[ResolvedGame]:
        seen_espn: Set[str] = set()
        seen_ncaa: Set[str] = set()
        seen_ids: Set[str] = set()
        result = []
        for game in games:
            if (game.espn_id and game.espn_id in seen_espn) or game.id in seen_ids:
                stats.dropped_duplicates += 1
                continue
            if game.ncaa_game_id and game.ncaa_game_id in seen_ncaa:
                if not game.espn_id:
                    stats.dropped_duplicates += 1
                    continue
                logger.warning(f"NCAA game {game.ncaa_game_id} already linked; unlinking ESPN game {game.espn_id}")
                game = game.model_copy(update={"ncaa_game_id": None})
                stats.dropped_duplicates += 1
            if game.espn_id:
                seen_espn.add(game.espn_id)
            if game.ncaa_game_id:
                seen_ncaa.add(game.ncaa_game_id)
            seen_ids.add(game.id)
            result.append(game)
        return result

    # --- entry point ---

    def resolve(
        self,
        teams: Sequence[ResolvedTeam],
        espn_games_by_team: Mapping[str, Sequence[EspnGame]],
        ncaa_games_by_team: Mapping[str, Sequence[NcaaGame]],
    ) -> GameResolution:
        teams = self.consolidation.canonicalize_resolved(self.category, teams)
        espn_games = dedupe_espn_games(espn_games_by_team)
        ncaa_games = canonical_ncaa_games(self.category, self.consolidation, ncaa_games_by_team)
        logger.info(
            f"[{self.category.value}] Resolving {len(espn_games)} ESPN games against {len(ncaa_games)} NCAA games"
        )
        by_espn = {t.espn_id: t for t in teams if t.espn_id}
        by_ncaa = {t.ncaa_id: t for t in teams if t.ncaa_id}
        lookup = TeamNameLookup(teams, self.policy)
        espn_index = index_espn_games(espn_games)
        ncaa_index = index_ncaa_games(ncaa_games)

        stats = GameStats()
        links: Dict[str, NcaaGame] = {}
        consumed: Set[str] = set()
        self._per_team_pass(teams, espn_index, ncaa_index, links, consumed, stats)
        per_team_links = set(links)
        self._fallback_pass(espn_games, by_espn, lookup, ncaa_index, links, consumed, stats)

        venues = self._home_venues(espn_games, by_espn)
        weeks = self._week_table(espn_games, self.local_date)
        resolved: List[ResolvedGame] = []
        for game in espn_games:
            link = links.get(game.espn_id)
            if link is None:
                stage = GameMatchStage.ESPN_ONLY
            elif game.espn_id in per_team_links:
                stage = GameMatchStage.PER_TEAM
            else:
                stage = GameMatchStage.FALLBACK
            resolved.append(self._from_espn(game, link, stage, by_espn, lookup, venues, weeks))

        unmatched_ncaa: List[NcaaGame] = []
        for game in ncaa_games:
            if game.dedup_key in consumed:
                continue
            synthesized = self._from_ncaa(game, by_ncaa, venues, weeks)
            if synthesized is not None:
                resolved.append(synthesized)
                stats.synthesized += 1
            if game.ncaa_game_id:
                unmatched_ncaa.append(game)

        games = self._enforce_unique(resolved, stats)
        games.sort(key=lambda g: (g.game_date or date.min, g.id))
        unmatched_espn = [g for g in espn_games if g.espn_id not in links and self._is_played_by(g)]
        result = GameResolution(
            category=self.category,
            games=games,
            unmatched_espn=unmatched_espn,
            unmatched_ncaa=unmatched_ncaa,
            links={espn_id: g.ncaa_game_id for espn_id, g in links.items() if g.ncaa_game_id},
            stats=stats,
        )
        logger.success(
            f"[{self.category.value}] Game resolution: {stats.per_team_matches} per-team, "
            f"{stats.fallback_matches} fallback, {stats.synthesized} NCAA-only, "
            f"{stats.collisions} collisions, {stats.ambiguous} ambiguous"
        )
        return result
