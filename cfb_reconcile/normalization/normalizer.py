from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from cfb_reconcile.models.enums import Category
from cfb_reconcile.models.game import EspnGame, NcaaGame
from cfb_reconcile.models.team import (
    CoordinatorRecord,
    EspnTeam,
    NcaaTeam,
    NcaaTeamDetails,
    TeamIdBinding,
)
from cfb_reconcile.normalization.names import parse_ncaa_date, school_url_key, strip_division_tag


class NormalizationError(Exception):
    """Custom exception for data normalization errors."""

    pass


def _dig(raw: Any, *path: Any) -> Any:
    """Walks nested dicts/lists, raising NormalizationError on the first missing step."""
    current = raw
    for step in path:
        try:
            current = current[step]
        except (KeyError, IndexError, TypeError) as e:
            raise NormalizationError(f"Missing '{step}' in payload path {path}") from e
    return current


def _score_value(score: Any) -> Optional[int]:
    """ESPN scores come as {'value': 35.0, 'displayValue': '35'} or a bare string."""
    if isinstance(score, Mapping):
        score = score.get("value", score.get("displayValue"))
    if score is None or score == "":
        return None
    try:
        return int(float(score))
    except (TypeError, ValueError):
        return None


class Normalizer:
    """Turns raw ESPN payloads and NCAA scraper dumps into validated models.

    Invalid individual records are logged and skipped; a payload whose overall
    shape is wrong yields an empty list.
    """

    def __init__(self, category: Category = Category.FOOTBALL):
        self.category = category
        logger.info(f"Normalizer initialized for {category.value}.")

    # --- ESPN ---

    def normalize_espn_teams(self, raw: Mapping[str, Any]) -> List[EspnTeam]:
        try:
            entries = _dig(raw, "sports", 0, "leagues", 0, "teams")
        except NormalizationError as e:
            logger.warning(f"Unexpected ESPN teams payload: {e}")
            return []

        teams: List[EspnTeam] = []
        for entry in entries:
            data = entry.get("team") if isinstance(entry, Mapping) else None
            if not isinstance(data, Mapping):
                logger.warning(f"Skipping non-team entry in ESPN teams payload: {type(entry)}")
                continue
            logos = data.get("logos") or []
            logo = logos[0].get("href") if logos and isinstance(logos[0], Mapping) else None
            try:
                teams.append(EspnTeam.model_validate({**data, "logo": logo}))
            except ValidationError as e:
                logger.warning(f"Skipping invalid ESPN team {data.get('id')}: {e.error_count()} error(s)")
        logger.debug(f"Normalized {len(teams)} ESPN teams")
        return teams

    def _parse_espn_event(self, event: Mapping[str, Any], season: int) -> Optional[EspnGame]:
        competition = _dig(event, "competitions", 0)
        sides: Dict[str, Mapping[str, Any]] = {}
        for competitor in competition.get("competitors") or []:
            side = competitor.get("homeAway")
            if side in ("home", "away"):
                sides[side] = competitor
        if len(sides) != 2:
            raise NormalizationError(f"Event {event.get('id')} does not have a home and an away competitor")

        def team_id(competitor):
            team = competitor.get("team") or {}
            return team.get("id") or competitor.get("id")

        home, away = sides["home"], sides["away"]
        winner = next((team_id(c) for c in (home, away) if c.get("winner") is True), None)
        week = event.get("week")
        event_season = event.get("season")
        return EspnGame(
            espn_id=event.get("id"),
            date_time=event.get("date"),
            season=(event_season or {}).get("year", season) if isinstance(event_season, Mapping) else season,
            week=week.get("number") if isinstance(week, Mapping) else week,
            title=event.get("name"),
            short_title=event.get("shortName"),
            venue=(competition.get("venue") or {}).get("fullName"),
            neutral_site=bool(competition.get("neutralSite")),
            home_espn_id=team_id(home),
            away_espn_id=team_id(away),
            home_score=_score_value(home.get("score")),
            away_score=_score_value(away.get("score")),
            winner_espn_id=winner,
        )

    def normalize_espn_schedule(self, raw: Mapping[str, Any], season: int) -> List[EspnGame]:
        events = raw.get("events") if isinstance(raw, Mapping) else None
        if not isinstance(events, list):
            logger.warning(f"ESPN schedule payload for {season} has no events list")
            return []
        games: List[EspnGame] = []
        for event in events:
            if not isinstance(event, Mapping):
                continue
            try:
                game = self._parse_espn_event(event, season)
            except (NormalizationError, ValidationError) as e:
                logger.warning(f"Skipping ESPN event {event.get('id')}: {e}")
                continue
            if game is not None:
                games.append(game)
        return games

    # --- NCAA ---

    def normalize_ncaa_teams(
        self,
        records: Iterable[Mapping[str, Any]],
        details: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> List[NcaaTeam]:
        """School records merged with profile details keyed by school URL."""
        by_key: Dict[str, NcaaTeamDetails] = {}
        for url, detail in (details or {}).items():
            try:
                by_key[school_url_key(url) or url] = NcaaTeamDetails.model_validate(detail)
            except ValidationError as e:
                logger.warning(f"Skipping invalid NCAA details for {url}: {e.error_count()} error(s)")

        teams: List[NcaaTeam] = []
        for record in records:
            try:
                team = NcaaTeam.model_validate(record)
            except ValidationError as e:
                logger.warning(f"Skipping invalid NCAA team record {record!r}: {e.error_count()} error(s)")
                continue
            teams.append(team.with_details(by_key.get(team.url_key)) if team.url_key else team)
        return self.dedupe_by_school_url(teams)

    @staticmethod
    def dedupe_by_school_url(teams: Iterable[NcaaTeam]) -> List[NcaaTeam]:
        """First record per school URL key; records without a URL are kept as-is."""
        seen = set()
        result: List[NcaaTeam] = []
        for team in teams:
            key = team.url_key
            if key:
                if key in seen:
                    continue
                seen.add(key)
            result.append(team)
        return result

    def normalize_team_ids(self, records: Iterable[Mapping[str, Any]]) -> List[TeamIdBinding]:
        bindings = []
        for record in records:
            try:
                bindings.append(TeamIdBinding.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping invalid NCAA id record {record!r}: {e.error_count()} error(s)")
        return bindings

    @staticmethod
    def attach_native_ids(
        teams: Iterable[NcaaTeam], bindings: Iterable[TeamIdBinding]
    ) -> Tuple[List[NcaaTeam], List[NcaaTeam]]:
        """Copies NCAA ids onto school records by case-insensitive trimmed name.

        Returns (teams with an id, teams still without one).
        """
        by_name: Dict[str, str] = {}
        for binding in bindings:
            for name in (binding.team_name, strip_division_tag(binding.team_name)):
                key = name.lower().strip()
                if key and binding.ncaa_id:
                    by_name.setdefault(key, binding.ncaa_id)

        with_ids, without_ids = [], []
        for team in teams:
            ncaa_id = team.ncaa_id or by_name.get(team.school_name.lower().strip())
            if ncaa_id:
                with_ids.append(team if team.ncaa_id else team.model_copy(update={"ncaa_id": ncaa_id}))
            else:
                without_ids.append(team)
        logger.info(f"Attached NCAA ids to {len(with_ids)} schools; {len(without_ids)} without an id")
        return with_ids, without_ids

    def normalize_ncaa_schedules(
        self, raw: Mapping[str, Iterable[Mapping[str, Any]]], season: Optional[int] = None
    ) -> Dict[str, List[NcaaGame]]:
        """{ncaa_id: [row, ...]} -> {ncaa_id: [NcaaGame, ...]}.

        Rows missing `season` or `home_team_ncaa_id` take them from the
        argument and the key respectively.
        """
        result: Dict[str, List[NcaaGame]] = {}
        for ncaa_id, rows in raw.items():
            games = []
            for row in rows or []:
                data = dict(row)
                if not data.get("home_team_ncaa_id"):
                    data["home_team_ncaa_id"] = ncaa_id
                if data.get("season") is None and season is not None:
                    data["season"] = season
                if data.get("season") is None and data.get("date"):
                    # January/February games (bowls) belong to the previous season
                    data["season"] = self._season_from_date(str(data["date"]))
                try:
                    games.append(NcaaGame.model_validate(data))
                except ValidationError as e:
                    logger.warning(f"Skipping invalid NCAA game row for {ncaa_id}: {e.error_count()} error(s)")
            result[str(ncaa_id)] = games
        return result

    @staticmethod
    def _season_from_date(text: str) -> Optional[int]:
        parsed = parse_ncaa_date(text)
        if parsed is None:
            return None
        return parsed.year - 1 if parsed.month <= 2 else parsed.year

    def normalize_head_coaches(self, raw: Mapping[str, Any]) -> Dict[str, str]:
        """{ncaa_id: coach} or {ncaa_id: {"head_coach": coach}} -> {ncaa_id: coach}."""
        coaches = {}
        for ncaa_id, value in (raw or {}).items():
            if isinstance(value, Mapping):
                value = value.get("head_coach")
            if isinstance(value, str) and value.strip():
                coaches[str(ncaa_id)] = value.strip()
        return coaches

    def normalize_coordinators(self, records: Iterable[Mapping[str, Any]]) -> List[CoordinatorRecord]:
        result = []
        for record in records or []:
            try:
                coordinator = CoordinatorRecord.model_validate(record)
            except ValidationError as e:
                logger.warning(f"Skipping invalid coordinator row {record!r}: {e.error_count()} error(s)")
                continue
            if coordinator.team.strip():
                result.append(coordinator)
        return result
