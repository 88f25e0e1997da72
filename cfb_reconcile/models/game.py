from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from cfb_reconcile.models.enums import Category, GameMatchStage
from cfb_reconcile.normalization.names import (
    ParsedOpponent,
    ParsedScore,
    parse_ncaa_date,
    parse_opponent,
    parse_score,
)


def _coerce_id(value):
    if value is None or value == "":
        return None
    return str(value).strip()


class EspnGame(BaseModel):
    """Schedule entry from the ESPN team schedule endpoint."""

    model_config = ConfigDict(frozen=True)

    espn_id: str
    date_time: datetime
    season: int
    week: Optional[int] = None
    title: Optional[str] = None
    short_title: Optional[str] = None
    venue: Optional[str] = None
    neutral_site: bool = False
    home_espn_id: str
    away_espn_id: str
    # None means not played / not reported, never zero
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    winner_espn_id: Optional[str] = None

    @field_validator("espn_id", "home_espn_id", "away_espn_id", "winner_espn_id", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _coerce_id(value)

    def opponent_of(self, espn_id: str) -> Optional[str]:
        if espn_id == self.home_espn_id:
            return self.away_espn_id
        if espn_id == self.away_espn_id:
            return self.home_espn_id
        return None


class NcaaGame(BaseModel):
    """Schedule row scraped from a team page on stats.ncaa.org.

    `home_team_ncaa_id` is the team whose page the row came from; it is only
    the real home team when the opponent cell has no leading '@'.
    """

    model_config = ConfigDict(frozen=True)

    date: str
    opponent_name: str = ""
    opponent_ncaa_id: Optional[str] = None
    ncaa_game_id: Optional[str] = None
    score: str = ""
    season: int
    home_team_ncaa_id: str

    @field_validator("opponent_ncaa_id", "ncaa_game_id", "home_team_ncaa_id", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _coerce_id(value)

    @property
    def game_date(self) -> Optional[date]:
        return parse_ncaa_date(self.date)

    @property
    def opponent(self) -> ParsedOpponent:
        return parse_opponent(self.opponent_name)

    @property
    def parsed_score(self) -> Optional[ParsedScore]:
        return parse_score(self.score)

    def opponent_of(self, ncaa_id: str) -> Optional[str]:
        if ncaa_id == self.home_team_ncaa_id:
            return self.opponent_ncaa_id
        if ncaa_id == self.opponent_ncaa_id:
            return self.home_team_ncaa_id
        return None

    @property
    def dedup_key(self) -> str:
        """ncaa_game_id when present, otherwise the row's own identity."""
        if self.ncaa_game_id:
            return self.ncaa_game_id
        pair = sorted(filter(None, [self.home_team_ncaa_id, self.opponent_ncaa_id or self.opponent.name]))
        return f"{self.date}|{'|'.join(pair)}"


class ResolvedGame(BaseModel):
    """One game per real-world contest."""

    id: str
    category: Category = Category.FOOTBALL
    espn_id: Optional[str] = None
    ncaa_game_id: Optional[str] = None
    season: int
    week: Optional[int] = None
    date_time: Optional[datetime] = None
    game_date: Optional[date] = None
    title: Optional[str] = None
    short_title: Optional[str] = None
    venue: Optional[str] = None
    neutral_site: bool = False
    home_id: Optional[str] = None
    away_id: Optional[str] = None
    home_team_name: Optional[str] = None
    away_team_name: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    winner_id: Optional[str] = None
    match_stage: GameMatchStage = GameMatchStage.ESPN_ONLY
