from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from cfb_reconcile.models.enums import Category, Division, MatchStage
from cfb_reconcile.normalization.names import (
    format_color,
    normalize_division,
    school_url_key,
)


def _coerce_id(value):
    if value is None or value == "":
        return None
    return str(value).strip()


class EspnTeam(BaseModel):
    """Team record from the ESPN site API (camelCase aliases match the payload)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    display_name: str = Field(alias="displayName")
    short_display_name: Optional[str] = Field(None, alias="shortDisplayName")
    name: Optional[str] = None
    location: Optional[str] = None
    abbreviation: Optional[str] = None
    slug: Optional[str] = None
    color: Optional[str] = None
    alternate_color: Optional[str] = Field(None, alias="alternateColor")
    logo: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value):
        return _coerce_id(value)

    @property
    def search_names(self) -> List[str]:
        """Names worth querying with, most specific first."""
        names = [self.display_name, self.short_display_name, self.location, self.name]
        return [n for n in dict.fromkeys(names) if n]


class NcaaTeamDetails(BaseModel):
    """Fields scraped from an NCAA school profile page, keyed by school URL."""

    conference: Optional[str] = None
    nickname_ncaa: Optional[str] = None
    colors: Optional[str] = None
    name_ncaa: Optional[str] = None
    website: Optional[str] = None
    twitter: Optional[str] = None
    division: Optional[Division] = None

    @field_validator("division", mode="before")
    @classmethod
    def map_division(cls, value):
        if value is None or isinstance(value, Division):
            return value
        return normalize_division(str(value))


class NcaaTeam(BaseModel):
    """Scraped NCAA school record, optionally enriched with profile details."""

    school_name: str
    school_url: Optional[str] = None
    img_src: Optional[str] = None
    ncaa_id: Optional[str] = None
    division: Optional[Division] = None
    conference: Optional[str] = None
    nickname_ncaa: Optional[str] = None
    colors: Optional[str] = None
    name_ncaa: Optional[str] = None
    website: Optional[str] = None
    twitter: Optional[str] = None

    @field_validator("ncaa_id", mode="before")
    @classmethod
    def normalize_id(cls, value):
        return _coerce_id(value)

    @field_validator("division", mode="before")
    @classmethod
    def map_division(cls, value):
        if value is None or isinstance(value, Division):
            return value
        return normalize_division(str(value))

    @property
    def url_key(self) -> Optional[str]:
        return school_url_key(self.school_url)

    @property
    def search_names(self) -> List[str]:
        names = [self.school_name, self.name_ncaa]
        return [n for n in dict.fromkeys(names) if n]

    def with_details(self, details: Optional[NcaaTeamDetails]) -> "NcaaTeam":
        if details is None:
            return self
        update = {k: v for k, v in details.model_dump().items() if v is not None}
        return self.model_copy(update=update)


class TeamIdBinding(BaseModel):
    """(school name, NCAA id) pair scraped from an index page."""

    team_name: str
    ncaa_id: str

    @field_validator("ncaa_id", mode="before")
    @classmethod
    def normalize_id(cls, value):
        return _coerce_id(value)


class CoordinatorRecord(BaseModel):
    team: str
    head_coach: Optional[str] = None
    offensive_coordinator: Optional[str] = None
    defensive_coordinator: Optional[str] = None


class ResolvedTeam(BaseModel):
    """One team per real-world school after reconciliation."""

    id: str
    category: Category = Category.FOOTBALL
    espn_id: Optional[str] = None
    ncaa_id: Optional[str] = None
    slug: Optional[str] = None
    abv: Optional[str] = None
    full_name: Optional[str] = None
    short_name: Optional[str] = None
    university: Optional[str] = None
    division: Optional[Division] = None
    conference: Optional[str] = None
    primary: Optional[str] = None
    secondary: Optional[str] = None
    logo: Optional[str] = None
    head_coach: Optional[str] = None
    offensive_coordinator: Optional[str] = None
    defensive_coordinator: Optional[str] = None
    school_url: Optional[str] = None
    website: Optional[str] = None
    twitter: Optional[str] = None
    match_stage: MatchStage = MatchStage.BINDING

    @field_validator("primary", "secondary", mode="before")
    @classmethod
    def normalize_colors(cls, value):
        return format_color(value)

    @computed_field  # type: ignore[misc]
    @property
    def is_bound(self) -> bool:
        return bool(self.espn_id and self.ncaa_id)

    @property
    def names(self) -> List[str]:
        """School-identifying names; the bare nickname is left out."""
        names = [self.full_name, self.university]
        return [n for n in dict.fromkeys(names) if n]
