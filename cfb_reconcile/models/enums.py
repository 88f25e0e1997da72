from enum import Enum


ESPN_SITE_API = "https://site.api.espn.com/apis/site/v2/sports"


class Category(str, Enum):
    """Partition within which consolidation and bindings are scoped (one per sport)."""

    FOOTBALL = "football"
    BASKETBALL = "basketball"
    BASKETBALL_W = "basketballW"
    SOCCER = "soccer"
    SOCCER_W = "soccerW"

    @property
    def espn_path(self) -> str:
        return _ESPN_PATHS[self]

    @property
    def game_prefix(self) -> str:
        """Short prefix mixed into internal game ids so categories never collide."""
        return _GAME_PREFIXES[self]

    @property
    def teams_url(self) -> str:
        return f"{ESPN_SITE_API}/{self.espn_path}/teams"

    def schedule_url(self, espn_team_id: str) -> str:
        return f"{ESPN_SITE_API}/{self.espn_path}/teams/{espn_team_id}/schedule"


_ESPN_PATHS = {
    Category.FOOTBALL: "football/college-football",
    Category.BASKETBALL: "basketball/mens-college-basketball",
    Category.BASKETBALL_W: "basketball/womens-college-basketball",
    Category.SOCCER: "soccer/usa.ncaa.1",
    Category.SOCCER_W: "soccer/usa.ncaa.w.1",
}

_GAME_PREFIXES = {
    Category.FOOTBALL: "CF",
    Category.BASKETBALL: "CB",
    Category.BASKETBALL_W: "CBW",
    Category.SOCCER: "CS",
    Category.SOCCER_W: "CSW",
}


class Division(str, Enum):
    FBS = "fbs"
    FCS = "fcs"
    D2 = "d2"
    D3 = "d3"


class MatchStage(str, Enum):
    """How a ResolvedTeam's two source records were joined."""

    BINDING = "binding"
    CROSS_CATEGORY = "cross_category"
    FUZZY = "fuzzy"
    UNBOUND = "unbound"  # ESPN only, no NCAA partner


class GameMatchStage(str, Enum):
    PER_TEAM = "per_team"
    FALLBACK = "fallback"
    ESPN_ONLY = "espn_only"
    NCAA_ONLY = "ncaa_only"
