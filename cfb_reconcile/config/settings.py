import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cfb_reconcile.models.enums import Category


class MatchingPolicy(BaseModel):
    """Tunable thresholds used by the resolution engines.

    The defaults are empirically tuned values carried over from the
    collector this project replaces; they are policy, not invariants.
    """

    safe_match_overlap: float = Field(0.8, gt=0, le=1)
    fuzzy_max_distance: float = Field(0.35, ge=0, le=1)
    fuzzy_name_weight: float = Field(0.7, gt=0)
    fuzzy_acronym_weight: float = Field(0.3, gt=0)
    same_day_window_days: float = Field(1.5, ge=0)
    max_match_window_days: float = Field(7.0, ge=0)
    discovery_window_days: float = Field(2.5, ge=0)
    week_borrow_window_days: float = Field(3.0, ge=0)
    promotion_min_confidence: int = Field(2, ge=1)
    auto_promote_bindings: bool = True
    include_unbound_teams: bool = True
    local_timezone: str = "America/New_York"
    season_anchor_month_day: str = Field("08-25", pattern=r"^\d{2}-\d{2}$")


class AppSettings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # Run Configuration
    category: Category = Field(
        Category.FOOTBALL, description="Category (sport) to reconcile."
    )
    season_count: int = Field(
        3, ge=1, description="Number of seasons to collect, counting back."
    )
    current_season: Optional[int] = Field(
        None, description="Most recent season to collect (defaults to this year)."
    )

    # Paths
    cache_dir: Path = Field(Path("data/raw"), description="TTL cache directory.")
    output_dir: Path = Field(Path("output"), description="Report directory.")
    processed_dir: Path = Field(
        Path("data/processed"), description="Resolved team/game output directory."
    )
    ncaa_dump_dir: Path = Field(
        Path("data/ncaa"), description="Directory holding NCAA scraper dumps."
    )

    # Cache lifetimes
    schedule_cache_ttl_days: float = Field(30, gt=0)
    team_cache_ttl_days: float = Field(7, gt=0)
    # Age limit for run snapshots; binding and consolidation tables never expire
    store_ttl_days: float = Field(365, gt=0)

    # HTTP
    http_timeout_seconds: float = Field(30.0, gt=0)

    # Matching policy (see MatchingPolicy)
    safe_match_overlap: float = Field(0.8, gt=0, le=1)
    fuzzy_max_distance: float = Field(0.35, ge=0, le=1)
    fuzzy_name_weight: float = Field(0.7, gt=0)
    fuzzy_acronym_weight: float = Field(0.3, gt=0)
    same_day_window_days: float = Field(1.5, ge=0)
    max_match_window_days: float = Field(7.0, ge=0)
    discovery_window_days: float = Field(2.5, ge=0)
    week_borrow_window_days: float = Field(3.0, ge=0)
    promotion_min_confidence: int = Field(2, ge=1)
    auto_promote_bindings: bool = True
    include_unbound_teams: bool = True
    local_timezone: str = "America/New_York"
    season_anchor_month_day: str = Field("08-25", pattern=r"^\d{2}-\d{2}$")

    # Logging Configuration
    log_level: str = Field(
        "INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."
    )
    log_file: Optional[Path] = Field(
        None, description="Optional log file; rotated by loguru when set."
    )

    # Pydantic Settings Configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    def matching_policy(self) -> MatchingPolicy:
        """Returns the matching thresholds as a standalone policy object."""
        return MatchingPolicy(
            **{name: getattr(self, name) for name in MatchingPolicy.model_fields}
        )


def load_settings() -> AppSettings:
    """Loads and validates application settings."""
    try:
        settings = AppSettings()
        log_level_upper = settings.log_level.upper()
        # Validate log_level even if loaded from .env
        if log_level_upper not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            logging.warning(
                f"Invalid LOG_LEVEL '{settings.log_level}' found in .env or default. Using INFO."
            )
            settings.log_level = "INFO"
        else:
            settings.log_level = log_level_upper
        return settings
    except Exception as e:
        logging.exception(f"Error loading application settings: {e}")
        raise SystemExit("Failed to load application settings. Exiting.")


settings: AppSettings = load_settings()
