"""Writes resolved data and the review reports for one reconciliation run."""

import csv
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from cfb_reconcile.models.results import ReconciliationResult

BIND_CSV_HEADER = [
    "espn_id",
    "ncaa_id",
    "sport",
    "espn_game_title",
    "bound_team_name",
    "confidence",
    "already_bound",
    "existing_espn_id",
]
CONSOLIDATION_CSV_HEADER = [
    "duplicate_id",
    "canonical_id",
    "sport",
    "reason",
    "duplicate_name",
    "canonical_name",
    "confidence",
]


def _write_json(path: Path, payload: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, default=str)
    return path


def _write_csv(path: Path, header: List[str], rows: List[Dict[str, Any]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=header, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow({k: "" if v is None else v for k, v in row.items()})
    return path


def unmatched_espn_game_rows(result: ReconciliationResult) -> List[Dict[str, Any]]:
    names = {t.espn_id: t.full_name for t in result.teams.resolved if t.espn_id}
    return [
        {
            "espn_id": g.espn_id,
            "date_time": g.date_time.isoformat(),
            "title": g.title,
            "home_espn_id": g.home_espn_id,
            "away_espn_id": g.away_espn_id,
            "home_team": names.get(g.home_espn_id),
            "away_team": names.get(g.away_espn_id),
        }
        for g in result.games.unmatched_espn
    ]


def unmatched_ncaa_game_rows(result: ReconciliationResult) -> List[Dict[str, Any]]:
    return [
        {
            "ncaa_game_id": g.ncaa_game_id,
            "date": g.date,
            "home_team_ncaa_id": g.home_team_ncaa_id,
            "opponent_name": g.opponent_name,
            "opponent_ncaa_id": g.opponent_ncaa_id,
        }
        for g in result.games.unmatched_ncaa
    ]


def binding_rows(result: ReconciliationResult) -> List[Dict[str, Any]]:
    return [
        {
            "espn_id": c.espn_id,
            "ncaa_id": c.ncaa_id,
            "sport": c.category.value,
            "espn_game_title": c.espn_game_title,
            "bound_team_name": c.bound_team_name,
            "confidence": c.confidence,
            "already_bound": str(c.already_bound).lower(),
            "existing_espn_id": c.existing_espn_id,
        }
        for c in result.discovery.bindings
    ]


def consolidation_rows(result: ReconciliationResult) -> List[Dict[str, Any]]:
    return [
        {
            "duplicate_id": c.duplicate_id,
            "canonical_id": c.canonical_id,
            "sport": c.category.value,
            "reason": c.reason,
            "duplicate_name": c.duplicate_name,
            "canonical_name": c.canonical_name,
            "confidence": c.confidence,
        }
        for c in result.discovery.consolidations
    ]


def write_reports(
    result: ReconciliationResult, output_dir: Path, processed_dir: Optional[Path] = None
) -> Dict[str, Path]:
    """Writes every output file and returns {name: path}."""
    output_dir = Path(output_dir)
    processed_dir = Path(processed_dir) if processed_dir else output_dir
    written = {
        "teams": _write_json(
            processed_dir / "teams.json", [t.model_dump(mode="json") for t in result.teams.resolved]
        ),
        "games": _write_json(
            processed_dir / "games.json", [g.model_dump(mode="json") for g in result.games.games]
        ),
        "unmatched_espn_games": _write_json(
            output_dir / "unmatched-espn-games.json", unmatched_espn_game_rows(result)
        ),
        "unmatched_ncaa_games": _write_json(
            output_dir / "unmatched-ncaa-games.json", unmatched_ncaa_game_rows(result)
        ),
        "unmatched_espn_teams": _write_json(
            output_dir / "unmatched-espn-teams.json",
            [t.model_dump(mode="json", by_alias=False) for t in result.teams.unmatched_espn],
        ),
        "unmatched_ncaa_teams": _write_json(
            output_dir / "unmatched-ncaa-teams.json",
            [t.model_dump(mode="json") for t in result.teams.unmatched_ncaa],
        ),
        "binding_candidates": _write_csv(
            output_dir / "csv" / "new-potential-binds.csv", BIND_CSV_HEADER, binding_rows(result)
        ),
        "consolidation_candidates": _write_csv(
            output_dir / "csv" / "consolidation-candidates.csv",
            CONSOLIDATION_CSV_HEADER,
            consolidation_rows(result),
        ),
    }
    logger.success(f"Wrote {len(written)} report files to {output_dir}")
    return written
