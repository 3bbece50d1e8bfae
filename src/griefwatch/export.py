"""
Export Functionality for Griefwatch

Provides export formats for match reports:
- JSON: the complete report with export metadata
- CSV: one table per finding family, written into a directory
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd

from griefwatch.core.config import ExportConfig
from griefwatch.pipeline.orchestrator import MatchReport

logger = logging.getLogger(__name__)

CSV_TABLES = (
    "griefing_events.csv",
    "griefing_players.csv",
    "afk.csv",
    "disconnects.csv",
    "team_kills.csv",
    "team_damage.csv",
)


# ============================================================================
# JSON Export
# ============================================================================


def export_to_json(
    report: MatchReport,
    output_path: Path | None = None,
    indent: int = 2,
    include_metadata: bool = True,
) -> str:
    """
    Export a match report to JSON format.

    Args:
        report: The engine's report
        output_path: Optional path to write the file
        indent: JSON indentation level
        include_metadata: Whether to include export metadata

    Returns:
        JSON string
    """
    export_data: dict[str, Any] = report.to_dict()

    if include_metadata:
        from griefwatch import __version__

        export_data = {
            "_metadata": {
                "exported_at": datetime.now().isoformat(),
                "format": "griefwatch_json",
                "version": __version__,
            },
            **export_data,
        }

    json_str = json.dumps(export_data, indent=indent, default=str)

    if output_path:
        output_path.write_text(json_str)
        logger.info(f"Exported JSON to: {output_path}")

    return json_str


# ============================================================================
# CSV Export
# ============================================================================


def export_to_csv(report: MatchReport, directory: Path, delimiter: str = ",") -> list[Path]:
    """
    Export a match report as CSV tables.

    Args:
        report: The engine's report
        directory: Directory to write into (created if missing)
        delimiter: CSV delimiter character

    Returns:
        Paths of the written files
    """
    directory.mkdir(parents=True, exist_ok=True)

    tables = {
        "griefing_events.csv": report.griefing_events_frame(),
        "griefing_players.csv": report.griefing_players_frame(),
        "afk.csv": report.afk_frame(),
        "disconnects.csv": report.disconnects_frame(),
        "team_kills.csv": pd.DataFrame(
            [k.to_dict() for k in report.team_kills],
            columns=[
                "round_num",
                "tick",
                "time",
                "attacker_id",
                "attacker_name",
                "victim_id",
                "victim_name",
                "team",
                "weapon",
                "headshot",
            ],
        ),
        "team_damage.csv": pd.DataFrame(
            [d.to_dict() for d in report.team_damage],
            columns=[
                "round_num",
                "tick",
                "time",
                "attacker_id",
                "attacker_name",
                "victim_id",
                "victim_name",
                "team",
                "damage",
                "initial_hp",
                "final_hp",
                "weapons",
                "hits",
            ],
        ),
    }

    written = []
    for filename in CSV_TABLES:
        path = directory / filename
        tables[filename].to_csv(path, index=False, sep=delimiter)
        written.append(path)

    logger.info(f"Exported {len(written)} CSV tables to: {directory}")
    return written


def export_report(
    report: MatchReport,
    output_path: Path,
    format: str | None = None,
    config: ExportConfig | None = None,
) -> list[Path]:
    """
    Export a report to the specified format.

    Format is detected from the extension if not specified: .json writes one
    file, a path without an extension is a directory of CSV tables, and any
    other extension falls back to the configured default format.

    Raises:
        ValueError: For an unsupported format
    """
    config = config or ExportConfig()
    if format is None:
        suffix = output_path.suffix.lower()
        if suffix == ".json":
            format = "json"
        elif not suffix:
            format = "csv"
        else:
            format = config.default_format

    if format == "json":
        export_to_json(report, output_path, indent=config.json_indent)
        return [output_path]
    elif format == "csv":
        return export_to_csv(report, output_path, delimiter=config.csv_delimiter)
    else:
        raise ValueError(f"Unsupported export format: {format}")
