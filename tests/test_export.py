"""Tests for report export."""

import json

import pandas as pd
import pytest

from griefwatch import __version__
from griefwatch.core.config import EconomyConfig, ExportConfig
from griefwatch.core.constants import Team
from griefwatch.domains.afk import AFKDetection
from griefwatch.domains.disconnects import DisconnectEvent
from griefwatch.domains.friendly_fire import TeamDamage, TeamKill
from griefwatch.domains.griefing import (
    FeatureSummary,
    GriefingEvent,
    GriefingEventType,
    aggregate_griefing,
)
from griefwatch.export import CSV_TABLES, export_report, export_to_csv, export_to_json
from griefwatch.pipeline import MatchReport


@pytest.fixture
def report():
    event = GriefingEvent(
        round_num=4,
        time=81.5,
        player_id=7,
        player_name="hoarder",
        type=GriefingEventType.HOARD_MONEY,
        score=0.6,
        confidence=0.9,
        features=FeatureSummary(money_start=5200, money_after_buy=5200),
        reason="Kept $5,200 after buy while team full bought (round 4).",
    )
    return MatchReport(
        map_name="de_inferno",
        griefing=aggregate_griefing([event], EconomyConfig(), teams={7: Team.T}),
        afk=[
            AFKDetection(
                player_id=7,
                player_name="hoarder",
                team=Team.T,
                round_num=4,
                round_start_tick=1000,
                freeze_end_tick=1640,
                afk_start_tick=1640,
                afk_end_tick=2280,
                duration_seconds=10.0,
                died_while_afk=True,
            )
        ],
        disconnects=[
            DisconnectEvent(
                player_id=8,
                player_name="buddy",
                team=Team.T,
                disconnect_tick=2100,
                disconnect_time=32.8125,
                disconnect_round=4,
                alive_at_disconnect=False,
                died_before_disconnect=True,
            )
        ],
        team_kills=[
            TeamKill(4, 2000, 31.25, 7, "hoarder", 8, "buddy", Team.T, "ak47", False),
        ],
        team_damage=[
            TeamDamage(4, 1990, 31.1, 7, "hoarder", 8, "buddy", Team.T, 40.0, 100.0, 60.0, ["ak47"]),
        ],
    )


class TestJsonExport:
    """Tests for export_to_json."""

    def test_metadata(self, report):
        data = json.loads(export_to_json(report))
        assert data["_metadata"]["format"] == "griefwatch_json"
        assert data["_metadata"]["version"] == __version__
        assert data["summary"]["map_name"] == "de_inferno"
        assert data["griefing"]["7"]["flagged"] is True

    def test_without_metadata(self, report):
        data = json.loads(export_to_json(report, include_metadata=False))
        assert "_metadata" not in data
        assert data["team_kills"][0]["victim_name"] == "buddy"

    def test_writes_file(self, report, tmp_path):
        path = tmp_path / "report.json"
        export_to_json(report, path)
        assert json.loads(path.read_text())["afk"][0]["died_while_afk"] is True
        assert json.loads(path.read_text())["disconnects"][0]["disconnect_round"] == 4


class TestCsvExport:
    """Tests for export_to_csv."""

    def test_all_tables_written(self, report, tmp_path):
        written = export_to_csv(report, tmp_path / "out")
        assert [p.name for p in written] == list(CSV_TABLES)
        assert all(p.exists() for p in written)

    def test_table_contents(self, report, tmp_path):
        export_to_csv(report, tmp_path)
        events = pd.read_csv(tmp_path / "griefing_events.csv")
        assert list(events["type"]) == ["HoardMoneyWhileTeamNeedsBuy"]
        damage = pd.read_csv(tmp_path / "team_damage.csv")
        assert damage.loc[0, "damage"] == 40.0
        assert damage.loc[0, "weapons"] == "ak47"
        disconnects = pd.read_csv(tmp_path / "disconnects.csv")
        assert list(disconnects["player_name"]) == ["buddy"]
        assert bool(disconnects.loc[0, "reconnected"]) is False
        assert pd.isna(disconnects.loc[0, "reconnect_round"])

    def test_empty_report_has_headers(self, tmp_path):
        export_to_csv(MatchReport(), tmp_path)
        afk = pd.read_csv(tmp_path / "afk.csv")
        assert afk.empty
        assert "duration_seconds" in afk.columns

    def test_custom_delimiter(self, report, tmp_path):
        export_to_csv(report, tmp_path, delimiter=";")
        header = (tmp_path / "team_kills.csv").read_text().splitlines()[0]
        assert header.startswith("round_num;tick;time")


class TestExportReport:
    """Tests for format dispatch."""

    def test_json_by_extension(self, report, tmp_path):
        path = tmp_path / "report.json"
        assert export_report(report, path) == [path]

    def test_csv_directory(self, report, tmp_path):
        written = export_report(report, tmp_path / "tables")
        assert len(written) == len(CSV_TABLES)

    def test_configured_defaults(self, report, tmp_path):
        """Unrecognized extensions fall back to the configured format."""
        path = tmp_path / "report.out"
        export_report(report, path, config=ExportConfig(default_format="json", json_indent=4))
        assert path.read_text().startswith('{\n    "_metadata"')

        written = export_report(report, tmp_path / "tables", config=ExportConfig(csv_delimiter=";"))
        assert written[0].read_text().splitlines()[0].startswith("round_num;")

    def test_unsupported_format(self, report, tmp_path):
        with pytest.raises(ValueError, match="Unsupported export format"):
            export_report(report, tmp_path / "report.xml", format="xml")
