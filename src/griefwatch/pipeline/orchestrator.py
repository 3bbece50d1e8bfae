"""
Behavior Analysis Orchestrator - Runs every detector family over a match.

The engine is a single-pass batch computation over a closed timeline:
economy griefing, round-start AFK, disconnects, team kills and team
damage. It performs no I/O; loading and export live in
griefwatch.core.timeline and griefwatch.export.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from griefwatch.core.config import GriefwatchConfig
from griefwatch.core.constants import Team
from griefwatch.core.timeline import MatchTimeline
from griefwatch.core.utils import PerformanceMonitor
from griefwatch.domains.afk import AFKDetection, detect_afk_players
from griefwatch.domains.disconnects import DisconnectEvent, detect_disconnects
from griefwatch.domains.economy import RoundEconomy, TeamRoundEconomy
from griefwatch.domains.friendly_fire import (
    TeamDamage,
    TeamKill,
    detect_team_damage,
    detect_team_kills,
)
from griefwatch.domains.griefing import PlayerGriefingResult, detect_economy_griefing

logger = logging.getLogger(__name__)

GRIEFING_EVENT_COLUMNS = [
    "round_num",
    "time",
    "player_id",
    "player_name",
    "type",
    "score",
    "confidence",
    "reason",
]
AFK_COLUMNS = [
    "round_num",
    "player_id",
    "player_name",
    "team",
    "afk_start_tick",
    "afk_end_tick",
    "duration_seconds",
    "died_while_afk",
    "time_to_first_movement",
]
DISCONNECT_COLUMNS = [
    "player_id",
    "player_name",
    "team",
    "disconnect_tick",
    "disconnect_time",
    "disconnect_round",
    "alive_at_disconnect",
    "died_before_disconnect",
    "reconnected",
    "reconnect_tick",
    "reconnect_time",
    "reconnect_round",
    "reconnected_before_freeze_end",
    "duration_seconds",
    "rounds_missed",
]


@dataclass
class MatchReport:
    """Everything the engine derived from one timeline."""

    map_name: str = ""
    tick_rate: float = 64.0
    griefing: dict[int, PlayerGriefingResult] = field(default_factory=dict)
    afk: list[AFKDetection] = field(default_factory=list)
    disconnects: list[DisconnectEvent] = field(default_factory=list)
    team_kills: list[TeamKill] = field(default_factory=list)
    team_damage: list[TeamDamage] = field(default_factory=list)
    round_economies: dict[int, dict[int, RoundEconomy]] = field(default_factory=dict)
    team_economies: dict[int, dict[Team, TeamRoundEconomy]] = field(default_factory=dict)
    skipped_rounds: list[int] = field(default_factory=list)

    @property
    def flagged_players(self) -> list[PlayerGriefingResult]:
        """Flagged players, highest score first."""
        flagged = [r for r in self.griefing.values() if r.flagged]
        return sorted(flagged, key=lambda r: (-r.score, r.player_id))

    def get_player(self, name: str) -> PlayerGriefingResult | None:
        """Find a player's griefing result by name (case-insensitive)."""
        name_lower = name.lower()
        for result in self.griefing.values():
            if result.player_name.lower() == name_lower:
                return result
        return None

    def summary(self) -> dict[str, Any]:
        return {
            "map_name": self.map_name,
            "rounds_analyzed": len(self.round_economies),
            "rounds_skipped": len(self.skipped_rounds),
            "players_with_griefing_events": len(self.griefing),
            "players_flagged": len(self.flagged_players),
            "griefing_events": sum(len(r.events) for r in self.griefing.values()),
            "afk_detections": len(self.afk),
            "disconnects": len(self.disconnects),
            "team_kills": len(self.team_kills),
            "team_damage": len(self.team_damage),
        }

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation of the report."""
        return {
            "summary": self.summary(),
            "griefing": {
                str(pid): result.to_dict() for pid, result in sorted(self.griefing.items())
            },
            "afk": [d.to_dict() for d in self.afk],
            "disconnects": [d.to_dict() for d in self.disconnects],
            "team_kills": [k.to_dict() for k in self.team_kills],
            "team_damage": [d.to_dict() for d in self.team_damage],
            "team_economies": {
                str(round_num): {
                    team.value: {
                        "buy_state": economy.buy_state.value,
                        "avg_equip_value": round(economy.avg_equip_value, 2),
                        "median_equip_value": round(economy.median_equip_value, 2),
                        "avg_money": round(economy.avg_money, 2),
                        "weapons_untracked": economy.weapons_untracked,
                    }
                    for team, economy in teams.items()
                }
                for round_num, teams in sorted(self.team_economies.items())
            },
            "skipped_rounds": list(self.skipped_rounds),
        }

    def griefing_events_frame(self) -> pd.DataFrame:
        """One row per adjusted griefing event."""
        rows = [
            {
                "round_num": e.round_num,
                "time": e.time,
                "player_id": e.player_id,
                "player_name": e.player_name,
                "type": e.type.value,
                "score": e.score,
                "confidence": e.confidence,
                "reason": e.reason,
            }
            for result in self.griefing.values()
            for e in result.events
        ]
        df = pd.DataFrame(rows, columns=GRIEFING_EVENT_COLUMNS)
        if not df.empty:
            df = df.sort_values(["round_num", "player_id"], kind="stable").reset_index(drop=True)
        return df

    def griefing_players_frame(self) -> pd.DataFrame:
        """One row per player with griefing events."""
        rows = [
            {
                "player_id": r.player_id,
                "player_name": r.player_name,
                "team": r.team.value,
                "score": r.score,
                "confidence": r.confidence,
                "flagged": r.flagged,
                "events": len(r.events),
            }
            for r in self.griefing.values()
        ]
        return pd.DataFrame(
            rows,
            columns=["player_id", "player_name", "team", "score", "confidence", "flagged", "events"],
        )

    def afk_frame(self) -> pd.DataFrame:
        rows = [{col: d.to_dict()[col] for col in AFK_COLUMNS} for d in self.afk]
        return pd.DataFrame(rows, columns=AFK_COLUMNS)

    def disconnects_frame(self) -> pd.DataFrame:
        return pd.DataFrame([d.to_dict() for d in self.disconnects], columns=DISCONNECT_COLUMNS)

    def round_economy_frame(self) -> pd.DataFrame:
        """Reconstructed per-player economy, one row per player per round."""
        rows = []
        for round_num, economies in sorted(self.round_economies.items()):
            for economy in economies.values():
                rows.append(
                    {
                        "round_num": round_num,
                        "player_id": economy.player_id,
                        "player_name": economy.player_name,
                        "team": economy.team.value,
                        "money_start": economy.money_start,
                        "money_after_buy": economy.money_after_buy,
                        "equip_value": economy.equip_value,
                        "equip_value_after_buy": economy.equip_value_after_buy,
                        "spent": economy.spent,
                        "carried_over_value": economy.carried_over_value,
                        "damage_dealt": economy.damage_dealt,
                        "kills": economy.kills,
                        "time_to_death": economy.time_to_death,
                        "died_early": economy.died_early,
                        "low_impact": economy.low_impact,
                    }
                )
        return pd.DataFrame(rows)


class BehaviorEngine:
    """
    Runs the behavioral analysis over a closed match timeline.

    The engine holds only its configuration; every analyze() call starts
    from scratch, so repeated runs over the same timeline give equal reports.

    Example:
        >>> engine = BehaviorEngine(load_config())
        >>> report = engine.analyze(load_timeline(Path("match.json")))
        >>> [p.player_name for p in report.flagged_players]
    """

    def __init__(self, config: GriefwatchConfig | None = None):
        self.config = config or GriefwatchConfig()

    def analyze(self, timeline: MatchTimeline) -> MatchReport:
        logger.info(
            f"Analyzing match{f' on {timeline.map_name}' if timeline.map_name else ''}: "
            f"{len(timeline.rounds)} rounds, {len(timeline.frames)} frames"
        )

        with PerformanceMonitor("Economy griefing"):
            economy = detect_economy_griefing(timeline, self.config.economy)
        with PerformanceMonitor("AFK detection"):
            afk = detect_afk_players(timeline, self.config.afk)
        with PerformanceMonitor("Disconnect tracking"):
            disconnects = detect_disconnects(timeline, self.config.disconnects)
        with PerformanceMonitor("Friendly fire"):
            team_kills = detect_team_kills(timeline, self.config.friendly_fire)
            team_damage = detect_team_damage(timeline, self.config.friendly_fire)

        report = MatchReport(
            map_name=timeline.map_name,
            tick_rate=timeline.tick_rate,
            griefing=economy.by_player,
            afk=sorted(afk, key=lambda d: (d.round_num, d.player_id)),
            disconnects=disconnects,
            team_kills=team_kills,
            team_damage=team_damage,
            round_economies=economy.round_economies,
            team_economies=economy.team_economies,
            skipped_rounds=economy.skipped_rounds,
        )

        summary = report.summary()
        logger.info(
            f"Analysis complete: {summary['players_flagged']} flagged players, "
            f"{summary['afk_detections']} AFK detections, {summary['disconnects']} disconnects, "
            f"{summary['team_kills']} team kills"
        )
        return report


def analyze_match(
    timeline: MatchTimeline, config: GriefwatchConfig | None = None
) -> MatchReport:
    """Convenience function to analyze a timeline."""
    return BehaviorEngine(config).analyze(timeline)
