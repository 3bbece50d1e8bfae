"""End-to-end tests for the behavior engine."""

import pytest

from griefwatch.core.config import AFKConfig, GriefwatchConfig
from griefwatch.core.constants import Team
from griefwatch.core.timeline import DamageEvent, KillEvent
from griefwatch.domains.economy import BuyState
from griefwatch.domains.griefing import GriefingEventType
from griefwatch.pipeline import BehaviorEngine, MatchReport, analyze_match

from factories import make_frame, make_player, make_round, make_timeline

ROUND_START = 4480
FREEZE_END = 5120
ROUND_END = FREEZE_END + 40 * 64
REPLAY_END = ROUND_END + 20 * 64
KILL_TICK = FREEZE_END + 20 * 64


def _mover_x(tick):
    return max(0, tick - FREEZE_END) / 10


def _players(tick):
    """Suspect stands still with $4,000 while the rest of CT buys rifles."""
    victim_dead = tick >= KILL_TICK
    rifle = dict(primary="m4a1", helmet=True, defuser=True, money=900.0)
    return [
        make_player(1, "suspect", money=4000.0),
        make_player(
            2,
            "mate1",
            x=_mover_x(tick),
            hp=0.0 if victim_dead else 100.0,
            alive=not victim_dead,
            **rifle,
        ),
        make_player(3, "mate2", x=_mover_x(tick), **rifle),
        make_player(6, "enemy", team=Team.T, x=_mover_x(tick), primary="ak47", helmet=True, money=900.0),
    ]


def _match():
    frames = [make_frame(tick, _players(tick)) for tick in range(ROUND_START, REPLAY_END + 1, 64)]
    rounds = [
        make_round(1, start=None),
        make_round(2, start=ROUND_START, freeze_end=FREEZE_END, end=ROUND_END),
    ]
    events = [
        DamageEvent(KILL_TICK, "suspect", "mate1", 100, "glock"),
        KillEvent(KILL_TICK, "suspect", "mate1", weapon="glock"),
    ]
    return make_timeline(frames, rounds, events=events)


@pytest.fixture
def report():
    return BehaviorEngine().analyze(_match())


class TestBehaviorEngine:
    """Tests for BehaviorEngine.analyze."""

    def test_refuse_to_buy_flagged(self, report):
        (suspect,) = report.flagged_players
        assert suspect.player_name == "suspect"
        assert suspect.team == Team.CT
        assert GriefingEventType.REFUSE_TO_BUY in suspect.event_counts

    def test_event_time_is_freeze_end(self, report):
        event = report.get_player("suspect").events[0]
        assert event.round_num == 2
        assert event.time == pytest.approx(FREEZE_END / 64)

    def test_team_economy(self, report):
        ct = report.team_economies[2][Team.CT]
        assert ct.buy_state == BuyState.FULL_BUY
        assert ct.median_equip_value == 4500
        assert report.round_economies[2][1].money_start == 4000
        assert report.round_economies[2][1].spent == 0

    def test_afk(self, report):
        (detection,) = report.afk
        assert detection.player_name == "suspect"
        assert detection.round_num == 2
        assert detection.duration_seconds == pytest.approx(40.0)

    def test_friendly_fire(self, report):
        (kill,) = report.team_kills
        assert (kill.attacker_name, kill.victim_name, kill.round_num) == ("suspect", "mate1", 2)
        (damage,) = report.team_damage
        assert damage.damage == 100
        assert damage.final_hp == 0

    def test_invalid_round_skipped(self, report):
        assert report.skipped_rounds == [1]
        assert list(report.round_economies) == [2]

    def test_repeated_runs_equal(self):
        """Identical inputs give equal reports."""
        timeline = _match()
        engine = BehaviorEngine()
        first = engine.analyze(timeline)
        second = engine.analyze(timeline)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_config_is_injected(self):
        config = GriefwatchConfig(afk=AFKConfig(afk_threshold_seconds=60.0))
        report = analyze_match(_match(), config)
        assert report.afk == []
        assert report.flagged_players

    def test_empty_timeline(self):
        report = analyze_match(make_timeline([], []))
        assert report.griefing == {}
        assert report.afk == []
        assert report.disconnects == []
        assert report.summary()["rounds_analyzed"] == 0
        assert report.disconnects_frame().empty
        assert report.griefing_events_frame().empty
        assert report.round_economy_frame().empty


class TestMatchReport:
    """Tests for report accessors and tabular views."""

    def test_get_player_case_insensitive(self, report):
        assert report.get_player("SUSPECT").player_id == 1
        assert report.get_player("nobody") is None

    def test_summary(self, report):
        summary = report.summary()
        assert summary["rounds_analyzed"] == 1
        assert summary["rounds_skipped"] == 1
        assert summary["players_flagged"] == 1
        assert summary["afk_detections"] == 1
        assert summary["team_kills"] == 1
        assert summary["disconnects"] == 0

    def test_to_dict(self, report):
        data = report.to_dict()
        assert data["griefing"]["1"]["flagged"] is True
        assert data["team_economies"]["2"]["CT"]["buy_state"] == "fullBuy"
        assert data["afk"][0]["player_name"] == "suspect"
        assert data["skipped_rounds"] == [1]

    def test_frames(self, report):
        events = report.griefing_events_frame()
        assert "RefuseToBuyWithMoney" in set(events["type"])
        assert set(events["player_id"]) == {1}

        assert len(report.round_economy_frame()) == 4
        assert list(report.afk_frame()["player_name"]) == ["suspect"]
        players = report.griefing_players_frame()
        assert bool(players.loc[players["player_id"] == 1, "flagged"].iloc[0]) is True

    def test_default_report(self):
        assert MatchReport().flagged_players == []

    def test_disconnect_tracked(self):
        """A teammate dropping out mid-round shows up in the report."""
        frames = [
            make_frame(tick, [p for p in _players(tick) if p.player_id != 3 or tick < KILL_TICK])
            for tick in range(ROUND_START, REPLAY_END + 1, 64)
        ]
        report = analyze_match(make_timeline(frames, _match().rounds, events=_match().events))
        (event,) = report.disconnects
        assert event.player_name == "mate2"
        assert event.disconnect_round == 2
        assert event.reconnected is False
        assert report.to_dict()["disconnects"][0]["alive_at_disconnect"] is True
        assert list(report.disconnects_frame()["player_name"]) == ["mate2"]
