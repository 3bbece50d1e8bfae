"""
Round-Start AFK Detection

Tracks every player from freeze end to round end with a small state machine:

    UNSEEN -> TRACKING -> MOVED | DIED | ROUND_ENDED

A player who moves during the grace window after freeze end is never
reported for that round. A player who stays still for at least the AFK
threshold is reported, with the AFK interval ending at first movement,
death, or round end.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from griefwatch.core.config import AFKConfig
from griefwatch.core.constants import Team
from griefwatch.core.timeline import MatchTimeline, PlayerSnapshot, Round, Vector3

logger = logging.getLogger(__name__)


class AFKState(str, Enum):
    UNSEEN = "unseen"
    TRACKING = "tracking"
    MOVED = "moved"
    DIED = "died"
    ROUND_ENDED = "round_ended"


TERMINAL_STATES = frozenset({AFKState.MOVED, AFKState.DIED, AFKState.ROUND_ENDED})


@dataclass(frozen=True)
class AFKDetection:
    """A player who stood still at round start."""

    player_id: int
    player_name: str
    team: Team
    round_num: int
    round_start_tick: int
    freeze_end_tick: int
    afk_start_tick: int
    afk_end_tick: int
    duration_seconds: float
    died_while_afk: bool
    time_to_first_movement: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "team": self.team.value,
            "round_num": self.round_num,
            "round_start_tick": self.round_start_tick,
            "freeze_end_tick": self.freeze_end_tick,
            "afk_start_tick": self.afk_start_tick,
            "afk_end_tick": self.afk_end_tick,
            "duration_seconds": round(self.duration_seconds, 3),
            "died_while_afk": self.died_while_afk,
            "time_to_first_movement": (
                round(self.time_to_first_movement, 3)
                if self.time_to_first_movement is not None
                else None
            ),
        }


class AFKTracker:
    """
    Movement state of one player in one round.

    Feed frames in tick order with update(), then call finish() with the
    round end tick and read the verdict from detection().
    """

    def __init__(self, player_id: int, grace_end_tick: int, movement_epsilon: float):
        self.player_id = player_id
        self.grace_end_tick = grace_end_tick
        self.movement_epsilon = movement_epsilon

        self.state = AFKState.UNSEEN
        self.player_name = ""
        self.team = Team.SPECTATOR
        self.first_seen_tick: int | None = None
        self.last_position: Vector3 | None = None
        self.first_movement_tick: int | None = None
        self.death_tick: int | None = None
        self.round_end_tick: int | None = None
        self.moved_during_grace = False

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def update(self, tick: int, snapshot: PlayerSnapshot) -> None:
        """Advance the state machine with the player's snapshot at tick."""
        if self.is_terminal:
            return

        if self.state == AFKState.UNSEEN:
            self.state = AFKState.TRACKING
            self.first_seen_tick = tick
            self.player_name = snapshot.name
            self.team = snapshot.team

        if not snapshot.is_alive:
            self.death_tick = tick
            self.state = AFKState.DIED
            return

        position = snapshot.position
        if position is None:
            return
        if self.last_position is None:
            self.last_position = position
            return

        distance = self.last_position.planar_distance(position)
        self.last_position = position
        if distance > self.movement_epsilon:
            self.first_movement_tick = tick
            if tick < self.grace_end_tick:
                self.moved_during_grace = True
            self.state = AFKState.MOVED

    def finish(self, round_end_tick: int) -> None:
        self.round_end_tick = round_end_tick
        if self.state == AFKState.TRACKING:
            self.state = AFKState.ROUND_ENDED

    def detection(
        self,
        rnd: Round,
        round_start_tick: int,
        freeze_end_tick: int,
        tick_rate: float,
        threshold_seconds: float,
    ) -> AFKDetection | None:
        """Build the AFK verdict, or None if the player was not AFK."""
        if self.first_seen_tick is None or self.moved_during_grace:
            return None

        late_joiner = self.first_seen_tick > self.grace_end_tick
        if late_joiner and self.first_movement_tick is not None:
            return None

        start_tick = self.first_seen_tick if late_joiner else freeze_end_tick

        died_while_afk = False
        if self.first_movement_tick is not None:
            end_tick = self.first_movement_tick
        elif self.death_tick is not None:
            end_tick = self.death_tick
            died_while_afk = True
        else:
            end_tick = self.round_end_tick if self.round_end_tick is not None else start_tick

        duration = (end_tick - start_tick) / tick_rate
        if duration < threshold_seconds:
            return None

        return AFKDetection(
            player_id=self.player_id,
            player_name=self.player_name,
            team=self.team,
            round_num=rnd.number,
            round_start_tick=round_start_tick,
            freeze_end_tick=freeze_end_tick,
            afk_start_tick=start_tick,
            afk_end_tick=end_tick,
            duration_seconds=duration,
            died_while_afk=died_while_afk,
            time_to_first_movement=(
                (self.first_movement_tick - start_tick) / tick_rate
                if self.first_movement_tick is not None
                else None
            ),
        )


def detect_round_afk(
    rnd: Round, timeline: MatchTimeline, config: AFKConfig | None = None
) -> list[AFKDetection]:
    """AFK detections for one round, ordered by player id. Invalid rounds yield none."""
    config = config or AFKConfig()
    window = timeline.round_window(rnd)
    if window is None:
        return []

    grace_end_tick = window.freeze_end_tick + timeline.ticks(config.grace_period_seconds)
    trackers: dict[int, AFKTracker] = {}

    for frame in timeline.frames_between(window.freeze_end_tick, window.end_tick):
        for snapshot in frame.players:
            if not snapshot.is_playing:
                continue
            tracker = trackers.get(snapshot.player_id)
            if tracker is None:
                tracker = AFKTracker(snapshot.player_id, grace_end_tick, config.movement_epsilon)
                trackers[snapshot.player_id] = tracker
            tracker.update(frame.tick, snapshot)

    detections = []
    for player_id in sorted(trackers):
        tracker = trackers[player_id]
        tracker.finish(window.end_tick)
        detection = tracker.detection(
            rnd,
            window.start_tick,
            window.freeze_end_tick,
            timeline.tick_rate,
            config.afk_threshold_seconds,
        )
        if detection is not None:
            detections.append(detection)

    return detections


def detect_afk_players(
    timeline: MatchTimeline, config: AFKConfig | None = None
) -> list[AFKDetection]:
    """
    Run AFK detection over every round of the match.

    Returns:
        Detections ordered by round number, then player id
    """
    config = config or AFKConfig()
    detections: list[AFKDetection] = []

    for rnd in timeline.rounds:
        if timeline.round_window(rnd) is None:
            logger.warning(f"Skipping AFK check for round {rnd.number}: no resolvable start tick")
            continue
        round_detections = detect_round_afk(rnd, timeline, config)
        for detection in round_detections:
            logger.debug(
                f"AFK: {detection.player_name} in round {detection.round_num} "
                f"for {detection.duration_seconds:.1f}s"
            )
        detections.extend(round_detections)

    logger.info(f"AFK detection: {len(detections)} detections in {len(timeline.rounds)} rounds")
    return detections
