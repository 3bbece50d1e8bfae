"""
Disconnect / Reconnect Tracking

A player who drops out of the frame stream (absent, or present but not
connected) for at least the gap threshold has disconnected at the last tick
they were seen. Reappearing later closes the disconnect as a reconnect.

Rounds missed are counted from the disconnect round to the reconnect round
(or the last round when the player never came back). The disconnect round
is not counted when the player had already died in it, and the reconnect
round is not counted when the player was back before its freeze time ended.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from griefwatch.core.config import DisconnectConfig
from griefwatch.core.constants import Team
from griefwatch.core.timeline import MatchTimeline, PlayerSnapshot, Round
from griefwatch.core.utils import tick_or_none

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DisconnectEvent:
    """One disconnect, with its reconnect when the player came back."""

    player_id: int
    player_name: str
    team: Team
    disconnect_tick: int
    disconnect_time: float
    disconnect_round: int | None
    alive_at_disconnect: bool
    died_before_disconnect: bool
    reconnect_tick: int | None = None
    reconnect_time: float | None = None
    reconnect_round: int | None = None
    reconnected_before_freeze_end: bool = False
    duration_seconds: float | None = None
    rounds_missed: int | None = None

    @property
    def reconnected(self) -> bool:
        return self.reconnect_tick is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "team": self.team.value,
            "disconnect_tick": self.disconnect_tick,
            "disconnect_time": round(self.disconnect_time, 3),
            "disconnect_round": self.disconnect_round,
            "alive_at_disconnect": self.alive_at_disconnect,
            "died_before_disconnect": self.died_before_disconnect,
            "reconnected": self.reconnected,
            "reconnect_tick": self.reconnect_tick,
            "reconnect_time": round(self.reconnect_time, 3) if self.reconnect_time is not None else None,
            "reconnect_round": self.reconnect_round,
            "reconnected_before_freeze_end": self.reconnected_before_freeze_end,
            "duration_seconds": (
                round(self.duration_seconds, 3) if self.duration_seconds is not None else None
            ),
            "rounds_missed": self.rounds_missed,
        }


@dataclass
class _Presence:
    """Last sighting of a player, plus the disconnect they are in, if any."""

    player_name: str
    team: Team
    last_seen_tick: int
    last_seen_time: float
    last_seen_alive: bool
    disconnect_tick: int | None = None
    disconnect_time: float | None = None
    disconnect_round: int | None = None
    alive_at_disconnect: bool = True

    @property
    def is_disconnected(self) -> bool:
        return self.disconnect_tick is not None

    def seen(self, tick: int, time: float, snapshot: PlayerSnapshot) -> None:
        self.player_name = snapshot.name
        self.team = snapshot.team
        self.last_seen_tick = tick
        self.last_seen_time = time
        self.last_seen_alive = snapshot.is_alive


@dataclass
class DisconnectTracker:
    """
    Presence state for every player of a match.

    Feed frames in tick order with update(), then call finish() once to
    close disconnects that never reconnected.
    """

    timeline: MatchTimeline
    config: DisconnectConfig = field(default_factory=DisconnectConfig)

    def __post_init__(self) -> None:
        self.threshold_ticks = self.timeline.ticks(self.config.gap_threshold_seconds)
        self.players: dict[int, _Presence] = {}
        self.deaths_by_round: dict[int, set[int]] = {}
        self.events: list[DisconnectEvent] = []

    def round_containing(self, tick: int) -> Round | None:
        """The first round whose window contains tick."""
        for rnd in self.timeline.rounds:
            window = self.timeline.round_window(rnd)
            if window is not None and window.start_tick <= tick <= window.end_tick:
                return rnd
        return None

    def died_in_round(self, round_num: int | None, player_id: int) -> bool:
        if round_num is None:
            return False
        return player_id in self.deaths_by_round.get(round_num, set())

    def update(self, tick: int, time: float, snapshots: list[PlayerSnapshot]) -> None:
        """Advance every player's presence with one frame."""
        current = self.round_containing(tick)
        present = set()

        for snapshot in snapshots:
            if not snapshot.is_playing or not snapshot.is_connected:
                continue
            player_id = snapshot.player_id
            present.add(player_id)

            if not snapshot.is_alive and current is not None:
                self.deaths_by_round.setdefault(current.number, set()).add(player_id)

            state = self.players.get(player_id)
            if state is None:
                self.players[player_id] = _Presence(
                    player_name=snapshot.name,
                    team=snapshot.team,
                    last_seen_tick=tick,
                    last_seen_time=time,
                    last_seen_alive=snapshot.is_alive,
                )
                continue

            if state.is_disconnected:
                self.events.append(self._reconnect(player_id, state, tick, time, current))
                state.disconnect_tick = None
                state.disconnect_time = None
                state.disconnect_round = None
            state.seen(tick, time, snapshot)

        for player_id, state in self.players.items():
            if player_id in present or state.is_disconnected:
                continue
            if tick - state.last_seen_tick < self.threshold_ticks:
                continue
            disconnect_round = self.round_containing(state.last_seen_tick)
            state.disconnect_tick = state.last_seen_tick
            state.disconnect_time = state.last_seen_time
            state.disconnect_round = disconnect_round.number if disconnect_round else None
            state.alive_at_disconnect = state.last_seen_alive
            logger.debug(
                f"Disconnect: {state.player_name} at tick {state.disconnect_tick} "
                f"(round {state.disconnect_round})"
            )

    def _reconnected_before_freeze_end(self, rnd: Round | None, tick: int) -> bool:
        if rnd is None:
            return False
        window = self.timeline.round_window(rnd)
        if window is None:
            return False
        before = self.timeline.seconds(tick - window.start_tick) < self.config.freeze_time_seconds
        freeze_end = tick_or_none(rnd.freeze_end_tick)
        if freeze_end is not None:
            before = before or tick < freeze_end
        return before

    def _rounds_missed(self, disconnect_round: int, last_round: int, died: bool) -> int:
        missed = last_round - disconnect_round
        if not died:
            missed += 1
        return missed

    def _reconnect(
        self, player_id: int, state: _Presence, tick: int, time: float, rnd: Round | None
    ) -> DisconnectEvent:
        died = self.died_in_round(state.disconnect_round, player_id)
        before_freeze_end = self._reconnected_before_freeze_end(rnd, tick)

        rounds_missed = None
        if state.disconnect_round is not None and rnd is not None:
            rounds_missed = self._rounds_missed(state.disconnect_round, rnd.number, died)
            if before_freeze_end and rounds_missed > 0:
                rounds_missed -= 1

        logger.debug(f"Reconnect: {state.player_name} at tick {tick} after {time - state.disconnect_time:.1f}s")
        return DisconnectEvent(
            player_id=player_id,
            player_name=state.player_name,
            team=state.team,
            disconnect_tick=state.disconnect_tick,
            disconnect_time=state.disconnect_time,
            disconnect_round=state.disconnect_round,
            alive_at_disconnect=state.alive_at_disconnect,
            died_before_disconnect=died,
            reconnect_tick=tick,
            reconnect_time=time,
            reconnect_round=rnd.number if rnd else None,
            reconnected_before_freeze_end=before_freeze_end,
            duration_seconds=time - state.disconnect_time,
            rounds_missed=rounds_missed,
        )

    def finish(self) -> list[DisconnectEvent]:
        """Close open disconnects and return every event by disconnect time."""
        last_round = max((rnd.number for rnd in self.timeline.rounds), default=None)

        for player_id, state in self.players.items():
            if not state.is_disconnected:
                continue
            died = self.died_in_round(state.disconnect_round, player_id)
            rounds_missed = None
            if state.disconnect_round is not None and last_round is not None:
                rounds_missed = (
                    self._rounds_missed(state.disconnect_round, last_round, died)
                    if last_round > state.disconnect_round
                    else 0
                )
            self.events.append(
                DisconnectEvent(
                    player_id=player_id,
                    player_name=state.player_name,
                    team=state.team,
                    disconnect_tick=state.disconnect_tick,
                    disconnect_time=state.disconnect_time,
                    disconnect_round=state.disconnect_round,
                    alive_at_disconnect=state.alive_at_disconnect,
                    died_before_disconnect=died,
                    duration_seconds=max(0.0, self.timeline.duration_seconds - state.disconnect_time),
                    rounds_missed=rounds_missed,
                )
            )

        return sorted(self.events, key=lambda e: (e.disconnect_time, e.player_id))


def detect_disconnects(
    timeline: MatchTimeline, config: DisconnectConfig | None = None
) -> list[DisconnectEvent]:
    """
    Find every disconnect in the match.

    Returns:
        Disconnect events ordered by disconnect time, then player id
    """
    tracker = DisconnectTracker(timeline, config or DisconnectConfig())
    for frame in timeline.frames:
        tracker.update(frame.tick, frame.time, list(frame.players))
    events = tracker.finish()

    logger.info(
        f"Disconnect tracking: {len(events)} disconnects, "
        f"{sum(1 for e in events if e.reconnected)} reconnected"
    )
    return events
