"""
Griefwatch Timeline Model

Read-only model of a parsed match replay: frames of player snapshots, the
discrete events that happened at each tick, and the round boundaries.
The engine only consumes this model; producing it is the parser's job.

Events are a tagged union of small frozen dataclasses (one class per event
kind, each carrying only the fields relevant to that kind).

MatchTimeline is the accessor the detectors use to slice the replay into
round windows.
"""

from __future__ import annotations

import bisect
import gzip
import json
import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from griefwatch.core.constants import CS2_TICK_RATE, Team
from griefwatch.core.utils import finite_or_none, non_negative_or_none, tick_or_none

logger = logging.getLogger(__name__)


class TimelineFormatError(ValueError):
    """Raised when a document is not structurally a match timeline."""


# ============================================================================
# Player state
# ============================================================================


@dataclass(frozen=True)
class Vector3:
    """World position in map units."""

    x: float
    y: float
    z: float = 0.0

    def planar_distance(self, other: Vector3) -> float:
        """Euclidean distance on the map plane (ignores height)."""
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass(frozen=True)
class Loadout:
    """Visible equipment of a player. Weapon identifiers may be unobservable."""

    primary: str | None = None
    secondary: str | None = None
    grenades: tuple[str, ...] = ()
    has_helmet: bool = False
    has_defuser: bool = False
    has_bomb: bool = False


@dataclass(frozen=True)
class PlayerSnapshot:
    """One player's state in one frame."""

    player_id: int
    name: str
    team: Team
    hp: float | None = 100.0
    is_alive: bool = True
    is_connected: bool = True
    position: Vector3 | None = None
    loadout: Loadout = field(default_factory=Loadout)
    money: float | None = None  # Observed money, absent for most sources
    is_talking: bool = False

    @property
    def is_playing(self) -> bool:
        return self.team in (Team.CT, Team.T)


# ============================================================================
# Events (tagged union)
# ============================================================================


@dataclass(frozen=True)
class KillEvent:
    tick: int | None
    attacker_name: str | None
    victim_name: str | None
    weapon: str | None = None
    headshot: bool = False
    attacker_team: Team | None = None
    victim_team: Team | None = None


@dataclass(frozen=True)
class DamageEvent:
    tick: int | None
    attacker_name: str | None
    victim_name: str | None
    damage: float | None
    weapon: str | None = None


@dataclass(frozen=True)
class ChatEvent:
    tick: int | None
    player_name: str | None
    message: str


@dataclass(frozen=True)
class PlantEvent:
    tick: int | None
    player_name: str | None = None


@dataclass(frozen=True)
class DefuseEvent:
    tick: int | None
    player_name: str | None = None


@dataclass(frozen=True)
class WeaponFireEvent:
    tick: int | None
    player_name: str | None
    weapon: str | None = None


@dataclass(frozen=True)
class ThrowEvent:
    tick: int | None
    player_name: str | None
    grenade: str | None = None


Event = Union[
    KillEvent, DamageEvent, ChatEvent, PlantEvent, DefuseEvent, WeaponFireEvent, ThrowEvent
]


# ============================================================================
# Frames and rounds
# ============================================================================


@dataclass(frozen=True)
class Frame:
    """A discretized simulation snapshot."""

    tick: int
    time: float
    players: tuple[PlayerSnapshot, ...] = ()
    events: tuple[Event, ...] = ()

    def player(self, player_id: int) -> PlayerSnapshot | None:
        for snapshot in self.players:
            if snapshot.player_id == player_id:
                return snapshot
        return None

    def roster_by_name(self) -> dict[str, PlayerSnapshot]:
        return {p.name: p for p in self.players}


@dataclass(frozen=True)
class Round:
    """Round boundaries as reported by the parser."""

    number: int
    start_tick: int | None
    freeze_end_tick: int | None = None
    end_tick: int | None = None
    winner: Team | None = None


@dataclass(frozen=True)
class RoundWindow:
    """Resolved tick window of a round (fallbacks applied)."""

    number: int
    start_tick: int
    freeze_end_tick: int
    end_tick: int
    is_open: bool = False  # Round had no end tick in the source


# ============================================================================
# Timeline accessor
# ============================================================================


class MatchTimeline:
    """
    Read-only view over the ordered frame sequence and round boundaries.

    Example:
        >>> timeline = MatchTimeline(frames, rounds, tick_rate=64)
        >>> window = timeline.round_window(timeline.rounds[0])
        >>> frames = timeline.frames_between(window.freeze_end_tick, window.end_tick)
    """

    def __init__(
        self,
        frames: Iterable[Frame],
        rounds: Iterable[Round],
        tick_rate: float = CS2_TICK_RATE,
        events: Iterable[Event] | None = None,
        map_name: str = "",
    ):
        self._frames: tuple[Frame, ...] = tuple(sorted(frames, key=lambda f: f.tick))
        self._ticks: list[int] = [f.tick for f in self._frames]
        self._rounds: tuple[Round, ...] = tuple(sorted(rounds, key=lambda r: r.number))
        rate = finite_or_none(tick_rate)
        self.tick_rate: float = rate if rate and rate > 0 else float(CS2_TICK_RATE)
        self.map_name = map_name

        if events is None:
            events = [event for frame in self._frames for event in frame.events]
        timed = [e for e in events if e.tick is not None]
        self._events: tuple[Event, ...] = tuple(sorted(timed, key=lambda e: e.tick))
        self._event_ticks: list[int] = [e.tick for e in self._events]

    @property
    def frames(self) -> Sequence[Frame]:
        return self._frames

    @property
    def rounds(self) -> Sequence[Round]:
        return self._rounds

    @property
    def events(self) -> Sequence[Event]:
        return self._events

    @property
    def last_tick(self) -> int | None:
        return self._ticks[-1] if self._ticks else None

    @property
    def duration_seconds(self) -> float:
        if not self._frames:
            return 0.0
        return self._frames[-1].time

    def seconds(self, ticks: float) -> float:
        """Convert a tick count to seconds."""
        return ticks / self.tick_rate

    def ticks(self, seconds: float) -> int:
        """Convert seconds to a (rounded up) tick count."""
        return math.ceil(seconds * self.tick_rate)

    def round_by_number(self, number: int) -> Round | None:
        for rnd in self._rounds:
            if rnd.number == number:
                return rnd
        return None

    def previous_round(self, rnd: Round) -> Round | None:
        return self.round_by_number(rnd.number - 1)

    def round_window(self, rnd: Round) -> RoundWindow | None:
        """
        Resolve a round's tick window.

        freeze_end defaults to the start tick; an unterminated round runs to
        the last frame. Returns None for a structurally invalid round (no
        resolvable start tick).
        """
        start = tick_or_none(rnd.start_tick)
        if start is None:
            return None
        freeze_end = tick_or_none(rnd.freeze_end_tick)
        if freeze_end is None:
            freeze_end = start
        end = tick_or_none(rnd.end_tick)
        is_open = end is None
        if end is None:
            end = self.last_tick if self.last_tick is not None else freeze_end
        return RoundWindow(
            number=rnd.number,
            start_tick=start,
            freeze_end_tick=freeze_end,
            end_tick=end,
            is_open=is_open,
        )

    def frames_between(self, start_tick: int, end_tick: int) -> list[Frame]:
        """All frames with start_tick <= tick <= end_tick, in tick order."""
        lo = bisect.bisect_left(self._ticks, start_tick)
        hi = bisect.bisect_right(self._ticks, end_tick)
        return list(self._frames[lo:hi])

    def first_frame_between(self, start_tick: int, end_tick: int) -> Frame | None:
        """The first frame at/after start_tick, if it is not past end_tick."""
        lo = bisect.bisect_left(self._ticks, start_tick)
        if lo < len(self._frames) and self._frames[lo].tick <= end_tick:
            return self._frames[lo]
        return None

    def frame_at(self, tick: int) -> Frame | None:
        """The latest frame at or before tick."""
        index = bisect.bisect_right(self._ticks, tick) - 1
        if index < 0:
            return None
        return self._frames[index]

    def events_between(self, start_tick: int, end_tick: int) -> list[Event]:
        """All timed events with start_tick <= tick <= end_tick."""
        lo = bisect.bisect_left(self._event_ticks, start_tick)
        hi = bisect.bisect_right(self._event_ticks, end_tick)
        return list(self._events[lo:hi])

    def round_for_tick(self, tick: int) -> Round | None:
        """
        Find the round a tick belongs to.

        Prefers the latest-starting round whose window contains the tick,
        then the latest round that started before the tick.
        """
        started: list[tuple[int, Round]] = []
        for rnd in self._rounds:
            start = tick_or_none(rnd.start_tick)
            if start is not None and start <= tick:
                started.append((start, rnd))
        if not started:
            return None

        containing = [
            (start, rnd)
            for start, rnd in started
            if tick_or_none(rnd.end_tick) is None or tick <= tick_or_none(rnd.end_tick)
        ]
        pool = containing or started
        return max(pool, key=lambda item: item[0])[1]


# ============================================================================
# Decoding
# ============================================================================


def _get(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key (parsers disagree on camelCase vs snake_case)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_team(value: Any) -> Team | None:
    if value is None:
        return None
    return Team.parse(value)


def _decode_position(data: Any) -> Vector3 | None:
    if not isinstance(data, dict):
        return None
    x = finite_or_none(data.get("x"))
    y = finite_or_none(data.get("y"))
    if x is None or y is None:
        return None
    z = finite_or_none(data.get("z"))
    return Vector3(x, y, z if z is not None else 0.0)


def _decode_player(data: dict[str, Any]) -> PlayerSnapshot | None:
    player_id = finite_or_none(_get(data, "id", "playerId", "player_id", "steamid"))
    if player_id is None:
        return None
    equipment = _get(data, "equipment", "loadout", default={}) or {}
    grenades = tuple(str(g) for g in (equipment.get("grenades") or []) if g)
    loadout = Loadout(
        primary=_optional_str(equipment.get("primary")),
        secondary=_optional_str(equipment.get("secondary")),
        grenades=grenades,
        has_helmet=bool(_get(data, "hasHelmet", "has_helmet", default=False)),
        has_defuser=bool(_get(data, "hasDefuser", "has_defuser", default=False)),
        has_bomb=bool(_get(data, "hasBomb", "has_bomb", default=False)),
    )
    return PlayerSnapshot(
        player_id=int(player_id),
        name=str(_get(data, "name", default="")),
        team=Team.parse(_get(data, "team", default="SPECTATOR")),
        hp=non_negative_or_none(_get(data, "hp", "health")),
        is_alive=bool(_get(data, "isAlive", "is_alive", default=True)),
        is_connected=bool(_get(data, "isConnected", "is_connected", default=True)),
        position=_decode_position(_get(data, "position")),
        loadout=loadout,
        money=non_negative_or_none(_get(data, "money")),
        is_talking=bool(_get(data, "isTalking", "is_talking", default=False)),
    )


def decode_event(data: dict[str, Any]) -> Event | None:
    """Decode one event dict into its typed variant; None for unknown kinds."""
    kind = str(_get(data, "type", "kind", default="")).lower()
    tick = tick_or_none(_get(data, "tick"))
    attacker = _optional_str(_get(data, "attackerName", "attacker_name"))
    victim = _optional_str(_get(data, "victimName", "victim_name"))
    player = _optional_str(_get(data, "playerName", "player_name"))
    weapon = _optional_str(_get(data, "weapon"))

    if kind == "kill":
        return KillEvent(
            tick=tick,
            attacker_name=attacker,
            victim_name=victim,
            weapon=weapon,
            headshot=bool(_get(data, "isHeadshot", "headshot", default=False)),
            attacker_team=_optional_team(_get(data, "attackerTeam", "attacker_team")),
            victim_team=_optional_team(_get(data, "victimTeam", "victim_team")),
        )
    if kind == "damage":
        return DamageEvent(
            tick=tick,
            attacker_name=attacker,
            victim_name=victim,
            damage=non_negative_or_none(_get(data, "damage", "dmg_health")),
            weapon=weapon,
        )
    if kind == "chat":
        return ChatEvent(tick=tick, player_name=player, message=str(_get(data, "message", default="")))
    if kind == "plant":
        return PlantEvent(tick=tick, player_name=player)
    if kind == "defuse":
        return DefuseEvent(tick=tick, player_name=player)
    if kind == "weapon_fire":
        return WeaponFireEvent(tick=tick, player_name=player, weapon=weapon)
    if kind == "throw":
        return ThrowEvent(tick=tick, player_name=player, grenade=weapon)

    logger.debug(f"Skipping unknown event kind: {kind!r}")
    return None


def _decode_events(items: Any) -> tuple[Event, ...]:
    events = []
    for item in items or []:
        if isinstance(item, dict):
            event = decode_event(item)
            if event is not None:
                events.append(event)
    return tuple(events)


def timeline_from_dict(data: dict[str, Any]) -> MatchTimeline:
    """
    Build a MatchTimeline from a JSON-like document.

    Raises:
        TimelineFormatError: If the document has no frame list or a frame has no tick.
    """
    if not isinstance(data, dict) or not isinstance(data.get("frames"), list):
        raise TimelineFormatError("Timeline document must contain a 'frames' list")

    tick_rate = finite_or_none(_get(data, "tickRate", "tick_rate")) or CS2_TICK_RATE

    frames: list[Frame] = []
    for index, raw in enumerate(data["frames"]):
        if not isinstance(raw, dict) or "tick" not in raw:
            raise TimelineFormatError(f"Frame {index} has no tick")
        tick = tick_or_none(raw["tick"])
        if tick is None:
            logger.debug(f"Dropping frame {index} with out-of-domain tick {raw['tick']!r}")
            continue
        time_s = finite_or_none(raw.get("time"))
        players = tuple(
            p for p in (_decode_player(item) for item in raw.get("players") or [] if isinstance(item, dict))
            if p is not None
        )
        frames.append(
            Frame(
                tick=tick,
                time=time_s if time_s is not None else tick / tick_rate,
                players=players,
                events=_decode_events(raw.get("events")),
            )
        )

    rounds: list[Round] = []
    for raw in data.get("rounds") or []:
        if not isinstance(raw, dict):
            continue
        number = finite_or_none(_get(raw, "number", "round_num"))
        if number is None:
            continue
        winner = _get(raw, "winner")
        rounds.append(
            Round(
                number=int(number),
                start_tick=tick_or_none(_get(raw, "startTick", "start_tick")),
                freeze_end_tick=tick_or_none(_get(raw, "freezeEndTick", "freeze_end_tick")),
                end_tick=tick_or_none(_get(raw, "endTick", "end_tick")),
                winner=_optional_team(winner) if winner else None,
            )
        )

    top_level_events = data.get("events")
    events = _decode_events(top_level_events) if isinstance(top_level_events, list) else None

    return MatchTimeline(
        frames=frames,
        rounds=rounds,
        tick_rate=tick_rate,
        events=events,
        map_name=str(_get(data, "mapName", "map_name", default="")),
    )


def load_timeline(path: Path) -> MatchTimeline:
    """Load a timeline from a .json or .json.gz file."""
    path = Path(path)
    if path.name.endswith(".gz"):
        with gzip.open(path, "rt", encoding="utf-8") as f:
            data = json.load(f)
    else:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    timeline = timeline_from_dict(data)
    logger.info(
        f"Loaded timeline from {path.name}: {len(timeline.frames)} frames, "
        f"{len(timeline.rounds)} rounds, {len(timeline.events)} events"
    )
    return timeline
