"""
Friendly Fire Detection

Finds team kills and team damage by resolving kill and damage events
against the roster of the frame that carries them. Related team-damage
events between the same pair of players are merged into one record.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from griefwatch.core.config import FriendlyFireConfig
from griefwatch.core.constants import WORLD_ATTACKER_NAMES, Team
from griefwatch.core.timeline import DamageEvent, KillEvent, MatchTimeline, PlayerSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TeamKill:
    round_num: int
    tick: int
    time: float
    attacker_id: int
    attacker_name: str
    victim_id: int
    victim_name: str
    team: Team
    weapon: str | None
    headshot: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "round_num": self.round_num,
            "tick": self.tick,
            "time": round(self.time, 3),
            "attacker_id": self.attacker_id,
            "attacker_name": self.attacker_name,
            "victim_id": self.victim_id,
            "victim_name": self.victim_name,
            "team": self.team.value,
            "weapon": self.weapon,
            "headshot": self.headshot,
        }


@dataclass
class TeamDamage:
    """Damage dealt to a teammate; possibly several merged hits."""

    round_num: int
    tick: int
    time: float
    attacker_id: int
    attacker_name: str
    victim_id: int
    victim_name: str
    team: Team
    damage: float
    initial_hp: float
    final_hp: float
    weapons: list[str] = field(default_factory=list)
    hits: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "round_num": self.round_num,
            "tick": self.tick,
            "time": round(self.time, 3),
            "attacker_id": self.attacker_id,
            "attacker_name": self.attacker_name,
            "victim_id": self.victim_id,
            "victim_name": self.victim_name,
            "team": self.team.value,
            "damage": self.damage,
            "initial_hp": self.initial_hp,
            "final_hp": self.final_hp,
            "weapons": ", ".join(self.weapons),
            "hits": self.hits,
        }


def _is_world(name: str | None) -> bool:
    return name is None or name.strip().lower() in WORLD_ATTACKER_NAMES


def _resolve_teammates(
    timeline: MatchTimeline, tick: int, attacker_name: str, victim_name: str | None
) -> tuple[PlayerSnapshot, PlayerSnapshot, float] | None:
    """Attacker and victim snapshots if both are on the same playing team at tick."""
    frame = timeline.frame_at(tick)
    if frame is None or victim_name is None:
        return None
    roster = frame.roster_by_name()
    attacker = roster.get(attacker_name)
    victim = roster.get(victim_name)
    if attacker is None or victim is None:
        return None
    if attacker.team != victim.team or not attacker.is_playing:
        return None
    return attacker, victim, frame.time


def _round_number(timeline: MatchTimeline, tick: int) -> int:
    rnd = timeline.round_for_tick(tick)
    return rnd.number if rnd is not None else 0


def detect_team_kills(
    timeline: MatchTimeline, config: FriendlyFireConfig | None = None
) -> list[TeamKill]:
    """Every kill of a teammate, excluding world kills and end-of-replay noise."""
    config = config or FriendlyFireConfig()
    duration = timeline.duration_seconds
    team_kills: list[TeamKill] = []

    for event in timeline.events:
        if not isinstance(event, KillEvent) or _is_world(event.attacker_name):
            continue
        resolved = _resolve_teammates(timeline, event.tick, event.attacker_name, event.victim_name)
        if resolved is None:
            continue
        attacker, victim, time_s = resolved
        if duration - time_s <= config.ignore_final_seconds:
            continue

        round_num = _round_number(timeline, event.tick)
        if round_num == 0:
            logger.warning(f"Could not find round for team kill at tick {event.tick}")

        team_kills.append(
            TeamKill(
                round_num=round_num,
                tick=event.tick,
                time=time_s,
                attacker_id=attacker.player_id,
                attacker_name=attacker.name,
                victim_id=victim.player_id,
                victim_name=victim.name,
                team=attacker.team,
                weapon=event.weapon,
                headshot=event.headshot,
            )
        )

    logger.info(f"Team kills: {len(team_kills)}")
    return team_kills


def _single_team_damage(
    timeline: MatchTimeline, event: DamageEvent, config: FriendlyFireConfig
) -> TeamDamage | None:
    if _is_world(event.attacker_name) or event.damage is None or event.damage <= 0:
        return None
    resolved = _resolve_teammates(timeline, event.tick, event.attacker_name, event.victim_name)
    if resolved is None:
        return None
    attacker, victim, time_s = resolved

    rnd = timeline.round_for_tick(event.tick)
    if rnd is None:
        return None
    window = timeline.round_window(rnd)
    if window is None or (not window.is_open and event.tick > window.end_tick):
        return None

    # Snapshot hp is post-damage
    if victim.hp is None:
        return None
    if victim.hp >= config.max_health:
        # Full health well into the round means the hp was reset; early in the
        # round the frame was sampled before the hit landed
        seconds_into_round = time_s - timeline.seconds(window.start_tick)
        if seconds_into_round > config.full_health_grace_seconds:
            return None
        initial_hp = float(victim.hp)
        final_hp = initial_hp - event.damage
    else:
        final_hp = victim.hp
        initial_hp = final_hp + event.damage
    if initial_hp > config.max_health or final_hp < 0:
        return None

    return TeamDamage(
        round_num=rnd.number,
        tick=event.tick,
        time=time_s,
        attacker_id=attacker.player_id,
        attacker_name=attacker.name,
        victim_id=victim.player_id,
        victim_name=victim.name,
        team=attacker.team,
        damage=event.damage,
        initial_hp=initial_hp,
        final_hp=final_hp,
        weapons=[event.weapon] if event.weapon else [],
    )


def _merge_group(group: list[TeamDamage]) -> TeamDamage | None:
    first, last = group[0], group[-1]
    if len(group) == 1:
        return first

    total = first.initial_hp - last.final_hp
    if total <= 0 or last.final_hp < 0:
        return None

    weapons: list[str] = []
    for hit in group:
        for weapon in hit.weapons:
            if weapon not in weapons:
                weapons.append(weapon)

    return TeamDamage(
        round_num=first.round_num,
        tick=first.tick,
        time=first.time,
        attacker_id=first.attacker_id,
        attacker_name=first.attacker_name,
        victim_id=first.victim_id,
        victim_name=first.victim_name,
        team=first.team,
        damage=total,
        initial_hp=first.initial_hp,
        final_hp=last.final_hp,
        weapons=weapons,
        hits=len(group),
    )


def group_team_damage(
    hits: list[TeamDamage], config: FriendlyFireConfig | None = None
) -> list[TeamDamage]:
    """
    Merge hits on the same victim by the same attacker.

    A hit joins the open group of its pair when it lands within
    group_window_seconds or group_window_ticks of the group's first hit.
    The merged damage is the health difference across the group.
    """
    config = config or FriendlyFireConfig()
    ordered = sorted(hits, key=lambda d: (d.time, d.tick))

    open_groups: dict[tuple[int, int], list[TeamDamage]] = {}
    groups: list[list[TeamDamage]] = []
    for hit in ordered:
        pair = (hit.attacker_id, hit.victim_id)
        group = open_groups.get(pair)
        if group is not None:
            first = group[0]
            within = (
                hit.time - first.time <= config.group_window_seconds
                or hit.tick - first.tick <= config.group_window_ticks
            )
            if within:
                group.append(hit)
                continue
        group = [hit]
        open_groups[pair] = group
        groups.append(group)

    merged = []
    for group in groups:
        record = _merge_group(group)
        if record is not None:
            merged.append(record)
    return merged


def detect_team_damage(
    timeline: MatchTimeline, config: FriendlyFireConfig | None = None
) -> list[TeamDamage]:
    """Team damage records, grouped per attacker/victim burst, in time order."""
    config = config or FriendlyFireConfig()
    hits = []
    for event in timeline.events:
        if isinstance(event, DamageEvent):
            record = _single_team_damage(timeline, event, config)
            if record is not None:
                hits.append(record)

    grouped = group_team_damage(hits, config)
    logger.info(f"Team damage: {len(hits)} hits in {len(grouped)} groups")
    return grouped
