"""
Round Economy Reconstruction for CS2 Replays

Implements per-round economy inference from partial observations:
- Equipment value of a visible loadout (a lower bound when weapons are unobserved)
- Deterministic starting-money model (pistol money, win bonus, loss-bonus ladder)
- Per-player RoundEconomy records sampled at freeze end and after the buy period
- Team buy-state classification (full buy, force, eco) with a money fallback
  for replays whose weapon identifiers are not tracked

Money is never observed directly by most sources, so every value here is a
best-effort estimate. Observed money, when the parser provides it,
supersedes the model.
"""

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from griefwatch.core.config import EconomyConfig
from griefwatch.core.constants import (
    ARMOR_PRICE,
    BASE_LOSS_BONUS,
    DEFUSER_PRICE,
    HELMET_PRICE,
    LEFTOVER_AFTER_LOSS,
    LEFTOVER_AFTER_WIN,
    LOSS_BONUS_INCREMENT,
    MAX_LOSS_BONUS,
    MAX_MONEY,
    PISTOL_ROUND_MONEY,
    SPEND_SHARE_AFTER_LOSS,
    SPEND_SHARE_AFTER_WIN,
    WEAPON_ALIASES,
    WEAPON_PRICES,
    WIN_BONUS,
    Team,
)
from griefwatch.core.timeline import (
    DamageEvent,
    KillEvent,
    MatchTimeline,
    PlayerSnapshot,
    Round,
)
from griefwatch.core.utils import finite_or_none, mean, median, non_negative_or_none

logger = logging.getLogger(__name__)


class BuyState(str, Enum):
    """Inferred team investment for a round."""

    FULL_BUY = "fullBuy"
    FORCE = "force"
    ECO = "eco"


# Freeze-end sample must land within this many seconds of freeze end
FREEZE_END_SAMPLE_SECONDS = 2
# After-buy sample window, in seconds after freeze end
AFTER_BUY_MIN_SECONDS = 5
AFTER_BUY_MAX_SECONDS = 15

_PREFIX_RE = re.compile(r"^(weapon_|item_)")
_INVALID_CHARS_RE = re.compile(r"[^a-z0-9_]")


# ============================================================================
# Data structures
# ============================================================================


@dataclass
class RoundEconomy:
    """Reconstructed economy of one player in one round."""

    round_num: int
    player_id: int
    player_name: str
    team: Team
    money_start: int
    money_after_buy: int | None
    equip_value: int  # At freeze end
    equip_value_after_buy: int | None
    spent: int  # Never negative
    carried_over_value: int
    damage_dealt: float
    kills: int
    time_to_death: float | None
    time_alive: float
    died_early: bool
    low_impact: bool
    has_helmet: bool = False
    has_defuser: bool = False
    primary_weapon: str | None = None
    previous_primary_weapon: str | None = None
    grenades: tuple[str, ...] = ()


@dataclass
class TeamRoundEconomy:
    """Economy of one team in one round."""

    round_num: int
    team: Team
    avg_equip_value: float
    median_equip_value: float
    avg_money: float
    buy_state: BuyState
    weapons_untracked: bool = False
    player_economies: dict[int, RoundEconomy] = field(default_factory=dict)


# ============================================================================
# Prices and equipment value
# ============================================================================


def normalize_weapon_name(weapon_name: str | None) -> str | None:
    """
    Normalize a weapon identifier for price lookup.

    "weapon_AK47" -> "ak47", "item_defuser" -> "defuser", "galilar" -> "galil".
    """
    if not weapon_name:
        return None
    weapon = weapon_name.strip().lower().replace(" ", "_").replace("-", "_")
    weapon = _PREFIX_RE.sub("", weapon)
    weapon = _INVALID_CHARS_RE.sub("", weapon)
    if not weapon:
        return None
    return WEAPON_ALIASES.get(weapon, weapon)


def get_weapon_price(weapon_name: str | None) -> int:
    """Price of a weapon or grenade; unknown identifiers price at 0."""
    weapon = normalize_weapon_name(weapon_name)
    if weapon is None:
        return 0
    return WEAPON_PRICES.get(weapon, 0)


def calculate_equipment_value(player: PlayerSnapshot) -> int:
    """
    Reconstructed value of a player's visible loadout.

    Armor is assumed for any living player since armor status is not always
    observable. The result is a lower bound when weapon identities are missing.
    """
    loadout = player.loadout
    value = get_weapon_price(loadout.primary)

    for grenade in loadout.grenades:
        value += get_weapon_price(grenade)

    hp = finite_or_none(player.hp)
    if loadout.has_helmet:
        value += ARMOR_PRICE + HELMET_PRICE
    elif hp is not None and hp > 0:
        value += ARMOR_PRICE

    if loadout.has_defuser and player.team == Team.CT:
        value += DEFUSER_PRICE

    return value


# ============================================================================
# Money model
# ============================================================================


def is_pistol_round(round_number: int, rounds_per_half: int | None = None) -> bool:
    """
    Check if a round starts with pistol money.

    Round 1 always does. With rounds_per_half set (12 for MR12), the first
    round of the second half does too. Overtime starts are not pistol rounds.
    """
    if round_number == 1:
        return True
    if rounds_per_half and rounds_per_half > 0:
        return round_number == rounds_per_half + 1
    return False


def calculate_loss_streak(
    round_number: int,
    rounds: Sequence[Round],
    team: Team,
    rounds_per_half: int | None = None,
) -> int:
    """
    Count consecutive completed rounds lost by a team before round_number.

    Walks backward until a win, a round without a known winner, round 1, or
    (with rounds_per_half set) the start of the current half.
    """
    if round_number <= 1:
        return 0

    by_number = {r.number: r for r in rounds}
    streak = 0
    for number in range(round_number - 1, 0, -1):
        rnd = by_number.get(number)
        if rnd is None or rnd.winner is None:
            break
        if rnd.winner == team:
            break
        streak += 1
        if is_pistol_round(number, rounds_per_half):
            break

    return streak


def calculate_loss_bonus(loss_streak: int) -> int:
    """Loss bonus: $1400 for the first loss, +$500 per additional loss, capped at $3400."""
    streak = max(1, loss_streak)
    return min(BASE_LOSS_BONUS + (streak - 1) * LOSS_BONUS_INCREMENT, MAX_LOSS_BONUS)


def calculate_starting_money(
    round_number: int,
    previous_round_won: bool,
    loss_streak: int,
    previous_round_money: float | None = None,
    rounds_per_half: int | None = None,
) -> int:
    """
    Estimate a player's money at the start of a round.

    Args:
        round_number: 1-based round number
        previous_round_won: Whether the player's team won the previous round
        loss_streak: Consecutive losses of the player's team before this round
        previous_round_money: Previous round's post-buy money, if known
        rounds_per_half: Enables second-half pistol rounds

    Returns:
        Estimated starting money (never negative)
    """
    if is_pistol_round(round_number, rounds_per_half):
        return PISTOL_ROUND_MONEY

    if previous_round_won:
        bonus = WIN_BONUS
        spend_share = SPEND_SHARE_AFTER_WIN
        fallback_leftover = LEFTOVER_AFTER_WIN
    else:
        bonus = calculate_loss_bonus(loss_streak)
        spend_share = SPEND_SHARE_AFTER_LOSS
        fallback_leftover = LEFTOVER_AFTER_LOSS

    if previous_round_money is None:
        leftover = fallback_leftover
    else:
        leftover = max(0.0, previous_round_money - previous_round_money * spend_share)

    return int(round(min(MAX_MONEY, leftover + bonus)))


# ============================================================================
# Round reconstruction
# ============================================================================


def _playing_snapshots(players: Iterable[PlayerSnapshot]) -> dict[int, PlayerSnapshot]:
    return {p.player_id: p for p in players if p.team != Team.SPECTATOR}


def reconstruct_round_economy(
    rnd: Round,
    timeline: MatchTimeline,
    config: EconomyConfig | None = None,
    previous_economy: dict[int, RoundEconomy] | None = None,
) -> dict[int, RoundEconomy]:
    """
    Build each player's RoundEconomy for one round.

    Args:
        rnd: The round to reconstruct
        timeline: Frames, events, round list and tick rate of the match
        config: Economy thresholds (defaults when omitted)
        previous_economy: The previous round's output, for carried-over equipment
            and leftover money

    Returns:
        Mapping of player id to RoundEconomy. Players without a freeze-end
        snapshot are absent. An invalid round yields an empty mapping.
    """
    config = config or EconomyConfig()
    window = timeline.round_window(rnd)
    if window is None:
        return {}

    rate = timeline.tick_rate
    freeze_end = window.freeze_end_tick
    round_end = window.end_tick

    freeze_frame = timeline.first_frame_between(
        freeze_end, freeze_end + int(rate * FREEZE_END_SAMPLE_SECONDS)
    )
    after_buy_frame = timeline.first_frame_between(
        freeze_end + int(rate * AFTER_BUY_MIN_SECONDS),
        min(freeze_end + int(rate * AFTER_BUY_MAX_SECONDS), round_end),
    )

    freeze_players = _playing_snapshots(freeze_frame.players) if freeze_frame else {}
    after_buy_players = _playing_snapshots(after_buy_frame.players) if after_buy_frame else {}
    if not freeze_players:
        return {}

    # Damage, kills and deaths, attributed by name against this round's roster
    roster = {p.name: p.player_id for p in freeze_players.values()}
    damage_by_player: dict[int, float] = {}
    kills_by_player: dict[int, int] = {}
    death_ticks: dict[int, int] = {}

    for event in timeline.events_between(window.start_tick, round_end):
        if isinstance(event, DamageEvent):
            attacker_id = roster.get(event.attacker_name or "")
            damage = non_negative_or_none(event.damage)
            if attacker_id is not None and damage:
                damage_by_player[attacker_id] = damage_by_player.get(attacker_id, 0.0) + damage
        elif isinstance(event, KillEvent):
            attacker_id = roster.get(event.attacker_name or "")
            if attacker_id is not None:
                kills_by_player[attacker_id] = kills_by_player.get(attacker_id, 0) + 1
            victim_id = roster.get(event.victim_name or "")
            if victim_id is not None and victim_id not in death_ticks:
                death_ticks[victim_id] = event.tick

    previous_round = timeline.previous_round(rnd)
    loss_streaks = {
        team: calculate_loss_streak(rnd.number, timeline.rounds, team, config.rounds_per_half)
        for team in (Team.CT, Team.T)
    }

    economies: dict[int, RoundEconomy] = {}
    for player_id, player in freeze_players.items():
        equip_value = calculate_equipment_value(player)
        after_player = after_buy_players.get(player_id)
        equip_value_after_buy = (
            calculate_equipment_value(after_player) if after_player is not None else None
        )
        equip_delta = (
            max(0, equip_value_after_buy - equip_value) if equip_value_after_buy is not None else 0
        )

        previous = previous_economy.get(player_id) if previous_economy else None
        previous_won = previous_round is not None and previous_round.winner == player.team

        # Money at freeze end: observed value wins over the model
        observed_start = non_negative_or_none(player.money)
        observed_after = (
            non_negative_or_none(after_player.money) if after_player is not None else None
        )
        if config.prefer_observed_money and observed_start is not None:
            money_start = int(observed_start)
        else:
            money_start = calculate_starting_money(
                rnd.number,
                previous_won,
                loss_streaks.get(player.team, 0),
                previous.money_after_buy if previous else None,
                config.rounds_per_half,
            )

        if after_player is None:
            money_after_buy = None
        elif config.prefer_observed_money and observed_after is not None:
            money_after_buy = int(observed_after)
        else:
            money_after_buy = min(MAX_MONEY, max(0, money_start - equip_delta))

        spent_from_money = max(0, money_start - money_after_buy) if money_after_buy is not None else 0
        spent = max(spent_from_money, equip_delta, 0)

        primary = player.loadout.primary
        previous_primary = previous.primary_weapon if previous else None
        carried_over_value = 0
        if primary and previous_primary:
            if normalize_weapon_name(primary) == normalize_weapon_name(previous_primary):
                carried_over_value = get_weapon_price(previous_primary)

        damage_dealt = damage_by_player.get(player_id, 0.0)
        death_tick = death_ticks.get(player_id)
        time_to_death = max(0.0, (death_tick - freeze_end) / rate) if death_tick is not None else None
        time_alive = time_to_death if time_to_death is not None else max(0.0, (round_end - freeze_end) / rate)

        economies[player_id] = RoundEconomy(
            round_num=rnd.number,
            player_id=player_id,
            player_name=player.name,
            team=player.team,
            money_start=money_start,
            money_after_buy=money_after_buy,
            equip_value=equip_value,
            equip_value_after_buy=equip_value_after_buy,
            spent=spent,
            carried_over_value=carried_over_value,
            damage_dealt=damage_dealt,
            kills=kills_by_player.get(player_id, 0),
            time_to_death=time_to_death,
            time_alive=time_alive,
            died_early=time_to_death is not None and time_to_death < config.early_death_seconds,
            low_impact=damage_dealt < config.low_damage_threshold,
            has_helmet=player.loadout.has_helmet,
            has_defuser=player.loadout.has_defuser,
            primary_weapon=primary,
            previous_primary_weapon=previous_primary,
            grenades=player.loadout.grenades,
        )

    return economies


# ============================================================================
# Team buy state
# ============================================================================


def weapons_untracked(median_equip_value: float, config: EconomyConfig) -> bool:
    """A team median this low means the source does not carry weapon identities."""
    return median_equip_value < config.weapons_untracked_equip_value


def classify_team_buy_state(
    economies: Iterable[RoundEconomy],
    team: Team,
    config: EconomyConfig | None = None,
) -> BuyState:
    """
    Classify a team's investment for the round.

    Equipment value is the primary signal. When the team's median equipment
    value is implausibly low (weapons untracked), money thresholds decide instead.
    """
    config = config or EconomyConfig()
    members = [e for e in economies if e.team == team]
    if not members:
        return BuyState.ECO

    median_equip = median(e.equip_value for e in members)

    if weapons_untracked(median_equip, config):
        money = [e.money_start for e in members]
        median_money = median(money)
        full_ratio = sum(1 for m in money if m >= config.full_buy_money) / len(money)
        force_ratio = sum(
            1 for m in money if config.force_buy_money <= m < config.full_buy_money
        ) / len(money)

        if full_ratio >= config.full_buy_money_ratio or median_money >= config.full_buy_median_money:
            return BuyState.FULL_BUY
        if force_ratio >= config.force_buy_money_ratio or median_money >= config.force_buy_money:
            return BuyState.FORCE
        return BuyState.ECO

    if median_equip >= config.full_buy_equip_value:
        return BuyState.FULL_BUY
    if median_equip >= config.force_buy_equip_value:
        return BuyState.FORCE
    return BuyState.ECO


def build_team_economy(
    round_num: int,
    economies: dict[int, RoundEconomy],
    team: Team,
    config: EconomyConfig | None = None,
) -> TeamRoundEconomy:
    """Aggregate one team's RoundEconomy records for a round."""
    config = config or EconomyConfig()
    members = {pid: e for pid, e in economies.items() if e.team == team}
    equip_values = [e.equip_value for e in members.values()]
    median_equip = median(equip_values)

    return TeamRoundEconomy(
        round_num=round_num,
        team=team,
        avg_equip_value=mean(equip_values),
        median_equip_value=median_equip,
        avg_money=mean(e.money_start for e in members.values()),
        buy_state=classify_team_buy_state(members.values(), team, config),
        weapons_untracked=bool(members) and weapons_untracked(median_equip, config),
        player_economies=members,
    )
