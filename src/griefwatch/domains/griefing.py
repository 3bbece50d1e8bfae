"""
Economy Griefing Detection for CS2 Replays

Six independent detectors score one player's round economy against their
team's economy:

- RefuseToBuyWithMoney: had buy money, bought far less than the team
- PermaForceBuyAgainstTeamEconomy: forced while the team saved, then had no impact
- TrollBuys: internally inconsistent loadout
- WeaponDonationToEnemy: expensive loadout lost early without resistance
- HoardMoneyWhileTeamNeedsBuy: kept money while the team bought
- BuyThenSuicidePeek: spent force-buy money, died early with low damage

Detectors are pure functions. Every verdict carries the features it was
computed from and a human-readable reason built from the same inputs.
The aggregator rolls verdicts up per player across the match, boosting
repeated patterns over one-off anomalies.
"""

import logging
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any

from griefwatch.core.config import EconomyConfig
from griefwatch.core.constants import (
    HOARD_NORMALIZER,
    PISTOL_PRICE_CEILING,
    PLAYING_TEAMS,
    SPEND_NORMALIZER,
    Team,
)
from griefwatch.core.timeline import MatchTimeline, Round
from griefwatch.core.utils import clamp, format_money, mean, safe_divide
from griefwatch.domains.economy import (
    FREEZE_END_SAMPLE_SECONDS,
    BuyState,
    RoundEconomy,
    TeamRoundEconomy,
    build_team_economy,
    get_weapon_price,
    normalize_weapon_name,
    reconstruct_round_economy,
)

logger = logging.getLogger(__name__)

# A team whose buy state is eco and whose average money is below this is saving for real
ACTUAL_ECO_AVG_MONEY = 2000
# Team average money that still counts as a buy round when weapons are untracked
TEAM_BUY_AVG_MONEY = 2500
# Spending below this means the player barely bought
MINIMAL_SPEND = 1000
# Equipment below this is pistol + armor at best
PISTOL_TIER_EQUIP_VALUE = 1500
# Spending or money decrease at or above this means the player bought something
MEANINGFUL_SPEND = 2000
# Stricter hoarding floor when weapon identities are untracked
UNTRACKED_HOARD_MONEY = 5000
TROLL_MIN_EQUIP_VALUE = 1000
TROLL_MIN_GRENADES = 4


class GriefingEventType(str, Enum):
    """Suspicious economy patterns."""

    REFUSE_TO_BUY = "RefuseToBuyWithMoney"
    PERMA_FORCE_BUY = "PermaForceBuyAgainstTeamEconomy"
    TROLL_BUYS = "TrollBuys"
    WEAPON_DONATION = "WeaponDonationToEnemy"
    HOARD_MONEY = "HoardMoneyWhileTeamNeedsBuy"
    BUY_THEN_SUICIDE = "BuyThenSuicidePeek"


# ============================================================================
# Data structures
# ============================================================================


@dataclass(frozen=True)
class FeatureSummary:
    """Inputs a detector based its verdict on. Unused features stay None."""

    money_start: int | None = None
    money_after_buy: int | None = None
    equip_value: int | None = None
    team_median_equip: float | None = None
    team_buy_state: BuyState | None = None
    spent: int | None = None
    carried_over_value: int | None = None
    primary_weapon: str | None = None
    damage_dealt: float | None = None
    time_to_death: float | None = None
    has_helmet: bool | None = None
    has_defuser: bool | None = None
    grenades: tuple[str, ...] | None = None
    equip_ratio: float | None = None
    awp_save_suspected: bool | None = None

    def as_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        if "team_buy_state" in data:
            data["team_buy_state"] = data["team_buy_state"].value
        if "grenades" in data:
            data["grenades"] = list(data["grenades"])
        return data


@dataclass(frozen=True)
class GriefingEvent:
    """One detector's verdict for one player in one round."""

    round_num: int
    time: float  # Seconds, at the round's freeze end
    player_id: int
    player_name: str
    type: GriefingEventType
    score: float
    confidence: float
    features: FeatureSummary
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "round_num": self.round_num,
            "time": round(self.time, 3),
            "player_id": self.player_id,
            "player_name": self.player_name,
            "type": self.type.value,
            "score": round(self.score, 4),
            "confidence": round(self.confidence, 4),
            "features": self.features.as_dict(),
            "reason": self.reason,
        }


@dataclass
class PlayerGriefingResult:
    """Match-level griefing roll-up for one player."""

    player_id: int
    player_name: str
    team: Team
    events: list[GriefingEvent] = field(default_factory=list)
    score: float = 0.0
    confidence: float = 0.0
    flagged: bool = False
    per_round_score: dict[int, float] = field(default_factory=dict)

    @property
    def event_counts(self) -> dict[GriefingEventType, int]:
        return dict(Counter(e.type for e in self.events))

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "team": self.team.value,
            "score": round(self.score, 4),
            "confidence": round(self.confidence, 4),
            "flagged": self.flagged,
            "event_counts": {k.value: v for k, v in self.event_counts.items()},
            "per_round_score": {str(k): round(v, 4) for k, v in self.per_round_score.items()},
            "events": [e.to_dict() for e in self.events],
        }


@dataclass
class EconomyGriefingResult:
    """Output of the match-level economy pipeline."""

    by_player: dict[int, PlayerGriefingResult] = field(default_factory=dict)
    round_economies: dict[int, dict[int, RoundEconomy]] = field(default_factory=dict)
    team_economies: dict[int, dict[Team, TeamRoundEconomy]] = field(default_factory=dict)
    skipped_rounds: list[int] = field(default_factory=list)

    @property
    def events(self) -> list[GriefingEvent]:
        return [e for result in self.by_player.values() for e in result.events]


# ============================================================================
# Helpers
# ============================================================================


def _buy_phrase(buy_state: BuyState) -> str:
    if buy_state == BuyState.FULL_BUY:
        return "full bought"
    if buy_state == BuyState.FORCE:
        return "force bought"
    return "bought"


def _event(
    player: RoundEconomy,
    event_type: GriefingEventType,
    score: float,
    confidence: float,
    features: FeatureSummary,
    reason: str,
) -> GriefingEvent:
    return GriefingEvent(
        round_num=player.round_num,
        time=0.0,
        player_id=player.player_id,
        player_name=player.player_name,
        type=event_type,
        score=score,
        confidence=clamp(confidence, 0.0, 1.0),
        features=features,
        reason=reason,
    )


def is_awp_save(player: RoundEconomy, config: EconomyConfig) -> bool:
    """Player held an AWP last round and appears to be saving back up for one."""
    if normalize_weapon_name(player.previous_primary_weapon) != "awp":
        return False
    if player.money_start >= config.awp_price:
        return False
    return player.money_after_buy is not None and player.money_after_buy >= config.awp_save_money_threshold


# ============================================================================
# Detectors
# ============================================================================


def detect_refuse_to_buy(
    player: RoundEconomy, team: TeamRoundEconomy, config: EconomyConfig
) -> GriefingEvent | None:
    """Player had buy money but bought markedly less than the team."""
    if player.team != team.team:
        return None
    if player.money_start < config.min_money_to_buy:
        return None

    # Eco with little money is a real save; eco with money is untracked weapons
    if team.buy_state == BuyState.ECO and team.avg_money < ACTUAL_ECO_AVG_MONEY:
        return None

    equip_ratio = safe_divide(player.equip_value, team.median_equip_value, default=1.0)
    if equip_ratio >= config.low_equip_value_ratio:
        return None
    if player.carried_over_value > config.saved_rifle_value:
        return None

    weapons_untracked = team.median_equip_value < config.weapons_untracked_equip_value
    is_buy_context = team.buy_state in (BuyState.FULL_BUY, BuyState.FORCE) or (
        team.buy_state == BuyState.ECO and team.avg_money >= TEAM_BUY_AVG_MONEY and weapons_untracked
    )

    is_pistol_only = (
        not player.primary_weapon or get_weapon_price(player.primary_weapon) < PISTOL_PRICE_CEILING
    )
    very_low_equip = player.equip_value < PISTOL_TIER_EQUIP_VALUE
    has_money_but_low_equip = player.money_start >= config.min_force_buy_money and (
        is_pistol_only or very_low_equip
    )
    # Spend is only a counter-signal when weapons are observable
    spending_confirms = weapons_untracked or player.spent < MINIMAL_SPEND

    if not (is_buy_context and has_money_but_low_equip and spending_confirms):
        return None

    has_rifle_money = player.money_start >= config.min_rifle_buy_money
    money_multiplier = 1.5 if has_rifle_money else 1.2
    equip_multiplier = 1.3 if very_low_equip else 1.0
    score = config.weights.refuse_to_buy * money_multiplier * equip_multiplier
    confidence = min(1.0, score * 2.5)

    awp_save = is_awp_save(player, config)
    if awp_save:
        confidence *= config.awp_save_confidence_factor

    reason = (
        f"Had {format_money(player.money_start)} "
        f"(enough for {'rifle' if has_rifle_money else 'force buy'}), "
        f"team {_buy_phrase(team.buy_state)}, "
        f"but only bought {player.primary_weapon or 'pistol'} "
        f"({format_money(player.equip_value)} total) (round {player.round_num})."
    )
    if awp_save:
        reason += " Possibly saving for an AWP."

    return _event(
        player,
        GriefingEventType.REFUSE_TO_BUY,
        score,
        confidence,
        FeatureSummary(
            money_start=player.money_start,
            money_after_buy=player.money_after_buy,
            equip_value=player.equip_value,
            team_median_equip=team.median_equip_value,
            team_buy_state=team.buy_state,
            spent=player.spent,
            carried_over_value=player.carried_over_value,
            primary_weapon=player.primary_weapon,
            equip_ratio=round(equip_ratio, 4),
            awp_save_suspected=awp_save or None,
        ),
        reason,
    )


def detect_perma_force_buy(
    player: RoundEconomy, team: TeamRoundEconomy, config: EconomyConfig
) -> GriefingEvent | None:
    """Team saved, player forced anyway and achieved nothing."""
    if player.team != team.team:
        return None
    if team.buy_state != BuyState.ECO:
        return None
    if player.spent < config.force_buy_equip_value:
        return None
    if not (player.low_impact or player.died_early):
        return None

    score = config.weights.perma_force_buy * (player.spent / SPEND_NORMALIZER)
    outcome = "died early" if player.died_early else "dealt low damage"

    return _event(
        player,
        GriefingEventType.PERMA_FORCE_BUY,
        score,
        min(1.0, score * 1.5),
        FeatureSummary(
            money_start=player.money_start,
            spent=player.spent,
            team_buy_state=team.buy_state,
            damage_dealt=player.damage_dealt,
            time_to_death=player.time_to_death,
        ),
        f"Team eco, but spent {format_money(player.spent)} and {outcome} (round {player.round_num}).",
    )


def detect_troll_buys(
    player: RoundEconomy, team: TeamRoundEconomy, config: EconomyConfig
) -> GriefingEvent | None:
    """Loadout that contradicts itself."""
    if player.team != team.team:
        return None

    reasons = []
    if (
        player.money_start >= config.min_money_to_buy
        and not player.has_helmet
        and player.equip_value > TROLL_MIN_EQUIP_VALUE
    ):
        reasons.append("Bought weapon but no armor/helmet")
    if (
        player.team == Team.CT
        and team.buy_state == BuyState.FULL_BUY
        and player.money_start >= config.min_money_to_buy
        and not player.has_defuser
    ):
        reasons.append("CT full buy but no defuser kit")
    if (
        len(player.grenades) >= TROLL_MIN_GRENADES
        and not player.primary_weapon
        and player.equip_value > TROLL_MIN_EQUIP_VALUE
    ):
        reasons.append("Bought many grenades but no primary weapon")

    if not reasons:
        return None

    # Single-round loadout oddities are weak evidence
    score = config.weights.troll_buys * 0.5

    return _event(
        player,
        GriefingEventType.TROLL_BUYS,
        score,
        min(1.0, score * 1.2),
        FeatureSummary(
            money_start=player.money_start,
            equip_value=player.equip_value,
            has_helmet=player.has_helmet,
            has_defuser=player.has_defuser,
            primary_weapon=player.primary_weapon,
            grenades=player.grenades,
        ),
        f"{'; '.join(reasons)} (round {player.round_num}).",
    )


def detect_weapon_donation(
    player: RoundEconomy, team: TeamRoundEconomy, config: EconomyConfig
) -> GriefingEvent | None:
    """Expensive loadout handed to the enemy through an early, harmless death."""
    if player.team != team.team:
        return None
    if player.equip_value < config.high_equip_value_threshold:
        return None
    if not player.died_early or not player.low_impact:
        return None

    score = config.weights.weapon_donation * (player.equip_value / SPEND_NORMALIZER)

    return _event(
        player,
        GriefingEventType.WEAPON_DONATION,
        score,
        min(1.0, score * 2.0),
        FeatureSummary(
            equip_value=player.equip_value,
            damage_dealt=player.damage_dealt,
            time_to_death=player.time_to_death,
            primary_weapon=player.primary_weapon,
        ),
        f"Had {format_money(player.equip_value)} worth of equipment, died in "
        f"{player.time_to_death:.1f}s with {player.damage_dealt:.0f} damage (round {player.round_num}).",
    )


def detect_hoard_money(
    player: RoundEconomy, team: TeamRoundEconomy, config: EconomyConfig
) -> GriefingEvent | None:
    """Player sat on money while the team bought."""
    if player.team != team.team:
        return None

    money_after = player.money_after_buy
    if money_after is None or money_after < config.hoard_money_threshold:
        return None
    if team.buy_state == BuyState.ECO:
        return None
    if player.carried_over_value > config.saved_rifle_value:
        return None
    if player.equip_value >= config.force_buy_equip_value:
        return None

    money_decrease = player.money_start - money_after
    if player.spent >= MEANINGFUL_SPEND or money_decrease >= MEANINGFUL_SPEND:
        return None

    # Equipment is unreliable without weapon identities: demand a clear non-buy
    if team.median_equip_value < config.weapons_untracked_equip_value:
        if money_after < UNTRACKED_HOARD_MONEY:
            return None
        if money_decrease >= MINIMAL_SPEND or player.spent >= MINIMAL_SPEND:
            return None

    score = config.weights.hoard_money * (money_after / HOARD_NORMALIZER)

    return _event(
        player,
        GriefingEventType.HOARD_MONEY,
        score,
        min(1.0, score * 1.5),
        FeatureSummary(
            money_after_buy=money_after,
            equip_value=player.equip_value,
            team_buy_state=team.buy_state,
            team_median_equip=team.median_equip_value,
            carried_over_value=player.carried_over_value,
            spent=player.spent,
        ),
        f"Kept {format_money(money_after)} after buy while team "
        f"{_buy_phrase(team.buy_state)} (round {player.round_num}).",
    )


def detect_buy_then_suicide(
    player: RoundEconomy, team: TeamRoundEconomy, config: EconomyConfig
) -> GriefingEvent | None:
    """Spent force-buy money, then died early without trading."""
    if player.team != team.team:
        return None
    if player.spent < config.force_buy_equip_value:
        return None
    if not player.died_early or not player.low_impact:
        return None

    score = config.weights.buy_then_suicide * (player.spent / SPEND_NORMALIZER)

    return _event(
        player,
        GriefingEventType.BUY_THEN_SUICIDE,
        score,
        min(1.0, score * 1.8),
        FeatureSummary(
            spent=player.spent,
            damage_dealt=player.damage_dealt,
            time_to_death=player.time_to_death,
        ),
        f"Spent {format_money(player.spent)}, died in {player.time_to_death:.1f}s "
        f"with {player.damage_dealt:.0f} damage (round {player.round_num}).",
    )


Detector = Callable[[RoundEconomy, TeamRoundEconomy, EconomyConfig], "GriefingEvent | None"]

DETECTORS: tuple[Detector, ...] = (
    detect_refuse_to_buy,
    detect_perma_force_buy,
    detect_troll_buys,
    detect_weapon_donation,
    detect_hoard_money,
    detect_buy_then_suicide,
)


def run_detectors(
    player: RoundEconomy, team: TeamRoundEconomy, config: EconomyConfig
) -> list[GriefingEvent]:
    """Run the whole detector bank for one player in one round."""
    events = []
    for detector in DETECTORS:
        event = detector(player, team, config)
        if event is not None:
            events.append(event)
    return events


# ============================================================================
# Aggregation
# ============================================================================


def aggregate_griefing(
    events: Iterable[GriefingEvent],
    config: EconomyConfig | None = None,
    teams: dict[int, Team] | None = None,
) -> dict[int, PlayerGriefingResult]:
    """
    Roll griefing verdicts up per player across the match.

    Event types recurring at least min_repeat_count times for a player have
    score and confidence multiplied by 1 + repeat_multiplier * (count - 1).

    Args:
        events: Verdicts from the detector bank
        config: Economy config (repeat boost and flag threshold)
        teams: Player id to team, for labelling results

    Returns:
        Mapping of player id to PlayerGriefingResult, for players with events only
    """
    config = config or EconomyConfig()
    teams = teams or {}

    by_player: dict[int, list[GriefingEvent]] = defaultdict(list)
    for event in events:
        by_player[event.player_id].append(event)

    results: dict[int, PlayerGriefingResult] = {}
    for player_id, player_events in by_player.items():
        type_counts = Counter(e.type for e in player_events)

        adjusted = []
        for event in player_events:
            count = type_counts[event.type]
            if count >= config.min_repeat_count:
                multiplier = 1.0 + config.repeat_multiplier * (count - 1)
                event = replace(
                    event,
                    score=event.score * multiplier,
                    confidence=min(1.0, event.confidence * multiplier),
                )
            adjusted.append(event)

        per_round: dict[int, float] = {}
        for event in adjusted:
            per_round[event.round_num] = per_round.get(event.round_num, 0.0) + event.score

        score = sum(e.score for e in adjusted)
        results[player_id] = PlayerGriefingResult(
            player_id=player_id,
            player_name=adjusted[0].player_name,
            team=teams.get(player_id, Team.SPECTATOR),
            events=adjusted,
            score=score,
            confidence=clamp(mean(e.confidence for e in adjusted), 0.0, 1.0),
            flagged=score >= config.flag_score_threshold,
            per_round_score=dict(sorted(per_round.items())),
        )

    return results


# ============================================================================
# Match pipeline
# ============================================================================


def _round_is_valid(rnd: Round, timeline: MatchTimeline) -> bool:
    return timeline.round_window(rnd) is not None


def detect_economy_griefing(
    timeline: MatchTimeline, config: EconomyConfig | None = None
) -> EconomyGriefingResult:
    """
    Run economy reconstruction, buy-state classification, the detector bank and
    the aggregator over a whole match.

    Structurally invalid rounds are skipped; the previous-round handoff carries
    the last successfully reconstructed round.
    """
    config = config or EconomyConfig()
    result = EconomyGriefingResult()
    all_events: list[GriefingEvent] = []
    teams: dict[int, Team] = {}
    previous_economy: dict[int, RoundEconomy] | None = None

    for rnd in timeline.rounds:
        if not _round_is_valid(rnd, timeline):
            logger.warning(f"Skipping round {rnd.number}: no resolvable start tick")
            result.skipped_rounds.append(rnd.number)
            continue

        economies = reconstruct_round_economy(rnd, timeline, config, previous_economy)
        previous_economy = economies
        result.round_economies[rnd.number] = economies
        logger.debug(f"Round {rnd.number}: reconstructed {len(economies)} player economies")

        team_economies = {
            team: build_team_economy(rnd.number, economies, team, config) for team in PLAYING_TEAMS
        }
        result.team_economies[rnd.number] = team_economies

        window = timeline.round_window(rnd)
        sample_ticks = int(timeline.tick_rate * FREEZE_END_SAMPLE_SECONDS)
        freeze_frame = timeline.first_frame_between(
            window.freeze_end_tick, window.freeze_end_tick + sample_ticks
        )
        event_time = freeze_frame.time if freeze_frame is not None else 0.0

        for player_id, economy in economies.items():
            teams[player_id] = economy.team
            team_economy = team_economies.get(economy.team)
            if team_economy is None:
                continue
            for event in run_detectors(economy, team_economy, config):
                event = replace(event, time=event_time)
                all_events.append(event)
                logger.debug(
                    f"{event.type.value} for {event.player_name} in round {event.round_num} "
                    f"(confidence {event.confidence:.0%})"
                )

    result.by_player = aggregate_griefing(all_events, config, teams)
    flagged = sum(1 for r in result.by_player.values() if r.flagged)
    logger.info(
        f"Economy griefing: {len(all_events)} events across {len(result.by_player)} players, "
        f"{flagged} flagged"
    )
    return result
