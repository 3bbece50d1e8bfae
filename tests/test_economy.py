"""Tests for round economy reconstruction and team buy-state classification."""

import pytest

from griefwatch.core.config import EconomyConfig
from griefwatch.core.constants import Team
from griefwatch.core.timeline import DamageEvent, KillEvent
from griefwatch.domains.economy import (
    BuyState,
    build_team_economy,
    calculate_equipment_value,
    calculate_loss_bonus,
    calculate_loss_streak,
    calculate_starting_money,
    classify_team_buy_state,
    get_weapon_price,
    is_pistol_round,
    normalize_weapon_name,
    reconstruct_round_economy,
)

from factories import (
    make_economy,
    make_frame,
    make_player,
    make_round,
    make_timeline,
)

FREEZE_END = 640
AFTER_BUY = FREEZE_END + 5 * 64
ROUND_END = 6400


def _round_timeline(freeze_players, after_players=None, events=None, rounds=None, extra_frames=()):
    frames = [make_frame(FREEZE_END, freeze_players)]
    if after_players is not None:
        frames.append(make_frame(AFTER_BUY, after_players))
    frames.extend(extra_frames)
    rounds = rounds or [make_round(1, start=0, freeze_end=FREEZE_END, end=ROUND_END)]
    return make_timeline(frames, rounds, events=events)


class TestWeaponPrices:
    """Tests for weapon identifier normalization and prices."""

    def test_normalization(self):
        """Prefixes, case and aliases are normalized."""
        assert normalize_weapon_name("weapon_AK47") == "ak47"
        assert normalize_weapon_name("item_defuser") == "defuser"
        assert normalize_weapon_name("galilar") == "galil"
        assert normalize_weapon_name("weapon_cz75a") == "cz75"
        assert normalize_weapon_name("") is None
        assert normalize_weapon_name(None) is None

    def test_known_and_unknown_prices(self):
        """Known weapons price from the table; unknown ones price at 0."""
        assert get_weapon_price("awp") == 4750
        assert get_weapon_price("weapon_galilar") == 1800
        assert get_weapon_price("laser_rifle") == 0
        assert get_weapon_price(None) == 0


class TestEquipmentValue:
    """Tests for loadout valuation."""

    def test_rifle_with_armor(self):
        """Living players get armor assumed."""
        assert calculate_equipment_value(make_player(1, primary="ak47")) == 2700 + 650

    def test_helmet(self):
        """Helmet adds kevlar and helmet."""
        assert calculate_equipment_value(make_player(1, primary="ak47", helmet=True)) == 2700 + 650 + 350

    def test_defuser_counts_for_ct_only(self):
        """Defuse kits are only valued on the defending side."""
        ct = make_player(1, team=Team.CT, defuser=True)
        t = make_player(2, team=Team.T, defuser=True)
        assert calculate_equipment_value(ct) == 650 + 400
        assert calculate_equipment_value(t) == 650

    def test_dead_player_no_armor(self):
        """No armor is assumed at 0 hp."""
        dead = make_player(1, hp=0, grenades=("flashbang", "smokegrenade"))
        assert calculate_equipment_value(dead) == 200 + 300

    def test_missing_hp_no_armor(self):
        """Unobserved hp does not imply armor."""
        assert calculate_equipment_value(make_player(1, hp=None)) == 0


class TestStartingMoney:
    """Tests for the deterministic money model."""

    def test_pistol_round(self):
        """Round 1 always starts at $800."""
        assert calculate_starting_money(1, previous_round_won=False, loss_streak=0) == 800

    def test_second_half_pistol_round(self):
        """With rounds_per_half set the first round of the second half is a pistol round."""
        assert is_pistol_round(13, rounds_per_half=12)
        assert not is_pistol_round(13)
        assert not is_pistol_round(25, rounds_per_half=12)
        assert calculate_starting_money(13, True, 0, 5000, rounds_per_half=12) == 800

    def test_win_without_history(self):
        """Flat leftover plus win bonus when previous money is unknown."""
        assert calculate_starting_money(2, previous_round_won=True, loss_streak=0) == 1500 + 3250

    def test_win_with_history(self):
        """After a win 70% of previous money is assumed spent."""
        assert calculate_starting_money(2, True, 0, previous_round_money=2000) == 600 + 3250

    def test_loss_without_history(self):
        """Flat leftover plus first loss bonus."""
        assert calculate_starting_money(2, previous_round_won=False, loss_streak=1) == 750 + 1400

    def test_loss_streak_with_history(self):
        """After a loss 50% of previous money is assumed spent."""
        assert calculate_starting_money(4, False, 3, previous_round_money=1000) == 500 + 2400

    def test_loss_bonus_ladder(self):
        """The loss bonus grows by $500 per loss and caps at $3400."""
        assert calculate_loss_bonus(0) == 1400
        assert calculate_loss_bonus(1) == 1400
        assert calculate_loss_bonus(2) == 1900
        assert calculate_loss_bonus(5) == 3400
        assert calculate_loss_bonus(9) == 3400

    def test_money_never_negative(self):
        """Absurd previous money cannot drive the estimate negative."""
        assert calculate_starting_money(3, False, 1, previous_round_money=-500) >= 0


class TestLossStreak:
    """Tests for the backward loss-streak walk."""

    def _rounds(self, winners):
        return [make_round(i + 1, start=i * 1000, winner=w) for i, w in enumerate(winners)]

    def test_streak_stops_at_round_one(self):
        """Three straight losses from the start."""
        rounds = self._rounds([Team.T, Team.T, Team.T, Team.CT])
        assert calculate_loss_streak(4, rounds, Team.CT) == 3

    def test_streak_stops_at_win(self):
        """The team won the previous round."""
        rounds = self._rounds([Team.T, Team.T, Team.T, Team.CT])
        assert calculate_loss_streak(4, rounds, Team.T) == 0
        assert calculate_loss_streak(5, rounds, Team.CT) == 0

    def test_streak_stops_at_unknown_winner(self):
        """A round without a winner ends the walk."""
        rounds = self._rounds([Team.T, None, Team.T])
        assert calculate_loss_streak(4, rounds, Team.CT) == 1

    def test_streak_stops_at_half(self):
        """The walk does not cross the half boundary."""
        rounds = self._rounds([Team.T, Team.T, Team.T, Team.CT])
        assert calculate_loss_streak(4, rounds, Team.CT, rounds_per_half=2) == 1


class TestReconstruction:
    """Tests for per-player RoundEconomy reconstruction."""

    def test_pistol_round_buy(self):
        """Pistol round: $800 start, spent derived from equipment delta."""
        timeline = _round_timeline(
            [make_player(1)],
            [make_player(1, primary="mp9")],
        )
        economy = reconstruct_round_economy(timeline.rounds[0], timeline)[1]
        assert economy.money_start == 800
        assert economy.equip_value == 650
        assert economy.equip_value_after_buy == 1250 + 650
        assert economy.spent == 1250
        assert economy.money_after_buy == 0

    def test_lost_equipment_spent_not_negative(self):
        """Losing equipment between samples yields zero spend."""
        timeline = _round_timeline(
            [make_player(1, primary="ak47", helmet=True)],
            [make_player(1)],
        )
        economy = reconstruct_round_economy(timeline.rounds[0], timeline)[1]
        assert economy.spent == 0
        assert economy.equip_value >= 0
        assert economy.money_after_buy == economy.money_start

    def test_missing_after_buy_sample(self):
        """Without an after-buy frame nothing is fabricated."""
        timeline = _round_timeline([make_player(1)])
        economy = reconstruct_round_economy(timeline.rounds[0], timeline)[1]
        assert economy.equip_value_after_buy is None
        assert economy.money_after_buy is None
        assert economy.spent == 0

    def test_missing_freeze_end_sample(self):
        """Without a freeze-end frame the round has no economies."""
        late = make_frame(FREEZE_END + 3 * 64, [make_player(1)])
        timeline = make_timeline(
            [late], [make_round(1, start=0, freeze_end=FREEZE_END, end=ROUND_END)]
        )
        assert reconstruct_round_economy(timeline.rounds[0], timeline) == {}

    def test_late_joiner_and_spectators_absent(self):
        """Players missing at freeze end and spectators are not in the map."""
        timeline = _round_timeline(
            [make_player(1), make_player(9, team=Team.SPECTATOR)],
            [make_player(1), make_player(2)],
        )
        economies = reconstruct_round_economy(timeline.rounds[0], timeline)
        assert set(economies) == {1}

    def test_invalid_round_is_empty(self):
        """A round without a start tick reconstructs to nothing."""
        timeline = _round_timeline([make_player(1)], rounds=[make_round(1, start=None)])
        assert reconstruct_round_economy(timeline.rounds[0], timeline) == {}

    def test_observed_money_supersedes_model(self):
        """Snapshot money wins over the reconstructed model."""
        timeline = _round_timeline(
            [make_player(1, money=4100)],
            [make_player(1, primary="ak47", money=1000)],
        )
        economy = reconstruct_round_economy(timeline.rounds[0], timeline)[1]
        assert economy.money_start == 4100
        assert economy.money_after_buy == 1000
        assert economy.spent == 3100

    def test_observed_money_ignored_when_disabled(self):
        """The model is used when observed money is switched off."""
        timeline = _round_timeline(
            [make_player(1, money=4100)],
            [make_player(1, money=4100)],
        )
        config = EconomyConfig(prefer_observed_money=False)
        economy = reconstruct_round_economy(timeline.rounds[0], timeline, config)[1]
        assert economy.money_start == 800

    def test_previous_round_money_and_carry_over(self):
        """Previous economy feeds leftover money and carried-over equipment."""
        rounds = [
            make_round(1, start=0, freeze_end=10, end=500, winner=Team.CT),
            make_round(2, start=600, freeze_end=FREEZE_END, end=ROUND_END),
        ]
        timeline = _round_timeline(
            [make_player(1, primary="weapon_ak47")],
            [make_player(1, primary="weapon_ak47")],
            rounds=rounds,
        )
        previous = {1: make_economy(round_num=1, money_after_buy=2000, primary_weapon="ak47")}
        economy = reconstruct_round_economy(timeline.rounds[1], timeline, previous_economy=previous)[1]
        assert economy.money_start == 600 + 3250
        assert economy.carried_over_value == 2700
        assert economy.previous_primary_weapon == "ak47"

    def test_different_primary_not_carried(self):
        """A new primary is not carried-over equipment."""
        rounds = [
            make_round(1, start=0, freeze_end=10, end=500, winner=Team.T),
            make_round(2, start=600, freeze_end=FREEZE_END, end=ROUND_END),
        ]
        timeline = _round_timeline([make_player(1, primary="m4a1")], rounds=rounds)
        previous = {1: make_economy(round_num=1, primary_weapon="ak47", money_after_buy=None)}
        economy = reconstruct_round_economy(timeline.rounds[1], timeline, previous_economy=previous)[1]
        assert economy.carried_over_value == 0
        assert economy.money_start == 750 + 1400

    def test_damage_kills_and_death(self):
        """Damage, kills and time to death are attributed by name."""
        events = [
            DamageEvent(tick=700, attacker_name="player1", victim_name="player2", damage=50),
            DamageEvent(tick=710, attacker_name="player1", victim_name="player2", damage=None),
            KillEvent(tick=800, attacker_name="player1", victim_name="player2"),
            KillEvent(tick=ROUND_END + 10, attacker_name="player1", victim_name="player3"),
            DamageEvent(tick=720, attacker_name="stranger", victim_name="player1", damage=30),
        ]
        timeline = _round_timeline(
            [make_player(1, team=Team.CT), make_player(2, team=Team.T)],
            events=events,
        )
        economies = reconstruct_round_economy(timeline.rounds[0], timeline)

        shooter, victim = economies[1], economies[2]
        assert shooter.damage_dealt == 50
        assert shooter.kills == 1
        assert shooter.time_to_death is None
        assert shooter.time_alive == pytest.approx((ROUND_END - FREEZE_END) / 64)
        assert shooter.low_impact is False

        assert victim.time_to_death == pytest.approx(2.5)
        assert victim.died_early is True
        assert victim.low_impact is True
        assert victim.time_alive == pytest.approx(2.5)

    def test_nan_money_falls_back_to_model(self):
        """A NaN money reading is unobserved, not an error."""
        timeline = _round_timeline(
            [make_player(1, money=float("nan"))],
            [make_player(1, primary="mp9", money=float("nan"))],
        )
        economy = reconstruct_round_economy(timeline.rounds[0], timeline)[1]
        assert economy.money_start == 800
        assert economy.money_after_buy == 0
        assert economy.spent == 1250

    def test_negative_money_is_unobserved(self):
        """Negative money never becomes the starting money."""
        timeline = _round_timeline(
            [make_player(1, money=-500)],
            [make_player(1, money=-500)],
        )
        economy = reconstruct_round_economy(timeline.rounds[0], timeline)[1]
        assert economy.money_start == 800
        assert economy.money_after_buy == 800
        assert economy.spent == 0

    def test_nan_damage_is_ignored(self):
        """Non-finite damage adds nothing and keeps the player low impact."""
        events = [
            DamageEvent(tick=700, attacker_name="player1", victim_name="player2", damage=float("nan")),
            DamageEvent(tick=705, attacker_name="player1", victim_name="player2", damage=-40),
        ]
        timeline = _round_timeline(
            [make_player(1, team=Team.CT), make_player(2, team=Team.T)],
            events=events,
        )
        shooter = reconstruct_round_economy(timeline.rounds[0], timeline)[1]
        assert shooter.damage_dealt == 0
        assert shooter.low_impact is True

    def test_nan_hp_no_armor(self):
        """Non-finite hp does not imply armor."""
        assert calculate_equipment_value(make_player(1, hp=float("nan"))) == 0


class TestTeamBuyState:
    """Tests for the dual-path team classifier."""

    def _team(self, equip_values, money_values, team=Team.CT):
        return [
            make_economy(player_id=i, team=team, equip_value=e, money_start=m)
            for i, (e, m) in enumerate(zip(equip_values, money_values))
        ]

    def test_full_buy_from_equipment(self):
        """Median equipment of $4200 is a full buy."""
        team = self._team([4500, 4500, 4200, 4000, 600], [4000] * 5)
        assert classify_team_buy_state(team, Team.CT) == BuyState.FULL_BUY

    def test_force_and_eco_from_equipment(self):
        """Tracked equipment between thresholds."""
        assert classify_team_buy_state(self._team([2500] * 5, [800] * 5), Team.CT) == BuyState.FORCE
        assert classify_team_buy_state(self._team([1600] * 5, [800] * 5), Team.CT) == BuyState.ECO

    def test_untracked_weapons_use_money(self):
        """Implausibly low equipment falls back to money thresholds."""
        assert classify_team_buy_state(self._team([650] * 5, [4000] * 5), Team.CT) == BuyState.FULL_BUY
        assert classify_team_buy_state(self._team([650] * 5, [2500] * 5), Team.CT) == BuyState.FORCE
        assert classify_team_buy_state(self._team([650] * 5, [800] * 5), Team.CT) == BuyState.ECO

    def test_only_own_team_counts(self):
        """Other team's economies are ignored; an empty team is eco."""
        enemies = self._team([5000] * 5, [5000] * 5, team=Team.T)
        assert classify_team_buy_state(enemies, Team.CT) == BuyState.ECO

    def test_build_team_economy(self):
        """Team aggregates cover members of that team only."""
        economies = {
            1: make_economy(player_id=1, team=Team.CT, equip_value=4000, money_start=3000),
            2: make_economy(player_id=2, team=Team.CT, equip_value=5000, money_start=5000),
            3: make_economy(player_id=3, team=Team.T, equip_value=100, money_start=100),
        }
        team = build_team_economy(5, economies, Team.CT)
        assert set(team.player_economies) == {1, 2}
        assert team.avg_equip_value == 4500
        assert team.median_equip_value == 4500
        assert team.avg_money == 4000
        assert team.buy_state == BuyState.FULL_BUY
        assert team.weapons_untracked is False
