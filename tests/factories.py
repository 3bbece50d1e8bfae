"""Builders for small synthetic timelines used across the test suite."""

from griefwatch.core.constants import Team
from griefwatch.core.timeline import (
    Frame,
    Loadout,
    MatchTimeline,
    PlayerSnapshot,
    Round,
    Vector3,
)
from griefwatch.domains.economy import BuyState, RoundEconomy, TeamRoundEconomy

TICK_RATE = 64


def make_player(
    player_id: int,
    name: str | None = None,
    team: Team = Team.CT,
    x: float = 0.0,
    y: float = 0.0,
    hp: float | None = 100.0,
    alive: bool = True,
    primary: str | None = None,
    grenades: tuple[str, ...] = (),
    helmet: bool = False,
    defuser: bool = False,
    money: float | None = None,
    position: bool = True,
    connected: bool = True,
) -> PlayerSnapshot:
    return PlayerSnapshot(
        player_id=player_id,
        name=name or f"player{player_id}",
        team=team,
        hp=hp,
        is_alive=alive,
        is_connected=connected,
        position=Vector3(x, y, 0.0) if position else None,
        loadout=Loadout(
            primary=primary,
            grenades=tuple(grenades),
            has_helmet=helmet,
            has_defuser=defuser,
        ),
        money=money,
    )


def make_frame(tick: int, players=(), events=(), tick_rate: float = TICK_RATE) -> Frame:
    return Frame(tick=tick, time=tick / tick_rate, players=tuple(players), events=tuple(events))


def make_timeline(frames, rounds, events=None, tick_rate: float = TICK_RATE) -> MatchTimeline:
    return MatchTimeline(frames=frames, rounds=rounds, tick_rate=tick_rate, events=events)


def make_round(
    number: int,
    start: int | None,
    freeze_end: int | None = None,
    end: int | None = None,
    winner: Team | None = None,
) -> Round:
    return Round(number=number, start_tick=start, freeze_end_tick=freeze_end, end_tick=end, winner=winner)


def make_economy(**overrides) -> RoundEconomy:
    """A quiet full-buy CT economy; override the fields a test cares about."""
    values = dict(
        round_num=5,
        player_id=1,
        player_name="suspect",
        team=Team.CT,
        money_start=4000,
        money_after_buy=400,
        equip_value=4500,
        equip_value_after_buy=4500,
        spent=3600,
        carried_over_value=0,
        damage_dealt=80.0,
        kills=1,
        time_to_death=None,
        time_alive=100.0,
        died_early=False,
        low_impact=False,
        has_helmet=True,
        has_defuser=True,
        primary_weapon="m4a1",
        previous_primary_weapon=None,
        grenades=(),
    )
    values.update(overrides)
    return RoundEconomy(**values)


def make_team_economy(
    team: Team = Team.CT,
    buy_state: BuyState = BuyState.FULL_BUY,
    median_equip_value: float = 4200.0,
    avg_money: float = 4000.0,
    round_num: int = 5,
) -> TeamRoundEconomy:
    return TeamRoundEconomy(
        round_num=round_num,
        team=team,
        avg_equip_value=median_equip_value,
        median_equip_value=median_equip_value,
        avg_money=avg_money,
        buy_state=buy_state,
        weapons_untracked=median_equip_value < 1500,
    )
