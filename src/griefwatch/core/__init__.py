"""
Griefwatch Core - Foundation modules for behavioral analysis.

This module contains the fundamental components:
- constants: Team labels, prices and CS2 money rules
- config: Engine configuration and logging setup
- utils: Number guards and small numeric helpers
- timeline: The replay model and the timeline accessor
"""

from griefwatch.core.config import (
    AFKConfig,
    DetectorWeights,
    EconomyConfig,
    FriendlyFireConfig,
    GriefwatchConfig,
    load_config,
)
from griefwatch.core.constants import CS2_TICK_RATE, WEAPON_PRICES, Team
from griefwatch.core.timeline import (
    ChatEvent,
    DamageEvent,
    DefuseEvent,
    Event,
    Frame,
    KillEvent,
    Loadout,
    MatchTimeline,
    PlantEvent,
    PlayerSnapshot,
    Round,
    RoundWindow,
    ThrowEvent,
    TimelineFormatError,
    Vector3,
    WeaponFireEvent,
    load_timeline,
    timeline_from_dict,
)

__all__ = [
    # Constants
    "CS2_TICK_RATE",
    "WEAPON_PRICES",
    "Team",
    # Config
    "AFKConfig",
    "DetectorWeights",
    "EconomyConfig",
    "FriendlyFireConfig",
    "GriefwatchConfig",
    "load_config",
    # Timeline
    "ChatEvent",
    "DamageEvent",
    "DefuseEvent",
    "Event",
    "Frame",
    "KillEvent",
    "Loadout",
    "MatchTimeline",
    "PlantEvent",
    "PlayerSnapshot",
    "Round",
    "RoundWindow",
    "ThrowEvent",
    "TimelineFormatError",
    "Vector3",
    "WeaponFireEvent",
    "load_timeline",
    "timeline_from_dict",
]
