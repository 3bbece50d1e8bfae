"""
Griefwatch - Behavioral analysis of CS2 replays

Derives behavioral judgments from a parsed match timeline: economic
griefing (refusing to buy, hoarding, donating weapons), round-start AFK
players, team kills and team damage.

Usage:
    from griefwatch import load_timeline, analyze_match

    timeline = load_timeline("match.json")
    report = analyze_match(timeline)

    for player in report.flagged_players:
        print(f"{player.player_name}: {player.score:.2f}")
"""

__version__ = "0.1.0"
__author__ = "Griefwatch Contributors"


def __getattr__(name):
    """Lazy import for heavy dependencies."""
    if name == "load_timeline":
        from griefwatch.core.timeline import load_timeline
        return load_timeline
    elif name == "MatchTimeline":
        from griefwatch.core.timeline import MatchTimeline
        return MatchTimeline
    elif name == "GriefwatchConfig":
        from griefwatch.core.config import GriefwatchConfig
        return GriefwatchConfig
    elif name == "load_config":
        from griefwatch.core.config import load_config
        return load_config
    elif name == "BehaviorEngine":
        from griefwatch.pipeline.orchestrator import BehaviorEngine
        return BehaviorEngine
    elif name == "MatchReport":
        from griefwatch.pipeline.orchestrator import MatchReport
        return MatchReport
    elif name == "analyze_match":
        from griefwatch.pipeline.orchestrator import analyze_match
        return analyze_match
    elif name == "detect_economy_griefing":
        from griefwatch.domains.griefing import detect_economy_griefing
        return detect_economy_griefing
    elif name == "detect_afk_players":
        from griefwatch.domains.afk import detect_afk_players
        return detect_afk_players
    raise AttributeError(f"module 'griefwatch' has no attribute '{name}'")


__all__ = [
    # Version
    "__version__",
    # Timeline
    "load_timeline",
    "MatchTimeline",
    # Config
    "GriefwatchConfig",
    "load_config",
    # Engine
    "BehaviorEngine",
    "MatchReport",
    "analyze_match",
    "detect_economy_griefing",
    "detect_afk_players",
]
