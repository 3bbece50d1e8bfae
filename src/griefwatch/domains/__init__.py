"""
Griefwatch Domains - Behavioral analysis modules.

This module contains:
- economy: Round economy reconstruction and team buy-state classification
- griefing: Economy griefing detectors and the per-player aggregator
- afk: Round-start AFK tracking
- disconnects: Disconnect / reconnect tracking
- friendly_fire: Team kill and team damage detection
"""

__all__: list[str] = []
