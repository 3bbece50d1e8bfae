"""
Griefwatch Pipeline - Match analysis orchestration.

This module runs every detector family over a loaded timeline and
collects the results into a MatchReport.
"""

from griefwatch.pipeline.orchestrator import BehaviorEngine, MatchReport, analyze_match

__all__ = ["BehaviorEngine", "MatchReport", "analyze_match"]
