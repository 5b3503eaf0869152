"""
Computer-controlled tactical agents.

Uses a fixed rule-based scorer for decision making.
"""

from .base import TacticalAgent, AgentConfig
from .planner import RuleBasedPlanner

__all__ = ["TacticalAgent", "AgentConfig", "RuleBasedPlanner"]
