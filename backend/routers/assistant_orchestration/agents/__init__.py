"""
Reasoning agents for the co-pilot pipeline.

Stages, in order:
- ImmediateAnalystAgent: fast-path check of the latest notes
- AnalystAgent: deep analysis with history and commitments
- ProfileDeviationAgent: behavior vs profile/history
- DecisionAgent: speak or stay silent
- ComposerAgent: message or action card text
"""

from .types import AgentResult
from .base import BaseAgent
from .immediate_analyst import ImmediateAnalystAgent
from .analyst import AnalystAgent
from .deviation import ProfileDeviationAgent
from .decision import DecisionAgent
from .composer import ComposerAgent

__all__ = [
    "AgentResult",
    "BaseAgent",
    "ImmediateAnalystAgent",
    "AnalystAgent",
    "ProfileDeviationAgent",
    "DecisionAgent",
    "ComposerAgent",
]
