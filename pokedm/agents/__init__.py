"""
Agents wrapping the generation service: the intent router and one agent per
intent
"""

from .base import BaseAgent
from .design import DesignAgent
from .dispatch import AgentDispatcher
from .lore import LoreAgent
from .narrator import NarratorAgent, extract_choices
from .router import IntentRouter
from .rules import RulesAgent
from .state import StateAgent

__all__ = [
    "BaseAgent",
    "IntentRouter",
    "AgentDispatcher",
    "NarratorAgent",
    "RulesAgent",
    "StateAgent",
    "LoreAgent",
    "DesignAgent",
    "extract_choices",
]
