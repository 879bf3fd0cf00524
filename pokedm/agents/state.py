"""
State agent: bookkeeping requests become partial updates
"""

from typing import Any, Dict

from pokedm.schemas.agent import StateOutput

from .base import BaseAgent
from .prompts import STATE_SYSTEM


class StateAgent(BaseAgent[StateOutput]):
    name = "state"
    system_prompt = STATE_SYSTEM
    output_model = StateOutput

    def fallback(self, content: str) -> Dict[str, Any]:
        return {"summary": "No changes were made.", "state_update": {}}

    async def run(self, user_input: str, document: Dict[str, Any]) -> StateOutput:
        output, _ = await self.generate(user_input, document)
        return output
