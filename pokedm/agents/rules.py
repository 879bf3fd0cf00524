"""
Rules agent (roll intent): mechanics explanations and battle outcomes
"""

from typing import Any, Dict

from pokedm.schemas.agent import RulesOutput

from .base import BaseAgent
from .prompts import RULES_SYSTEM

FALLBACK_EXPLANATION = "The move plays out, but the result is unclear. Try describing your action again."


class RulesAgent(BaseAgent[RulesOutput]):
    name = "rules"
    system_prompt = RULES_SYSTEM
    output_model = RulesOutput

    def fallback(self, content: str) -> Dict[str, Any]:
        return {"explanation": content.strip() or FALLBACK_EXPLANATION}

    async def run(self, user_input: str, document: Dict[str, Any]) -> RulesOutput:
        output, _ = await self.generate(user_input, document)
        if output.battle_outcome and not document["session"]["battle_state"]["active"]:
            # Nothing to resolve
            output.battle_outcome = None
        return output
