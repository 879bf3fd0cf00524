"""
Design agent: proposes custom Pokémon for the custom dex
"""

from typing import Any, Dict

from pokedm.schemas.agent import DesignOutput

from .base import BaseAgent
from .prompts import DESIGN_SYSTEM

FALLBACK_EXPLANATION = "Let's sketch that idea a bit more. What type and region should it have?"


class DesignAgent(BaseAgent[DesignOutput]):
    name = "design"
    system_prompt = DESIGN_SYSTEM
    output_model = DesignOutput

    def fallback(self, content: str) -> Dict[str, Any]:
        return {"explanation": content.strip() or FALLBACK_EXPLANATION}

    async def run(self, user_input: str, document: Dict[str, Any]) -> DesignOutput:
        output, _ = await self.generate(user_input, document)
        return output
