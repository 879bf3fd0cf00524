"""
Lore agent: answers about the world, grounded in canon-cache entries
"""

import json
import re
from typing import Any, Dict, List, Optional

from pokedm.schemas.agent import LoreOutput

from .base import BaseAgent
from .prompts import LORE_SYSTEM

FALLBACK_ANSWER = "Nobody around here seems to know much about that yet."

_WORD_RE = re.compile(r"[a-z][a-z0-9-]{2,}")


def lookup_keys(user_input: str) -> List[str]:
    """Candidate canon keys (lowercase names) mentioned in the input"""
    seen: List[str] = []
    for word in _WORD_RE.findall(user_input.lower()):
        if word not in seen:
            seen.append(word)
    return seen


class LoreAgent(BaseAgent[LoreOutput]):
    name = "lore"
    system_prompt = LORE_SYSTEM
    output_model = LoreOutput

    def fallback(self, content: str) -> Dict[str, Any]:
        return {"answer": content.strip() or FALLBACK_ANSWER}

    async def run(
        self,
        user_input: str,
        document: Dict[str, Any],
        references: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> LoreOutput:
        extra = None
        if references:
            extra = "Reference entries:\n" + json.dumps(references, ensure_ascii=False, indent=1)
        output, _ = await self.generate(user_input, document, extra=extra)
        return output
