"""
Narration agent: story prose plus up to three choices
"""

import re
from typing import Any, Dict, List

from pokedm.schemas.agent import NarrationOutput
from pokedm.schemas.session import ChoiceOption
from pokedm.utils.logger import get_logger

from .base import BaseAgent
from .prompts import NARRATOR_SYSTEM

logger = get_logger(__name__)

MAX_CHOICES = 3
FALLBACK_NARRATION = "The path ahead is quiet for a moment. What would you like to do next?"

DEFAULT_CHOICES = [
    {
        "option_id": "continue",
        "label": "Continue",
        "description": "Keep following the story where it leads.",
        "risk_level": "low",
    },
    {
        "option_id": "explore",
        "label": "Explore",
        "description": "Look around the area for something interesting.",
        "risk_level": "medium",
    },
]

_NUMBERED_RE = re.compile(r"^\s*(?:\d+[.)]|[-*])\s+(?:\*\*)?(.+?)(?:\*\*)?\s*$", re.MULTILINE)


def _option_id(label: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", label.lower()).strip("_")
    return slug[:40] or "option"


def extract_choices(narration: str) -> List[Dict[str, Any]]:
    """
    Pull numbered or bulleted options out of prose.

    Returns the Continue/Explore pair when the prose lists none.
    """
    choices: List[Dict[str, Any]] = []
    seen = set()
    for match in _NUMBERED_RE.finditer(narration):
        text = match.group(1).strip()
        label, _, description = text.partition(":")
        label = label.strip().strip("*").strip()
        option_id = _option_id(label)
        if not label or option_id in seen:
            continue
        seen.add(option_id)
        choices.append(
            {
                "option_id": option_id,
                "label": label,
                "description": description.strip() or label,
                "risk_level": "low" if not choices else "medium",
            }
        )
        if len(choices) == MAX_CHOICES:
            break
    return choices or [dict(choice) for choice in DEFAULT_CHOICES]


class NarratorAgent(BaseAgent[NarrationOutput]):
    name = "narrator"
    system_prompt = NARRATOR_SYSTEM
    output_model = NarrationOutput

    def fallback(self, content: str) -> Dict[str, Any]:
        # Plain prose is still usable narration
        return {"narration": content.strip() or FALLBACK_NARRATION, "choices": []}

    async def run(self, user_input: str, document: Dict[str, Any]) -> NarrationOutput:
        output, stage = await self.generate(user_input, document)
        if not output.choices:
            output.choices = [ChoiceOption.model_validate(c) for c in extract_choices(output.narration)]
            logger.debug(f"[Narrator] Choices extracted from prose ({stage} reply)")
        return output
