"""
Intent router: classify free text into one of the five agent intents
"""

from typing import Any, Dict

from pokedm.schemas.agent import DEFAULT_INTENT, IntentClassification
from pokedm.utils.logger import get_logger

from .base import BaseAgent
from .prompts import ROUTER_SYSTEM

logger = get_logger(__name__)


class IntentRouter(BaseAgent[IntentClassification]):
    """
    Fails open: any error from the generation call, or an unusable reply,
    classifies as ``narration``.
    """

    name = "router"
    system_prompt = ROUTER_SYSTEM
    output_model = IntentClassification

    def fallback(self, content: str) -> Dict[str, Any]:
        return {"intent": DEFAULT_INTENT, "confidence": 0.0, "reasoning": "fallback"}

    async def classify(self, user_input: str, document: Dict[str, Any]) -> IntentClassification:
        try:
            classification, stage = await self.generate(user_input, document)
        except Exception as e:
            logger.warning(f"[Router] Classification failed, defaulting to {DEFAULT_INTENT}: {e}")
            return IntentClassification.model_validate(self.fallback(""))
        logger.info(
            f"[Router] Intent '{classification.intent}' "
            f"(confidence {classification.confidence:.2f}, stage {stage})"
        )
        return classification
