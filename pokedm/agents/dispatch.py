"""
Agent dispatch: one agent per intent, all returning an AgentResult
"""

from typing import Any, Dict, Optional

from pokedm.providers.base import BaseProvider
from pokedm.providers.retry import RetryPolicy
from pokedm.schemas.agent import AgentResult, Intent
from pokedm.utils.logger import get_logger

from .design import DesignAgent
from .lore import LoreAgent, lookup_keys
from .narrator import NarratorAgent
from .rules import RulesAgent
from .state import StateAgent

logger = get_logger(__name__)

LORE_LOOKUP_KINDS = ("pokemon", "locations", "moves")
MAX_LORE_KEYS = 6


class AgentDispatcher:
    """
    Routes an intent to its agent.

    Agent output is a proposal only; the orchestrator merges and validates
    whatever comes back.
    """

    def __init__(
        self,
        narrator: NarratorAgent,
        rules: RulesAgent,
        state: StateAgent,
        lore: LoreAgent,
        design: DesignAgent,
        canon_cache=None,
    ):
        self.narrator = narrator
        self.rules = rules
        self.state = state
        self.lore = lore
        self.design = design
        self.canon_cache = canon_cache

    @classmethod
    def from_provider(
        cls,
        provider: BaseProvider,
        canon_cache=None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "AgentDispatcher":
        return cls(
            narrator=NarratorAgent(provider, retry_policy),
            rules=RulesAgent(provider, retry_policy),
            state=StateAgent(provider, retry_policy),
            lore=LoreAgent(provider, retry_policy),
            design=DesignAgent(provider, retry_policy),
            canon_cache=canon_cache,
        )

    async def dispatch(self, intent: Intent, user_input: str, document: Dict[str, Any]) -> AgentResult:
        logger.info(f"[Dispatch] Running {intent} agent")

        if intent == "roll":
            rules = await self.rules.run(user_input, document)
            return AgentResult(
                intent=intent,
                narration=rules.explanation,
                state_update=rules.state_update,
                battle_outcome=rules.battle_outcome,
            )
        if intent == "state":
            state = await self.state.run(user_input, document)
            return AgentResult(intent=intent, narration=state.summary, state_update=state.state_update)
        if intent == "lore":
            references = await self._lore_references(user_input, document)
            lore = await self.lore.run(user_input, document, references)
            return AgentResult(intent=intent, narration=lore.answer)
        if intent == "design":
            design = await self.design.run(user_input, document)
            return AgentResult(
                intent=intent, narration=design.explanation, custom_pokemon=design.custom_pokemon
            )

        narration = await self.narrator.run(user_input, document)
        return AgentResult(
            intent="narration",
            narration=narration.narration,
            choices=narration.choices,
            state_update=narration.state_update,
        )

    async def _lore_references(
        self, user_input: str, document: Dict[str, Any]
    ) -> Dict[str, Dict[str, Any]]:
        if self.canon_cache is None:
            return {}
        session_id = document["session"]["session_id"]
        keys = lookup_keys(user_input)[:MAX_LORE_KEYS]
        references: Dict[str, Dict[str, Any]] = {}
        for kind in LORE_LOOKUP_KINDS:
            for key, data in (await self.canon_cache.lookup_many(session_id, kind, keys)).items():
                references[f"{kind}:{key}"] = data
        if references:
            logger.debug(f"[Dispatch] Lore references: {sorted(references)}")
        return references
