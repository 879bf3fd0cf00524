"""
Base class for agents that call the generation service
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Tuple, Type, TypeVar

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import ValidationError

from pokedm.providers.base import BaseProvider
from pokedm.providers.retry import RetryPolicy, retry_with_backoff
from pokedm.providers.structured import ParseStage, parse_structured_output
from pokedm.schemas.agent import AgentOutput
from pokedm.utils.logger import get_logger

from .context import render_context
from .prompts import USER_TEMPLATE

logger = get_logger(__name__)

OutputT = TypeVar("OutputT", bound=AgentOutput)


class BaseAgent(ABC, Generic[OutputT]):
    """
    One system prompt, one output model.

    ``generate`` never trusts the provider's structured object: it is
    validated against ``output_model`` and, failing that, the text reply is
    walked down the fallback ladder. The fallback object must itself be a
    valid ``output_model``.

    Raises GenerationError when the call fails after retries.
    """

    name = "agent"
    system_prompt = ""
    output_model: Type[OutputT]

    def __init__(
        self,
        provider: BaseProvider,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.provider = provider
        self.retry_policy = retry_policy
        self.sleep = sleep
        self.json_schema = self.output_model.model_json_schema()

    def build_messages(
        self, user_input: str, document: Dict[str, Any], extra: Optional[str] = None
    ) -> List[BaseMessage]:
        prompt = USER_TEMPLATE.format(context=render_context(document), user_input=user_input)
        if extra:
            prompt = f"{extra}\n\n{prompt}"
        return [SystemMessage(content=self.system_prompt), HumanMessage(content=prompt)]

    @abstractmethod
    def fallback(self, content: str) -> Dict[str, Any]:
        """Minimal valid output used when nothing parseable came back"""
        pass

    async def generate(
        self, user_input: str, document: Dict[str, Any], extra: Optional[str] = None
    ) -> Tuple[OutputT, ParseStage]:
        messages = self.build_messages(user_input, document, extra)
        response = await retry_with_backoff(
            lambda: self.provider.chat(messages, json_schema=self.json_schema),
            self.retry_policy,
            sleep=self.sleep,
        )

        if response.structured is not None:
            try:
                return self.output_model.model_validate(response.structured), "structured"
            except ValidationError as e:
                logger.warning(f"[{self.name}] Structured reply rejected: {e.error_count()} errors")

        fallback = self.fallback(response.content)
        parsed = parse_structured_output(response.content, self.json_schema, fallback)
        try:
            output = self.output_model.model_validate(parsed.data)
        except ValidationError as e:
            logger.warning(f"[{self.name}] Parsed reply rejected ({e.error_count()} errors); using fallback")
            return self.output_model.model_validate(fallback), "fallback"
        logger.debug(f"[{self.name}] Output parsed at stage '{parsed.stage}'")
        return output, parsed.stage
