"""
Generic OpenAI-compatible provider (local servers, proxies, hosted clones)
"""

import json
from typing import Any, Dict, List, Optional

from langchain_core.messages import BaseMessage, SystemMessage
from langchain_openai import ChatOpenAI

from pokedm.utils.logger import get_logger

from .base import BaseProvider, ProviderResponse, message_text

logger = get_logger(__name__)

SCHEMA_INSTRUCTION = (
    "Respond with a single JSON object and nothing else. "
    "It must conform to this JSON Schema:\n{schema}"
)


class GenericProvider(BaseProvider):
    """
    Provider for any endpoint speaking the OpenAI chat API.

    The schema is always given to the model as an instruction. JSON mode is
    requested until the server rejects it; after that replies are plain text
    and left for the text ladder.
    """

    def __init__(
        self,
        api_base: str,
        api_key: str,
        model_name: str,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
    ):
        super().__init__(api_base, api_key, model_name, temperature, timeout)
        self.llm = ChatOpenAI(
            model=model_name,
            base_url=api_base,
            api_key=api_key or "not-needed",
            temperature=temperature,
            timeout=timeout,
            max_retries=0,
        )
        self.json_mode = True
        logger.info(f"Initialized generic provider for {model_name} at {api_base}")

    async def _invoke(
        self,
        messages: List[BaseMessage],
        json_schema: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> ProviderResponse:
        llm = self.llm.bind(**kwargs) if kwargs else self.llm
        if json_schema is None:
            message = await llm.ainvoke(messages)
        else:
            instruction = SCHEMA_INSTRUCTION.format(schema=json.dumps(json_schema, indent=2))
            messages = [*messages, SystemMessage(content=instruction)]
            message = await self._invoke_json(llm, messages)
        return ProviderResponse(
            content=message_text(message),
            usage=getattr(message, "usage_metadata", None),
            model=self.model_name,
        )

    async def _invoke_json(self, llm: Any, messages: List[BaseMessage]) -> Any:
        """Ask for JSON mode, dropping to plain text if the server rejects it"""
        if self.json_mode:
            try:
                return await llm.bind(response_format={"type": "json_object"}).ainvoke(messages)
            except Exception as e:
                lowered = str(e).lower()
                if "response_format" not in lowered and "response format" not in lowered:
                    raise
                logger.warning(f"{self.model_name} rejected JSON mode; using plain text")
                self.json_mode = False
        return await llm.ainvoke(messages)
