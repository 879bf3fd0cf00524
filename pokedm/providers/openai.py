"""
OpenAI provider implementation using LangChain
"""

from typing import Any, Dict, List, Optional

from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI

from pokedm.utils.logger import get_logger

from .base import BaseProvider, ProviderResponse, message_text

logger = get_logger(__name__)


class OpenAIProvider(BaseProvider):
    """
    OpenAI API provider.

    Structured requests use native ``json_schema`` response format with the
    raw message kept, so the text ladder still has something to parse when
    the model ignores the schema.
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
            api_key=api_key,
            temperature=temperature,
            timeout=timeout,
            max_retries=0,  # retries are handled by retry_with_backoff
        )
        logger.info(f"Initialized OpenAI provider for {model_name}")

    async def _invoke(
        self,
        messages: List[BaseMessage],
        json_schema: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> ProviderResponse:
        llm = self.llm.bind(**kwargs) if kwargs else self.llm

        if json_schema is None:
            message = await llm.ainvoke(messages)
            return ProviderResponse(
                content=message_text(message),
                usage=getattr(message, "usage_metadata", None),
                model=self.model_name,
            )

        structured_llm = self.llm.with_structured_output(
            json_schema, method="json_schema", include_raw=True
        )
        result = await structured_llm.ainvoke(messages)
        raw = result.get("raw")
        parsed = result.get("parsed")
        if result.get("parsing_error") is not None:
            logger.warning(f"Structured parse failed for {self.model_name}: {result['parsing_error']}")
        return ProviderResponse(
            content=message_text(raw) if raw is not None else "",
            structured=parsed if isinstance(parsed, dict) else None,
            usage=getattr(raw, "usage_metadata", None),
            model=self.model_name,
        )
