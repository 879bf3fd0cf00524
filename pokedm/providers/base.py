"""
Abstract base class for LLM providers using LangChain
"""

import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from langchain_core.messages import BaseMessage, HumanMessage
from pydantic import BaseModel

from pokedm.errors import GenerationError
from pokedm.providers.retry import classify_provider_error
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)


class ProviderResponse(BaseModel):
    """Response from an LLM provider"""

    content: str
    structured: Optional[Dict[str, Any]] = None
    usage: Optional[Dict[str, Any]] = None
    model: Optional[str] = None


class BaseProvider(ABC):
    """
    Abstract base class for LLM providers.

    Subclasses implement ``_invoke``; ``chat`` adds logging and turns any
    provider exception into a classified ``GenerationError``.
    """

    def __init__(
        self,
        api_base: str,
        api_key: str,
        model_name: str,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
    ):
        self.api_base = api_base
        self.api_key = api_key
        self.model_name = model_name
        self.temperature = temperature
        self.timeout = timeout
        self.llm: Any = None  # set by subclasses

    def _log_llm_call(
        self, messages: List[BaseMessage], json_schema: Optional[Dict[str, Any]] = None
    ) -> str:
        """Log call details and return a call ID for correlation"""
        call_id = str(uuid.uuid4())[:8]
        total_chars = sum(len(str(msg.content)) for msg in messages)
        logger.info(
            f"[LLM] Call started: {self.model_name}",
            extra={
                "component": "LLM",
                "call_id": call_id,
                "model": self.model_name,
                "provider": self.__class__.__name__,
                "message_count": len(messages),
                "total_input_chars": total_chars,
                "structured": json_schema is not None,
            },
        )
        return call_id

    def _log_llm_response(
        self,
        call_id: str,
        response: Optional[ProviderResponse],
        duration_ms: float,
        error: Optional[Exception] = None,
    ) -> None:
        if error:
            logger.error(
                f"[LLM] Call failed: {self.model_name} ({duration_ms}ms): {error}",
                extra={
                    "component": "LLM",
                    "call_id": call_id,
                    "model": self.model_name,
                    "duration_ms": duration_ms,
                    "error_type": type(error).__name__,
                },
            )
            return
        logger.info(
            f"[LLM] Call completed: {self.model_name} ({duration_ms}ms)",
            extra={
                "component": "LLM",
                "call_id": call_id,
                "model": self.model_name,
                "duration_ms": duration_ms,
                "response_chars": len(response.content) if response else 0,
                "structured": bool(response and response.structured is not None),
                "usage": response.usage if response else None,
            },
        )
        if response:
            logger.debug(f"[LLM] Response preview: {response.content[:300]}")

    @abstractmethod
    async def _invoke(
        self,
        messages: List[BaseMessage],
        json_schema: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> ProviderResponse:
        """Provider-specific call"""

    async def chat(
        self,
        messages: List[BaseMessage],
        json_schema: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> ProviderResponse:
        """
        Send a chat request to the LLM provider

        Args:
            messages: LangChain message objects
            json_schema: Expected output shape; providers request structured
                output with it, but callers must not rely on it being honored
            **kwargs: Provider-specific parameters (temperature, max_tokens)

        Returns:
            ProviderResponse with text content and, when available, the
            structured object

        Raises:
            GenerationError: classified as retryable or not
        """
        call_id = self._log_llm_call(messages, json_schema)
        start = time.monotonic()
        try:
            response = await self._invoke(messages, json_schema=json_schema, **kwargs)
        except GenerationError as e:
            self._log_llm_response(call_id, None, round((time.monotonic() - start) * 1000), e)
            raise
        except Exception as e:
            self._log_llm_response(call_id, None, round((time.monotonic() - start) * 1000), e)
            raise classify_provider_error(e, model=self.model_name) from e
        self._log_llm_response(call_id, response, round((time.monotonic() - start) * 1000))
        return response

    async def health_check(self) -> bool:
        """Check the provider is reachable"""
        try:
            await self._invoke([HumanMessage(content="Hello")])
            return True
        except Exception as e:
            logger.warning(f"Health check failed for {self.model_name}: {e}")
            return False


def message_text(message: Any) -> str:
    """Text content of a LangChain message, flattening content blocks"""
    content = getattr(message, "content", message)
    if isinstance(content, list):
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block) for block in content
        )
    return str(content)
