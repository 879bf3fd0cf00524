"""
Provider factory for creating LLM providers based on configuration
"""

from typing import Optional

from ..config import settings
from .base import BaseProvider
from .generic import GenericProvider
from .openai import OpenAIProvider


def create_provider(model_name: Optional[str] = None) -> BaseProvider:
    """Create a provider instance based on configuration"""
    kwargs = dict(
        api_base=settings.openai_api_base,
        api_key=settings.openai_api_key,
        model_name=model_name or settings.model_name,
        temperature=settings.temperature,
        timeout=settings.request_timeout,
    )
    if settings.model_provider == "openai":
        return OpenAIProvider(**kwargs)
    elif settings.model_provider == "generic":
        return GenericProvider(**kwargs)
    else:
        raise ValueError(f"Unsupported provider: {settings.model_provider}")
