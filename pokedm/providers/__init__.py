"""
LLM provider implementations and the generation-call plumbing around them
"""

from .base import BaseProvider, ProviderResponse
from .factory import create_provider
from .generic import GenericProvider
from .openai import OpenAIProvider
from .retry import RetryPolicy, classify_provider_error, retry_with_backoff
from .structured import StructuredParse, parse_structured_output

__all__ = [
    "BaseProvider",
    "ProviderResponse",
    "OpenAIProvider",
    "GenericProvider",
    "create_provider",
    "RetryPolicy",
    "classify_provider_error",
    "retry_with_backoff",
    "StructuredParse",
    "parse_structured_output",
]
