"""
Error classification and retry with exponential backoff for generation calls
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pokedm.config import settings
from pokedm.errors import GenerationError
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RATE_LIMIT_INDICATORS = ("rate limit", "rate_limit", "too many requests", "quota")
MODEL_UNAVAILABLE_INDICATORS = (
    "not found",
    "not supported",
    "does not exist",
    "json_schema",
    "response format",
    "response_format",
)
TRANSIENT_INDICATORS = (
    "timeout",
    "timed out",
    "network",
    "connection",
    "econnreset",
    "etimedout",
    "eai_again",
    "temporary",
    "temporarily",
    "overloaded",
    "503",
    "502",
    "504",
)
TRANSIENT_STATUS_CODES = (500, 502, 503, 504)

_RETRY_IN_RE = re.compile(r"retry in ([\d.]+)\s*s", re.IGNORECASE)


def _status_code(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "response", None), "status_code", None)
    return status if isinstance(status, int) else None


def parse_retry_after(exc: BaseException) -> Optional[float]:
    """Provider-suggested delay in seconds, from the message or a retry-after header"""
    match = _RETRY_IN_RE.search(str(exc))
    if match:
        return float(match.group(1))
    headers = getattr(getattr(exc, "response", None), "headers", None)
    if headers is not None:
        value = headers.get("retry-after")
        if value:
            try:
                return float(value)
            except ValueError:
                return None
    return None


def classify_provider_error(exc: BaseException, model: Optional[str] = None) -> GenerationError:
    """Wrap a provider exception as a GenerationError with a retryable flag"""
    message = str(exc) or type(exc).__name__
    lowered = message.lower()
    status = _status_code(exc)

    if status == 429 or any(indicator in lowered for indicator in RATE_LIMIT_INDICATORS):
        return GenerationError(
            f"Rate limited: {message}", retryable=True, retry_after=parse_retry_after(exc), model=model
        )
    if status in (400, 404) or any(i in lowered for i in MODEL_UNAVAILABLE_INDICATORS):
        return GenerationError(f"Model unavailable: {message}", retryable=False, model=model)
    if (
        status in TRANSIENT_STATUS_CODES
        or isinstance(exc, (asyncio.TimeoutError, ConnectionError))
        or any(indicator in lowered for indicator in TRANSIENT_INDICATORS)
    ):
        return GenerationError(f"Transient error: {message}", retryable=True, model=model)
    return GenerationError(f"Generation failed: {message}", retryable=False, model=model)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.generation_max_attempts,
            initial_delay=settings.generation_initial_delay,
            max_delay=settings.generation_max_delay,
            multiplier=settings.generation_backoff_multiplier,
        )

    def delay_for(self, attempt: int, error: GenerationError) -> float:
        """Delay before retry number ``attempt`` (1-based)"""
        if error.retry_after is not None:
            return min(error.retry_after, self.max_delay)
        return min(self.initial_delay * (self.multiplier ** (attempt - 1)), self.max_delay)


async def retry_with_backoff(
    call: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Await ``call()``, retrying retryable GenerationErrors

    Non-retryable errors are raised immediately; the last retryable error is
    raised once attempts run out.
    """
    policy = policy or RetryPolicy.from_settings()
    attempt = 1
    while True:
        try:
            return await call()
        except GenerationError as e:
            if not e.retryable or attempt >= policy.max_attempts:
                raise
            delay = policy.delay_for(attempt, e)
            logger.warning(
                f"Generation attempt {attempt}/{policy.max_attempts} failed ({e}); "
                f"retrying in {delay:.1f}s"
            )
            await sleep(delay)
            attempt += 1
