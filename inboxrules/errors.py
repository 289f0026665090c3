"""Exception types and retry helpers for inboxrules."""

import asyncio
import functools
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ParamSpec, TypeVar

logger = logging.getLogger("inboxrules.errors")

P = ParamSpec("P")
T = TypeVar("T")


class ErrorCode(Enum):
    # AI rule chooser
    AI_PROVIDER_UNAVAILABLE = "ai_provider_unavailable"
    AI_API_ERROR = "ai_api_error"
    AI_TIMEOUT = "ai_timeout"
    AI_RESPONSE_PARSE_ERROR = "ai_response_parse_error"

    # Rule store
    STORE_QUERY_ERROR = "store_query_error"

    CONFIG_INVALID = "config_invalid"
    VALIDATION_ERROR = "validation_error"


@dataclass
class InboxRulesError(Exception):
    """Base exception carrying a machine-readable code and structured details."""

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    cause: Exception | None = None

    def __str__(self) -> str:
        text = f"[{self.code.value}] {self.message}"
        if self.details:
            text += " (" + ", ".join(f"{k}={v}" for k, v in self.details.items()) + ")"
        if self.cause:
            text += f" caused by: {self.cause}"
        return text

    def to_dict(self) -> dict[str, Any]:
        """Serializable form, e.g. for a JSON log line."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "cause": str(self.cause) if self.cause else None,
        }


class AIError(InboxRulesError):
    """The AI rule chooser could not produce a verdict."""


class StoreError(InboxRulesError):
    """A group or sender lookup failed."""


class ConfigError(InboxRulesError):
    """config.json exists but cannot be read."""


class ValidationError(InboxRulesError):
    """Rule data rejected before it reaches the store."""


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    jitter: float = 0.1  # fraction of the delay added at random
    retryable_exceptions: tuple[type[Exception], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,
    )
    # For exceptions that carry their own retry hint
    should_retry: Callable[[Exception], bool] | None = None

    def is_retryable(self, exc: Exception) -> bool:
        if isinstance(exc, self.retryable_exceptions):
            return True
        return self.should_retry is not None and self.should_retry(exc)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based), with jitter."""
        delay = min(self.base_delay * self.exponential_base ** (attempt - 1), self.max_delay)
        return delay * (1 + self.jitter * random.random())


def retry_with_backoff(
    config: RetryConfig | None = None,
    on_retry: Callable[[Exception, int, float], None] | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """
    Retry a coroutine function with exponential backoff.

    Non-retryable exceptions, and the last failure once attempts run out,
    are re-raised unchanged.

    Args:
        config: Retry settings. Defaults to RetryConfig().
        on_retry: Called as on_retry(exception, attempt, delay) before each sleep.
    """
    config = config or RetryConfig()

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(1, max(config.max_attempts, 1) + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not config.is_retryable(e):
                        raise
                    if attempt >= config.max_attempts:
                        logger.error(
                            "Giving up on %s after %d attempts: %s",
                            func.__name__,
                            attempt,
                            e,
                            extra={
                                "function": func.__name__,
                                "attempts": attempt,
                                "error_type": type(e).__name__,
                            },
                        )
                        raise

                    delay = config.delay_for(attempt)
                    logger.warning(
                        "Attempt %d/%d of %s failed: %s. Retrying in %.2fs",
                        attempt,
                        config.max_attempts,
                        func.__name__,
                        e,
                        delay,
                        extra={
                            "function": func.__name__,
                            "attempt": attempt,
                            "delay": delay,
                            "error_type": type(e).__name__,
                        },
                    )
                    if on_retry:
                        on_retry(e, attempt, delay)
                    await asyncio.sleep(delay)
            raise AssertionError("unreachable")

        return wrapper

    return decorator


def safe_truncate(text: str, max_length: int, suffix: str = "...") -> str:
    """Cut text to at most max_length characters, suffix included."""
    if len(text) <= max_length:
        return text
    keep = max_length - len(suffix)
    if keep <= 0:
        return suffix[:max_length]
    return text[:keep] + suffix
