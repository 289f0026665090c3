"""Shared types for the language-model backends behind the rule chooser."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Substrings that suggest an SDK error echoed a credential back
SENSITIVE_PATTERNS = ("api_key=", "api-key=", "authorization:", "bearer ", "sk-", "aiza")


class ProviderErrorType(Enum):
    CONNECTION_ERROR = "connection_error"
    AUTHENTICATION_ERROR = "authentication_error"
    RATE_LIMIT_ERROR = "rate_limit_error"
    TIMEOUT_ERROR = "timeout_error"
    INVALID_REQUEST = "invalid_request"
    MODEL_ERROR = "model_error"
    UNKNOWN = "unknown"


@dataclass
class ProviderError(Exception):
    """A failed completion request.

    ``retryable`` tells the chooser's retry loop whether another attempt
    could succeed (rate limits, timeouts, dropped connections).
    """

    error_type: ProviderErrorType
    message: str
    provider: str
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Exception | None = None

    def __str__(self) -> str:
        text = f"[{self.provider}:{self.error_type.value}] {self.message}"
        if self.details:
            text += " (" + ", ".join(f"{k}={v}" for k, v in self.details.items()) + ")"
        if self.cause:
            text += f" caused by: {type(self.cause).__name__}: {self.cause}"
        return text


@dataclass
class ProviderResponse:
    text: str
    model: str
    usage: dict | None = None


def sanitize_error_message(error: Exception) -> str:
    """Redact error messages that may echo credentials."""
    msg = str(error)
    if any(pattern in msg.lower() for pattern in SENSITIVE_PATTERNS):
        return "API error (details redacted for security)"
    return msg


def classify_error(error: Exception) -> tuple[ProviderErrorType, bool]:
    """Guess the error type and whether a retry might help from the message."""
    text = str(error).lower()
    checks = (
        (("rate", "limit", "429"), ProviderErrorType.RATE_LIMIT_ERROR, True),
        (("auth", "key", "401"), ProviderErrorType.AUTHENTICATION_ERROR, False),
        (("timeout", "timed out"), ProviderErrorType.TIMEOUT_ERROR, True),
        (("connect",), ProviderErrorType.CONNECTION_ERROR, True),
    )
    for needles, error_type, retryable in checks:
        if any(n in text for n in needles):
            return error_type, retryable
    return ProviderErrorType.UNKNOWN, False


class BaseAIProvider(ABC):
    """A chat-completion backend the rule chooser can ask for a JSON verdict."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def default_model(self) -> str: ...

    @abstractmethod
    def is_available(self) -> bool:
        """Whether enough is configured (API key, endpoint) to attempt a request."""

    @abstractmethod
    async def complete(
        self, prompt: str, system: str | None = None, max_tokens: int = 1024
    ) -> ProviderResponse:
        """Send a prompt and return the completion text.

        Raises:
            ProviderError: If the request fails.
        """

    def wrap_error(
        self,
        error: Exception,
        error_type: ProviderErrorType | None = None,
        retryable: bool | None = None,
    ) -> ProviderError:
        """Turn an SDK exception into a ProviderError, classifying it when no type is given."""
        guessed_type, guessed_retryable = classify_error(error)
        return ProviderError(
            error_type=error_type or guessed_type,
            message=sanitize_error_message(error),
            provider=self.name,
            retryable=guessed_retryable if retryable is None else retryable,
            cause=error,
        )

    async def test_connection(self) -> tuple[bool, str]:
        """Send a trivial prompt and report whether it went through."""
        if not self.is_available():
            return False, "Provider not configured"
        try:
            await self.complete("Say 'ok'", max_tokens=10)
        except ImportError as e:
            return False, str(e)
        except ProviderError as e:
            return False, e.message
        return True, "Connection successful"
