"""AI provider implementations for the rule chooser."""

from .base import BaseAIProvider, ProviderError, ProviderErrorType, ProviderResponse
from .factory import SUPPORTED_PROVIDERS, ProviderInfo, get_provider

__all__ = [
    "BaseAIProvider",
    "ProviderError",
    "ProviderErrorType",
    "ProviderInfo",
    "ProviderResponse",
    "get_provider",
    "SUPPORTED_PROVIDERS",
]
