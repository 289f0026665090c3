"""Local Ollama backend over its HTTP API."""

import asyncio

import requests

from .base import BaseAIProvider, ProviderErrorType, ProviderResponse

DEFAULT_OLLAMA_URL = "http://localhost:11434"

# Local models can take a while to load on first use
REQUEST_TIMEOUT = 120

_HTTP_STATUS_TYPES = {
    404: (ProviderErrorType.MODEL_ERROR, False),
    429: (ProviderErrorType.RATE_LIMIT_ERROR, True),
}


class OllamaProvider(BaseAIProvider):
    """Talks to a running Ollama server. Needs no API key.

    ``requests`` is blocking, so each call runs in a worker thread.
    """

    def __init__(self, api_base: str | None = None, model: str | None = None):
        self.api_base = (api_base or DEFAULT_OLLAMA_URL).rstrip("/")
        self.model = model or self.default_model

    @property
    def name(self) -> str:
        return "ollama"

    @property
    def default_model(self) -> str:
        return "llama3.2"

    def is_available(self) -> bool:
        return True

    def _post_generate(self, payload: dict) -> dict:
        response = requests.post(f"{self.api_base}/api/generate", json=payload, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json()

    async def complete(
        self, prompt: str, system: str | None = None, max_tokens: int = 1024
    ) -> ProviderResponse:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {"num_predict": max_tokens},
        }
        if system:
            payload["system"] = system

        try:
            data = await asyncio.to_thread(self._post_generate, payload)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            error_type, retryable = _HTTP_STATUS_TYPES.get(status, (ProviderErrorType.UNKNOWN, False))
            raise self.wrap_error(e, error_type, retryable) from e
        except requests.exceptions.Timeout as e:
            raise self.wrap_error(e, ProviderErrorType.TIMEOUT_ERROR, True) from e
        except requests.exceptions.ConnectionError as e:
            error = self.wrap_error(e, ProviderErrorType.CONNECTION_ERROR, True)
            error.details["api_base"] = self.api_base
            raise error from e

        usage = None
        if "prompt_eval_count" in data or "eval_count" in data:
            usage = {
                "input_tokens": data.get("prompt_eval_count", 0),
                "output_tokens": data.get("eval_count", 0),
            }
        return ProviderResponse(text=data.get("response", ""), model=self.model, usage=usage)
