"""OpenAI backend, also used for OpenAI-compatible endpoints through ``api_base``."""

from typing import Any

from .base import BaseAIProvider, ProviderResponse


class OpenAIProvider(BaseAIProvider):
    def __init__(
        self,
        api_key: str | None,
        model: str | None = None,
        api_base: str | None = None,
    ):
        self.api_key = api_key
        self.model = model or self.default_model
        self.api_base = api_base
        self._client: Any = None

    @property
    def name(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return "gpt-4o-mini"

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            client_args: dict[str, Any] = {"api_key": self.api_key}
            if self.api_base:
                client_args["base_url"] = self.api_base
            self._client = AsyncOpenAI(**client_args)
        return self._client

    async def complete(
        self, prompt: str, system: str | None = None, max_tokens: int = 1024
    ) -> ProviderResponse:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._get_client().chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=messages,
                # The chooser always asks for a JSON verdict
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise self.wrap_error(e) from e

        usage = None
        if response.usage:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }
        return ProviderResponse(
            text=response.choices[0].message.content or "",
            model=self.model,
            usage=usage,
        )
