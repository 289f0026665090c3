"""Google Gemini backend."""

from .base import BaseAIProvider, ProviderErrorType, ProviderResponse


def _google_error_types():
    from google.api_core import exceptions as google_exceptions

    return (
        (google_exceptions.ResourceExhausted, ProviderErrorType.RATE_LIMIT_ERROR, True),
        (google_exceptions.PermissionDenied, ProviderErrorType.AUTHENTICATION_ERROR, False),
        (google_exceptions.Unauthenticated, ProviderErrorType.AUTHENTICATION_ERROR, False),
        (google_exceptions.DeadlineExceeded, ProviderErrorType.TIMEOUT_ERROR, True),
        (google_exceptions.ServiceUnavailable, ProviderErrorType.CONNECTION_ERROR, True),
        (google_exceptions.NotFound, ProviderErrorType.MODEL_ERROR, False),
    )


class GeminiProvider(BaseAIProvider):
    def __init__(self, api_key: str | None, model: str | None = None):
        self.api_key = api_key
        self.model = model or self.default_model
        self._configured = False

    @property
    def name(self) -> str:
        return "gemini"

    @property
    def default_model(self) -> str:
        return "gemini-2.0-flash"

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _model_for(self, system: str | None):
        # Gemini binds the system instruction to the model handle, not the request
        import google.generativeai as genai

        if not self._configured:
            genai.configure(api_key=self.api_key)
            self._configured = True
        return genai.GenerativeModel(self.model, system_instruction=system)

    async def complete(
        self, prompt: str, system: str | None = None, max_tokens: int = 1024
    ) -> ProviderResponse:
        model = self._model_for(system)
        try:
            response = await model.generate_content_async(
                prompt,
                generation_config={
                    "max_output_tokens": max_tokens,
                    "response_mime_type": "application/json",
                },
            )
        except Exception as e:
            for exc_type, error_type, retryable in _google_error_types():
                if isinstance(e, exc_type):
                    raise self.wrap_error(e, error_type, retryable) from e
            raise self.wrap_error(e, ProviderErrorType.UNKNOWN, False) from e

        metadata = getattr(response, "usage_metadata", None)
        usage = None
        if metadata:
            usage = {
                "input_tokens": getattr(metadata, "prompt_token_count", 0),
                "output_tokens": getattr(metadata, "candidates_token_count", 0),
            }
        return ProviderResponse(text=response.text, model=self.model, usage=usage)
