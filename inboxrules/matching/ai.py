"""AI rule chooser: asks a language model which, if any, of the candidate rules applies."""

import asyncio
import json
import logging
import re

from ..config import Config
from ..errors import AIError, ErrorCode, RetryConfig, retry_with_backoff
from ..models import ConditionType, MatchReason, MatchResult, Message, PotentialMatch, User
from .providers import get_provider
from .providers.base import BaseAIProvider, ProviderError, ProviderResponse
from .utils import get_email_from_message, sanitize_for_prompt

logger = logging.getLogger("inboxrules.matching.ai")

AI_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    max_delay=10.0,
    exponential_base=2.0,
    retryable_exceptions=(ConnectionError,),
    should_retry=lambda e: isinstance(e, ProviderError) and e.retryable,
)


SYSTEM_PROMPT = """You are an AI assistant that helps people manage their emails.
You decide which of the user's automation rules applies to an incoming email.

Each rule has a number and plain-language instructions written by the user.
Pick the single rule whose instructions best fit the email. If none of the rules
clearly applies, pick none. Do not guess.

Respond with a JSON object only:
{"rule": <rule number, or 0 for none>, "reason": "<one short sentence>"}
"""

CHOOSE_RULE_PROMPT = """{about}The rules:
{rules}

The email:
{email}
"""


class AIRuleChooser:
    """Chooses among potential matches using the configured AI provider.

    Provider failures propagate as AIError; there is no safe fallback when
    the model can't be reached.
    """

    def __init__(self, config: Config, provider: BaseAIProvider | None = None):
        self.config = config
        self._provider = provider
        self._provider_initialized = provider is not None

    def _get_provider(self) -> BaseAIProvider | None:
        """Get or create the AI provider."""
        if not self._provider_initialized:
            self._provider = get_provider(
                provider_name=self.config.ai.provider,
                api_key=self.config.ai.api_key,
                model=self.config.ai.model,
                api_base=self.config.ai.api_base,
            )
            self._provider_initialized = True
        return self._provider

    def is_available(self) -> bool:
        """Check if the AI can be consulted."""
        if not self.config.ai.enabled:
            return False

        provider = self._get_provider()
        if provider is None:
            return False

        return provider.is_available()

    def build_prompt(
        self, message: Message, potential_matches: list[PotentialMatch], user: User
    ) -> str:
        """Build the user prompt listing the numbered candidate rules."""
        rules_text = "\n".join(
            f"{i}. {sanitize_for_prompt(p.rule.name, 100)}: "
            f"{sanitize_for_prompt(p.instructions, 1000)}"
            for i, p in enumerate(potential_matches, 1)
        )
        about = ""
        if user.about:
            about = (
                f"Some information about the user ({sanitize_for_prompt(user.email, 200)}):\n"
                f"{sanitize_for_prompt(user.about, 1000)}\n\n"
            )
        email = get_email_from_message(message, self.config.ai.max_body_chars)
        return CHOOSE_RULE_PROMPT.format(about=about, rules=rules_text, email=email.to_prompt())

    async def choose_rule(
        self,
        message: Message,
        potential_matches: list[PotentialMatch],
        user: User,
    ) -> MatchResult:
        """Ask the AI to pick at most one of the potential matches."""
        if not potential_matches:
            return MatchResult()

        if not self.is_available():
            raise AIError(
                code=ErrorCode.AI_PROVIDER_UNAVAILABLE,
                message="AI provider is not configured",
                details={"provider": self.config.ai.provider},
            )

        provider = self._get_provider()
        assert provider is not None  # Guaranteed by is_available() check above

        prompt = self.build_prompt(message, potential_matches, user)

        try:
            response = await asyncio.wait_for(
                self._call_provider_with_retry(provider, prompt),
                timeout=self.config.ai.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                "AI rule choice timed out after %.1fs",
                self.config.ai.timeout,
                extra={"message_id": message.id, "provider": provider.name},
            )
            raise AIError(
                code=ErrorCode.AI_TIMEOUT,
                message="AI rule choice timed out",
                details={"timeout": self.config.ai.timeout, "provider": provider.name},
                cause=e,
            ) from e
        except ProviderError as e:
            logger.error(
                "AI rule choice failed: %s",
                e,
                extra={
                    "message_id": message.id,
                    "error_type": e.error_type.value,
                    "provider": e.provider,
                    "retryable": e.retryable,
                },
            )
            raise AIError(
                code=ErrorCode.AI_API_ERROR,
                message="AI provider request failed",
                details={"provider": e.provider, "error_type": e.error_type.value},
                cause=e,
            ) from e

        rule_number, reason = self._parse_response(response.text)
        reasons = [MatchReason(ConditionType.AI, reason)] if reason else []

        if rule_number == 0:
            logger.info(
                "AI chose no rule for message %s",
                message.id,
                extra={"message_id": message.id, "candidates": len(potential_matches)},
            )
            return MatchResult(reasons=reasons, source="ai")

        if not 1 <= rule_number <= len(potential_matches):
            logger.warning(
                "AI chose rule %d but only %d candidates were offered",
                rule_number,
                len(potential_matches),
                extra={
                    "message_id": message.id,
                    "rule_number": rule_number,
                    "candidates": len(potential_matches),
                },
            )
            return MatchResult(source="ai")

        chosen = potential_matches[rule_number - 1].rule
        logger.info(
            "AI chose rule %s for message %s",
            chosen.name,
            message.id,
            extra={"message_id": message.id, "rule_id": chosen.id, "reason": reason},
        )
        return MatchResult(rule=chosen, reasons=reasons, source="ai")

    async def _call_provider_with_retry(
        self, provider: BaseAIProvider, prompt: str
    ) -> ProviderResponse:
        """Call the provider, retrying transient errors."""

        @retry_with_backoff(
            config=AI_RETRY_CONFIG,
            on_retry=lambda e, attempt, delay: logger.info(
                "Retrying AI call (attempt %d) after %.1fs due to: %s",
                attempt,
                delay,
                e,
            ),
        )
        async def _call() -> ProviderResponse:
            return await provider.complete(prompt, system=SYSTEM_PROMPT, max_tokens=512)

        return await _call()

    def _parse_response(self, response_text: str) -> tuple[int, str | None]:
        """Parse the AI's answer into (rule number, reason). 0 means no rule.

        Raises:
            AIError: If the response holds no usable JSON object.
        """
        match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", response_text, re.DOTALL)
        if match:
            json_str = match.group(1)
        else:
            json_start = response_text.find("{")
            json_end = response_text.rfind("}") + 1
            if json_start == -1 or json_end == 0:
                raise self._parse_error("No JSON object found in response", response_text)
            json_str = response_text[json_start:json_end]

        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise self._parse_error(f"Invalid JSON: {e}", response_text, e) from e

        if not isinstance(data, dict):
            raise self._parse_error(f"Expected JSON object, got {type(data).__name__}", response_text)

        raw_rule = data.get("rule")
        if raw_rule is None or raw_rule is False:
            rule_number = 0
        else:
            try:
                rule_number = int(raw_rule)
            except (TypeError, ValueError) as e:
                raise self._parse_error(f"Invalid rule number '{raw_rule}'", response_text, e) from e

        reason = data.get("reason")
        reason = str(reason)[:500] if reason else None
        return rule_number, reason

    def _parse_error(self, detail: str, response_text: str, cause: Exception | None = None) -> AIError:
        logger.error(
            "Failed to parse AI rule choice: %s",
            detail,
            extra={"response_preview": response_text[:200]},
        )
        return AIError(
            code=ErrorCode.AI_RESPONSE_PARSE_ERROR,
            message="Could not parse AI rule choice",
            details={"detail": detail},
            cause=cause,
        )


async def check_ai_connection(config: Config) -> tuple[bool, str]:
    """Test if AI connection works with the configured provider."""
    if config.ai.provider == "none":
        return True, "AI disabled (deterministic rules only)"

    provider = get_provider(
        provider_name=config.ai.provider,
        api_key=config.ai.api_key,
        model=config.ai.model,
        api_base=config.ai.api_base,
    )

    if provider is None:
        return False, "No provider configured"

    return await provider.test_connection()
