"""Tests for the AI rule chooser."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from inboxrules.config import Config
from inboxrules.errors import AIError, ErrorCode
from inboxrules.matching.ai import AIRuleChooser, check_ai_connection
from inboxrules.matching.providers import ProviderError, ProviderErrorType, ProviderResponse
from inboxrules.models import Message, PotentialMatch, Rule, User

USER = User(id="u1", email="me@example.com", about="I run a small bakery.")


def make_message() -> Message:
    return Message(
        id="m1",
        thread_id="m1",
        from_="Hotel Bookings <noreply@hotel.example>",
        subject="Your reservation",
        text_plain="Check-in is on Friday.",
    )


def make_potential_matches() -> list[PotentialMatch]:
    rules = [
        Rule(id="r1", user_id="u1", name="Travel", instructions="Flight and hotel bookings"),
        Rule(id="r2", user_id="u1", name="Suppliers", instructions="Flour and sugar orders"),
    ]
    return [PotentialMatch(rule=r, instructions=r.instructions) for r in rules]


def make_provider(text: str = '{"rule": 1, "reason": "Hotel booking"}'):
    provider = MagicMock()
    provider.name = "mock"
    provider.is_available.return_value = True
    provider.complete = AsyncMock(return_value=ProviderResponse(text=text, model="mock-1"))
    return provider


class TestChooseRule:
    """Tests for AIRuleChooser.choose_rule."""

    @pytest.mark.asyncio
    async def test_picks_numbered_rule(self):
        potential = make_potential_matches()
        chooser = AIRuleChooser(Config(), provider=make_provider())

        result = await chooser.choose_rule(make_message(), potential, USER)

        assert result.rule is potential[0].rule
        assert result.reason == "Hotel booking"
        assert result.source == "ai"

    @pytest.mark.asyncio
    async def test_zero_means_no_rule(self):
        chooser = AIRuleChooser(Config(), provider=make_provider('{"rule": 0, "reason": "Nothing fits"}'))
        result = await chooser.choose_rule(make_message(), make_potential_matches(), USER)
        assert result.rule is None
        assert result.to_dict() == {}

    @pytest.mark.asyncio
    async def test_null_rule_means_no_rule(self):
        chooser = AIRuleChooser(Config(), provider=make_provider('{"rule": null}'))
        result = await chooser.choose_rule(make_message(), make_potential_matches(), USER)
        assert result.rule is None

    @pytest.mark.asyncio
    async def test_out_of_range_is_no_match(self):
        chooser = AIRuleChooser(Config(), provider=make_provider('{"rule": 7, "reason": "?"}'))
        result = await chooser.choose_rule(make_message(), make_potential_matches(), USER)
        assert result.rule is None

    @pytest.mark.asyncio
    async def test_code_fenced_response(self):
        text = 'Sure.\n```json\n{"rule": 2, "reason": "Supplier order"}\n```'
        potential = make_potential_matches()
        chooser = AIRuleChooser(Config(), provider=make_provider(text))

        result = await chooser.choose_rule(make_message(), potential, USER)

        assert result.rule is potential[1].rule

    @pytest.mark.asyncio
    async def test_no_candidates_skips_provider(self):
        provider = make_provider()
        result = await AIRuleChooser(Config(), provider=provider).choose_rule(make_message(), [], USER)
        assert result.rule is None
        provider.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unparseable_response_raises(self):
        chooser = AIRuleChooser(Config(), provider=make_provider("I think the first one"))
        with pytest.raises(AIError) as exc_info:
            await chooser.choose_rule(make_message(), make_potential_matches(), USER)
        assert exc_info.value.code == ErrorCode.AI_RESPONSE_PARSE_ERROR

    @pytest.mark.asyncio
    async def test_non_numeric_rule_raises(self):
        chooser = AIRuleChooser(Config(), provider=make_provider('{"rule": "first"}'))
        with pytest.raises(AIError) as exc_info:
            await chooser.choose_rule(make_message(), make_potential_matches(), USER)
        assert exc_info.value.code == ErrorCode.AI_RESPONSE_PARSE_ERROR

    @pytest.mark.asyncio
    async def test_unavailable_provider_raises(self):
        provider = make_provider()
        provider.is_available.return_value = False
        with pytest.raises(AIError) as exc_info:
            await AIRuleChooser(Config(), provider=provider).choose_rule(
                make_message(), make_potential_matches(), USER
            )
        assert exc_info.value.code == ErrorCode.AI_PROVIDER_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_disabled_in_config_raises(self):
        config = Config()
        config.ai.enabled = False
        with pytest.raises(AIError):
            await AIRuleChooser(config, provider=make_provider()).choose_rule(
                make_message(), make_potential_matches(), USER
            )

    @pytest.mark.asyncio
    async def test_provider_error_raises(self):
        provider = make_provider()
        provider.complete.side_effect = ProviderError(
            error_type=ProviderErrorType.AUTHENTICATION_ERROR,
            message="bad key",
            provider="mock",
        )
        with pytest.raises(AIError) as exc_info:
            await AIRuleChooser(Config(), provider=provider).choose_rule(
                make_message(), make_potential_matches(), USER
            )
        assert exc_info.value.code == ErrorCode.AI_API_ERROR
        provider.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retryable_error_is_retried(self):
        provider = make_provider()
        provider.complete.side_effect = [
            ProviderError(
                error_type=ProviderErrorType.RATE_LIMIT_ERROR,
                message="slow down",
                provider="mock",
                retryable=True,
            ),
            ProviderResponse(text='{"rule": 1}', model="mock-1"),
        ]
        potential = make_potential_matches()

        with patch("inboxrules.errors.asyncio.sleep", new=AsyncMock()):
            result = await AIRuleChooser(Config(), provider=provider).choose_rule(
                make_message(), potential, USER
            )

        assert result.rule is potential[0].rule
        assert provider.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)

        provider = make_provider()
        provider.complete.side_effect = slow
        config = Config()
        config.ai.timeout = 0.01

        with pytest.raises(AIError) as exc_info:
            await AIRuleChooser(config, provider=provider).choose_rule(
                make_message(), make_potential_matches(), USER
            )
        assert exc_info.value.code == ErrorCode.AI_TIMEOUT


class TestBuildPrompt:
    """Tests for prompt construction."""

    def test_lists_numbered_rules(self):
        chooser = AIRuleChooser(Config(), provider=make_provider())
        prompt = chooser.build_prompt(make_message(), make_potential_matches(), USER)

        assert "1. Travel: Flight and hotel bookings" in prompt
        assert "2. Suppliers: Flour and sugar orders" in prompt
        assert "I run a small bakery." in prompt
        assert "Subject: Your reservation" in prompt

    def test_user_without_about(self):
        chooser = AIRuleChooser(Config(), provider=make_provider())
        prompt = chooser.build_prompt(
            make_message(), make_potential_matches(), User(id="u1", email="me@example.com")
        )
        assert "information about the user" not in prompt


class TestCheckAIConnection:
    """Tests for check_ai_connection."""

    @pytest.mark.asyncio
    async def test_provider_none(self):
        config = Config()
        config.ai.provider = "none"
        ok, message = await check_ai_connection(config)
        assert ok
        assert "disabled" in message

    @pytest.mark.asyncio
    async def test_uses_provider(self):
        provider = MagicMock()
        provider.test_connection = AsyncMock(return_value=(True, "Connection successful"))
        with patch("inboxrules.matching.ai.get_provider", return_value=provider):
            ok, message = await check_ai_connection(Config())
        assert ok
        assert message == "Connection successful"
