"""Matching engine: picks the single rule that governs a message."""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from ..logging import set_correlation_id
from ..models import MatchResult, Message, PotentialMatch, Rule, User
from ..store import RuleStore
from .conditions import is_reply_in_thread
from .context import EvaluationContext
from .evaluator import RuleEvaluator, RuleOutcome, RuleStatus

logger = logging.getLogger("inboxrules.matching.engine")


class RuleChooser(Protocol):
    """The AI oracle that picks among rules deterministic checks couldn't settle."""

    async def choose_rule(
        self,
        message: Message,
        potential_matches: list[PotentialMatch],
        user: User,
    ) -> MatchResult: ...


@dataclass
class ScanResult:
    """Outcome of the deterministic scan over a rule set."""

    match: RuleOutcome | None = None
    potential_matches: list[PotentialMatch] = field(default_factory=list)


class MatchingEngine:
    """
    Runs rules in the caller's order and returns the first definitive match.

    Phase 1 evaluates static, group and category conditions rule by rule and
    stops at the first match. Phase 2 hands the AI-eligible leftovers to the
    chooser, only when phase 1 found nothing. The engine holds no state
    between calls; lookups are cached per message in an EvaluationContext.
    """

    def __init__(self, store: RuleStore, chooser: RuleChooser | None = None):
        self.store = store
        self.chooser = chooser
        self.evaluator = RuleEvaluator()

    async def find_potential_matching_rules(
        self,
        rules: list[Rule],
        message: Message,
        is_thread: bool,
        context: EvaluationContext | None = None,
    ) -> ScanResult:
        """Phase 1: deterministic scan, short-circuiting on the first match."""
        if context is None:
            context = EvaluationContext(self.store, message)

        potential_matches: list[PotentialMatch] = []

        for rule in rules:
            if not rule.enabled:
                continue

            outcome = await self.evaluator.evaluate(rule, message, is_thread, context)

            if outcome.status == RuleStatus.MATCHED:
                return ScanResult(match=outcome)

            if outcome.status == RuleStatus.POTENTIAL:
                assert outcome.potential_match is not None
                potential_matches.append(outcome.potential_match)

        return ScanResult(potential_matches=potential_matches)

    async def find_matching_rule(
        self,
        rules: list[Rule],
        message: Message,
        user: User,
    ) -> MatchResult:
        """Select at most one rule for the message."""
        set_correlation_id(message.id)
        is_thread = is_reply_in_thread(message)

        scan = await self.find_potential_matching_rules(
            rules, message, is_thread, EvaluationContext(self.store, message)
        )

        if scan.match is not None:
            outcome = scan.match
            source = outcome.decided_by.value.lower() if outcome.decided_by else None
            result = MatchResult(rule=outcome.rule, reasons=outcome.reasons, source=source)
            logger.info(
                "Message %s matched rule %s",
                message.id,
                outcome.rule.name,
                extra={
                    "message_id": message.id,
                    "rule_id": outcome.rule.id,
                    "source": source,
                    "reason": result.reason,
                },
            )
            return result

        if not scan.potential_matches:
            logger.debug(
                "No rule matched message %s",
                message.id,
                extra={"message_id": message.id, "rule_count": len(rules)},
            )
            return MatchResult()

        if self.chooser is None:
            logger.info(
                "AI unavailable, leaving %d potential matches undecided for message %s",
                len(scan.potential_matches),
                message.id,
                extra={
                    "message_id": message.id,
                    "potential_matches": [p.rule.id for p in scan.potential_matches],
                },
            )
            return MatchResult()

        logger.debug(
            "Asking AI to choose among %d rules for message %s",
            len(scan.potential_matches),
            message.id,
            extra={
                "message_id": message.id,
                "potential_matches": [p.rule.id for p in scan.potential_matches],
            },
        )
        return await self.chooser.choose_rule(message, scan.potential_matches, user)


async def find_matching_rule(
    rules: list[Rule],
    message: Message,
    user: User,
    store: RuleStore,
    chooser: RuleChooser | None = None,
) -> MatchResult:
    """Convenience wrapper around MatchingEngine.find_matching_rule."""
    return await MatchingEngine(store, chooser).find_matching_rule(rules, message, user)
