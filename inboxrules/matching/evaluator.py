"""Per-rule evaluation: static, group and category conditions, then AI deferral."""

import logging
from dataclasses import dataclass, field
from enum import Enum

from ..models import ConditionType, LogicalOperator, MatchReason, Message, PotentialMatch, Rule
from .categories import matches_category_rule
from .context import EvaluationContext
from .groups import matches_group_rule
from .static import matches_static_rule

logger = logging.getLogger("inboxrules.matching.evaluator")

# Cheapest first
DETERMINISTIC_ORDER = (ConditionType.STATIC, ConditionType.GROUP, ConditionType.CATEGORY)


class RuleStatus(Enum):
    """Where a rule ended up after evaluation."""

    SKIPPED = "skipped"  # thread message, rule doesn't run on threads
    MATCHED = "matched"  # definitive match, stop scanning
    ELIMINATED = "eliminated"  # AND rule with a failed condition
    POTENTIAL = "potential"  # needs the AI to decide
    NO_MATCH = "no_match"


@dataclass
class RuleOutcome:
    """Result of evaluating one rule against one message."""

    rule: Rule
    status: RuleStatus
    reasons: list[MatchReason] = field(default_factory=list)
    potential_match: PotentialMatch | None = None
    decided_by: ConditionType | None = None


class RuleEvaluator:
    """Evaluates a single rule's deterministic conditions in a fixed order.

    AND rules are eliminated on the first failed condition. OR rules match
    on the first condition that passes. Rules with AI instructions that were
    neither matched nor eliminated are returned as potential matches.
    """

    async def evaluate(
        self,
        rule: Rule,
        message: Message,
        is_thread: bool,
        context: EvaluationContext,
    ) -> RuleOutcome:
        if is_thread and not rule.run_on_threads:
            logger.debug(
                "Skipping rule %s for thread message",
                rule.name,
                extra={"rule_id": rule.id, "message_id": message.id},
            )
            return RuleOutcome(rule=rule, status=RuleStatus.SKIPPED)

        condition_types = rule.condition_types
        operator = rule.conditional_operator
        unresolved = set(condition_types)
        reasons: list[MatchReason] = []

        for condition_type in DETERMINISTIC_ORDER:
            if condition_type not in condition_types:
                continue

            reason = await self._check(condition_type, rule, message, context)

            if reason is not None:
                unresolved.discard(condition_type)
                reasons.append(reason)
                if operator == LogicalOperator.OR or not unresolved:
                    logger.debug(
                        "Rule %s matched on %s",
                        rule.name,
                        condition_type.value,
                        extra={
                            "rule_id": rule.id,
                            "message_id": message.id,
                            "condition_type": condition_type.value,
                            "operator": operator.value,
                        },
                    )
                    return RuleOutcome(
                        rule=rule,
                        status=RuleStatus.MATCHED,
                        reasons=reasons,
                        decided_by=condition_type,
                    )
            elif operator == LogicalOperator.AND:
                logger.debug(
                    "Rule %s eliminated: %s condition failed",
                    rule.name,
                    condition_type.value,
                    extra={
                        "rule_id": rule.id,
                        "message_id": message.id,
                        "condition_type": condition_type.value,
                    },
                )
                return RuleOutcome(
                    rule=rule,
                    status=RuleStatus.ELIMINATED,
                    reasons=reasons,
                    decided_by=condition_type,
                )

        if ConditionType.AI in condition_types:
            assert rule.instructions is not None  # AI type implies instructions
            return RuleOutcome(
                rule=rule,
                status=RuleStatus.POTENTIAL,
                reasons=reasons,
                potential_match=PotentialMatch(rule=rule, instructions=rule.instructions),
            )

        return RuleOutcome(rule=rule, status=RuleStatus.NO_MATCH, reasons=reasons)

    async def _check(
        self,
        condition_type: ConditionType,
        rule: Rule,
        message: Message,
        context: EvaluationContext,
    ) -> MatchReason | None:
        """Evaluate one condition type; a MatchReason means it passed."""
        if condition_type == ConditionType.STATIC:
            if matches_static_rule(rule, message):
                return MatchReason(ConditionType.STATIC)
            return None

        if condition_type == ConditionType.GROUP:
            groups = await context.get_groups(rule.user_id)
            group_match = matches_group_rule(rule, groups, message)
            if group_match.matching_item is not None:
                return MatchReason(ConditionType.GROUP, group_match.reason)
            return None

        if condition_type == ConditionType.CATEGORY:
            sender = await context.get_sender(rule.user_id)
            match = matches_category_rule(rule, sender)
            if match is False:
                return None
            detail = None if match is True else match.name
            return MatchReason(ConditionType.CATEGORY, detail)

        raise ValueError(f"Not a deterministic condition type: {condition_type}")
