"""Condition-type detection for rules."""

from ..models import ConditionType, Message, Rule


def get_condition_types(rule: Rule) -> frozenset[ConditionType]:
    """Condition types the rule populates."""
    return rule.condition_types


def is_ai_rule(rule: Rule) -> bool:
    """A rule needs the AI when it carries free-text instructions."""
    return ConditionType.AI in rule.condition_types


def is_reply_in_thread(message: Message) -> bool:
    """A message is a reply when it isn't the first message of its thread."""
    return bool(message.thread_id) and message.id != message.thread_id
