"""Group membership: match a message against a rule's curated group."""

import logging
import re
from dataclasses import dataclass

from ..models import Group, GroupItem, GroupItemType, Message, Rule

logger = logging.getLogger("inboxrules.matching.groups")

# Ticket numbers and ordinals, e.g. "#1234", "3rd", "2024"
_NUMBER_PATTERN = re.compile(r"#?\b\d+(?:st|nd|rd|th)?\b")
_WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass
class GroupMatch:
    """The group of a rule and the first item that matched, if any."""

    group: Group | None = None
    matching_item: GroupItem | None = None

    @property
    def reason(self) -> str | None:
        if self.matching_item is None:
            return None
        return f"{self.matching_item.type.value}: {self.matching_item.value}"


def strip_numbers(text: str) -> str:
    """Remove ticket numbers and ordinals so recurring subjects compare equal."""
    return _WHITESPACE_PATTERN.sub(" ", _NUMBER_PATTERN.sub("", text)).strip()


def _matches_item(message: Message, item: GroupItem) -> bool:
    value = item.value.strip().lower()
    if not value:
        return False

    if item.type == GroupItemType.FROM:
        sender = message.from_.lower()
        return bool(sender) and (value in sender or sender in value)

    if item.type == GroupItemType.SUBJECT:
        subject = message.subject.lower()
        if not subject:
            return False
        if value in subject:
            return True
        stripped_value = strip_numbers(value)
        return bool(stripped_value) and stripped_value in strip_numbers(subject)

    if item.type == GroupItemType.BODY:
        return value in (message.text_plain or "").lower()

    return False


def find_matching_group_item(message: Message, items: list[GroupItem]) -> GroupItem | None:
    """Return the first item, in insertion order, that the message matches."""
    for item in items:
        if _matches_item(message, item):
            return item
    return None


def matches_group_rule(rule: Rule, groups: list[Group], message: Message) -> GroupMatch:
    """Find the rule's group among the user's groups and test the message against it."""
    group = next((g for g in groups if g.rule_id == rule.id), None)
    if group is None:
        logger.debug(
            "Rule %s references a group that was not found",
            rule.id,
            extra={"rule_id": rule.id, "group_id": rule.group_id},
        )
        return GroupMatch()

    return GroupMatch(group=group, matching_item=find_matching_group_item(message, group.items))
