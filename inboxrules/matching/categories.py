"""Sender categories: include/exclude filters on the sender's assigned category."""

from ..models import Category, CategoryFilterType, Rule, SenderRecord


def matches_category_rule(rule: Rule, sender: SenderRecord | None) -> Category | bool:
    """
    Check the sender's category against the rule's filter.

    Returns the matched Category for INCLUDE filters (used in the reason),
    True when the filter is satisfied without a specific category, and
    False when it is not satisfied.
    """
    if not rule.category_filter_type or not rule.category_filters:
        return True

    # Unknown sender: nothing to filter on
    if sender is None:
        return False

    matched = next((c for c in rule.category_filters if c.id == sender.category_id), None)

    if rule.category_filter_type == CategoryFilterType.INCLUDE:
        return matched if matched is not None else False

    # EXCLUDE: a sender without a category is never in the excluded set
    return matched is None
