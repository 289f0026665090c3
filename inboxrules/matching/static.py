"""Static conditions: regex tests against message headers and body."""

import logging
import re

from ..models import Message, Rule

logger = logging.getLogger("inboxrules.matching.static")


def safe_regex_test(pattern: str, text: str) -> bool:
    """Search text for pattern. An invalid pattern is logged and never matches."""
    try:
        return re.search(pattern, text) is not None
    except re.error as e:
        logger.error(
            "Invalid regex pattern: %s",
            pattern,
            extra={"pattern": pattern, "error": str(e)},
        )
        return False


def has_static_conditions(rule: Rule) -> bool:
    """Check if any of the from/to/subject/body patterns are set."""
    return bool(rule.from_ or rule.to or rule.subject or rule.body)


def matches_static_rule(rule: Rule, message: Message) -> bool:
    """
    Test every populated pattern against its message field.

    Returns False when the rule has no patterns; callers check presence
    through the rule's condition types before relying on the result.
    """
    if not has_static_conditions(rule):
        return False

    from_match = safe_regex_test(rule.from_, message.from_) if rule.from_ else True
    to_match = safe_regex_test(rule.to, message.to) if rule.to else True
    subject_match = safe_regex_test(rule.subject, message.subject) if rule.subject else True
    body_match = safe_regex_test(rule.body, message.text_plain or "") if rule.body else True

    return from_match and to_match and subject_match and body_match
