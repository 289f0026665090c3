"""Data models for inboxrules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property


class LogicalOperator(Enum):
    """How the condition types of a rule combine."""

    AND = "AND"
    OR = "OR"


class CategoryFilterType(Enum):
    """Whether a rule's category filter includes or excludes senders."""

    INCLUDE = "INCLUDE"
    EXCLUDE = "EXCLUDE"


class ConditionType(Enum):
    """Condition types a rule can carry, in evaluation order."""

    STATIC = "STATIC"
    GROUP = "GROUP"
    CATEGORY = "CATEGORY"
    AI = "AI"


class GroupItemType(Enum):
    """Which message field a group item is matched against."""

    FROM = "from"
    SUBJECT = "subject"
    BODY = "body"


class ActionType(Enum):
    """Actions a rule triggers once it wins. The engine never executes them."""

    LABEL = "label"
    ARCHIVE = "archive"
    FORWARD = "forward"
    REPLY = "reply"
    DRAFT_EMAIL = "draft_email"
    MARK_SPAM = "mark_spam"
    MARK_READ = "mark_read"
    CALL_WEBHOOK = "call_webhook"


@dataclass(frozen=True)
class Message:
    """An already-parsed email message. Read-only to the engine."""

    id: str
    thread_id: str
    from_: str
    to: str = ""
    subject: str = ""
    text_plain: str | None = None
    reply_to: str | None = None
    cc: str | None = None
    snippet: str = ""

    @property
    def from_address(self) -> str:
        """Extract the bare sender address from the From header."""
        if "<" in self.from_:
            address = self.from_.split("<")[1].split(">")[0]
        else:
            address = self.from_
        return address.strip().lower()

    @classmethod
    def from_dict(cls, data: dict) -> Message:
        """Build a message from a JSON-style mapping.

        Accepts either flat keys or a nested ``headers`` object.
        """
        headers = data.get("headers", {})
        return cls(
            id=str(data["id"]),
            thread_id=str(data.get("thread_id") or data.get("threadId") or data["id"]),
            from_=headers.get("from", data.get("from", "")),
            to=headers.get("to", data.get("to", "")),
            subject=headers.get("subject", data.get("subject", "")),
            text_plain=data.get("text_plain", data.get("textPlain")),
            reply_to=headers.get("reply-to", data.get("reply_to")),
            cc=headers.get("cc", data.get("cc")),
            snippet=data.get("snippet", ""),
        )


@dataclass
class Category:
    """A sender classification label (e.g. newsletter, cold outreach)."""

    id: str
    name: str
    description: str | None = None


@dataclass
class RuleAction:
    """One action attached to a rule."""

    type: ActionType
    label: str | None = None
    to: str | None = None
    content: str | None = None
    url: str | None = None


@dataclass
class Rule:
    """A user-defined automation rule.

    ``position`` is the user's priority order. The engine never re-sorts;
    callers pass rules in the order they should be tried.
    """

    id: str
    user_id: str
    name: str
    position: int = 0
    instructions: str | None = None
    run_on_threads: bool = False
    conditional_operator: LogicalOperator = LogicalOperator.AND
    from_: str | None = None
    to: str | None = None
    subject: str | None = None
    body: str | None = None
    group_id: str | None = None
    category_filter_type: CategoryFilterType | None = None
    category_filters: list[Category] = field(default_factory=list)
    actions: list[RuleAction] = field(default_factory=list)
    enabled: bool = True

    @cached_property
    def condition_types(self) -> frozenset[ConditionType]:
        """Condition types populated on this rule, computed once."""
        types: set[ConditionType] = set()
        if self.from_ or self.to or self.subject or self.body:
            types.add(ConditionType.STATIC)
        if self.group_id:
            types.add(ConditionType.GROUP)
        if self.category_filter_type and self.category_filters:
            types.add(ConditionType.CATEGORY)
        if self.instructions and self.instructions.strip():
            types.add(ConditionType.AI)
        return frozenset(types)


@dataclass
class GroupItem:
    """A single matching entry inside a group."""

    id: str
    group_id: str
    type: GroupItemType
    value: str


@dataclass
class Group:
    """An ordered collection of group items, owned by at most one rule."""

    id: str
    name: str
    user_id: str
    rule_id: str | None = None
    items: list[GroupItem] = field(default_factory=list)


@dataclass
class User:
    """Profile context handed to the AI oracle."""

    id: str
    email: str
    about: str | None = None


@dataclass
class SenderRecord:
    """A sender the user has seen before.

    ``category_id`` is None when the sender is known but uncategorised.
    Unknown senders are represented by the absence of a record.
    """

    email: str
    user_id: str
    category_id: str | None = None


@dataclass(frozen=True)
class MatchReason:
    """Why one condition of a rule fired."""

    condition_type: ConditionType
    detail: str | None = None

    def render(self) -> str:
        """Render to the text shown to the user."""
        if self.condition_type == ConditionType.STATIC:
            return "Matched static conditions"
        if self.condition_type == ConditionType.GROUP:
            return f'Matched group item: "{self.detail}"'
        if self.condition_type == ConditionType.CATEGORY:
            if self.detail:
                return f'Matched category: "{self.detail}"'
            return "Matched category filter"
        return self.detail or "Matched AI instructions"


@dataclass
class PotentialMatch:
    """An AI-eligible rule that deterministic conditions could not resolve."""

    rule: Rule
    instructions: str


@dataclass
class MatchResult:
    """Final verdict for one message."""

    rule: Rule | None = None
    reasons: list[MatchReason] = field(default_factory=list)
    source: str | None = None  # "static", "group", "category", "ai"

    @property
    def matched(self) -> bool:
        return self.rule is not None

    @property
    def reason(self) -> str | None:
        if not self.reasons:
            return None
        return ", ".join(r.render() for r in self.reasons)

    def to_dict(self) -> dict:
        """Render as ``{}`` or ``{"rule": ..., "reason": ...}``."""
        if self.rule is None:
            return {}
        return {"rule": self.rule, "reason": self.reason}
