"""Tests for group membership matching."""

from inboxrules.matching.groups import (
    GroupMatch,
    find_matching_group_item,
    matches_group_rule,
    strip_numbers,
)
from inboxrules.models import Group, GroupItem, GroupItemType, Message, Rule


def make_message(**kwargs) -> Message:
    defaults = {
        "id": "m1",
        "thread_id": "m1",
        "from_": "Alice <alice@example.com>",
        "subject": "Invoice #1042 for March",
        "text_plain": "Thanks for your order.",
    }
    defaults.update(kwargs)
    return Message(**defaults)


def item(item_type: GroupItemType, value: str, item_id: str = "1") -> GroupItem:
    return GroupItem(id=item_id, group_id="g1", type=item_type, value=value)


class TestStripNumbers:
    """Tests for strip_numbers."""

    def test_removes_ticket_numbers(self):
        assert strip_numbers("Invoice #1042 for March") == "Invoice for March"

    def test_removes_ordinals(self):
        assert strip_numbers("Your 3rd reminder") == "Your reminder"

    def test_leaves_words_alone(self):
        assert strip_numbers("Weekly digest") == "Weekly digest"


class TestFindMatchingGroupItem:
    """Tests for find_matching_group_item."""

    def test_from_contains_address(self):
        """Test that a FROM item matches inside a display-name header."""
        found = find_matching_group_item(
            make_message(), [item(GroupItemType.FROM, "alice@example.com")]
        )
        assert found is not None
        assert found.value == "alice@example.com"

    def test_from_is_case_insensitive(self):
        found = find_matching_group_item(
            make_message(from_="ALICE@EXAMPLE.COM"), [item(GroupItemType.FROM, "alice@example.com")]
        )
        assert found is not None

    def test_from_header_inside_item(self):
        """Test that a sender header contained in the item value also matches."""
        found = find_matching_group_item(
            make_message(from_="bob@example.com"),
            [item(GroupItemType.FROM, "Bob@example.com, billing team")],
        )
        assert found is not None

    def test_subject_ignores_changing_numbers(self):
        """Test that recurring subjects match across ticket numbers."""
        found = find_matching_group_item(
            make_message(subject="Invoice #2001 for March"),
            [item(GroupItemType.SUBJECT, "Invoice #1042 for March")],
        )
        assert found is not None

    def test_body_contains(self):
        found = find_matching_group_item(
            make_message(), [item(GroupItemType.BODY, "for your order")]
        )
        assert found is not None

    def test_body_missing(self):
        found = find_matching_group_item(
            make_message(text_plain=None), [item(GroupItemType.BODY, "order")]
        )
        assert found is None

    def test_blank_value_never_matches(self):
        assert find_matching_group_item(make_message(), [item(GroupItemType.FROM, "  ")]) is None

    def test_first_item_in_order_wins(self):
        """Test that items are checked in insertion order."""
        items = [
            item(GroupItemType.SUBJECT, "nothing like this", "1"),
            item(GroupItemType.BODY, "order", "2"),
            item(GroupItemType.FROM, "alice", "3"),
        ]
        found = find_matching_group_item(make_message(), items)
        assert found is not None
        assert found.id == "2"


class TestMatchesGroupRule:
    """Tests for matches_group_rule."""

    def test_uses_group_owned_by_rule(self):
        rule = Rule(id="r1", user_id="u1", name="Alice", group_id="g1")
        groups = [
            Group(id="g0", name="Other", user_id="u1", rule_id="r0",
                  items=[item(GroupItemType.FROM, "alice")]),
            Group(id="g1", name="Alice group", user_id="u1", rule_id="r1",
                  items=[item(GroupItemType.FROM, "alice@example.com")]),
        ]

        result = matches_group_rule(rule, groups, make_message())

        assert result.group is not None
        assert result.group.id == "g1"
        assert result.reason == "from: alice@example.com"

    def test_missing_group(self):
        """Test that a rule whose group is gone does not match."""
        rule = Rule(id="r1", user_id="u1", name="Alice", group_id="g1")
        result = matches_group_rule(rule, [], make_message())
        assert result == GroupMatch()
        assert result.reason is None

    def test_no_item_matches(self):
        rule = Rule(id="r1", user_id="u1", name="Alice", group_id="g1")
        groups = [Group(id="g1", name="Alice group", user_id="u1", rule_id="r1",
                        items=[item(GroupItemType.FROM, "carol@example.com")])]
        result = matches_group_rule(rule, groups, make_message())
        assert result.group is not None
        assert result.matching_item is None
