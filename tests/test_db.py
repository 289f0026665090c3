"""Tests for database operations."""

import sqlite3
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from inboxrules import db
from inboxrules.errors import ValidationError
from inboxrules.models import (
    ActionType,
    CategoryFilterType,
    ConditionType,
    GroupItemType,
    LogicalOperator,
    RuleAction,
)


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        with patch("inboxrules.db.get_db_path", return_value=db_path):
            db.init_db()
            yield db_path


@pytest.fixture
def user(temp_db):
    return db.add_user("Me@Example.com", about="Bakery owner")


class TestDatabaseInit:
    """Tests for database initialization."""

    def test_init_creates_tables(self, temp_db):
        """Test that init_db creates all required tables."""
        with db.get_db() as conn:
            cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = {row[0] for row in cursor.fetchall()}

        for table in (
            "users",
            "categories",
            "rules",
            "rule_category_filters",
            "rule_actions",
            "rule_groups",
            "group_items",
            "senders",
        ):
            assert table in tables

    def test_init_is_repeatable(self, temp_db):
        db.init_db()


class TestUsers:
    """Tests for user operations."""

    def test_email_normalized(self, user):
        assert user.email == "me@example.com"
        assert db.get_user_by_email("ME@example.com ").id == user.id

    def test_get_user(self, user):
        assert db.get_user(user.id) == user
        assert db.get_user("missing") is None

    def test_update_about(self, user):
        db.update_user_about(user.id, "Runs two bakeries")
        assert db.get_user(user.id).about == "Runs two bakeries"

    def test_duplicate_email(self, user):
        with pytest.raises(sqlite3.IntegrityError):
            db.add_user("me@example.com")


class TestSendersAndCategories:
    """Tests for categories and sender records."""

    def test_categories(self, user):
        db.add_category(user.id, "Newsletter", "Mailing lists")
        db.add_category(user.id, "Cold outreach")

        names = [c.name for c in db.get_categories(user.id)]
        assert names == ["Cold outreach", "Newsletter"]
        assert db.get_category_by_name(user.id, "Newsletter").description == "Mailing lists"
        assert db.get_category_by_name(user.id, "Missing") is None

    def test_unknown_sender(self, user):
        assert db.get_sender("nobody@example.com", user.id) is None

    def test_known_sender_without_category(self, user):
        db.set_sender_category(user.id, "Alice@Example.com", None)
        sender = db.get_sender("alice@example.com", user.id)
        assert sender is not None
        assert sender.category_id is None

    def test_reassign_category(self, user):
        news = db.add_category(user.id, "Newsletter")
        db.set_sender_category(user.id, "alice@example.com", None)
        db.set_sender_category(user.id, "alice@example.com", news.id)
        assert db.get_sender("alice@example.com", user.id).category_id == news.id


class TestRules:
    """Tests for rule operations."""

    def test_add_and_get_rule(self, user):
        news = db.add_category(user.id, "Newsletter")
        rule = db.add_rule(
            user.id,
            "Newsletters",
            from_="@news\\.",
            instructions="Weekly digests",
            operator=LogicalOperator.OR,
            run_on_threads=True,
            category_filter_type=CategoryFilterType.INCLUDE,
            category_ids=[news.id],
            actions=[RuleAction(type=ActionType.LABEL, label="News"), RuleAction(type=ActionType.ARCHIVE)],
        )

        loaded = db.get_rule(rule.id)
        assert loaded is not None
        assert loaded.from_ == "@news\\."
        assert loaded.conditional_operator == LogicalOperator.OR
        assert loaded.run_on_threads
        assert loaded.category_filter_type == CategoryFilterType.INCLUDE
        assert [c.name for c in loaded.category_filters] == ["Newsletter"]
        assert [a.type for a in loaded.actions] == [ActionType.LABEL, ActionType.ARCHIVE]
        assert loaded.actions[0].label == "News"
        assert loaded.condition_types == frozenset(
            {ConditionType.STATIC, ConditionType.CATEGORY, ConditionType.AI}
        )

    def test_rules_in_position_order(self, user):
        db.add_rule(user.id, "First", subject="a")
        db.add_rule(user.id, "Second", subject="b")
        db.add_rule(user.id, "Top", subject="c", position=-1)

        assert [r.name for r in db.get_rules(user.id)] == ["Top", "First", "Second"]
        assert [r.position for r in db.get_rules(user.id)] == [-1, 0, 1]

    def test_invalid_regex_rejected(self, user):
        with pytest.raises(ValidationError) as exc_info:
            db.add_rule(user.id, "Broken", subject="(unterminated")
        assert exc_info.value.details["field"] == "subject"
        assert db.get_rules(user.id) == []

    def test_category_ids_need_filter_type(self, user):
        news = db.add_category(user.id, "Newsletter")
        with pytest.raises(ValidationError):
            db.add_rule(user.id, "News", category_ids=[news.id])

    def test_disabled_rules_hidden_by_default(self, user):
        rule = db.add_rule(user.id, "Invoices", subject="invoice")
        assert db.set_rule_enabled(rule.id, False)

        assert db.get_rules(user.id) == []
        assert [r.id for r in db.get_rules(user.id, include_disabled=True)] == [rule.id]

    def test_delete_rule(self, user):
        rule = db.add_rule(user.id, "Invoices", subject="invoice")
        db.add_group(user.id, "Invoice senders", rule_id=rule.id)

        assert db.delete_rule(rule.id)
        assert db.get_rule(rule.id) is None
        assert db.get_groups_with_rules(user.id) == []
        assert not db.delete_rule(rule.id)


class TestGroups:
    """Tests for group operations."""

    def test_add_group_links_rule(self, user):
        rule = db.add_rule(user.id, "Friends")
        group = db.add_group(user.id, "Friends", rule_id=rule.id)

        assert db.get_rule(rule.id).group_id == group.id
        assert ConditionType.GROUP in db.get_rule(rule.id).condition_types

    def test_items_in_insertion_order(self, user):
        rule = db.add_rule(user.id, "Friends")
        group = db.add_group(user.id, "Friends", rule_id=rule.id)
        db.add_group_item(group.id, GroupItemType.FROM, "alice@example.com")
        db.add_group_item(group.id, GroupItemType.SUBJECT, "Dinner")

        loaded = db.get_group_for_rule(rule.id)
        assert [(i.type, i.value) for i in loaded.items] == [
            (GroupItemType.FROM, "alice@example.com"),
            (GroupItemType.SUBJECT, "Dinner"),
        ]

    def test_remove_group_item(self, user):
        rule = db.add_rule(user.id, "Friends")
        group = db.add_group(user.id, "Friends", rule_id=rule.id)
        item = db.add_group_item(group.id, GroupItemType.FROM, "alice@example.com")

        assert db.remove_group_item(item.id)
        assert db.get_group_for_rule(rule.id).items == []

    def test_groups_with_rules(self, user):
        rule = db.add_rule(user.id, "Friends")
        db.add_group(user.id, "Friends", rule_id=rule.id)
        db.add_group(user.id, "Unlinked")

        groups = db.get_groups_with_rules(user.id)
        assert [(g.name, g.rule_id) for g in groups] == [("Friends", rule.id), ("Unlinked", None)]
