"""SQLite database management for inboxrules."""

import re
import sqlite3
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime

from .config import get_db_path
from .errors import ErrorCode, ValidationError
from .models import (
    ActionType,
    Category,
    CategoryFilterType,
    Group,
    GroupItem,
    GroupItemType,
    LogicalOperator,
    Rule,
    RuleAction,
    SenderRecord,
    User,
)


def get_connection() -> sqlite3.Connection:
    """Get a database connection."""
    db_path = get_db_path()
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_db() -> Iterator[sqlite3.Connection]:
    """Context manager for database connections."""
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def _new_id() -> str:
    return uuid.uuid4().hex


def init_db() -> None:
    """Initialize the database schema."""
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT UNIQUE NOT NULL,
                about TEXT,
                created_at TEXT
            );

            -- Sender categories (newsletter, cold outreach, ...)
            CREATE TABLE IF NOT EXISTS categories (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                UNIQUE (user_id, name),
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            -- Automation rules, tried in position order
            CREATE TABLE IF NOT EXISTS rules (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                position INTEGER NOT NULL DEFAULT 0,
                instructions TEXT,
                run_on_threads INTEGER DEFAULT 0,
                conditional_operator TEXT DEFAULT 'AND',
                from_pattern TEXT,
                to_pattern TEXT,
                subject_pattern TEXT,
                body_pattern TEXT,
                group_id TEXT,
                category_filter_type TEXT,
                enabled INTEGER DEFAULT 1,
                created_at TEXT,
                UNIQUE (user_id, name),
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS rule_category_filters (
                rule_id TEXT NOT NULL,
                category_id TEXT NOT NULL,
                PRIMARY KEY (rule_id, category_id),
                FOREIGN KEY (rule_id) REFERENCES rules(id) ON DELETE CASCADE,
                FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS rule_actions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                rule_id TEXT NOT NULL,
                type TEXT NOT NULL,
                label TEXT,
                to_address TEXT,
                content TEXT,
                url TEXT,
                FOREIGN KEY (rule_id) REFERENCES rules(id) ON DELETE CASCADE
            );

            -- Curated groups of senders/subjects, each owned by at most one rule
            CREATE TABLE IF NOT EXISTS rule_groups (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                rule_id TEXT UNIQUE,
                created_at TEXT,
                UNIQUE (user_id, name),
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY (rule_id) REFERENCES rules(id) ON DELETE SET NULL
            );

            CREATE TABLE IF NOT EXISTS group_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id TEXT NOT NULL,
                type TEXT NOT NULL,
                value TEXT NOT NULL,
                created_at TEXT,
                UNIQUE (group_id, type, value),
                FOREIGN KEY (group_id) REFERENCES rule_groups(id) ON DELETE CASCADE
            );

            -- Known senders and their assigned category
            CREATE TABLE IF NOT EXISTS senders (
                email TEXT NOT NULL,
                user_id TEXT NOT NULL,
                category_id TEXT,
                updated_at TEXT,
                PRIMARY KEY (email, user_id),
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE SET NULL
            );
        """)


# --- Users ---


def _row_to_user(row: sqlite3.Row) -> User:
    return User(id=row["id"], email=row["email"], about=row["about"])


def add_user(email: str, about: str | None = None) -> User:
    """Create a user."""
    user = User(id=_new_id(), email=email.strip().lower(), about=about)
    with get_db() as conn:
        conn.execute(
            "INSERT INTO users (id, email, about, created_at) VALUES (?, ?, ?, ?)",
            (user.id, user.email, user.about, datetime.now().isoformat()),
        )
    return user


def get_user(user_id: str) -> User | None:
    """Get a user by id."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _row_to_user(row) if row else None


def get_user_by_email(email: str) -> User | None:
    """Get a user by email address."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
        ).fetchone()
        return _row_to_user(row) if row else None


def update_user_about(user_id: str, about: str | None) -> None:
    """Update the free-text profile passed to the AI."""
    with get_db() as conn:
        conn.execute("UPDATE users SET about = ? WHERE id = ?", (about, user_id))


# --- Categories ---


def _row_to_category(row: sqlite3.Row) -> Category:
    return Category(id=row["id"], name=row["name"], description=row["description"])


def add_category(user_id: str, name: str, description: str | None = None) -> Category:
    """Create a sender category for a user."""
    category = Category(id=_new_id(), name=name, description=description)
    with get_db() as conn:
        conn.execute(
            "INSERT INTO categories (id, user_id, name, description) VALUES (?, ?, ?, ?)",
            (category.id, user_id, name, description),
        )
    return category


def get_categories(user_id: str) -> list[Category]:
    """Get all categories for a user."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM categories WHERE user_id = ? ORDER BY name", (user_id,)
        ).fetchall()
        return [_row_to_category(row) for row in rows]


def get_category_by_name(user_id: str, name: str) -> Category | None:
    """Get a category by its name."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM categories WHERE user_id = ? AND name = ?", (user_id, name)
        ).fetchone()
        return _row_to_category(row) if row else None


# --- Senders ---


def set_sender_category(user_id: str, email: str, category_id: str | None) -> None:
    """Record a sender for a user, optionally with a category."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO senders (email, user_id, category_id, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(email, user_id) DO UPDATE SET
                category_id = excluded.category_id,
                updated_at = excluded.updated_at
        """,
            (email.strip().lower(), user_id, category_id, datetime.now().isoformat()),
        )


def get_sender(email: str, user_id: str) -> SenderRecord | None:
    """Get a known sender. Returns None for senders never recorded."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM senders WHERE email = ? AND user_id = ?",
            (email.strip().lower(), user_id),
        ).fetchone()
        if not row:
            return None
        return SenderRecord(email=row["email"], user_id=row["user_id"], category_id=row["category_id"])


# --- Rules ---


def _validate_pattern(field_name: str, pattern: str | None) -> None:
    if not pattern:
        return
    try:
        re.compile(pattern)
    except re.error as e:
        raise ValidationError(
            code=ErrorCode.VALIDATION_ERROR,
            message=f"Invalid regular expression for {field_name}",
            details={"field": field_name, "pattern": pattern},
            cause=e,
        ) from e


def _load_rule(conn: sqlite3.Connection, row: sqlite3.Row) -> Rule:
    filter_rows = conn.execute(
        """
        SELECT c.* FROM rule_category_filters f
        JOIN categories c ON c.id = f.category_id
        WHERE f.rule_id = ?
        ORDER BY c.name
    """,
        (row["id"],),
    ).fetchall()
    action_rows = conn.execute(
        "SELECT * FROM rule_actions WHERE rule_id = ? ORDER BY id", (row["id"],)
    ).fetchall()

    filter_type = row["category_filter_type"]
    return Rule(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        position=row["position"],
        instructions=row["instructions"],
        run_on_threads=bool(row["run_on_threads"]),
        conditional_operator=LogicalOperator(row["conditional_operator"] or "AND"),
        from_=row["from_pattern"],
        to=row["to_pattern"],
        subject=row["subject_pattern"],
        body=row["body_pattern"],
        group_id=row["group_id"],
        category_filter_type=CategoryFilterType(filter_type) if filter_type else None,
        category_filters=[_row_to_category(r) for r in filter_rows],
        actions=[
            RuleAction(
                type=ActionType(r["type"]),
                label=r["label"],
                to=r["to_address"],
                content=r["content"],
                url=r["url"],
            )
            for r in action_rows
        ],
        enabled=bool(row["enabled"]),
    )


def add_rule(
    user_id: str,
    name: str,
    *,
    from_: str | None = None,
    to: str | None = None,
    subject: str | None = None,
    body: str | None = None,
    instructions: str | None = None,
    operator: LogicalOperator = LogicalOperator.AND,
    run_on_threads: bool = False,
    category_filter_type: CategoryFilterType | None = None,
    category_ids: Iterable[str] = (),
    actions: Iterable[RuleAction] = (),
    position: int | None = None,
) -> Rule:
    """Add a rule. Appended after the user's existing rules unless a position is given.

    Raises:
        ValidationError: If a pattern does not compile.
    """
    for field_name, pattern in (("from", from_), ("to", to), ("subject", subject), ("body", body)):
        _validate_pattern(field_name, pattern)

    category_ids = list(category_ids)
    if category_ids and category_filter_type is None:
        raise ValidationError(
            code=ErrorCode.VALIDATION_ERROR,
            message="Category filters need a filter type (INCLUDE or EXCLUDE)",
            details={"rule": name},
        )

    rule_id = _new_id()
    with get_db() as conn:
        if position is None:
            row = conn.execute(
                "SELECT COALESCE(MAX(position) + 1, 0) AS next FROM rules WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            position = row["next"]

        conn.execute(
            """
            INSERT INTO rules (
                id, user_id, name, position, instructions, run_on_threads,
                conditional_operator, from_pattern, to_pattern, subject_pattern,
                body_pattern, category_filter_type, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                rule_id,
                user_id,
                name,
                position,
                instructions,
                int(run_on_threads),
                operator.value,
                from_,
                to,
                subject,
                body,
                category_filter_type.value if category_filter_type else None,
                datetime.now().isoformat(),
            ),
        )
        conn.executemany(
            "INSERT INTO rule_category_filters (rule_id, category_id) VALUES (?, ?)",
            [(rule_id, category_id) for category_id in category_ids],
        )
        conn.executemany(
            """
            INSERT INTO rule_actions (rule_id, type, label, to_address, content, url)
            VALUES (?, ?, ?, ?, ?, ?)
        """,
            [(rule_id, a.type.value, a.label, a.to, a.content, a.url) for a in actions],
        )
        row = conn.execute("SELECT * FROM rules WHERE id = ?", (rule_id,)).fetchone()
        return _load_rule(conn, row)


def get_rules(user_id: str, include_disabled: bool = False) -> list[Rule]:
    """Get a user's rules in priority order."""
    query = "SELECT * FROM rules WHERE user_id = ?"
    if not include_disabled:
        query += " AND enabled = 1"
    query += " ORDER BY position, created_at"
    with get_db() as conn:
        rows = conn.execute(query, (user_id,)).fetchall()
        return [_load_rule(conn, row) for row in rows]


def get_rule(rule_id: str) -> Rule | None:
    """Get a rule by id."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM rules WHERE id = ?", (rule_id,)).fetchone()
        return _load_rule(conn, row) if row else None


def set_rule_enabled(rule_id: str, enabled: bool) -> bool:
    """Enable or disable a rule. Returns True if the rule exists."""
    with get_db() as conn:
        cursor = conn.execute("UPDATE rules SET enabled = ? WHERE id = ?", (int(enabled), rule_id))
        return cursor.rowcount > 0


def delete_rule(rule_id: str) -> bool:
    """Delete a rule and its group. Returns True if a rule was deleted."""
    with get_db() as conn:
        conn.execute("DELETE FROM rule_groups WHERE rule_id = ?", (rule_id,))
        cursor = conn.execute("DELETE FROM rules WHERE id = ?", (rule_id,))
        return cursor.rowcount > 0


# --- Groups ---


def add_group(user_id: str, name: str, rule_id: str | None = None) -> Group:
    """Create a group, optionally linking it to a rule."""
    group = Group(id=_new_id(), name=name, user_id=user_id, rule_id=rule_id)
    with get_db() as conn:
        conn.execute(
            "INSERT INTO rule_groups (id, user_id, name, rule_id, created_at) VALUES (?, ?, ?, ?, ?)",
            (group.id, user_id, name, rule_id, datetime.now().isoformat()),
        )
        if rule_id:
            conn.execute("UPDATE rules SET group_id = ? WHERE id = ?", (group.id, rule_id))
    return group


def get_group_for_rule(rule_id: str) -> Group | None:
    """Get the group owned by a rule, with its items."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM rule_groups WHERE rule_id = ?", (rule_id,)).fetchone()
        return _load_group(conn, row) if row else None


def add_group_item(group_id: str, item_type: GroupItemType, value: str) -> GroupItem:
    """Append an item to a group."""
    with get_db() as conn:
        cursor = conn.execute(
            "INSERT INTO group_items (group_id, type, value, created_at) VALUES (?, ?, ?, ?)",
            (group_id, item_type.value, value, datetime.now().isoformat()),
        )
        return GroupItem(id=str(cursor.lastrowid), group_id=group_id, type=item_type, value=value)


def remove_group_item(item_id: str) -> bool:
    """Remove a group item."""
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM group_items WHERE id = ?", (int(item_id),))
        return cursor.rowcount > 0


def _load_group(conn: sqlite3.Connection, row: sqlite3.Row) -> Group:
    item_rows = conn.execute(
        "SELECT * FROM group_items WHERE group_id = ? ORDER BY id", (row["id"],)
    ).fetchall()
    return Group(
        id=row["id"],
        name=row["name"],
        user_id=row["user_id"],
        rule_id=row["rule_id"],
        items=[
            GroupItem(
                id=str(r["id"]),
                group_id=r["group_id"],
                type=GroupItemType(r["type"]),
                value=r["value"],
            )
            for r in item_rows
        ],
    )


def get_groups_with_rules(user_id: str) -> list[Group]:
    """Get all of a user's groups with their items and owning rule id."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM rule_groups WHERE user_id = ? ORDER BY created_at, id", (user_id,)
        ).fetchall()
        return [_load_group(conn, row) for row in rows]
