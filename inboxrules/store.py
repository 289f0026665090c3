"""Async data-store collaborator used by the matching engine."""

import asyncio
import logging
import sqlite3
from typing import Protocol

from . import db
from .errors import ErrorCode, StoreError
from .models import Group, SenderRecord

logger = logging.getLogger("inboxrules.store")


class RuleStore(Protocol):
    """Keyed lookups the engine needs during an evaluation pass."""

    async def get_groups_with_rules(self, user_id: str) -> list[Group]:
        """Return the user's groups, each joined to its owning rule id."""
        ...

    async def get_sender(self, email: str, user_id: str) -> SenderRecord | None:
        """Return the sender record, or None for an unknown sender."""
        ...


class SqliteRuleStore:
    """RuleStore backed by the local SQLite database.

    Queries run in a worker thread so concurrent evaluations don't block
    the event loop.
    """

    async def get_groups_with_rules(self, user_id: str) -> list[Group]:
        try:
            return await asyncio.to_thread(db.get_groups_with_rules, user_id)
        except sqlite3.Error as e:
            logger.error(
                "Failed to load groups for user %s: %s",
                user_id,
                e,
                extra={"user_id": user_id, "error_type": type(e).__name__},
            )
            raise StoreError(
                code=ErrorCode.STORE_QUERY_ERROR,
                message="Failed to load groups",
                details={"user_id": user_id},
                cause=e,
            ) from e

    async def get_sender(self, email: str, user_id: str) -> SenderRecord | None:
        try:
            return await asyncio.to_thread(db.get_sender, email, user_id)
        except sqlite3.Error as e:
            logger.error(
                "Failed to load sender %s: %s",
                email,
                e,
                extra={"sender": email, "user_id": user_id, "error_type": type(e).__name__},
            )
            raise StoreError(
                code=ErrorCode.STORE_QUERY_ERROR,
                message="Failed to load sender",
                details={"sender": email, "user_id": user_id},
                cause=e,
            ) from e
