"""Per-message evaluation context holding lazily fetched lookups."""

from ..models import Group, Message, SenderRecord
from ..store import RuleStore

_MISSING = object()


class EvaluationContext:
    """Caches store lookups for a single evaluation pass over one message.

    Each lookup is fetched on first use and then read from memory, so the
    store is hit at most once per user per pass regardless of how many
    rules consult it. Create a new context for every message.
    """

    def __init__(self, store: RuleStore, message: Message):
        self.store = store
        self.message = message
        self._groups: dict[str, list[Group]] = {}
        self._senders: dict[str, SenderRecord | None | object] = {}

    async def get_groups(self, user_id: str) -> list[Group]:
        """Get the user's groups, fetching them on first access."""
        if user_id not in self._groups:
            self._groups[user_id] = await self.store.get_groups_with_rules(user_id)
        return self._groups[user_id]

    async def get_sender(self, user_id: str) -> SenderRecord | None:
        """Get the message sender's record for the user, fetching it on first access.

        None (unknown sender) is cached too.
        """
        cached = self._senders.get(user_id, _MISSING)
        if cached is _MISSING:
            cached = await self.store.get_sender(self.message.from_address, user_id)
            self._senders[user_id] = cached
        return cached
