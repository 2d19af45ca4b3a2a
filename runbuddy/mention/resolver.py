from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from runbuddy.cache import TTLCache
from runbuddy.conversation.keys import mention_scope_key
from runbuddy.models import EventSource, LineEvent

if TYPE_CHECKING:
    from runbuddy.line.client import LineClient

logger = logging.getLogger(__name__)


class BotIdentity:
    """Resolves and memoizes the bot's own user ID.

    Only successful lookups are cached; a failed lookup returns None and is
    retried on the next call.
    """

    def __init__(self, line_client: LineClient):
        self._line = line_client
        self._user_id: str | None = None

    async def get(self) -> str | None:
        if self._user_id:
            return self._user_id
        try:
            self._user_id = await self._line.get_bot_user_id()
        except Exception:
            logger.warning("Bot identity lookup failed", exc_info=True)
            return None
        return self._user_id


class MentionGrace:
    """Remembers recent mentions per group/room member scope.

    Lets an image sent right after a mention count as addressed, since
    image messages carry no mention metadata. State is process-local.
    """

    def __init__(self, grace_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self._cache: TTLCache[bool] = TTLCache(grace_seconds, clock=clock)

    def note(self, source: EventSource) -> None:
        key = mention_scope_key(source)
        if key:
            self._cache.set(key, True)

    def is_within(self, source: EventSource) -> bool:
        key = mention_scope_key(source)
        if not key:
            return False
        return self._cache.get(key) is not None


def contains_keyword(text: str, keywords: list[str]) -> bool:
    lower = text.lower()
    return any(k and k.lower() in lower for k in keywords)


class AddressingResolver:
    def __init__(self, bot_identity: BotIdentity, keywords: list[str], grace: MentionGrace):
        self._bot_identity = bot_identity
        self._keywords = keywords
        self._grace = grace

    async def is_mentioned(self, event: LineEvent) -> bool:
        if not event.mentionees:
            return False
        bot_id = await self._bot_identity.get()
        if not bot_id:
            return False
        return any(m.type == "user" and m.user_id == bot_id for m in event.mentionees)

    async def is_addressed(self, event: LineEvent) -> bool:
        """Decide whether the bot is being spoken to.

        Direct messages always are. Group/room text needs a bot mention or a
        keyword, and records a grace entry for the sender's scope. Group/room
        images qualify only inside that grace window.
        """
        if event.source.is_direct:
            return True

        if event.message_type == "text":
            addressed = contains_keyword(event.text, self._keywords) or await self.is_mentioned(
                event
            )
            if addressed:
                self._grace.note(event.source)
            return addressed

        if event.message_type == "image":
            return self._grace.is_within(event.source)

        return False
