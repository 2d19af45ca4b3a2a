from __future__ import annotations

import json
import logging
import re
import time
import unicodedata
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from runbuddy.cache import TTLCache
from runbuddy.models import ChatMessage, EventSource

if TYPE_CHECKING:
    from runbuddy.line.client import LineClient
    from runbuddy.llm.client import OpenAIClient

logger = logging.getLogger(__name__)

GIVEN_NAME_PROMPT = "\n".join(
    [
        "You extract a likely GIVEN NAME (first name / calling name) from a LINE display name.",
        'Return strict JSON only: {"given_name":"..."}. No prose. No markdown.',
        "Rules:",
        "- If Japanese full name (e.g., 山田 太郎 or 山田太郎), given_name is the likely calling name (太郎).",
        "- If English (John Smith), given_name is the first token (John).",
        "- If nickname in brackets exists (山田太郎（たろ）), prefer bracket content (たろ).",
        "- Strip emojis/symbols. Ignore team/company prefixes.",
        "- If uncertain, choose the shortest natural calling token (<=6 chars) or last 2 Japanese chars.",
        '- If impossible, return {"given_name":null}.',
        "Only output JSON.",
    ]
)

_BRACKET_RE = re.compile(r"[（(［\[【「](.+?)[）)］\]】」]")
_LATIN_RE = re.compile(r"[A-Za-z]")
_MAX_NAME_CHARS = 6


def _strip_symbols(text: str) -> str:
    # Keep letters, digits and spaces; drops emoji, punctuation and decorations.
    kept = [c for c in text if c.isspace() or unicodedata.category(c)[0] in ("L", "N")]
    return " ".join("".join(kept).split())


def guess_given_name_local(display_name: str) -> str | None:
    """Best-effort calling name from a display name without any network call."""
    name = unicodedata.normalize("NFKC", display_name).strip()
    if not name:
        return None

    if m := _BRACKET_RE.search(name):
        nickname = _strip_symbols(m.group(1))
        if nickname:
            return nickname[:_MAX_NAME_CHARS]
        name = _BRACKET_RE.sub(" ", name)

    cleaned = _strip_symbols(name)
    if not cleaned:
        return None
    tokens = cleaned.split()

    if _LATIN_RE.search(tokens[0]):
        return tokens[0]
    if len(tokens) >= 2:
        # Japanese order: family name first, given name last.
        return tokens[-1][:_MAX_NAME_CHARS]
    token = tokens[0]
    if len(token) <= 2:
        return token
    if len(token) <= 4:
        return token[-2:]
    return token[:_MAX_NAME_CHARS]


def parse_given_name(text: str) -> str | None:
    """Parse the model's {"given_name": ...} answer; anything else is None."""
    try:
        obj = json.loads(text)
    except (ValueError, TypeError):
        return None
    if not isinstance(obj, dict):
        return None
    given = obj.get("given_name")
    if not isinstance(given, str):
        return None
    given = given.strip()
    return given or None


@dataclass(frozen=True)
class NameCacheEntry:
    name: str | None
    resolved_at: float


class NameHintResolver:
    """Resolves how to address a user, with a shared TTL cache.

    Negative results are cached too, so an unresolvable display name does
    not trigger an AI call on every message.
    """

    def __init__(
        self,
        line_client: LineClient,
        ai_client: OpenAIClient,
        ttl_seconds: float = 86400.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._line = line_client
        self._ai = ai_client
        self._clock = clock
        self._cache: TTLCache[NameCacheEntry] = TTLCache(ttl_seconds, clock=clock)

    async def guess_with_ai(self, display_name: str) -> str | None:
        messages = [
            ChatMessage(role="system", content=GIVEN_NAME_PROMPT),
            ChatMessage(role="user", content=display_name),
        ]
        try:
            answer = await self._ai.chat(messages, max_tokens=16, temperature=0)
        except Exception:
            logger.warning("Given-name extraction failed", exc_info=True)
            return None
        return parse_given_name(answer)

    async def _fetch_display_name(self, source: EventSource) -> str | None:
        try:
            return await self._line.get_display_name(source)
        except Exception:
            logger.warning("Display name lookup failed for %s", source.user_id, exc_info=True)
            return None

    async def resolve(self, source: EventSource) -> str | None:
        display_name: str | None = None
        if source.user_id:
            key = f"uid:{source.user_id}"
        else:
            display_name = await self._fetch_display_name(source)
            key = f"name:{display_name or ''}"

        if (entry := self._cache.get(key)) is not None:
            return entry.name

        if source.user_id:
            display_name = await self._fetch_display_name(source)

        name: str | None = None
        if display_name:
            name = await self.guess_with_ai(display_name)
            if name is None:
                name = guess_given_name_local(display_name)

        self._cache.set(key, NameCacheEntry(name=name, resolved_at=self._clock()))
        logger.debug("Name hint for %s: %s", key, name)
        return name
