from __future__ import annotations

from runbuddy.models import ChatMessage, Turn


def turns_to_messages(turns: list[Turn]) -> list[ChatMessage]:
    """Expand turns into alternating user/assistant messages, preserving order."""
    messages: list[ChatMessage] = []
    for turn in turns:
        messages.append(ChatMessage(role="user", content=turn.user_text))
        messages.append(ChatMessage(role="assistant", content=turn.bot_text))
    return messages


def _clip(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def summarize_turns(turns: list[Turn], max_chars: int = 800, per_turn_chars: int = 120) -> str:
    """Render turns as a compact transcript for backends with small context windows.

    Each utterance is clipped to per_turn_chars. Turns are taken newest
    first until the next one would exceed max_chars, then emitted oldest
    to newest.
    """
    blocks: list[str] = []
    used = 0
    for turn in reversed(turns):
        block = f"U: {_clip(turn.user_text, per_turn_chars)}\nA: {_clip(turn.bot_text, per_turn_chars)}"
        if used + len(block) > max_chars:
            break
        blocks.append(block)
        used += len(block) + 1
    blocks.reverse()
    return "\n".join(blocks)
