from __future__ import annotations

from runbuddy.models import EventSource


def _scoped_key(source: EventSource, prefixes: dict[str, str]) -> str | None:
    # Group and room keys always include the user so turns never leak between members.
    if not source.user_id:
        return None
    if source.type == "user":
        return f"{prefixes['user']}:{source.user_id}"
    if source.type == "group" and source.group_id:
        return f"{prefixes['group']}:{source.group_id}:u:{source.user_id}"
    if source.type == "room" and source.room_id:
        return f"{prefixes['room']}:{source.room_id}:u:{source.user_id}"
    return None


def conversation_key(source: EventSource) -> str | None:
    """Key for the persisted conversation log, or None when the source is incomplete."""
    return _scoped_key(source, {"user": "dm", "group": "grp", "room": "room"})


def mention_scope_key(source: EventSource) -> str | None:
    """Key for the in-process mention grace window."""
    return _scoped_key(source, {"user": "user", "group": "group", "room": "room"})
