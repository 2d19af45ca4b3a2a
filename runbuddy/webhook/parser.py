import logging

from runbuddy.models import EventSource, LineEvent, Mentionee

logger = logging.getLogger(__name__)


def _parse_source(raw: dict) -> EventSource:
    return EventSource(
        type=raw.get("type", ""),
        user_id=raw.get("userId"),
        group_id=raw.get("groupId"),
        room_id=raw.get("roomId"),
    )


def _parse_mentionees(message: dict) -> list[Mentionee]:
    mentionees = (message.get("mention") or {}).get("mentionees")
    if not isinstance(mentionees, list):
        return []
    return [
        Mentionee(
            index=m.get("index", 0),
            length=m.get("length", 0),
            type=m.get("type", "user"),
            user_id=m.get("userId"),
        )
        for m in mentionees
        if isinstance(m, dict)
    ]


def extract_events(payload: dict) -> list[LineEvent]:
    """Extract message events from a LINE webhook batch.

    Non-message events (follow, join, postback, ...) are skipped. Message
    kinds other than text and image are kept so the handler can ignore them
    after the redelivery and mention checks.
    """
    events: list[LineEvent] = []
    for raw in payload.get("events", []) or []:
        if not isinstance(raw, dict) or raw.get("type") != "message":
            logger.debug("Skipping non-message event: %s", raw.get("type") if isinstance(raw, dict) else raw)
            continue
        message = raw.get("message") or {}
        events.append(
            LineEvent(
                source=_parse_source(raw.get("source") or {}),
                message_type=message.get("type", ""),
                message_id=str(message.get("id", "")),
                reply_token=raw.get("replyToken"),
                text=message.get("text", "") if message.get("type") == "text" else "",
                mentionees=_parse_mentionees(message),
                is_redelivery=bool((raw.get("deliveryContext") or {}).get("isRedelivery")),
                webhook_event_id=raw.get("webhookEventId"),
                timestamp=raw.get("timestamp", 0),
            )
        )
    return events
