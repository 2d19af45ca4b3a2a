from pydantic import BaseModel


class ChatMessage(BaseModel):
    role: str  # "system", "user" or "assistant"
    content: str
    images: list[str] | None = None  # data URLs


class EventSource(BaseModel):
    type: str  # "user" (direct), "group" or "room"
    user_id: str | None = None
    group_id: str | None = None
    room_id: str | None = None

    @property
    def is_direct(self) -> bool:
        return self.type == "user"


class Mentionee(BaseModel):
    index: int = 0
    length: int = 0
    type: str = "user"  # "user" or "all"
    user_id: str | None = None


class LineEvent(BaseModel):
    source: EventSource
    message_type: str
    message_id: str
    reply_token: str | None = None
    text: str = ""
    mentionees: list[Mentionee] = []
    is_redelivery: bool = False
    webhook_event_id: str | None = None
    timestamp: int = 0


class Turn(BaseModel):
    user_text: str
    bot_text: str
    timestamp_ms: int
    source_kind: str  # "text", "image" or "other"


class Metrics(BaseModel):
    distance_km: float | None = None
    minutes: int | None = None
    pace_min_per_km: float | None = None
    reps: int | None = None

    def has_signal(self) -> bool:
        return any(
            v is not None for v in (self.distance_km, self.minutes, self.pace_min_per_km, self.reps)
        )


class RewardImage(BaseModel):
    original_url: str
    preview_url: str


class HealthChecks(BaseModel):
    ai_backend: bool
    memory_store: bool


class HealthResponse(BaseModel):
    status: str
    checks: HealthChecks
