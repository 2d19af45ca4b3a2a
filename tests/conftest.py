import base64
import hashlib
import hmac
import random
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from runbuddy.config import Settings
from runbuddy.conversation.store import SqliteTurnStore
from runbuddy.database.db import init_db
from runbuddy.main import app
from runbuddy.mention.resolver import AddressingResolver, BotIdentity, MentionGrace
from runbuddy.profiles.name_hint import NameHintResolver
from runbuddy.training.reward import RewardPolicy, RewardPool
from runbuddy.webhook.handler import EventHandler

BOT_USER_ID = "Ubot0000"

TEST_SETTINGS = Settings(
    line_channel_access_token="test_token",
    line_channel_secret="test_secret",
    openai_api_key="sk-test",
    openai_base_url="http://localhost:9999/v1",
    openai_model="test-model",
    line_mention_only=True,
    line_mention_keywords=["ひとみ", "@ひとみ"],
    public_base_url="https://bot.example.com",
    race_date=None,
)


@pytest.fixture
def settings() -> Settings:
    return TEST_SETTINGS


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class SequenceRandom(random.Random):
    """random.Random whose random() replays fixed values."""

    def __init__(self, values: list[float]):
        super().__init__(0)
        self._values = list(values)

    def random(self) -> float:
        return self._values.pop(0) if self._values else 0.999


# --- Async fixtures for unit tests ---


@pytest.fixture
async def db_connection():
    conn = await init_db(":memory:")
    yield conn
    await conn.close()


@pytest.fixture
async def turn_store(db_connection, clock):
    return SqliteTurnStore(db_connection, max_turns=3, ttl_seconds=3600, clock=clock)


@pytest.fixture
def line_client():
    client = MagicMock()
    client.reply = AsyncMock()
    client.get_bot_user_id = AsyncMock(return_value=BOT_USER_ID)
    client.get_display_name = AsyncMock(return_value="山田 太郎")
    client.get_message_content = AsyncMock(return_value=b"\xff\xd8\xff\xe0fakejpeg")
    return client


@pytest.fixture
def ai_client():
    client = MagicMock()
    client.chat = AsyncMock(return_value="[TRAINING:NO] やっほー！")
    return client


@pytest.fixture
def reward_dir(tmp_path):
    rewards = tmp_path / "rewards"
    rewards.mkdir()
    (rewards / "cheer.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    return rewards


def build_handler(
    settings: Settings,
    line_client,
    ai_client,
    store,
    reward_dir,
    draws: list[float] | None = None,
    clock=None,
) -> EventHandler:
    grace = MentionGrace(settings.mention_grace_seconds, clock=clock or time.monotonic)
    return EventHandler(
        settings=settings,
        line_client=line_client,
        ai_client=ai_client,
        store=store,
        addressing=AddressingResolver(BotIdentity(line_client), settings.line_mention_keywords, grace),
        name_hints=NameHintResolver(line_client, ai_client),
        reward_policy=RewardPolicy(
            ambient_rate=settings.reward_random_rate,
            on_request_rate=settings.reward_on_request_rate,
            rng=SequenceRandom(draws or []),
        ),
        reward_pool=RewardPool(reward_dir),
    )


# --- Sync fixture for TestClient-based integration tests ---


@pytest.fixture
def client(settings: Settings, line_client, ai_client, reward_dir) -> TestClient:
    store = MagicMock()
    store.load = AsyncMock(return_value=[])
    store.save = AsyncMock()
    store.ping = AsyncMock(return_value=True)

    app.state.settings = settings
    app.state.ai_client = ai_client
    app.state.turn_store = store
    app.state.event_handler = build_handler(settings, line_client, ai_client, store, reward_dir)

    yield TestClient(app, raise_server_exceptions=False)


def make_line_event(
    text: str = "こんにちは",
    msg_type: str = "text",
    source_type: str = "user",
    user_id: str = "Uuser1",
    group_id: str = "Cgroup1",
    room_id: str = "Rroom1",
    message_id: str = "100001",
    reply_token: str = "reply-token-1",
    mention_user_ids: list[str] | None = None,
    redelivery: bool = False,
) -> dict:
    source: dict = {"type": source_type, "userId": user_id}
    if source_type == "group":
        source["groupId"] = group_id
    elif source_type == "room":
        source["roomId"] = room_id

    message: dict = {"id": message_id, "type": msg_type}
    if msg_type == "text":
        message["text"] = text
        if mention_user_ids:
            message["mention"] = {
                "mentionees": [
                    {"index": 0, "length": 4, "type": "user", "userId": uid}
                    for uid in mention_user_ids
                ]
            }
    elif msg_type == "image":
        message["contentProvider"] = {"type": "line"}

    return {
        "type": "message",
        "mode": "active",
        "timestamp": 1700000000000,
        "webhookEventId": f"evt-{message_id}",
        "deliveryContext": {"isRedelivery": redelivery},
        "replyToken": reply_token,
        "source": source,
        "message": message,
    }


def make_line_payload(*events: dict) -> dict:
    return {"destination": BOT_USER_ID, "events": list(events)}


def sign_payload(payload_bytes: bytes, secret: str = "test_secret") -> str:
    digest = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()
