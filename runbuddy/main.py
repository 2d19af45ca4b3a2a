import logging
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from redis.asyncio import Redis

from runbuddy.config import Settings
from runbuddy.conversation.store import RedisTurnStore, SqliteTurnStore
from runbuddy.database.db import init_db
from runbuddy.health.router import router as health_router
from runbuddy.line.client import LineClient
from runbuddy.llm.client import OpenAIClient
from runbuddy.logging_config import configure_logging
from runbuddy.mention.resolver import AddressingResolver, BotIdentity, MentionGrace
from runbuddy.profiles.name_hint import NameHintResolver
from runbuddy.training.reward import RewardPolicy, RewardPool
from runbuddy.webhook.handler import EventHandler
from runbuddy.webhook.router import router as webhook_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()

    configure_logging(
        level=settings.log_level, json_format=settings.log_json, log_file=settings.log_file
    )

    http_client = httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=5.0))

    # Conversation memory: Redis when configured, SQLite otherwise
    redis_client: Redis | None = None
    db_conn = None
    if settings.redis_url:
        redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
        turn_store = RedisTurnStore(
            redis_client,
            max_turns=settings.history_max_turns,
            ttl_seconds=settings.history_ttl_seconds,
        )
        logger.info("Conversation memory backed by Redis")
    else:
        Path(settings.database_path).parent.mkdir(parents=True, exist_ok=True)
        db_conn = await init_db(settings.database_path)
        turn_store = SqliteTurnStore(
            db_conn,
            max_turns=settings.history_max_turns,
            ttl_seconds=settings.history_ttl_seconds,
        )
        purged = await turn_store.purge_expired()
        if purged:
            logger.info("Purged %d expired turns", purged)

    line_client = LineClient(http_client=http_client, access_token=settings.line_channel_access_token)
    ai_client = OpenAIClient(
        http_client=http_client,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.openai_model,
    )
    addressing = AddressingResolver(
        bot_identity=BotIdentity(line_client),
        keywords=settings.line_mention_keywords,
        grace=MentionGrace(grace_seconds=settings.mention_grace_seconds),
    )

    app.state.settings = settings
    app.state.http_client = http_client
    app.state.ai_client = ai_client
    app.state.turn_store = turn_store
    app.state.event_handler = EventHandler(
        settings=settings,
        line_client=line_client,
        ai_client=ai_client,
        store=turn_store,
        addressing=addressing,
        name_hints=NameHintResolver(
            line_client, ai_client, ttl_seconds=settings.name_cache_ttl_seconds
        ),
        reward_policy=RewardPolicy(
            ambient_rate=settings.reward_random_rate,
            on_request_rate=settings.reward_on_request_rate,
        ),
        reward_pool=RewardPool(settings.rewards_dir),
    )

    app.mount(
        "/rewards",
        StaticFiles(directory=settings.rewards_dir, check_dir=False),
        name="rewards",
    )
    logger.info(
        "runbuddy ready (mention_only=%s, keywords=%s)",
        settings.line_mention_only,
        settings.line_mention_keywords,
    )

    yield

    if redis_client is not None:
        await redis_client.aclose()
    if db_conn is not None:
        await db_conn.close()
    await http_client.aclose()


app = FastAPI(title="runbuddy", lifespan=lifespan)
app.include_router(health_router)
app.include_router(webhook_router)
