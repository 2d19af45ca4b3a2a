from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Protocol

import aiosqlite
from pydantic import ValidationError
from redis.asyncio import Redis

from runbuddy.models import Turn

logger = logging.getLogger(__name__)


class TurnStore(Protocol):
    """Bounded, TTL'd conversation log keyed by conversation key."""

    async def load(self, key: str) -> list[Turn]: ...

    async def save(self, key: str, turn: Turn) -> None: ...

    async def ping(self) -> bool: ...


def _decode_turn(raw: str | bytes) -> Turn | None:
    try:
        return Turn.model_validate_json(raw)
    except ValidationError:
        logger.debug("Skipping unreadable turn: %r", raw[:80])
        return None


class RedisTurnStore:
    """Newest-first Redis list per key; save is one MULTI/EXEC unit."""

    def __init__(self, redis: Redis, max_turns: int = 10, ttl_seconds: int = 604800):
        self._redis = redis
        self._max_turns = max_turns
        self._ttl_seconds = ttl_seconds

    async def save(self, key: str, turn: Turn) -> None:
        payload = turn.model_dump_json()
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lpush(key, payload)
            pipe.ltrim(key, 0, self._max_turns - 1)
            pipe.expire(key, self._ttl_seconds)
            await pipe.execute()

    async def load(self, key: str) -> list[Turn]:
        raw_items = await self._redis.lrange(key, 0, self._max_turns - 1)
        turns = [t for t in (_decode_turn(r) for r in raw_items) if t is not None]
        turns.reverse()
        return turns

    async def ping(self) -> bool:
        return bool(await self._redis.ping())


class SqliteTurnStore:
    """SQLite-backed store for single-instance deployments.

    Every save inserts, trims and refreshes expiry inside one transaction.
    The connection is shared, so saves are serialized through a lock.
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        max_turns: int = 10,
        ttl_seconds: int = 604800,
        clock: Callable[[], float] = time.time,
    ):
        self._conn = conn
        self._max_turns = max_turns
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = asyncio.Lock()

    async def save(self, key: str, turn: Turn) -> None:
        now = self._clock()
        expires_at = now + self._ttl_seconds
        async with self._lock:
            try:
                # Expired logs are dropped entirely before the new turn starts a fresh one.
                await self._conn.execute(
                    "DELETE FROM turns WHERE conv_key = ? AND expires_at <= ?", (key, now)
                )
                await self._conn.execute(
                    "INSERT INTO turns (conv_key, user_text, bot_text, timestamp_ms, source_kind, "
                    "expires_at) VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        key,
                        turn.user_text,
                        turn.bot_text,
                        turn.timestamp_ms,
                        turn.source_kind,
                        expires_at,
                    ),
                )
                await self._conn.execute(
                    "DELETE FROM turns WHERE conv_key = ? AND id NOT IN ("
                    "SELECT id FROM turns WHERE conv_key = ? ORDER BY id DESC LIMIT ?)",
                    (key, key, self._max_turns),
                )
                await self._conn.execute(
                    "UPDATE turns SET expires_at = ? WHERE conv_key = ?", (expires_at, key)
                )
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise

    async def load(self, key: str) -> list[Turn]:
        cursor = await self._conn.execute(
            "SELECT user_text, bot_text, timestamp_ms, source_kind FROM turns "
            "WHERE conv_key = ? AND expires_at > ? ORDER BY id DESC LIMIT ?",
            (key, self._clock(), self._max_turns),
        )
        rows = await cursor.fetchall()
        turns = [
            Turn(user_text=r[0], bot_text=r[1], timestamp_ms=r[2], source_kind=r[3]) for r in rows
        ]
        turns.reverse()
        return turns

    async def purge_expired(self) -> int:
        """Delete expired rows across all keys. Returns the number removed."""
        async with self._lock:
            cursor = await self._conn.execute(
                "DELETE FROM turns WHERE expires_at <= ?", (self._clock(),)
            )
            await self._conn.commit()
        return cursor.rowcount

    async def ping(self) -> bool:
        cursor = await self._conn.execute("SELECT 1")
        return (await cursor.fetchone()) is not None
