from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING

from runbuddy.conversation.keys import conversation_key
from runbuddy.line.client import image_message, text_message
from runbuddy.line.media import to_data_url
from runbuddy.llm.client import RateLimitError
from runbuddy.models import ChatMessage, LineEvent, Metrics, RewardImage, Turn
from runbuddy.profiles.prompt_builder import (
    VISION_INSTRUCTION,
    build_context,
    build_system_prompt,
    days_until,
)
from runbuddy.training.metrics import metric_hint, parse_metrics
from runbuddy.training.reward import RewardPlan, extract_training_tag

if TYPE_CHECKING:
    from runbuddy.config import Settings
    from runbuddy.conversation.store import TurnStore
    from runbuddy.line.client import LineClient
    from runbuddy.llm.client import OpenAIClient
    from runbuddy.mention.resolver import AddressingResolver
    from runbuddy.profiles.name_hint import NameHintResolver
    from runbuddy.training.reward import RewardPolicy, RewardPool

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "今は忙しいので、また後で話しかけてね！"
RATE_LIMIT_REPLY = "ごめん、いまAIの上限に達しちゃってる…ちょっと後でまた話しかけて？🙏"
IMAGE_FETCH_FAILED_REPLY = "画像がうまく受け取れなかったみたい…もう一度送ってくれる？"
IMAGE_UTTERANCE = "[画像]"


class EventHandler:
    """Runs one LINE event from admission to reply and memory save."""

    def __init__(
        self,
        settings: Settings,
        line_client: LineClient,
        ai_client: OpenAIClient,
        store: TurnStore,
        addressing: AddressingResolver,
        name_hints: NameHintResolver,
        reward_policy: RewardPolicy,
        reward_pool: RewardPool,
    ):
        self._settings = settings
        self._line = line_client
        self._ai = ai_client
        self._store = store
        self._addressing = addressing
        self._name_hints = name_hints
        self._reward_policy = reward_policy
        self._reward_pool = reward_pool

    async def handle_batch(self, events: Sequence[LineEvent], base_url: str) -> None:
        """Process every event concurrently and wait for all of them.

        A failing event is logged and never cancels its siblings.
        """
        results = await asyncio.gather(
            *(self.handle(event, base_url) for event in events),
            return_exceptions=True,
        )
        for event, result in zip(events, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Event %s failed",
                    event.webhook_event_id or event.message_id,
                    exc_info=(type(result), result, result.__traceback__),
                )

    async def handle(self, event: LineEvent, base_url: str) -> None:
        if event.is_redelivery:
            logger.info("Redelivered event dropped: %s", event.webhook_event_id)
            return

        addressed = await self._addressing.is_addressed(event)
        if self._settings.line_mention_only and not addressed:
            logger.debug("Not addressed, ignoring (%s)", event.source.type)
            return

        logger.info(
            "Incoming [%s/%s] (%s): %s",
            event.source.type,
            event.source.user_id,
            event.message_type,
            event.text[:80] if event.text else "(empty)",
        )

        if event.message_type == "text":
            await self._handle_text(event, addressed, base_url)
        elif event.message_type == "image":
            await self._handle_image(event, addressed, base_url)

    async def _handle_text(self, event: LineEvent, addressed: bool, base_url: str) -> None:
        user_text = event.text
        conv_key = conversation_key(event.source)
        history = await self._load_history(conv_key)
        name_hint = await self._name_hints.resolve(event.source)

        metrics = parse_metrics(user_text)
        plan = self._reward_policy.plan(user_text)
        context = build_context(
            self._system_prompt(name_hint, plan),
            ChatMessage(role="user", content=user_text),
            history,
            metric_hint=metric_hint(metrics),
            history_mode=self._settings.history_mode,
            summary_chars=self._settings.history_summary_chars,
        )
        await self._respond(
            event, context, plan, metrics, conv_key, addressed, user_text, "text", base_url
        )

    async def _handle_image(self, event: LineEvent, addressed: bool, base_url: str) -> None:
        try:
            image_bytes = await self._line.get_message_content(event.message_id)
        except Exception:
            logger.exception("Image content fetch failed")
            image_bytes = b""
        if not image_bytes:
            await self._reply(event, IMAGE_FETCH_FAILED_REPLY)
            return

        conv_key = conversation_key(event.source)
        history = await self._load_history(conv_key)
        name_hint = await self._name_hints.resolve(event.source)

        plan = self._reward_policy.plan(None)
        context = build_context(
            self._system_prompt(name_hint, plan),
            ChatMessage(role="user", content=VISION_INSTRUCTION, images=[to_data_url(image_bytes)]),
            history,
            history_mode=self._settings.history_mode,
            summary_chars=self._settings.history_summary_chars,
        )
        await self._respond(
            event, context, plan, None, conv_key, addressed, IMAGE_UTTERANCE, "image", base_url
        )

    async def _respond(
        self,
        event: LineEvent,
        context: list[ChatMessage],
        plan: RewardPlan,
        metrics: Metrics | None,
        conv_key: str | None,
        addressed: bool,
        user_utterance: str,
        source_kind: str,
        base_url: str,
    ) -> None:
        try:
            raw_reply = await self._ai.chat(
                context,
                max_tokens=self._settings.openai_max_tokens,
                temperature=self._settings.openai_temperature,
            )
        except RateLimitError:
            logger.warning("AI backend rate limited")
            await self._reply(event, RATE_LIMIT_REPLY)
            return
        except Exception:
            logger.exception("AI chat failed")
            raw_reply = FALLBACK_REPLY

        reply, training = extract_training_tag(raw_reply)
        reply = reply.strip() or FALLBACK_REPLY

        reward = None
        if self._reward_policy.should_attach(plan, training, metrics):
            reward = self._reward_pool.pick(self._settings.public_base_url or base_url)
        logger.debug(
            "Reward decision: requested=%s drawn=%s tone=%s training=%s attached=%s",
            plan.wants_reward,
            plan.attach,
            plan.tone.value,
            training,
            reward is not None,
        )

        await self._reply(event, reply, reward)

        if addressed and conv_key:
            turn = Turn(
                user_text=user_utterance,
                bot_text=reply,
                timestamp_ms=int(time.time() * 1000),
                source_kind=source_kind,
            )
            await self._save_turn(conv_key, turn)

    async def _reply(
        self, event: LineEvent, text: str, reward: RewardImage | None = None
    ) -> None:
        if not event.reply_token:
            logger.warning("Event without reply token, cannot answer: %s", event.message_id)
            return
        messages = [text_message(text)]
        if reward is not None:
            messages.append(image_message(reward))
        await self._line.reply(event.reply_token, messages)

    def _system_prompt(self, name_hint: str | None, plan: RewardPlan) -> str:
        race_date = self._settings.race_date
        return build_system_prompt(
            self._settings.persona_prompt,
            name_hint,
            plan.tone,
            race_name=self._settings.race_name,
            days_left=days_until(race_date) if race_date else None,
        )

    async def _load_history(self, conv_key: str | None) -> list[Turn]:
        if not conv_key:
            return []
        try:
            return await self._store.load(conv_key)
        except Exception:
            logger.warning("History load failed for %s", conv_key, exc_info=True)
            return []

    async def _save_turn(self, conv_key: str, turn: Turn) -> None:
        try:
            await self._store.save(conv_key, turn)
        except Exception:
            logger.warning("History save failed for %s", conv_key, exc_info=True)
