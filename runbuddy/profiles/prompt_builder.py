from __future__ import annotations

import datetime
import math

from runbuddy.conversation.history import summarize_turns, turns_to_messages
from runbuddy.models import ChatMessage, Turn
from runbuddy.training.reward import RewardTone

TAG_INSTRUCTION = (
    "開発者向け: 出力の**先頭行**に必ず `[TRAINING:YES]` または `[TRAINING:NO]` を出力し、"
    "その後にユーザー向け本文（3行以内）を続ける。本文以外の注釈は禁止。"
)

VISION_INSTRUCTION = (
    "この画像がトレ記録なら距離/時間/ペース/回数を読み取り、具体的に褒めてミニ目標を1つ。"
    "風景で数値が読めない場合は推測せず寄り添いコメント。日本語、タメ口、3行以内、絵文字は1個まで。"
    "**必ず先頭に [TRAINING:YES|NO] を付ける。**"
)

_TONE_LINES = {
    RewardTone.SEND: "いまご褒美画像を添える予定。本文中に軽く『ご褒美置いとくね』系の一言を自然に含めてOK。",
    RewardTone.HOLD: (
        "今回はご褒美画像は添えない予定。『次はご褒美持ってくるね』等の軽い“お預け”ニュアンスを"
        "1フレーズだけ自然に添えても良い。"
    ),
    RewardTone.NONE: "ご褒美の言及は不要。",
}


def days_until(race_date: datetime.date, now: datetime.datetime | None = None) -> int:
    """Whole days left until race_date (JST midnight), never negative."""
    jst = datetime.timezone(datetime.timedelta(hours=9))
    now = now or datetime.datetime.now(jst)
    race = datetime.datetime.combine(race_date, datetime.time(), tzinfo=jst)
    return max(0, math.ceil((race - now).total_seconds() / 86400))


def build_system_prompt(
    persona: str,
    name_hint: str | None,
    tone: RewardTone,
    race_name: str = "",
    days_left: int | None = None,
) -> str:
    """Persona prompt plus per-request lines for name, race countdown and reward tone."""
    lines = [persona]

    if race_name and days_left:
        lines.append(f"目標レースは『{race_name}』。大会まで残りおよそ {days_left} 日。")
    if name_hint:
        lines.append(f"可能なら文頭で「{name_hint}」と呼びかけること。")
    else:
        lines.append("呼びかけは自然に。")

    lines.append(TAG_INSTRUCTION)
    lines.append(f"開発者向け: ご褒美トーン: {_TONE_LINES[tone]}")
    return "\n".join(lines)


def build_context(
    system_prompt: str,
    user_message: ChatMessage,
    history: list[Turn],
    metric_hint: str | None = None,
    history_mode: str = "messages",
    summary_chars: int = 800,
) -> list[ChatMessage]:
    """Assemble the request: system prompt, hints, prior turns, then the new message."""
    context = [ChatMessage(role="system", content=system_prompt)]
    if metric_hint:
        context.append(ChatMessage(role="system", content=metric_hint))
    if history_mode == "summary":
        if summary := summarize_turns(history, max_chars=summary_chars):
            context.append(ChatMessage(role="system", content=f"これまでの会話:\n{summary}"))
    else:
        context.extend(turns_to_messages(history))
    context.append(user_message)
    return context
