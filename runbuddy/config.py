import datetime
import math
from typing import Annotated, Literal

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode

DEFAULT_PERSONA_PROMPT = (
    "あなたは「ひとみ」という架空のトップランナー。明るく可愛い天使系の彼女キャラで、タメ口で話す。"
    "絵文字は1個まで。\n"
    "前提: ユーザーはフルマラソンに向けてトレ中。複数人が使うため、投稿者ごとに個別対応する。\n"
    "振る舞い:\n"
    "1) トレ報告（距離/時間/ペース/回数等あり）: 数値を拾って具体的に称賛→次のミニ目標を1つだけ提案"
    "（過負荷NG、+0.5〜1kmや+5〜10分など穏やかに）。\n"
    "2) 雑談/非トレ: みんなのアイドル風に、明るく可愛いタメ口で短く返す。\n"
    "制約: 3行以内。上から目線/説教/無根拠の医療助言/他者比較は禁止。日本語で。"
)


class Settings(BaseSettings):
    # LINE Messaging API
    line_channel_access_token: str
    line_channel_secret: str

    # Mention gate
    line_mention_only: bool = False
    line_mention_keywords: Annotated[list[str], NoDecode] = ["ひとみ", "@ひとみ"]
    mention_grace_seconds: float = 60.0

    @field_validator("line_mention_keywords", mode="before")
    @classmethod
    def parse_keywords(cls, v: object) -> object:
        if isinstance(v, str):
            return [k.strip() for k in v.split(",") if k.strip()]
        return v

    # OpenAI-compatible backend
    openai_api_key: str
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    openai_max_tokens: int = 160
    openai_temperature: float = 0.7
    persona_prompt: str = DEFAULT_PERSONA_PROMPT

    # Race countdown shown in the persona prompt
    race_name: str = "板橋Cityマラソン（フル）"
    race_date: datetime.date | None = datetime.date(2026, 3, 15)

    # Rewards
    reward_random_rate: float = 0.25
    reward_on_request_rate: float = 0.8
    rewards_dir: str = "public/rewards"
    public_base_url: str = ""

    @field_validator("reward_random_rate", "reward_on_request_rate", mode="before")
    @classmethod
    def clamp_rate(cls, v: object, info: ValidationInfo) -> object:
        default = cls.model_fields[info.field_name].default
        try:
            rate = float(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return default
        if not math.isfinite(rate):
            return default
        return min(1.0, max(0.0, rate))

    # Conversation memory
    history_max_turns: int = 10
    history_ttl_seconds: int = 604800
    history_mode: Literal["messages", "summary"] = "messages"
    history_summary_chars: int = 800
    redis_url: str = ""
    database_path: str = "data/runbuddy.db"

    @field_validator("history_max_turns")
    @classmethod
    def clamp_max_turns(cls, v: int) -> int:
        return max(1, min(50, v))

    @field_validator("history_ttl_seconds")
    @classmethod
    def floor_ttl(cls, v: int) -> int:
        return max(60, v)

    # Name hints
    name_cache_ttl_seconds: float = 86400.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True
    log_file: str = ""

    model_config = {"env_file": ".env", "extra": "ignore"}
