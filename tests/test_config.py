import pytest

from runbuddy.config import Settings

REQUIRED = {
    "line_channel_access_token": "t",
    "line_channel_secret": "s",
    "openai_api_key": "k",
}


def test_keywords_from_env(monkeypatch):
    monkeypatch.setenv("LINE_MENTION_KEYWORDS", " ひとみ, @ひとみ ,,coach")
    settings = Settings(_env_file=None, **REQUIRED)
    assert settings.line_mention_keywords == ["ひとみ", "@ひとみ", "coach"]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("0.5", 0.5), ("1.7", 1.0), ("-2", 0.0), ("nan", 0.25), ("inf", 0.25), ("abc", 0.25)],
)
def test_reward_rate_clamped(monkeypatch, raw, expected):
    monkeypatch.setenv("REWARD_RANDOM_RATE", raw)
    settings = Settings(_env_file=None, **REQUIRED)
    assert settings.reward_random_rate == expected


def test_history_bounds():
    settings = Settings(_env_file=None, history_max_turns=500, history_ttl_seconds=5, **REQUIRED)
    assert settings.history_max_turns == 50
    assert settings.history_ttl_seconds == 60

    settings = Settings(_env_file=None, history_max_turns=0, **REQUIRED)
    assert settings.history_max_turns == 1
