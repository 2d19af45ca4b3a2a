from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import quote

from runbuddy.models import Metrics, RewardImage

logger = logging.getLogger(__name__)

_TRAINING_TAG_RE = re.compile(r"^\s*\[TRAINING:(YES|NO)\]\s*", re.IGNORECASE)

_REQUEST_VERB_RE = re.compile(
    r"(ちょうだい|ちょーだい|頂戴|くれ|ください|送って|ほしい|欲しい|見せて|みせて|見たい|みたい)"
)
_REWARD_NOUN_RE = re.compile(r"(ご褒美|ごほうび)")
_IMAGE_NOUN_RE = re.compile(r"(画像|写真|pic|picture|photo|image)", re.IGNORECASE)

_REWARD_SUFFIXES = (".png", ".jpg", ".jpeg")


class RewardTone(str, Enum):
    SEND = "SEND"
    HOLD = "HOLD"
    NONE = "NONE"


def extract_training_tag(raw: str) -> tuple[str, bool | None]:
    """Strip a leading [TRAINING:YES|NO] tag.

    Returns (clean_text, flag); flag is None and the text is returned
    unchanged when no tag is present.
    """
    m = _TRAINING_TAG_RE.match(raw)
    if not m:
        return raw, None
    return raw[m.end() :], m.group(1).upper() == "YES"


def wants_reward(text: str) -> bool:
    """True when the user asks for a reward or a picture."""
    if not _REQUEST_VERB_RE.search(text):
        return False
    return bool(_REWARD_NOUN_RE.search(text) or _IMAGE_NOUN_RE.search(text))


@dataclass(frozen=True)
class RewardPlan:
    wants_reward: bool
    attach: bool
    tone: RewardTone


class RewardPolicy:
    def __init__(
        self,
        ambient_rate: float = 0.25,
        on_request_rate: float = 0.8,
        rng: random.Random | None = None,
    ):
        self._ambient_rate = ambient_rate
        self._on_request_rate = on_request_rate
        self._rng = rng or random.Random()

    def plan(self, text: str | None) -> RewardPlan:
        """Flip the pre-generation coin. Image events pass text=None."""
        wants = bool(text) and wants_reward(text or "")
        rate = self._on_request_rate if wants else self._ambient_rate
        attach = self._rng.random() < rate
        if attach:
            tone = RewardTone.SEND
        elif wants:
            tone = RewardTone.HOLD
        else:
            tone = RewardTone.NONE
        return RewardPlan(wants_reward=wants, attach=attach, tone=tone)

    @staticmethod
    def should_attach(
        plan: RewardPlan, training_flag: bool | None, metrics: Metrics | None = None
    ) -> bool:
        # A training report always earns the reward, regardless of the draw.
        if training_flag is True:
            return True
        if metrics is not None and metrics.has_signal():
            return True
        return plan.attach


class RewardPool:
    """Reward images available under a directory, read at pick time."""

    def __init__(self, directory: str | Path, rng: random.Random | None = None):
        self._dir = Path(directory)
        self._rng = rng or random.Random()

    def files(self) -> list[str]:
        if not self._dir.is_dir():
            return []
        return sorted(
            p.name for p in self._dir.iterdir() if p.is_file() and p.suffix.lower() in _REWARD_SUFFIXES
        )

    def pick(self, base_url: str) -> RewardImage | None:
        files = self.files()
        if not files:
            logger.debug("Reward pool %s is empty", self._dir)
            return None
        name = self._rng.choice(files)
        url = f"{base_url.rstrip('/')}/rewards/{quote(name)}"
        return RewardImage(original_url=url, preview_url=url)
