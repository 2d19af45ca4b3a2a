from __future__ import annotations

import re
import unicodedata

from runbuddy.models import Metrics

_DISTANCE_RE = re.compile(r"(\d+(?:\.\d+)?)(?:km|キロ|㌔)", re.IGNORECASE)
_HOURS_RE = re.compile(r"(\d+(?:\.\d+)?)(?:時間|h)", re.IGNORECASE)
_MINUTES_RE = re.compile(r"(\d+)(?:分|min)", re.IGNORECASE)
_PACE_RE = re.compile(r"(\d+)['’:](\d{1,2})/?km", re.IGNORECASE)  # 5'30/km
_REPS_RE = re.compile(r"(\d+)(?:回|reps?)", re.IGNORECASE)


def _normalize(text: str) -> str:
    # NFKC folds full-width digits and punctuation (，．：５) to their ASCII forms.
    text = unicodedata.normalize("NFKC", text)
    return re.sub(r"\s+", "", text)


def parse_metrics(text: str) -> Metrics:
    """Extract training signals (distance, duration, pace, reps) from free text.

    Fields stay None when no matching token exists. Hours and minutes are
    matched independently and summed, so "1時間30分" yields 90 minutes.
    """
    t = _normalize(text)
    metrics = Metrics()

    if m := _DISTANCE_RE.search(t):
        metrics.distance_km = float(m.group(1))

    minutes: int | None = None
    if m := _HOURS_RE.search(t):
        minutes = round(float(m.group(1)) * 60)
    if m := _MINUTES_RE.search(t):
        minutes = (minutes or 0) + int(m.group(1))
    metrics.minutes = minutes

    if m := _PACE_RE.search(t):
        metrics.pace_min_per_km = int(m.group(1)) + int(m.group(2)) / 60

    if m := _REPS_RE.search(t):
        metrics.reps = int(m.group(1))

    return metrics


def metric_hint(metrics: Metrics) -> str:
    """System hint telling the model which numbers were extracted."""
    if not metrics.has_signal():
        return "抽出できる数値は無し。"
    return f"抽出した数値: {metrics.model_dump_json(exclude_none=True)}"
