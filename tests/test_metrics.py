import pytest

from runbuddy.models import Metrics
from runbuddy.training.metrics import metric_hint, parse_metrics


def test_distance_and_minutes():
    m = parse_metrics("3.5km 25分で走った")
    assert m.distance_km == 3.5
    assert m.minutes == 25
    assert m.pace_min_per_km is None
    assert m.reps is None


def test_hours_and_minutes_are_summed():
    assert parse_metrics("1時間30分ジョグ").minutes == 90
    assert parse_metrics("1.5h").minutes == 90


def test_pace():
    m = parse_metrics("10km 5'30/km")
    assert m.distance_km == 10
    assert m.pace_min_per_km == pytest.approx(5.5)


def test_full_width_input_is_normalized():
    m = parse_metrics("５．２キロ　３０分")
    assert m.distance_km == 5.2
    assert m.minutes == 30


def test_katakana_unit_symbol():
    assert parse_metrics("8㌔走った").distance_km == 8


def test_reps():
    assert parse_metrics("スクワット30回").reps == 30
    assert parse_metrics("pushups 20 reps").reps == 20


def test_no_signal():
    m = parse_metrics("今日は雨だったね")
    assert m == Metrics()
    assert m.has_signal() is False


def test_metric_hint():
    assert metric_hint(Metrics()) == "抽出できる数値は無し。"
    hint = metric_hint(parse_metrics("今日は5km、30分走った"))
    assert hint.startswith("抽出した数値: ")
    assert '"distance_km":5.0' in hint
    assert '"minutes":30' in hint
    assert "reps" not in hint
