import logging
import random

import pytest

from medauth.aggregate import (
    combine, status_for, EnsembleConfig, DEFAULT_WEIGHTS, DEFAULT_THRESHOLD,
    STATUS_AI, STATUS_SUSPICIOUS, STATUS_AUTHENTIC,
)
from medauth.exceptions import ConfigurationError
from medauth.methods import NormalizedScore


def test_weighted_average():
    cfg = EnsembleConfig({"a": 1, "b": 1}, 0.5)
    v = combine({"a": NormalizedScore(80, 0.2), "b": NormalizedScore(40, 0.8)}, cfg)
    assert v.confidence == 60
    assert v.ai_probability == pytest.approx(0.5)


def test_zero_weight_equals_omission():
    cfg = EnsembleConfig({"a": 0.6, "b": 0.4, "c": 0.0}, 0.5)
    base = {"a": NormalizedScore(70, 0.3, ("a1",)), "b": NormalizedScore(20, 0.9, ("b1",))}
    with_c = dict(base, c=NormalizedScore(0, 1.0, ("c1",)))
    assert combine(with_c, cfg) == combine(base, cfg)
    assert "c1" not in combine(with_c, cfg).details


def test_unweighted_method_is_ignored():
    cfg = EnsembleConfig({"a": 1.0}, 0.5)
    v = combine({"a": NormalizedScore(90, 0.1), "unknown": NormalizedScore(0, 1.0)}, cfg)
    assert v.confidence == 90 and v.ai_probability == pytest.approx(0.1)


@pytest.mark.parametrize("p,status", [
    (0.71, STATUS_AI),
    (0.7, STATUS_SUSPICIOUS),
    (0.40001, STATUS_SUSPICIOUS),
    (0.4, STATUS_AUTHENTIC),
    (0.0, STATUS_AUTHENTIC),
    (1.0, STATUS_AI),
])
def test_status_bands(p, status):
    assert status_for(p) == status


def test_all_sources_absent():
    v = combine({}, EnsembleConfig())
    assert v.confidence == 50
    assert v.ai_probability == 0.5
    assert v.status == "Suspicious - Manual Review Recommended"
    assert v.details == ()


def test_degenerate_config_falls_back_to_neutral(caplog):
    cfg = EnsembleConfig({"a": 0.0, "b": 0.0}, 0.5)
    with caplog.at_level(logging.WARNING, logger="medauth.aggregate"):
        v = combine({"a": NormalizedScore(10, 0.9), "b": NormalizedScore(20, 0.8)}, cfg)
    assert (v.confidence, v.ai_probability) == (50, 0.5)
    assert "degenerate" in caplog.text


def test_output_bounds_and_idempotence():
    rng = random.Random(7)
    for _ in range(200):
        names = ["traditional", "enhancedAI", "onnxWeb", "backend"]
        weights = {n: rng.choice([0.0, 0.1, 0.5, 1.0, 3.0]) for n in names}
        norm = {n: NormalizedScore(rng.uniform(0, 100), rng.uniform(0, 1)) for n in names}
        cfg = EnsembleConfig(weights, 0.5)
        v1 = combine(norm, cfg)
        v2 = combine(norm, cfg)
        assert v1 == v2
        assert v1.to_dict() == v2.to_dict()
        assert 0 <= v1.confidence <= 100
        assert 0.0 <= v1.ai_probability <= 1.0


def test_confidence_rounds_half_up():
    cfg = EnsembleConfig({"a": 1, "b": 1}, 0.5)
    v = combine({"a": NormalizedScore(50, 0.5), "b": NormalizedScore(51, 0.5)}, cfg)
    assert v.confidence == 51


def test_details_are_capped():
    cfg = EnsembleConfig({"a": 1, "b": 1}, 0.5)
    norm = {
        "a": NormalizedScore(50, 0.5, tuple(f"a{i}" for i in range(7))),
        "b": NormalizedScore(50, 0.5, tuple(f"b{i}" for i in range(7))),
    }
    v = combine(norm, cfg)
    assert len(v.details) == 10
    assert v.details[:7] == tuple(f"a{i}" for i in range(7))


def test_is_ai_uses_threshold():
    norm = {"a": NormalizedScore(40, 0.6)}
    assert combine(norm, EnsembleConfig({"a": 1}, 0.6)).is_ai is True
    assert combine(norm, EnsembleConfig({"a": 1}, 0.61)).is_ai is False


def test_defaults():
    cfg = EnsembleConfig()
    assert cfg.weights == DEFAULT_WEIGHTS
    assert cfg.threshold == DEFAULT_THRESHOLD
    assert cfg.weights["tensorflow"] == 0.0


def test_config_validation():
    with pytest.raises(ConfigurationError):
        EnsembleConfig({"a": -0.1}, 0.5)
    with pytest.raises(ConfigurationError):
        EnsembleConfig({"a": "heavy"}, 0.5)
    with pytest.raises(ConfigurationError):
        EnsembleConfig({"a": 1.0}, 1.5)


def test_merged_is_keywise():
    cfg = EnsembleConfig().merged({"traditional": 0.9}, 0.6)
    assert cfg.weights["traditional"] == 0.9
    assert cfg.weights["onnxWeb"] == DEFAULT_WEIGHTS["onnxWeb"]
    assert cfg.threshold == 0.6
