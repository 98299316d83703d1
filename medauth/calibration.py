"""Learn ensemble weights and the decision threshold from labelled samples.

The search is deliberately exhaustive: every weight combination on an
11-point grid for the searched methods, crossed with a handful of
thresholds. Datasets are small validation sets and the run is offline, so
reproducibility wins over speed.
"""

from __future__ import annotations

import itertools
import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .aggregate import fuse_scores
from .exceptions import InvalidCalibrationInput, NoViableCalibration
from .methods import (
    ENHANCED_AI, ONNX_WEB, REGISTRY, TENSORFLOW, TRADITIONAL, NormalizedScore, clamp_confidence, clamp_probability,
)
from .normalize import NEUTRAL_AI_PROB, NEUTRAL_SCORE

logger = logging.getLogger(__name__)

WEIGHT_STEPS = (0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0)
THRESHOLDS = (0.4, 0.5, 0.6, 0.7)
SEARCH_METHODS = (TRADITIONAL, ENHANCED_AI, ONNX_WEB)
# tensorflow is held at zero to keep the grid at 11^3
FIXED_WEIGHTS = {TENSORFLOW: 0.0}


@dataclass(frozen=True)
class Component:
    confidence: Optional[float] = None
    ai_probability: Optional[float] = None


@dataclass(frozen=True)
class LabeledSample:
    label: int
    components: Mapping[str, Component]


@dataclass(frozen=True)
class EvaluationMetrics:
    accuracy: float
    f1: float
    precision: float
    recall: float
    true_positives: int
    true_negatives: int
    false_positives: int
    false_negatives: int


@dataclass(frozen=True)
class CalibrationResult:
    weights: Dict[str, float]
    threshold: float
    accuracy: float
    f1: float
    evaluated: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weights": dict(self.weights),
            "threshold": self.threshold,
            "accuracy": self.accuracy,
            "f1": self.f1,
        }


def _channel(value: Any, key: str, index: int, method: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidCalibrationInput(f"components.{method}.{key} must be a number, got {value!r}", index)
    return float(value)


def parse_samples(data: Any) -> List[LabeledSample]:
    """Validate decoded JSON and build :class:`LabeledSample` objects.

    Any structural problem rejects the whole dataset; there are no partial
    runs.
    """
    if not isinstance(data, list):
        raise InvalidCalibrationInput(f"expected a JSON array of samples, got {type(data).__name__}")
    if not data:
        raise InvalidCalibrationInput("dataset is empty")

    samples = []
    for i, raw in enumerate(data):
        if not isinstance(raw, dict):
            raise InvalidCalibrationInput("sample must be an object", i)
        if "label" not in raw:
            raise InvalidCalibrationInput("missing 'label'", i)
        label = raw["label"]
        if isinstance(label, bool):
            label = int(label)
        if label not in (0, 1) or not isinstance(label, int):
            raise InvalidCalibrationInput(f"label must be 0 or 1, got {raw['label']!r}", i)

        comps_raw = raw.get("components")
        if comps_raw is None:
            comps_raw = {}
        if not isinstance(comps_raw, dict):
            raise InvalidCalibrationInput("'components' must be an object", i)
        comps: Dict[str, Component] = {}
        for name, c in comps_raw.items():
            if not isinstance(c, dict):
                raise InvalidCalibrationInput(f"component '{name}' must be an object", i)
            conf = _channel(c.get("confidence"), "confidence", i, name)
            prob = _channel(c.get("aiProbability"), "aiProbability", i, name)
            if conf is None and prob is None:
                raise InvalidCalibrationInput(f"component '{name}' has neither confidence nor aiProbability", i)
            # clamped exactly like live payloads
            comps[REGISTRY.resolve(name)] = Component(
                None if conf is None else clamp_confidence(conf),
                None if prob is None else clamp_probability(prob),
            )
        samples.append(LabeledSample(label=label, components=comps))
    return samples


def load_samples(path) -> List[LabeledSample]:
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InvalidCalibrationInput(f"not valid JSON: {e}")
    except OSError as e:
        raise InvalidCalibrationInput(f"cannot read {p}: {e}")
    return parse_samples(data)


def sample_normalized(sample: LabeledSample, weights: Mapping[str, float]) -> Dict[str, NormalizedScore]:
    """The normalised mapping the live combiner would see for ``sample``."""
    out = {}
    for name in weights:
        c = sample.components.get(name)
        if c is None:
            out[name] = NormalizedScore(NEUTRAL_SCORE, NEUTRAL_AI_PROB)
        else:
            out[name] = NormalizedScore(
                c.confidence if c.confidence is not None else NEUTRAL_SCORE,
                c.ai_probability if c.ai_probability is not None else NEUTRAL_AI_PROB,
            )
    return out


def sample_scores(sample: LabeledSample, weights: Mapping[str, float]) -> Tuple[float, float]:
    return fuse_scores(sample_normalized(sample, weights), weights)


def evaluate_dataset(samples: Sequence[LabeledSample], weights: Mapping[str, float], threshold: float = 0.5) -> EvaluationMetrics:
    tp = tn = fp = fn = 0
    for s in samples:
        _, ai_prob = sample_scores(s, weights)
        pred_ai = ai_prob >= threshold
        is_ai = s.label == 1
        if pred_ai and is_ai:
            tp += 1
        elif pred_ai:
            fp += 1
        elif not is_ai:
            tn += 1
        else:
            fn += 1
    acc = (tp + tn) / max(1, len(samples))
    prec = tp / max(1, tp + fp)
    rec = tp / max(1, tp + fn)
    f1 = (2 * prec * rec) / (prec + rec) if (prec + rec) > 0 else 0.0
    return EvaluationMetrics(acc, f1, prec, rec, tp, tn, fp, fn)


def grid_search(
    samples: Sequence[LabeledSample],
    methods: Sequence[str] = SEARCH_METHODS,
    fixed: Optional[Mapping[str, float]] = None,
    steps: Sequence[float] = WEIGHT_STEPS,
    thresholds: Sequence[float] = THRESHOLDS,
) -> CalibrationResult:
    """Exhaustive search maximising F1, ties broken by accuracy.

    Iteration order is fixed (methods as given, steps and thresholds
    ascending) and only strict improvements replace the incumbent, so the
    first configuration reaching the best (f1, accuracy) pair wins.
    """
    fixed = dict(FIXED_WEIGHTS if fixed is None else fixed)
    if not samples:
        raise InvalidCalibrationInput("dataset is empty")
    considered = set(methods) | set(fixed)
    if not any(name in considered for s in samples for name in s.components):
        raise NoViableCalibration(f"no sample carries any of the calibrated methods {sorted(considered)}")

    best: Optional[CalibrationResult] = None
    evaluated = 0
    for combo in itertools.product(steps, repeat=len(methods)):
        weights = dict(zip(methods, combo))
        for k, v in fixed.items():
            weights.setdefault(k, v)
        if sum(weights.values()) <= 0:
            continue
        for th in thresholds:
            m = evaluate_dataset(samples, weights, th)
            evaluated += 1
            if best is None or m.f1 > best.f1 or (m.f1 == best.f1 and m.accuracy > best.accuracy):
                best = CalibrationResult(dict(weights), th, m.accuracy, m.f1)

    if best is None:
        raise NoViableCalibration("no weight combination with a positive sum")
    logger.info(
        "calibration evaluated %d configurations over %d samples: f1=%.3f accuracy=%.3f threshold=%s weights=%s",
        evaluated, len(samples), best.f1, best.accuracy, best.threshold, best.weights,
    )
    return CalibrationResult(best.weights, best.threshold, best.accuracy, best.f1, evaluated)


def calibrate(samples, **kwargs) -> CalibrationResult:
    """Calibrate from parsed samples or raw decoded JSON."""
    if not (isinstance(samples, list) and samples and all(isinstance(s, LabeledSample) for s in samples)):
        samples = parse_samples(samples)
    return grid_search(samples, **kwargs)


def calibrate_file(path, store=None, persist: bool = True, **kwargs) -> CalibrationResult:
    """Calibrate from a JSON file and apply the winner to ``store``.

    The store is only touched after a successful search.
    """
    from .store import get_store

    result = grid_search(load_samples(path), **kwargs)
    st = store if store is not None else get_store()
    st.apply(result.weights, result.threshold, persist=persist)
    return result
