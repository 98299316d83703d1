"""Weighted fusion of normalised per-method scores into one verdict."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .exceptions import ConfigurationError
from .methods import BACKEND, ENHANCED_AI, ONNX_WEB, TENSORFLOW, TRADITIONAL, NormalizedScore
from .normalize import NEUTRAL_AI_PROB, NEUTRAL_SCORE

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS = {
    TRADITIONAL: 0.2,
    ONNX_WEB: 0.3,
    ENHANCED_AI: 0.3,
    BACKEND: 0.2,
    TENSORFLOW: 0.0,
}
DEFAULT_THRESHOLD = 0.5

DETAILS_CAP = 10

# status bands are consumed verbatim by the UI, both bounds exclusive
AI_BAND = 0.7
SUSPICIOUS_BAND = 0.4
STATUS_AI = "Likely AI Generated"
STATUS_SUSPICIOUS = "Suspicious - Manual Review Recommended"
STATUS_AUTHENTIC = "Likely Authentic"


@dataclass(frozen=True)
class EnsembleConfig:
    weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    threshold: float = DEFAULT_THRESHOLD

    def __post_init__(self):
        clean: Dict[str, float] = {}
        for k, v in dict(self.weights).items():
            try:
                w = float(v)
            except (TypeError, ValueError):
                raise ConfigurationError(f"weights.{k}", f"not a number: {v!r}")
            if not math.isfinite(w) or w < 0:
                raise ConfigurationError(f"weights.{k}", f"must be a non-negative number, got {v!r}")
            clean[str(k)] = w
        try:
            thr = float(self.threshold)
        except (TypeError, ValueError):
            raise ConfigurationError("threshold", f"not a number: {self.threshold!r}")
        if not 0.0 <= thr <= 1.0:
            raise ConfigurationError("threshold", f"must be within [0, 1], got {self.threshold!r}")
        object.__setattr__(self, "weights", clean)
        object.__setattr__(self, "threshold", thr)

    def merged(self, weights: Optional[Mapping[str, float]] = None, threshold: Optional[float] = None) -> "EnsembleConfig":
        """Return a copy with ``weights`` overwritten key-wise."""
        w = dict(self.weights)
        if weights:
            w.update(weights)
        return EnsembleConfig(w, self.threshold if threshold is None else threshold)

    def to_dict(self) -> Dict[str, Any]:
        return {"weights": dict(self.weights), "threshold": self.threshold}


@dataclass(frozen=True)
class FusedVerdict:
    confidence: int
    ai_probability: float
    status: str
    details: Tuple[str, ...]
    is_ai: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confidence": self.confidence,
            "aiProbability": self.ai_probability,
            "status": self.status,
            "details": list(self.details),
            "isAI": self.is_ai,
        }


def status_for(ai_probability: float) -> str:
    if ai_probability > AI_BAND:
        return STATUS_AI
    if ai_probability > SUSPICIOUS_BAND:
        return STATUS_SUSPICIOUS
    return STATUS_AUTHENTIC


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def fuse_scores(normalized: Mapping[str, NormalizedScore], weights: Mapping[str, float]) -> Tuple[float, float]:
    """Weighted average of ``(score, ai_prob)`` over the methods that have a weight.

    Shared by the live combiner and the calibrator so both produce
    bit-identical probabilities for the same mapping.
    """
    score_sum = 0.0
    prob_sum = 0.0
    wsum = 0.0
    for name, s in normalized.items():
        w = weights.get(name)
        if w is None:
            continue
        score_sum += float(s.score) * w
        prob_sum += float(s.ai_prob) * w
        wsum += w
    if wsum <= 0:
        # nothing active: every term is zero, report the neutral prior
        return float(NEUTRAL_SCORE), NEUTRAL_AI_PROB
    return score_sum / wsum, prob_sum / wsum


def combine(normalized: Mapping[str, NormalizedScore], config: EnsembleConfig) -> FusedVerdict:
    weights = config.weights
    if normalized and sum(weights.get(n, 0.0) for n in normalized) <= 0:
        logger.warning(
            "degenerate ensemble config: no positive weight among %s, falling back to neutral",
            sorted(normalized),
        )
    score, ai_prob = fuse_scores(normalized, weights)
    confidence = max(0, min(100, round_half_up(score)))
    ai_prob = max(0.0, min(1.0, ai_prob))

    details = []
    for name, s in normalized.items():
        if weights.get(name, 0.0) > 0:
            details.extend(s.details)
    return FusedVerdict(
        confidence=confidence,
        ai_probability=ai_prob,
        status=status_for(ai_prob),
        details=tuple(details[:DETAILS_CAP]),
        is_ai=ai_prob >= config.threshold,
    )
