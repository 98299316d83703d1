"""Map heterogeneous per-method results onto a common score space."""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from .methods import MethodResult, NormalizedScore

NEUTRAL_SCORE = 50
NEUTRAL_AI_PROB = 0.5


def normalize_result(result: Optional[MethodResult]) -> NormalizedScore:
    """Absent, disabled or failed methods get the neutral prior (50, 0.5)."""
    if result is None:
        return NormalizedScore(NEUTRAL_SCORE, NEUTRAL_AI_PROB)
    score = result.confidence if result.confidence is not None else NEUTRAL_SCORE
    ai_prob = result.ai_probability if result.ai_probability is not None else NEUTRAL_AI_PROB
    return NormalizedScore(score, ai_prob, tuple(result.details))


def normalize_results(results: Mapping[str, Optional[MethodResult]]) -> Dict[str, NormalizedScore]:
    return {name: normalize_result(res) for name, res in results.items()}
