"""Human readable summaries of calibration runs and fused verdicts."""

import json

from .aggregate import FusedVerdict
from .calibration import CalibrationResult


def format_calibration(result: CalibrationResult, fmt: str = "text") -> str:
    if fmt == "json":
        return json.dumps(result.to_dict(), indent=2)
    weights = ", ".join(f"{k}={v:.1f}" for k, v in result.weights.items())
    return (
        f"Calibration done. Accuracy: {result.accuracy * 100:.1f}% F1: {result.f1:.3f}\n"
        f"Weights: {weights}\n"
        f"Threshold: {result.threshold}"
    )


def format_verdict(verdict: FusedVerdict) -> str:
    lines = [
        f"Status: {verdict.status}",
        f"Confidence: {verdict.confidence}%",
        f"AI probability: {verdict.ai_probability:.3f}",
    ]
    lines += [f"  - {d}" for d in verdict.details]
    return "\n".join(lines)
