import json

from medauth.aggregate import FusedVerdict
from medauth.calibration import CalibrationResult
from medauth.report import format_calibration, format_verdict


def test_format_calibration():
    res = CalibrationResult({"traditional": 0.4, "enhancedAI": 0.6}, 0.5, 0.875, 0.8)
    text = format_calibration(res)
    assert text.splitlines() == [
        "Calibration done. Accuracy: 87.5% F1: 0.800",
        "Weights: traditional=0.4, enhancedAI=0.6",
        "Threshold: 0.5",
    ]
    assert json.loads(format_calibration(res, "json"))["accuracy"] == 0.875


def test_format_verdict():
    v = FusedVerdict(63, 0.42, "Suspicious - Manual Review Recommended", ("High ELA variability",), False)
    out = format_verdict(v)
    assert "Confidence: 63%" in out
    assert "  - High ELA variability" in out
