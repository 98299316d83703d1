from medauth.methods import MethodResult, REGISTRY
from medauth.normalize import normalize_result, normalize_results, NEUTRAL_SCORE, NEUTRAL_AI_PROB


def test_absent_method_is_neutral():
    n = normalize_result(None)
    assert (n.score, n.ai_prob) == (50, 0.5)
    assert n.details == ()


def test_missing_channels_default_independently():
    n = normalize_result(MethodResult(ai_probability=0.9))
    assert n.score == NEUTRAL_SCORE and n.ai_prob == 0.9
    n = normalize_result(MethodResult(confidence=80))
    assert n.score == 80 and n.ai_prob == NEUTRAL_AI_PROB


def test_channels_are_not_derived_from_each_other():
    # high authenticity and high ai probability may coexist
    n = normalize_result(MethodResult(confidence=90, ai_probability=0.9, details=("x",)))
    assert (n.score, n.ai_prob, n.details) == (90, 0.9, ("x",))


def test_normalize_results_keeps_names_and_order():
    res = {"traditional": MethodResult(confidence=70, ai_probability=0.2), "backend": None}
    out = normalize_results(res)
    assert list(out) == ["traditional", "backend"]
    assert out["backend"].score == 50


def test_from_payload_clamps_and_rounds():
    r = MethodResult.from_payload({"confidence": 150, "aiProbability": -0.3, "details": "single"})
    assert r.confidence == 100 and r.ai_probability == 0.0
    assert r.details == ("single",)
    assert MethodResult.from_payload({"confidence": 72.5}).confidence == 73
    assert MethodResult.from_payload({"confidence": 72.4}).confidence == 72


def test_from_payload_ignores_non_numbers():
    r = MethodResult.from_payload({"confidence": "high", "aiProbability": float("nan")})
    assert r.confidence is None and r.ai_probability is None


def test_registry_resolves_alias():
    assert REGISTRY.resolve("onnx") == "onnxWeb"
    assert "onnx" in REGISTRY
    assert "traditional" in REGISTRY.names()
