"""Method names and the per-method result record produced by score sources."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

TRADITIONAL = "traditional"
ENHANCED_AI = "enhancedAI"
ONNX_WEB = "onnxWeb"
TENSORFLOW = "tensorflow"
BACKEND = "backend"

# older calibration exports key the browser ONNX model as "onnx"
METHOD_ALIASES = {"onnx": ONNX_WEB}


class MethodRegistry:
    """Known method names. New sources register themselves by name;
    nothing downstream of the normalizer depends on the set being closed."""

    def __init__(self, names: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._names: List[str] = []
        for n in names:
            self.register(n)

    def register(self, name: str) -> str:
        if not name or not isinstance(name, str):
            raise ValueError("method name must be a non-empty string")
        with self._lock:
            if name not in self._names:
                self._names.append(name)
        return name

    def resolve(self, name: str) -> str:
        return METHOD_ALIASES.get(name, name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.resolve(name) in self._names

    def names(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._names)


REGISTRY = MethodRegistry([TRADITIONAL, ENHANCED_AI, ONNX_WEB, TENSORFLOW, BACKEND])


def clamp_confidence(value: float) -> int:
    """Authenticity score clamped to [0, 100] and rounded half-up."""
    return int(math.floor(max(0.0, min(100.0, value)) + 0.5))


def clamp_probability(value: float) -> float:
    return max(0.0, min(1.0, value))


def _opt_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


@dataclass(frozen=True)
class MethodResult:
    """Opinion of a single score source.

    ``confidence`` is authenticity oriented (0-100, higher = more
    authentic); ``ai_probability`` is manipulation oriented (0-1). The two
    channels are independent and may disagree.
    """

    confidence: Optional[int] = None
    ai_probability: Optional[float] = None
    status: Optional[str] = None
    details: Tuple[str, ...] = field(default_factory=tuple)
    method: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "MethodResult":
        """Parse a wire payload (``confidence``/``aiProbability``/``status``/``details``)."""
        conf = _opt_float(payload.get("confidence"))
        prob = _opt_float(payload.get("aiProbability"))
        details = payload.get("details") or ()
        if isinstance(details, str):
            details = (details,)
        return cls(
            confidence=None if conf is None else clamp_confidence(conf),
            ai_probability=None if prob is None else clamp_probability(prob),
            status=payload.get("status"),
            details=tuple(str(d) for d in details),
            method=payload.get("method"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "confidence": self.confidence,
            "aiProbability": self.ai_probability,
            "status": self.status,
            "details": list(self.details),
        }
        if self.method:
            out["method"] = self.method
        return out


@dataclass(frozen=True)
class NormalizedScore:
    score: float
    ai_prob: float
    details: Tuple[str, ...] = ()
