"""Learned-model sources (``onnxWeb``, ``tensorflow``) backed by ONNX Runtime.

The model is opaque: an RGB tensor goes in, either ``[authentic, ai]``
probabilities or a single AI logit/probability comes out.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

import numpy as np
import onnxruntime as ort
from PIL import Image

from ..aggregate import status_for
from ..exceptions import SourceUnavailable
from ..execution import ParallelConfig, init_onnx_session_opts
from ..methods import ONNX_WEB, TENSORFLOW, MethodResult
from ..preproc import ImageInput
from .base import BlockingSource

logger = logging.getLogger(__name__)


def _mock_forward(x: np.ndarray) -> np.ndarray:
    # deterministic stand-in: smoother inputs look more synthetic
    g = x.mean(axis=1)[0]
    rough = float(np.abs(np.diff(g, axis=0)).mean() + np.abs(np.diff(g, axis=1)).mean())
    ai = float(np.clip(1.0 - rough * 8.0, 0.05, 0.95))
    return np.array([[1.0 - ai, ai]], dtype=np.float32)


def to_probability(y: np.ndarray) -> float:
    y = np.asarray(y, dtype=np.float64).reshape(-1)
    if y.size >= 2:
        a, b = float(y[0]), float(y[1])
        if 0.0 <= a <= 1.0 and 0.0 <= b <= 1.0 and abs(a + b - 1.0) < 1e-3:
            return b
        # logits
        m = max(a, b)
        ea, eb = np.exp(a - m), np.exp(b - m)
        return float(eb / (ea + eb))
    if y.size == 1:
        v = float(y[0])
        return v if 0.0 <= v <= 1.0 else float(1.0 / (1.0 + np.exp(-v)))
    raise ValueError("empty model output")


class OnnxModelSource(BlockingSource):
    """Params: ``model_path``, ``input_size`` (default 224), ``mean``/``std``
    per channel (default 0.5), ``mock``."""

    name = ONNX_WEB
    label = "ONNX Runtime"

    def __init__(self, params=None, enabled: bool = True, name: Optional[str] = None,
                 parallel: Optional[ParallelConfig] = None):
        super().__init__(params, enabled)
        if name:
            self.name = name
        self.parallel = parallel or ParallelConfig()
        self._session = self.params.get("session")
        self._lock = threading.Lock()

    def _get_session(self):
        with self._lock:
            if self._session is None:
                mp = self.params.get("model_path")
                if not mp:
                    raise SourceUnavailable(self.name, "model_path not provided")
                try:
                    so = init_onnx_session_opts(self.parallel)
                    self._session = ort.InferenceSession(str(mp), sess_options=so, providers=["CPUExecutionProvider"])
                except Exception as e:
                    raise SourceUnavailable(self.name, f"onnxruntime/model error: {e}", e)
                logger.info("%s model loaded from %s", self.name, mp)
            return self._session

    def _tensor(self, image: ImageInput) -> np.ndarray:
        size = int(self.params.get("input_size", 224))
        mean = np.asarray(self.params.get("mean", [0.5, 0.5, 0.5]), dtype=np.float32)
        std = np.asarray(self.params.get("std", [0.5, 0.5, 0.5]), dtype=np.float32)
        arr = np.asarray(image.pil.resize((size, size), Image.BILINEAR), dtype=np.float32) / 255.0
        arr = (arr - mean) / std
        return np.transpose(arr, (2, 0, 1))[None, ...].astype(np.float32)

    def run(self, image: ImageInput) -> MethodResult:
        x = self._tensor(image)
        if self.params.get("mock"):
            y = _mock_forward(x)
        else:
            sess = self._get_session()
            in_name = sess.get_inputs()[0].name
            y = sess.run(None, {in_name: x})[0]
        ai = float(np.clip(to_probability(y), 0.0, 1.0))
        W, H = image.pil.size
        return MethodResult(
            confidence=int(round((1.0 - ai) * 100)),
            ai_probability=ai,
            status=status_for(ai),
            details=(f"{self.label} model inference completed ({W}x{H})",),
            method=self.label,
        )


def onnx_web_source(params: Dict[str, Any], enabled: bool = True, parallel=None) -> OnnxModelSource:
    return OnnxModelSource(params, enabled, ONNX_WEB, parallel)


def tensorflow_source(params: Dict[str, Any], enabled: bool = True, parallel=None) -> OnnxModelSource:
    src = OnnxModelSource(params, enabled, TENSORFLOW, parallel)
    src.label = "CNN (exported)"
    return src
