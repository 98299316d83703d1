"""Score sources: independent detectors whose opinions get fused."""

from .base import BlockingSource, ScoreSource, StaticSource
from .backend import BackendSource, deep_forensics
from .classical import TraditionalSource
from .enhanced import EnhancedAISource
from .model import OnnxModelSource, onnx_web_source, tensorflow_source

__all__ = [
    "ScoreSource",
    "BlockingSource",
    "StaticSource",
    "TraditionalSource",
    "EnhancedAISource",
    "OnnxModelSource",
    "BackendSource",
    "onnx_web_source",
    "tensorflow_source",
    "deep_forensics",
]
