"""Public package interface for medauth."""

from .aggregate import DEFAULT_THRESHOLD, DEFAULT_WEIGHTS, EnsembleConfig, FusedVerdict, combine, status_for
from .calibration import CalibrationResult, LabeledSample, calibrate, evaluate_dataset, parse_samples
from .execution import ParallelConfig, apply_thread_env, init_onnx_session_opts
from .methods import MethodResult, NormalizedScore
from .normalize import normalize_result, normalize_results
from .pipeline import AnalyzerConfig, analyze_image, analyze_image_async
from .store import ConfigStore, get_store

__all__ = [
    "analyze_image",
    "analyze_image_async",
    "AnalyzerConfig",
    "ParallelConfig",
    "apply_thread_env",
    "init_onnx_session_opts",
    "MethodResult",
    "NormalizedScore",
    "normalize_result",
    "normalize_results",
    "EnsembleConfig",
    "FusedVerdict",
    "DEFAULT_WEIGHTS",
    "DEFAULT_THRESHOLD",
    "combine",
    "status_for",
    "LabeledSample",
    "CalibrationResult",
    "parse_samples",
    "evaluate_dataset",
    "calibrate",
    "ConfigStore",
    "get_store",
]
