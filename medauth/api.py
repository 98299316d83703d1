"""Public convenience API for analysis and calibration."""

from __future__ import annotations

from typing import List, Optional

from .calibration import CalibrationResult, calibrate_file
from .execution import ParallelConfig
from .pipeline import AnalyzerConfig, analyze_image, analyze_images
from .store import ConfigStore

__all__ = ["analyze", "analyze_batch", "calibrate"]


def analyze(
    image_path: str,
    profile: Optional[AnalyzerConfig] = None,
    *,
    out_dir: Optional[str] = "out",
    parallel_config: Optional[ParallelConfig] = None,
    store: Optional[ConfigStore] = None,
):
    """Analyze a single image and return the fused report."""
    cfg = profile or AnalyzerConfig()
    pc = parallel_config or ParallelConfig()
    return analyze_image(image_path, out_dir, cfg, pc, store)


def analyze_batch(
    image_paths: List[str],
    profile: Optional[AnalyzerConfig] = None,
    *,
    out_dir: str = "out",
    parallel_config: Optional[ParallelConfig] = None,
    store: Optional[ConfigStore] = None,
):
    """Analyze multiple images; one report directory per image under ``out_dir``."""
    cfg = profile or AnalyzerConfig()
    pc = parallel_config or ParallelConfig()
    return analyze_images(image_paths, out_dir, cfg, pc, store)


def calibrate(dataset_path: str, *, store: Optional[ConfigStore] = None, persist: bool = True) -> CalibrationResult:
    """Calibrate weights from a labelled JSON dataset and apply them."""
    return calibrate_file(dataset_path, store=store, persist=persist)
