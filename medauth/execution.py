from __future__ import annotations

"""Execution settings for the score-source fan-out and thread usage."""

from dataclasses import dataclass, field
import contextlib
import os
from typing import Dict, Iterator

import onnxruntime as ort


def _env_timeout() -> float:
    try:
        return float(os.getenv("MEDAUTH_SOURCE_TIMEOUT", "30"))
    except ValueError:
        return 30.0


@dataclass
class ParallelConfig:
    """Configuration for concurrent source execution.

    Attributes
    ----------
    max_workers:
        Size of the thread pool running blocking (CPU bound) sources.
    source_timeout:
        Seconds a single source may take before it is treated as absent.
    onnx_intra_threads:
        Number of intra-op threads used by ONNX Runtime sessions.
    onnx_inter_threads:
        Number of inter-op threads used by ONNX Runtime sessions.
    env_thread_caps:
        If ``True`` set environment thread related variables such as
        ``OMP_NUM_THREADS`` to avoid oversubscription.
    """

    max_workers: int = 4
    source_timeout: float = field(default_factory=_env_timeout)
    onnx_intra_threads: int = 1
    onnx_inter_threads: int = 1
    env_thread_caps: bool = True


_THREAD_VARS = [
    "OMP_NUM_THREADS",
    "OPENBLAS_NUM_THREADS",
    "MKL_NUM_THREADS",
    "NUMEXPR_NUM_THREADS",
]


@contextlib.contextmanager
def apply_thread_env(config: ParallelConfig) -> Iterator[None]:
    """Context manager to set/restore environment thread variables."""

    old: Dict[str, str] = {}
    if config.env_thread_caps:
        for v in _THREAD_VARS:
            old[v] = os.environ.get(v, "")
            os.environ[v] = str(config.onnx_intra_threads)
    try:
        yield
    finally:
        if config.env_thread_caps:
            for v, val in old.items():
                if val:
                    os.environ[v] = val
                else:
                    os.environ.pop(v, None)


def init_onnx_session_opts(config: ParallelConfig) -> ort.SessionOptions:
    """Create ONNX Runtime ``SessionOptions`` according to the configuration."""

    opts = ort.SessionOptions()
    opts.intra_op_num_threads = int(config.onnx_intra_threads)
    opts.inter_op_num_threads = int(config.onnx_inter_threads)
    opts.execution_mode = ort.ExecutionMode.ORT_SEQUENTIAL
    return opts
