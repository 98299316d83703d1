import asyncio
import concurrent.futures as cf
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .aggregate import DETAILS_CAP, combine
from .exceptions import ConfigurationError
from .execution import ParallelConfig, apply_thread_env
from .methods import BACKEND, ENHANCED_AI, ONNX_WEB, REGISTRY, TENSORFLOW, TRADITIONAL, MethodResult
from .metrics import SourceMetrics, Stopwatch, describe_runtime, embed_report_metrics, measure_async
from .modality import UNKNOWN, ImageTypeResult, classify_image_type
from .normalize import normalize_results
from .preproc import ImageInput
from .sources import (
    BackendSource,
    BlockingSource,
    EnhancedAISource,
    ScoreSource,
    StaticSource,
    TraditionalSource,
    onnx_web_source,
    tensorflow_source,
)
from .store import ConfigStore, get_store

logger = logging.getLogger(__name__)


@dataclass
class AnalyzerConfig:
    """Per-request analysis settings.

    ``sources`` maps a method name to ``{"enabled": bool, "params": {...}}``;
    ``weights``/``threshold`` override the live ensemble config for this
    request only; ``external`` carries opinions produced outside the
    pipeline (e.g. an advisory payload) keyed by method name.
    """

    sources: Optional[Dict[str, Any]] = None
    weights: Optional[Dict[str, float]] = None
    threshold: Optional[float] = None
    external: Optional[Dict[str, Dict[str, Any]]] = None
    classify_type: bool = True


def _flag(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() not in ("0", "false", "no", "off")


def _resolved(mapping: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {REGISTRY.resolve(k): v for k, v in (mapping or {}).items()}


def check_method_names(cfg: AnalyzerConfig, sources: Sequence[ScoreSource] = ()) -> None:
    """Register the names of running sources, then reject per-request
    weights or source switches for methods nobody knows."""
    for s in sources:
        REGISTRY.register(s.name)
    for field_name in ("weights", "sources"):
        for name in getattr(cfg, field_name) or {}:
            if name not in REGISTRY:
                raise ConfigurationError(f"{field_name}.{name}", f"unknown method, expected one of {list(REGISTRY.names())}")


def _source_cfg(cfg: AnalyzerConfig, name: str) -> Tuple[Optional[bool], Dict[str, Any]]:
    entry = _resolved(cfg.sources).get(name)
    if not isinstance(entry, dict):
        return None, {}
    return entry.get("enabled"), dict(entry.get("params") or {})


def build_sources(cfg: AnalyzerConfig, parallel: Optional[ParallelConfig] = None) -> List[ScoreSource]:
    """Instantiate every known source in a fixed declaration order.

    Disabled sources stay in the list so the fused mapping always covers
    the same method names.
    """
    pc = parallel or ParallelConfig()
    models_dir = Path(os.getenv("MEDAUTH_MODELS_DIR", "/app/models"))

    en, params = _source_cfg(cfg, TRADITIONAL)
    trad = TraditionalSource(params, True if en is None else bool(en))

    en, params = _source_cfg(cfg, ENHANCED_AI)
    enh = EnhancedAISource(params, True if en is None else bool(en))

    en, params = _source_cfg(cfg, ONNX_WEB)
    default_onnx = os.getenv("MEDAUTH_ONNX_MODEL") or str(models_dir / "medauth_web.onnx")
    params.setdefault("model_path", default_onnx)
    onnx = onnx_web_source(params, True if en is None else bool(en), pc)

    en, params = _source_cfg(cfg, TENSORFLOW)
    params.setdefault("model_path", os.getenv("MEDAUTH_TF_MODEL") or str(models_dir / "medauth_cnn.onnx"))
    tf_on = _flag("MEDAUTH_ENABLE_TENSORFLOW", False) if en is None else bool(en)
    tf = tensorflow_source(params, tf_on, pc)

    en, params = _source_cfg(cfg, BACKEND)
    url = params.get("url") or os.getenv("MEDAUTH_BACKEND_URL")
    be_on = (bool(url) and _flag("MEDAUTH_ENABLE_BACKEND", True)) if en is None else bool(en)
    be = BackendSource(params, be_on)

    sources: List[ScoreSource] = [trad, enh, onnx, tf, be]
    for name, payload in (cfg.external or {}).items():
        REGISTRY.register(name)
        sources.append(StaticSource(name, MethodResult.from_payload(payload)))
    return sources


async def _run_source(src: ScoreSource, image: ImageInput, timeout: float) -> Tuple[Optional[MethodResult], SourceMetrics, Optional[str]]:
    if not src.enabled:
        return None, SourceMetrics(src.name, 0.0, "disabled", 0), None
    sw = Stopwatch()
    try:
        res, metr = await measure_async(lambda: asyncio.wait_for(src.produce(image), timeout), src.name)
        return res, metr, None
    except asyncio.TimeoutError:
        logger.warning("source %s timed out after %.1fs, treating as absent", src.name, timeout)
        return None, SourceMetrics(src.name, sw.elapsed_ms(), "timeout", 0), f"timed out after {timeout}s"
    except Exception as e:
        logger.warning("source %s unavailable: %s", src.name, e)
        return None, SourceMetrics(src.name, sw.elapsed_ms(), "unavailable", 0), str(e)


async def _classify(image: ImageInput, pool: cf.Executor) -> ImageTypeResult:
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(pool, classify_image_type, image)
    except Exception as e:
        logger.warning("image type classification failed: %s", e)
        return ImageTypeResult(UNKNOWN, 0.0, ("Image type could not be determined",))


async def analyze_image_async(
    image: ImageInput,
    cfg: Optional[AnalyzerConfig] = None,
    store: Optional[ConfigStore] = None,
    parallel: Optional[ParallelConfig] = None,
    sources: Optional[List[ScoreSource]] = None,
) -> Dict[str, Any]:
    """Fan out to all sources, wait for every one to settle, then fuse."""
    cfg = cfg or AnalyzerConfig()
    pc = parallel or ParallelConfig()
    st = store or get_store()
    srcs = sources if sources is not None else build_sources(cfg, pc)
    check_method_names(cfg, srcs)
    sw = Stopwatch()

    pool = cf.ThreadPoolExecutor(max_workers=pc.max_workers)
    for s in srcs:
        if isinstance(s, BlockingSource):
            s.executor = pool
    try:
        with apply_thread_env(pc):
            runs = [_run_source(s, image, pc.source_timeout) for s in srcs]
            if cfg.classify_type:
                runs.append(_classify(image, pool))
            settled = await asyncio.gather(*runs, return_exceptions=True)
    finally:
        # a timed-out worker thread may still be running; do not wait for it
        pool.shutdown(wait=False, cancel_futures=True)

    image_type = settled[len(srcs)] if cfg.classify_type else None
    if isinstance(image_type, BaseException):
        image_type = ImageTypeResult(UNKNOWN, 0.0)

    # keyed by declaration order, independent of completion order
    results: Dict[str, Optional[MethodResult]] = {}
    outcomes: Dict[str, Dict[str, Any]] = {}
    metrics: List[SourceMetrics] = []
    for s, item in zip(srcs, settled):
        if isinstance(item, BaseException):
            logger.warning("source %s crashed: %s", s.name, item)
            res, metr, err = None, SourceMetrics(s.name, 0.0, "unavailable", 0), str(item)
        else:
            res, metr, err = item
        results[s.name] = res
        metrics.append(metr)
        outcomes[s.name] = {"status": metr.outcome, "error": err}

    normalized = normalize_results(results)
    config = st.current()
    if cfg.weights or cfg.threshold is not None:
        config = config.merged(_resolved(cfg.weights), cfg.threshold)
    verdict = combine(normalized, config)
    overall = verdict.to_dict()
    if image_type is not None and image_type.type != UNKNOWN and not image_type.is_medical:
        overall["details"] = ([image_type.message()] + overall["details"])[:DETAILS_CAP]

    methods = {}
    for name, res in results.items():
        n = normalized[name]
        methods[name] = {
            **outcomes[name],
            "weight": config.weights.get(name, 0.0),
            "result": res.to_dict() if res is not None else None,
            "normalized": {"score": n.score, "aiProb": n.ai_prob},
        }

    report = {
        "image": os.path.basename(image.filename),
        "overall": overall,
        "methods": methods,
        "unavailable": [n for n, o in outcomes.items() if o["status"] in ("timeout", "unavailable")],
        "config": config.to_dict(),
    }
    if image_type is not None:
        report.update(image_type.to_dict())
    return embed_report_metrics(report, sw.elapsed_ms(), metrics, describe_runtime(pc))


def analyze_image(
    image_path: str,
    out_dir: Optional[str],
    cfg: Optional[AnalyzerConfig] = None,
    parallel: Optional[ParallelConfig] = None,
    store: Optional[ConfigStore] = None,
) -> Dict[str, Any]:
    report = asyncio.run(analyze_image_async(ImageInput.from_path(image_path), cfg, store, parallel))
    if out_dir:
        outp = Path(out_dir)
        outp.mkdir(parents=True, exist_ok=True)
        (outp / "report.json").write_text(json.dumps(report, ensure_ascii=False, indent=2))
    return report


def analyze_images(image_paths: List[str], out_dir: str, cfg: Optional[AnalyzerConfig] = None,
                   parallel: Optional[ParallelConfig] = None, store: Optional[ConfigStore] = None) -> List[Dict[str, Any]]:
    out_root = Path(out_dir)
    out_root.mkdir(parents=True, exist_ok=True)
    return [
        analyze_image(path, str(out_root / Path(path).stem), cfg, parallel, store)
        for path in image_paths
    ]
