"""Classical forensic checks (ELA, noise residual, blockiness, spectrum).

Each check returns ``{"name", "score", "meta", "details"}`` where
``score`` is a suspicion in [0, 1]. :class:`TraditionalSource` averages the
checks into the ``traditional`` method result.
"""

from __future__ import annotations

import io
import logging
from typing import Any, Dict, List, Optional

import numpy as np
from PIL import Image

from ..aggregate import status_for
from ..methods import TRADITIONAL, MethodResult
from ..preproc import ImageInput, PreprocCache
from .base import BlockingSource

logger = logging.getLogger(__name__)


def ela(cache: PreprocCache, params=None) -> Dict[str, Any]:
    """Error level analysis on 8x8 blocks after a JPEG round trip."""

    p = params or {}
    q = int(p.get("quality", 90))
    blk = int(p.get("block", 8))
    high_level = float(p.get("high_level", 15.0))

    if cache.jpeg_bytes is not None and q == 90:
        jpeg = cache.jpeg_bytes
    else:
        buf = io.BytesIO()
        Image.fromarray(cache.img).save(buf, "JPEG", quality=q)
        jpeg = buf.getvalue()
    rec = np.asarray(Image.open(io.BytesIO(jpeg)).convert("RGB"), dtype=np.int16)
    diff = np.abs(cache.img.astype(np.int16) - rec).astype(np.float32).mean(axis=2)

    H, W = diff.shape
    by, bx = H // blk, W // blk
    if by == 0 or bx == 0:
        return {"name": "ela", "score": None, "meta": {"reason": "image smaller than one block"}, "details": []}
    blocks = diff[: by * blk, : bx * blk].reshape(by, blk, bx, blk).mean(axis=(1, 3))
    mean = float(blocks.mean())
    std = float(blocks.std())
    high_ratio = float((blocks > high_level).mean())

    score = min(100.0, mean * 0.5 + std * 1.5 + high_ratio * 100 * 0.3) / 100.0
    details = []
    if high_ratio > 0.2:
        details.append("High ELA block ratio")
    if std > 10:
        details.append("High ELA variability")
    if mean > 5:
        details.append("Elevated average ELA")
    meta = {"quality": q, "block": blk, "mean": mean, "std": std, "high_ratio": high_ratio}
    return {"name": "ela", "score": float(score), "meta": meta, "details": details}


def _haar2d(x):
    H, W = x.shape
    if H % 2 == 1:
        x = np.pad(x, ((0, 1), (0, 0)), mode="edge")
    if W % 2 == 1:
        x = np.pad(x, ((0, 0), (0, 1)), mode="edge")
    a = (x[:, 0::2] + x[:, 1::2]) * 0.5
    d = (x[:, 0::2] - x[:, 1::2]) * 0.5
    LH = (d[0::2, :] + d[1::2, :]) * 0.5
    HL = (a[0::2, :] - a[1::2, :]) * 0.5
    HH = (d[0::2, :] - d[1::2, :]) * 0.5
    return LH, HL, HH


def noise_residual(cache: PreprocCache, params=None) -> Dict[str, Any]:
    """Inconsistency of the local wavelet noise level across the image.

    Acquired scans carry sensor noise everywhere; generated or pasted
    regions tend to be locally too clean or too noisy.
    """

    p = params or {}
    block = int(p.get("block", 32))
    top_percent = float(p.get("top_percent", 5.0))

    arr = cache.gray.astype(np.float32) / 255.0
    LH, HL, HH = _haar2d(arr)
    energy = np.abs(LH) + np.abs(HL) + np.abs(HH)

    H, W = energy.shape
    stds = []
    for y in range(0, H - block + 1, block):
        for x in range(0, W - block + 1, block):
            stds.append(float(np.std(energy[y : y + block, x : x + block])))
    if len(stds) < 4:
        return {"name": "noise_residual", "score": None, "meta": {"reason": "too few blocks"}, "details": []}
    stds = np.asarray(stds, dtype=np.float32)
    med = float(np.median(stds)) + 1e-6
    rel = np.abs(stds - med) / med
    k = max(1, int(len(rel) * top_percent / 100.0))
    topk = np.partition(rel, -k)[-k:]
    score = float(np.clip(topk.mean() / 4.0, 0.0, 1.0))
    flat_ratio = float((stds < 0.25 * med).mean())

    details = []
    if score > 0.5:
        details.append("Inconsistent noise residual across regions")
    if flat_ratio > 0.3:
        details.append(f"Noise-free regions: {flat_ratio * 100:.1f}%")
    meta = {"block": block, "top_percent": top_percent, "median_std": med, "flat_ratio": flat_ratio}
    return {"name": "noise_residual", "score": score, "meta": meta, "details": details}


def blockiness(cache: PreprocCache, params=None) -> Dict[str, Any]:
    p = params or {}
    q = int(p.get("q", 8))

    arr = cache.gray.astype(np.float32)
    gy = np.abs(np.diff(arr, axis=0, prepend=arr[:1, :]))
    gx = np.abs(np.diff(arr, axis=1, prepend=arr[:, :1]))
    rows, cols = np.indices(arr.shape)
    grid = (rows % q == 0) | (cols % q == 0)
    g = gx + gy
    on = g[grid]
    off = g[~grid]
    on_m = float(on.mean()) if on.size else 0.0
    off_m = float(off.mean()) if off.size else 0.0
    std = float(g.std() + 1e-6)
    score = max(0.0, min(1.0, (on_m - off_m) / std))

    details = ["Block compression grid detected"] if score > 0.3 else []
    return {"name": "blockiness", "score": score, "meta": {"q": q, "on_mean": on_m, "off_mean": off_m}, "details": details}


def spectrum(cache: PreprocCache, params=None) -> Dict[str, Any]:
    """High/low frequency energy balance of the grayscale spectrum."""

    p = params or {}
    min_high = float(p.get("min_high_ratio", 0.02))
    max_high = float(p.get("max_high_ratio", 0.35))

    arr = cache.pyramid[1] if len(cache.pyramid) > 1 and max(cache.gray.shape) > 512 else cache.gray
    a = arr.astype(np.float32)
    a = a - a.mean()
    mag = np.abs(np.fft.fftshift(np.fft.fft2(a))) ** 2
    H, W = mag.shape
    yy, xx = np.mgrid[0:H, 0:W]
    r = np.hypot((yy - H / 2) / (H / 2), (xx - W / 2) / (W / 2))
    total = float(mag.sum()) + 1e-12
    high = float(mag[r > 0.5].sum()) / total
    low = float(mag[r < 0.1].sum()) / total

    if high < min_high:
        score = min(1.0, (min_high - high) / min_high)
    elif high > max_high:
        score = min(1.0, (high - max_high) / (1.0 - max_high))
    else:
        score = 0.0
    details = [f"High frequency energy: {high * 100:.1f}%"]
    if high < min_high:
        details.append("Unnaturally smooth spectrum")
    return {"name": "spectrum", "score": float(score), "meta": {"high_ratio": high, "low_ratio": low}, "details": details}


CHECKS = {
    "ela": ela,
    "noise_residual": noise_residual,
    "blockiness": blockiness,
    "spectrum": spectrum,
}


class TraditionalSource(BlockingSource):
    name = TRADITIONAL
    label = "Traditional Analysis"

    def run(self, image: ImageInput) -> MethodResult:
        cache = image.cache
        enabled = self.params.get("checks") or list(CHECKS)
        results: List[Dict[str, Any]] = []
        for name in enabled:
            fn = CHECKS[name]
            try:
                results.append(fn(cache, params=self.params.get(name)))
            except Exception as e:  # a failed check drops out of the mean
                logger.warning("classical check %s failed: %s", name, e)
                results.append({"name": name, "score": None, "meta": {"error": str(e)}, "details": [f"{name} check failed"]})

        scores = [r["score"] for r in results if r["score"] is not None]
        details = [d for r in results for d in r["details"]]
        if not scores:
            return MethodResult(status="Uncertain", details=tuple(details), method=self.label)

        suspicion = float(np.mean(scores))
        # authenticity weighs the worst check more than the mean does
        authenticity = 100.0 * (1.0 - 0.5 * (suspicion + max(scores)))
        return MethodResult(
            confidence=int(round(max(0.0, min(100.0, authenticity)))),
            ai_probability=suspicion,
            status=status_for(suspicion),
            details=tuple(details),
            method=self.label,
        )


def check_report(image: ImageInput, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Per-check breakdown used by the deep forensics endpoint."""
    p = params or {}
    return {name: fn(image.cache, params=p.get(name)) for name, fn in CHECKS.items()}
