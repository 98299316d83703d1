"""Medical vs non-medical gate and X-ray / MRI / CT typing.

Cheap global statistics on a 256x256 thumbnail: colour, contrast, edge
density, texture, bright/dark artifacts and left-right symmetry each vote
for "medical" or "non-medical"; medical images are then typed by
brightness, edge strength and texture uniformity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

import numpy as np
from PIL import Image

from .preproc import ImageInput

XRAY = "X-ray"
MRI = "MRI"
CT = "CT"
NON_MEDICAL = "Non-Medical"
UNKNOWN = "Unknown"
MEDICAL_TYPES = (XRAY, MRI, CT)

THUMB_SIZE = (256, 256)
COLOR_SAMPLE_RATE = 4
EDGE_STEP = 8
TEXTURE_STEP = 16
SYMMETRY_STEP = 16
ARTIFACT_SAMPLE_RATE = 8

COLOR_DIFF_THRESHOLD = 0.1
EDGE_GRAD_THRESHOLD = 0.1
EDGE_STRONG_THRESHOLD = 0.3
TEXTURE_UNIFORM_TRANSITIONS_MAX = 1
ARTIFACT_RATIO = 0.01
MEDICAL_SCORE_MIN = 0.4
DETAILS_LIMIT = 5


@dataclass(frozen=True)
class ImageTypeResult:
    type: str
    confidence: float
    details: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_medical(self) -> bool:
        return self.type in MEDICAL_TYPES

    def message(self) -> str:
        pct = int(round(self.confidence * 100))
        if self.is_medical:
            return f"This appears to be a {self.type} image ({pct}% confidence)."
        if self.type == NON_MEDICAL:
            return (f"Non-medical image detected ({pct}% confidence). "
                    "Upload an X-ray, MRI or CT scan for a meaningful authenticity analysis.")
        return "Image type could not be determined."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imageType": self.type,
            "imageTypeConfidence": self.confidence,
            "classificationDetails": list(self.details),
        }


def _thumbnail(image: ImageInput) -> np.ndarray:
    thumb = image.pil.resize(THUMB_SIZE, Image.BILINEAR)
    return np.asarray(thumb, dtype=np.float32) / 255.0


def extract_features(rgb: np.ndarray) -> Dict[str, Dict[str, float]]:
    """Feature dict from an RGB array scaled to [0, 1]."""

    H, W, _ = rgb.shape
    flat = rgb.reshape(-1, 3)

    # colour and global statistics on every Nth pixel
    s = flat[::COLOR_SAMPLE_RATE]
    luma = 0.2126 * s[:, 0] + 0.7152 * s[:, 1] + 0.0722 * s[:, 2]
    diff = np.abs(s[:, 0] - s[:, 1]) + np.abs(s[:, 1] - s[:, 2]) + np.abs(s[:, 0] - s[:, 2])
    gray_ratio = float((diff < COLOR_DIFF_THRESHOLD).mean()) if len(s) else 0.0
    stats = {
        "mean": float(luma.mean()) if luma.size else 0.0,
        "std": float(luma.std()) if luma.size else 0.0,
        "range": float(luma.max() - luma.min()) if luma.size else 0.0,
    }
    color = {
        "grayscale_ratio": gray_ratio,
        "color_ratio": 1.0 - gray_ratio if len(s) else 0.0,
    }

    avg = rgb.mean(axis=2)

    ys = np.arange(EDGE_STEP, H - EDGE_STEP, EDGE_STEP)
    xs = np.arange(EDGE_STEP, W - EDGE_STEP, EDGE_STEP)
    if ys.size and xs.size:
        c = avg[np.ix_(ys, xs)]
        grad = np.abs(c - avg[np.ix_(ys, xs + 1)]) + np.abs(c - avg[np.ix_(ys + 1, xs)])
        edges = {
            "density": float((grad > EDGE_GRAD_THRESHOLD).mean()),
            "strong_ratio": float((grad > EDGE_STRONG_THRESHOLD).mean()),
        }
    else:
        edges = {"density": 0.0, "strong_ratio": 0.0}

    ys = np.arange(1, H - 1, TEXTURE_STEP)
    xs = np.arange(1, W - 1, TEXTURE_STEP)
    if ys.size and xs.size:
        c = avg[np.ix_(ys, xs)]
        bits = [
            avg[np.ix_(ys - 1, xs)] > c,
            avg[np.ix_(ys + 1, xs)] > c,
            avg[np.ix_(ys, xs - 1)] > c,
            avg[np.ix_(ys, xs + 1)] > c,
        ]
        transitions = sum((a != b).astype(np.int32) for a, b in zip(bits, bits[1:]))
        uniformity = float((transitions <= TEXTURE_UNIFORM_TRANSITIONS_MAX).mean())
    else:
        uniformity = 0.5

    px = avg.reshape(-1)[::ARTIFACT_SAMPLE_RATE]
    artifacts = {
        "dark_ratio": float((px < 0.1).mean()) if px.size else 0.0,
        "bright_ratio": float((px > 0.9).mean()) if px.size else 0.0,
    }

    xs = np.arange(0, (W + 1) // 2, SYMMETRY_STEP)
    rows = avg[::SYMMETRY_STEP]
    symmetry = float((1.0 - np.abs(rows[:, xs] - rows[:, W - 1 - xs])).mean()) if xs.size else 0.0

    return {
        "statistics": stats,
        "color": color,
        "edges": edges,
        "texture": {"uniformity": uniformity},
        "artifacts": artifacts,
        "anatomy": {"symmetry": symmetry},
    }


def determine_type(features: Dict[str, Dict[str, float]]) -> ImageTypeResult:
    st = features["statistics"]
    col = features["color"]
    edg = features["edges"]
    uni = features["texture"]["uniformity"]
    art = features["artifacts"]
    sym = features["anatomy"]["symmetry"]

    medical = 0.0
    non_medical = 0.0
    details = []

    if col["grayscale_ratio"] > 0.8:
        medical += 0.3
        details.append("Grayscale image (medical characteristic)")
    elif col["color_ratio"] > 0.5:
        non_medical += 0.4
        details.append("Color image (non-medical characteristic)")

    if st["range"] > 0.5:
        medical += 0.3
        details.append("High contrast (medical characteristic)")
    elif st["range"] < 0.2:
        non_medical += 0.3
        details.append("Very low contrast (non-medical characteristic)")

    if 0.03 < edg["density"] < 0.35:
        medical += 0.2
        details.append("Moderate edge density (medical characteristic)")
    elif edg["density"] > 0.5:
        non_medical += 0.3
        details.append("Very high edge density (non-medical characteristic)")

    if art["dark_ratio"] > ARTIFACT_RATIO or art["bright_ratio"] > ARTIFACT_RATIO:
        medical += 0.4
        details.append("Medical artifacts detected (grids, markers)")

    if sym > 0.7:
        medical += 0.3
        details.append("Symmetrical patterns (anatomical characteristic)")

    if 0.3 < uni < 0.9:
        medical += 0.2
        details.append("Medical texture patterns")
    elif uni > 0.95:
        non_medical += 0.2
        details.append("Overly uniform texture (non-medical)")

    if st["mean"] > 0.8:
        non_medical += 0.2
        details.append("Very bright overall (non-medical characteristic)")
    if st["std"] < 0.05:
        non_medical += 0.2
        details.append("Very low variance (non-medical characteristic)")

    if medical > non_medical and medical > MEDICAL_SCORE_MIN:
        xray = mri = ct = 0.0
        if st["mean"] < 0.4:
            xray += 0.4
            details.append("Dark overall appearance (X-ray characteristic)")
        if edg["strong_ratio"] > 0.1:
            ct += 0.3
            details.append("Strong edge patterns (CT characteristic)")
        if uni > 0.7:
            mri += 0.3
            details.append("Uniform texture patterns (MRI characteristic)")
        if xray > mri and xray > ct:
            kind = XRAY
        elif mri > ct:
            kind = MRI
        else:
            kind = CT
        confidence = min(0.95, 0.6 + medical * 0.2)
    else:
        kind = NON_MEDICAL
        confidence = min(0.95, 0.6 + non_medical * 0.2)
        details.append("Appears to be a non-medical image (photo, illustration, object)")

    return ImageTypeResult(kind, round(confidence, 4), tuple(details[:DETAILS_LIMIT]))


def classify_image_type(image: ImageInput) -> ImageTypeResult:
    return determine_type(extract_features(_thumbnail(image)))
