"""Image decoding and the preprocessing cache shared by the score sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import io
import threading

import numpy as np
from PIL import Image


@dataclass
class PreprocOptions:
    max_side: int = 1024
    jpeg_quality: int = 90


@dataclass
class PreprocCache:
    """Preprocessed representations of one image.

    Medical images are mostly single channel; ``gray`` is what the
    classical and statistical sources read, ``img`` keeps the RGB view for
    models and ELA.
    """

    img: np.ndarray
    gray: np.ndarray
    pyramid: List[np.ndarray]
    jpeg_bytes: bytes | None = None

    @property
    def size(self):
        return self.gray.shape[1], self.gray.shape[0]


def build_preproc_cache(image: np.ndarray, opts: PreprocOptions) -> PreprocCache:
    """Build a :class:`PreprocCache` from an RGB ``image`` array."""

    pil = Image.fromarray(image)
    W, H = pil.size
    if max(W, H) > opts.max_side:
        scale = opts.max_side / float(max(W, H))
        pil = pil.resize((max(1, int(W * scale)), max(1, int(H * scale))), Image.BILINEAR)

    img_rgb = np.asarray(pil, dtype=np.uint8)
    img_gray = np.asarray(pil.convert("L"), dtype=np.uint8)

    pyramid = [img_gray]
    cur = pil.convert("L")
    while min(cur.size) > 32:
        cur = cur.resize((max(1, cur.size[0] // 2), max(1, cur.size[1] // 2)), Image.BILINEAR)
        pyramid.append(np.asarray(cur, dtype=np.uint8))

    buf = io.BytesIO()
    pil.save(buf, "JPEG", quality=opts.jpeg_quality)

    return PreprocCache(
        img=img_rgb,
        gray=img_gray,
        pyramid=pyramid,
        jpeg_bytes=buf.getvalue(),
    )


@dataclass
class ImageInput:
    """An uploaded image as handed to every score source.

    Sources that need pixels read ``pil``/``cache`` (decoded lazily, once);
    sources that forward the file elsewhere read ``data``.
    """

    data: bytes
    filename: str = "image"
    options: PreprocOptions = field(default_factory=PreprocOptions)
    _pil: Optional[Image.Image] = field(default=None, repr=False)
    _cache: Optional[PreprocCache] = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def from_path(cls, path, options: Optional[PreprocOptions] = None) -> "ImageInput":
        p = Path(path)
        return cls(p.read_bytes(), p.name, options or PreprocOptions())

    @property
    def pil(self) -> Image.Image:
        with self._lock:
            if self._pil is None:
                self._pil = Image.open(io.BytesIO(self.data)).convert("RGB")
            return self._pil

    @property
    def cache(self) -> PreprocCache:
        pil = self.pil
        with self._lock:
            if self._cache is None:
                self._cache = build_preproc_cache(np.asarray(pil), self.options)
            return self._cache
