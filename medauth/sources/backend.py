"""Server-side deep forensics (``backend``).

Client side: :class:`BackendSource` posts the image to a remote
``/analyze`` endpoint and parses the ``MethodResult`` payload. Server side:
:func:`deep_forensics` is what that endpoint computes.
"""

from __future__ import annotations

import io
import logging
import os
from typing import Any, Dict, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from ..methods import BACKEND, MethodResult
from ..exceptions import SourceUnavailable
from ..preproc import ImageInput
from .base import ScoreSource
from .classical import check_report

logger = logging.getLogger(__name__)


def backend_url() -> Optional[str]:
    return os.getenv("MEDAUTH_BACKEND_URL") or None


class BackendSource(ScoreSource):
    """Params: ``url`` (defaults to ``MEDAUTH_BACKEND_URL``), ``timeout`` seconds."""

    name = BACKEND
    label = "Deep Forensics (server)"

    def __init__(self, params=None, enabled: bool = True, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(params, enabled)
        self.transport = transport

    async def produce(self, image: ImageInput) -> MethodResult:
        base = self.params.get("url") or backend_url()
        if not base:
            raise SourceUnavailable(self.name, "backend URL not configured")
        url = base.rstrip("/") + "/analyze"
        timeout = float(self.params.get("timeout", 20.0))
        files = {"image": (image.filename, image.data, "application/octet-stream")}
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                resp = await client.post(url, files=files)
                resp.raise_for_status()
                payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SourceUnavailable(self.name, f"request to {url} failed: {e}", e)
        if not isinstance(payload, dict):
            raise SourceUnavailable(self.name, "backend payload is not an object")

        res = MethodResult.from_payload(payload)
        advisory = payload.get("advisory")
        if advisory:
            res = MethodResult(res.confidence, res.ai_probability, res.status,
                               res.details + (f"Advisory: {advisory}",), res.method or self.label)
        return res


def deep_forensics(data: bytes, filename: str = "image") -> Dict[str, Any]:
    """Payload served to remote :class:`BackendSource` clients."""

    size_kb = round(len(data) / 1024)
    details = [f"File size ~{size_kb}KB"]
    try:
        Image.open(io.BytesIO(data)).verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        return {"confidence": 40, "status": "Uncertain", "details": details + ["File could not be decoded"]}

    image = ImageInput(data, filename)
    checks = check_report(image)
    scored = [c["score"] for c in checks.values() if c["score"] is not None]
    ai = sum(scored) / len(scored) if scored else 0.5
    confidence = int(round(100 * (1.0 - ai)))
    if size_kb < 50:
        confidence = min(confidence, 40)
        details.append("Very small file (suspicious)")
    for c in checks.values():
        details.extend(c["details"])
    status = "Likely Authentic" if confidence >= 70 else "Uncertain" if confidence >= 40 else "Likely AI Generated"
    return {"confidence": confidence, "aiProbability": ai, "status": status, "details": details, "method": BackendSource.label}
