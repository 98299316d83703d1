import io

import numpy as np
import pytest
from PIL import Image

from medauth.store import set_store


def make_png(w=192, h=160, seed=0) -> bytes:
    """Noisy gradient, roughly what a downscaled radiograph looks like."""
    rng = np.random.default_rng(seed)
    base = np.linspace(40, 200, w, dtype=np.float32)[None, :].repeat(h, axis=0)
    arr = np.clip(base + rng.normal(0, 12, (h, w)), 0, 255).astype(np.uint8)
    buf = io.BytesIO()
    Image.fromarray(arr, "L").save(buf, "PNG")
    return buf.getvalue()


@pytest.fixture(autouse=True)
def isolated_store(tmp_path, monkeypatch):
    monkeypatch.setenv("MEDAUTH_CONFIG_PATH", str(tmp_path / "ensemble_config.json"))
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("MEDAUTH_BACKEND_URL", raising=False)
    monkeypatch.delenv("MEDAUTH_ENABLE_TENSORFLOW", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    set_store(None)
    yield
    set_store(None)


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def png_path(tmp_path, png_bytes):
    p = tmp_path / "chest.png"
    p.write_bytes(png_bytes)
    return p


@pytest.fixture
def scenario_a():
    return [
        {"label": 1, "components": {"traditional": {"confidence": 30, "aiProbability": 0.8},
                                    "enhancedAI": {"confidence": 25, "aiProbability": 0.85}}},
        {"label": 0, "components": {"traditional": {"confidence": 85, "aiProbability": 0.1},
                                    "enhancedAI": {"confidence": 80, "aiProbability": 0.15}}},
    ]
