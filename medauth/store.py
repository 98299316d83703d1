"""Process-wide ensemble configuration with an atomic replace discipline.

The live :class:`EnsembleConfig` is immutable; every change builds a new
one and swaps it in under a lock, so a combination running concurrently
with a calibration sees either the old or the new config, never a mix.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .aggregate import DEFAULT_THRESHOLD, DEFAULT_WEIGHTS, EnsembleConfig
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

WEIGHTS_KEY = "ensembleWeights"
THRESHOLD_KEY = "ensembleThreshold"


def default_config_path() -> Path:
    p = os.getenv("MEDAUTH_CONFIG_PATH")
    if p:
        return Path(p)
    return Path(os.getenv("DATA_DIR", "/app/data")) / "ensemble_config.json"


def _read_json(p: Path) -> Dict[str, Any]:
    return json.loads(p.read_text(encoding="utf-8"))


class ConfigStore:
    def __init__(self, defaults: Optional[EnsembleConfig] = None, path: Optional[os.PathLike] = None):
        self._defaults = defaults or EnsembleConfig(dict(DEFAULT_WEIGHTS), DEFAULT_THRESHOLD)
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._config = self._defaults

    @property
    def path(self) -> Path:
        return self._path if self._path is not None else default_config_path()

    def current(self) -> EnsembleConfig:
        # reference read; the object itself is never mutated
        return self._config

    def load(self, path: Optional[os.PathLike] = None) -> EnsembleConfig:
        """Merge a persisted configuration over the defaults, if one exists."""
        p = Path(path) if path is not None else self.path
        if not p.exists():
            logger.info("no persisted ensemble config at %s, using defaults", p)
            return self.current()
        try:
            data = _read_json(p)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(str(p), f"unreadable persisted config: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(str(p), "persisted config must be an object")
        weights = data.get(WEIGHTS_KEY) or {}
        if not isinstance(weights, dict):
            raise ConfigurationError(WEIGHTS_KEY, "must be an object")
        threshold = data.get(THRESHOLD_KEY)
        cfg = self._defaults.merged(weights, threshold)
        with self._lock:
            self._config = cfg
        logger.info("loaded ensemble config from %s: %s", p, cfg.to_dict())
        return cfg

    def apply(
        self,
        weights: Optional[Mapping[str, float]] = None,
        threshold: Optional[float] = None,
        persist: bool = False,
    ) -> EnsembleConfig:
        """Key-wise merge ``weights`` (and set ``threshold``) into the live config.

        With ``persist`` the new config is written first and only swapped in
        once the write succeeded; an ``OSError`` leaves the store untouched.
        """
        with self._lock:
            cfg = self._config.merged(weights, threshold)
            if persist:
                self._write(cfg, self.path)
            self._config = cfg
        logger.info("applied ensemble config: %s", cfg.to_dict())
        return cfg

    def replace(self, config: EnsembleConfig) -> EnsembleConfig:
        with self._lock:
            self._config = config
        return config

    def persist(self, path: Optional[os.PathLike] = None) -> Path:
        p = Path(path) if path is not None else self.path
        return self._write(self.current(), p)

    def _write(self, cfg: EnsembleConfig, p: Path) -> Path:
        p.parent.mkdir(parents=True, exist_ok=True)
        payload = {WEIGHTS_KEY: dict(cfg.weights), THRESHOLD_KEY: cfg.threshold}
        tmp = p.with_suffix(p.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, p)
        logger.info("persisted ensemble config to %s", p)
        return p

    def reset(self) -> EnsembleConfig:
        with self._lock:
            self._config = self._defaults
        return self._defaults


_STORE: Optional[ConfigStore] = None
_STORE_LOCK = threading.Lock()


def get_store() -> ConfigStore:
    """The process-wide store, loaded from ``MEDAUTH_CONFIG_PATH`` on first use."""
    global _STORE
    with _STORE_LOCK:
        if _STORE is None:
            st = ConfigStore()
            st.load()
            _STORE = st
        return _STORE


def set_store(store: Optional[ConfigStore]) -> None:
    global _STORE
    with _STORE_LOCK:
        _STORE = store
