import os
import json
from pathlib import Path
from typing import Any, Dict


def profiles_dir() -> Path:
    # default: /app/profiles in the container
    return Path(os.getenv("MEDAUTH_PROFILES_DIR", "/app/profiles"))


def _read_json(p: Path) -> Dict[str, Any]:
    return json.loads(p.read_text(encoding="utf-8"))


def load_profile(name_or_path: str) -> Dict[str, Any]:
    """
    Load an analysis profile (enabled sources, their params, optional
    ``weights``/``threshold`` overrides):
      - absolute/relative path, or bare name with or without .json
      - '@N' suffix falls back to the base profile (ct-scan@2 -> ct-scan)
      - directory from env MEDAUTH_PROFILES_DIR
    """
    p = Path(name_or_path)
    pdir = profiles_dir()

    if p.suffix == ".json" and p.exists():
        return _read_json(p)
    if p.is_absolute() and p.exists():
        return _read_json(p)

    stem = p.name[:-5] if p.name.endswith(".json") else p.name
    cand = pdir / f"{stem}.json"
    if cand.exists():
        return _read_json(cand)

    core = stem.split("@", 1)[0]
    core_cand = pdir / f"{core}.json"
    if core and core_cand.exists():
        return _read_json(core_cand)

    available = sorted(x.name for x in pdir.glob("*.json"))
    raise FileNotFoundError(
        f"Profile '{name_or_path}' not found. Looked in {pdir}. Available: {available}"
    )
