from medauth.profiles import load_profile
from pathlib import Path
import json
import pytest

PROFILES = Path(__file__).resolve().parent.parent / "profiles"

def test_load_profile_by_name(monkeypatch):
    monkeypatch.setenv("MEDAUTH_PROFILES_DIR", str(PROFILES))
    prof = load_profile("xray-offline")
    assert prof["threshold"] == 0.5
    assert prof["sources"]["backend"]["enabled"] is False


def test_load_profile_alias_fallback(monkeypatch):
    monkeypatch.setenv("MEDAUTH_PROFILES_DIR", str(PROFILES))
    assert load_profile("default@2") == load_profile("default.json")


def test_load_profile_from_path(tmp_path):
    data = {"threshold": 0.5, "sources": {}, "weights": {}}
    p = tmp_path / "custom.json"
    p.write_text(json.dumps(data))
    prof = load_profile(str(p))
    assert prof["threshold"] == 0.5


def test_missing_profile(monkeypatch, tmp_path):
    monkeypatch.setenv("MEDAUTH_PROFILES_DIR", str(tmp_path))
    with pytest.raises(FileNotFoundError):
        load_profile("ct-scan")
