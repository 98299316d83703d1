from fastapi.testclient import TestClient
from app.main import app

client = TestClient(app)

def test_missing_api_key(monkeypatch):
    monkeypatch.setenv("API_KEY", "test_key")
    r = client.get("/protected")
    assert r.status_code == 401

def test_wrong_api_key(monkeypatch):
    monkeypatch.setenv("API_KEY", "test_key")
    r = client.get("/protected", headers={"x-api-key": "bad"})
    assert r.status_code == 403

def test_ok_api_key(monkeypatch):
    monkeypatch.setenv("API_KEY", "test_key")
    r = client.get("/protected", headers={"x-api-key": "test_key"})
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_no_api_key_env(monkeypatch):
    monkeypatch.delenv("API_KEY", raising=False)
    r = client.get("/protected")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_config_requires_key(monkeypatch):
    monkeypatch.setenv("API_KEY", "test_key")
    assert client.get("/v1/config").status_code == 401
    r = client.post("/v1/calibrate", files={"file": ("d.json", b"[]", "application/json")})
    assert r.status_code == 401


def test_forensics_endpoint_is_open(monkeypatch):
    # remote backend sources call it without credentials
    monkeypatch.setenv("API_KEY", "test_key")
    r = client.post("/analyze", files={"image": ("x.png", b"garbage", "image/png")})
    assert r.status_code == 200
