import importlib.util
import json
import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def _load(name):
    spec = importlib.util.spec_from_file_location(f"cli_{name}", ROOT / "scripts" / f"{name}.py")
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def test_calibrate_cli_json(tmp_path, scenario_a, capsys):
    ds = tmp_path / "labelled.json"
    ds.write_text(json.dumps(scenario_a))
    cfg = tmp_path / "cfg.json"
    rc = _load("calibrate").main([str(ds), "--config", str(cfg), "--format", "json"])
    assert rc == 0
    out = json.loads(capsys.readouterr().out)
    assert set(out) == {"weights", "threshold", "accuracy", "f1"}
    assert out["accuracy"] == 1.0
    assert json.loads(cfg.read_text())["ensembleThreshold"] == out["threshold"]


def test_calibrate_cli_text_no_persist(tmp_path, scenario_a, capsys):
    ds = tmp_path / "labelled.json"
    ds.write_text(json.dumps(scenario_a))
    cfg = tmp_path / "cfg.json"
    rc = _load("calibrate").main([str(ds), "--config", str(cfg), "--no-persist"])
    assert rc == 0
    out = capsys.readouterr().out
    assert out.startswith("Calibration done. Accuracy: 100.0% F1: 1.000")
    assert "Threshold:" in out
    assert not cfg.exists()


def test_calibrate_cli_rejects_bad_dataset(tmp_path, capsys):
    ds = tmp_path / "bad.json"
    ds.write_text('{"label": 1}')
    rc = _load("calibrate").main([str(ds), "--config", str(tmp_path / "cfg.json")])
    assert rc == 2
    assert "Invalid calibration input" in capsys.readouterr().err


def test_calibrate_cli_subprocess(tmp_path, scenario_a):
    ds = tmp_path / "labelled.json"
    ds.write_text(json.dumps(scenario_a))
    cmd = [sys.executable, str(ROOT / "scripts" / "calibrate.py"), str(ds),
           "--config", str(tmp_path / "cfg.json"), "--format", "json"]
    res = subprocess.run(cmd, capture_output=True, text=True, cwd=ROOT,
                         env={**os.environ, "PYTHONPATH": str(ROOT)})
    assert res.returncode == 0, res.stderr
    assert json.loads(res.stdout)["f1"] == 1.0


def test_analyze_cli(tmp_path, png_path, capsys):
    params = tmp_path / "sources.json"
    params.write_text(json.dumps({"onnxWeb": {"params": {"mock": True}}}))
    _load("analyze").main([str(png_path), "-o", str(tmp_path / "out"), "--sources", str(params), "--threshold", "0.6"])
    rep = json.loads(capsys.readouterr().out)
    assert rep["config"]["threshold"] == 0.6
    assert rep["methods"]["onnxWeb"]["status"] == "ok"
    assert (tmp_path / "out" / "report.json").exists()


def test_calibrate_cli_unwritable_config(tmp_path, scenario_a, capsys):
    ds = tmp_path / "labelled.json"
    ds.write_text(json.dumps(scenario_a))
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    rc = _load("calibrate").main([str(ds), "--config", str(blocker / "cfg.json")])
    assert rc == 2
    assert "Calibration failed: cannot persist config" in capsys.readouterr().err
