import json
import threading

import pytest

from medauth.aggregate import EnsembleConfig, DEFAULT_WEIGHTS
from medauth.exceptions import ConfigurationError
from medauth.store import ConfigStore, get_store, set_store, default_config_path


def test_missing_file_keeps_defaults(tmp_path):
    st = ConfigStore(path=tmp_path / "none.json")
    cfg = st.load()
    assert cfg.weights == DEFAULT_WEIGHTS and cfg.threshold == 0.5


def test_load_merges_over_defaults(tmp_path):
    p = tmp_path / "cfg.json"
    p.write_text(json.dumps({"ensembleWeights": {"traditional": 0.9}}))
    cfg = ConfigStore(path=p).load()
    assert cfg.weights["traditional"] == 0.9
    assert cfg.weights["onnxWeb"] == DEFAULT_WEIGHTS["onnxWeb"]
    assert cfg.threshold == 0.5


def test_persist_round_trip(tmp_path):
    p = tmp_path / "sub" / "cfg.json"
    st = ConfigStore(path=p)
    st.apply({"enhancedAI": 0.7, "backend": 0.0}, 0.6, persist=True)
    data = json.loads(p.read_text())
    assert set(data) == {"ensembleWeights", "ensembleThreshold"}
    again = ConfigStore(path=p).load()
    assert again == st.current()
    assert not (tmp_path / "sub" / "cfg.json.tmp").exists()


@pytest.mark.parametrize("content", [
    "{not json",
    json.dumps([1, 2]),
    json.dumps({"ensembleWeights": [0.1]}),
    json.dumps({"ensembleWeights": {"traditional": -1}}),
    json.dumps({"ensembleThreshold": 3}),
])
def test_bad_persisted_config(tmp_path, content):
    p = tmp_path / "cfg.json"
    p.write_text(content)
    st = ConfigStore(path=p)
    with pytest.raises(ConfigurationError):
        st.load()
    assert st.current().weights == DEFAULT_WEIGHTS


def test_invalid_apply_leaves_config(tmp_path):
    st = ConfigStore(path=tmp_path / "cfg.json")
    before = st.current()
    with pytest.raises(ConfigurationError):
        st.apply({"traditional": -0.5})
    assert st.current() is before


def test_reset_and_replace(tmp_path):
    st = ConfigStore(path=tmp_path / "cfg.json")
    st.replace(EnsembleConfig({"traditional": 1.0}, 0.7))
    assert st.current().weights == {"traditional": 1.0}
    assert st.reset().weights == DEFAULT_WEIGHTS


def test_readers_never_see_partial_updates(tmp_path):
    st = ConfigStore(path=tmp_path / "cfg.json")
    a = {n: 0.1 for n in DEFAULT_WEIGHTS}
    b = {n: 0.9 for n in DEFAULT_WEIGHTS}
    st.apply(a, 0.4)
    seen_bad = []
    stop = threading.Event()

    def writer():
        for i in range(2000):
            if i % 2:
                st.apply(a, 0.4)
            else:
                st.apply(b, 0.6)
        stop.set()

    def reader():
        while not stop.is_set():
            cfg = st.current()
            w = dict(cfg.weights)
            if not ((w == a and cfg.threshold == 0.4) or (w == b and cfg.threshold == 0.6)):
                seen_bad.append((w, cfg.threshold))

    threads = [threading.Thread(target=reader) for _ in range(3)] + [threading.Thread(target=writer)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert seen_bad == []


def test_global_store_reads_env_path(tmp_path, monkeypatch):
    p = tmp_path / "global.json"
    p.write_text(json.dumps({"ensembleThreshold": 0.65}))
    monkeypatch.setenv("MEDAUTH_CONFIG_PATH", str(p))
    set_store(None)
    assert default_config_path() == p
    assert get_store().current().threshold == 0.65
    assert get_store() is get_store()


def test_failed_persist_leaves_config(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    st = ConfigStore(path=blocker / "cfg.json")
    before = st.current()
    with pytest.raises(OSError):
        st.apply({"traditional": 0.9}, 0.7, persist=True)
    assert st.current() is before
    assert st.apply({"traditional": 0.9}, 0.7).threshold == 0.7
