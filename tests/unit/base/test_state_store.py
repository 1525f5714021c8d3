import json

from scenariokit.base.state import GLOBAL_RUN_FLAGS_KEY, SUDO_BY_SCENARIO_KEY, StateStore


def test_in_memory_store_defaults():
    store = StateStore()
    assert store.global_run_flags == ""
    assert store.is_sudo_enabled("/work/alpha") is False


def test_flags_persist_across_instances(tmp_path):
    path = tmp_path / "state.json"
    store = StateStore(path, platform="linux")
    store.set_global_run_flags("--fast --seed 1")
    store.set_sudo_enabled("/work/alpha", True)
    store.set_sudo_enabled("/work/beta", True)
    store.set_sudo_enabled("/work/beta", False)

    reloaded = StateStore(path, platform="linux")
    assert reloaded.global_run_flags == "--fast --seed 1"
    assert reloaded.is_sudo_enabled("/work/alpha") is True
    assert reloaded.is_sudo_enabled("/work/beta") is False

    data = json.loads(path.read_text())
    assert data[GLOBAL_RUN_FLAGS_KEY] == "--fast --seed 1"
    assert len(data[SUDO_BY_SCENARIO_KEY]) == 1
    assert not (tmp_path / "state.json.tmp").exists()


def test_windows_keys_ignore_case(tmp_path):
    store = StateStore(tmp_path / "state.json", platform="win32")
    store.set_sudo_enabled("/Work/Alpha", True)
    assert store.is_sudo_enabled("/work/alpha") is True


def test_unreadable_state_file_is_ignored(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{broken")
    store = StateStore(path)
    assert store.global_run_flags == ""
    store.set_global_run_flags("--x")
    assert json.loads(path.read_text())[GLOBAL_RUN_FLAGS_KEY] == "--x"


def test_only_true_flags_are_loaded(tmp_path):
    path = tmp_path / "state.json"
    path.write_text(json.dumps({SUDO_BY_SCENARIO_KEY: {"/a": True, "/b": "yes", "/c": False}}))
    store = StateStore(path, platform="linux")
    assert store.is_sudo_enabled("/a") is True
    assert store.is_sudo_enabled("/b") is False
    assert store.is_sudo_enabled("/c") is False
