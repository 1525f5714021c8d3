import json
import os

import pytest

from scenariokit.base.profile import (
    DEFAULT_RUN_COMMAND_TEMPLATE,
    ProfileStore,
    ProgramProfile,
    find_python_in_base_path,
    find_scenario_root,
    resolve_python_in_venv_root,
    resolve_scenario_root,
    sanitize_folder_name,
    to_path_key,
)
from scenariokit.errors import ConfigurationError, ErrorCode


def _make_venv(root, marker=True, activate=False):
    (root / "bin").mkdir(parents=True)
    (root / "bin" / "python").write_text("")
    if marker:
        (root / "pyvenv.cfg").write_text("home = /usr/bin\n")
    if activate:
        (root / "bin" / "activate").write_text("")
    return str(root / "bin" / "python")


# 1. Profile record
def test_profile_reads_camel_case_keys():
    profile = ProgramProfile.model_validate({
        "id": "p1",
        "name": "Demo",
        "basePath": "/work/program",
        "pythonStrategy": "fixedPath",
        "pythonPath": "/usr/bin/python3",
        "scenarioIoFolderName": "out/",
    })
    assert profile.base_path == "/work/program"
    assert profile.python_path == "/usr/bin/python3"
    assert profile.scenario_io_folder_name == "out"
    assert profile.run_command_template == DEFAULT_RUN_COMMAND_TEMPLATE
    assert profile.scenarios_path == os.path.join("/work/program", "scenarios")


def test_sanitize_folder_name():
    assert sanitize_folder_name(" a/b\\c ", "io") == "abc"
    assert sanitize_folder_name("  ", "io") == "io"
    assert sanitize_folder_name(None, "configs") == "configs"


def test_fixed_path_interpreter_falls_back_to_python():
    profile = ProgramProfile(id="p", name="p", base_path="/x", python_strategy="fixedPath", python_path="  ")
    assert profile.resolve_interpreter() == "python"


# 2. Interpreter detection
def test_venv_with_marker(tmp_path):
    python = _make_venv(tmp_path / ".venv")
    assert resolve_python_in_venv_root(str(tmp_path / ".venv"), "linux") == python


def test_venv_without_marker_needs_activate_script(tmp_path):
    _make_venv(tmp_path / "bare", marker=False)
    assert resolve_python_in_venv_root(str(tmp_path / "bare"), "linux") is None

    python = _make_venv(tmp_path / "legacy", marker=False, activate=True)
    assert resolve_python_in_venv_root(str(tmp_path / "legacy"), "linux") == python


def test_preferred_venv_names_win(tmp_path):
    _make_venv(tmp_path / "aaa-env")
    preferred = _make_venv(tmp_path / "venv")
    assert find_python_in_base_path(str(tmp_path), "linux") == preferred


def test_any_folder_can_hold_the_venv(tmp_path):
    python = _make_venv(tmp_path / "custom")
    assert find_python_in_base_path(str(tmp_path), "linux") == python


def test_auto_venv_profile(tmp_path):
    python = _make_venv(tmp_path / ".venv")
    profile = ProgramProfile(id="p", name="p", base_path=str(tmp_path))
    assert profile.resolve_interpreter() == python

    empty = tmp_path / "empty"
    empty.mkdir()
    assert ProgramProfile(id="q", name="q", base_path=str(empty)).resolve_interpreter() == "python"


# 3. Scenario paths
def test_find_scenario_root(tmp_path):
    scenarios = tmp_path / "scenarios"
    (scenarios / "alpha" / "configs").mkdir(parents=True)
    expected = str((scenarios / "alpha").resolve())

    assert find_scenario_root(str(scenarios / "alpha" / "configs" / "x.yaml"), str(scenarios)) == expected
    assert find_scenario_root(str(scenarios / "alpha"), str(scenarios)) == expected
    assert find_scenario_root(str(scenarios), str(scenarios)) is None
    assert find_scenario_root(str(tmp_path), str(scenarios)) is None


def test_resolve_scenario_root_requires_a_folder(tmp_path):
    (tmp_path / "scenarios").mkdir()
    (tmp_path / "scenarios" / "README.md").write_text("")
    profile = ProgramProfile(id="p", name="p", base_path=str(tmp_path))

    with pytest.raises(ConfigurationError) as exc_info:
        resolve_scenario_root(str(tmp_path / "scenarios" / "README.md"), profile)
    assert exc_info.value.code == ErrorCode.CONFIG_SCENARIO_UNRESOLVED


def test_path_key_is_case_insensitive_on_windows():
    assert to_path_key("/Work/Alpha", "win32") == to_path_key("/work/alpha", "win32")
    assert to_path_key("/Work/Alpha", "linux") != to_path_key("/work/alpha", "linux")


# 4. Profile store
def _write_store(tmp_path, profiles, bindings=None):
    profiles_path = tmp_path / "programProfiles.json"
    bindings_path = tmp_path / "workspaceBindings.json"
    profiles_path.write_text(json.dumps({"profiles": profiles}))
    if bindings is not None:
        bindings_path.write_text(json.dumps({"bindings": bindings}))
    return ProfileStore(profiles_path, bindings_path).load()


def test_single_profile_is_used_without_binding(tmp_path):
    store = _write_store(tmp_path, [{"id": "p1", "name": "one", "basePath": "/a"}])
    assert store.active_profile("/some/workspace").id == "p1"


def test_binding_selects_profile(tmp_path):
    workspace = str(tmp_path / "ws")
    store = _write_store(
        tmp_path,
        [{"id": "p1", "name": "one", "basePath": "/a"}, {"id": "p2", "name": "two", "basePath": "/b"}],
        {os.path.abspath(workspace): "p2"},
    )
    assert store.active_profile(workspace).id == "p2"


def test_no_selectable_profile(tmp_path):
    store = _write_store(
        tmp_path,
        [{"id": "p1", "name": "one", "basePath": "/a"}, {"id": "p2", "name": "two", "basePath": "/b"}],
    )
    with pytest.raises(ConfigurationError) as exc_info:
        store.active_profile(str(tmp_path))
    assert exc_info.value.code == ErrorCode.CONFIG_NO_PROFILE


def test_invalid_profile_file(tmp_path):
    with pytest.raises(ConfigurationError) as exc_info:
        _write_store(tmp_path, [{"id": "p1", "name": "one", "basePath": "/a", "pythonStrategy": "conda"}])
    assert exc_info.value.code == ErrorCode.CONFIG_PARSE_ERROR

    (tmp_path / "programProfiles.json").write_text("{not json")
    with pytest.raises(ConfigurationError):
        ProfileStore(tmp_path / "programProfiles.json", tmp_path / "none.json").load()
