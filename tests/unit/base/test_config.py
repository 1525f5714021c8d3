import logging
from pathlib import Path

from scenariokit.base.config import ToolkitConfig, get_config, set_config, setup_logging


def test_from_env_defaults(monkeypatch):
    for name in ("SCENARIOKIT_DATA_DIR", "SCENARIOKIT_DEBUG_TIMEOUT", "SCENARIOKIT_API_PORT", "SCENARIOKIT_DEBUG"):
        monkeypatch.delenv(name, raising=False)

    config = ToolkitConfig.from_env()

    assert config.storage.base_dir == Path.home() / ".scenario-toolkit"
    assert config.bridge.ready_timeout == 10.0
    assert config.bridge.poll_interval == 0.15
    assert config.bridge.module == "debugpy"
    assert config.elevation.tool == "sudo"
    assert config.detached.tool == "screen"
    assert (config.api_host, config.api_port) == ("127.0.0.1", 8766)
    assert config.debug is False


def test_from_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("SCENARIOKIT_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("SCENARIOKIT_DEBUG_TIMEOUT", "2.5")
    monkeypatch.setenv("SCENARIOKIT_DEBUG_POLL_INTERVAL", "0.05")
    monkeypatch.setenv("SCENARIOKIT_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("SCENARIOKIT_API_PORT", "9000")

    config = ToolkitConfig.from_env()

    assert config.storage.state_path == tmp_path / "state.json"
    assert config.storage.profiles_path == tmp_path / "programProfiles.json"
    assert config.storage.output_log_path == tmp_path / "runs.log"
    assert config.bridge.ready_timeout == 2.5
    assert config.bridge.poll_interval == 0.05
    assert config.log.level == "DEBUG"
    assert config.api_port == 9000


def test_global_config_singleton(toolkit_config):
    assert get_config() is toolkit_config
    set_config(None)
    assert get_config() is not toolkit_config
    set_config(toolkit_config)


def test_setup_logging_writes_rotating_file(tmp_path):
    from dataclasses import replace

    config = ToolkitConfig.from_env()
    config = replace(
        config,
        storage=replace(config.storage, base_dir=tmp_path),
        log=replace(config.log, file_enabled=True),
    )
    root = logging.getLogger()
    previous = list(root.handlers)
    try:
        setup_logging(config)
        logging.getLogger("scenariokit.test").warning("[Test] hello")
        for handler in root.handlers:
            handler.flush()
        assert "[Test] hello" in (tmp_path / config.log.file_name).read_text()
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in previous:
            root.addHandler(handler)
