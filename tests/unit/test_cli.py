import json
import os
from unittest.mock import patch

import pytest

from scenariokit.cli import ConsoleHost, build_parser, main
from scenariokit.errors import Severity


@pytest.fixture(autouse=True)
def quiet_logging():
    # Leave the root logger to pytest.
    with patch("scenariokit.cli.setup_logging"):
        yield


def test_parser_commands():
    parser = build_parser()

    args = parser.parse_args(["--workspace", "/ws", "debug", "-y", "scenarios/alpha"])
    assert (args.command, args.path, args.yes, args.workspace) == ("debug", "scenarios/alpha", True, "/ws")

    args = parser.parse_args(["set-flags", "--value=--fast"])
    assert args.value == "--fast"

    args = parser.parse_args(["serve", "--port", "9000"])
    assert args.port == 9000

    with pytest.raises(SystemExit):
        parser.parse_args([])


@pytest.mark.asyncio
async def test_console_host_presets():
    host = ConsoleHost(preset_text="--x", assume_yes=True)
    assert await host.prompt_text("flags", value="--old") == "--x"
    assert await host.confirm("install?") is True


@pytest.mark.asyncio
async def test_console_host_cancelled_secret():
    host = ConsoleHost()
    with patch("scenariokit.cli.getpass.getpass", side_effect=EOFError):
        assert await host.prompt_secret("password") is None


def test_console_host_routes_errors_to_stderr(capsys):
    ConsoleHost().show_message(Severity.ERROR, "broken")
    ConsoleHost().show_message(Severity.INFO, "fine")
    captured = capsys.readouterr()
    assert "broken" in captured.err
    assert "fine" in captured.out


def _bind_profile(toolkit_config, profile):
    toolkit_config.ensure_dirs()
    toolkit_config.storage.profiles_path.write_text(json.dumps({"profiles": [profile.model_dump(by_alias=True)]}))


def test_run_command_end_to_end(toolkit_config, profile, capsys):
    _bind_profile(toolkit_config, profile)

    code = main(["run", os.path.join(profile.base_path, "scenarios", "alpha")])

    assert code == 0
    assert "[run-exit] code=0" in capsys.readouterr().out


def test_last_command(toolkit_config, profile, capsys):
    _bind_profile(toolkit_config, profile)

    assert main(["last"]) == 1
    assert main(["run", os.path.join(profile.base_path, "scenarios", "beta")]) == 0
    capsys.readouterr()

    assert main(["last"]) == 0
    assert json.loads(capsys.readouterr().out)["scenario_name"] == "beta"


def test_set_flags_command(toolkit_config, profile):
    _bind_profile(toolkit_config, profile)
    assert main(["set-flags", "--value", "  --a  --b "]) == 0

    from scenariokit.base.state import StateStore

    assert StateStore(toolkit_config.storage.state_path).global_run_flags == "--a --b"
