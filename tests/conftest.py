"""Pytest configuration for Scenario Toolkit."""
import os
import sys
import textwrap
from pathlib import Path

import pytest

from scenariokit.base.config import BridgeConfig, LogConfig, StorageConfig, ToolkitConfig, set_config
from scenariokit.base.profile import ProgramProfile


def pytest_configure():
    # Keep test runs from writing log files into the real home directory.
    os.environ.setdefault("SCENARIOKIT_LOG_FILE", "false")


# Scenario program used by run tests: records a run folder under the
# scenario's io/ folder, echoes its argv and fails on demand.
RUN_SCRIPT = textwrap.dedent(
    """
    import os
    import sys

    name = sys.argv[sys.argv.index("-s") + 1]
    out = os.path.join("scenarios", name, "io", "run_1")
    os.makedirs(out, exist_ok=True)
    with open(os.path.join(out, "out.txt"), "w") as fh:
        fh.write("done")
    print("hello", sys.argv[1:])
    if "--fail" in sys.argv:
        sys.exit(3)
    """
)


@pytest.fixture
def toolkit_config(tmp_path):
    config = ToolkitConfig(
        storage=StorageConfig(base_dir=tmp_path / "data"),
        bridge=BridgeConfig(ready_timeout=1.0, poll_interval=0.05, connect_timeout=0.1),
        log=LogConfig(file_enabled=False),
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def program_dir(tmp_path) -> Path:
    """<tmp>/program with run.py and scenarios alpha, beta (no output yet)."""
    base = tmp_path / "program"
    for name in ("alpha", "beta"):
        (base / "scenarios" / name / "configs").mkdir(parents=True)
        (base / "scenarios" / name / "configs" / "main.yaml").write_text("steps: []\n")
    (base / "run.py").write_text(RUN_SCRIPT)
    return base


@pytest.fixture
def profile(program_dir) -> ProgramProfile:
    return ProgramProfile(
        id="demo",
        name="Demo program",
        base_path=str(program_dir),
        python_strategy="fixedPath",
        python_path=sys.executable,
    )
