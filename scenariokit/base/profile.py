"""
scenariokit/base/profile.py

Program profiles: the record that tells the orchestrator where a program
lives, how to pick its interpreter and how to build its run command.

Profiles are persisted as JSON (programProfiles.json) together with a
workspace -> profile binding table (workspaceBindings.json).
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from scenariokit.errors import ConfigurationError, ErrorCode

logger = logging.getLogger(__name__)

SCENARIO_NAME_PLACEHOLDER = "<scenario_name>"

DEFAULT_PYTHON_COMMAND = "python"
DEFAULT_RUN_COMMAND_TEMPLATE = f"run.py -s {SCENARIO_NAME_PLACEHOLDER}"
DEFAULT_SCENARIOS_FOLDER = "scenarios"
DEFAULT_CONFIGS_FOLDER = "configs"
DEFAULT_IO_FOLDER = "io"

VENV_MARKER = "pyvenv.cfg"
PREFERRED_VENV_DIRS = (".venv", "venv", "env")


def sanitize_folder_name(value: Optional[str], fallback: str) -> str:
    """Strip path separators; an empty result falls back to the default."""
    cleaned = (value or "").strip().replace("/", "").replace("\\", "")
    return cleaned if cleaned else fallback


class ProgramProfile(BaseModel):
    """Read-only per run. Keys use the camelCase names of the persisted file."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str
    base_path: str = Field(alias="basePath")
    python_strategy: Literal["autoVenv", "fixedPath"] = Field(default="autoVenv", alias="pythonStrategy")
    python_path: Optional[str] = Field(default=None, alias="pythonPath")
    scenarios_root: Optional[str] = Field(default=None, alias="scenariosRoot")
    scenario_configs_folder_name: str = Field(default=DEFAULT_CONFIGS_FOLDER, alias="scenarioConfigsFolderName")
    scenario_io_folder_name: str = Field(default=DEFAULT_IO_FOLDER, alias="scenarioIoFolderName")
    run_command_template: str = Field(default=DEFAULT_RUN_COMMAND_TEMPLATE, alias="runCommandTemplate")

    @field_validator("scenario_configs_folder_name")
    @classmethod
    def _clean_configs_folder(cls, value: str) -> str:
        return sanitize_folder_name(value, DEFAULT_CONFIGS_FOLDER)

    @field_validator("scenario_io_folder_name")
    @classmethod
    def _clean_io_folder(cls, value: str) -> str:
        return sanitize_folder_name(value, DEFAULT_IO_FOLDER)

    @property
    def scenarios_path(self) -> str:
        if self.scenarios_root:
            return self.scenarios_root
        return os.path.join(self.base_path, DEFAULT_SCENARIOS_FOLDER)

    def resolve_interpreter(self) -> str:
        """
        Return the interpreter executable for this profile.

        fixedPath uses the configured path; autoVenv looks for a virtual
        environment under the base path. Both fall back to "python".
        """
        if self.python_strategy == "fixedPath":
            return (self.python_path or "").strip() or DEFAULT_PYTHON_COMMAND
        if not os.path.isdir(self.base_path):
            return DEFAULT_PYTHON_COMMAND
        return find_python_in_base_path(self.base_path) or DEFAULT_PYTHON_COMMAND


# ============================================================================
# Interpreter Resolution
# ============================================================================

def resolve_python_in_venv_root(venv_root: str, platform: str = sys.platform) -> Optional[str]:
    """Validate a virtual environment folder by marker + interpreter, with an activate-script fallback."""
    unix_python = os.path.join(venv_root, "bin", "python")
    unix_python3 = os.path.join(venv_root, "bin", "python3")
    windows_python = os.path.join(venv_root, "Scripts", "python.exe")

    if platform == "win32":
        candidates = [windows_python, unix_python, unix_python3]
    else:
        candidates = [unix_python, unix_python3, windows_python]

    interpreter = next((c for c in candidates if os.path.isfile(c)), None)
    if interpreter is None:
        return None

    if os.path.isfile(os.path.join(venv_root, VENV_MARKER)):
        return interpreter

    activate_scripts = (
        os.path.join(venv_root, "bin", "activate"),
        os.path.join(venv_root, "Scripts", "activate"),
        os.path.join(venv_root, "Scripts", "activate.bat"),
    )
    if not any(os.path.isfile(script) for script in activate_scripts):
        return None
    return interpreter


def find_python_in_base_path(base_path: str, platform: str = sys.platform) -> Optional[str]:
    """
    Locate a venv interpreter at the base path root (non-recursive).

    Supports both "<base_path> is the venv" and "<base_path>/<venv_dir>"
    layouts; preferred directory names are tried before any other folder.
    """
    root_candidate = resolve_python_in_venv_root(base_path, platform)
    if root_candidate:
        return root_candidate

    for dir_name in PREFERRED_VENV_DIRS:
        python_path = resolve_python_in_venv_root(os.path.join(base_path, dir_name), platform)
        if python_path:
            return python_path

    try:
        entries = sorted(os.listdir(base_path))
    except OSError:
        return None

    for entry in entries:
        if entry in PREFERRED_VENV_DIRS:
            continue
        candidate = os.path.join(base_path, entry)
        if not os.path.isdir(candidate):
            continue
        python_path = resolve_python_in_venv_root(candidate, platform)
        if python_path:
            return python_path
    return None


# ============================================================================
# Scenario Paths
# ============================================================================

def to_path_key(fs_path: str, platform: str = sys.platform) -> str:
    """Normalize paths for stable dict keys across platforms."""
    resolved = os.path.realpath(fs_path)
    return resolved.lower() if platform == "win32" else resolved


def find_scenario_root(fs_path: str, scenarios_root: str) -> Optional[str]:
    """Return <scenarios_root>/<first segment> for any path inside a scenario."""
    root = Path(scenarios_root).resolve()
    target = Path(fs_path).resolve()
    try:
        relative = target.relative_to(root)
    except ValueError:
        return None
    if not relative.parts:
        return None
    return str(root / relative.parts[0])


def resolve_scenario_root(fs_path: str, profile: ProgramProfile) -> str:
    """Like find_scenario_root, but raises ConfigurationError when the path is not inside a scenario."""
    scenario_root = find_scenario_root(fs_path, profile.scenarios_path)
    if scenario_root is None or not os.path.isdir(scenario_root):
        raise ConfigurationError(
            ErrorCode.CONFIG_SCENARIO_UNRESOLVED,
            f"'{fs_path}' is not inside a scenario folder of the active profile.",
            details={"path": fs_path, "scenarios_root": profile.scenarios_path},
        )
    return scenario_root


# ============================================================================
# Profile Store
# ============================================================================

class ProfileStore:
    """Loads profiles and workspace bindings from the toolkit data directory."""

    def __init__(self, profiles_path: Path, bindings_path: Path):
        self.profiles_path = Path(profiles_path)
        self.bindings_path = Path(bindings_path)
        self.profiles: Dict[str, ProgramProfile] = {}
        self.bindings: Dict[str, str] = {}

    def load(self) -> "ProfileStore":
        self.profiles = {p.id: p for p in self._read_profiles()}
        self.bindings = self._read_json(self.bindings_path).get("bindings", {}) or {}
        logger.info(f"[ProfileStore] Loaded {len(self.profiles)} profile(s), {len(self.bindings)} binding(s)")
        return self

    def _read_profiles(self) -> List[ProgramProfile]:
        raw = self._read_json(self.profiles_path).get("profiles", []) or []
        profiles: List[ProgramProfile] = []
        for item in raw:
            try:
                profiles.append(ProgramProfile.model_validate(item))
            except ValidationError as exc:
                raise ConfigurationError(
                    ErrorCode.CONFIG_PARSE_ERROR,
                    f"Invalid program profile in {self.profiles_path}",
                    details={"errors": exc.errors(include_url=False)},
                ) from exc
        return profiles

    @staticmethod
    def _read_json(path: Path) -> dict:
        if not path.is_file():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(
                ErrorCode.CONFIG_PARSE_ERROR,
                f"Could not parse {path}: {exc}",
            ) from exc
        return data if isinstance(data, dict) else {}

    def active_profile(self, workspace_path: Optional[str] = None) -> ProgramProfile:
        """
        Return the profile bound to the workspace.

        With no binding, a single stored profile is used as-is.

        Raises:
            ConfigurationError: if no profile can be selected
        """
        workspace = os.path.abspath(workspace_path or os.getcwd())
        profile_id = self.bindings.get(workspace)
        if profile_id and profile_id in self.profiles:
            return self.profiles[profile_id]
        if len(self.profiles) == 1:
            return next(iter(self.profiles.values()))
        raise ConfigurationError(
            ErrorCode.CONFIG_NO_PROFILE,
            "No active program profile for this workspace. Create or bind a profile first.",
            details={"workspace": workspace},
        )
