"""
scenariokit/base/state.py

Persisted toolkit state: the global extra run flags and the per-scenario
"run elevated" flags. Stored as one JSON document; every mutation is
written through immediately.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from pathlib import Path
from typing import Dict, Optional

from scenariokit.base.profile import to_path_key

logger = logging.getLogger(__name__)

GLOBAL_RUN_FLAGS_KEY = "globalRunFlags"
SUDO_BY_SCENARIO_KEY = "sudoExecutionByScenario"


class StateStore:
    """JSON-backed key/value state with a lock around read-modify-write."""

    def __init__(self, path: Optional[Path] = None, platform: str = sys.platform):
        self.path = Path(path) if path else None
        self.platform = platform
        self._lock = threading.Lock()
        self._global_run_flags = ""
        self._sudo_by_scenario: Dict[str, bool] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.is_file():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"[StateStore] Ignoring unreadable state file {self.path}: {exc}")
            return
        self._global_run_flags = str(data.get(GLOBAL_RUN_FLAGS_KEY, "") or "")
        raw = data.get(SUDO_BY_SCENARIO_KEY, {}) or {}
        self._sudo_by_scenario = {key: True for key, value in raw.items() if value is True}

    def _persist(self) -> None:
        if self.path is None:
            return
        payload = {
            GLOBAL_RUN_FLAGS_KEY: self._global_run_flags,
            SUDO_BY_SCENARIO_KEY: dict(self._sudo_by_scenario),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    # --- Global run flags ---

    @property
    def global_run_flags(self) -> str:
        return self._global_run_flags

    def set_global_run_flags(self, value: str) -> None:
        with self._lock:
            self._global_run_flags = value
            self._persist()

    # --- Per-scenario elevation flags ---

    def is_sudo_enabled(self, scenario_path: str) -> bool:
        return self._sudo_by_scenario.get(to_path_key(scenario_path, self.platform)) is True

    def set_sudo_enabled(self, scenario_path: str, enabled: bool) -> None:
        key = to_path_key(scenario_path, self.platform)
        with self._lock:
            if enabled:
                self._sudo_by_scenario[key] = True
            else:
                self._sudo_by_scenario.pop(key, None)
            self._persist()
