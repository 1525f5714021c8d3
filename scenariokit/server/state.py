from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional

from scenariokit.base.config import ToolkitConfig, get_config
from scenariokit.base.host import ScriptedHost
from scenariokit.base.profile import ProfileStore, ProgramProfile
from scenariokit.base.state import StateStore
from scenariokit.cortex.events import EventBus
from scenariokit.engine.launcher import LogSink
from scenariokit.engine.orchestrator import ScenarioOrchestrator

logger = logging.getLogger(__name__)


class ApplicationState:
    """Process-wide wiring shared by every API request."""

    _instance: Optional["ApplicationState"] = None

    @classmethod
    def instance(cls) -> "ApplicationState":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def __init__(self, config: Optional[ToolkitConfig] = None, platform: str = sys.platform):
        self.config = config or get_config()
        self.config.ensure_dirs()
        storage = self.config.storage

        # Prompt answers are loaded from each request body before the operation runs.
        self.host = ScriptedHost(history=self.config.log.host_message_history)
        self.profiles = ProfileStore(storage.profiles_path, storage.bindings_path)
        self.store = StateStore(storage.state_path, platform=platform)
        self.sink = LogSink(storage.output_log_path, max_lines=self.config.log.output_tail_lines)
        self.events = EventBus()
        self.workspace: Optional[str] = None

        self.orchestrator = ScenarioOrchestrator(
            self.active_profile,
            self.store,
            self.host,
            sink=self.sink,
            events=self.events,
            config=self.config,
            platform=platform,
        )
        # Host prompts are answered per request, so operations run one at a time.
        self.operation_lock = asyncio.Lock()

    def active_profile(self) -> ProgramProfile:
        return self.profiles.load().active_profile(self.workspace)


def get_state() -> ApplicationState:
    return ApplicationState.instance()


def set_state(state: Optional[ApplicationState]) -> None:
    """Replace the shared state (tests)."""
    ApplicationState._instance = state
