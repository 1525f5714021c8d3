"""
scenariokit/engine/elevation.py

Privilege Escalation Manager.

Decides per run whether a scenario runs elevated and, if so, makes sure a
usable elevation session exists before anything is spawned:

    DISABLED -> run unprivileged
    REQUESTED_BUT_UNSUPPORTED -> flag cleared, warning, run unprivileged
    SESSION_CHECK -> `sudo -n true`; success -> ELEVATED
    PASSWORD_PROMPT -> host prompt; cancel -> AuthenticationError
    VALIDATE -> `sudo -S -v` with the secret on stdin; failure -> AuthenticationError
    ELEVATED -> launches wrapped as `sudo -n <command...>`

Nothing is cached between runs: every run re-checks the session.
"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import List, Sequence, Tuple

from scenariokit.base.host import HostBridge
from scenariokit.base.state import StateStore
from scenariokit.engine.launcher import run_probe
from scenariokit.errors import AuthenticationError, ErrorCode

logger = logging.getLogger(__name__)

NON_INTERACTIVE_FLAG = "-n"
STDIN_FLAG = "-S"
VALIDATE_FLAG = "-v"


class ElevationState(str, Enum):
    DISABLED = "disabled"
    REQUESTED_BUT_UNSUPPORTED = "requested_but_unsupported"
    SESSION_CHECK = "session_check"
    PASSWORD_PROMPT = "password_prompt"
    VALIDATE = "validate"
    ELEVATED = "elevated"


def platform_supports_elevation(platform: str = sys.platform) -> bool:
    return platform != "win32"


class ElevationManager:
    """Runs the escalation state machine for one run attempt at a time."""

    def __init__(
        self,
        state: StateStore,
        host: HostBridge,
        tool: str = "sudo",
        platform: str = sys.platform,
    ):
        self.state = state
        self.host = host
        self.tool = tool
        self.platform = platform
        # States visited by the most recent resolve() call
        self.trace: List[ElevationState] = []

    @property
    def supported(self) -> bool:
        return platform_supports_elevation(self.platform)

    def _enter(self, state: ElevationState) -> None:
        self.trace.append(state)
        logger.debug(f"[Elevation] -> {state.value}")

    async def resolve(self, scenario_path: str, base_path: str) -> bool:
        """
        Decide whether this run is elevated.

        Returns:
            True if launches must be wrapped with the elevation tool

        Raises:
            AuthenticationError: prompt cancelled or credentials rejected
        """
        self.trace = []
        if not self.state.is_sudo_enabled(scenario_path):
            self._enter(ElevationState.DISABLED)
            return False

        if not self.supported:
            self._enter(ElevationState.REQUESTED_BUT_UNSUPPORTED)
            self.state.set_sudo_enabled(scenario_path, False)
            logger.warning(f"[Elevation] Cleared sudo flag for {scenario_path}: unsupported on {self.platform}")
            self.host.warning("Sudo is not available on Windows.")
            return False

        self._enter(ElevationState.SESSION_CHECK)
        if await self.has_active_session(base_path):
            self._enter(ElevationState.ELEVATED)
            return True

        self._enter(ElevationState.PASSWORD_PROMPT)
        secret = await self.host.prompt_secret("Enter sudo password for scenario execution")
        if secret is None:
            raise AuthenticationError(
                ErrorCode.AUTH_CANCELLED,
                "Sudo authentication cancelled. Execution cancelled.",
            )

        self._enter(ElevationState.VALIDATE)
        if not await self.validate_secret(base_path, secret):
            raise AuthenticationError(
                ErrorCode.AUTH_FAILED,
                "Sudo authentication failed. Execution cancelled.",
            )

        self._enter(ElevationState.ELEVATED)
        return True

    async def has_active_session(self, cwd: str) -> bool:
        """Probe for an existing session without ever prompting."""
        code, _ = await run_probe(self.tool, [NON_INTERACTIVE_FLAG, "true"], cwd=cwd)
        return code == 0

    async def validate_secret(self, cwd: str, secret: str) -> bool:
        code, _ = await run_probe(
            self.tool,
            [STDIN_FLAG, VALIDATE_FLAG],
            cwd=cwd,
            stdin_data=f"{secret}\n".encode("utf-8"),
        )
        return code == 0

    def wrap(self, command: str, args: Sequence[str]) -> Tuple[str, List[str]]:
        """Elevated argv: the original command becomes arguments of the tool."""
        return self.tool, [NON_INTERACTIVE_FLAG, command, *args]

    def set_enabled(self, scenario_path: str, enabled: bool) -> bool:
        """
        Persist the per-scenario flag.

        Returns:
            False if enabling was refused because the platform has no elevation
        """
        if enabled and not self.supported:
            self.host.warning("Sudo is not available on Windows.")
            return False
        self.state.set_sudo_enabled(scenario_path, enabled)
        return True
