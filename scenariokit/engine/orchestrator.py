"""
scenariokit/engine/orchestrator.py

Scenario Execution Orchestrator.

Entry point for the five host-facing operations. Each run:

    scenario path -> RunContext (invocation + elevation decision)
                  -> strategy arm (plain / debug / detached)
                  -> exit watcher -> last-execution refresh + change event

The strategy is a closed enum dispatched once in _execute(); each arm owns
acquiring and releasing its own resources. The only state shared between
runs is the log sink and the last-execution cache.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import sys
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from scenariokit.base.config import ToolkitConfig, get_config
from scenariokit.base.host import HostBridge
from scenariokit.base.profile import ProgramProfile, resolve_scenario_root
from scenariokit.base.state import StateStore
from scenariokit.cortex.events import EventBus, ToolkitEvent, ToolkitEventType
from scenariokit.engine.cmdline import normalize_run_flags, tokenize
from scenariokit.engine.debug_bridge import DebugBridgeCoordinator, DebugSession, build_launch_descriptor
from scenariokit.engine.elevation import ElevationManager
from scenariokit.engine.invocation import RunContext, build_invocation
from scenariokit.engine.last_execution import LastExecutionInfo, find_last_scenario_execution
from scenariokit.engine.launcher import LaunchedProcess, LogSink, ProcessLauncher, format_exit_code
from scenariokit.errors import (
    ConfigurationError,
    ErrorCode,
    ProcessError,
    RunEnvironmentError,
    ScenarioToolkitError,
    Severity,
)

logger = logging.getLogger(__name__)

ProfileProvider = Callable[[], ProgramProfile]
Clock = Callable[[], float]

_SESSION_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class RunStrategy(str, Enum):
    """Values double as the log sink tags of each arm."""
    PLAIN = "run"
    DEBUG = "run-debug"
    DETACHED = "run-screen"


def to_base36(value: int) -> str:
    if value < 0:
        return "-" + to_base36(-value)
    if value == 0:
        return "0"
    digits: List[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def build_session_name(scenario_name: str, now_ms: float) -> str:
    """scn_<sanitized name>_<ms since epoch in base36>"""
    normalized = _SESSION_NAME_UNSAFE.sub("_", scenario_name)
    return f"scn_{normalized}_{to_base36(int(now_ms))}"


def _epoch_ms() -> float:
    return time.time() * 1000


class ScenarioOrchestrator:
    """
    Drives scenario runs for one host.

    Args:
        profile_provider: returns the active profile (raises ConfigurationError if none)
        state: persisted global flags and per-scenario elevation flags
        host: front-end for messages, prompts and the debugger facility
        sink: shared output log (a fresh in-memory sink if omitted)
        events: bus carrying the last-execution change notification
        config: toolkit configuration (global config if omitted)
        clock: epoch milliseconds, injectable for session naming
        platform: sys.platform value, injectable for platform fallbacks
    """

    def __init__(
        self,
        profile_provider: ProfileProvider,
        state: StateStore,
        host: HostBridge,
        sink: Optional[LogSink] = None,
        events: Optional[EventBus] = None,
        config: Optional[ToolkitConfig] = None,
        clock: Optional[Clock] = None,
        platform: str = sys.platform,
    ):
        self.config = config or get_config()
        self.profile_provider = profile_provider
        self.state = state
        self.host = host
        self.sink = sink or LogSink(max_lines=self.config.log.output_tail_lines)
        self.events = events or EventBus()
        self.clock = clock or _epoch_ms
        self.platform = platform

        self.launcher = ProcessLauncher(self.sink)
        self.elevation = ElevationManager(state, host, tool=self.config.elevation.tool, platform=platform)
        self.bridge = DebugBridgeCoordinator(self.launcher, host, self.elevation, self.config.bridge)

        self.debug_sessions: Dict[int, DebugSession] = {}
        self._watchers: Set[asyncio.Task] = set()
        self._last_execution: Optional[LastExecutionInfo] = None

    # ------------------------------------------------------------------
    # Last execution
    # ------------------------------------------------------------------

    @property
    def last_execution(self) -> Optional[LastExecutionInfo]:
        return self._last_execution

    def refresh(self) -> Optional[LastExecutionInfo]:
        """Recompute the last-execution cache wholesale and publish it."""
        return self._publish(self._scan_last_execution())

    async def refresh_async(self) -> Optional[LastExecutionInfo]:
        """Same as refresh(), with the directory walk run in a worker thread."""
        info = await asyncio.to_thread(self._scan_last_execution)
        return self._publish(info)

    def _scan_last_execution(self) -> Optional[LastExecutionInfo]:
        try:
            profile = self.profile_provider()
        except ConfigurationError:
            return None
        return find_last_scenario_execution(profile.scenarios_path, profile.scenario_io_folder_name)

    def _publish(self, info: Optional[LastExecutionInfo]) -> Optional[LastExecutionInfo]:
        self._last_execution = info
        self.events.emit_last_execution_changed(info.to_dict() if info else None)
        return info

    def on_last_execution_changed(
        self, callback: Callable[[Optional[LastExecutionInfo]], None]
    ) -> Callable[[], None]:
        """Subscribe to change notifications; returns the unsubscribe function."""

        def _forward(event: ToolkitEvent) -> None:
            if event.type == ToolkitEventType.LAST_EXECUTION_CHANGED:
                callback(self._last_execution)

        return self.events.subscribe(_forward)

    # ------------------------------------------------------------------
    # Run context
    # ------------------------------------------------------------------

    async def build_run_context(self, scenario_path: str) -> RunContext:
        """
        Resolve everything one run needs.

        Raises:
            ConfigurationError: no usable profile, unresolved scenario, bad template
            AuthenticationError: elevation requested but not obtained
        """
        profile = self.profile_provider()
        base_path = profile.base_path
        if not base_path or not os.path.isdir(base_path):
            raise ConfigurationError(
                ErrorCode.CONFIG_NO_PROFILE,
                "No active program profile for this workspace. Create or bind a profile first.",
                details={"base_path": base_path},
            )

        scenario_root = resolve_scenario_root(scenario_path, profile)
        scenario_name = os.path.basename(scenario_root)
        invocation = build_invocation(profile.run_command_template, scenario_name, base_path)
        interpreter = profile.resolve_interpreter()
        use_sudo = await self.elevation.resolve(scenario_root, base_path)

        return RunContext(
            base_path=base_path,
            interpreter_path=interpreter,
            scenario_name=scenario_name,
            invocation=invocation,
            extra_flags=tuple(tokenize(self.state.global_run_flags)),
            use_sudo=use_sudo,
        )

    # ------------------------------------------------------------------
    # Exposed operations
    # ------------------------------------------------------------------

    async def run(self, scenario_path: str) -> bool:
        """Plain foreground run. Returns True once the process is started."""
        return await self._execute(RunStrategy.PLAIN, scenario_path)

    async def run_with_debugger(self, scenario_path: str) -> bool:
        """Debug run: host launch descriptor, or the debug bridge when elevated."""
        return await self._execute(RunStrategy.DEBUG, scenario_path)

    async def run_in_detached_session(self, scenario_path: str) -> bool:
        """Start the scenario inside a detached screen session."""
        return await self._execute(RunStrategy.DETACHED, scenario_path)

    async def toggle_elevated(self, scenario_path: str) -> bool:
        """Flip the per-scenario sudo flag. Returns True if the flag changed."""
        try:
            profile = self.profile_provider()
            scenario_root = resolve_scenario_root(scenario_path, profile)
        except ScenarioToolkitError as exc:
            self._report(exc, None, None)
            return False

        enabled = not self.state.is_sudo_enabled(scenario_root)
        if not self.elevation.set_enabled(scenario_root, enabled):
            return False

        logger.info(f"[Orchestrator] sudo {'enabled' if enabled else 'disabled'} for {scenario_root}")
        self.host.info(f"{os.path.basename(scenario_root)}: sudo {'enabled' if enabled else 'disabled'}")
        await self.refresh_async()
        return True

    async def set_global_extra_flags(self) -> bool:
        """Prompt for flags appended to every run. Cancelling leaves them unchanged."""
        entered = await self.host.prompt_text(
            "Global run flags appended to every scenario run",
            value=self.state.global_run_flags,
        )
        if entered is None:
            return False

        normalized = normalize_run_flags(entered)
        self.state.set_global_run_flags(normalized)
        logger.info(f"[Orchestrator] Global run flags set to '{normalized}'")
        await self.refresh_async()
        return True

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _execute(self, strategy: RunStrategy, scenario_path: str) -> bool:
        context: Optional[RunContext] = None
        try:
            if strategy is RunStrategy.DETACHED and self.platform == "win32":
                raise RunEnvironmentError(
                    ErrorCode.ENV_UNSUPPORTED_PLATFORM,
                    "Detached screen sessions are not available on Windows.",
                )

            context = await self.build_run_context(scenario_path)

            if strategy is RunStrategy.PLAIN:
                await self._run_plain(context)
            elif strategy is RunStrategy.DEBUG:
                await self._run_debug(context)
            elif strategy is RunStrategy.DETACHED:
                await self._run_detached(context)
            return True
        except ScenarioToolkitError as exc:
            self._report(exc, strategy, context.scenario_name if context else None)
            return False

    def _report(self, exc: ScenarioToolkitError, strategy: Optional[RunStrategy], scenario: Optional[str]) -> None:
        label = strategy.value if strategy else "toolkit"
        log = logger.warning if exc.severity is Severity.WARNING else logger.error
        log(f"[Orchestrator] {label} failed: {exc}")
        self.host.show_message(exc.severity, exc.message)
        self.events.emit_run_failed(scenario, label, exc.to_dict())

    # --- Plain ---

    async def _run_plain(self, context: RunContext) -> None:
        command, args = context.interpreter_path, context.interpreter_args()
        if context.use_sudo:
            command, args = self.elevation.wrap(command, args)

        process = await self.launcher.spawn(command, args, context.base_path, RunStrategy.PLAIN.value)
        self.events.emit_run_started(context.scenario_name, RunStrategy.PLAIN.value, context.use_sudo)
        self._watch(context, RunStrategy.PLAIN, process, self._report_plain_exit)
        await self.refresh_async()

    def _report_plain_exit(self, context: RunContext, exit_code: Optional[int]) -> None:
        if exit_code == 0:
            return
        exc = ProcessError(
            ErrorCode.PROC_NON_ZERO_EXIT,
            f"Scenario '{context.scenario_name}' exited with code {format_exit_code(exit_code)}.",
            exit_code=exit_code,
        )
        self.host.show_message(exc.severity, exc.message)

    # --- Debug ---

    async def _run_debug(self, context: RunContext) -> None:
        if not context.use_sudo:
            descriptor = build_launch_descriptor(context)
            self.sink.append_line(f"[{RunStrategy.DEBUG.value}] launch '{descriptor['name']}'")
            if not await self.host.start_debugging(descriptor):
                raise ProcessError(
                    ErrorCode.BRIDGE_LAUNCH_FAILED,
                    f"Could not start debugger for scenario '{context.scenario_name}'.",
                )
            self.events.emit_run_started(context.scenario_name, RunStrategy.DEBUG.value, False)
            await self.refresh_async()
            return

        self.sink.append_line(f"[{RunStrategy.DEBUG.value}] sudo enabled for scenario '{context.scenario_name}'.")
        session = await self.bridge.attach(context)
        self.debug_sessions[session.port] = session
        self.events.emit_run_started(context.scenario_name, RunStrategy.DEBUG.value, True)
        self._watch(context, RunStrategy.DEBUG, session.process, lambda ctx, code: self.debug_sessions.pop(session.port, None))

    # --- Detached ---

    async def _run_detached(self, context: RunContext) -> None:
        session_name = build_session_name(context.scenario_name, self.clock())
        command = self.config.detached.tool
        args = ["-dmS", session_name, context.interpreter_path, *context.interpreter_args()]
        if context.use_sudo:
            command, args = self.elevation.wrap(command, args)

        process = await self.launcher.spawn(command, args, context.base_path, RunStrategy.DETACHED.value)
        self.events.emit_run_started(context.scenario_name, RunStrategy.DETACHED.value, context.use_sudo)

        def _report_detached_exit(ctx: RunContext, exit_code: Optional[int]) -> None:
            if exit_code == 0:
                attach = f"screen -r {session_name}"
                if ctx.use_sudo:
                    attach = f"{self.elevation.tool} {attach}"
                self.host.info(
                    f"Scenario started in detached screen session '{session_name}'. Attach with: {attach}"
                )
                return
            self.host.warning(
                f"Could not start detached screen session (exit {format_exit_code(exit_code)}). "
                f"Is 'screen' installed?"
            )

        self._watch(context, RunStrategy.DETACHED, process, _report_detached_exit)

    # ------------------------------------------------------------------
    # Exit watchers
    # ------------------------------------------------------------------

    def _watch(
        self,
        context: RunContext,
        strategy: RunStrategy,
        process: LaunchedProcess,
        on_exit: Callable[[RunContext, Optional[int]], None],
    ) -> None:
        async def _wait_for_exit() -> None:
            exit_code = await process.wait()
            logger.info(
                f"[Orchestrator] {strategy.value} '{context.scenario_name}' exited with "
                f"{format_exit_code(exit_code)}"
            )
            self.events.emit_run_exited(context.scenario_name, strategy.value, exit_code)
            await self.refresh_async()
            on_exit(context, exit_code)

        task = asyncio.create_task(_wait_for_exit())
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)

    async def wait_idle(self) -> None:
        """Wait until every started process has exited and been reported."""
        while self._watchers:
            await asyncio.gather(*list(self._watchers), return_exceptions=True)

    async def cancel_debug_sessions(self) -> None:
        """Kill any bridge child still alive (e.g. on shutdown)."""
        for session in list(self.debug_sessions.values()):
            await self.bridge.release(session)
        self.debug_sessions.clear()
