"""
scenariokit/engine/debug_bridge.py

Debug Bridge Coordinator.

Debugging an elevated scenario cannot go through the host's own launch
facility (the debuggee must be started by the elevation tool), so the
coordinator starts the interpreter under `debugpy --listen`, waits until the
listener accepts connections and then asks the host debugger to attach:

    1. dependency check     <python> -c "import debugpy"
    2. install on demand    consent, then <python> -m pip install debugpy
    3. port allocation      bind 127.0.0.1:0, read the port, close
    4. elevated spawn       sudo -n <python> -m debugpy --listen ... --wait-for-client ...
    5. readiness poll       TCP connect every poll_interval until ready_timeout
    6. attach               attach descriptor handed to the host debugger

Any failure after step 4 kills the child.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from scenariokit.base.config import BridgeConfig
from scenariokit.base.host import HostBridge
from scenariokit.engine.elevation import ElevationManager
from scenariokit.engine.invocation import ProgramInvocation, RunContext
from scenariokit.engine.launcher import LaunchedProcess, ProcessExited, ProcessLauncher, run_probe
from scenariokit.errors import (
    ErrorCode,
    PortAllocationError,
    ProcessError,
    ReadinessTimeoutError,
    RunEnvironmentError,
)

logger = logging.getLogger(__name__)

DEBUG_TAG = "run-debug"
INSTALL_TAG = "bridge-install"
LOOPBACK = "127.0.0.1"


def build_configuration_name(scenario_name: str) -> str:
    return f"Scenario Toolkit: {scenario_name}"


# ============================================================================
# Debugger Descriptors
# ============================================================================

def build_launch_descriptor(context: RunContext) -> Dict[str, Any]:
    """Unprivileged debug run: the host debugger launches the interpreter itself."""
    descriptor: Dict[str, Any] = {
        "type": "debugpy",
        "request": "launch",
        "name": build_configuration_name(context.scenario_name),
        "cwd": context.base_path,
        "python": context.interpreter_path,
        "console": "integratedTerminal",
        "justMyCode": False,
    }
    invocation = context.invocation
    if isinstance(invocation, ProgramInvocation):
        descriptor["program"] = invocation.path
    else:
        descriptor["module"] = invocation.name
    descriptor["args"] = [*invocation.args, *context.extra_flags]
    return descriptor


def build_attach_descriptor(scenario_name: str, base_path: str, port: int, host: str = LOOPBACK) -> Dict[str, Any]:
    """Elevated debug run: attach to the bridge listening on the loopback port."""
    return {
        "type": "python",
        "request": "attach",
        "name": build_configuration_name(scenario_name),
        "connect": {"host": host, "port": port},
        "pathMappings": [{"localRoot": base_path, "remoteRoot": base_path}],
        "justMyCode": False,
    }


# ============================================================================
# Port Allocation & Probing
# ============================================================================

def allocate_port(host: str = LOOPBACK) -> int:
    """
    Reserve a likely-free ephemeral port.

    The listener is closed immediately; ownership of the port passes to the
    child that is started next.

    Raises:
        PortAllocationError: the OS refused to assign a port
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((host, 0))
            port = sock.getsockname()[1]
    except OSError as exc:
        raise PortAllocationError(
            ErrorCode.BRIDGE_PORT_ALLOCATION,
            f"Could not allocate a debug port on {host}: {exc}",
        ) from exc
    if not port:
        raise PortAllocationError(
            ErrorCode.BRIDGE_PORT_ALLOCATION,
            f"Could not allocate a debug port on {host}.",
        )
    return port


async def probe_port(host: str, port: int, timeout: float) -> bool:
    """One plain TCP connect attempt."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


@dataclass(frozen=True)
class BridgeReady:
    """Readiness event: the bridge accepted a connection."""
    port: int


@dataclass
class DebugSession:
    port: int
    process: LaunchedProcess


# ============================================================================
# Coordinator
# ============================================================================

class DebugBridgeCoordinator:
    """Runs one debug-attach flow per call to attach()."""

    def __init__(
        self,
        launcher: ProcessLauncher,
        host: HostBridge,
        elevation: ElevationManager,
        config: Optional[BridgeConfig] = None,
    ):
        self.launcher = launcher
        self.host = host
        self.elevation = elevation
        self.config = config or BridgeConfig()

    # --- Step 1 & 2: dependency ---

    async def is_bridge_available(self, python: str, cwd: str) -> bool:
        code, _ = await run_probe(python, ["-c", f"import {self.config.module}"], cwd=cwd)
        return code == 0

    async def ensure_dependency(self, python: str, cwd: str) -> None:
        """
        Make sure the bridge module is importable by the target interpreter.

        Raises:
            RunEnvironmentError: install declined, failed, or still not importable
        """
        module = self.config.module
        if await self.is_bridge_available(python, cwd):
            return

        consent = await self.host.confirm(
            f"'{module}' is not installed for {python}. Install it now to debug elevated scenarios?"
        )
        if not consent:
            raise RunEnvironmentError(
                ErrorCode.ENV_DEPENDENCY_DECLINED,
                f"'{module}' is required to debug with sudo. Installation declined.",
                details={"python": python},
            )

        logger.info(f"[DebugBridge] Installing {module} for {python}")
        try:
            installer = await self.launcher.spawn(python, ["-m", "pip", "install", module], cwd, INSTALL_TAG)
        except ProcessError as exc:
            raise RunEnvironmentError(
                ErrorCode.ENV_DEPENDENCY_INSTALL_FAILED,
                f"Could not install '{module}': {exc.message}",
                details={"python": python},
            ) from exc
        code = await installer.wait()

        if code != 0 or not await self.is_bridge_available(python, cwd):
            raise RunEnvironmentError(
                ErrorCode.ENV_DEPENDENCY_INSTALL_FAILED,
                f"Could not install '{module}' for {python} (exit {code if code is not None else 'unknown'}).",
                details={"python": python, "exit_code": code},
            )

    # --- Step 4: spawn ---

    def bridge_args(self, context: RunContext, port: int) -> List[str]:
        return [
            "-m", self.config.module,
            "--listen", f"{self.config.host}:{port}",
            "--wait-for-client",
            *context.interpreter_args(),
        ]

    async def spawn_bridge(self, context: RunContext, port: int) -> DebugSession:
        command, args = context.interpreter_path, self.bridge_args(context, port)
        if context.use_sudo:
            command, args = self.elevation.wrap(command, args)
        process = await self.launcher.spawn(command, args, context.base_path, DEBUG_TAG)
        return DebugSession(port=port, process=process)

    # --- Step 5: readiness ---

    async def _poll(self, session: DebugSession) -> None:
        while True:
            if await probe_port(self.config.host, session.port, self.config.connect_timeout):
                await session.process.events.put(BridgeReady(session.port))
                return
            await asyncio.sleep(self.config.poll_interval)

    async def wait_until_ready(self, session: DebugSession) -> None:
        """
        Consume the run's event channel until the bridge is reachable.

        Raises:
            ReadinessTimeoutError: no successful connect within ready_timeout (child killed)
            ProcessError: the child exited before the bridge became reachable
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.ready_timeout
        poller = asyncio.create_task(self._poll(session))
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                event = await asyncio.wait_for(session.process.events.get(), timeout=remaining)
                if isinstance(event, BridgeReady):
                    logger.info(f"[DebugBridge] Listener ready on {self.config.host}:{session.port}")
                    return
                if isinstance(event, ProcessExited):
                    code = "unknown" if event.exit_code is None else event.exit_code
                    raise ProcessError(
                        ErrorCode.PROC_EXITED_EARLY,
                        f"Debug bridge exited before accepting connections (exit {code}).",
                        exit_code=event.exit_code,
                    )
        except asyncio.TimeoutError:
            await self.release(session)
            raise ReadinessTimeoutError(
                ErrorCode.BRIDGE_TIMEOUT,
                f"Debug bridge did not become reachable on {self.config.host}:{session.port} "
                f"within {self.config.ready_timeout:g}s.",
                details={"port": session.port},
            )
        except asyncio.CancelledError:
            await self.release(session)
            raise
        finally:
            poller.cancel()

    async def release(self, session: DebugSession) -> None:
        """Kill the child and reap it. Releasing the child releases the port."""
        session.process.kill()
        try:
            await asyncio.wait_for(session.process.wait(), timeout=5)
        except asyncio.TimeoutError:
            logger.warning(f"[DebugBridge] Child pid={session.process.pid} did not exit after kill")

    # --- Full flow ---

    async def attach(self, context: RunContext) -> DebugSession:
        """
        Run steps 1-6 for one elevated debug request.

        Returns:
            The live session; the host debugger owns it from here on
        """
        await self.ensure_dependency(context.interpreter_path, context.base_path)
        port = allocate_port(self.config.host)
        session = await self.spawn_bridge(context, port)
        # From here on every way out, cancellation included, kills the child.
        try:
            await self.wait_until_ready(session)
            descriptor = build_attach_descriptor(context.scenario_name, context.base_path, port, self.config.host)
            attached = await self.host.start_debugging(descriptor)
        except BaseException:
            await self.release(session)
            raise
        if not attached:
            await self.release(session)
            raise ProcessError(
                ErrorCode.BRIDGE_ATTACH_FAILED,
                f"Could not attach debugger to scenario '{context.scenario_name}' on port {port}.",
                details={"port": port},
            )
        logger.info(f"[DebugBridge] Debugger attached to '{context.scenario_name}' on port {port}")
        return session
