"""
scenariokit/engine/launcher.py

Process Launcher & Log Sink.

Every strategy spawns its child through ProcessLauncher. Standard output and
standard error are merged and pumped line by line into the one LogSink
shared by all runs. When the child exits, an exit line is appended and a
ProcessExited event is put on the run's event channel.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Deque, List, Optional, Sequence, Tuple

from scenariokit.engine.cmdline import format_command
from scenariokit.errors import ErrorCode, ProcessError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 65536


# ============================================================================
# Log Sink
# ============================================================================

class LogSink:
    """
    Append-only output channel shared by every run.

    Appends are serialized by a lock; ordering across concurrent runs is not
    guaranteed. A bounded tail is kept in memory and, when configured, every
    line is mirrored to a file.
    """

    def __init__(self, file_path: Optional[Path] = None, max_lines: int = 10000):
        self.file_path = Path(file_path) if file_path else None
        self._lines: Deque[str] = deque(maxlen=max_lines)
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[str], None]] = []

    def subscribe(self, callback: Callable[[str], None]) -> None:
        self._subscribers.append(callback)

    def append_line(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)
            if self.file_path is not None:
                self.file_path.parent.mkdir(parents=True, exist_ok=True)
                with self.file_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(line)
            except Exception as e:
                logger.error(f"[LogSink] Subscriber failed: {e}")

    def tail(self, limit: Optional[int] = None) -> List[str]:
        with self._lock:
            lines = list(self._lines)
        if limit is not None:
            return lines[-limit:] if limit > 0 else []
        return lines


# ============================================================================
# Run Events
# ============================================================================

@dataclass(frozen=True)
class ProcessExited:
    """The child is gone. exit_code is None when no code is available (e.g. killed)."""
    exit_code: Optional[int]


def format_exit_code(code: Optional[int]) -> str:
    return "unknown" if code is None else str(code)


# ============================================================================
# Launched Process
# ============================================================================

class LaunchedProcess:
    """
    A spawned child plus its single-consumer event channel.

    The pump task owns the output stream; whoever drives the run consumes
    `events`. Other producers (e.g. readiness probes) may put their own
    events on the same channel.
    """

    def __init__(self, tag: str, command: str, args: Sequence[str], process: asyncio.subprocess.Process):
        self.tag = tag
        self.command = command
        self.args = list(args)
        self.process = process
        self.events: asyncio.Queue[Any] = asyncio.Queue()
        self.exit_code: Optional[int] = None
        self.exited = False
        self._pump: Optional[asyncio.Task] = None

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid

    def kill(self) -> None:
        """Cancellation action: kill the child. A no-op once it has exited."""
        if self.process.returncode is not None:
            return
        try:
            self.process.kill()
            logger.info(f"[Launcher] Killed {self.tag} child pid={self.pid}")
        except ProcessLookupError:
            pass

    async def wait(self) -> Optional[int]:
        """Wait until the child has exited and its output has been drained."""
        if self._pump is not None:
            await asyncio.shield(self._pump)
        return self.exit_code


# ============================================================================
# Probes
# ============================================================================

async def run_probe(
    command: str,
    args: Sequence[str],
    cwd: Optional[str] = None,
    stdin_data: Optional[bytes] = None,
) -> Tuple[Optional[int], str]:
    """
    Run a short helper command to completion, capturing its output.

    Used for session checks, credential validation and dependency probes.
    These never go through the shared log sink.

    Returns:
        (exit code, combined output); exit code is None if the command could not start
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=cwd,
            stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as exc:
        logger.debug(f"[Launcher] Probe '{command}' failed to start: {exc}")
        return None, str(exc)

    stdout, _ = await proc.communicate(input=stdin_data)
    return proc.returncode, stdout.decode("utf-8", errors="replace") if stdout else ""


# ============================================================================
# Process Launcher
# ============================================================================

class ProcessLauncher:
    """Spawns children with cwd = base path; one attempt, never retried."""

    def __init__(self, sink: LogSink):
        self.sink = sink

    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        cwd: str,
        tag: str,
        echo: bool = True,
    ) -> LaunchedProcess:
        """
        Start the child and begin pumping its output.

        Raises:
            ProcessError: the executable could not be started (no exit line is written)
        """
        if echo:
            self.sink.append_line(f"[{tag}] {format_command(command, args)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            self.sink.append_line(f"[{tag}-error] {exc}")
            logger.warning(f"[Launcher] Could not start '{command}': {exc}")
            raise ProcessError(
                ErrorCode.PROC_SPAWN_FAILED,
                f"Could not start '{command}': {exc.strerror or exc}",
                details={"command": command, "args": list(args), "cwd": cwd},
            ) from exc

        launched = LaunchedProcess(tag, command, args, proc)
        launched._pump = asyncio.create_task(self._pump_output(launched))
        logger.info(f"[Launcher] Started {tag} pid={proc.pid}: {command}")
        return launched

    async def _pump_output(self, launched: LaunchedProcess) -> None:
        proc = launched.process
        assert proc.stdout is not None

        # Chunked reads: a single line may be longer than any StreamReader limit.
        pending = b""
        try:
            while True:
                chunk = await proc.stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                *lines, pending = (pending + chunk).split(b"\n")
                for line in lines:
                    self._append_output(line)
            if pending:
                self._append_output(pending)
        except BaseException as e:
            logger.error(f"[Launcher] Output pump for {launched.tag} pid={launched.pid} stopped: {e!r}")
            launched.kill()
            raise
        finally:
            returncode = await proc.wait()
            # Negative codes mean the child died from a signal: no exit code available.
            exit_code = returncode if returncode is not None and returncode >= 0 else None
            launched.exit_code = exit_code
            launched.exited = True
            self.sink.append_line(f"[{launched.tag}-exit] code={format_exit_code(exit_code)}")
            await launched.events.put(ProcessExited(exit_code))

    def _append_output(self, raw: bytes) -> None:
        self.sink.append_line(raw.decode("utf-8", errors="replace").rstrip("\r"))
