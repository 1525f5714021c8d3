"""
Scenario Toolkit CLI: unified entrypoint for running scenarios from a terminal.

Usage examples:
    scenariokit run path/to/scenarios/smoke
    scenariokit debug path/to/scenarios/smoke/configs/main.yaml
    scenariokit set-flags --value "--verbose --seed 1"
    scenariokit serve --port 8766
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import sys
from typing import List, Optional

from scenariokit.base.config import ToolkitConfig, get_config, setup_logging
from scenariokit.base.host import DebugDescriptor, HostBridge
from scenariokit.base.profile import ProfileStore, ProgramProfile
from scenariokit.base.state import StateStore
from scenariokit.engine.launcher import LogSink
from scenariokit.engine.orchestrator import ScenarioOrchestrator
from scenariokit.errors import Severity

logger = logging.getLogger(__name__)

_PREFIX = {Severity.INFO: "ℹ️ ", Severity.WARNING: "⚠️ ", Severity.ERROR: "❌"}


class ConsoleHost(HostBridge):
    """Host that talks to the terminal. Prompts block in a worker thread."""

    def __init__(self, preset_text: Optional[str] = None, assume_yes: bool = False):
        self.preset_text = preset_text
        self.assume_yes = assume_yes

    def show_message(self, severity: Severity, message: str) -> None:
        stream = sys.stderr if severity is Severity.ERROR else sys.stdout
        print(f"{_PREFIX[severity]} {message}", file=stream)

    async def prompt_secret(self, prompt: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(getpass.getpass, f"{prompt}: ")
        except (EOFError, KeyboardInterrupt):
            return None

    async def prompt_text(self, prompt: str, value: str = "") -> Optional[str]:
        if self.preset_text is not None:
            return self.preset_text
        try:
            entered = await asyncio.to_thread(input, f"{prompt} [{value}]: ")
        except (EOFError, KeyboardInterrupt):
            return None
        return entered if entered else value

    async def confirm(self, prompt: str) -> bool:
        if self.assume_yes:
            return True
        try:
            answer = await asyncio.to_thread(input, f"{prompt} [y/N]: ")
        except (EOFError, KeyboardInterrupt):
            return False
        return answer.strip().lower() in ("y", "yes")

    async def start_debugging(self, descriptor: DebugDescriptor) -> bool:
        # No debugger in a terminal: print the configuration for the editor to use.
        print("🧠 Debug configuration:")
        print(json.dumps(descriptor, indent=2))
        return True


def build_orchestrator(
    config: ToolkitConfig,
    host: HostBridge,
    workspace: Optional[str] = None,
) -> ScenarioOrchestrator:
    config.ensure_dirs()
    storage = config.storage
    profiles = ProfileStore(storage.profiles_path, storage.bindings_path)

    def active_profile() -> ProgramProfile:
        return profiles.load().active_profile(workspace)

    sink = LogSink(storage.output_log_path, max_lines=config.log.output_tail_lines)
    sink.subscribe(print)
    return ScenarioOrchestrator(
        active_profile,
        StateStore(storage.state_path),
        host,
        sink=sink,
        config=config,
    )


async def _dispatch(args: argparse.Namespace, config: ToolkitConfig) -> int:
    host = ConsoleHost(preset_text=getattr(args, "value", None), assume_yes=getattr(args, "yes", False))
    orchestrator = build_orchestrator(config, host, args.workspace)

    if args.command == "last":
        info = await orchestrator.refresh_async()
        if info is None:
            print("No scenario has been executed yet.")
            return 1
        print(json.dumps(info.to_dict(), indent=2))
        return 0

    if args.command == "set-flags":
        ok = await orchestrator.set_global_extra_flags()
        if ok:
            print(f"Global run flags: '{orchestrator.state.global_run_flags}'")
        return 0 if ok else 1

    operations = {
        "run": orchestrator.run,
        "debug": orchestrator.run_with_debugger,
        "detach": orchestrator.run_in_detached_session,
        "toggle-sudo": orchestrator.toggle_elevated,
    }
    ok = await operations[args.command](args.path)
    try:
        await orchestrator.wait_idle()
    except asyncio.CancelledError:
        await orchestrator.cancel_debug_sessions()
        raise
    return 0 if ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scenariokit", description="Scenario Toolkit Command Interface")
    parser.add_argument("--workspace", default=None, help="Workspace used to pick the bound program profile")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("run", "Run a scenario"),
        ("debug", "Run a scenario under the debugger"),
        ("detach", "Run a scenario in a detached screen session"),
        ("toggle-sudo", "Toggle sudo execution for a scenario"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("path", help="Any path inside the scenario folder")
        if name == "debug":
            sub.add_argument("-y", "--yes", action="store_true", help="Install debugpy without asking")

    flags = subparsers.add_parser("set-flags", help="Set extra flags appended to every run")
    flags.add_argument("--value", default=None, help="New flags; prompts when omitted")

    subparsers.add_parser("last", help="Show the most recent scenario execution")

    serve = subparsers.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()

    if args.command == "serve":
        from scenariokit.server.api import serve

        print("🚀 Starting Scenario Toolkit API...")
        serve(args.host, args.port)
        return 0

    setup_logging(config)
    try:
        return asyncio.run(_dispatch(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
