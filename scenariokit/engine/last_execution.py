"""
scenariokit/engine/last_execution.py

Last-Execution Resolver: finds the most recently produced run across all
scenarios by modification time, independent of how the run was started.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class LastExecutionInfo:
    scenario_name: str
    scenario_path: str
    timestamp_ms: float
    run_path: Optional[str] = None
    run_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _mtime_ms(path: str) -> Optional[float]:
    try:
        return os.stat(path).st_mtime_ns / 1_000_000
    except OSError:
        return None


def find_latest_path(root: str) -> Optional[Tuple[str, float]]:
    """Walk the subtree and return the single entry (file or folder) with the greatest mtime."""
    latest_path: Optional[str] = None
    latest_mtime = -1.0

    stack = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError:
            continue

        subdirs = []
        for entry in entries:
            mtime = _mtime_ms(entry.path)
            if mtime is None:
                continue
            if mtime > latest_mtime:
                latest_mtime = mtime
                latest_path = entry.path
            try:
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(entry.path)
            except OSError:
                continue
        # Depth-first in name order.
        stack.extend(reversed(subdirs))

    if latest_path is None:
        return None
    return latest_path, latest_mtime


def find_latest_run_for_scenario(scenario_path: str, io_folder_name: str) -> Optional[Tuple[str, float]]:
    """Return (run folder path, timestamp) for one scenario, or None without output."""
    io_path = os.path.join(scenario_path, io_folder_name)
    if not os.path.isdir(io_path):
        return None

    latest = find_latest_path(io_path)
    if latest is None:
        return None
    latest_path, timestamp = latest

    run_folder = os.path.relpath(latest_path, io_path).split(os.sep)[0]
    if not run_folder or run_folder == os.curdir:
        return None
    return os.path.join(io_path, run_folder), timestamp


def find_last_scenario_execution(scenarios_root: str, io_folder_name: str) -> Optional[LastExecutionInfo]:
    """
    Pick the scenario/run pair holding the most recently modified entry.

    Scenarios are visited in name order; on equal timestamps the first one
    found wins. Returns None when no scenario has any output.
    """
    if not os.path.isdir(scenarios_root):
        return None

    newest: Optional[Tuple[str, str, float]] = None
    for scenario_name in sorted(os.listdir(scenarios_root)):
        scenario_path = os.path.join(scenarios_root, scenario_name)
        if not os.path.isdir(scenario_path):
            continue
        candidate = find_latest_run_for_scenario(scenario_path, io_folder_name)
        if candidate is None:
            continue
        run_path, timestamp = candidate
        if newest is None or timestamp > newest[2]:
            newest = (scenario_name, run_path, timestamp)

    if newest is None:
        return None

    scenario_name, run_path, timestamp = newest
    return LastExecutionInfo(
        scenario_name=scenario_name,
        scenario_path=os.path.join(scenarios_root, scenario_name),
        timestamp_ms=timestamp,
        run_path=run_path,
        run_name=os.path.basename(run_path),
    )
