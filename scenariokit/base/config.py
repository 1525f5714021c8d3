# ============================================================================
# scenariokit/base/config.py
# Application Configuration Management
# ============================================================================
#
# PURPOSE:
# Central place for every tunable of the scenario toolkit: where state is
# persisted, which elevation/session tools are used, debug bridge timings
# and logging behaviour.
#
# KEY CONCEPTS:
# 1. Dataclasses: frozen sections grouped under one ToolkitConfig
# 2. Environment Variables: SCENARIOKIT_* overrides (e.g. SCENARIOKIT_LOG_LEVEL=DEBUG)
# 3. Singleton: one shared config, replaceable in tests via set_config()
#
# ============================================================================

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# File Storage Configuration
# ============================================================================
# Where profiles, per-scenario flags and the shared run output log live.

@dataclass(frozen=True)
class StorageConfig:
    # Base directory for toolkit state (~/.scenario-toolkit by default)
    base_dir: Path = field(default_factory=lambda: Path.home() / ".scenario-toolkit")

    # JSON file holding global run flags and per-scenario sudo flags
    state_file: str = "state.json"

    # Program profiles and workspace -> profile bindings
    profiles_file: str = "programProfiles.json"
    bindings_file: str = "workspaceBindings.json"

    # Append-only mirror of the shared process output sink
    output_log_file: str = "runs.log"

    @property
    def state_path(self) -> Path:
        return self.base_dir / self.state_file

    @property
    def profiles_path(self) -> Path:
        return self.base_dir / self.profiles_file

    @property
    def bindings_path(self) -> Path:
        return self.base_dir / self.bindings_file

    @property
    def output_log_path(self) -> Path:
        return self.base_dir / self.output_log_file


# ============================================================================
# Debug Bridge Configuration
# ============================================================================
# Controls the elevated debug-attach flow (debugpy listener + readiness poll).

@dataclass(frozen=True)
class BridgeConfig:
    # Interpreter-side module that opens the debug protocol listener
    module: str = "debugpy"

    # Loopback host the bridge listens on and the debugger attaches to
    host: str = "127.0.0.1"

    # Upper bound for the readiness poll (seconds)
    ready_timeout: float = 10.0

    # Delay between two connect attempts (seconds)
    poll_interval: float = 0.15

    # Per-attempt connect timeout (seconds)
    connect_timeout: float = 0.5


# ============================================================================
# Elevation / Detached Session Configuration
# ============================================================================

@dataclass(frozen=True)
class ElevationConfig:
    # Elevation tool; must support -n (non-interactive), -S (stdin) and -v
    tool: str = "sudo"


@dataclass(frozen=True)
class DetachedConfig:
    # Terminal multiplexer used for detached long-running sessions
    tool: str = "screen"


# ============================================================================
# Logging Configuration
# ============================================================================

@dataclass(frozen=True)
class LogConfig:
    # DEBUG / INFO / WARNING / ERROR
    level: str = "INFO"

    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    # Keep a rotating log file next to the toolkit state
    file_enabled: bool = True
    file_name: str = "scenariokit.log"
    max_file_size_mb: int = 10
    backup_count: int = 5

    # Lines of process output kept in memory by the log sink
    output_tail_lines: int = 10000

    # Host messages and debugger descriptors kept for the HTTP API
    host_message_history: int = 1000


# ============================================================================
# Master Configuration Container
# ============================================================================

@dataclass
class ToolkitConfig:
    storage: StorageConfig = field(default_factory=StorageConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    elevation: ElevationConfig = field(default_factory=ElevationConfig)
    detached: DetachedConfig = field(default_factory=DetachedConfig)
    log: LogConfig = field(default_factory=LogConfig)

    debug: bool = False

    # HTTP API bind address (loopback only by default)
    api_host: str = "127.0.0.1"
    api_port: int = 8766

    def ensure_dirs(self) -> None:
        self.storage.base_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> "ToolkitConfig":
        """Build a ToolkitConfig from SCENARIOKIT_* environment variables."""
        base_dir = Path(os.getenv("SCENARIOKIT_DATA_DIR", str(Path.home() / ".scenario-toolkit")))
        storage = StorageConfig(base_dir=base_dir)

        bridge = BridgeConfig(
            module=os.getenv("SCENARIOKIT_DEBUG_MODULE", "debugpy"),
            ready_timeout=float(os.getenv("SCENARIOKIT_DEBUG_TIMEOUT", "10")),
            poll_interval=float(os.getenv("SCENARIOKIT_DEBUG_POLL_INTERVAL", "0.15")),
        )

        elevation = ElevationConfig(tool=os.getenv("SCENARIOKIT_ELEVATION_TOOL", "sudo"))
        detached = DetachedConfig(tool=os.getenv("SCENARIOKIT_SESSION_TOOL", "screen"))

        log = LogConfig(
            level=os.getenv("SCENARIOKIT_LOG_LEVEL", "INFO"),
            file_enabled=os.getenv("SCENARIOKIT_LOG_FILE", "true").lower() == "true",
        )

        return cls(
            storage=storage,
            bridge=bridge,
            elevation=elevation,
            detached=detached,
            log=log,
            debug=os.getenv("SCENARIOKIT_DEBUG", "false").lower() == "true",
            api_host=os.getenv("SCENARIOKIT_API_HOST", "127.0.0.1"),
            api_port=int(os.getenv("SCENARIOKIT_API_PORT", "8766")),
        )


# ============================================================================
# Global Configuration Singleton
# ============================================================================

_config: Optional[ToolkitConfig] = None


def get_config() -> ToolkitConfig:
    """
    Get the global configuration instance.

    Returns:
        The shared ToolkitConfig (loaded from the environment on first call)
    """
    global _config
    if _config is None:
        _config = ToolkitConfig.from_env()
    return _config


def set_config(config: Optional[ToolkitConfig]) -> None:
    """Replace the global configuration (mainly used for testing)."""
    global _config
    _config = config


def setup_logging(config: Optional[ToolkitConfig] = None) -> None:
    """
    Configure Python's logging system based on our settings.

    Sets up console and (optionally) rotating file logging.
    Call this once at application startup.
    """
    cfg = config or get_config()

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if cfg.log.file_enabled:
        from logging.handlers import RotatingFileHandler
        cfg.ensure_dirs()
        log_path = cfg.storage.base_dir / cfg.log.file_name
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=cfg.log.max_file_size_mb * 1024 * 1024,
            backupCount=cfg.log.backup_count,
        )
        handlers.append(file_handler)

    level = "DEBUG" if cfg.debug else cfg.log.level
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=cfg.log.format,
        handlers=handlers,
        force=True,
    )
