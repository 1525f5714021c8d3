"""Structured error taxonomy for the scenario toolkit."""
#
# PURPOSE:
# Every failure path of the execution orchestrator raises one of the typed
# errors below. Each carries an ErrorCode (searchable in logs), a
# human-readable message for the host UI, and an optional details dict.
#
# ERROR CODE FORMAT:
# - CONFIG_XXX: bad or missing run template, unresolved scenario path
# - AUTH_XXX: elevation validation failed or was cancelled
# - ENV_XXX: unsupported platform feature, missing dependency
# - BRIDGE_XXX: debug bridge port allocation / readiness
# - PROC_XXX: process spawn failure or non-zero exit
#
# USAGE:
#   from scenariokit.errors import ConfigurationError, ErrorCode
#
#   raise ConfigurationError(
#       ErrorCode.CONFIG_TEMPLATE_INVALID,
#       "Run command template must include '<scenario_name>'",
#       details={"template": template},
#   )
#
from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    # Config Errors
    CONFIG_TEMPLATE_INVALID = "CONFIG_001"
    CONFIG_TEMPLATE_EMPTY = "CONFIG_002"
    CONFIG_MODULE_MISSING = "CONFIG_003"
    CONFIG_NO_PROFILE = "CONFIG_004"
    CONFIG_SCENARIO_UNRESOLVED = "CONFIG_005"
    CONFIG_PARSE_ERROR = "CONFIG_006"

    # Auth Errors
    AUTH_CANCELLED = "AUTH_001"
    AUTH_FAILED = "AUTH_002"

    # Environment Errors
    ENV_UNSUPPORTED_PLATFORM = "ENV_001"
    ENV_DEPENDENCY_DECLINED = "ENV_002"
    ENV_DEPENDENCY_INSTALL_FAILED = "ENV_003"

    # Debug Bridge Errors
    BRIDGE_PORT_ALLOCATION = "BRIDGE_001"
    BRIDGE_TIMEOUT = "BRIDGE_002"
    BRIDGE_ATTACH_FAILED = "BRIDGE_003"
    BRIDGE_LAUNCH_FAILED = "BRIDGE_004"

    # Process Errors
    PROC_SPAWN_FAILED = "PROC_001"
    PROC_NON_ZERO_EXIT = "PROC_002"
    PROC_EXITED_EARLY = "PROC_003"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ScenarioToolkitError(Exception):
    """
    Base exception carrying structured error information.

    Attributes:
        code: ErrorCode enum value (e.g., "CONFIG_001")
        message: Human-readable message shown by the host
        details: Optional dictionary with additional context
        severity: How the host should present the failure
    """

    severity: Severity = Severity.ERROR

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}

        # Build exception message with code for easy debugging
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for JSON serialization.

        Returns:
            Dictionary with code, message, details and severity
        """
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class ConfigurationError(ScenarioToolkitError):
    """Bad or missing run template, or an unresolved scenario path. The run never starts."""

    severity = Severity.WARNING


class AuthenticationError(ScenarioToolkitError):
    """Elevation validation failed or was cancelled. The run never starts."""


class RunEnvironmentError(ScenarioToolkitError):
    """Feature unsupported on this platform, or a required dependency is missing."""


class PortAllocationError(ScenarioToolkitError):
    """No ephemeral loopback port could be reserved for the debug bridge."""


class ReadinessTimeoutError(ScenarioToolkitError, TimeoutError):
    """The debug bridge never accepted a connection within the bound."""


class ProcessError(ScenarioToolkitError):
    """Spawn failure, early exit, or a non-zero exit code."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        exit_code: Optional[int] = None,
    ):
        super().__init__(code, message, details)
        self.exit_code = exit_code
        if code == ErrorCode.PROC_NON_ZERO_EXIT:
            # A failing scenario program is a legitimate outcome.
            self.severity = Severity.WARNING


__all__ = [
    "ErrorCode",
    "Severity",
    "ScenarioToolkitError",
    "ConfigurationError",
    "AuthenticationError",
    "RunEnvironmentError",
    "PortAllocationError",
    "ReadinessTimeoutError",
    "ProcessError",
]
