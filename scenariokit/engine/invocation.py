"""
scenariokit/engine/invocation.py

Expands a profile's run command template into a typed invocation and
bundles everything one run needs into a RunContext.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Tuple, Union

from scenariokit.base.profile import SCENARIO_NAME_PLACEHOLDER
from scenariokit.engine.cmdline import tokenize
from scenariokit.errors import ConfigurationError, ErrorCode

MODULE_FLAG = "-m"


@dataclass(frozen=True)
class ProgramInvocation:
    path: str
    args: Tuple[str, ...] = ()

    def interpreter_args(self) -> List[str]:
        return [self.path, *self.args]


@dataclass(frozen=True)
class ModuleInvocation:
    name: str
    args: Tuple[str, ...] = ()

    def interpreter_args(self) -> List[str]:
        return [MODULE_FLAG, self.name, *self.args]


Invocation = Union[ProgramInvocation, ModuleInvocation]


@dataclass(frozen=True)
class RunContext:
    """Everything one run needs. Built fresh per run, never shared."""
    base_path: str
    interpreter_path: str
    scenario_name: str
    invocation: Invocation
    extra_flags: Tuple[str, ...] = field(default_factory=tuple)
    use_sudo: bool = False

    def interpreter_args(self) -> List[str]:
        return [*self.invocation.interpreter_args(), *self.extra_flags]


def build_invocation(template: str, scenario_name: str, base_path: str) -> Invocation:
    """
    Expand the run command template for one scenario.

    Args:
        template: run command template, must contain <scenario_name>
        scenario_name: folder name of the scenario
        base_path: program root used to resolve relative program paths

    Raises:
        ConfigurationError: the template is invalid; no process is created
    """
    template = template.strip()
    if SCENARIO_NAME_PLACEHOLDER not in template:
        raise ConfigurationError(
            ErrorCode.CONFIG_TEMPLATE_INVALID,
            f"Set a valid run command template in the active program profile "
            f"(must include '{SCENARIO_NAME_PLACEHOLDER}').",
            details={"template": template},
        )

    expanded = template.replace(SCENARIO_NAME_PLACEHOLDER, scenario_name)
    parts = tokenize(expanded)
    if not parts:
        raise ConfigurationError(
            ErrorCode.CONFIG_TEMPLATE_EMPTY,
            "Set a valid run command template in the active program profile.",
            details={"template": template},
        )

    if parts[0] == MODULE_FLAG:
        if len(parts) < 2 or not parts[1]:
            raise ConfigurationError(
                ErrorCode.CONFIG_MODULE_MISSING,
                "Set a valid module-style run command template in the active program profile.",
                details={"template": template},
            )
        return ModuleInvocation(name=parts[1], args=tuple(parts[2:]))

    program_token, *args = parts
    program = program_token if os.path.isabs(program_token) else os.path.join(base_path, program_token)
    return ProgramInvocation(path=program, args=tuple(args))
