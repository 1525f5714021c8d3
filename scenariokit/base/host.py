"""
scenariokit/base/host.py

The host collaborator: whatever front-end drives the orchestrator (an editor
over HTTP, the CLI, a test double). The orchestrator never renders UI
itself; it asks the host to show messages, prompt for secrets and start
debugging sessions.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from scenariokit.errors import Severity

logger = logging.getLogger(__name__)

DebugDescriptor = Dict[str, Any]


class HostBridge(ABC):
    """Interface implemented by every front-end."""

    @abstractmethod
    def show_message(self, severity: Severity, message: str) -> None:
        """Display a user-visible message."""

    @abstractmethod
    async def prompt_secret(self, prompt: str) -> Optional[str]:
        """Ask for a password. None means the user cancelled."""

    @abstractmethod
    async def prompt_text(self, prompt: str, value: str = "") -> Optional[str]:
        """Ask for a free-form value. None means the user cancelled."""

    @abstractmethod
    async def confirm(self, prompt: str) -> bool:
        """Ask a yes/no question."""

    @abstractmethod
    async def start_debugging(self, descriptor: DebugDescriptor) -> bool:
        """Hand a launch/attach descriptor to the host debugger. Returns success."""

    def info(self, message: str) -> None:
        self.show_message(Severity.INFO, message)

    def warning(self, message: str) -> None:
        self.show_message(Severity.WARNING, message)

    def error(self, message: str) -> None:
        self.show_message(Severity.ERROR, message)


class ScriptedHost(HostBridge):
    """
    Non-interactive host whose prompt answers are supplied up front.

    Used by the HTTP API (answers come from the request body) and by tests.
    Messages and debugger descriptors are recorded. With `history` set only
    the newest entries are kept, but the running counts keep growing so
    positions handed out earlier stay valid.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        text: Optional[str] = None,
        consent: bool = False,
        debugger_accepts: bool = True,
        history: Optional[int] = None,
    ):
        self.secret = secret
        self.text = text
        self.consent = consent
        self.debugger_accepts = debugger_accepts
        self.messages: Deque[Tuple[Severity, str]] = deque(maxlen=history)
        self.prompts: Deque[str] = deque(maxlen=history)
        self.descriptors: Deque[DebugDescriptor] = deque(maxlen=history)
        self.message_count = 0
        self.descriptor_count = 0

    def show_message(self, severity: Severity, message: str) -> None:
        self.messages.append((severity, message))
        self.message_count += 1

    async def prompt_secret(self, prompt: str) -> Optional[str]:
        self.prompts.append(prompt)
        return self.secret

    async def prompt_text(self, prompt: str, value: str = "") -> Optional[str]:
        self.prompts.append(prompt)
        return self.text

    async def confirm(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.consent

    async def start_debugging(self, descriptor: DebugDescriptor) -> bool:
        self.descriptors.append(descriptor)
        self.descriptor_count += 1
        return self.debugger_accepts

    def messages_of(self, severity: Severity) -> List[str]:
        return [text for level, text in self.messages if level == severity]

    def messages_since(self, position: int) -> List[Tuple[Severity, str]]:
        """Messages recorded at or after `position` that are still kept."""
        return _since(self.messages, self.message_count, position)

    def descriptors_since(self, position: int) -> List[DebugDescriptor]:
        return _since(self.descriptors, self.descriptor_count, position)


def _since(entries: Deque[Any], total: int, position: int) -> List[Any]:
    first_kept = total - len(entries)
    return list(entries)[max(position - first_kept, 0):]
