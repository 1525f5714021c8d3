from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from scenariokit.engine.orchestrator import ScenarioOrchestrator
from scenariokit.server.state import ApplicationState, get_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scenarios", tags=["scenarios"])


class ScenarioRequest(BaseModel):
    path: str = Field(..., min_length=1, description="Any path inside the scenario folder")
    workspace: Optional[str] = Field(default=None, description="Workspace used to pick the bound profile")
    password: Optional[str] = Field(default=None, description="Answer to the sudo password prompt")
    install_consent: bool = Field(default=False, description="Answer to the debugpy install prompt")


class FlagsRequest(BaseModel):
    # None cancels the prompt and leaves the stored flags untouched.
    flags: Optional[str] = None
    workspace: Optional[str] = None


class HostMessage(BaseModel):
    severity: str
    message: str


class OperationResponse(BaseModel):
    ok: bool
    messages: List[HostMessage] = Field(default_factory=list)
    descriptors: List[Dict[str, Any]] = Field(default_factory=list)


class MessageFeed(BaseModel):
    messages: List[HostMessage]
    next: int


class OutputBatch(BaseModel):
    lines: List[str]


Operation = Callable[[ScenarioOrchestrator], Awaitable[bool]]


async def _perform(
    state: ApplicationState,
    operation: Operation,
    workspace: Optional[str] = None,
    secret: Optional[str] = None,
    consent: bool = False,
    text: Optional[str] = None,
) -> OperationResponse:
    """Run one operation with the request's prompt answers and collect what the host saw."""
    host = state.host
    async with state.operation_lock:
        state.workspace = workspace
        host.secret, host.consent, host.text = secret, consent, text
        message_mark, descriptor_mark = host.message_count, host.descriptor_count
        try:
            ok = await operation(state.orchestrator)
        finally:
            host.secret, host.consent, host.text = None, False, None

        return OperationResponse(
            ok=ok,
            messages=[HostMessage(severity=s.value, message=m) for s, m in host.messages_since(message_mark)],
            descriptors=host.descriptors_since(descriptor_mark),
        )


async def _perform_for_path(req: ScenarioRequest, operation: Callable[[ScenarioOrchestrator, str], Awaitable[bool]]):
    return await _perform(
        get_state(),
        lambda orchestrator: operation(orchestrator, req.path),
        workspace=req.workspace,
        secret=req.password,
        consent=req.install_consent,
    )


@router.post("/run", response_model=OperationResponse)
async def run_scenario(req: ScenarioRequest):
    """Start a plain foreground run."""
    return await _perform_for_path(req, ScenarioOrchestrator.run)


@router.post("/debug", response_model=OperationResponse)
async def debug_scenario(req: ScenarioRequest):
    """
    Start a debug run.

    The response carries the launch (unprivileged) or attach (elevated)
    descriptor for the editor's debugger.
    """
    return await _perform_for_path(req, ScenarioOrchestrator.run_with_debugger)


@router.post("/detach", response_model=OperationResponse)
async def detach_scenario(req: ScenarioRequest):
    """Start the scenario in a detached screen session."""
    return await _perform_for_path(req, ScenarioOrchestrator.run_in_detached_session)


@router.post("/toggle-sudo", response_model=OperationResponse)
async def toggle_sudo(req: ScenarioRequest):
    return await _perform_for_path(req, ScenarioOrchestrator.toggle_elevated)


@router.post("/flags", response_model=OperationResponse)
async def set_flags(req: FlagsRequest):
    return await _perform(
        get_state(),
        ScenarioOrchestrator.set_global_extra_flags,
        workspace=req.workspace,
        text=req.flags,
    )


@router.get("/flags")
async def get_flags():
    return {"flags": get_state().store.global_run_flags}


@router.get("/last-execution")
async def last_execution(workspace: Optional[str] = None):
    """Recompute and return the most recent run across all scenarios (null if none)."""
    state = get_state()
    async with state.operation_lock:
        state.workspace = workspace
        info = state.orchestrator.refresh()
    return {"last_execution": info.to_dict() if info else None}


@router.get("/output", response_model=OutputBatch)
async def fetch_output(limit: int = Query(default=500, ge=0, le=10000)):
    """Tail of the shared run output log."""
    return {"lines": get_state().sink.tail(limit)}


@router.get("/messages", response_model=MessageFeed)
async def fetch_messages(since: int = Query(default=0, ge=0)):
    """
    Host messages from position `since` on, including exit reports of background runs.

    Only the newest messages are kept; older ones are skipped silently.
    """
    host = get_state().host
    return {
        "messages": [HostMessage(severity=s.value, message=m) for s, m in host.messages_since(since)],
        "next": host.message_count,
    }
