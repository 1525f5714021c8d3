"""
scenariokit/server/api.py

HTTP front-end for editors. Operations are exposed under /scenarios; host
prompts are answered from the request body and host messages come back in
the response.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from scenariokit import __version__
from scenariokit.base.config import get_config, setup_logging
from scenariokit.errors import ScenarioToolkitError, Severity
from scenariokit.server.routers.scenarios import router as scenarios_router
from scenariokit.server.state import ApplicationState

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = ApplicationState.instance()
    logger.info(f"[API] Data directory: {state.config.storage.base_dir}")
    await state.orchestrator.refresh_async()
    yield
    await state.orchestrator.cancel_debug_sessions()


app = FastAPI(
    title="Scenario Toolkit API",
    description="Run, debug and detach scenarios of a Python program",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(ScenarioToolkitError)
async def toolkit_error_handler(request: Request, exc: ScenarioToolkitError):
    logger.error(f"[API] {exc.code.value}: {exc.message}")
    status_code = 400 if exc.severity is Severity.WARNING else 500
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.get("/ping")
async def ping():
    return {"status": "ok", "timestamp": asyncio.get_running_loop().time()}


app.include_router(scenarios_router)


def serve(host: Optional[str] = None, port: Optional[int] = None) -> None:
    config = get_config()
    setup_logging(config)
    uvicorn.run(
        app,
        host=host or config.api_host,
        port=port or config.api_port,
        log_level=config.log.level.lower(),
    )
