"""SessionWatch FastAPI application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sessionwatch import config
from sessionwatch.observability import initialize as initialize_observability, shutdown as shutdown_observability
from sessionwatch.routers.api import hooks_router, projects_router, settings_router, snapshot_router
from sessionwatch.services.runtime import WatchRuntime

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("sessionwatch")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("SessionWatch starting up")
    initialize_observability(app)

    runtime = WatchRuntime.from_config()
    app.state.runtime = runtime
    await runtime.start()

    yield

    logger.info("SessionWatch shutting down")
    await runtime.stop()
    shutdown_observability(app)


app = FastAPI(
    title="SessionWatch API",
    description="Live view of assistant sessions, subagents and task checklists",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(snapshot_router)
app.include_router(projects_router)
app.include_router(settings_router)
app.include_router(hooks_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    runtime = getattr(app.state, "runtime", None)
    if runtime is None:
        return {"status": "starting"}
    return {
        "status": "ok",
        "watchState": runtime.coordinator.watch_state,
        "watcher": "running" if runtime.coordinator.is_watching else "stopped",
        "socket": "running" if runtime.socket_server.is_running else "stopped",
        "monitor": "running" if runtime.monitor.is_running else "stopped",
        "processDetected": runtime.monitor.is_process_running,
    }
