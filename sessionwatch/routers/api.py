"""API routers for the dashboard: snapshot, projects, settings and hooks."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from sessionwatch.models import InstallResult, ProjectView, Snapshot, WatchSettings

snapshot_router = APIRouter(prefix="/api/snapshot", tags=["snapshot"])
projects_router = APIRouter(prefix="/api/projects", tags=["projects"])
settings_router = APIRouter(prefix="/api/settings", tags=["settings"])
hooks_router = APIRouter(prefix="/api/hooks", tags=["hooks"])


def _runtime(request: Request):
    return request.app.state.runtime


# ── Snapshot ────────────────────────────────────────────────────────

@snapshot_router.get("", response_model=Snapshot)
def get_snapshot(request: Request):
    """Current watch state and all tracked projects."""
    return _runtime(request).coordinator.view()


# ── Projects ────────────────────────────────────────────────────────

@projects_router.get("/{project_id}", response_model=ProjectView)
def get_project(request: Request, project_id: str):
    project = _runtime(request).coordinator.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectView.from_project(project)


@projects_router.post("/{project_id}/toggle", response_model=ProjectView)
def toggle_project(request: Request, project_id: str):
    """Flip the expand/collapse flag of a project row."""
    project = _runtime(request).coordinator.toggle_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectView.from_project(project)


# ── Settings ────────────────────────────────────────────────────────

@settings_router.get("", response_model=WatchSettings)
def get_settings(request: Request):
    return _runtime(request).coordinator.settings


@settings_router.put("", response_model=WatchSettings)
async def update_settings(request: Request, payload: WatchSettings):
    return await _runtime(request).apply_settings(payload)


# ── Hooks ───────────────────────────────────────────────────────────

@hooks_router.get("")
def get_hook_status(request: Request):
    runtime = _runtime(request)
    return {
        "installed": runtime.installer.is_installed,
        "scriptPath": str(runtime.installer.script_path),
        "settingsPath": str(runtime.installer.settings_path),
        "socketPath": runtime.socket_server.socket_path,
        "socketRunning": runtime.socket_server.is_running,
        "script": runtime.installer.hook_script(),
    }


@hooks_router.post("/install", response_model=InstallResult)
def install_hooks(request: Request):
    result = _runtime(request).installer.install()
    if not result.ok:
        raise HTTPException(status_code=500, detail=result.reason)
    return result


@hooks_router.post("/uninstall", response_model=InstallResult)
def uninstall_hooks(request: Request):
    result = _runtime(request).installer.uninstall()
    if not result.ok:
        raise HTTPException(status_code=500, detail=result.reason)
    return result
