"""Project path normalization and transcript directory naming."""
from __future__ import annotations

import os
from pathlib import Path

_TRANSCRIPT_SUFFIX = ".jsonl"


def normalize_project_path(path: str) -> str:
    """Canonical absolute form with no trailing separator; root stays `/`."""
    raw = (path or "").strip()
    if not raw:
        return "/"
    normalized = os.path.normpath(os.path.abspath(os.path.expanduser(raw)))
    # normpath keeps a leading `//` (POSIX allows it to be special)
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    if normalized == "/":
        return "/"
    return normalized.rstrip("/") or "/"


def make_project_id(path: str) -> str:
    """Directory name the assistant uses for a project: `/` becomes `-`."""
    normalized = normalize_project_path(path)
    if normalized == "/":
        return "-"
    return normalized.replace("/", "-")


def path_from_project_id(project_id: str) -> str:
    """Best-effort inverse of `make_project_id`; lossy for paths containing `-`."""
    if not project_id or project_id == "-":
        return "/"
    return project_id.replace("-", "/")


def relative_components(path: str | Path, projects_dir: str | Path) -> list[str]:
    """Path components below the projects root, or `[]` when outside it."""
    try:
        relative = Path(path).relative_to(Path(projects_dir))
    except ValueError:
        return []
    return [part for part in relative.parts if part not in ("", ".")]


def is_main_session_file(path: str | Path, projects_dir: str | Path) -> bool:
    """True for `<projects>/<dir>/<session>.jsonl`, false for nested subagent logs."""
    components = relative_components(path, projects_dir)
    return len(components) == 2 and components[1].endswith(_TRANSCRIPT_SUFFIX)


def project_hash_for(path: str | Path, projects_dir: str | Path) -> str | None:
    components = relative_components(path, projects_dir)
    return components[0] if components else None


def session_id_from_path(path: str | Path) -> str:
    return Path(path).stem
