"""Project directory and identity resolution.

A transcript names its project three ways: the encoded directory it lives in,
the `cwd` recorded inside it and the session id in its file name. Hook events
carry a `cwd` and a session id. `ProjectDirectory.resolve` maps any of these
onto a single Project and keeps the session index pointing at it.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from sessionwatch.date_utils import utc_now
from sessionwatch.models import Project, SessionStatus
from sessionwatch.paths import make_project_id, normalize_project_path

logger = logging.getLogger("sessionwatch.coordinator")


def _raw_project_id(path: str) -> str:
    raw = (path or "").strip()
    if raw in ("", "/"):
        return "-"
    return raw.rstrip("/").replace("/", "-")


class ProjectDirectory:
    """Ordered Projects plus the session index and pending session statuses."""

    def __init__(self, clock: Callable = utc_now):
        self._clock = clock
        self.projects: list[Project] = []
        self._session_to_project: dict[str, str] = {}
        self._pending_status: dict[str, SessionStatus] = {}

    def __len__(self) -> int:
        return len(self.projects)

    def get(self, project_id: str) -> Optional[Project]:
        return next((p for p in self.projects if p.id == project_id), None)

    def project_for_session(self, session_id: str) -> Optional[Project]:
        project_id = self._session_to_project.get(session_id)
        if project_id is None:
            return None
        project = self.get(project_id)
        if project is None:
            self._session_to_project.pop(session_id, None)
        return project

    def session_project_id(self, session_id: str) -> Optional[str]:
        return self._session_to_project.get(session_id)

    def resolve(
        self,
        path: str,
        session_id: str,
        legacy_id: str | None = None,
    ) -> tuple[Project, bool]:
        """Return `(project, created)` for an event's path and session.

        Lookup order: session index, normalized id, legacy id, normalized
        path. A Project is created only when all of them miss.
        """
        normalized = normalize_project_path(path)
        computed_id = make_project_id(normalized)

        mapped = self.project_for_session(session_id)
        if mapped is not None:
            if mapped.path != normalized or mapped.sessionId != session_id:
                logger.debug("Repairing drift for %s: %s -> %s", mapped.id, mapped.path, normalized)
                mapped.path = normalized
                mapped.sessionId = session_id
            return mapped, False

        legacy = legacy_id or _raw_project_id(path)
        existing = (
            self.get(computed_id)
            or self.get(legacy)
            or next((p for p in self.projects if p.path == normalized), None)
        )
        if existing is not None:
            if existing.path != normalized or existing.sessionId != session_id:
                existing.path = normalized
                existing.sessionId = session_id
            self._session_to_project[session_id] = existing.id
            return existing, False

        project = Project(
            id=computed_id,
            path=normalized,
            sessionId=session_id,
            startTime=self._clock(),
            sessionStatus=self._pending_status.pop(normalized, "unknown"),
        )
        self.projects.append(project)
        self._session_to_project[session_id] = project.id
        logger.info("Tracking project %s (session %s)", project.path, session_id)
        return project, True

    def find_existing(self, path: str, session_id: str, register: bool = False) -> Optional[Project]:
        """Non-creating lookup: session index first, then normalized path."""
        project = self.project_for_session(session_id)
        if project is not None:
            return project
        normalized = normalize_project_path(path)
        project = next((p for p in self.projects if p.path == normalized), None)
        if project is not None and register:
            self._session_to_project[session_id] = project.id
        return project

    def remove(self, project_id: str) -> Optional[Project]:
        project = self.get(project_id)
        if project is None:
            return None
        self.projects.remove(project)
        self._session_to_project = {
            session: mapped for session, mapped in self._session_to_project.items() if mapped != project_id
        }
        return project

    def remove_by_session(self, session_id: str) -> Optional[Project]:
        project_id = self._session_to_project.pop(session_id, None)
        if project_id is None:
            return None
        return self.remove(project_id)

    def record_pending_status(self, path: str, status: SessionStatus) -> None:
        self._pending_status[normalize_project_path(path)] = status

    def discard_pending_status(self, path: str) -> None:
        self._pending_status.pop(normalize_project_path(path), None)

    def clear(self) -> None:
        self.projects.clear()
        self._session_to_project.clear()
        self._pending_status.clear()
