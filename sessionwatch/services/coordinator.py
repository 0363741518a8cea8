"""Reconciliation engine for transcript and hook events.

`WatchCoordinator` owns every Project, Subagent and TaskItem. Transcript
changes (via the file watcher) and hook lifecycle events (via the socket
server) are both applied here, on the event loop thread, so the directory
is only ever mutated from one place. Both sources may deliver the same fact,
in any order; every handler is idempotent.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from sessionwatch.date_utils import utc_now
from sessionwatch.models import (
    EVENT_POST_TOOL,
    EVENT_POST_TOOL_FAILURE,
    EVENT_PRE_TOOL,
    EVENT_PROMPT_SUBMIT,
    EVENT_STOP,
    TASK_STATUSES,
    TOOL_SUBAGENT,
    TOOL_TASK_CREATE,
    TOOL_TASK_UPDATE,
    FileEvent,
    FileEventKind,
    HookEvent,
    Project,
    ProjectView,
    Snapshot,
    Subagent,
    SubagentStatus,
    TaskItem,
    ToolResultEvent,
    ToolUseEvent,
    WatchSettings,
    WatchState,
)
from sessionwatch.observability import record_ingestion, record_lifecycle_event, start_span
from sessionwatch.parsers.sessions import SessionParser
from sessionwatch.paths import (
    is_main_session_file,
    normalize_project_path,
    path_from_project_id,
    project_hash_for,
    session_id_from_path,
)
from sessionwatch.services.file_watcher import FileWatcher
from sessionwatch.services.identity import ProjectDirectory
from sessionwatch.services.notifications import LoggingNotifier, Notifier

logger = logging.getLogger("sessionwatch.coordinator")

# Subagent hook events held while no assistant process has been seen yet.
_DEFERRED_EVENT_LIMIT = 256


class _Watcher(Protocol):
    def start(self) -> None: ...
    def stop(self) -> None: ...


WatcherFactory = Callable[[list[Path], Callable[[list[FileEvent]], None]], _Watcher]


@dataclass
class PendingSubagent:
    project_id: str
    name: str
    start_time: datetime


class WatchCoordinator:
    """Single owner of the session directory and the watch state."""

    def __init__(
        self,
        settings: WatchSettings,
        projects_dir: Path,
        *,
        parser: SessionParser | None = None,
        notifier: Notifier | None = None,
        watcher_factory: WatcherFactory | None = None,
        refresh_interval: float = 1.0,
        watch_debounce_ms: int = 2000,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        self.projects_dir = Path(projects_dir)
        self.parser = parser or SessionParser()
        self.notifier: Notifier = notifier or LoggingNotifier()
        self._watcher_factory = watcher_factory or (
            lambda paths, callback: FileWatcher(paths, callback, debounce_ms=watch_debounce_ms)
        )
        self._refresh_interval = refresh_interval
        self._clock = clock

        self.watch_state: WatchState = "stopped"
        self.last_update: datetime = clock()
        self.tick_count = 0

        self._directory = ProjectDirectory(clock)
        self._pending_subagents: dict[str, PendingSubagent] = {}
        # invocation id -> (project id, task id)
        self._task_id_map: dict[str, tuple[str, str]] = {}
        self._deferred_tool_events: deque[tuple[HookEvent, datetime]] = deque(maxlen=_DEFERRED_EVENT_LIMIT)
        self._cwd_by_file: dict[str, str] = {}
        self._watcher: Optional[_Watcher] = None
        self._refresh_task: Optional[asyncio.Task] = None

    # ── Read side ──────────────────────────────────────────────────

    @property
    def projects(self) -> list[Project]:
        return self._directory.projects

    def snapshot(self) -> list[Project]:
        """Deep copy of the current Projects, safe to hand to readers."""
        return [project.model_copy(deep=True) for project in self._directory.projects]

    def view(self) -> Snapshot:
        now = self._clock()
        return Snapshot(
            watchState=self.watch_state,
            lastUpdate=self.last_update,
            tick=self.tick_count,
            totalActiveSubagents=self.total_active_subagents(),
            indicatorEnabled=self.settings.indicatorEnabled,
            projects=[ProjectView.from_project(project, now) for project in self._directory.projects],
        )

    def get_project(self, project_id: str) -> Optional[Project]:
        project = self._directory.get(project_id)
        return project.model_copy(deep=True) if project else None

    def total_active_subagents(self) -> int:
        return sum(project.active_subagent_count() for project in self._directory.projects)

    @property
    def is_watching(self) -> bool:
        return self._watcher is not None

    def has_active_session(self) -> bool:
        return bool(self._directory.projects)

    def pending_subagent_ids(self) -> list[str]:
        return list(self._pending_subagents)

    def session_project_id(self, session_id: str) -> Optional[str]:
        return self._directory.session_project_id(session_id)

    def touch(self) -> None:
        now = self._clock()
        if now > self.last_update:
            self.last_update = now
        self.tick_count += 1

    # ── Presentation and settings ──────────────────────────────────

    def toggle_project(self, project_id: str) -> Optional[Project]:
        project = self._directory.get(project_id)
        if project is None:
            return None
        project.isExpanded = not project.isExpanded
        self.touch()
        return project.model_copy(deep=True)

    def apply_settings(self, settings: WatchSettings) -> WatchSettings:
        previous = self.settings
        self.settings = settings
        logger.info(
            "Settings updated (hook=%s indicator=%s notifications=%s)",
            settings.hookEnabled,
            settings.indicatorEnabled,
            settings.notificationEnabled,
        )
        return previous

    # ── Process liveness ───────────────────────────────────────────

    def on_process_detected(self) -> None:
        if self.watch_state != "stopped":
            return
        self.watch_state = "watching"
        logger.info("Assistant process detected, watching %s", self.projects_dir)
        self._skip_existing_transcripts()
        self._watcher = self._watcher_factory([self.projects_dir], self.on_file_events)
        self._watcher.start()
        self._start_refresh_timer()
        self._replay_deferred_events()
        self._refresh_state()
        self.touch()

    def on_process_lost(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None
        self.parser.reset_all()
        self._directory.clear()
        self._pending_subagents.clear()
        self._task_id_map.clear()
        self._deferred_tool_events.clear()
        self._cwd_by_file.clear()
        if self.watch_state != "stopped":
            logger.info("Assistant process gone, cleared session state")
        self.watch_state = "stopped"
        self.touch()

    def _skip_existing_transcripts(self) -> None:
        """Ignore history: only lines appended after detection are parsed."""
        try:
            project_dirs = [child for child in self.projects_dir.iterdir() if child.is_dir()]
        except OSError:
            return
        for project_dir in project_dirs:
            for session_file in self.parser.list_session_files(project_dir):
                self.parser.skip_to_end(session_file)

    def _start_refresh_timer(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, refresh timer not started")
            return
        self._refresh_task = loop.create_task(self._refresh_loop())

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            self.touch()

    def _refresh_state(self) -> None:
        if self.watch_state == "stopped":
            return
        if self._directory.projects and self.watch_state != "active":
            self.watch_state = "active"
            logger.info("Watch state -> active")
        elif not self._directory.projects and self.watch_state == "active":
            self.watch_state = "watching"
            logger.info("Watch state -> watching")

    # ── Transcript events ──────────────────────────────────────────

    def on_file_changed(self, path: str | Path, kind: FileEventKind) -> None:
        self.on_file_events([FileEvent(path=str(path), kind=kind)])

    def on_file_events(self, events: list[FileEvent]) -> None:
        if self.watch_state == "stopped":
            return
        removed = [e.path for e in events if e.kind == "removed" and is_main_session_file(e.path, self.projects_dir)]
        modified = [e.path for e in events if e.kind == "modified" and is_main_session_file(e.path, self.projects_dir)]

        for path in removed:
            self._handle_session_removed(path)
        for path in modified:
            self._handle_file_changed(path)

        self._refresh_state()
        self.touch()

    def _handle_session_removed(self, path: str) -> None:
        self.parser.remove_file(path)
        self._cwd_by_file.pop(path, None)
        session_id = session_id_from_path(path)

        project = self._directory.remove_by_session(session_id)
        if project is None:
            legacy_id = project_hash_for(path, self.projects_dir)
            if legacy_id:
                project = self._directory.remove(legacy_id)
        if project is None:
            return

        self._forget_project(project.id)
        logger.info("Transcript removed, dropped project %s", project.path)

    def _forget_project(self, project_id: str) -> None:
        self._pending_subagents = {
            tool_use_id: pending
            for tool_use_id, pending in self._pending_subagents.items()
            if pending.project_id != project_id
        }
        self._task_id_map = {
            invocation_id: mapped
            for invocation_id, mapped in self._task_id_map.items()
            if mapped[0] != project_id
        }

    def _handle_file_changed(self, path: str) -> None:
        started = time.monotonic()
        entries = self.parser.read_new(path)
        if not entries:
            return

        project_hash = project_hash_for(path, self.projects_dir) or ""
        cwd = self.parser.extract_cwd(entries)
        if cwd:
            self._cwd_by_file[path] = cwd
        project_path = self._cwd_by_file.get(path) or path_from_project_id(project_hash)
        session_id = session_id_from_path(path)

        with start_span("transcript.apply", {"session_id": session_id, "entries": len(entries)}):
            for tool_use in self.parser.extract_tool_uses(entries):
                self.apply_tool_use(tool_use, project_path, session_id, legacy_id=project_hash or None)
            for result in self.parser.extract_tool_results(entries):
                self.apply_tool_result(result)

        project_id = self._directory.session_project_id(session_id) or ""
        record_ingestion("transcript", "success", (time.monotonic() - started) * 1000, project_id=project_id)

    def apply_tool_use(
        self,
        event: ToolUseEvent,
        project_path: str,
        session_id: str,
        legacy_id: str | None = None,
    ) -> None:
        """Apply one `tool_use` item from a transcript."""
        if event.name == TOOL_SUBAGENT:
            project = self._ensure_project(project_path, session_id, legacy_id)
            description, _agent_type = self.parser.extract_agent_info(event.input)
            self._add_subagent(project, event.id, description, event.timestamp or self._clock())
        elif event.name == TOOL_TASK_CREATE:
            project = self._ensure_project(project_path, session_id, legacy_id)
            self._add_task(project, event)
        elif event.name == TOOL_TASK_UPDATE:
            project = self._directory.find_existing(project_path, session_id, register=True)
            if project is not None:
                self._update_task(project, event)
        self._refresh_state()

    def apply_tool_result(self, result: ToolResultEvent) -> None:
        """Complete the Subagent started by the matching invocation, if any."""
        self._finish_subagent(
            result.toolUseId,
            "completed",
            result.timestamp or self._clock(),
            scan_all=False,
        )

    # ── Hook lifecycle events ──────────────────────────────────────

    def on_lifecycle_event(self, event: HookEvent) -> None:
        if event.tool_name and event.tool_name != TOOL_SUBAGENT:
            record_lifecycle_event(event.event, "ignored")
            return

        logger.info("Hook event received: %s for path: %s", event.event, event.cwd)

        if self.watch_state == "stopped":
            self._handle_event_while_stopped(event)
            record_lifecycle_event(event.event, "deferred")
            return

        handlers: dict[str, Callable[[HookEvent], Any]] = {
            EVENT_PROMPT_SUBMIT: self._handle_prompt_submit,
            EVENT_STOP: self._handle_session_stop,
            EVENT_PRE_TOOL: self._handle_subagent_start,
            EVENT_POST_TOOL: lambda e: self._handle_subagent_end(e, "completed"),
            EVENT_POST_TOOL_FAILURE: lambda e: self._handle_subagent_end(e, "error"),
        }
        handler = handlers.get(event.event)
        if handler is None:
            logger.debug("Ignoring unknown hook event %r", event.event)
            record_lifecycle_event(event.event, "ignored")
            return

        handler(event)
        record_lifecycle_event(event.event, "applied")
        self._refresh_state()
        self.touch()

    def _handle_event_while_stopped(self, event: HookEvent) -> None:
        # The liveness poll has not caught up yet: remember the status and
        # hold subagent events until detection.
        if event.event == EVENT_PROMPT_SUBMIT:
            self._directory.record_pending_status(event.cwd, "working")
        elif event.event == EVENT_STOP:
            self._directory.discard_pending_status(event.cwd)
            stopped_path = normalize_project_path(event.cwd)
            self._deferred_tool_events = deque(
                (
                    (held, received_at)
                    for held, received_at in self._deferred_tool_events
                    if normalize_project_path(held.cwd) != stopped_path
                ),
                maxlen=_DEFERRED_EVENT_LIMIT,
            )
        elif event.event in (EVENT_PRE_TOOL, EVENT_POST_TOOL, EVENT_POST_TOOL_FAILURE) and event.tool_use_id:
            self._deferred_tool_events.append((event, self._clock()))

    def _replay_deferred_events(self) -> None:
        while self._deferred_tool_events:
            event, received_at = self._deferred_tool_events.popleft()
            if event.event == EVENT_PRE_TOOL:
                self._handle_subagent_start(event, received_at)
            elif event.event == EVENT_POST_TOOL:
                self._handle_subagent_end(event, "completed", received_at)
            else:
                self._handle_subagent_end(event, "error", received_at)
            record_lifecycle_event(event.event, "applied")

    def _handle_prompt_submit(self, event: HookEvent) -> None:
        project = self._ensure_project(event.cwd, event.session_id)
        project.sessionStatus = "working"
        self._directory.discard_pending_status(event.cwd)

    def _handle_session_stop(self, event: HookEvent) -> None:
        project = self._directory.find_existing(event.cwd, event.session_id)
        if project is None:
            logger.info("Stop: no matching project for %s", normalize_project_path(event.cwd))
        else:
            project.sessionStatus = "idle"
            if self.settings.notificationEnabled:
                try:
                    self.notifier.send_session_completed(project.display_name(), project.path)
                except Exception as e:
                    logger.warning("Completion notification failed: %s", e)
        self._directory.discard_pending_status(event.cwd)

    def _handle_subagent_start(self, event: HookEvent, at: datetime | None = None) -> None:
        if not event.tool_use_id:
            return
        project = self._ensure_project(event.cwd, event.session_id)
        project.sessionStatus = "working"
        name = event.task_description or event.subagent_type or "Subagent"
        self._add_subagent(project, event.tool_use_id, name, at or self._clock())

    def _handle_subagent_end(self, event: HookEvent, status: SubagentStatus, at: datetime | None = None) -> None:
        if not event.tool_use_id:
            return
        self._finish_subagent(event.tool_use_id, status, at or self._clock(), scan_all=True)

    # ── Mutations shared by both paths ─────────────────────────────

    def _ensure_project(self, path: str, session_id: str, legacy_id: str | None = None) -> Project:
        project, _created = self._directory.resolve(path, session_id, legacy_id=legacy_id)
        return project

    def _add_subagent(self, project: Project, subagent_id: str, name: str, start_time: datetime) -> bool:
        if project.find_subagent(subagent_id) is not None:
            return False
        project.subagents.append(Subagent(id=subagent_id, name=name, status="running", startTime=start_time))
        self._pending_subagents[subagent_id] = PendingSubagent(project.id, name, start_time)
        return True

    def _finish_subagent(
        self,
        tool_use_id: str,
        status: SubagentStatus,
        end_time: datetime,
        *,
        scan_all: bool,
    ) -> bool:
        pending = self._pending_subagents.pop(tool_use_id, None)
        subagent: Subagent | None = None
        if pending is not None:
            owner = self._directory.get(pending.project_id)
            subagent = owner.find_subagent(tool_use_id) if owner else None
        if subagent is None and scan_all:
            subagent = next(
                (
                    candidate
                    for project in self._directory.projects
                    for candidate in project.subagents
                    if candidate.id == tool_use_id
                ),
                None,
            )
        if subagent is None or subagent.is_terminal:
            return False

        subagent.status = status
        subagent.endTime = max(end_time, subagent.startTime)
        return True

    def _add_task(self, project: Project, event: ToolUseEvent) -> bool:
        info = self.parser.extract_task_item_info(event.input)
        if info is None or event.id in self._task_id_map:
            return False
        subject, description, active_form = info
        # Known limitation: two distinct tasks sharing a subject collapse into one.
        if any(task.subject == subject for task in project.tasks):
            return False

        task_id = str(len(project.tasks) + 1)
        project.tasks.append(
            TaskItem(
                id=task_id,
                subject=subject,
                description=description,
                status="pending",
                activeForm=active_form,
            )
        )
        self._task_id_map[event.id] = (project.id, task_id)
        return True

    def _update_task(self, project: Project, event: ToolUseEvent) -> bool:
        info = self.parser.extract_task_update_info(event.input)
        if info is None:
            return False
        task_id, status = info
        task = project.find_task(task_id)
        if task is None or status not in TASK_STATUSES:
            return False
        task.status = status
        return True
