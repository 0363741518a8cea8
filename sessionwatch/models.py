"""Pydantic models shared by the parser, the coordinator and the dashboard API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from sessionwatch.date_utils import format_elapsed, utc_now

WatchState = Literal["stopped", "watching", "active"]
SessionStatus = Literal["unknown", "working", "idle"]
SubagentStatus = Literal["running", "waiting", "completed", "error"]
TaskStatus = Literal["pending", "in_progress", "completed"]
FileEventKind = Literal["modified", "removed"]

TASK_STATUSES: frozenset[str] = frozenset({"pending", "in_progress", "completed"})
TERMINAL_SUBAGENT_STATUSES: frozenset[str] = frozenset({"completed", "error"})

# Tool names written by the assistant into its transcript.
TOOL_SUBAGENT = "Task"
TOOL_TASK_CREATE = "TaskCreate"
TOOL_TASK_UPDATE = "TaskUpdate"

# Hook events delivered over the side channel.
EVENT_PROMPT_SUBMIT = "UserPromptSubmit"
EVENT_STOP = "Stop"
EVENT_PRE_TOOL = "PreToolUse"
EVENT_POST_TOOL = "PostToolUse"
EVENT_POST_TOOL_FAILURE = "PostToolUseFailure"
HOOK_EVENTS: tuple[str, ...] = (
    EVENT_PROMPT_SUBMIT,
    EVENT_STOP,
    EVENT_PRE_TOOL,
    EVENT_POST_TOOL,
    EVENT_POST_TOOL_FAILURE,
)


# ── Session directory models ───────────────────────────────────────

class Subagent(BaseModel):
    id: str
    name: str
    status: SubagentStatus = "running"
    startTime: datetime = Field(default_factory=utc_now)
    endTime: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SUBAGENT_STATUSES

    def elapsed_seconds(self, now: datetime | None = None) -> float:
        end = self.endTime or now or utc_now()
        return max(0.0, (end - self.startTime).total_seconds())


class TaskItem(BaseModel):
    id: str
    subject: str
    description: str = ""
    status: TaskStatus = "pending"
    activeForm: Optional[str] = None

    def display_text(self) -> str:
        """Label shown in the checklist; the active form wins while in progress."""
        if self.status == "in_progress" and self.activeForm:
            return self.activeForm
        return self.subject


class Project(BaseModel):
    id: str
    path: str
    sessionId: str
    subagents: list[Subagent] = Field(default_factory=list)
    tasks: list[TaskItem] = Field(default_factory=list)
    isExpanded: bool = True
    startTime: datetime = Field(default_factory=utc_now)
    sessionStatus: SessionStatus = "unknown"

    def display_name(self) -> str:
        if self.path == "/" or self.id == "-":
            return "/"
        parts = [part for part in self.path.split("/") if part]
        return parts[-1] if parts else self.id

    def elapsed_seconds(self, now: datetime | None = None) -> float:
        return max(0.0, ((now or utc_now()) - self.startTime).total_seconds())

    def active_subagent_count(self) -> int:
        return sum(1 for agent in self.subagents if agent.status == "running")

    def task_progress(self) -> tuple[int, int]:
        completed = sum(1 for task in self.tasks if task.status == "completed")
        return completed, len(self.tasks)

    def find_subagent(self, subagent_id: str) -> Subagent | None:
        return next((agent for agent in self.subagents if agent.id == subagent_id), None)

    def find_task(self, task_id: str) -> TaskItem | None:
        return next((task for task in self.tasks if task.id == task_id), None)


# ── Presentation models ────────────────────────────────────────────

class SubagentView(BaseModel):
    id: str
    name: str
    status: SubagentStatus
    startTime: datetime
    endTime: Optional[datetime] = None
    formattedElapsed: str = "00:00"


class TaskItemView(BaseModel):
    id: str
    subject: str
    description: str = ""
    status: TaskStatus
    displayText: str


class ProjectView(BaseModel):
    id: str
    path: str
    sessionId: str
    displayName: str
    isExpanded: bool = True
    sessionStatus: SessionStatus = "unknown"
    startTime: datetime
    elapsedSeconds: float = 0.0
    formattedElapsed: str = "00:00"
    activeSubagentCount: int = 0
    completedTaskCount: int = 0
    totalTaskCount: int = 0
    subagents: list[SubagentView] = Field(default_factory=list)
    tasks: list[TaskItemView] = Field(default_factory=list)

    @classmethod
    def from_project(cls, project: Project, now: datetime | None = None) -> "ProjectView":
        now = now or utc_now()
        completed, total = project.task_progress()
        elapsed = project.elapsed_seconds(now)
        return cls(
            id=project.id,
            path=project.path,
            sessionId=project.sessionId,
            displayName=project.display_name(),
            isExpanded=project.isExpanded,
            sessionStatus=project.sessionStatus,
            startTime=project.startTime,
            elapsedSeconds=elapsed,
            formattedElapsed=format_elapsed(elapsed, with_hours=False),
            activeSubagentCount=project.active_subagent_count(),
            completedTaskCount=completed,
            totalTaskCount=total,
            subagents=[
                SubagentView(
                    id=agent.id,
                    name=agent.name,
                    status=agent.status,
                    startTime=agent.startTime,
                    endTime=agent.endTime,
                    formattedElapsed=format_elapsed(agent.elapsed_seconds(now)),
                )
                for agent in project.subagents
            ],
            tasks=[
                TaskItemView(
                    id=task.id,
                    subject=task.subject,
                    description=task.description,
                    status=task.status,
                    displayText=task.display_text(),
                )
                for task in project.tasks
            ],
        )


class Snapshot(BaseModel):
    watchState: WatchState = "stopped"
    lastUpdate: datetime
    tick: int = 0
    totalActiveSubagents: int = 0
    indicatorEnabled: bool = True
    projects: list[ProjectView] = Field(default_factory=list)


# ── Log-side models ────────────────────────────────────────────────

class ContentItem(BaseModel):
    type: str
    id: Optional[str] = None
    name: Optional[str] = None
    input: Optional[dict[str, Any]] = None
    toolUseId: Optional[str] = None
    content: Any = None  # str or list of {"text": ...}


class LogEntry(BaseModel):
    type: str
    timestamp: Optional[datetime] = None
    cwd: Optional[str] = None
    content: list[ContentItem] = Field(default_factory=list)


class ToolUseEvent(BaseModel):
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None


class ToolResultEvent(BaseModel):
    toolUseId: str
    content: str = ""
    timestamp: Optional[datetime] = None


class FileEvent(BaseModel):
    path: str
    kind: FileEventKind = "modified"


# ── Side-channel models ────────────────────────────────────────────

class HookEvent(BaseModel):
    """Lifecycle event received over the Unix socket (snake_case wire names)."""

    event: str  # one of HOOK_EVENTS; unknown names are ignored downstream
    session_id: str
    cwd: str
    tool_name: Optional[str] = None
    tool_use_id: Optional[str] = None
    task_description: Optional[str] = None
    subagent_type: Optional[str] = None


# ── Settings ───────────────────────────────────────────────────────

class WatchSettings(BaseModel):
    hookEnabled: bool = False
    indicatorEnabled: bool = True
    notificationEnabled: bool = False


class InstallResult(BaseModel):
    ok: bool
    reason: str = ""
    installed: bool = False
