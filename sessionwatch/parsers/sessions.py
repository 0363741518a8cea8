"""Incremental parsing of append-only JSONL session transcripts.

`SessionParser` keeps one byte offset per transcript path. Each `read_new`
call reads only what was appended since the previous call, decodes it into
`LogEntry` models and leaves the offset positioned for the next append.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from sessionwatch.date_utils import parse_timestamp
from sessionwatch.models import (
    ContentItem,
    LogEntry,
    ToolResultEvent,
    ToolUseEvent,
)
from sessionwatch.observability import record_parser_failure

logger = logging.getLogger("sessionwatch.parser")

_TRANSCRIPT_SUFFIX = ".jsonl"


def _load_record(raw_line: bytes) -> dict[str, Any] | None:
    line = raw_line.strip()
    if not line:
        return None
    try:
        parsed = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _content_item(raw: Any) -> ContentItem | None:
    if not isinstance(raw, dict):
        return None
    item_type = raw.get("type")
    if not isinstance(item_type, str):
        return None
    raw_input = raw.get("input")
    return ContentItem(
        type=item_type,
        id=raw.get("id") if isinstance(raw.get("id"), str) else None,
        name=raw.get("name") if isinstance(raw.get("name"), str) else None,
        input=raw_input if isinstance(raw_input, dict) else None,
        toolUseId=raw.get("tool_use_id") if isinstance(raw.get("tool_use_id"), str) else None,
        content=raw.get("content"),
    )


def entry_from_record(record: dict[str, Any]) -> LogEntry | None:
    """Build a typed entry from one decoded transcript record."""
    entry_type = record.get("type")
    if not isinstance(entry_type, str):
        return None

    cwd = record.get("cwd")
    items: list[ContentItem] = []
    message = record.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), list):
        for raw_item in message["content"]:
            item = _content_item(raw_item)
            if item is not None:
                items.append(item)

    return LogEntry(
        type=entry_type,
        timestamp=parse_timestamp(record.get("timestamp")),
        cwd=cwd if isinstance(cwd, str) and cwd.strip() else None,
        content=items,
    )


def _result_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            part["text"]
            for part in content
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
    return ""


class SessionParser:
    """Tracks read offsets per transcript and decodes appended records."""

    def __init__(self) -> None:
        self._offsets: dict[str, int] = {}

    def offset(self, path: str | Path) -> int:
        return self._offsets.get(str(path), 0)

    def read_new(self, path: str | Path) -> list[LogEntry]:
        """Return entries appended since the last call for `path`.

        Complete lines are always consumed, including ones that fail to
        decode. An unterminated final fragment is consumed only when it
        already decodes; otherwise the offset stops in front of it so the
        rest of the write is picked up next time.
        """
        key = str(path)
        offset = self._offsets.get(key, 0)
        try:
            size = os.path.getsize(key)
        except OSError:
            return []

        if size < offset:
            logger.info("Transcript shrank below read offset, restarting: %s", key)
            offset = 0
        if size == offset:
            self._offsets[key] = offset
            return []

        try:
            with open(key, "rb") as handle:
                handle.seek(offset)
                data = handle.read(size - offset)
        except OSError as exc:
            logger.debug("Transcript read failed for %s: %s", key, exc)
            return []

        entries, consumed = self._decode_chunk(data, key)
        self._offsets[key] = offset + consumed
        return entries

    def _decode_chunk(self, data: bytes, key: str) -> tuple[list[LogEntry], int]:
        entries: list[LogEntry] = []
        consumed = 0
        dropped = 0

        lines = data.split(b"\n")
        tail = lines.pop()
        for raw_line in lines:
            consumed += len(raw_line) + 1
            if not raw_line.strip():
                continue
            record = _load_record(raw_line)
            entry = entry_from_record(record) if record is not None else None
            if entry is None:
                dropped += 1
                continue
            entries.append(entry)

        if tail.strip():
            record = _load_record(tail)
            if record is not None:
                consumed += len(tail)
                entry = entry_from_record(record)
                if entry is not None:
                    entries.append(entry)
                else:
                    dropped += 1
        else:
            consumed += len(tail)

        if dropped:
            logger.debug("Dropped %d undecodable line(s) from %s", dropped, key)
            for _ in range(dropped):
                record_parser_failure("session_jsonl", project_id="")
        return entries, consumed

    def skip_to_end(self, path: str | Path) -> None:
        """Move the offset to end-of-file without producing entries."""
        key = str(path)
        try:
            self._offsets[key] = os.path.getsize(key)
        except OSError:
            return

    def remove_file(self, path: str | Path) -> None:
        self._offsets.pop(str(path), None)

    def reset_all(self) -> None:
        self._offsets.clear()

    # ── Event extraction ───────────────────────────────────────────

    def extract_tool_uses(self, entries: list[LogEntry]) -> list[ToolUseEvent]:
        events: list[ToolUseEvent] = []
        for entry in entries:
            if entry.type != "assistant":
                continue
            for item in entry.content:
                if item.type != "tool_use" or not item.id or not item.name:
                    continue
                events.append(
                    ToolUseEvent(
                        id=item.id,
                        name=item.name,
                        input=item.input or {},
                        timestamp=entry.timestamp,
                    )
                )
        return events

    def extract_tool_results(self, entries: list[LogEntry]) -> list[ToolResultEvent]:
        results: list[ToolResultEvent] = []
        for entry in entries:
            if entry.type != "user":
                continue
            for item in entry.content:
                if item.type != "tool_result" or not item.toolUseId:
                    continue
                results.append(
                    ToolResultEvent(
                        toolUseId=item.toolUseId,
                        content=_result_text(item.content),
                        timestamp=entry.timestamp,
                    )
                )
        return results

    def extract_cwd(self, entries: list[LogEntry]) -> str | None:
        for entry in entries:
            if entry.cwd:
                return entry.cwd
        return None

    # ── Tool input helpers ─────────────────────────────────────────

    @staticmethod
    def extract_agent_info(tool_input: dict[str, Any]) -> tuple[str, str]:
        description = tool_input.get("description")
        agent_type = tool_input.get("subagent_type")
        return (
            description if isinstance(description, str) and description else "Agent",
            agent_type if isinstance(agent_type, str) and agent_type else "general-purpose",
        )

    @staticmethod
    def extract_task_item_info(tool_input: dict[str, Any]) -> tuple[str, str, str | None] | None:
        subject = tool_input.get("subject")
        if not isinstance(subject, str):
            return None
        description = tool_input.get("description")
        active_form = tool_input.get("activeForm")
        return (
            subject,
            description if isinstance(description, str) else "",
            active_form if isinstance(active_form, str) else None,
        )

    @staticmethod
    def extract_task_update_info(tool_input: dict[str, Any]) -> tuple[str, str | None] | None:
        task_id = tool_input.get("taskId")
        if isinstance(task_id, int) and not isinstance(task_id, bool):
            task_id = str(task_id)
        if not isinstance(task_id, str):
            return None
        status = tool_input.get("status")
        return task_id, status if isinstance(status, str) else None

    # ── Directory helpers ──────────────────────────────────────────

    @staticmethod
    def list_session_files(project_dir: str | Path) -> list[Path]:
        directory = Path(project_dir)
        try:
            return sorted(
                child for child in directory.iterdir()
                if child.is_file() and child.suffix == _TRANSCRIPT_SUFFIX
            )
        except OSError:
            return []
