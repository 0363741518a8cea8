"""Companion hook client invoked by the assistant for each hook event.

Usage (from the installed shell shim)::

    python -m sessionwatch.hook_client <EventName> < hook-payload.json

Reads the hook payload from stdin, reduces it to the SessionWatch wire
format and writes it to the listener socket if one exists. Always exits 0
so a missing or slow listener never blocks the assistant.
"""
from __future__ import annotations

import json
import os
import socket
import sys
from typing import Any, Mapping, Optional

from sessionwatch.models import HOOK_EVENTS

DEFAULT_SOCKET_PATH = "/tmp/sessionwatch.sock"


def build_payload(
    event_name: str,
    raw_input: str,
    env: Mapping[str, str],
    fallback_cwd: str,
) -> Optional[dict[str, Any]]:
    if event_name not in HOOK_EVENTS:
        return None

    try:
        data = json.loads(raw_input) if raw_input.strip() else {}
    except json.JSONDecodeError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    payload: dict[str, Any] = {
        "event": event_name,
        "session_id": data.get("session_id") or env.get("CLAUDE_SESSION_ID") or "unknown",
        "cwd": data.get("cwd") or data.get("project_dir") or env.get("CLAUDE_PROJECT_DIR") or fallback_cwd,
    }

    for key in ("tool_name", "tool_use_id"):
        value = data.get(key)
        if isinstance(value, str) and value:
            payload[key] = value

    tool_input = data.get("tool_input")
    if isinstance(tool_input, dict):
        description = tool_input.get("description")
        if isinstance(description, str) and description:
            payload["task_description"] = description
        subagent_type = tool_input.get("subagent_type")
        if isinstance(subagent_type, str) and subagent_type:
            payload["subagent_type"] = subagent_type

    return payload


def send_payload(payload: dict[str, Any], socket_path: str, timeout: float = 1.0) -> bool:
    if not os.path.exists(socket_path):
        return False
    message = (json.dumps(payload) + "\n").encode("utf-8")
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as client:
            client.settimeout(timeout)
            client.connect(socket_path)
            client.sendall(message)
    except OSError:
        return False
    return True


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args:
        return 0
    try:
        raw_input = "" if sys.stdin is None or sys.stdin.isatty() else sys.stdin.read()
        payload = build_payload(args[0], raw_input, os.environ, os.getcwd())
        if payload is not None:
            send_payload(payload, os.environ.get("SESSIONWATCH_SOCKET_PATH", DEFAULT_SOCKET_PATH))
    except Exception:  # noqa: BLE001
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
