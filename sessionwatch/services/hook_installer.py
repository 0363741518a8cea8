"""Hook installation and removal.

Installs a small shell shim under `~/.claude/hooks/` that forwards hook
payloads to `sessionwatch.hook_client`, and registers it for each hook event
in `~/.claude/settings.json`. Failures are reported as an `InstallResult`
with a human-readable reason instead of raising.
"""
from __future__ import annotations

import json
import logging
import shlex
import sys
from pathlib import Path
from typing import Any

from sessionwatch.models import (
    EVENT_POST_TOOL,
    EVENT_POST_TOOL_FAILURE,
    EVENT_PRE_TOOL,
    HOOK_EVENTS,
    TOOL_SUBAGENT,
    InstallResult,
)

logger = logging.getLogger("sessionwatch.hooks")

# Tool hooks only need to fire for the delegated-task tool.
_TOOL_SCOPED_EVENTS = {EVENT_PRE_TOOL, EVENT_POST_TOOL, EVENT_POST_TOOL_FAILURE}


class HookInstaller:
    def __init__(
        self,
        hooks_dir: Path,
        settings_path: Path,
        socket_path: str,
        script_name: str = "sessionwatch-hook.sh",
        python_executable: str | None = None,
    ):
        self.hooks_dir = Path(hooks_dir)
        self.settings_path = Path(settings_path)
        self.socket_path = socket_path
        self.script_name = script_name
        self.python_executable = python_executable or sys.executable

    @property
    def script_path(self) -> Path:
        return self.hooks_dir / self.script_name

    @property
    def is_installed(self) -> bool:
        return self.script_path.exists()

    def hook_script(self) -> str:
        return "\n".join(
            [
                "#!/bin/bash",
                "# SessionWatch hook: forwards assistant hook events to the SessionWatch socket.",
                "# The hook payload arrives as JSON on stdin; this script always exits 0.",
                f"export SESSIONWATCH_SOCKET_PATH={shlex.quote(self.socket_path)}",
                f"{shlex.quote(self.python_executable)} -m sessionwatch.hook_client \"$1\" >/dev/null 2>&1",
                "exit 0",
                "",
            ]
        )

    def command_for(self, event_name: str) -> str:
        return f"{shlex.quote(str(self.script_path))} {event_name}"

    def install(self) -> InstallResult:
        try:
            self.hooks_dir.mkdir(parents=True, exist_ok=True)
            self.script_path.write_text(self.hook_script(), encoding="utf-8")
            self.script_path.chmod(0o755)
            settings = self._load_settings()
            self._save_settings(self._with_hooks(settings))
        except (OSError, ValueError) as e:
            logger.error("Hook install failed: %s", e)
            return InstallResult(ok=False, reason=f"Hook install failed: {e}", installed=self.is_installed)
        logger.info("Hook installed at %s", self.script_path)
        return InstallResult(ok=True, installed=True)

    def uninstall(self) -> InstallResult:
        try:
            if self.script_path.exists():
                self.script_path.unlink()
            if self.settings_path.exists():
                settings = self._load_settings()
                self._save_settings(self._without_hooks(settings))
        except (OSError, ValueError) as e:
            logger.error("Hook uninstall failed: %s", e)
            return InstallResult(ok=False, reason=f"Hook uninstall failed: {e}", installed=self.is_installed)
        logger.info("Hook removed")
        return InstallResult(ok=True, installed=False)

    # ── settings.json rewriting ────────────────────────────────────

    def _matcher_group(self, event_name: str) -> dict[str, Any]:
        group: dict[str, Any] = {
            "hooks": [{"type": "command", "command": self.command_for(event_name)}],
        }
        if event_name in _TOOL_SCOPED_EVENTS:
            group = {"matcher": TOOL_SUBAGENT, **group}
        return group

    def _is_own_group(self, entry: Any) -> bool:
        if not isinstance(entry, dict):
            return False
        nested = entry.get("hooks")
        if isinstance(nested, list):
            return any(
                isinstance(hook, dict)
                and isinstance(hook.get("command"), str)
                and self.script_name in hook["command"]
                for hook in nested
            )
        # Legacy flat format: {"type": "command", "command": "..."}
        command = entry.get("command")
        return isinstance(command, str) and self.script_name in command

    def _with_hooks(self, settings: dict[str, Any]) -> dict[str, Any]:
        hooks = settings.get("hooks")
        hooks = dict(hooks) if isinstance(hooks, dict) else {}
        for event_name in HOOK_EVENTS:
            groups = hooks.get(event_name)
            groups = list(groups) if isinstance(groups, list) else []
            if not any(self._is_own_group(group) for group in groups):
                groups.append(self._matcher_group(event_name))
            hooks[event_name] = groups
        return {**settings, "hooks": hooks}

    def _without_hooks(self, settings: dict[str, Any]) -> dict[str, Any]:
        hooks = settings.get("hooks")
        if not isinstance(hooks, dict):
            return settings
        remaining: dict[str, Any] = {}
        for event_name, groups in hooks.items():
            if isinstance(groups, list):
                groups = [group for group in groups if not self._is_own_group(group)]
                if not groups:
                    continue
            remaining[event_name] = groups

        updated = {key: value for key, value in settings.items() if key != "hooks"}
        if remaining:
            updated["hooks"] = remaining
        return updated

    def _load_settings(self) -> dict[str, Any]:
        if not self.settings_path.exists():
            return {}
        content = self.settings_path.read_text(encoding="utf-8")
        if not content.strip():
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError(f"{self.settings_path} does not contain a JSON object")
        return data

    def _save_settings(self, settings: dict[str, Any]) -> None:
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        self.settings_path.write_text(json.dumps(settings, indent=2, sort_keys=True) + "\n", encoding="utf-8")
