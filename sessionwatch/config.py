"""SessionWatch configuration."""
import os
from pathlib import Path

from sessionwatch.models import WatchSettings


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _resolve_claude_dir() -> Path:
    override = os.getenv("SESSIONWATCH_CLAUDE_DIR")
    if override:
        return Path(override).expanduser()
    # ~/.claude is often a symlink; file events report the resolved location
    return (Path.home() / ".claude").resolve()


# Transcript layout
CLAUDE_DIR = _resolve_claude_dir()
PROJECTS_DIR = CLAUDE_DIR / "projects"
HOOKS_DIR = CLAUDE_DIR / "hooks"
CLAUDE_SETTINGS_PATH = CLAUDE_DIR / "settings.json"
HOOK_SCRIPT_NAME = "sessionwatch-hook.sh"

# Side channel
SOCKET_PATH = os.getenv("SESSIONWATCH_SOCKET_PATH", "/tmp/sessionwatch.sock")
SOCKET_BACKLOG = _env_int("SESSIONWATCH_SOCKET_BACKLOG", 5)
SOCKET_READ_LIMIT = _env_int("SESSIONWATCH_SOCKET_READ_LIMIT", 4096)

# Process liveness
PROCESS_NAME = os.getenv("SESSIONWATCH_PROCESS_NAME", "claude")
PROCESS_CHECK_INTERVAL_SECONDS = _env_float("SESSIONWATCH_PROCESS_CHECK_INTERVAL", 5.0)

# Timers
REFRESH_INTERVAL_SECONDS = _env_float("SESSIONWATCH_REFRESH_INTERVAL", 1.0)
WATCH_DEBOUNCE_MS = _env_int("SESSIONWATCH_WATCH_DEBOUNCE_MS", 2000)

# User-facing toggles (initial values)
HOOK_ENABLED = _env_bool("SESSIONWATCH_HOOK_ENABLED", False)
INDICATOR_ENABLED = _env_bool("SESSIONWATCH_INDICATOR_ENABLED", True)
NOTIFICATION_ENABLED = _env_bool("SESSIONWATCH_NOTIFICATION_ENABLED", False)

# Observability
OTEL_ENABLED = _env_bool("SESSIONWATCH_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("SESSIONWATCH_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("SESSIONWATCH_OTEL_SERVICE_NAME", "sessionwatch")
PROM_PORT = _env_int("SESSIONWATCH_PROM_PORT", 0)

# Server settings
HOST = os.getenv("SESSIONWATCH_HOST", "127.0.0.1")
PORT = _env_int("SESSIONWATCH_PORT", 8765)

# CORS
FRONTEND_ORIGIN = os.getenv("SESSIONWATCH_FRONTEND_ORIGIN", "http://localhost:3000")


def load_settings() -> WatchSettings:
    """Initial toggle values handed to the coordinator at construction."""
    return WatchSettings(
        hookEnabled=HOOK_ENABLED,
        indicatorEnabled=INDICATOR_ENABLED,
        notificationEnabled=NOTIFICATION_ENABLED,
    )
