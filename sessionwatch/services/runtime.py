"""Wiring between the coordinator and its external collaborators."""
from __future__ import annotations

import logging
from typing import Optional

from sessionwatch import config
from sessionwatch.models import InstallResult, WatchSettings
from sessionwatch.services.coordinator import WatchCoordinator
from sessionwatch.services.hook_installer import HookInstaller
from sessionwatch.services.notifications import LoggingNotifier, Notifier
from sessionwatch.services.process_monitor import ProcessMonitor
from sessionwatch.services.socket_server import SocketServer

logger = logging.getLogger("sessionwatch")


class WatchRuntime:
    """Owns the coordinator, the liveness monitor, the socket and the hook."""

    def __init__(
        self,
        coordinator: WatchCoordinator,
        socket_server: SocketServer,
        monitor: ProcessMonitor,
        installer: HookInstaller,
    ):
        self.coordinator = coordinator
        self.socket_server = socket_server
        self.monitor = monitor
        self.installer = installer

    @classmethod
    def from_config(cls, settings: Optional[WatchSettings] = None, notifier: Optional[Notifier] = None) -> "WatchRuntime":
        coordinator = WatchCoordinator(
            settings or config.load_settings(),
            config.PROJECTS_DIR,
            notifier=notifier or LoggingNotifier(),
            refresh_interval=config.REFRESH_INTERVAL_SECONDS,
            watch_debounce_ms=config.WATCH_DEBOUNCE_MS,
        )
        socket_server = SocketServer(
            config.SOCKET_PATH,
            coordinator.on_lifecycle_event,
            backlog=config.SOCKET_BACKLOG,
            read_limit=config.SOCKET_READ_LIMIT,
        )
        monitor = ProcessMonitor(
            config.PROCESS_NAME,
            coordinator.on_process_detected,
            coordinator.on_process_lost,
            interval=config.PROCESS_CHECK_INTERVAL_SECONDS,
        )
        installer = HookInstaller(
            config.HOOKS_DIR,
            config.CLAUDE_SETTINGS_PATH,
            config.SOCKET_PATH,
            script_name=config.HOOK_SCRIPT_NAME,
        )
        return cls(coordinator, socket_server, monitor, installer)

    async def start(self) -> None:
        await self.sync_hook_state()
        self.monitor.start()

    async def stop(self) -> None:
        self.monitor.stop()
        self.coordinator.on_process_lost()
        await self.socket_server.stop()

    async def apply_settings(self, settings: WatchSettings) -> WatchSettings:
        previous = self.coordinator.apply_settings(settings)
        if previous.hookEnabled != settings.hookEnabled:
            await self.sync_hook_state()
        return settings

    async def sync_hook_state(self) -> Optional[InstallResult]:
        """Install and listen when hooks are enabled, uninstall otherwise."""
        result: Optional[InstallResult] = None
        if self.coordinator.settings.hookEnabled:
            if not self.installer.is_installed:
                result = self.installer.install()
            await self.socket_server.start()
        else:
            if self.installer.is_installed:
                result = self.installer.uninstall()
            await self.socket_server.stop()
        if result is not None and not result.ok:
            logger.warning("Hook sync failed: %s", result.reason)
        return result
