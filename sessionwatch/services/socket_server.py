"""Unix domain socket listener for hook lifecycle events.

Each connection carries one newline-terminated JSON object and is closed
after it is read. Nothing is ever written back to the client.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Callable, Optional

from pydantic import ValidationError

from sessionwatch.models import HookEvent
from sessionwatch.observability import record_parser_failure

logger = logging.getLogger("sessionwatch.socket")

HookEventCallback = Callable[[HookEvent], None]


def parse_hook_event(data: bytes | str) -> HookEvent | None:
    """Decode one wire message; anything malformed yields `None`."""
    try:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
        payload = json.loads(text.strip())
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    try:
        return HookEvent.model_validate(payload)
    except ValidationError:
        return None


class SocketServer:
    def __init__(
        self,
        socket_path: str,
        on_event: HookEventCallback,
        *,
        backlog: int = 5,
        read_limit: int = 4096,
        read_timeout: float = 2.0,
    ):
        self.socket_path = socket_path
        self._on_event = on_event
        self._backlog = backlog
        self._read_limit = read_limit
        self._read_timeout = read_timeout
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def is_running(self) -> bool:
        return self._server is not None

    async def start(self) -> bool:
        if self._server is not None:
            return True

        self._unlink()
        try:
            self._server = await asyncio.start_unix_server(
                self._handle_client,
                path=self.socket_path,
                backlog=self._backlog,
                limit=self._read_limit,
            )
        except OSError as e:
            logger.error("Failed to listen on %s: %s", self.socket_path, e)
            self._server = None
            return False

        try:
            os.chmod(self.socket_path, 0o777)
        except OSError as e:
            logger.warning("Could not open socket permissions on %s: %s", self.socket_path, e)

        logger.info("Started at %s", self.socket_path)
        return True

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        self._unlink()
        logger.info("Stopped")

    def _unlink(self) -> None:
        try:
            os.unlink(self.socket_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove stale socket %s: %s", self.socket_path, e)

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            data = await asyncio.wait_for(reader.readline(), timeout=self._read_timeout)
        except (asyncio.TimeoutError, asyncio.IncompleteReadError, asyncio.LimitOverrunError, ValueError, OSError) as e:
            logger.debug("Dropping hook connection: %s", e)
            data = b""
        finally:
            writer.close()

        if not data.strip():
            return

        event = parse_hook_event(data)
        if event is None:
            logger.warning("Failed to parse event: %r", data[:200])
            record_parser_failure("hook_event", project_id="")
            return

        logger.debug("Received event: %s for session: %s", event.event, event.session_id)
        try:
            self._on_event(event)
        except Exception as e:
            logger.exception("Error applying hook event %s: %s", event.event, e)
