import json
import os
import shutil
import socket
import tempfile
import unittest
from unittest.mock import patch

from sessionwatch import hook_client


class BuildPayloadTests(unittest.TestCase):
    def test_unknown_event_yields_nothing(self) -> None:
        self.assertIsNone(hook_client.build_payload("SessionStart", "{}", {}, "/tmp"))

    def test_reads_fields_from_stdin_payload(self) -> None:
        raw = json.dumps(
            {
                "session_id": "s1",
                "cwd": "/tmp/proj",
                "tool_name": "Task",
                "tool_use_id": "toolu_1",
                "tool_input": {"description": "Explore", "subagent_type": "explorer", "prompt": "..."},
            }
        )

        payload = hook_client.build_payload("PreToolUse", raw, {}, "/fallback")

        self.assertEqual(
            payload,
            {
                "event": "PreToolUse",
                "session_id": "s1",
                "cwd": "/tmp/proj",
                "tool_name": "Task",
                "tool_use_id": "toolu_1",
                "task_description": "Explore",
                "subagent_type": "explorer",
            },
        )

    def test_falls_back_to_environment(self) -> None:
        env = {"CLAUDE_SESSION_ID": "env-session", "CLAUDE_PROJECT_DIR": "/env/proj"}

        payload = hook_client.build_payload("Stop", "not json", env, "/fallback")

        self.assertEqual(payload, {"event": "Stop", "session_id": "env-session", "cwd": "/env/proj"})

    def test_last_resort_defaults(self) -> None:
        payload = hook_client.build_payload("UserPromptSubmit", "", {}, "/fallback")
        self.assertEqual(payload, {"event": "UserPromptSubmit", "session_id": "unknown", "cwd": "/fallback"})


class SendPayloadTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.mkdtemp(prefix="sw", dir="/tmp")
        self.addCleanup(shutil.rmtree, self.tmpdir, True)
        self.socket_path = os.path.join(self.tmpdir, "hook.sock")

    def test_missing_socket_is_not_an_error(self) -> None:
        self.assertFalse(hook_client.send_payload({"event": "Stop"}, self.socket_path))

    def test_writes_one_json_line(self) -> None:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as listener:
            listener.bind(self.socket_path)
            listener.listen(1)

            sent = hook_client.send_payload({"event": "Stop", "session_id": "s1", "cwd": "/tmp"}, self.socket_path)

            conn, _ = listener.accept()
            with conn:
                conn.settimeout(1.0)
                data = b""
                while not data.endswith(b"\n"):
                    chunk = conn.recv(4096)
                    if not chunk:
                        break
                    data += chunk

        self.assertTrue(sent)
        self.assertEqual(json.loads(data), {"event": "Stop", "session_id": "s1", "cwd": "/tmp"})

    def test_main_always_returns_zero(self) -> None:
        self.assertEqual(hook_client.main([]), 0)
        with patch.dict(os.environ, {"SESSIONWATCH_SOCKET_PATH": self.socket_path}), patch("sys.stdin", None):
            self.assertEqual(hook_client.main(["Stop"]), 0)
            self.assertEqual(hook_client.main(["NotAnEvent"]), 0)


if __name__ == "__main__":
    unittest.main()
