import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from sessionwatch.parsers.sessions import SessionParser, entry_from_record


def _tool_use_record(tool_id: str, name: str, tool_input: dict, timestamp: str = "2026-02-16T10:00:00.123Z") -> dict:
    return {
        "type": "assistant",
        "timestamp": timestamp,
        "cwd": "/tmp/project",
        "message": {
            "role": "assistant",
            "content": [{"type": "tool_use", "id": tool_id, "name": name, "input": tool_input}],
        },
    }


class SessionParserTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)
        self.path = self.root / "session.jsonl"
        self.parser = SessionParser()

    def _append_raw(self, data: bytes) -> None:
        with open(self.path, "ab") as handle:
            handle.write(data)

    def _append(self, *records: dict) -> None:
        self._append_raw(b"".join(json.dumps(record).encode("utf-8") + b"\n" for record in records))

    def test_missing_file_returns_empty(self) -> None:
        self.assertEqual(self.parser.read_new(self.root / "missing.jsonl"), [])

    def test_reads_only_appended_records(self) -> None:
        self._append({"type": "system", "cwd": "/a"})
        first = self.parser.read_new(self.path)
        self.assertEqual([entry.cwd for entry in first], ["/a"])

        self._append({"type": "system", "cwd": "/b"}, {"type": "system", "cwd": "/c"})
        second = self.parser.read_new(self.path)
        self.assertEqual([entry.cwd for entry in second], ["/b", "/c"])

        self.assertEqual(self.parser.read_new(self.path), [])
        self.assertEqual(self.parser.offset(self.path), self.path.stat().st_size)

    def test_malformed_complete_line_is_consumed(self) -> None:
        self._append_raw(b"not json at all\n")
        self._append({"type": "user"})

        entries = self.parser.read_new(self.path)

        self.assertEqual(len(entries), 1)
        self.assertEqual(self.parser.offset(self.path), self.path.stat().st_size)
        self.assertEqual(self.parser.read_new(self.path), [])

    def test_truncated_tail_is_retried_after_completion(self) -> None:
        self._append({"type": "system", "cwd": "/first"})
        partial = b'{"type": "system", "cwd": "/sec'
        self._append_raw(partial)

        entries = self.parser.read_new(self.path)
        self.assertEqual([entry.cwd for entry in entries], ["/first"])
        self.assertEqual(self.parser.offset(self.path), self.path.stat().st_size - len(partial))

        self._append_raw(b'ond"}\n')
        entries = self.parser.read_new(self.path)
        self.assertEqual([entry.cwd for entry in entries], ["/second"])
        self.assertEqual(self.parser.offset(self.path), self.path.stat().st_size)

    def test_decodable_tail_without_newline_is_consumed(self) -> None:
        self._append_raw(json.dumps({"type": "system", "cwd": "/x"}).encode("utf-8"))

        entries = self.parser.read_new(self.path)

        self.assertEqual(len(entries), 1)
        self.assertEqual(self.parser.offset(self.path), self.path.stat().st_size)

    def test_skip_to_end_ignores_history(self) -> None:
        self._append({"type": "system", "cwd": "/old"})
        self.parser.skip_to_end(self.path)
        self.assertEqual(self.parser.read_new(self.path), [])

        self._append({"type": "system", "cwd": "/new"})
        self.assertEqual([entry.cwd for entry in self.parser.read_new(self.path)], ["/new"])

    def test_shrunk_file_restarts_from_zero(self) -> None:
        self._append({"type": "system", "cwd": "/one"}, {"type": "system", "cwd": "/two"})
        self.parser.read_new(self.path)

        self.path.write_text(json.dumps({"type": "system", "cwd": "/fresh"}) + "\n", encoding="utf-8")

        self.assertEqual([entry.cwd for entry in self.parser.read_new(self.path)], ["/fresh"])

    def test_remove_file_forgets_offset(self) -> None:
        self._append({"type": "system", "cwd": "/a"})
        self.parser.read_new(self.path)

        self.parser.remove_file(self.path)

        self.assertEqual([entry.cwd for entry in self.parser.read_new(self.path)], ["/a"])

    def test_reset_all_forgets_offsets(self) -> None:
        self._append({"type": "system"})
        self.parser.read_new(self.path)
        self.parser.reset_all()
        self.assertEqual(self.parser.offset(self.path), 0)
        self.assertEqual(len(self.parser.read_new(self.path)), 1)

    def test_list_session_files_is_shallow(self) -> None:
        (self.root / "b.jsonl").touch()
        (self.root / "notes.txt").touch()
        nested = self.root / "b" / "subagents"
        nested.mkdir(parents=True)
        (nested / "agent-1.jsonl").touch()
        self.path.touch()

        self.assertEqual(self.parser.list_session_files(self.root), [self.root / "b.jsonl", self.path])
        self.assertEqual(self.parser.list_session_files(self.root / "missing"), [])

    def test_extract_tool_uses_and_results(self) -> None:
        self._append(
            _tool_use_record("toolu_1", "Task", {"description": "Explore repo"}),
            {
                "type": "user",
                "timestamp": "2026-02-16T10:00:05Z",
                "message": {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": "toolu_1",
                            "content": [{"type": "text", "text": "line one"}, {"type": "text", "text": "line two"}],
                        },
                        {"type": "tool_result", "tool_use_id": "toolu_2", "content": "plain"},
                    ],
                },
            },
        )
        entries = self.parser.read_new(self.path)

        uses = self.parser.extract_tool_uses(entries)
        self.assertEqual(len(uses), 1)
        self.assertEqual(uses[0].id, "toolu_1")
        self.assertEqual(uses[0].name, "Task")
        self.assertEqual(uses[0].input, {"description": "Explore repo"})
        self.assertEqual(uses[0].timestamp, datetime(2026, 2, 16, 10, 0, 0, 123000, tzinfo=timezone.utc))

        results = self.parser.extract_tool_results(entries)
        self.assertEqual([(r.toolUseId, r.content) for r in results], [("toolu_1", "line one\nline two"), ("toolu_2", "plain")])
        self.assertEqual(self.parser.extract_cwd(entries), "/tmp/project")

    def test_tool_use_in_user_entry_is_not_an_invocation(self) -> None:
        record = _tool_use_record("toolu_9", "Task", {})
        record["type"] = "user"
        entry = entry_from_record(record)
        assert entry is not None
        self.assertEqual(self.parser.extract_tool_uses([entry]), [])

    def test_record_without_type_is_dropped(self) -> None:
        self.assertIsNone(entry_from_record({"cwd": "/x"}))

    def test_input_helpers(self) -> None:
        self.assertEqual(self.parser.extract_agent_info({}), ("Agent", "general-purpose"))
        self.assertEqual(
            self.parser.extract_agent_info({"description": "Search", "subagent_type": "explorer"}),
            ("Search", "explorer"),
        )
        self.assertIsNone(self.parser.extract_task_item_info({"description": "no subject"}))
        self.assertEqual(
            self.parser.extract_task_item_info({"subject": "A", "activeForm": "Doing A"}),
            ("A", "", "Doing A"),
        )
        self.assertEqual(self.parser.extract_task_update_info({"taskId": 3, "status": "completed"}), ("3", "completed"))
        self.assertIsNone(self.parser.extract_task_update_info({"status": "completed"}))


if __name__ == "__main__":
    unittest.main()
