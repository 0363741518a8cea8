import unittest
from datetime import datetime, timedelta, timezone

from watchfiles import Change

from sessionwatch.date_utils import format_elapsed, parse_timestamp
from sessionwatch.models import Project, ProjectView, Subagent, TaskItem
from sessionwatch.services.file_watcher import classify_changes

START = datetime(2026, 2, 16, 10, 0, tzinfo=timezone.utc)


class ProjectModelTests(unittest.TestCase):
    def test_display_name(self) -> None:
        self.assertEqual(Project(id="-Users-me-proj", path="/Users/me/proj", sessionId="s").display_name(), "proj")
        self.assertEqual(Project(id="-", path="/", sessionId="s").display_name(), "/")

    def test_task_display_text_prefers_active_form_while_in_progress(self) -> None:
        task = TaskItem(id="1", subject="Write tests", activeForm="Writing tests")
        self.assertEqual(task.display_text(), "Write tests")
        task.status = "in_progress"
        self.assertEqual(task.display_text(), "Writing tests")
        task.status = "completed"
        self.assertEqual(task.display_text(), "Write tests")

    def test_view_counts_and_elapsed(self) -> None:
        project = Project(
            id="-tmp-proj",
            path="/tmp/proj",
            sessionId="s",
            startTime=START,
            subagents=[
                Subagent(id="a", name="A", startTime=START),
                Subagent(id="b", name="B", status="completed", startTime=START, endTime=START + timedelta(seconds=75)),
            ],
            tasks=[TaskItem(id="1", subject="x", status="completed"), TaskItem(id="2", subject="y")],
        )

        view = ProjectView.from_project(project, now=START + timedelta(hours=1, seconds=5))

        self.assertEqual(view.activeSubagentCount, 1)
        self.assertEqual((view.completedTaskCount, view.totalTaskCount), (1, 2))
        self.assertEqual(view.formattedElapsed, "60:05")
        self.assertEqual([agent.formattedElapsed for agent in view.subagents], ["1:00:05", "01:15"])


class DateUtilsTests(unittest.TestCase):
    def test_format_elapsed(self) -> None:
        self.assertEqual(format_elapsed(0), "00:00")
        self.assertEqual(format_elapsed(59.9), "00:59")
        self.assertEqual(format_elapsed(3599), "59:59")
        self.assertEqual(format_elapsed(3600), "1:00:00")
        self.assertEqual(format_elapsed(-5), "00:00")

    def test_parse_timestamp(self) -> None:
        self.assertEqual(parse_timestamp("2026-02-16T10:00:00Z"), START)
        self.assertEqual(parse_timestamp("2026-02-16T11:00:00+01:00"), START)
        self.assertIsNone(parse_timestamp("yesterday"))
        self.assertIsNone(parse_timestamp(None))


class ClassifyChangesTests(unittest.TestCase):
    def test_only_transcripts_are_reported(self) -> None:
        events = classify_changes(
            {
                (Change.added, "/p/-tmp-proj/a.jsonl"),
                (Change.modified, "/p/-tmp-proj/b.jsonl"),
                (Change.deleted, "/p/-tmp-proj/c.jsonl"),
                (Change.modified, "/p/-tmp-proj/notes.txt"),
            }
        )

        self.assertEqual(
            [(event.path, event.kind) for event in events],
            [
                ("/p/-tmp-proj/a.jsonl", "modified"),
                ("/p/-tmp-proj/b.jsonl", "modified"),
                ("/p/-tmp-proj/c.jsonl", "removed"),
            ],
        )


if __name__ == "__main__":
    unittest.main()
