import unittest

from sessionwatch.paths import (
    is_main_session_file,
    make_project_id,
    normalize_project_path,
    path_from_project_id,
    project_hash_for,
    session_id_from_path,
)


class PathsTests(unittest.TestCase):
    def test_normalize_strips_trailing_separator(self) -> None:
        self.assertEqual(normalize_project_path("/Users/me/proj/"), "/Users/me/proj")
        self.assertEqual(normalize_project_path("/Users/me/./proj/../proj"), "/Users/me/proj")

    def test_normalize_root(self) -> None:
        self.assertEqual(normalize_project_path("/"), "/")
        self.assertEqual(normalize_project_path("//"), "/")

    def test_project_id_round_trip(self) -> None:
        self.assertEqual(make_project_id("/Users/me/proj/"), "-Users-me-proj")
        self.assertEqual(make_project_id("/"), "-")
        self.assertEqual(path_from_project_id("-Users-me-proj"), "/Users/me/proj")
        self.assertEqual(path_from_project_id("-"), "/")

    def test_main_session_file_detection(self) -> None:
        root = "/home/me/.claude/projects"
        self.assertTrue(is_main_session_file(f"{root}/-tmp-proj/abc.jsonl", root))
        self.assertFalse(is_main_session_file(f"{root}/-tmp-proj/abc/subagents/agent-1.jsonl", root))
        self.assertFalse(is_main_session_file("/elsewhere/-tmp-proj/abc.jsonl", root))
        self.assertEqual(project_hash_for(f"{root}/-tmp-proj/abc.jsonl", root), "-tmp-proj")
        self.assertEqual(session_id_from_path(f"{root}/-tmp-proj/abc.jsonl"), "abc")


if __name__ == "__main__":
    unittest.main()
