import json
import os
import stat
import tempfile
import unittest
from pathlib import Path

from sessionwatch.models import HOOK_EVENTS
from sessionwatch.services.hook_installer import HookInstaller


class HookInstallerTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)
        self.settings_path = self.root / "settings.json"
        self.installer = HookInstaller(
            self.root / "hooks",
            self.settings_path,
            "/tmp/sessionwatch-test.sock",
            python_executable="/usr/bin/python3",
        )

    def _settings(self) -> dict:
        return json.loads(self.settings_path.read_text(encoding="utf-8"))

    def test_install_writes_executable_script(self) -> None:
        result = self.installer.install()

        self.assertTrue(result.ok)
        self.assertTrue(result.installed)
        self.assertTrue(self.installer.is_installed)
        mode = os.stat(self.installer.script_path).st_mode
        self.assertTrue(mode & stat.S_IXUSR)

        script = self.installer.script_path.read_text(encoding="utf-8")
        self.assertTrue(script.startswith("#!/bin/bash"))
        self.assertIn("SESSIONWATCH_SOCKET_PATH=/tmp/sessionwatch-test.sock", script)
        self.assertIn("/usr/bin/python3 -m sessionwatch.hook_client", script)
        self.assertIn("exit 0", script)

    def test_install_registers_every_event(self) -> None:
        self.installer.install()

        hooks = self._settings()["hooks"]
        self.assertEqual(set(hooks), set(HOOK_EVENTS))
        self.assertNotIn("matcher", hooks["Stop"][0])
        self.assertEqual(hooks["PreToolUse"][0]["matcher"], "Task")
        command = hooks["PostToolUse"][0]["hooks"][0]["command"]
        self.assertTrue(command.endswith("sessionwatch-hook.sh PostToolUse"))

    def test_install_is_idempotent_and_keeps_foreign_hooks(self) -> None:
        foreign = {"hooks": [{"type": "command", "command": "/usr/local/bin/other-hook"}]}
        self.settings_path.write_text(
            json.dumps({"theme": "dark", "hooks": {"Stop": [foreign]}}),
            encoding="utf-8",
        )

        self.installer.install()
        self.installer.install()

        settings = self._settings()
        self.assertEqual(settings["theme"], "dark")
        self.assertEqual(len(settings["hooks"]["Stop"]), 2)
        self.assertEqual(settings["hooks"]["Stop"][0], foreign)

    def test_uninstall_removes_only_own_entries(self) -> None:
        foreign = {"hooks": [{"type": "command", "command": "/usr/local/bin/other-hook"}]}
        self.settings_path.write_text(json.dumps({"hooks": {"Stop": [foreign]}}), encoding="utf-8")
        self.installer.install()

        result = self.installer.uninstall()

        self.assertTrue(result.ok)
        self.assertFalse(result.installed)
        self.assertFalse(self.installer.script_path.exists())
        self.assertEqual(self._settings(), {"hooks": {"Stop": [foreign]}})

    def test_uninstall_drops_empty_hooks_table(self) -> None:
        self.settings_path.write_text(json.dumps({"theme": "dark"}), encoding="utf-8")
        self.installer.install()
        self.installer.uninstall()

        self.assertEqual(self._settings(), {"theme": "dark"})

    def test_uninstall_removes_legacy_flat_entries(self) -> None:
        legacy = {"type": "command", "command": "/home/me/.claude/hooks/sessionwatch-hook.sh Stop"}
        self.settings_path.write_text(json.dumps({"hooks": {"Stop": [legacy]}}), encoding="utf-8")

        self.installer.uninstall()

        self.assertEqual(self._settings(), {})

    def test_uninstall_without_anything_installed(self) -> None:
        result = self.installer.uninstall()
        self.assertTrue(result.ok)
        self.assertFalse(self.settings_path.exists())

    def test_invalid_settings_reports_failure(self) -> None:
        self.settings_path.write_text("{not json", encoding="utf-8")

        result = self.installer.install()

        self.assertFalse(result.ok)
        self.assertIn("Hook install failed", result.reason)
        self.assertEqual(self.settings_path.read_text(encoding="utf-8"), "{not json")

    def test_non_object_settings_reports_failure(self) -> None:
        self.settings_path.write_text("[]", encoding="utf-8")
        self.assertFalse(self.installer.install().ok)


if __name__ == "__main__":
    unittest.main()
