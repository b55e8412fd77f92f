import io
import json
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

from skillconsole.cli import build_parser, main
from skillconsole.config import Settings
from skillconsole.errors import BackendCommandError

from test_console import INVENTORY, RecordingBackend


def _settings(root: Path) -> Settings:
    return Settings(home_dir=root / "home", npx_command="npx", timeout_s=5.0, sources_path=root / "sources.json")


class _CliCase(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        self.backend = RecordingBackend(INVENTORY)

    def tearDown(self) -> None:
        self._td.cleanup()

    def run_cli(self, argv: list[str], *, stdin: str = "") -> tuple[int, str, str]:
        out, err = io.StringIO(), io.StringIO()
        with (
            patch("skillconsole.cli.load_settings", return_value=_settings(self.root)),
            patch("skillconsole.cli.configure_logging"),
            patch("skillconsole.cli._make_backend", return_value=self.backend),
            patch("sys.stdout", new=out),
            patch("sys.stderr", new=err),
            patch("sys.stdin", new=io.StringIO(stdin)),
        ):
            rc = main(argv)
        return rc, out.getvalue(), err.getvalue()


class TestParser(unittest.TestCase):
    def test_install_overrides_default_to_unset(self) -> None:
        args = build_parser().parse_args(["install", "acme/skills"])

        self.assertIsNone(args.agents)
        self.assertIsNone(args.install_global)
        self.assertIsNone(args.install_mode)
        self.assertIsNone(args.auto_confirm)

    def test_install_overrides(self) -> None:
        args = build_parser().parse_args(
            ["i", "acme/skills", "--agent", "cursor", "--agent", "roo", "--no-global", "--mode", "copy", "--no-auto-confirm"]
        )

        self.assertEqual(args.agents, ["cursor", "roo"])
        self.assertFalse(args.install_global)
        self.assertEqual(args.install_mode, "copy")
        self.assertFalse(args.auto_confirm)

    def test_uninstall_aliases(self) -> None:
        for alias in ("uninstall", "remove", "rm"):
            args = build_parser().parse_args([alias, "pdf", "-y"])
            self.assertEqual(args.skill_ids, ["pdf"])
            self.assertTrue(args.yes)
            self.assertEqual(args.agent, "All")


class TestCommands(_CliCase):
    def test_list_json(self) -> None:
        rc, out, _ = self.run_cli(["list", "--json"])

        self.assertEqual(rc, 0)
        payload = json.loads(out)
        self.assertEqual(payload["filter"], "All")
        self.assertEqual(payload["availableAgents"], ["Other", "cursor", "global", "roo"])
        self.assertEqual([s["id"] for s in payload["skills"]], ["pdf", "docx", "loose"])
        self.assertEqual([i["agent"] for i in payload["skills"][0]["instances"]], ["roo", "cursor", "global"])

    def test_list_table_for_agent(self) -> None:
        rc, out, _ = self.run_cli(["ls", "--agent", "cursor"])

        self.assertEqual(rc, 0)
        self.assertIn("filters: All, Other, cursor, global, roo", out)
        self.assertIn("2 skill(s) (merged view: cursor)", out)

    def test_uninstall_with_yes(self) -> None:
        rc, out, _ = self.run_cli(["uninstall", "pdf", "--yes"])

        self.assertEqual(rc, 0)
        self.assertIn("Uninstalled pdf from cursor, roo, global", out)
        self.assertEqual(self.backend.removals[0].agents, ("cursor", "roo"))

    def test_uninstall_declined_on_eof(self) -> None:
        rc, out, _ = self.run_cli(["uninstall", "pdf"])

        self.assertEqual(rc, 0)
        self.assertIn("Cancelled.", out)
        self.assertEqual(self.backend.removals, [])

    def test_uninstall_several(self) -> None:
        rc, out, _ = self.run_cli(["rm", "pdf", "docx", "--agent", "cursor"], stdin="y\n")

        self.assertEqual(rc, 0)
        self.assertIn("Uninstalled pdf, docx from cursor", out)
        self.assertEqual(self.backend.removals[0].skill_ids, ("docx", "pdf"))

    def test_backend_error_exits_nonzero(self) -> None:
        self.backend.fail_with = BackendCommandError("remove_skills", "npx exploded")

        rc, _, err = self.run_cli(["uninstall", "pdf", "-y"])

        self.assertEqual(rc, 1)
        self.assertIn("error: remove_skills failed: npx exploded", err)

    def test_unknown_skill_exits_nonzero(self) -> None:
        rc, _, err = self.run_cli(["uninstall", "nope", "-y"])

        self.assertEqual(rc, 1)
        self.assertIn("error:", err)

    def test_export_to_stdout(self) -> None:
        rc, out, _ = self.run_cli(["export"])

        self.assertEqual(rc, 0)
        doc = json.loads(out)
        self.assertIn("exportedAt", doc)
        self.assertEqual(doc["skills"][1], {"id": "docx", "agents": ["cursor"]})

    def test_export_to_file(self) -> None:
        target = self.root / "out.json"

        rc, out, _ = self.run_cli(["export", "-o", str(target)])

        self.assertEqual(rc, 0)
        self.assertIn("Exported 3 skill(s)", out)
        self.assertEqual(len(json.loads(target.read_text(encoding="utf-8"))["skills"]), 3)

    def test_import_from_stdin_reports_failures(self) -> None:
        self.backend.instances = []
        doc = {"skills": [{"id": "pdf", "agents": ["cursor"]}]}

        rc, out, err = self.run_cli(["import", "-", "--no-global"], stdin=json.dumps(doc))

        self.assertEqual(rc, 0)
        self.assertIn("Installing 1/1: pdf", err)
        self.assertIn("Batch installation complete!", out)
        self.assertFalse(self.backend.installs[0].global_)

    def test_import_partial_failure(self) -> None:
        self.backend.fail_with = BackendCommandError("install_skill", "offline")

        rc, out, _ = self.run_cli(["import", "-"], stdin='{"skills": [{"id": "pdf"}]}')

        self.assertEqual(rc, 1)
        self.assertIn("failed: pdf: install_skill failed: offline", out)

    def test_import_malformed(self) -> None:
        rc, _, err = self.run_cli(["import", "-"], stdin='{"items": []}')

        self.assertEqual(rc, 1)
        self.assertIn("'skills' array missing", err)

    def test_install(self) -> None:
        rc, out, _ = self.run_cli(["install", "acme/skills", "--agent", "roo", "--mode", "copy"])

        self.assertEqual(rc, 0)
        self.assertIn("Installed acme/skills", out)
        req = self.backend.installs[0]
        self.assertEqual((req.agents, req.install_mode, req.global_), (("roo",), "copy", True))

    def test_config(self) -> None:
        rc, out, _ = self.run_cli(["config"])

        self.assertEqual(rc, 0)
        payload = json.loads(out)
        self.assertEqual(payload["install"]["targetAgents"], ["antigravity"])
        self.assertEqual(payload["settings"]["timeoutS"], 5.0)


class TestInstallWithNpxBackend(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        (self.root / "home").mkdir()

    def tearDown(self) -> None:
        self._td.cleanup()

    def _run_install(self, settings: Settings, **run_kwargs) -> tuple[int, str, str]:
        out, err = io.StringIO(), io.StringIO()
        with (
            patch("skillconsole.cli.load_settings", return_value=settings),
            patch("skillconsole.cli.configure_logging"),
            patch("skillconsole.backend.subprocess.run", **run_kwargs),
            patch("sys.stdout", new=out),
            patch("sys.stderr", new=err),
        ):
            rc = main(["install", "acme/skills", "--skill", "pdf"])
        return rc, out.getvalue(), err.getvalue()

    def test_unwritable_source_registry_still_installs(self) -> None:
        blocker = self.root / "blocker"
        blocker.write_text("", encoding="utf-8")
        settings = Settings(home_dir=self.root / "home", timeout_s=5.0, sources_path=blocker / "sources.json")
        done = SimpleNamespace(returncode=0, stdout="", stderr="")

        with self.assertLogs("skillconsole.backend", level="WARNING"):
            rc, out, err = self._run_install(settings, return_value=done)

        self.assertEqual(rc, 0)
        self.assertIn("Installed acme/skills", out)
        self.assertNotIn("Traceback", err)

    def test_unlaunchable_installer_exits_nonzero(self) -> None:
        settings = Settings(home_dir=self.root / "home", timeout_s=5.0, sources_path=self.root / "sources.json")

        rc, out, err = self._run_install(settings, side_effect=PermissionError("npx is not executable"))

        self.assertEqual(rc, 1)
        self.assertIn("error: install_skill failed: Failed to spawn npx", err)
        self.assertNotIn("Traceback", err)


if __name__ == "__main__":
    unittest.main()
