import unittest

from skillconsole.errors import EmptyTargetSetError
from skillconsole.targets import (
    UninstallTarget,
    confirmation_prompt,
    require_targets,
    resolve_batch_targets,
    resolve_uninstall_targets,
)


class TestResolveUninstallTargets(unittest.TestCase):
    def test_all_view_maps_global_label_to_flag(self) -> None:
        target = resolve_uninstall_targets({"x", "global"}, "All")

        self.assertEqual(target, UninstallTarget(agents=("x",), global_=True))

    def test_all_view_without_global_holder(self) -> None:
        target = resolve_uninstall_targets({"y", "x"}, "All")

        self.assertEqual(target.agents, ("x", "y"))
        self.assertFalse(target.global_)

    def test_global_view_always_targets_global_only(self) -> None:
        self.assertEqual(resolve_uninstall_targets({"x"}, "global"), UninstallTarget(agents=(), global_=True))
        self.assertEqual(resolve_uninstall_targets(set(), "global"), UninstallTarget(agents=(), global_=True))

    def test_agent_view_scopes_to_viewed_agent_only(self) -> None:
        target = resolve_uninstall_targets({"x", "global"}, "y")

        self.assertEqual(target, UninstallTarget(agents=("y",), global_=False))

    def test_other_view_targets_nothing(self) -> None:
        self.assertTrue(resolve_uninstall_targets(set(), "Other").is_empty)

    def test_all_view_with_no_holders_is_empty_and_rejected(self) -> None:
        target = resolve_uninstall_targets(set(), "All")

        self.assertTrue(target.is_empty)
        with self.assertRaises(EmptyTargetSetError):
            require_targets(target, skill_ids=["a"])

    def test_non_empty_targets_pass_through_require(self) -> None:
        for held, view in [({"x"}, "All"), ({"global"}, "All"), (set(), "global"), (set(), "cursor")]:
            target = resolve_uninstall_targets(held, view)
            self.assertIs(require_targets(target), target)

    def test_global_label_is_never_an_agent_name(self) -> None:
        for view in ("All", "global", "x"):
            target = resolve_uninstall_targets({"global", "x"}, view)
            self.assertNotIn("global", target.agents)


class TestBatchTargets(unittest.TestCase):
    def test_union_across_selected_skills(self) -> None:
        target = resolve_batch_targets({"a": {"x"}, "b": {"y", "global"}}, "All")

        self.assertEqual(target, UninstallTarget(agents=("x", "y"), global_=True))

    def test_agent_view_batch(self) -> None:
        target = resolve_batch_targets({"a": {"x"}, "b": {"x", "y"}}, "x")

        self.assertEqual(target, UninstallTarget(agents=("x",), global_=False))

    def test_empty_selection_is_empty(self) -> None:
        self.assertTrue(resolve_batch_targets({}, "All").is_empty)


class TestDescribe(unittest.TestCase):
    def test_describe_and_prompt(self) -> None:
        target = UninstallTarget(agents=("cursor", "roo"), global_=True)

        self.assertEqual(target.describe(), "cursor, roo, global")
        self.assertEqual(
            confirmation_prompt(["pdf"], target),
            'Are you sure you want to uninstall "pdf" from cursor, roo, global?',
        )

    def test_prompt_names_every_skill_in_batch(self) -> None:
        prompt = confirmation_prompt(["a", "b"], UninstallTarget(agents=("x",)))

        self.assertIn('2 skills ("a", "b")', prompt)
        self.assertIn("from x", prompt)


if __name__ == "__main__":
    unittest.main()
