from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator

from .agents import ALL_AGENTS
from .backend import InstallRequest, RemoveRequest, SkillBackend
from .batch import BatchImportResult, ImportProgress, parse_import_spec, run_batch_import
from .config import InstallConfigStore
from .errors import OperationInFlightError, SkillConsoleError, UnknownSkillError
from .export import serialize_inventory
from .inventory import SkillGroup, SkillInstance, available_agents, find_group, parse_instances, reconcile
from .targets import (
    UninstallTarget,
    confirmation_prompt,
    require_targets,
    resolve_batch_targets,
    resolve_uninstall_targets,
)

logger = logging.getLogger(__name__)

Confirm = Callable[[str], bool]


@dataclass(frozen=True)
class FilterContext:
    selected_agent: str = ALL_AGENTS
    selected_skill_ids: frozenset[str] = field(default_factory=frozenset)


class InFlightGuard:
    """Tracks running operations keyed by (skill id, scope) and refuses duplicates."""

    def __init__(self) -> None:
        self._active: set[tuple[str, str]] = set()

    def is_busy(self, skill_id: str) -> bool:
        return any(key[0] == skill_id for key in self._active)

    def active(self) -> list[tuple[str, str]]:
        return sorted(self._active)

    @contextmanager
    def hold(self, keys: list[tuple[str, str]]) -> Iterator[None]:
        busy = [k for k in keys if k in self._active]
        if busy:
            what = ", ".join(f"{skill_id} ({scope})" for skill_id, scope in busy)
            raise OperationInFlightError(f"Operation already in progress for {what}")
        self._active.update(keys)
        try:
            yield
        finally:
            self._active.difference_update(keys)


class SkillConsole:
    """
    Session state for the skills console.

    Owns the inventory (replaced wholesale on every refresh), the filter
    context and the install configuration. Every destructive action goes
    through the target resolver and the confirmation callback.
    """

    def __init__(self, backend: SkillBackend, *, config: InstallConfigStore | None = None) -> None:
        self.backend = backend
        self.config = config or InstallConfigStore()
        self.guard = InFlightGuard()
        self._inventory: tuple[SkillInstance, ...] = ()
        self._filter = FilterContext()

    @property
    def inventory(self) -> tuple[SkillInstance, ...]:
        return self._inventory

    @property
    def filter(self) -> FilterContext:
        return self._filter

    def refresh(self) -> tuple[SkillInstance, ...]:
        self._inventory = tuple(parse_instances(self.backend.get_local_skills()))
        self._prune_selection()
        return self._inventory

    def groups(self) -> list[SkillGroup]:
        return reconcile(self._inventory, self._filter.selected_agent)

    def available_agents(self) -> list[str]:
        return available_agents(self._inventory)

    # Filter context and selection.

    def select_agent(self, agent: str) -> FilterContext:
        self._filter = replace(self._filter, selected_agent=agent)
        self._prune_selection()
        return self._filter

    def set_selection(self, skill_ids: list[str] | set[str] | frozenset[str]) -> FilterContext:
        visible = {g.id for g in self.groups()}
        unknown = sorted(set(skill_ids) - visible)
        if unknown:
            raise UnknownSkillError(f"Not in the current view ({self._filter.selected_agent}): {', '.join(unknown)}")
        self._filter = replace(self._filter, selected_skill_ids=frozenset(skill_ids))
        return self._filter

    def toggle_selection(self, skill_id: str) -> FilterContext:
        current = set(self._filter.selected_skill_ids)
        current.symmetric_difference_update({skill_id})
        return self.set_selection(current)

    def clear_selection(self) -> FilterContext:
        self._filter = replace(self._filter, selected_skill_ids=frozenset())
        return self._filter

    def _prune_selection(self) -> None:
        if not self._filter.selected_skill_ids:
            return
        visible = {g.id for g in self.groups()}
        kept = self._filter.selected_skill_ids & visible
        if kept != self._filter.selected_skill_ids:
            self._filter = replace(self._filter, selected_skill_ids=frozenset(kept))

    # Operations.

    def install(self, source: str, *, skill: str | None = None) -> str:
        source = source.strip()
        if not source:
            raise SkillConsoleError("Nothing to install: empty skill source.")
        cfg = self.config.get()
        request = InstallRequest(
            id=source,
            global_=cfg.install_global,
            agents=cfg.target_agents,
            auto_confirm=cfg.auto_confirm,
            install_mode=cfg.install_mode,
            skill=skill,
        )
        with self.guard.hold([(skill or source, "install")]):
            message = self.backend.install_skill(request)
        self.refresh()
        return message

    def _visible_group(self, skill_id: str) -> SkillGroup:
        group = find_group(self.groups(), skill_id)
        if group is None:
            raise UnknownSkillError(f"Skill {skill_id!r} is not installed in view {self._filter.selected_agent!r}.")
        return group

    def _remove(self, skill_ids: list[str], target: UninstallTarget, *, remove_all: bool = False) -> str:
        request = RemoveRequest(
            skill_ids=tuple(skill_ids),
            global_=target.global_,
            agents=target.agents,
            remove_all=remove_all,
            auto_confirm=True,
        )
        scope = target.describe()
        with self.guard.hold([(skill_id, scope) for skill_id in skill_ids]):
            message = self.backend.remove_skills(request)
        self.refresh()
        return message

    def uninstall(self, skill_id: str, *, confirm: Confirm) -> UninstallTarget | None:
        """Returns the target that was removed, or None when the user declined."""
        group = self._visible_group(skill_id)
        target = require_targets(
            resolve_uninstall_targets(group.held_labels(), self._filter.selected_agent),
            skill_ids=[skill_id],
        )
        if not confirm(confirmation_prompt([skill_id], target)):
            logger.info("Uninstall of %s declined", skill_id)
            return None
        self._remove([skill_id], target)
        return target

    def uninstall_selected(self, *, confirm: Confirm) -> UninstallTarget | None:
        skill_ids = sorted(self._filter.selected_skill_ids)
        if not skill_ids:
            raise SkillConsoleError("No skills selected.")
        held = {skill_id: self._visible_group(skill_id).held_labels() for skill_id in skill_ids}
        target = require_targets(resolve_batch_targets(held, self._filter.selected_agent), skill_ids=skill_ids)
        if not confirm(confirmation_prompt(skill_ids, target)):
            logger.info("Batch uninstall of %s declined", ", ".join(skill_ids))
            return None
        self._remove(skill_ids, target)
        self.clear_selection()
        return target

    def remove_all(self, *, confirm: Confirm) -> UninstallTarget | None:
        groups = self.groups()
        if not groups:
            raise SkillConsoleError(f"No skills installed in view {self._filter.selected_agent!r}.")
        held: set[str] = set()
        for group in groups:
            held |= group.held_labels()
        skill_ids = [g.id for g in groups]
        target = require_targets(resolve_uninstall_targets(held, self._filter.selected_agent), skill_ids=skill_ids)
        prompt = f"Are you sure you want to uninstall ALL {len(skill_ids)} skills from {target.describe()}?"
        if not confirm(prompt):
            logger.info("Remove-all declined")
            return None
        self._remove(skill_ids, target, remove_all=True)
        self.clear_selection()
        return target

    def export(self) -> dict[str, Any]:
        self.refresh()
        return serialize_inventory(self._inventory)

    def import_skills(
        self,
        payload: str | bytes | Any,
        *,
        on_progress: Callable[[ImportProgress], None] | None = None,
    ) -> BatchImportResult:
        items = parse_import_spec(payload)
        result = run_batch_import(items, self.config.get(), self.backend, on_progress=on_progress)
        self.refresh()
        return result
