from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from .agents import ALL_AGENTS, GLOBAL_AGENT, OTHER_LABEL
from .errors import EmptyTargetSetError


@dataclass(frozen=True)
class UninstallTarget:
    agents: tuple[str, ...] = ()
    global_: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.agents and not self.global_

    def describe(self) -> str:
        parts = list(self.agents)
        if self.global_:
            parts.append(GLOBAL_AGENT)
        return ", ".join(parts) if parts else "<nothing>"

    def union(self, other: "UninstallTarget") -> "UninstallTarget":
        return UninstallTarget(
            agents=tuple(sorted(set(self.agents) | set(other.agents))),
            global_=self.global_ or other.global_,
        )


def resolve_uninstall_targets(held_labels: Iterable[str], selected_agent: str) -> UninstallTarget:
    """
    Work out which agents (and whether the global location) an uninstall affects.

    - "All": every agent that holds the skill; a held "global" label turns into
      the global flag and is never passed on as an agent name.
    - "global": only the global location, whatever the skill is held by.
    - a concrete agent: only that agent, even when it does not hold the skill.
      Callers are expected to check membership before acting on this.
    - "Other": instances without an agent cannot be addressed; nothing is targeted.
    """
    if selected_agent == ALL_AGENTS:
        held = set(held_labels)
        return UninstallTarget(
            agents=tuple(sorted(label for label in held if label != GLOBAL_AGENT)),
            global_=GLOBAL_AGENT in held,
        )
    if selected_agent == GLOBAL_AGENT:
        return UninstallTarget(agents=(), global_=True)
    if selected_agent == OTHER_LABEL:
        return UninstallTarget()
    return UninstallTarget(agents=(selected_agent,), global_=False)


def resolve_batch_targets(held_by_skill: Mapping[str, Iterable[str]], selected_agent: str) -> UninstallTarget:
    target = UninstallTarget()
    for skill_id in held_by_skill:
        target = target.union(resolve_uninstall_targets(held_by_skill[skill_id], selected_agent))
    return target


def require_targets(target: UninstallTarget, *, skill_ids: Iterable[str] = ()) -> UninstallTarget:
    if target.is_empty:
        ids = ", ".join(skill_ids) or "<none>"
        raise EmptyTargetSetError(f"Nothing to uninstall for {ids}: no agent or global location is targeted.")
    return target


def confirmation_prompt(skill_ids: Iterable[str], target: UninstallTarget) -> str:
    ids = [f'"{s}"' for s in skill_ids]
    what = ids[0] if len(ids) == 1 else f"{len(ids)} skills ({', '.join(ids)})"
    return f"Are you sure you want to uninstall {what} from {target.describe()}?"
