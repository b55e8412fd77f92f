from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .agents import ALL_AGENTS, display_label, operation_label
from .errors import SkillConsoleError


def _opt_str(value: Any) -> str | None:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _opt_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return max(value, 0)
    return None


@dataclass(frozen=True)
class SkillInstance:
    id: str
    name: str
    description: str = ""
    author: str = ""
    tags: tuple[str, ...] = ()
    agent: str | None = None  # None: not tied to any agent
    is_symlink: bool = False
    source: str | None = None
    version: str | None = None
    downloads: int | None = None
    stars: int = 0

    @classmethod
    def from_record(cls, raw: Mapping[str, Any]) -> "SkillInstance":
        if not isinstance(raw, Mapping):
            raise SkillConsoleError(f"Invalid skill record: expected an object, got {type(raw).__name__}")
        skill_id = _opt_str(raw.get("id"))
        if skill_id is None:
            raise SkillConsoleError(f"Invalid skill record without id: {dict(raw)!r}")

        tags_raw = raw.get("tags")
        tags = tuple(t for t in tags_raw if isinstance(t, str)) if isinstance(tags_raw, (list, tuple)) else ()

        is_symlink = raw.get("is_symlink", raw.get("isSymlink", False))
        return cls(
            id=skill_id,
            name=_opt_str(raw.get("name")) or skill_id,
            description=str(raw.get("description") or ""),
            author=str(raw.get("author") or ""),
            tags=tags,
            agent=_opt_str(raw.get("agent")),
            is_symlink=bool(is_symlink),
            source=_opt_str(raw.get("source")),
            version=_opt_str(raw.get("version")),
            downloads=_opt_int(raw.get("downloads")),
            stars=_opt_int(raw.get("stars")) or 0,
        )

    @property
    def label(self) -> str:
        return display_label(self.agent)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "author": self.author,
            "tags": list(self.tags),
            "agent": self.agent,
            "isSymlink": self.is_symlink,
            "source": self.source,
            "version": self.version,
            "downloads": self.downloads,
            "stars": self.stars,
        }


def _display_key(instance: SkillInstance) -> tuple[int, str]:
    return (0 if instance.is_symlink else 1, instance.agent or "")


@dataclass(frozen=True)
class SkillGroup:
    id: str
    name: str
    author: str
    description: str
    instances: tuple[SkillInstance, ...]

    def display_instances(self) -> list[SkillInstance]:
        """Symlinked instances first, then by agent label. `instances` keeps arrival order."""
        return sorted(self.instances, key=_display_key)

    def held_labels(self) -> set[str]:
        labels = {operation_label(i.agent) for i in self.instances}
        return {label for label in labels if label is not None}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "author": self.author,
            "description": self.description,
            "instances": [i.to_dict() for i in self.display_instances()],
        }


def parse_instances(records: Iterable[Any]) -> list[SkillInstance]:
    return [r if isinstance(r, SkillInstance) else SkillInstance.from_record(r) for r in records]


def filter_instances(instances: Iterable[SkillInstance], selected_agent: str) -> list[SkillInstance]:
    if selected_agent == ALL_AGENTS:
        return list(instances)
    return [i for i in instances if i.label == selected_agent]


def group_instances(instances: Iterable[SkillInstance]) -> list[SkillGroup]:
    order: list[str] = []
    seeds: dict[str, SkillInstance] = {}
    members: dict[str, list[SkillInstance]] = {}
    for inst in instances:
        if inst.id not in seeds:
            order.append(inst.id)
            seeds[inst.id] = inst
            members[inst.id] = []
        members[inst.id].append(inst)

    return [
        SkillGroup(
            id=skill_id,
            name=seeds[skill_id].name,
            author=seeds[skill_id].author,
            description=seeds[skill_id].description,
            instances=tuple(members[skill_id]),
        )
        for skill_id in order
    ]


def reconcile(instances: Iterable[SkillInstance], selected_agent: str = ALL_AGENTS) -> list[SkillGroup]:
    return group_instances(filter_instances(instances, selected_agent))


def available_agents(instances: Iterable[SkillInstance]) -> list[str]:
    return sorted({i.label for i in instances})


def find_group(groups: Iterable[SkillGroup], skill_id: str) -> SkillGroup | None:
    for group in groups:
        if group.id == skill_id:
            return group
    return None
