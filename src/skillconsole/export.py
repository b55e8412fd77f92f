from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from .agents import operation_label
from .inventory import SkillInstance

EXPORT_PREFIX = "skills-export"


def _iso_timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def serialize_inventory(instances: Iterable[SkillInstance], *, now: datetime | None = None) -> dict[str, Any]:
    """
    Build the portable snapshot of which agents hold which skill.

    The document is the same shape the batch import reads back in.
    """
    order: list[str] = []
    agents: dict[str, set[str]] = {}
    sources: dict[str, str] = {}
    for inst in instances:
        if inst.id not in agents:
            order.append(inst.id)
            agents[inst.id] = set()
        label = operation_label(inst.agent)
        if label is not None:
            agents[inst.id].add(label)
        if inst.source and inst.id not in sources:
            sources[inst.id] = inst.source

    skills: list[dict[str, Any]] = []
    for skill_id in order:
        item: dict[str, Any] = {"id": skill_id, "agents": sorted(agents[skill_id])}
        if skill_id in sources:
            item["source"] = sources[skill_id]
        skills.append(item)

    return {
        "exportedAt": _iso_timestamp(now or datetime.now(timezone.utc)),
        "skills": skills,
    }


def export_filename(now: datetime | None = None) -> str:
    day = (now or datetime.now(timezone.utc)).astimezone(timezone.utc).strftime("%Y-%m-%d")
    return f"{EXPORT_PREFIX}-{day}.json"


def dumps_export(document: dict[str, Any]) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


def write_export(document: dict[str, Any], path: Path) -> Path:
    path = path.expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(dumps_export(document), encoding="utf-8")
    tmp.replace(path)
    return path
