from __future__ import annotations

import json
import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from .agents import GLOBAL_AGENT, SUPPORTED_AGENTS, Agent, get_agent
from .config import DEFAULT_TIMEOUT_S, INSTALL_MODES
from .errors import BackendCommandError, InvalidConfigError
from .inventory import SkillInstance

logger = logging.getLogger(__name__)

SKILL_FILENAME = "SKILL.md"
NO_DESCRIPTION = "No description"
LOCAL_AUTHOR = "local"
LOCAL_VERSION = "1.0.0"

_INSTALLED_PATH_RE = re.compile(r"[~\\/]\.agents[\\/]skills[\\/]([A-Za-z0-9_-]+)")


@dataclass(frozen=True)
class InstallRequest:
    id: str
    global_: bool
    agents: tuple[str, ...]
    auto_confirm: bool
    install_mode: str
    skill: str | None = None  # install one named skill out of a multi-skill source

    def __post_init__(self) -> None:
        if self.install_mode not in INSTALL_MODES:
            raise InvalidConfigError(f"Invalid install mode {self.install_mode!r}.")

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "global": self.global_,
            "agents": list(self.agents),
            "autoConfirm": self.auto_confirm,
            "installMode": self.install_mode,
        }
        if self.skill:
            payload["skill"] = self.skill
        return payload


@dataclass(frozen=True)
class RemoveRequest:
    skill_ids: tuple[str, ...]
    global_: bool
    agents: tuple[str, ...]
    remove_all: bool = False
    auto_confirm: bool = True

    def to_payload(self) -> dict[str, Any]:
        return {
            "skillIds": list(self.skill_ids),
            "global": self.global_,
            "agents": list(self.agents),
            "removeAll": self.remove_all,
            "autoConfirm": self.auto_confirm,
        }


@dataclass(frozen=True)
class GlobalSkillInfo:
    id: str
    name: str
    description: str
    used_by: tuple[str, ...]
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "usedBy": list(self.used_by),
            "source": self.source,
        }


class SkillBackend(Protocol):
    def get_local_skills(self) -> list[SkillInstance]:
        ...

    def install_skill(self, request: InstallRequest) -> str:
        ...

    def remove_skills(self, request: RemoveRequest) -> str:
        ...


def _write_json_atomic(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    tmp.replace(path)


class SourceRegistry:
    """Remembers where each installed skill came from (skill id -> install source)."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable skill source registry %s: %s", self.path, e)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {k: v for k, v in raw.items() if isinstance(k, str) and isinstance(v, str)}

    def get(self, skill_id: str) -> str | None:
        return self._load().get(skill_id)

    def save(self, skill_id: str, source: str) -> None:
        sources = self._load()
        sources[skill_id] = source
        try:
            _write_json_atomic(self.path, sources)
        except OSError as e:
            logger.warning("Could not record source for %s in %s: %s", skill_id, self.path, e)


def _frontmatter_value(lines: list[str], key: str) -> str | None:
    prefix = f"{key}:"
    for line in lines:
        if line.startswith(prefix):
            return line[len(prefix) :].strip()
    return None


def _git_origin_url(skill_dir: Path) -> str | None:
    git_config = skill_dir / ".git" / "config"
    if not git_config.is_file():
        return None
    try:
        content = git_config.read_text(encoding="utf-8")
    except OSError:
        return None
    for line in content.splitlines():
        trimmed = line.strip()
        if trimmed.startswith("url = "):
            return trimmed[len("url = ") :].strip() or None
    return None


def parse_installed_skill_names(stdout: str) -> set[str]:
    return {m.group(1) for m in _INSTALLED_PATH_RE.finditer(stdout)}


def build_install_args(request: InstallRequest) -> list[str]:
    args = ["skills", "add", request.id]
    if request.skill:
        args.extend(["--skill", request.skill])
    if request.global_:
        args.append("--global")
    for agent in request.agents:
        if agent == GLOBAL_AGENT:
            # covered by --global
            continue
        args.extend(["--agent", agent])
    if request.auto_confirm:
        args.append("--yes")
    return args


def build_remove_args(request: RemoveRequest) -> list[str]:
    args = ["skills", "remove"]
    if request.remove_all:
        args.append("--all")
    else:
        args.extend(request.skill_ids)
    if request.global_:
        args.append("--global")
    for agent in request.agents:
        args.extend(["--agent", agent])
    if request.auto_confirm:
        args.append("--yes")
    return args


class NpxSkillsBackend:
    """
    Backend that scans agent skill directories and drives the `npx skills` installer.
    """

    def __init__(
        self,
        *,
        home_dir: Path,
        sources: SourceRegistry,
        npx_command: str = "npx",
        timeout_s: float = DEFAULT_TIMEOUT_S,
        agents: tuple[Agent, ...] = SUPPORTED_AGENTS,
    ) -> None:
        self.home_dir = home_dir.expanduser()
        self.sources = sources
        self.npx_command = npx_command
        self.timeout_s = timeout_s
        self.agents = agents

    def _read_skill(self, skill_dir: Path, *, agent: str) -> SkillInstance | None:
        skill_md = skill_dir / SKILL_FILENAME
        if not skill_md.is_file():
            return None
        try:
            lines = skill_md.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            logger.warning("Could not read %s: %s", skill_md, e)
            return None

        skill_id = skill_dir.name
        source = self.sources.get(skill_id) or _git_origin_url(skill_dir)
        return SkillInstance(
            id=skill_id,
            name=_frontmatter_value(lines, "name") or skill_id,
            description=_frontmatter_value(lines, "description") or NO_DESCRIPTION,
            author=LOCAL_AUTHOR,
            tags=(agent,),
            agent=agent,
            is_symlink=skill_dir.is_symlink(),
            source=source,
            version=LOCAL_VERSION,
        )

    def _skill_dirs(self, agent: Agent) -> list[Path]:
        skills_dir = agent.skills_dir(self.home_dir)
        if not skills_dir.is_dir():
            return []
        try:
            entries = sorted(skills_dir.iterdir(), key=lambda p: p.name)
        except OSError as e:
            logger.warning("Could not list %s: %s", skills_dir, e)
            return []
        return [p for p in entries if p.is_dir()]

    def get_local_skills(self) -> list[SkillInstance]:
        out: list[SkillInstance] = []
        for agent in self.agents:
            for skill_dir in self._skill_dirs(agent):
                inst = self._read_skill(skill_dir, agent=agent.id)
                if inst is not None:
                    out.append(inst)
        logger.debug("Found %d skill instance(s) under %s", len(out), self.home_dir)
        return out

    def list_global_skills(self) -> list[GlobalSkillInfo]:
        global_agent = get_agent(GLOBAL_AGENT)
        if global_agent is None:
            return []
        out: list[GlobalSkillInfo] = []
        for skill_dir in self._skill_dirs(global_agent):
            inst = self._read_skill(skill_dir, agent=GLOBAL_AGENT)
            if inst is None:
                continue
            used_by = tuple(
                a.id
                for a in self.agents
                if a.id != GLOBAL_AGENT and (a.skills_dir(self.home_dir) / inst.id).is_symlink()
            )
            out.append(
                GlobalSkillInfo(
                    id=inst.id,
                    name=inst.name,
                    description=inst.description,
                    used_by=used_by,
                    source=inst.source,
                )
            )
        return out

    def _run(self, command: str, args: list[str]) -> str:
        argv = [self.npx_command, *args]
        if os.name == "nt":
            argv = ["cmd", "/C", *argv]
        logger.info("[%s] running: %s", command, " ".join(argv))
        try:
            proc = subprocess.run(
                argv,
                input="\n",
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
            )
        except OSError as e:
            raise BackendCommandError(command, f"Failed to spawn {self.npx_command}: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise BackendCommandError(command, f"Timed out after {self.timeout_s:g}s") from e

        if proc.stdout:
            logger.debug("[%s] stdout:\n%s", command, proc.stdout)
        if proc.stderr:
            logger.debug("[%s] stderr:\n%s", command, proc.stderr)
        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip() or f"exit status {proc.returncode}"
            raise BackendCommandError(command, detail)
        return proc.stdout

    def install_skill(self, request: InstallRequest) -> str:
        # TODO: forward install_mode once `skills add` exposes a non-interactive copy flag.
        logger.info("Installing %s (mode=%s)", request.id, request.install_mode)
        stdout = self._run("install_skill", build_install_args(request))

        installed = parse_installed_skill_names(stdout)
        if request.skill:
            installed.add(request.skill)
        for skill_id in sorted(installed):
            self.sources.save(skill_id, request.id)
            logger.debug("Recorded source for %s: %s", skill_id, request.id)
        return f"Installed {request.id}"

    def remove_skills(self, request: RemoveRequest) -> str:
        self._run("remove_skills", build_remove_args(request))
        return "Successfully removed skills"
