from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

from platformdirs import user_data_path

from .errors import InvalidConfigError

INSTALL_MODES = ("symlink", "copy")
DEFAULT_TARGET_AGENTS = ("antigravity",)
DEFAULT_TIMEOUT_S = 300.0
DEFAULT_FETCH_TIMEOUT_S = 30.0
DEFAULT_LOG_LEVEL = "WARNING"
SOURCES_FILENAME = "skill_sources.json"


@dataclass(frozen=True)
class InstallConfiguration:
    install_global: bool = True
    target_agents: tuple[str, ...] = DEFAULT_TARGET_AGENTS
    auto_confirm: bool = True
    install_mode: str = "symlink"  # "symlink" | "copy"

    def __post_init__(self) -> None:
        if self.install_mode not in INSTALL_MODES:
            raise InvalidConfigError(
                f"Invalid install mode {self.install_mode!r}. Expected one of: {', '.join(INSTALL_MODES)}."
            )
        if isinstance(self.target_agents, str):
            raise InvalidConfigError("target_agents must be a sequence of agent ids, not a string.")
        agents = tuple(dict.fromkeys(a.strip() for a in self.target_agents if isinstance(a, str) and a.strip()))
        object.__setattr__(self, "target_agents", agents)

    def to_dict(self) -> dict[str, Any]:
        return {
            "installGlobal": self.install_global,
            "targetAgents": list(self.target_agents),
            "autoConfirm": self.auto_confirm,
            "installMode": self.install_mode,
        }


class InstallConfigStore:
    """
    Holds the install policy for the current session.

    Updates are partial: fields that are not passed keep their previous value,
    and the stored object is always replaced, never mutated.
    """

    def __init__(self, initial: InstallConfiguration | None = None) -> None:
        self._config = initial or InstallConfiguration()

    def get(self) -> InstallConfiguration:
        return self._config

    def update(self, **changes: Any) -> InstallConfiguration:
        allowed = {f.name for f in fields(InstallConfiguration)}
        unknown = sorted(set(changes) - allowed)
        if unknown:
            raise InvalidConfigError(f"Unknown install config field(s): {', '.join(unknown)}")
        filtered = {k: v for k, v in changes.items() if v is not None}
        self._config = replace(self._config, **filtered)
        return self._config

    def toggle_agent(self, agent_id: str) -> InstallConfiguration:
        current = self._config.target_agents
        if agent_id in current:
            agents = tuple(a for a in current if a != agent_id)
        else:
            agents = current + (agent_id,)
        return self.update(target_agents=agents)


def default_sources_path() -> Path:
    return user_data_path("skillconsole") / SOURCES_FILENAME


@dataclass(frozen=True)
class Settings:
    home_dir: Path = field(default_factory=Path.home)
    npx_command: str = "npx"
    timeout_s: float = DEFAULT_TIMEOUT_S
    sources_path: Path = field(default_factory=default_sources_path)
    log_level: str = DEFAULT_LOG_LEVEL


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if env is None else env
    defaults = Settings()

    home_dir = defaults.home_dir
    if raw_home := env.get("SKILLCONSOLE_HOME"):
        home_dir = Path(raw_home).expanduser()

    sources_path = defaults.sources_path
    if raw_sources := env.get("SKILLCONSOLE_SOURCES_PATH"):
        sources_path = Path(raw_sources).expanduser()

    timeout_s = defaults.timeout_s
    if raw_timeout := env.get("SKILLCONSOLE_TIMEOUT_S"):
        try:
            timeout_s = float(raw_timeout)
        except ValueError:
            timeout_s = defaults.timeout_s
        if timeout_s <= 0:
            timeout_s = defaults.timeout_s

    return Settings(
        home_dir=home_dir,
        npx_command=(env.get("SKILLCONSOLE_NPX") or defaults.npx_command).strip(),
        timeout_s=timeout_s,
        sources_path=sources_path,
        log_level=(env.get("SKILLCONSOLE_LOG_LEVEL") or defaults.log_level).strip().upper(),
    )
