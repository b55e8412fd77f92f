from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

ALL_AGENTS = "All"
GLOBAL_AGENT = "global"
OTHER_LABEL = "Other"


@dataclass(frozen=True)
class Agent:
    id: str
    name: str
    skills_path: str  # relative to the home directory

    def skills_dir(self, home: Path) -> Path:
        return home / self.skills_path


# The shared global location comes first; the installer links agents to it.
SUPPORTED_AGENTS: tuple[Agent, ...] = (
    Agent(GLOBAL_AGENT, "Global", ".agents/skills"),
    Agent("antigravity", "Antigravity", ".gemini/antigravity/skills"),
    Agent("claude-code", "Claude Code", ".claude/skills"),
    Agent("cursor", "Cursor", ".cursor/skills"),
    Agent("windsurf", "Windsurf", ".codeium/windsurf/skills"),
    Agent("trae", "Trae", ".trae/skills"),
    Agent("trae-cn", "Trae CN", ".trae-cn/skills"),
    Agent("roo", "Roo Code", ".roo/skills"),
    Agent("cline", "Cline", ".cline/skills"),
    Agent("gemini-cli", "Gemini CLI", ".gemini/skills"),
    Agent("github-copilot", "GitHub Copilot", ".copilot/skills"),
)

_BY_ID = {a.id: a for a in SUPPORTED_AGENTS}


def get_agent(agent_id: str) -> Agent | None:
    return _BY_ID.get(agent_id)


def display_label(agent: str | None) -> str:
    """
    Label used for filtering and display.

    An instance without an agent is shown under "Other". This is unrelated to
    the "global" label, which names the shared install location.
    """
    return agent or OTHER_LABEL


def operation_label(agent: str | None) -> str | None:
    """
    Label used when targeting an instance (uninstall scopes, exports).

    Returns None for instances without an agent: they cannot be addressed by
    the backend. The literal "global" is kept and later mapped to the global flag.
    """
    return agent or None
