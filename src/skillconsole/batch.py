from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

import httpx

from .agents import GLOBAL_AGENT
from .backend import InstallRequest, SkillBackend
from .config import DEFAULT_FETCH_TIMEOUT_S, InstallConfiguration
from .errors import MalformedImportSpecError, SkillConsoleError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportItem:
    id: str
    agents: tuple[str, ...] | None = None
    source: str | None = None  # advisory only


@dataclass(frozen=True)
class ImportProgress:
    index: int  # 1-based
    total: int
    skill_id: str

    def __str__(self) -> str:
        return f"Installing {self.index}/{self.total}: {self.skill_id}"


@dataclass(frozen=True)
class ItemOutcome:
    index: int
    skill_id: str
    agents: tuple[str, ...]
    global_: bool
    ok: bool
    error: str | None = None


@dataclass(frozen=True)
class BatchImportResult:
    outcomes: tuple[ItemOutcome, ...]

    @property
    def installed(self) -> list[str]:
        return [o.skill_id for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[str]:
        return [o.skill_id for o in self.outcomes if not o.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "installed": self.installed,
            "failed": [{"id": o.skill_id, "error": o.error} for o in self.outcomes if not o.ok],
            "total": len(self.outcomes),
        }


def _parse_item(raw: Any, position: int) -> ImportItem:
    if not isinstance(raw, dict):
        raise MalformedImportSpecError(f"Invalid format: skills[{position}] must be an object")
    skill_id = raw.get("id")
    if not isinstance(skill_id, str) or not skill_id.strip():
        raise MalformedImportSpecError(f"Invalid format: skills[{position}].id must be a non-empty string")

    agents_raw = raw.get("agents")
    agents: tuple[str, ...] | None = None
    if agents_raw is not None:
        if not isinstance(agents_raw, list) or not all(isinstance(a, str) for a in agents_raw):
            raise MalformedImportSpecError(f"Invalid format: skills[{position}].agents must be a list of strings")
        agents = tuple(dict.fromkeys(a.strip() for a in agents_raw if a.strip()))

    source = raw.get("source")
    return ImportItem(
        id=skill_id.strip(),
        agents=agents,
        source=source.strip() if isinstance(source, str) and source.strip() else None,
    )


def parse_import_spec(payload: str | bytes | Any) -> list[ImportItem]:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedImportSpecError(f"Import document is not valid JSON: {e}") from e

    if not isinstance(payload, dict) or not isinstance(payload.get("skills"), list):
        raise MalformedImportSpecError("Invalid format: 'skills' array missing")
    return [_parse_item(raw, i) for i, raw in enumerate(payload["skills"])]


def load_import_document(
    source: str,
    *,
    timeout_s: float = DEFAULT_FETCH_TIMEOUT_S,
    client: httpx.Client | None = None,
) -> str:
    """Read an import document from stdin ("-"), a local path, or an http(s) URL."""
    if source == "-":
        return sys.stdin.read()
    if source.startswith("file://"):
        path = Path(source.removeprefix("file://"))
        return _read_local(path)
    if not source.startswith(("http://", "https://")):
        return _read_local(Path(source).expanduser())

    try:
        if client is not None:
            resp = client.get(source, headers={"accept": "application/json"})
        else:
            with httpx.Client(timeout=timeout_s, follow_redirects=True) as http:
                resp = http.get(source, headers={"accept": "application/json"})
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise MalformedImportSpecError(f"Could not fetch import document from {source}: {e}") from e
    return resp.text


def _read_local(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise MalformedImportSpecError(f"Could not read import document {path}: {e}") from e


def _split_global(agents: Sequence[str]) -> tuple[tuple[str, ...], bool]:
    return tuple(a for a in agents if a != GLOBAL_AGENT), GLOBAL_AGENT in agents


def run_batch_import(
    items: Sequence[ImportItem],
    config: InstallConfiguration,
    backend: SkillBackend,
    *,
    on_progress: Callable[[ImportProgress], None] | None = None,
    on_complete: Callable[[BatchImportResult], None] | None = None,
) -> BatchImportResult:
    """
    Install every item in order, one at a time.

    A failing item is logged and recorded; the remaining items still run and
    nothing already installed is rolled back. `on_complete` fires exactly once.
    """
    total = len(items)
    outcomes: list[ItemOutcome] = []
    for index, item in enumerate(items, start=1):
        agents, wants_global = _split_global(item.agents or config.target_agents)
        global_ = config.install_global or wants_global

        if on_progress is not None:
            on_progress(ImportProgress(index=index, total=total, skill_id=item.id))

        try:
            backend.install_skill(
                InstallRequest(
                    id=item.id,
                    global_=global_,
                    agents=agents,
                    auto_confirm=True,
                    install_mode=config.install_mode,
                )
            )
        except SkillConsoleError as e:
            logger.warning("Failed to install %s (%d/%d): %s", item.id, index, total, e)
            outcomes.append(ItemOutcome(index, item.id, agents, global_, ok=False, error=str(e)))
            continue
        except Exception as e:
            logger.warning("Failed to install %s (%d/%d)", item.id, index, total, exc_info=True)
            error = str(e) or type(e).__name__
            outcomes.append(ItemOutcome(index, item.id, agents, global_, ok=False, error=error))
            continue
        outcomes.append(ItemOutcome(index, item.id, agents, global_, ok=True))

    result = BatchImportResult(outcomes=tuple(outcomes))
    logger.info("Batch import complete: %d installed, %d failed", len(result.installed), len(result.failed))
    if on_complete is not None:
        on_complete(result)
    return result
