from __future__ import annotations

import argparse
import json
import sys
import textwrap
from pathlib import Path
from typing import Any, Callable

from ._version import __version__
from .agents import ALL_AGENTS, SUPPORTED_AGENTS
from .backend import NpxSkillsBackend, SourceRegistry
from .batch import ImportProgress, load_import_document
from .config import INSTALL_MODES, InstallConfigStore, Settings, load_settings
from .console import SkillConsole
from .errors import SkillConsoleError
from .export import dumps_export, export_filename, write_export
from .inventory import SkillGroup
from .logging_config import LOG_LEVELS, configure_logging


def _print_table(rows: list[list[str]]) -> None:
    if not rows:
        return
    widths = [0] * len(rows[0])
    for r in rows:
        for i, c in enumerate(r):
            widths[i] = max(widths[i], len(c))
    for r in rows:
        line = "  ".join(c.ljust(widths[i]) for i, c in enumerate(r))
        print(line.rstrip())


def _prompt_confirm(prompt: str) -> bool:
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _always_confirm(prompt: str) -> bool:
    return True


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="skillconsole",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Manage agent skills installed across AI coding agents.",
        epilog=textwrap.dedent(
            """\
            Environment variables:
              SKILLCONSOLE_HOME, SKILLCONSOLE_NPX, SKILLCONSOLE_TIMEOUT_S,
              SKILLCONSOLE_SOURCES_PATH, SKILLCONSOLE_LOG_LEVEL
            """
        ),
    )
    p.add_argument("--version", action="version", version=f"skillconsole {__version__}")
    p.add_argument("--log-level", choices=LOG_LEVELS, type=str.upper, help="Log level (default: WARNING)")

    def _add_install_overrides(parser: argparse.ArgumentParser) -> None:
        # Start from the default install configuration; these flags replace single fields.
        parser.add_argument(
            "--agent",
            dest="agents",
            action="append",
            metavar="AGENT",
            help="Target agent (repeatable; default: antigravity)",
        )
        scope = parser.add_mutually_exclusive_group()
        scope.add_argument("--global", dest="install_global", action="store_true", default=None, help="Also install globally (default)")
        scope.add_argument("--no-global", dest="install_global", action="store_false", default=None, help="Do not install globally")
        parser.add_argument("--mode", dest="install_mode", choices=INSTALL_MODES, help="Installation mode (default: symlink)")

    sub = p.add_subparsers(dest="cmd", required=True)

    ls = sub.add_parser("list", aliases=["ls"], help="List installed skills merged across agents")
    ls.add_argument("--agent", default=ALL_AGENTS, help='Filter: "All", an agent id, "global" or "Other" (default: All)')
    ls.add_argument("--json", action="store_true", help="Output JSON")

    sub.add_parser("agents", help="List supported agents")

    glob = sub.add_parser("global", help="List globally installed skills and the agents linking to them")
    glob.add_argument("--json", action="store_true", help="Output JSON")

    install = sub.add_parser("install", aliases=["i"], help="Install a skill (id, URL, or local path)")
    install.add_argument("source", help="Skill source passed to the installer")
    install.add_argument("--skill", help="Install only this skill from a multi-skill source")
    install.add_argument("--no-auto-confirm", dest="auto_confirm", action="store_false", default=None, help="Let the installer prompt")
    _add_install_overrides(install)

    uninstall = sub.add_parser(
        "uninstall",
        aliases=["remove", "rm"],
        help="Uninstall one or more skills from the agents in the current view",
    )
    uninstall.add_argument("skill_ids", nargs="+", metavar="SKILL_ID", help="Skill id(s)")
    uninstall.add_argument("--agent", default=ALL_AGENTS, help='View to uninstall from: "All", an agent id or "global" (default: All)')
    uninstall.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    remove_all = sub.add_parser("remove-all", help="Uninstall every skill in the current view")
    remove_all.add_argument("--agent", default=ALL_AGENTS, help='View to clear: "All", an agent id or "global" (default: All)')
    remove_all.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    export = sub.add_parser("export", help="Export installed skills as JSON")
    export.add_argument("--output", "-o", help="Write to this file instead of stdout")
    export.add_argument("--save", action="store_true", help="Write to skills-export-<date>.json in the current directory")

    imp = sub.add_parser("import", help="Install every skill listed in an export document")
    imp.add_argument("source", help='Export document: path, http(s) URL, or "-" for stdin')
    _add_install_overrides(imp)

    sub.add_parser("config", help="Show effective install configuration and settings")

    return p


def _make_backend(settings: Settings) -> NpxSkillsBackend:
    return NpxSkillsBackend(
        home_dir=settings.home_dir,
        sources=SourceRegistry(settings.sources_path),
        npx_command=settings.npx_command,
        timeout_s=settings.timeout_s,
    )


def _install_store(args: argparse.Namespace) -> InstallConfigStore:
    store = InstallConfigStore()
    store.update(
        install_global=getattr(args, "install_global", None),
        target_agents=getattr(args, "agents", None),
        install_mode=getattr(args, "install_mode", None),
        auto_confirm=getattr(args, "auto_confirm", None),
    )
    return store


def _make_console(args: argparse.Namespace, settings: Settings) -> SkillConsole:
    return SkillConsole(_make_backend(settings), config=_install_store(args))


def _format_instances(group: SkillGroup) -> str:
    parts = []
    for inst in group.display_instances():
        mode = "link" if inst.is_symlink else "copy"
        parts.append(f"{inst.label} ({mode})")
    return ", ".join(parts)


def cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    console = _make_console(args, settings)
    console.refresh()
    console.select_agent(args.agent)
    groups = console.groups()

    if args.json:
        payload = {
            "filter": args.agent,
            "availableAgents": console.available_agents(),
            "skills": [g.to_dict() for g in groups],
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    print(f"filters: {', '.join([ALL_AGENTS, *console.available_agents()])}")
    if groups:
        rows = [["ID", "NAME", "AUTHOR", "AGENTS"]]
        for g in groups:
            rows.append([g.id, g.name, g.author or "-", _format_instances(g)])
        _print_table(rows)
    print(f"{len(groups)} skill(s) (merged view: {args.agent})")
    return 0


def cmd_agents(args: argparse.Namespace, settings: Settings) -> int:
    rows = [["ID", "NAME", "SKILLS_DIR"]]
    for agent in SUPPORTED_AGENTS:
        rows.append([agent.id, agent.name, str(agent.skills_dir(settings.home_dir))])
    _print_table(rows)
    return 0


def cmd_global(args: argparse.Namespace, settings: Settings) -> int:
    skills = _make_backend(settings).list_global_skills()
    if args.json:
        print(json.dumps([s.to_dict() for s in skills], indent=2, sort_keys=True))
        return 0
    if not skills:
        print("No global skills installed.")
        return 0
    rows = [["ID", "NAME", "USED_BY", "SOURCE"]]
    for s in skills:
        rows.append([s.id, s.name, ", ".join(s.used_by) or "-", s.source or "-"])
    _print_table(rows)
    return 0


def cmd_install(args: argparse.Namespace, settings: Settings) -> int:
    console = _make_console(args, settings)
    message = console.install(args.source, skill=args.skill)
    print(message)
    return 0


def _confirm_for(args: argparse.Namespace) -> Callable[[str], bool]:
    return _always_confirm if args.yes else _prompt_confirm


def cmd_uninstall(args: argparse.Namespace, settings: Settings) -> int:
    console = _make_console(args, settings)
    console.refresh()
    console.select_agent(args.agent)
    skill_ids = list(dict.fromkeys(args.skill_ids))

    if len(skill_ids) == 1:
        target = console.uninstall(skill_ids[0], confirm=_confirm_for(args))
    else:
        console.set_selection(skill_ids)
        target = console.uninstall_selected(confirm=_confirm_for(args))

    if target is None:
        print("Cancelled.")
        return 0
    print(f"Uninstalled {', '.join(skill_ids)} from {target.describe()}")
    return 0


def cmd_remove_all(args: argparse.Namespace, settings: Settings) -> int:
    console = _make_console(args, settings)
    console.refresh()
    console.select_agent(args.agent)
    target = console.remove_all(confirm=_confirm_for(args))
    if target is None:
        print("Cancelled.")
        return 0
    print(f"Removed all skills from {target.describe()}")
    return 0


def cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    console = _make_console(args, settings)
    document = console.export()

    path: Path | None = None
    if args.output:
        path = Path(args.output)
    elif args.save:
        path = Path.cwd() / export_filename()

    if path is None:
        sys.stdout.write(dumps_export(document))
        return 0
    written = write_export(document, path)
    print(f"Exported {len(document['skills'])} skill(s) to {written}")
    return 0


def _print_progress(progress: ImportProgress) -> None:
    print(str(progress), file=sys.stderr)


def cmd_import(args: argparse.Namespace, settings: Settings) -> int:
    payload = load_import_document(args.source)
    console = _make_console(args, settings)
    result = console.import_skills(payload, on_progress=_print_progress)

    print("Batch installation complete!")
    rows = [["RESULT", "COUNT"], ["installed", str(len(result.installed))], ["failed", str(len(result.failed))]]
    _print_table(rows)
    for outcome in result.outcomes:
        if not outcome.ok:
            print(f"failed: {outcome.skill_id}: {outcome.error}")
    return 1 if result.failed else 0


def cmd_config(args: argparse.Namespace, settings: Settings) -> int:
    payload: dict[str, Any] = {
        "install": InstallConfigStore().get().to_dict(),
        "settings": {
            "homeDir": str(settings.home_dir),
            "npxCommand": settings.npx_command,
            "timeoutS": settings.timeout_s,
            "sourcesPath": str(settings.sources_path),
            "logLevel": settings.log_level,
        },
    }
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(args.log_level or settings.log_level)
    try:
        if args.cmd in ("list", "ls"):
            return cmd_list(args, settings)
        if args.cmd == "agents":
            return cmd_agents(args, settings)
        if args.cmd == "global":
            return cmd_global(args, settings)
        if args.cmd in ("install", "i"):
            return cmd_install(args, settings)
        if args.cmd in ("uninstall", "remove", "rm"):
            return cmd_uninstall(args, settings)
        if args.cmd == "remove-all":
            return cmd_remove_all(args, settings)
        if args.cmd == "export":
            return cmd_export(args, settings)
        if args.cmd == "import":
            return cmd_import(args, settings)
        if args.cmd == "config":
            return cmd_config(args, settings)
        raise AssertionError("unreachable")
    except SkillConsoleError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
