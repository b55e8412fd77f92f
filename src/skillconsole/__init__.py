from ._version import __version__
from .config import InstallConfigStore, InstallConfiguration
from .console import SkillConsole
from .errors import (
    BackendCommandError,
    EmptyTargetSetError,
    MalformedImportSpecError,
    SkillConsoleError,
)
from .export import serialize_inventory
from .inventory import SkillGroup, SkillInstance, reconcile
from .targets import UninstallTarget, resolve_uninstall_targets

__all__ = [
    "__version__",
    "BackendCommandError",
    "EmptyTargetSetError",
    "InstallConfigStore",
    "InstallConfiguration",
    "MalformedImportSpecError",
    "SkillConsole",
    "SkillConsoleError",
    "SkillGroup",
    "SkillInstance",
    "UninstallTarget",
    "reconcile",
    "resolve_uninstall_targets",
    "serialize_inventory",
]
