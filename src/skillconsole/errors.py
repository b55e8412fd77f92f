from __future__ import annotations


class SkillConsoleError(RuntimeError):
    pass


class MalformedImportSpecError(SkillConsoleError):
    pass


class EmptyTargetSetError(SkillConsoleError):
    pass


class InvalidConfigError(SkillConsoleError):
    pass


class UnknownSkillError(SkillConsoleError):
    pass


class OperationInFlightError(SkillConsoleError):
    pass


class BackendCommandError(SkillConsoleError):
    def __init__(self, command: str, message: str) -> None:
        super().__init__(command, message)
        self.command = command
        self.message = message

    def __str__(self) -> str:
        return f"{self.command} failed: {self.message}"
