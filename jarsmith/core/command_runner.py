"""Execution of external commands (compilers, test launchers, tools) with dry-run support."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Sequence
import os
import shlex
import subprocess


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    streamed: bool = False
    note: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class CommandError(RuntimeError):
    """Raised when a command fails."""

    def __init__(self, result: CommandResult):
        label = f"{result.note}: " if result.note else ""
        message = (
            f"{label}command failed with exit code {result.returncode}: "
            f"{' '.join(map(shlex.quote, result.command))}"
        )
        if result.streamed:
            message = f"{message}\nstdout/stderr already streamed above."
        else:
            message = (
                f"{message}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
        super().__init__(message)
        self.result = result


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return " ".join(shlex.quote(part) for part in command)


# Exit status reported when the executable itself cannot be started, as a shell does.
COMMAND_NOT_FOUND = 127


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`.

    Streamed commands inherit the terminal so compiler and test output shows
    up live; otherwise stdout and stderr are captured on the result.
    """

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        argv = list(command)
        try:
            process = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                env=self._merge_environment(env),
                capture_output=not stream,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            result = CommandResult(
                command=argv,
                returncode=COMMAND_NOT_FOUND,
                stdout="",
                stderr=str(exc),
                note=note,
            )
        else:
            result = CommandResult(
                command=argv,
                returncode=process.returncode,
                stdout=process.stdout or "",
                stderr=process.stderr or "",
                streamed=stream,
                note=note,
            )

        if check and not result.succeeded:
            raise CommandError(result)
        return result


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]
    note: str | None
    stream: bool


ExitCodeHook = Callable[[Sequence[str]], int]


@dataclass
class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them.

    ``exit_code`` decides the simulated return code of each recorded command,
    which lets callers rehearse failing compile or test steps.
    """

    exit_code: ExitCodeHook | None = None
    commands: List[RecordedCommand] = field(default_factory=list)

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        self.commands.append(
            RecordedCommand(
                command=list(command),
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env else {},
                note=note,
                stream=stream,
            )
        )
        returncode = self.exit_code(command) if self.exit_code else 0
        result = CommandResult(command=command, returncode=returncode, stdout="", stderr="", note=note)
        if check and returncode != 0:
            raise CommandError(result)
        return result

    def iter_formatted(self, *, workspace: Path | None = None) -> Iterable[str]:
        default_cwd = str(workspace) if workspace else None
        for record in self.commands:
            parts: List[str] = ["[dry-run]"]
            if record.note:
                parts.append(record.note)
            cwd = record.cwd or default_cwd
            if cwd:
                parts.append(f"(cwd={cwd})")
            parts.append(self.format_command(record.command))
            yield " ".join(parts)


__all__ = [
    "COMMAND_NOT_FOUND",
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
]
