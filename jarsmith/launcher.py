"""Launch an entry point's main class directly on the runtime classpath."""
from __future__ import annotations

from pathlib import Path
from typing import List, Sequence
import os

from .config_loader import EntryPoint
from .core.command_runner import CommandResult, CommandRunner
from .core.console import Console, quiet_console


def split_tool_arguments(text: str | None) -> List[str]:
    """Split a forwarded argument string on single spaces.

    There is no quoting or escaping: ``"a  b"`` yields ``["a", "", "b"]``
    and an argument cannot contain a space.
    """

    if text is None:
        return []
    return text.split(" ")


class ToolLauncher:
    def __init__(self, runner: CommandRunner, *, java: str = "java", console: Console | None = None) -> None:
        self._runner = runner
        self._java = java
        self._console = console or quiet_console()

    def command(self, entry_point: EntryPoint, own_output: Path, classpath: Sequence[Path], arguments: str | None) -> List[str]:
        entries = [str(own_output), *(str(path) for path in classpath)]
        return [self._java, "-cp", os.pathsep.join(entries), entry_point.main_class, *split_tool_arguments(arguments)]

    def launch(
        self,
        entry_point: EntryPoint,
        own_output: Path,
        classpath: Sequence[Path],
        arguments: str | None = None,
        *,
        cwd: Path | None = None,
    ) -> CommandResult:
        command = self.command(entry_point, own_output, classpath, arguments)
        self._console.info(f"Running {entry_point.name} ({entry_point.main_class})")
        return self._runner.run(command, cwd=cwd, check=False, note=f"run {entry_point.name}", stream=True)


__all__ = ["ToolLauncher", "split_tool_arguments"]
