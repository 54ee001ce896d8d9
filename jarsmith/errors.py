"""Exception hierarchy shared by every pipeline stage."""
from __future__ import annotations

from typing import Sequence, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .testing import TestOutcome


class JarsmithError(RuntimeError):
    """Base class for failures reported by a pipeline stage."""

    exit_code = 1

    def __init__(self, message: str, *, stage: str | None = None, subproject: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.subproject = subproject

    def describe(self) -> str:
        location = [part for part in (self.stage, self.subproject) if part]
        if not location:
            return str(self)
        return f"[{'/'.join(location)}] {self}"


class ConfigurationError(JarsmithError):
    """Fatal misconfiguration: never retried."""

    exit_code = 2


class GraphCycleError(ConfigurationError):
    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.cycle)}", stage="graph")


class ResolutionError(JarsmithError):
    """A required input is missing on disk when a stage needs it."""


class BuildFailure(JarsmithError):
    """A subproject build failed, or was skipped because a prerequisite failed."""

    def __init__(self, message: str, *, subproject: str, skipped: bool = False) -> None:
        super().__init__(message, stage="build", subproject=subproject)
        self.skipped = skipped


class TestFailure(JarsmithError):
    __test__ = False

    def __init__(self, outcome: "TestOutcome") -> None:
        super().__init__(
            f"Test suite '{outcome.suite}' failed with exit code {outcome.returncode}",
            stage="test",
            subproject=outcome.subproject,
        )
        self.outcome = outcome


__all__ = [
    "BuildFailure",
    "ConfigurationError",
    "GraphCycleError",
    "JarsmithError",
    "ResolutionError",
    "TestFailure",
]
