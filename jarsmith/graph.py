"""Subproject dependency graph: ordering, cycle detection and build scheduling."""
from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping
import threading

from .config_loader import Subproject
from .core.command_runner import CommandError
from .core.console import Console, quiet_console
from .errors import BuildFailure, ConfigurationError, GraphCycleError, JarsmithError


SubprojectBuilder = Callable[[Subproject], None]


class BuildStatus(str, Enum):
    BUILT = "built"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(slots=True)
class _NodeState:
    done: threading.Event = field(default_factory=threading.Event)
    status: BuildStatus | None = None
    error: BuildFailure | None = None


@dataclass(slots=True)
class GraphReport:
    statuses: Dict[str, BuildStatus]
    errors: Dict[str, BuildFailure]

    @property
    def succeeded(self) -> bool:
        return all(status is BuildStatus.BUILT for status in self.statuses.values())

    def names_with(self, status: BuildStatus) -> List[str]:
        return [name for name, value in self.statuses.items() if value is status]


class DependencyGraph:
    """Explicit DAG of subprojects with a deterministic topological order.

    ``builder`` performs the actual build of one subproject. The graph makes
    sure it runs at most once per subproject for the lifetime of the graph,
    only after every prerequisite has been built, and never for subprojects
    downstream of a failure.
    """

    def __init__(
        self,
        subprojects: Iterable[Subproject],
        builder: SubprojectBuilder,
        *,
        console: Console | None = None,
    ) -> None:
        self._nodes: Dict[str, Subproject] = {}
        for subproject in subprojects:
            if subproject.name in self._nodes:
                raise ConfigurationError(f"Subproject '{subproject.name}' declared twice", stage="graph")
            self._nodes[subproject.name] = subproject
        self._builder = builder
        self._console = console or quiet_console()
        self._lock = threading.Lock()
        self._states: Dict[str, _NodeState] = {}
        self._build_counts: Dict[str, int] = {name: 0 for name in self._nodes}
        self._validate()

    def _validate(self) -> None:
        outputs: Dict[Path, str] = {}
        for subproject in self._nodes.values():
            for prerequisite in subproject.prerequisites:
                if prerequisite not in self._nodes:
                    raise ConfigurationError(
                        f"Prerequisite '{prerequisite}' of '{subproject.name}' is not a known subproject",
                        stage="graph",
                        subproject=subproject.name,
                    )
            archive = subproject.archive.resolve()
            other = outputs.get(archive)
            if other is not None:
                raise ConfigurationError(
                    f"Subprojects '{other}' and '{subproject.name}' both write {archive}",
                    stage="graph",
                    subproject=subproject.name,
                )
            outputs[archive] = subproject.name

    @property
    def subprojects(self) -> Mapping[str, Subproject]:
        return self._nodes

    def get(self, name: str) -> Subproject:
        if name not in self._nodes:
            available = ", ".join(sorted(self._nodes)) or "<none>"
            raise ConfigurationError(f"Subproject '{name}' not found. Available subprojects: {available}", stage="graph")
        return self._nodes[name]

    def _topological(self, roots: Iterable[str]) -> List[str]:
        visiting: List[str] = []
        visited: set[str] = set()
        order: List[str] = []

        def visit(name: str) -> None:
            if name in visiting:
                start = visiting.index(name)
                raise GraphCycleError([*visiting[start:], name])
            if name in visited:
                return
            visiting.append(name)
            for prerequisite in self.get(name).prerequisites:
                visit(prerequisite)
            visiting.pop()
            visited.add(name)
            order.append(name)

        for root in roots:
            visit(root)
        return order

    def build_order(self) -> tuple[Subproject, ...]:
        return tuple(self._nodes[name] for name in self._topological(self._nodes))

    def prerequisite_chain(self, name: str) -> tuple[Subproject, ...]:
        """Transitive prerequisites of ``name`` in build order, excluding ``name``."""

        order = self._topological([name])
        return tuple(self._nodes[item] for item in order[:-1])

    def status(self, name: str) -> BuildStatus | None:
        state = self._states.get(self.get(name).name)
        return state.status if state is not None and state.done.is_set() else None

    def build_count(self, name: str) -> int:
        return self._build_counts[self.get(name).name]

    def report(self) -> GraphReport:
        statuses: Dict[str, BuildStatus] = {}
        errors: Dict[str, BuildFailure] = {}
        for name in self._nodes:
            state = self._states.get(name)
            if state is None or state.status is None:
                continue
            statuses[name] = state.status
            if state.error is not None:
                errors[name] = state.error
        return GraphReport(statuses=statuses, errors=errors)

    def ensure_built(self, name: str) -> Subproject:
        """Build ``name`` and its prerequisite chain unless already built in this run.

        Every node of the chain is attempted so that unrelated prerequisites
        still build when a sibling fails; nodes downstream of a failure are
        recorded as skipped.
        """

        target = self.get(name)
        for subproject in (*self.prerequisite_chain(name), target):
            try:
                self._build_one(subproject.name)
            except BuildFailure:
                continue

        state = self._states[target.name]
        if state.status is not BuildStatus.BUILT:
            assert state.error is not None
            raise state.error
        return target

    def build_all(self, max_workers: int = 1) -> GraphReport:
        """Build every subproject, running independent ones concurrently."""

        order = self.build_order()
        if max_workers <= 1:
            for subproject in order:
                try:
                    self._build_one(subproject.name)
                except BuildFailure:
                    continue
            return self.report()

        pending = [subproject.name for subproject in order]
        running: Dict[Future[None], str] = {}
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="jarsmith-build") as pool:
            while pending or running:
                for name in list(pending):
                    statuses = [self.status(item) for item in self._nodes[name].prerequisites]
                    if any(status in (BuildStatus.FAILED, BuildStatus.SKIPPED) for status in statuses) or all(
                        status is BuildStatus.BUILT for status in statuses
                    ):
                        pending.remove(name)
                        running[pool.submit(self._build_one, name)] = name
                if not running:
                    break
                finished, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in finished:
                    name = running.pop(future)
                    error = future.exception()
                    if error is not None and not isinstance(error, BuildFailure):
                        raise error
        return self.report()

    def _build_one(self, name: str) -> None:
        with self._lock:
            state = self._states.get(name)
            owner = state is None
            if owner:
                state = _NodeState()
                self._states[name] = state
        assert state is not None

        if not owner:
            state.done.wait()
            if state.status is BuildStatus.BUILT:
                return
            assert state.error is not None
            raise state.error

        subproject = self._nodes[name]
        try:
            blocked = [item for item in subproject.prerequisites if self.status(item) is not BuildStatus.BUILT]
            if blocked:
                state.status = BuildStatus.SKIPPED
                state.error = BuildFailure(
                    f"Skipped because prerequisite(s) did not build: {', '.join(blocked)}",
                    subproject=name,
                    skipped=True,
                )
                self._console.error(state.error.describe())
                raise state.error

            self._console.info(f"Building subproject '{name}'")
            with self._lock:
                self._build_counts[name] += 1
            try:
                self._builder(subproject)
            except (JarsmithError, CommandError, OSError) as exc:
                state.status = BuildStatus.FAILED
                state.error = BuildFailure(str(exc), subproject=name)
                self._console.error(state.error.describe())
                raise state.error from exc
            state.status = BuildStatus.BUILT
        except BaseException:
            if state.status is None:
                state.status = BuildStatus.FAILED
                state.error = BuildFailure("Build aborted unexpectedly", subproject=name)
            raise
        finally:
            state.done.set()


__all__ = [
    "BuildStatus",
    "DependencyGraph",
    "GraphReport",
    "SubprojectBuilder",
]
