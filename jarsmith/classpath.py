"""Runtime classpath resolution for one subproject."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from .config_loader import LogicalDependency
from .core.console import Console, quiet_console
from .errors import ConfigurationError
from .graph import DependencyGraph
from .platforms import Artifact, ArtifactRole, VariantResolver


@dataclass(frozen=True, slots=True)
class RuntimeClasspath:
    """Ordered artifacts needed to run code of one subproject.

    Upstream subproject archives come first in build order, then each
    dependency's runtime library followed by its native archives.
    """

    subproject: str
    entries: tuple[Artifact, ...]

    def paths(self) -> List[Path]:
        return [artifact.path for artifact in self.entries]

    def names(self) -> List[str]:
        return [artifact.name for artifact in self.entries]

    def subproject_archives(self) -> List[Path]:
        return [artifact.path for artifact in self.entries if artifact.role is ArtifactRole.PRIMARY_OUTPUT]

    def dependency_archives(self) -> List[Path]:
        return [artifact.path for artifact in self.entries if artifact.role is not ArtifactRole.PRIMARY_OUTPUT]

    def natives(self) -> List[Artifact]:
        return [artifact for artifact in self.entries if artifact.is_native]


class ClasspathResolver:
    def __init__(
        self,
        graph: DependencyGraph,
        dependencies: Mapping[str, LogicalDependency],
        resolver: VariantResolver,
        platforms: Sequence[str],
        *,
        console: Console | None = None,
    ) -> None:
        self._graph = graph
        self._dependencies = dependencies
        self._resolver = resolver
        self._platforms = tuple(platforms)
        self._console = console or quiet_console()
        for platform_id in self._platforms:
            resolver.platform(platform_id)

    @property
    def platforms(self) -> tuple[str, ...]:
        return self._platforms

    def dependency_keys(self, name: str) -> List[str]:
        """Logical dependencies of ``name`` then of its prerequisites, first occurrence wins."""

        keys: List[str] = []
        for subproject in (self._graph.get(name), *reversed(self._graph.prerequisite_chain(name))):
            for key in subproject.dependencies:
                if key not in keys:
                    keys.append(key)
        return keys

    def for_subproject(self, name: str, *, verify: bool = True) -> RuntimeClasspath:
        entries: List[Artifact] = [
            Artifact.at(upstream.archive, ArtifactRole.PRIMARY_OUTPUT) for upstream in self._graph.prerequisite_chain(name)
        ]

        for key in self.dependency_keys(name):
            dependency = self._dependencies.get(key)
            if dependency is None:
                raise ConfigurationError(f"Dependency '{key}' is not declared", stage="resolve", subproject=name)
            artifacts = [self._resolver.runtime_library(dependency), *self._resolver.resolve_all(dependency, self._platforms)]
            if verify and not self._verify(dependency, artifacts, subproject=name):
                continue
            entries.extend(artifacts)

        seen: Dict[Path, Artifact] = {}
        for artifact in entries:
            seen.setdefault(artifact.path, artifact)
        return RuntimeClasspath(subproject=name, entries=tuple(seen.values()))

    def _verify(self, dependency: LogicalDependency, artifacts: Sequence[Artifact], *, subproject: str) -> bool:
        missing = [artifact.path for artifact in artifacts if not artifact.path.is_file()]
        if not missing:
            return True
        if dependency.optional:
            self._console.info(f"Optional dependency '{dependency.key}' is not available; leaving it off the classpath")
            return False
        raise ConfigurationError(
            f"Missing artifact(s) for dependency '{dependency.key}': {', '.join(str(path) for path in missing)}",
            stage="resolve",
            subproject=subproject,
        )


__all__ = ["ClasspathResolver", "RuntimeClasspath"]
