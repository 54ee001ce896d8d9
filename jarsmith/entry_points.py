"""Produce one archive per entry point from a single shared build."""
from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

from .assembler import ArchiveAssembler, AssemblyResult
from .classpath import ClasspathResolver
from .config_loader import EntryPoint
from .core.console import Console, quiet_console
from .errors import ConfigurationError
from .graph import DependencyGraph


class EntryPointSelector:
    """Builds the shared upstream graph once, then varies only manifest and name."""

    def __init__(
        self,
        graph: DependencyGraph,
        classpaths: ClasspathResolver,
        assembler: ArchiveAssembler,
        *,
        console: Console | None = None,
    ) -> None:
        self._graph = graph
        self._classpaths = classpaths
        self._assembler = assembler
        self._console = console or quiet_console()

    def build(self, subproject_name: str, entry_points: Sequence[EntryPoint], destination: Path) -> List[AssemblyResult]:
        self._check_distinct(subproject_name, entry_points)
        self._check_outputs(subproject_name, entry_points, destination)

        subproject = self._graph.ensure_built(subproject_name)
        classpath = self._classpaths.for_subproject(subproject_name)
        upstream = classpath.subproject_archives()
        dependencies = classpath.dependency_archives()
        names = classpath.names()

        results: List[AssemblyResult] = []
        for entry_point in entry_points:
            self._console.info(f"Assembling '{entry_point.name}' ({entry_point.main_class})")
            results.append(
                self._assembler.assemble(
                    entry_point,
                    subproject.classes_dir,
                    upstream,
                    dependencies,
                    destination,
                    class_path=names,
                )
            )
        return results

    def _check_outputs(self, subproject_name: str, entry_points: Sequence[EntryPoint], destination: Path) -> None:
        archives = {subproject.archive.resolve(): name for name, subproject in self._graph.subprojects.items()}
        for entry_point in entry_points:
            target = (destination / entry_point.archive_name).resolve()
            owner = archives.get(target)
            if owner is not None:
                raise ConfigurationError(
                    f"Entry point '{entry_point.name}' would overwrite the archive of subproject '{owner}' ({target})",
                    stage="entry-points",
                    subproject=subproject_name,
                )

    @staticmethod
    def _check_distinct(subproject_name: str, entry_points: Sequence[EntryPoint]) -> None:
        names = [entry.name for entry in entry_points]
        archives = [entry.archive_name for entry in entry_points]
        if len(set(names)) != len(names):
            raise ConfigurationError("Entry points requested twice", stage="entry-points", subproject=subproject_name)
        if len(set(archives)) != len(archives):
            raise ConfigurationError(
                "Two entry points would write the same archive name", stage="entry-points", subproject=subproject_name
            )


__all__ = ["EntryPointSelector"]
