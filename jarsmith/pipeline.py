"""Wiring of the pipeline stages behind each command."""
from __future__ import annotations

from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from .assembler import ArchiveAssembler, AssemblyResult
from .classpath import ClasspathResolver, RuntimeClasspath
from .collect import JarCollector
from .config_loader import ConfigurationStore, EntryPoint, Subproject
from .core.archive import ArchiveManager
from .core.command_runner import CommandResult, CommandRunner
from .core.console import Console
from .entry_points import EntryPointSelector
from .errors import ConfigurationError, ResolutionError
from .graph import DependencyGraph, GraphReport
from .launcher import ToolLauncher
from .natives import NativePlacement
from .platforms import VariantResolver
from .testing import TestGate, TestOutcome, ci_signal


class SubprojectBuildStep:
    """Compile one subproject through its external command, then package its archive."""

    def __init__(
        self,
        *,
        root: Path,
        runner: CommandRunner,
        assembler: ArchiveAssembler,
        console: Console,
    ) -> None:
        self._root = root
        self._runner = runner
        self._assembler = assembler
        self._console = console
        self.classpaths: ClasspathResolver | None = None

    def __call__(self, subproject: Subproject) -> None:
        if subproject.compile_command:
            self._runner.run(
                subproject.compile_command,
                cwd=subproject.compile_cwd or self._root,
                note=f"compile {subproject.name}",
                stream=True,
            )

        if self._console.dry_run:
            self._console.dry(f"Would package {subproject.classes_dir} into {subproject.archive}")
            return

        if not subproject.classes_dir.is_dir():
            raise ResolutionError(
                f"Compiled output '{subproject.classes_dir}' does not exist",
                stage="package",
                subproject=subproject.name,
            )

        class_path: List[str] = []
        if subproject.main_class and self.classpaths is not None:
            class_path = self.classpaths.for_subproject(subproject.name).names()
        self._assembler.package_library(subproject, class_path=class_path)


class Pipeline:
    def __init__(
        self,
        store: ConfigurationStore,
        *,
        runner: CommandRunner,
        console: Console,
        platforms: Sequence[str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.store = store
        self.console = console
        settings = store.global_config

        self.assembler = ArchiveAssembler(console)
        self.placement = NativePlacement(console)
        self.resolver = VariantResolver(settings.library_dir, store.platforms)
        self.build_step = SubprojectBuildStep(root=store.root, runner=runner, assembler=self.assembler, console=console)
        self.graph = DependencyGraph(store.subprojects.values(), self.build_step, console=console)
        self.classpaths = ClasspathResolver(
            self.graph,
            store.dependencies,
            self.resolver,
            platforms or settings.platforms,
            console=console,
        )
        self.build_step.classpaths = self.classpaths
        self.selector = EntryPointSelector(self.graph, self.classpaths, self.assembler, console=console)
        self.gate = TestGate(runner, ci=ci_signal(environ, settings.ci_env), console=console)
        self.launcher = ToolLauncher(runner, java=settings.java, console=console)
        self.collector = JarCollector(ArchiveManager(console), console)

    @property
    def libs_dir(self) -> Path:
        return self.store.global_config.libs_dir

    def classpath(self, subproject: str) -> RuntimeClasspath:
        return self.classpaths.for_subproject(subproject, verify=not self.console.dry_run)

    def build_primary(self) -> Path:
        """Thin application archive with natives placed beside their libraries."""

        primary = self.store.primary()
        if primary.main_class is None:
            raise ConfigurationError("The primary subproject has no main_class", stage="jar", subproject=primary.name)
        self.graph.ensure_built(primary.name)
        classpath = self.classpath(primary.name)
        if not self.console.dry_run:
            self.placement.place_for_classpath(classpath.entries)
        return primary.archive

    def build_all(self, jobs: int = 1) -> GraphReport:
        return self.graph.build_all(max_workers=jobs)

    def entry_points(self, names: Sequence[str] | None = None) -> Dict[str, List[EntryPoint]]:
        grouped: Dict[str, List[EntryPoint]] = OrderedDict()
        if not names:
            for subproject in self.store.subprojects.values():
                if subproject.entry_points:
                    grouped[subproject.name] = list(subproject.entry_points)
            return grouped
        for name in names:
            subproject, entry = self.store.find_entry_point(name)
            grouped.setdefault(subproject.name, []).append(entry)
        return grouped

    def build_entry_points(self, names: Sequence[str] | None = None) -> List[AssemblyResult]:
        grouped = self.entry_points(names)
        if not grouped:
            raise ConfigurationError("No entry points are declared", stage="entry-points")
        if self.console.dry_run:
            for subproject, entries in grouped.items():
                self.graph.ensure_built(subproject)
                for entry in entries:
                    self.console.dry(f"Would assemble {entry.archive_name} ({entry.mode.value}) for {entry.main_class}")
            return []
        results: List[AssemblyResult] = []
        for subproject, entries in grouped.items():
            results.extend(self.selector.build(subproject, entries, self.libs_dir))
        return results

    def run_tool(self, name: str, arguments: str | None = None) -> CommandResult:
        subproject, entry = self.store.find_entry_point(name)
        self.graph.ensure_built(subproject.name)
        classpath = self.classpath(subproject.name)
        if not self.console.dry_run:
            self.placement.place_for_classpath(classpath.entries)
        return self.launcher.launch(entry, subproject.classes_dir, classpath.paths(), arguments, cwd=self.store.root)

    def run_tests(self, suite: str, subproject: str | None = None) -> TestOutcome:
        target = self.store.get_subproject(subproject) if subproject else self.store.primary()
        definition = target.tests.get(suite)
        if definition is None:
            raise ConfigurationError(f"Test suite '{suite}' is not configured", stage="test", subproject=target.name)
        self.graph.ensure_built(target.name)
        classpath = self.classpath(target.name)
        return self.gate.run(definition, subproject=target.name, main_classes=target.classes_dir, classpath=classpath.paths())

    def collect(self) -> Path:
        primary_archive = self.build_primary()
        primary = self.store.primary()
        target = self.store.global_config.build_dir / self.store.global_config.collect_archive
        return self.collector.collect(primary_archive, self.classpath(primary.name).entries, self.libs_dir, target)


__all__ = ["Pipeline", "SubprojectBuildStep"]
