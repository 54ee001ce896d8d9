"""Configuration loading and validation logic."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .core.config_loader import (
    collect_config_files,
    load_config_file,
    merge_mappings,
    normalize_string_list,
    resolve_config_paths,
)
from .errors import ConfigurationError

_LOG_LEVELS = ("none", "error", "info", "debug")


class PackagingMode(str, Enum):
    THIN = "thin"
    FAT = "fat"


class NativesMode(str, Enum):
    NONE = "none"
    PER_PLATFORM = "per-platform"
    UNIVERSAL = "universal"


@dataclass(frozen=True, slots=True)
class PlatformTarget:
    id: str
    os: str
    arch: str
    classifier: str

    @classmethod
    def from_mapping(cls, platform_id: str, data: Mapping[str, Any]) -> "PlatformTarget":
        os_name = data.get("os")
        arch = data.get("arch")
        if not os_name or not arch:
            raise ValueError(f"platforms.{platform_id} requires 'os' and 'arch'")
        classifier = data.get("classifier") or f"natives-{os_name}-{arch}"
        return cls(id=platform_id, os=str(os_name), arch=str(arch), classifier=str(classifier))


KNOWN_PLATFORMS: Dict[str, PlatformTarget] = {
    "linux-amd64": PlatformTarget("linux-amd64", "linux", "amd64", "natives-linux-amd64"),
    "windows-amd64": PlatformTarget("windows-amd64", "windows", "amd64", "natives-windows-amd64"),
    "macos-universal": PlatformTarget("macos-universal", "macos", "universal", "natives-macosx-universal"),
}


def _resolve_path(root: Path, value: Any) -> Path:
    path = Path(str(value)).expanduser()
    return path if path.is_absolute() else (root / path)


@dataclass(slots=True)
class GlobalConfig:
    platforms: List[str] = field(default_factory=lambda: list(KNOWN_PLATFORMS))
    ci_env: str = "CI"
    log_level: str = "info"
    build_dir: Path = Path("build")
    library_dir: Path = Path("libs")
    java: str = "java"
    primary: str | None = None
    collect_archive: str = "jars.zip"

    @property
    def libs_dir(self) -> Path:
        return self.build_dir / "libs"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, root: Path) -> "GlobalConfig":
        section = data.get("global", {})
        if not isinstance(section, Mapping):
            raise TypeError("[global] must be a table")
        platforms = normalize_string_list(section.get("platforms"), field_name="global.platforms")
        primary = section.get("primary")
        log_level = str(section.get("log_level", "info")).lower()
        if log_level not in _LOG_LEVELS:
            raise ValueError(f"global.log_level must be one of: {', '.join(_LOG_LEVELS)}")
        return cls(
            platforms=platforms or list(KNOWN_PLATFORMS),
            ci_env=str(section.get("ci_env", "CI")),
            log_level=log_level,
            build_dir=_resolve_path(root, section.get("build_dir", "build")),
            library_dir=_resolve_path(root, section.get("library_dir", "libs")),
            java=str(section.get("java", "java")),
            primary=str(primary) if primary else None,
            collect_archive=str(section.get("collect_archive", "jars.zip")),
        )


@dataclass(frozen=True, slots=True)
class LogicalDependency:
    key: str
    name: str
    version: str
    natives: NativesMode = NativesMode.NONE
    platforms: tuple[str, ...] = ()
    universal_classifier: str | None = None
    path: Path | None = None
    natives_dir: Path | None = None
    optional: bool = False

    @property
    def base_name(self) -> str:
        return f"{self.name}-{self.version}"

    @classmethod
    def from_mapping(cls, key: str, data: Mapping[str, Any], *, root: Path) -> "LogicalDependency":
        name = data.get("name") or key
        version = data.get("version")
        if not version:
            raise ValueError(f"dependencies.{key}.version is required")
        try:
            natives = NativesMode(str(data.get("natives", "none")).lower())
        except ValueError:
            supported = ", ".join(mode.value for mode in NativesMode)
            raise ValueError(f"dependencies.{key}.natives must be one of: {supported}") from None
        universal_classifier = data.get("universal_classifier")
        if natives is NativesMode.UNIVERSAL and not universal_classifier:
            universal_classifier = "natives-universal"
        path = data.get("path")
        natives_dir = data.get("natives_dir")
        return cls(
            key=key,
            name=str(name),
            version=str(version),
            natives=natives,
            platforms=tuple(normalize_string_list(data.get("platforms"), field_name=f"dependencies.{key}.platforms")),
            universal_classifier=str(universal_classifier) if universal_classifier else None,
            path=_resolve_path(root, path) if path else None,
            natives_dir=_resolve_path(root, natives_dir) if natives_dir else None,
            optional=bool(data.get("optional", False)),
        )


@dataclass(frozen=True, slots=True)
class EntryPoint:
    name: str
    main_class: str
    archive_name: str
    mode: PackagingMode = PackagingMode.FAT
    include: tuple[tuple[Path, str], ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, root: Path) -> "EntryPoint":
        name = data.get("name")
        main_class = data.get("main_class")
        if not name or not main_class:
            raise ValueError("entry_points entries require 'name' and 'main_class'")
        archive_name = str(data.get("archive") or f"{name}.jar")
        try:
            mode = PackagingMode(str(data.get("mode", "fat")).lower())
        except ValueError:
            raise ValueError(f"entry point '{name}' has unknown mode '{data.get('mode')}'") from None

        include: List[tuple[Path, str]] = []
        for item in data.get("include", []) or []:
            if isinstance(item, str):
                source = _resolve_path(root, item)
                include.append((source, source.name))
            elif isinstance(item, Mapping) and item.get("source"):
                source = _resolve_path(root, item["source"])
                include.append((source, str(item.get("path") or source.name)))
            else:
                raise TypeError(f"entry point '{name}' include entries must be strings or tables with 'source'")
        return cls(
            name=str(name),
            main_class=str(main_class),
            archive_name=archive_name,
            mode=mode,
            include=tuple(include),
        )


@dataclass(frozen=True, slots=True)
class TestSuiteDefinition:
    __test__ = False

    name: str
    command: tuple[str, ...]
    classes_dir: Path | None = None
    classpath: tuple[Path, ...] = ()
    cwd: Path | None = None
    environment: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any], *, root: Path) -> "TestSuiteDefinition":
        command = normalize_string_list(data.get("command"), field_name=f"tests.{name}.command")
        if not command:
            raise ValueError(f"tests.{name}.command is required")
        classes_dir = data.get("classes_dir")
        cwd = data.get("cwd")
        environment = data.get("environment", {})
        if not isinstance(environment, Mapping):
            raise TypeError(f"tests.{name}.environment must be a table")
        return cls(
            name=name,
            command=tuple(command),
            classes_dir=_resolve_path(root, classes_dir) if classes_dir else None,
            classpath=tuple(
                _resolve_path(root, entry)
                for entry in normalize_string_list(data.get("classpath"), field_name=f"tests.{name}.classpath")
            ),
            cwd=_resolve_path(root, cwd) if cwd else None,
            environment=tuple((str(key), str(value)) for key, value in environment.items()),
        )


@dataclass(slots=True)
class Subproject:
    name: str
    classes_dir: Path
    archive: Path
    prerequisites: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    compile_command: List[str] = field(default_factory=list)
    compile_cwd: Path | None = None
    main_class: str | None = None
    entry_points: List[EntryPoint] = field(default_factory=list)
    tests: Dict[str, TestSuiteDefinition] = field(default_factory=dict)

    def entry_point(self, name: str) -> EntryPoint:
        for entry in self.entry_points:
            if entry.name == name:
                return entry
        available = ", ".join(entry.name for entry in self.entry_points) or "<none>"
        raise ConfigurationError(
            f"Entry point '{name}' not found. Available entry points: {available}",
            stage="entry-points",
            subproject=self.name,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, root: Path, libs_dir: Path) -> "Subproject":
        section = data.get("subproject")
        if not isinstance(section, Mapping):
            raise ValueError("[subproject] section is required in subproject configuration")
        name = section.get("name")
        classes_dir = section.get("classes_dir")
        if not name or not classes_dir:
            raise ValueError("subproject.name and subproject.classes_dir are required")
        archive = section.get("archive")
        archive_path = _resolve_path(root, archive) if archive else libs_dir / f"{name}.jar"
        compile_cwd = section.get("compile_cwd")
        main_class = section.get("main_class")

        entry_points_section = data.get("entry_points", [])
        if not isinstance(entry_points_section, Sequence) or isinstance(entry_points_section, (str, bytes)):
            raise TypeError("[[entry_points]] must be an array of tables")
        entry_points = [EntryPoint.from_mapping(item, root=root) for item in entry_points_section]

        tests_section = data.get("tests", {})
        if not isinstance(tests_section, Mapping):
            raise TypeError("[tests] must be a table of suites")
        tests = {
            str(suite): TestSuiteDefinition.from_mapping(str(suite), body, root=root)
            for suite, body in tests_section.items()
            if isinstance(body, Mapping)
        }

        return cls(
            name=str(name),
            classes_dir=_resolve_path(root, classes_dir),
            archive=archive_path,
            prerequisites=normalize_string_list(section.get("prerequisites"), field_name="subproject.prerequisites"),
            dependencies=normalize_string_list(section.get("dependencies"), field_name="subproject.dependencies"),
            compile_command=normalize_string_list(section.get("compile_command"), field_name="subproject.compile_command"),
            compile_cwd=_resolve_path(root, compile_cwd) if compile_cwd else None,
            main_class=str(main_class) if main_class else None,
            entry_points=entry_points,
            tests=tests,
        )


@dataclass(slots=True)
class ConfigurationStore:
    root: Path
    global_config: GlobalConfig
    platforms: Dict[str, PlatformTarget]
    dependencies: Dict[str, LogicalDependency]
    subprojects: Dict[str, Subproject]

    @classmethod
    def from_directory(cls, root: Path) -> "ConfigurationStore":
        return cls.from_directories(root, [root / "config"])

    @classmethod
    def from_directories(cls, root: Path, directories: Iterable[Path]) -> "ConfigurationStore":
        resolved, missing = resolve_config_paths(root, directories)
        if not resolved:
            missing_list = ", ".join(str(path) for path in missing) or "<none>"
            raise ConfigurationError(f"Configuration directory not found: {missing_list}", stage="config")

        merged: Dict[str, Any] = {}
        subproject_files: Dict[str, Path] = {}
        for directory in resolved:
            try:
                files = collect_config_files(directory)
                subprojects_dir = directory / "subprojects"
                if subprojects_dir.is_dir():
                    subproject_files.update(collect_config_files(subprojects_dir))
            except ValueError as exc:
                raise ConfigurationError(str(exc), stage="config") from exc
            for path in files.values():
                merged = merge_mappings(merged, cls._load(path))

        try:
            global_config = GlobalConfig.from_mapping(merged, root=root)
            platforms = dict(KNOWN_PLATFORMS)
            platforms_section = merged.get("platforms") or {}
            if not isinstance(platforms_section, Mapping):
                raise TypeError("[platforms] must be a table of platform targets")
            for platform_id, body in platforms_section.items():
                if not isinstance(body, Mapping):
                    raise TypeError(f"[platforms.{platform_id}] must be a table")
                platforms[str(platform_id)] = PlatformTarget.from_mapping(str(platform_id), body)
            dependencies = {
                str(key): LogicalDependency.from_mapping(str(key), body, root=root)
                for key, body in (merged.get("dependencies") or {}).items()
                if isinstance(body, Mapping)
            }
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc), stage="config") from exc

        subprojects: Dict[str, Subproject] = {}
        for _, path in sorted(subproject_files.items()):
            try:
                subproject = Subproject.from_mapping(cls._load(path), root=root, libs_dir=global_config.libs_dir)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"{path.name}: {exc}", stage="config") from exc
            if subproject.name in subprojects:
                raise ConfigurationError(f"Subproject '{subproject.name}' is defined twice", stage="config")
            subprojects[subproject.name] = subproject

        store = cls(
            root=root,
            global_config=global_config,
            platforms=platforms,
            dependencies=dependencies,
            subprojects=subprojects,
        )
        store.validate()
        return store

    @staticmethod
    def _load(path: Path) -> Mapping[str, Any]:
        try:
            return load_config_file(path)
        except (TypeError, ValueError, RuntimeError) as exc:
            raise ConfigurationError(f"Unable to load '{path}': {exc}", stage="config") from exc

    def validate(self) -> None:
        for platform_id in self.global_config.platforms:
            self.platform(platform_id)
        for dependency in self.dependencies.values():
            for platform_id in dependency.platforms:
                self.platform(platform_id)
        if self.global_config.primary and self.global_config.primary not in self.subprojects:
            raise ConfigurationError(f"Primary subproject '{self.global_config.primary}' is not defined", stage="config")
        for subproject in self.subprojects.values():
            for key in subproject.dependencies:
                if key not in self.dependencies:
                    raise ConfigurationError(
                        f"Dependency '{key}' referenced by subproject '{subproject.name}' was not found",
                        stage="config",
                        subproject=subproject.name,
                    )
            names = [entry.name for entry in subproject.entry_points]
            if len(names) != len(set(names)):
                raise ConfigurationError("Entry point names must be unique", stage="config", subproject=subproject.name)
        self._validate_entry_point_outputs()

    def _validate_entry_point_outputs(self) -> None:
        # Entry-point archives land in libs_dir, next to the subproject archives.
        owners: Dict[Path, str] = {
            subproject.archive.resolve(): f"subproject '{subproject.name}'" for subproject in self.subprojects.values()
        }
        for subproject in self.subprojects.values():
            for entry in subproject.entry_points:
                target = (self.global_config.libs_dir / entry.archive_name).resolve()
                owner = owners.get(target)
                if owner is not None:
                    raise ConfigurationError(
                        f"Entry point '{entry.name}' would write {target}, already written by {owner}",
                        stage="config",
                        subproject=subproject.name,
                    )
                owners[target] = f"entry point '{entry.name}'"

    def platform(self, platform_id: str) -> PlatformTarget:
        target = self.platforms.get(platform_id)
        if target is None:
            available = ", ".join(sorted(self.platforms))
            raise ConfigurationError(f"Unknown platform target '{platform_id}'. Known targets: {available}", stage="config")
        return target

    def get_subproject(self, name: str) -> Subproject:
        if name not in self.subprojects:
            available = ", ".join(sorted(self.subprojects)) or "<none>"
            raise ConfigurationError(f"Subproject '{name}' not found. Available subprojects: {available}", stage="config")
        return self.subprojects[name]

    def primary(self) -> Subproject:
        if self.global_config.primary:
            return self.get_subproject(self.global_config.primary)
        with_main = [sub for sub in self.subprojects.values() if sub.main_class]
        if len(with_main) == 1:
            return with_main[0]
        raise ConfigurationError("Set global.primary to choose the primary application subproject", stage="config")

    def find_entry_point(self, name: str) -> tuple[Subproject, EntryPoint]:
        for subproject in self.subprojects.values():
            for entry in subproject.entry_points:
                if entry.name == name:
                    return subproject, entry
        raise ConfigurationError(f"Entry point '{name}' is not declared by any subproject", stage="entry-points")


__all__ = [
    "ConfigurationStore",
    "EntryPoint",
    "GlobalConfig",
    "KNOWN_PLATFORMS",
    "LogicalDependency",
    "NativesMode",
    "PackagingMode",
    "PlatformTarget",
    "Subproject",
    "TestSuiteDefinition",
]
