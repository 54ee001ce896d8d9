"""Selection of platform-specific native variants for logical dependencies."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Mapping

from .config_loader import KNOWN_PLATFORMS, LogicalDependency, NativesMode, PlatformTarget
from .errors import ConfigurationError


class ArtifactRole(str, Enum):
    PRIMARY_OUTPUT = "primary-output"
    NATIVE_BINARY = "native-binary"
    RUNTIME_LIBRARY = "runtime-library"


@dataclass(frozen=True, slots=True)
class Artifact:
    name: str
    path: Path
    role: ArtifactRole

    @classmethod
    def at(cls, path: Path, role: ArtifactRole) -> "Artifact":
        return cls(name=path.name, path=path, role=role)

    @property
    def is_native(self) -> bool:
        return self.role is ArtifactRole.NATIVE_BINARY


class VariantResolver:
    """Maps a logical dependency and a platform target to concrete archives.

    Resolution only computes names and locations; it never touches the
    filesystem, so the same inputs always give the same artifacts.
    """

    def __init__(self, library_dir: Path, platforms: Mapping[str, PlatformTarget] | None = None) -> None:
        self._library_dir = library_dir
        self._platforms: Dict[str, PlatformTarget] = dict(platforms if platforms is not None else KNOWN_PLATFORMS)

    def platform(self, platform_id: str) -> PlatformTarget:
        target = self._platforms.get(platform_id)
        if target is None:
            available = ", ".join(sorted(self._platforms))
            raise ConfigurationError(
                f"Unknown platform target '{platform_id}'. Known targets: {available}",
                stage="resolve",
            )
        return target

    def runtime_library(self, dependency: LogicalDependency) -> Artifact:
        path = dependency.path or self._library_dir / f"{dependency.base_name}.jar"
        return Artifact.at(path, ArtifactRole.RUNTIME_LIBRARY)

    def resolve(self, dependency: LogicalDependency, platform_id: str) -> frozenset[Artifact]:
        target = self.platform(platform_id)

        if dependency.natives is NativesMode.NONE:
            return frozenset()

        if dependency.natives is NativesMode.UNIVERSAL:
            return frozenset({self._native(dependency, dependency.universal_classifier or "natives-universal")})

        if dependency.platforms and target.id not in dependency.platforms:
            shipped = ", ".join(dependency.platforms)
            raise ConfigurationError(
                f"Dependency '{dependency.key}' ships no natives for '{target.id}' (available: {shipped})",
                stage="resolve",
            )
        return frozenset({self._native(dependency, target.classifier)})

    def resolve_all(self, dependency: LogicalDependency, platform_ids: Iterable[str]) -> tuple[Artifact, ...]:
        """Union of :meth:`resolve` over several targets, in first-seen order."""

        seen: Dict[Path, Artifact] = {}
        for platform_id in platform_ids:
            for artifact in sorted(self.resolve(dependency, platform_id), key=lambda item: item.name):
                seen.setdefault(artifact.path, artifact)
        return tuple(seen.values())

    def _native(self, dependency: LogicalDependency, classifier: str) -> Artifact:
        directory = dependency.natives_dir or self.runtime_library(dependency).path.parent
        return Artifact.at(directory / f"{dependency.base_name}-{classifier}.jar", ArtifactRole.NATIVE_BINARY)


__all__ = ["Artifact", "ArtifactRole", "VariantResolver"]
