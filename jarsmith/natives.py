"""Copy native-binary archives next to the managed archive that loads them.

The consuming runtime locates its native libraries only relative to its own
jar and ignores library-path or classpath configuration, so physical
co-location is the one discovery mechanism that works.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Sequence
import filecmp
import re
import shutil

from .core.console import Console, quiet_console
from .core.paths import path_lock, staged_file
from .errors import ConfigurationError
from .platforms import Artifact

_NATIVE_QUALIFIER = re.compile(r"^(?P<base>.+?)-natives-[^/]+$")


def primary_base_name(native_name: str) -> str | None:
    """Base name of the primary archive a native archive belongs to.

    ``gluegen-rt-2.5.0-natives-linux-amd64.jar`` -> ``gluegen-rt-2.5.0``
    """

    stem = native_name[:-4] if native_name.endswith(".jar") else native_name
    match = _NATIVE_QUALIFIER.match(stem)
    return match.group("base") if match else None


class NativePlacement:
    def __init__(self, console: Console | None = None) -> None:
        self._console = console or quiet_console()

    def place(self, artifacts: Iterable[Artifact], destination: Path) -> List[Path]:
        """Copy every native artifact into ``destination``; non-native ones are ignored."""

        placed: List[Path] = []
        for artifact in artifacts:
            if not artifact.is_native:
                continue
            placed.append(self._copy(artifact, destination))
        return placed

    def place_for_classpath(self, classpath: Sequence[Artifact]) -> List[Path]:
        """Place each native next to the classpath entry it pairs with."""

        primaries: Dict[str, Artifact] = {}
        for artifact in classpath:
            if not artifact.is_native:
                primaries.setdefault(Path(artifact.name).stem, artifact)

        placed: List[Path] = []
        for artifact in classpath:
            if not artifact.is_native:
                continue
            base = primary_base_name(artifact.name)
            primary = primaries.get(base) if base else None
            if primary is None:
                raise ConfigurationError(
                    f"Native archive '{artifact.name}' has no matching primary archive on the runtime classpath",
                    stage="natives",
                )
            placed.append(self._copy(artifact, primary.path.parent))
        return placed

    def _copy(self, artifact: Artifact, destination: Path) -> Path:
        source = artifact.path
        if not source.is_file():
            raise ConfigurationError(f"Native archive '{source}' does not exist", stage="natives")

        target = destination / artifact.name
        with path_lock(target):
            if target.exists() and target.resolve() == source.resolve():
                self._console.debug(f"{artifact.name} already resides in {destination}")
                return target
            if target.is_file() and filecmp.cmp(source, target, shallow=False):
                self._console.debug(f"{artifact.name} in {destination} is up to date")
                return target

            with staged_file(target) as staging:
                shutil.copyfile(source, staging)
                shutil.copystat(source, staging)
        self._console.info(f"Placed {artifact.name} in {destination}")
        return target


__all__ = ["NativePlacement", "primary_base_name"]
