"""Collect the primary archive and its whole runtime classpath into one archive."""
from __future__ import annotations

from pathlib import Path
from typing import Sequence
import shutil

from .core.archive import ArchiveArtifact, ArchiveManager
from .core.console import Console
from .core.paths import path_lock, staged_file
from .errors import ConfigurationError, ResolutionError
from .platforms import Artifact


class JarCollector:
    """Fast distribution packaging: no shrinking, no signing.

    Every runtime classpath file is copied into ``libs_dir`` next to the
    primary archive, replacing same-named copies, and the directory is then
    packed into ``target``.
    """

    def __init__(self, archives: ArchiveManager, console: Console) -> None:
        self._archives = archives
        self._console = console

    def collect(self, primary_archive: Path, classpath: Sequence[Artifact], libs_dir: Path, target: Path) -> Path:
        if not primary_archive.is_file() and not self._console.dry_run:
            raise ResolutionError(f"Primary archive '{primary_archive}' does not exist", stage="collect")

        sources = [primary_archive, *(artifact.path for artifact in classpath)]
        for source in sources:
            destination = libs_dir / source.name
            if self._console.dry_run:
                self._console.dry(f"Would copy {source} to {libs_dir}")
                continue
            if not source.is_file():
                self._console.info(f"Skipping missing runtime file {source}")
                continue
            if destination.exists() and destination.resolve() == source.resolve():
                continue
            with path_lock(destination), staged_file(destination) as staging:
                shutil.copyfile(source, staging)
            self._console.debug(f"Copied {source.name} into {libs_dir}")

        if self._console.dry_run:
            self._console.dry(f"Would pack {libs_dir} into {target}")
            return target
        try:
            return self._archives.create_archive(artifact=ArchiveArtifact(libs_dir, label="runtime jars"), target_path=target)
        except ValueError as exc:
            raise ConfigurationError(str(exc), stage="collect") from exc


__all__ = ["JarCollector"]
