"""Packing a directory into a single compressed distribution archive."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable
import gzip
import os
import shutil
import tarfile
import zipfile

import zstandard as zstd

from .paths import staged_file

_SUFFIX_FORMATS: list[tuple[str, str]] = [
    (".tar.zst", "zst"),
    (".tzst", "zst"),
    (".tar.gz", "gztar"),
    (".tgz", "gztar"),
    (".tar", "tar"),
    (".zip", "zip"),
]

_FORMAT_ALIASES: dict[str, str] = {
    "zst": "zst",
    "tar.zst": "zst",
    "tzst": "zst",
    "gztar": "gztar",
    "gz": "gztar",
    "tar.gz": "gztar",
    "tgz": "gztar",
    "tar": "tar",
    "zip": "zip",
}

# 1980-02-01, the earliest timestamp every zip reader accepts
_FIXED_ZIP_TIME = (1980, 2, 1, 0, 0, 0)


@runtime_checkable
class ArchiveConsole(Protocol):
    """Minimal console interface required by :class:`ArchiveManager`."""

    dry_run: bool

    def info(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

    def dry(self, message: str) -> None:
        ...


@dataclass(slots=True)
class ArchiveArtifact:
    """Description of filesystem content to package into an archive."""

    source_dir: Path
    label: str | None = None


class ArchiveManager:
    """Create compressed archives from directories."""

    def __init__(self, console: ArchiveConsole) -> None:
        self._console = console

    @staticmethod
    def _zstd_thread_count(source_size: int) -> int:
        cpu_count = os.cpu_count() or 1
        size_mb = max(1, source_size) / (1024 * 1024)
        if cpu_count <= 1 or size_mb < 32:
            return 1
        desired = 2 if size_mb < 256 else 4 if size_mb < 1024 else 8
        return max(1, min(desired, cpu_count))

    @classmethod
    def _zstd_compression_params(cls, source_size: int) -> zstd.ZstdCompressionParameters:
        size = max(1, source_size)
        window_log = max(10, min(27, (size - 1).bit_length()))
        return zstd.ZstdCompressionParameters(
            compression_level=19,
            threads=cls._zstd_thread_count(size),
            write_checksum=True,
            write_content_size=True,
            window_log=window_log,
        )

    def create_archive(
        self,
        *,
        artifact: ArchiveArtifact,
        target_path: Path | str,
        format_hint: str | None = None,
        overwrite: bool = True,
    ) -> Path:
        """Create an archive for *artifact* at *target_path*.

        Parameters
        ----------
        artifact:
            Data describing the directory to archive.
        target_path:
            Exact path (including filename) for the archive that should be created.
        format_hint:
            Optional explicit archive format such as ``"zst"`` or ``"zip"``. When
            omitted, the format is inferred from *target_path*'s suffix.
        overwrite:
            When ``False`` and the target already exists, a :class:`FileExistsError`
            is raised instead of replacing the file.

        The archive is first written next to *target_path* and renamed over it
        once complete, so a failed run never clobbers a previous archive.
        """

        target = Path(target_path).expanduser()
        source_dir = Path(artifact.source_dir).expanduser()

        if not source_dir.is_dir():
            raise FileNotFoundError(f"Archive source directory '{source_dir}' does not exist")

        archive_format = self.resolve_archive_format(target=target, format_hint=format_hint)

        if self._console.dry_run:
            label = artifact.label or source_dir.name
            self._console.dry(f"Would archive {label} to {target}")
            return target

        if target.exists() and not overwrite:
            raise FileExistsError(f"Archive target '{target}' already exists")

        with staged_file(target) as staging:
            self._make_archive(staging_path=staging, archive_format=archive_format, source_dir=source_dir)

        self._console.info(f"Packed {artifact.label or source_dir.name} into {target}")
        return target

    def resolve_archive_format(self, *, target: Path, format_hint: str | None) -> str:
        if format_hint:
            normalized = format_hint.strip().lower()
            if normalized in _FORMAT_ALIASES:
                return _FORMAT_ALIASES[normalized]
            raise ValueError(f"Unsupported archive format hint '{format_hint}'")

        filename = target.name.lower()
        for suffix, fmt in sorted(_SUFFIX_FORMATS, key=lambda item: len(item[0]), reverse=True):
            if filename.endswith(suffix):
                return fmt

        raise ValueError(
            "Unable to determine archive format from target path. "
            "Provide an explicit format_hint or use a supported suffix."
        )

    def _make_archive(self, *, staging_path: Path, archive_format: str, source_dir: Path) -> None:
        if archive_format == "zip":
            self._make_zip_archive(staging_path=staging_path, source_dir=source_dir)
            return

        if archive_format == "tar":
            self._write_tar(staging_path, source_dir)
            return

        temp_tar = staging_path.with_name(staging_path.name + ".tar")
        try:
            self._write_tar(temp_tar, source_dir)
            with temp_tar.open("rb") as src, staging_path.open("wb") as dst:
                if archive_format == "zst":
                    params = self._zstd_compression_params(temp_tar.stat().st_size)
                    zstd.ZstdCompressor(compression_params=params).copy_stream(src, dst)
                elif archive_format == "gztar":
                    with gzip.GzipFile(fileobj=dst, mode="wb", compresslevel=9, mtime=0) as gz:
                        shutil.copyfileobj(src, gz)
                else:
                    raise RuntimeError(f"Unsupported archive format '{archive_format}'")
        finally:
            temp_tar.unlink(missing_ok=True)

    @staticmethod
    def _iter_files(source_dir: Path):
        for dirpath, dirnames, filenames in os.walk(source_dir, topdown=True):
            dirnames.sort()
            for filename in sorted(filenames):
                file_path = Path(dirpath) / filename
                yield file_path, file_path.relative_to(source_dir).as_posix()

    def _make_zip_archive(self, *, staging_path: Path, source_dir: Path) -> None:
        with zipfile.ZipFile(
            staging_path,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=9,
            allowZip64=True,
        ) as archive:
            for file_path, arcname in self._iter_files(source_dir):
                info = zipfile.ZipInfo(arcname, date_time=_FIXED_ZIP_TIME)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = (file_path.stat().st_mode & 0o777) << 16
                with file_path.open("rb") as src, archive.open(info, "w") as dst:
                    shutil.copyfileobj(src, dst)

    def _write_tar(self, path: Path, source_dir: Path) -> None:
        with tarfile.open(path, mode="w", format=tarfile.PAX_FORMAT) as tar:
            for file_path, arcname in self._iter_files(source_dir):
                tar.add(file_path, arcname=arcname, recursive=False)


__all__ = [
    "ArchiveArtifact",
    "ArchiveConsole",
    "ArchiveManager",
]
