"""Merge compiled output and dependency archives into runnable jar archives."""
from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Iterator, List, Sequence
import io
import os
import re
import shutil
import zipfile

from .config_loader import EntryPoint, PackagingMode, Subproject
from .core.console import Console, quiet_console
from .core.paths import staged_file
from .errors import ResolutionError

MANIFEST_PATH = "META-INF/MANIFEST.MF"

# META-INF/*.RSA, META-INF/*.SF, META-INF/*.DSA; '*' never crosses '/'
SIGNATURE_PATTERN = re.compile(r"^META-INF/[^/]*\.(?:RSA|SF|DSA)$")

_MANIFEST_LINE_BYTES = 72
_FIXED_ZIP_TIME = (1980, 2, 1, 0, 0, 0)


def is_signature_entry(path: str) -> bool:
    return SIGNATURE_PATTERN.match(path) is not None


def _wrap_manifest_line(line: str) -> List[bytes]:
    chunks: List[bytes] = []
    current = b""
    limit = _MANIFEST_LINE_BYTES
    for char in line:
        encoded = char.encode("utf-8")
        if len(current) + len(encoded) > limit:
            chunks.append(current)
            current = b" "
            limit = _MANIFEST_LINE_BYTES
        current += encoded
    chunks.append(current)
    return chunks


@dataclass(frozen=True, slots=True)
class Manifest:
    main_class: str | None = None
    class_path: tuple[str, ...] = ()

    def render(self) -> bytes:
        attributes = [("Manifest-Version", "1.0")]
        if self.main_class:
            attributes.append(("Main-Class", self.main_class))
        if self.class_path:
            attributes.append(("Class-Path", " ".join(self.class_path)))
        lines: List[bytes] = []
        for key, value in attributes:
            lines.extend(_wrap_manifest_line(f"{key}: {value}"))
        return b"\r\n".join(lines) + b"\r\n\r\n"


@dataclass(frozen=True, slots=True)
class DuplicateEntry:
    path: str
    kept_from: str
    dropped_from: str


@dataclass(slots=True)
class AssemblyResult:
    archive: Path
    mode: PackagingMode | None
    entry_point: EntryPoint | None = None
    entries: List[str] = field(default_factory=list)
    duplicates: List[DuplicateEntry] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    skipped_inputs: List[Path] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class _Source:
    path: Path
    required: bool
    filtered: bool
    archive_path: str | None = None


Opener = Callable[[], BinaryIO]


class _MergeSet:
    """Ordered candidate entries applying first-writer-wins."""

    def __init__(self, result: AssemblyResult, console: Console) -> None:
        self._entries: Dict[str, tuple[str, Opener]] = {}
        self._result = result
        self._console = console

    def add(self, path: str, origin: str, opener: Opener, *, filtered: bool) -> None:
        if filtered and is_signature_entry(path):
            self._result.excluded.append(path)
            self._console.debug(f"Excluded signature entry {path} from {origin}")
            return
        kept = self._entries.get(path)
        if kept is not None:
            self._result.duplicates.append(DuplicateEntry(path=path, kept_from=kept[0], dropped_from=origin))
            self._console.debug(f"Duplicate entry {path} from {origin} dropped (kept {kept[0]})")
            return
        self._entries[path] = (origin, opener)

    def items(self) -> Iterator[tuple[str, Opener]]:
        for path, (_, opener) in self._entries.items():
            yield path, opener


class ArchiveAssembler:
    """One merge engine serving both the thin and the fat packaging modes.

    Precedence on duplicate paths follows insertion order: the manifest,
    the own compiled output, the entry point's extra files, upstream
    subproject outputs in build order, then dependency archives in
    classpath order.
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or quiet_console()

    def assemble(
        self,
        entry_point: EntryPoint,
        own_output: Path,
        subproject_outputs: Sequence[Path],
        dependency_archives: Sequence[Path],
        destination: Path,
        *,
        class_path: Sequence[str] | None = None,
    ) -> AssemblyResult:
        sources: List[_Source] = [_Source(own_output, required=True, filtered=False)]
        sources.extend(
            _Source(source, required=True, filtered=False, archive_path=archive_path)
            for source, archive_path in entry_point.include
        )

        if entry_point.mode is PackagingMode.FAT:
            manifest = Manifest(main_class=entry_point.main_class)
            sources.extend(_Source(path, required=False, filtered=True) for path in subproject_outputs)
            sources.extend(_Source(path, required=False, filtered=True) for path in dependency_archives)
        else:
            names = class_path if class_path is not None else [
                path.name for path in (*subproject_outputs, *dependency_archives)
            ]
            manifest = Manifest(main_class=entry_point.main_class, class_path=tuple(names))

        target = destination / entry_point.archive_name
        result = AssemblyResult(archive=target, mode=entry_point.mode, entry_point=entry_point)
        self._write(target, manifest, sources, result)
        self._console.info(
            f"Assembled {entry_point.mode.value} archive {target.name} for {entry_point.main_class} "
            f"({len(result.entries)} entries, {len(result.duplicates)} duplicates dropped)"
        )
        return result

    def package_library(self, subproject: Subproject, *, class_path: Sequence[str] = ()) -> AssemblyResult:
        """Write a subproject's own archive from its compiled output.

        A subproject with a main class gets a thin manifest listing
        ``class_path``; others get a plain manifest.
        """

        manifest = Manifest(main_class=subproject.main_class, class_path=tuple(class_path) if subproject.main_class else ())
        result = AssemblyResult(archive=subproject.archive, mode=PackagingMode.THIN if subproject.main_class else None)
        self._write(subproject.archive, manifest, [_Source(subproject.classes_dir, required=True, filtered=False)], result)
        self._console.info(f"Packaged {subproject.name} into {subproject.archive}")
        return result

    def _write(self, target: Path, manifest: Manifest, sources: Sequence[_Source], result: AssemblyResult) -> None:
        for source in sources:
            if source.path.exists():
                continue
            if source.required:
                raise ResolutionError(f"Required input '{source.path}' does not exist", stage="assemble")
            result.skipped_inputs.append(source.path)
            self._console.info(f"Skipping missing input {source.path}")

        manifest_bytes = manifest.render()
        merge = _MergeSet(result, self._console)
        merge.add(MANIFEST_PATH, "manifest", lambda: io.BytesIO(manifest_bytes), filtered=False)

        with ExitStack() as stack:
            for source in sources:
                if source.path.exists():
                    self._collect(source, merge, stack)

            with staged_file(target) as staging:
                with zipfile.ZipFile(staging, mode="w", compression=zipfile.ZIP_DEFLATED, allowZip64=True) as archive:
                    for path, opener in merge.items():
                        info = zipfile.ZipInfo(path, date_time=_FIXED_ZIP_TIME)
                        info.compress_type = zipfile.ZIP_DEFLATED
                        info.external_attr = 0o644 << 16
                        with opener() as src, archive.open(info, "w") as dst:
                            shutil.copyfileobj(src, dst)
                        result.entries.append(path)

        if result.duplicates:
            self._console.debug(f"{len(result.duplicates)} duplicate entries dropped while writing {target.name}")

    def _collect(self, source: _Source, merge: _MergeSet, stack: ExitStack) -> None:
        origin = source.path.name
        if source.path.is_dir():
            for file_path, relative in _walk(source.path):
                merge.add(relative, origin, _file_opener(file_path), filtered=source.filtered)
            return

        if source.archive_path is not None:
            merge.add(source.archive_path, origin, _file_opener(source.path), filtered=source.filtered)
            return

        try:
            archive = stack.enter_context(zipfile.ZipFile(source.path))
        except zipfile.BadZipFile as exc:
            raise ResolutionError(f"'{source.path}' is not a readable archive", stage="assemble") from exc
        for info in archive.infolist():
            if info.is_dir():
                continue
            merge.add(info.filename, origin, _zip_opener(archive, info), filtered=source.filtered)


def _walk(root: Path) -> Iterator[tuple[Path, str]]:
    for dirpath, dirnames, filenames in os.walk(root, topdown=True):
        dirnames.sort()
        for filename in sorted(filenames):
            file_path = Path(dirpath) / filename
            yield file_path, file_path.relative_to(root).as_posix()


def _file_opener(path: Path) -> Opener:
    return lambda: path.open("rb")


def _zip_opener(archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> Opener:
    return lambda: archive.open(info)  # type: ignore[return-value]


__all__ = [
    "AssemblyResult",
    "ArchiveAssembler",
    "DuplicateEntry",
    "MANIFEST_PATH",
    "Manifest",
    "PackagingMode",
    "SIGNATURE_PATTERN",
    "is_signature_entry",
]
