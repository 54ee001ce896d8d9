from __future__ import annotations

from pathlib import Path
import io
import tarfile
import tempfile
import unittest
import zipfile
from contextlib import redirect_stdout

import zstandard as zstd

from jarsmith.collect import JarCollector
from jarsmith.core.archive import ArchiveArtifact, ArchiveManager
from jarsmith.core.console import Console, quiet_console
from jarsmith.errors import ConfigurationError, ResolutionError
from jarsmith.platforms import Artifact, ArtifactRole


class JarCollectorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.libs = self.root / "build" / "libs"
        self.libs.mkdir(parents=True)
        self.primary = self.libs / "desktop.jar"
        self.primary.write_bytes(b"desktop")

        cache = self.root / "cache"
        cache.mkdir()
        (cache / "jogl-all-2.5.0.jar").write_bytes(b"jogl")
        (cache / "jogl-all-2.5.0-natives-linux-amd64.jar").write_bytes(b"jogl natives")
        self.classpath = [
            Artifact.at(self.libs / "editor-desktop.jar", ArtifactRole.PRIMARY_OUTPUT),
            Artifact.at(cache / "jogl-all-2.5.0.jar", ArtifactRole.RUNTIME_LIBRARY),
            Artifact.at(cache / "jogl-all-2.5.0-natives-linux-amd64.jar", ArtifactRole.NATIVE_BINARY),
        ]
        (self.libs / "editor-desktop.jar").write_bytes(b"editor")
        self.console = quiet_console()
        self.collector = JarCollector(ArchiveManager(self.console), self.console)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_collects_runtime_jars_into_zip(self) -> None:
        target = self.collector.collect(self.primary, self.classpath, self.libs, self.root / "build" / "jars.zip")

        with zipfile.ZipFile(target) as archive:
            names = sorted(archive.namelist())
            self.assertEqual(archive.read("jogl-all-2.5.0.jar"), b"jogl")
        self.assertEqual(
            names,
            [
                "desktop.jar",
                "editor-desktop.jar",
                "jogl-all-2.5.0-natives-linux-amd64.jar",
                "jogl-all-2.5.0.jar",
            ],
        )

    def test_existing_copies_are_replaced(self) -> None:
        (self.libs / "jogl-all-2.5.0.jar").write_bytes(b"stale")
        self.collector.collect(self.primary, self.classpath, self.libs, self.root / "build" / "jars.zip")
        self.assertEqual((self.libs / "jogl-all-2.5.0.jar").read_bytes(), b"jogl")

    def test_collects_into_zstd_tarball(self) -> None:
        target = self.collector.collect(self.primary, self.classpath, self.libs, self.root / "build" / "jars.tar.zst")

        with target.open("rb") as handle:
            payload = zstd.ZstdDecompressor().stream_reader(handle).read()
        with tarfile.open(fileobj=io.BytesIO(payload)) as tar:
            self.assertIn("desktop.jar", tar.getnames())

    def test_missing_primary_is_a_resolution_error(self) -> None:
        self.primary.unlink()
        with self.assertRaises(ResolutionError):
            self.collector.collect(self.primary, self.classpath, self.libs, self.root / "build" / "jars.zip")

    def test_unknown_archive_suffix_is_a_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            self.collector.collect(self.primary, self.classpath, self.libs, self.root / "build" / "jars.rar")

    def test_dry_run_writes_nothing(self) -> None:
        console = Console("info", dry_run=True)
        collector = JarCollector(ArchiveManager(console), console)
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            target = collector.collect(self.primary, self.classpath, self.libs, self.root / "build" / "jars.zip")

        self.assertFalse(target.exists())
        self.assertFalse((self.libs / "jogl-all-2.5.0.jar").exists())
        self.assertIn("[DRY] Would pack", buffer.getvalue())


class ArchiveManagerTests(unittest.TestCase):
    def test_format_is_inferred_from_suffix(self) -> None:
        manager = ArchiveManager(quiet_console())
        self.assertEqual(manager.resolve_archive_format(target=Path("jars.tar.zst"), format_hint=None), "zst")
        self.assertEqual(manager.resolve_archive_format(target=Path("jars.tgz"), format_hint=None), "gztar")
        self.assertEqual(manager.resolve_archive_format(target=Path("jars.bin"), format_hint="zip"), "zip")
        with self.assertRaises(ValueError):
            manager.resolve_archive_format(target=Path("jars.bin"), format_hint=None)

    def test_refuses_to_overwrite_when_asked(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            root = Path(temp)
            (root / "src").mkdir()
            (root / "src" / "a.jar").write_bytes(b"a")
            target = root / "out.tar"
            target.write_bytes(b"previous")
            manager = ArchiveManager(quiet_console())
            with self.assertRaises(FileExistsError):
                manager.create_archive(artifact=ArchiveArtifact(root / "src"), target_path=target, overwrite=False)
            self.assertEqual(target.read_bytes(), b"previous")


if __name__ == "__main__":
    unittest.main()
