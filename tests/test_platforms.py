from __future__ import annotations

from pathlib import Path
import unittest

from jarsmith.config_loader import LogicalDependency, NativesMode
from jarsmith.errors import ConfigurationError
from jarsmith.platforms import Artifact, ArtifactRole, VariantResolver

ALL_PLATFORMS = ("linux-amd64", "windows-amd64", "macos-universal")


class VariantResolverTests(unittest.TestCase):
    def setUp(self) -> None:
        self.library_dir = Path("/opt/libs")
        self.resolver = VariantResolver(self.library_dir)
        self.jogl = LogicalDependency(
            key="jogl",
            name="jogl-all",
            version="2.5.0",
            natives=NativesMode.PER_PLATFORM,
            platforms=ALL_PLATFORMS,
        )

    def test_per_platform_selects_only_requested_platform(self) -> None:
        artifacts = self.resolver.resolve(self.jogl, "linux-amd64")

        expected = Artifact(
            name="jogl-all-2.5.0-natives-linux-amd64.jar",
            path=self.library_dir / "jogl-all-2.5.0-natives-linux-amd64.jar",
            role=ArtifactRole.NATIVE_BINARY,
        )
        self.assertEqual(artifacts, frozenset({expected}))

    def test_macos_uses_universal_classifier_of_the_platform(self) -> None:
        (artifact,) = self.resolver.resolve(self.jogl, "macos-universal")
        self.assertEqual(artifact.name, "jogl-all-2.5.0-natives-macosx-universal.jar")

    def test_resolution_is_deterministic(self) -> None:
        first = self.resolver.resolve(self.jogl, "windows-amd64")
        second = VariantResolver(self.library_dir).resolve(self.jogl, "windows-amd64")
        self.assertEqual(first, second)

    def test_universal_dependency_ignores_platform(self) -> None:
        giac = LogicalDependency(
            key="giac",
            name="giac-java",
            version="1.0",
            natives=NativesMode.UNIVERSAL,
            universal_classifier="natives-all",
        )
        linux = self.resolver.resolve(giac, "linux-amd64")
        windows = self.resolver.resolve(giac, "windows-amd64")

        self.assertEqual(linux, windows)
        self.assertEqual({artifact.name for artifact in linux}, {"giac-java-1.0-natives-all.jar"})

    def test_dependency_without_natives_resolves_to_nothing(self) -> None:
        plain = LogicalDependency(key="guava", name="guava", version="33.0")
        self.assertEqual(self.resolver.resolve(plain, "linux-amd64"), frozenset())

    def test_unknown_platform_is_a_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            self.resolver.resolve(self.jogl, "solaris-sparc")
        self.assertIn("solaris-sparc", str(ctx.exception))

    def test_platform_outside_dependency_list_is_rejected(self) -> None:
        linux_only = LogicalDependency(
            key="gluegen",
            name="gluegen-rt",
            version="2.5.0",
            natives=NativesMode.PER_PLATFORM,
            platforms=("linux-amd64",),
        )
        with self.assertRaises(ConfigurationError):
            self.resolver.resolve(linux_only, "windows-amd64")

    def test_resolve_all_keeps_platform_order(self) -> None:
        artifacts = self.resolver.resolve_all(self.jogl, ["windows-amd64", "linux-amd64", "windows-amd64"])
        self.assertEqual(
            [artifact.name for artifact in artifacts],
            ["jogl-all-2.5.0-natives-windows-amd64.jar", "jogl-all-2.5.0-natives-linux-amd64.jar"],
        )

    def test_explicit_paths_override_library_dir(self) -> None:
        dependency = LogicalDependency(
            key="jogl",
            name="jogl-all",
            version="2.5.0",
            natives=NativesMode.PER_PLATFORM,
            path=Path("/cache/jogl/jogl-all-2.5.0.jar"),
            natives_dir=Path("/cache/natives"),
        )
        library = self.resolver.runtime_library(dependency)
        (native,) = self.resolver.resolve(dependency, "linux-amd64")

        self.assertEqual(library.path, Path("/cache/jogl/jogl-all-2.5.0.jar"))
        self.assertIs(library.role, ArtifactRole.RUNTIME_LIBRARY)
        self.assertEqual(native.path, Path("/cache/natives/jogl-all-2.5.0-natives-linux-amd64.jar"))


if __name__ == "__main__":
    unittest.main()
