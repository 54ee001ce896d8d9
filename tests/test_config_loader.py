from __future__ import annotations

from pathlib import Path
import json
import tempfile
import textwrap
import unittest

from jarsmith.config_loader import ConfigurationStore, NativesMode, PackagingMode
from jarsmith.core.config_loader import collect_config_files, merge_mappings, resolve_config_paths
from jarsmith.errors import ConfigurationError


class ConfigurationStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.config_dir = self.root / "config"
        self.subprojects_dir = self.config_dir / "subprojects"
        self.subprojects_dir.mkdir(parents=True)
        (self.config_dir / "config.toml").write_text(
            textwrap.dedent(
                """
                [global]
                platforms = ["linux-amd64", "windows-amd64"]
                primary = "desktop"
                build_dir = "out"

                [dependencies.jogl]
                name = "jogl-all"
                version = "2.5.0"
                natives = "per-platform"
                platforms = ["linux-amd64", "windows-amd64", "macos-universal"]

                [dependencies.giac]
                name = "giac-java"
                version = "1.0"
                natives = "universal"
                optional = true
                """
            )
        )
        (self.subprojects_dir / "desktop.toml").write_text(
            textwrap.dedent(
                """
                [subproject]
                name = "desktop"
                classes_dir = "desktop/classes"
                prerequisites = ["editor"]
                dependencies = ["jogl", "giac"]
                main_class = "org.geogebra.desktop.GeoGebra3D"

                [[entry_points]]
                name = "ggb2gpad"
                main_class = "org.geogebra.desktop.gpad.GgbToGpad"

                [[entry_points]]
                name = "gpad2ggb"
                main_class = "org.geogebra.desktop.gpad.GpadToGgb"
                archive = "gpad-to-ggb.jar"
                mode = "thin"
                include = ["extra/LICENSE", { source = "extra/NOTICE", path = "META-INF/NOTICE" }]

                [tests.default]
                command = ["java", "-cp", "{{classpath}}", "org.junit.runner.JUnitCore"]
                classes_dir = "desktop/test-classes"
                environment = { LANG = "C" }
                """
            )
        )
        (self.subprojects_dir / "editor.toml").write_text(
            textwrap.dedent(
                """
                [subproject]
                name = "editor"
                classes_dir = "editor/classes"
                compile_command = ["javac", "-d", "editor/classes"]
                """
            )
        )

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_loads_global_dependencies_and_subprojects(self) -> None:
        store = ConfigurationStore.from_directory(self.root)

        self.assertEqual(store.global_config.platforms, ["linux-amd64", "windows-amd64"])
        self.assertEqual(store.global_config.build_dir, self.root / "out")
        self.assertEqual(store.global_config.libs_dir, self.root / "out" / "libs")
        self.assertEqual(store.global_config.ci_env, "CI")

        jogl = store.dependencies["jogl"]
        self.assertEqual(jogl.base_name, "jogl-all-2.5.0")
        self.assertIs(jogl.natives, NativesMode.PER_PLATFORM)
        giac = store.dependencies["giac"]
        self.assertIs(giac.natives, NativesMode.UNIVERSAL)
        self.assertEqual(giac.universal_classifier, "natives-universal")
        self.assertTrue(giac.optional)

        desktop = store.get_subproject("desktop")
        self.assertEqual(desktop.archive, self.root / "out" / "libs" / "desktop.jar")
        self.assertEqual(desktop.classes_dir, self.root / "desktop" / "classes")
        self.assertEqual(desktop.prerequisites, ["editor"])
        self.assertIs(store.primary(), desktop)

    def test_entry_points_and_tests_are_parsed(self) -> None:
        store = ConfigurationStore.from_directory(self.root)
        desktop = store.get_subproject("desktop")

        ggb2gpad = desktop.entry_point("ggb2gpad")
        self.assertEqual(ggb2gpad.archive_name, "ggb2gpad.jar")
        self.assertIs(ggb2gpad.mode, PackagingMode.FAT)

        gpad2ggb = desktop.entry_point("gpad2ggb")
        self.assertEqual(gpad2ggb.archive_name, "gpad-to-ggb.jar")
        self.assertIs(gpad2ggb.mode, PackagingMode.THIN)
        self.assertEqual(
            gpad2ggb.include,
            (
                (self.root / "extra" / "LICENSE", "LICENSE"),
                (self.root / "extra" / "NOTICE", "META-INF/NOTICE"),
            ),
        )

        suite = desktop.tests["default"]
        self.assertEqual(suite.command[2], "{{classpath}}")
        self.assertEqual(suite.classes_dir, self.root / "desktop" / "test-classes")
        self.assertEqual(suite.environment, (("LANG", "C"),))

        subproject, entry = store.find_entry_point("gpad2ggb")
        self.assertEqual(subproject.name, "desktop")
        self.assertEqual(entry.main_class, "org.geogebra.desktop.gpad.GpadToGgb")

    def test_unknown_entry_point_lists_available(self) -> None:
        store = ConfigurationStore.from_directory(self.root)
        with self.assertRaises(ConfigurationError) as ctx:
            store.get_subproject("desktop").entry_point("missing")
        self.assertIn("ggb2gpad", str(ctx.exception))

    def test_unknown_platform_is_rejected(self) -> None:
        config = (self.config_dir / "config.toml").read_text()
        (self.config_dir / "config.toml").write_text(config.replace('"windows-amd64"]\nprimary', '"solaris-sparc"]\nprimary'))

        with self.assertRaises(ConfigurationError) as ctx:
            ConfigurationStore.from_directory(self.root)
        self.assertIn("solaris-sparc", str(ctx.exception))
        self.assertEqual(ctx.exception.exit_code, 2)

    def test_custom_platform_table_extends_known_targets(self) -> None:
        (self.config_dir / "platforms.json").write_text(
            json.dumps({"platforms": {"linux-aarch64": {"os": "linux", "arch": "aarch64"}}})
        )
        store = ConfigurationStore.from_directory(self.root)

        target = store.platform("linux-aarch64")
        self.assertEqual(target.classifier, "natives-linux-aarch64")
        self.assertEqual(store.platform("macos-universal").classifier, "natives-macosx-universal")

    def test_undeclared_dependency_reference_fails(self) -> None:
        (self.subprojects_dir / "editor.toml").write_text(
            textwrap.dedent(
                """
                [subproject]
                name = "editor"
                classes_dir = "editor/classes"
                dependencies = ["lwjgl"]
                """
            )
        )
        with self.assertRaises(ConfigurationError) as ctx:
            ConfigurationStore.from_directory(self.root)
        self.assertEqual(ctx.exception.subproject, "editor")

    def test_invalid_natives_mode_is_a_configuration_error(self) -> None:
        with (self.config_dir / "extra.toml").open("w") as handle:
            handle.write('[dependencies.bad]\nversion = "1"\nnatives = "sometimes"\n')
        with self.assertRaises(ConfigurationError) as ctx:
            ConfigurationStore.from_directory(self.root)
        self.assertIn("natives", str(ctx.exception))

    def test_entry_point_archive_may_not_replace_a_subproject_archive(self) -> None:
        with (self.subprojects_dir / "desktop.toml").open("a") as handle:
            handle.write('\n[[entry_points]]\nname = "editor"\nmain_class = "org.example.Tool"\n')

        with self.assertRaises(ConfigurationError) as ctx:
            ConfigurationStore.from_directory(self.root)
        self.assertIn("subproject 'editor'", str(ctx.exception))

    def test_shipped_configuration_names_the_gpad_converters(self) -> None:
        workspace = Path(__file__).resolve().parents[1]
        store = ConfigurationStore.from_directories(workspace, [workspace / "config"])

        desktop = store.get_subproject("desktop")
        self.assertEqual(
            desktop.entry_point("ggb2gpad").main_class, "org.geogebra.desktop.gpadtools.GgbToGpadConverter"
        )
        self.assertEqual(
            desktop.entry_point("gpad2ggb").main_class, "org.geogebra.desktop.gpadtools.GpadToGgbConverter"
        )

    def test_invalid_log_level_is_a_configuration_error(self) -> None:
        (self.config_dir / "logging.toml").write_text('[global]\nlog_level = "loud"\n')
        with self.assertRaises(ConfigurationError):
            ConfigurationStore.from_directory(self.root)

    def test_later_directory_overrides_earlier(self) -> None:
        override = self.root / "override"
        override.mkdir()
        (override / "local.toml").write_text('[global]\nci_env = "BUILD_SERVER"\n')

        store = ConfigurationStore.from_directories(self.root, [self.config_dir, override])

        self.assertEqual(store.global_config.ci_env, "BUILD_SERVER")
        self.assertEqual(store.global_config.primary, "desktop")

    def test_missing_configuration_directory(self) -> None:
        with self.assertRaises(ConfigurationError):
            ConfigurationStore.from_directories(self.root, [self.root / "nowhere"])


class ConfigHelpersTests(unittest.TestCase):
    def test_merge_mappings_is_recursive(self) -> None:
        merged = merge_mappings({"global": {"java": "java", "platforms": ["a"]}}, {"global": {"java": "/opt/jdk/bin/java"}})
        self.assertEqual(merged, {"global": {"java": "/opt/jdk/bin/java", "platforms": ["a"]}})

    def test_duplicate_stems_are_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            directory = Path(temp)
            (directory / "config.toml").write_text("")
            (directory / "config.json").write_text("{}")
            with self.assertRaises(ValueError):
                collect_config_files(directory)

    def test_resolve_config_paths_splits_missing(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            root = Path(temp)
            (root / "config").mkdir()
            existing, missing = resolve_config_paths(root, [Path("config"), Path("absent"), Path("config")])
            self.assertEqual(existing, ((root / "config").resolve(),))
            self.assertEqual(missing, ((root / "absent").resolve(),))


if __name__ == "__main__":
    unittest.main()
