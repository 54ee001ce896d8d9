from __future__ import annotations

from pathlib import Path
import os
import unittest

from jarsmith.config_loader import TestSuiteDefinition
from jarsmith.core.command_runner import RecordingCommandRunner
from jarsmith.errors import TestFailure
from jarsmith.testing import DEFAULT_SUITE, E2E_SUITE, TestGate, ci_signal


def _suite(name: str) -> TestSuiteDefinition:
    return TestSuiteDefinition(
        name=name,
        command=("java", "-cp", "{{classpath}}", "org.junit.runner.JUnitCore", "{{subproject}}"),
        classes_dir=Path("/work/desktop/test-classes"),
        classpath=(Path("/opt/junit.jar"),),
        environment=(("LANG", "C"),),
    )


class CiSignalTests(unittest.TestCase):
    def test_presence_is_enough(self) -> None:
        self.assertTrue(ci_signal({"CI": ""}))
        self.assertTrue(ci_signal({"CI": "false"}))
        self.assertFalse(ci_signal({}))

    def test_custom_variable_name(self) -> None:
        self.assertTrue(ci_signal({"BUILD_SERVER": "1"}, "BUILD_SERVER"))
        self.assertFalse(ci_signal({"CI": "1"}, "BUILD_SERVER"))


class TestGateTests(unittest.TestCase):
    def _run(self, suite: str, *, ci: bool, returncode: int) -> tuple[TestGate, RecordingCommandRunner]:
        runner = RecordingCommandRunner(exit_code=lambda command: returncode)
        gate = TestGate(runner, ci=ci)
        gate.run(
            _suite(suite),
            subproject="desktop",
            main_classes=Path("/work/desktop/classes"),
            classpath=[Path("/work/libs/editor-desktop.jar")],
        )
        return gate, runner

    def test_command_expands_placeholders(self) -> None:
        _, runner = self._run(DEFAULT_SUITE, ci=False, returncode=0)
        command = runner.commands[0]

        expected_classpath = os.pathsep.join(
            [
                "/work/desktop/classes",
                "/work/desktop/test-classes",
                "/work/libs/editor-desktop.jar",
                "/opt/junit.jar",
            ]
        )
        self.assertEqual(command.command, ["java", "-cp", expected_classpath, "org.junit.runner.JUnitCore", "desktop"])
        self.assertEqual(command.env, {"LANG": "C"})
        self.assertTrue(command.stream)

    def test_passing_suite_records_outcome(self) -> None:
        gate, _ = self._run(DEFAULT_SUITE, ci=False, returncode=0)
        self.assertTrue(gate.outcomes[0].passed)
        self.assertFalse(gate.outcomes[0].tolerated)

    def test_default_suite_failure_is_tolerated_under_ci(self) -> None:
        gate, _ = self._run(DEFAULT_SUITE, ci=True, returncode=1)

        outcome = gate.outcomes[0]
        self.assertFalse(outcome.passed)
        self.assertTrue(outcome.tolerated)
        self.assertEqual(outcome.returncode, 1)

    def test_default_suite_failure_blocks_locally(self) -> None:
        with self.assertRaises(TestFailure) as ctx:
            self._run(DEFAULT_SUITE, ci=False, returncode=3)
        self.assertEqual(ctx.exception.outcome.returncode, 3)
        self.assertEqual(ctx.exception.exit_code, 1)

    def test_e2e_suite_always_blocks(self) -> None:
        with self.assertRaises(TestFailure) as ctx:
            self._run(E2E_SUITE, ci=True, returncode=1)
        self.assertEqual(ctx.exception.outcome.suite, E2E_SUITE)


if __name__ == "__main__":
    unittest.main()
