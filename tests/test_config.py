"""Tests for racelab.config — detector profiles."""

from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path

from racelab.config import (
    DEFAULT_TSAN_OPTIONS,
    DetectorProfile,
    load_profile,
    load_profile_file,
    profile_from_mapping,
)
from racelab.harness import DEFECT_EXIT_CODE
from racelab.reports import REPORT_EXIT_CODE, REPORT_MARKER


class TestDetectorProfile(unittest.TestCase):
    def test_defaults(self) -> None:
        profile = DetectorProfile()
        self.assertEqual(profile.interpreter, sys.executable)
        self.assertTrue(profile.inherit_flags)
        self.assertEqual(profile.env, {"TSAN_OPTIONS": DEFAULT_TSAN_OPTIONS})
        self.assertEqual(profile.launcher, ["-m", "racelab.child"])
        self.assertEqual(profile.report_marker, REPORT_MARKER)
        self.assertEqual(profile.report_exit_code, REPORT_EXIT_CODE)
        self.assertEqual(profile.defect_exit_code, DEFECT_EXIT_CODE)
        self.assertEqual(profile.validate(), [])

    def test_missing_interpreter(self) -> None:
        errors = DetectorProfile(interpreter="/nonexistent/python").validate()
        self.assertEqual(len(errors), 1)
        self.assertIn("Interpreter not found", errors[0])

    def test_exit_code_collisions(self) -> None:
        errors = DetectorProfile(report_exit_code=0, defect_exit_code=0).validate()
        self.assertEqual(len(errors), 2)
        errors = DetectorProfile(defect_exit_code=REPORT_EXIT_CODE).validate()
        self.assertEqual(len(errors), 1)

    def test_to_dict_round_trips_fields(self) -> None:
        data = DetectorProfile(enable_flags=["-X", "dev"]).to_dict()
        self.assertEqual(data["enable_flags"], ["-X", "dev"])
        self.assertEqual(profile_from_mapping(data), DetectorProfile(enable_flags=["-X", "dev"]))


class TestProfileFromMapping(unittest.TestCase):
    def test_values_coerced_to_strings(self) -> None:
        profile = profile_from_mapping(
            {"env": {"PYTHON_GIL": 0}, "enable_flags": ["-X", 1], "interpreter": Path("/x")}
        )
        self.assertEqual(profile.env, {"PYTHON_GIL": "0"})
        self.assertEqual(profile.enable_flags, ["-X", "1"])
        self.assertEqual(profile.interpreter, "/x")

    def test_unknown_keys_rejected(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            profile_from_mapping({"timeout": 10})
        self.assertIn("timeout", str(ctx.exception))

    def test_bad_types_rejected(self) -> None:
        with self.assertRaises(ValueError):
            profile_from_mapping({"enable_flags": "-X dev"})
        with self.assertRaises(ValueError):
            profile_from_mapping({"env": ["A=1"]})

    def test_cli_overrides_win_unless_none(self) -> None:
        profile = profile_from_mapping(
            {"interpreter": "/from/yaml", "inherit_flags": True},
            cli_overrides={"interpreter": "/from/cli", "inherit_flags": None},
        )
        self.assertEqual(profile.interpreter, "/from/cli")
        self.assertTrue(profile.inherit_flags)


class TestLoadProfile(unittest.TestCase):
    def test_load_yaml_profile(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "tsan.yaml"
            path.write_text(
                f"interpreter: {sys.executable}\n"
                "enable_flags: ['-X', 'faulthandler']\n"
                "env:\n"
                "  TSAN_OPTIONS: 'exitcode=66 halt_on_error=0'\n"
                "report_exit_code: 66\n"
                "excerpt_lines: 20\n",
                encoding="utf-8",
            )
            profile = load_profile(path)
        self.assertEqual(profile.enable_flags, ["-X", "faulthandler"])
        self.assertEqual(profile.env["TSAN_OPTIONS"], "exitcode=66 halt_on_error=0")
        self.assertEqual(profile.excerpt_lines, 20)

    def test_empty_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "empty.yaml"
            path.write_text("", encoding="utf-8")
            self.assertEqual(load_profile(path), DetectorProfile())

    def test_non_mapping_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "list.yaml"
            path.write_text("- a\n- b\n", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_profile_file(path)

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_profile_file(Path("/nonexistent/profile.yaml"))

    def test_invalid_profile_raises(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            load_profile(cli_overrides={"interpreter": "/nonexistent/python"})
        self.assertIn("Invalid detector profile", str(ctx.exception))

    def test_no_path_uses_defaults(self) -> None:
        self.assertEqual(load_profile(), DetectorProfile())


if __name__ == "__main__":
    unittest.main()
