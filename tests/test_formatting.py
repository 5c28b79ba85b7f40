"""Tests for racelab.formatting — shared text formatting helpers."""

from __future__ import annotations

import unittest

from racelab.formatting import (
    format_duration,
    format_section_header,
    format_status_icon,
    format_table,
    truncate,
)


class TestFormatDuration(unittest.TestCase):
    def test_sub_second(self) -> None:
        self.assertEqual(format_duration(0.42), "0.4s")

    def test_seconds(self) -> None:
        self.assertEqual(format_duration(8.0), "8.0s")

    def test_just_under_minute(self) -> None:
        self.assertEqual(format_duration(59.94), "59.9s")

    def test_exact_minute(self) -> None:
        self.assertEqual(format_duration(60.0), "1m  0s")

    def test_minutes(self) -> None:
        self.assertEqual(format_duration(83.0), "1m 23s")

    def test_hours(self) -> None:
        self.assertEqual(format_duration(4354.0), "1h 12m 34s")


class TestFormatStatusIcon(unittest.TestCase):
    def test_pass(self) -> None:
        self.assertIn("PASS", format_status_icon("pass"))

    def test_mismatch(self) -> None:
        self.assertIn("MISMATCH", format_status_icon("mismatch"))

    def test_defect(self) -> None:
        self.assertIn("DEFECT", format_status_icon("defect"))

    def test_infra(self) -> None:
        self.assertIn("INFRA", format_status_icon("infra"))

    def test_raw(self) -> None:
        self.assertIn("RAW", format_status_icon("raw"))

    def test_unknown_is_uppercased(self) -> None:
        self.assertEqual(format_status_icon("weird"), "WEIRD")


class TestFormatTable(unittest.TestCase):
    def test_basic(self) -> None:
        text = format_table(["Name", "Value"], [["alpha", "100"], ["beta", "200"]])
        lines = text.splitlines()
        self.assertEqual(len(lines), 4)  # header + rule + 2 rows
        self.assertEqual(lines[0], "  Name   Value")
        self.assertEqual(lines[1], "  -----  -----")
        self.assertEqual(lines[2], "  alpha  100")

    def test_no_indent(self) -> None:
        text = format_table(["A"], [["x"]], indent=0)
        self.assertEqual(text.splitlines()[0], "A")

    def test_column_width_follows_widest_cell(self) -> None:
        text = format_table(["A", "B"], [["longer-cell", "1"]])
        self.assertEqual(text.splitlines()[0], "  " + "A".ljust(11) + "  B")


class TestFormatSectionHeader(unittest.TestCase):
    def test_width(self) -> None:
        header = format_section_header("child output", width=40)
        self.assertEqual(len(header), 40)
        self.assertIn(" child output ", header)

    def test_long_title(self) -> None:
        header = format_section_header("x" * 100, width=40)
        self.assertTrue(header.endswith("x "))


class TestTruncate(unittest.TestCase):
    def test_short_text_unchanged(self) -> None:
        self.assertEqual(truncate("hello", 10), "hello")

    def test_truncated(self) -> None:
        self.assertEqual(truncate("hello world", 8), "hello...")

    def test_tiny_limit(self) -> None:
        self.assertEqual(truncate("hello", 2), "..")
