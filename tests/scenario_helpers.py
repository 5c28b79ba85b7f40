"""Scenario factories and profiles shared by the verifier and CLI tests.

These scenarios run in real child interpreters. The ones that stand in for a
detector write report-shaped text and force the report status themselves, so
the tests do not need an instrumented interpreter.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import racelab
from racelab.config import DetectorProfile
from racelab.harness import Discipline
from racelab.outcome import expect_clean, expect_flagged
from racelab.reports import REPORT_EXIT_CODE, access_pattern
from racelab.scenario import Scenario

TESTS_DIR = Path(__file__).resolve().parent
SRC_DIR = Path(racelab.__file__).resolve().parent.parent

SIMULATED_REPORT = (
    "==================\n"
    "WARNING: ThreadSanitizer: data race (pid=4242)\n"
    "  Write of size 4 at 0x7b0400001234 by thread T2:\n"
    "    #0 racy_store _ctypes/cfield.c:1234 (python+0x1a2b3c)\n"
    "\n"
    "  Previous read of size 4 at 0x7b0400001234 by thread T1:\n"
    "    #0 racy_load _ctypes/cfield.c:1200 (python+0x1a2b00)\n"
    "\n"
    "SUMMARY: ThreadSanitizer: data race _ctypes/cfield.c:1234 in racy_store\n"
    "==================\n"
)


def child_profile(**kwargs: object) -> DetectorProfile:
    """A profile that launches the running interpreter with the tests importable."""
    pythonpath = os.pathsep.join(
        p for p in (str(TESTS_DIR), str(SRC_DIR), os.environ.get("PYTHONPATH", "")) if p
    )
    env = {"PYTHONPATH": pythonpath, "TSAN_OPTIONS": "exitcode=66"}
    kwargs.setdefault("interpreter", sys.executable)
    return DetectorProfile(env=env, **kwargs)  # type: ignore[arg-type]


def _force_report() -> str:
    sys.stderr.write(SIMULATED_REPORT)
    sys.stderr.flush()
    os._exit(REPORT_EXIT_CODE)


def quiet_counter() -> Scenario:
    calls = [0, 0]

    def first(i: int) -> None:
        calls[0] += 1

    def second(i: int) -> None:
        calls[1] += 1

    return Scenario(
        name="quiet_counter",
        primary=first,
        secondary=second,
        expected=expect_clean(),
        epilogue=lambda: f"calls = {calls[0]} {calls[1]}",
    )


def simulated_race() -> Scenario:
    return Scenario(
        name="simulated_race",
        primary=lambda i: None,
        expected=expect_flagged(matches=(access_pattern(4),)),
        epilogue=_force_report,
    )


def defective() -> Scenario:
    def explode(i: int) -> None:
        if i == 3:
            raise ValueError("scenario bug")

    return Scenario(
        name="defective",
        primary=explode,
        secondary=lambda i: None,
        discipline=Discipline.ALTERNATING_PAIRED,
    )


def stuck_defect() -> Scenario:
    state = {"flag": 0}

    def publish(i: int) -> None:
        raise ValueError("failed before publishing")

    def observe(i: int) -> None:
        while state["flag"] != 2:
            pass

    return Scenario(
        name="stuck_defect",
        primary=publish,
        secondary=observe,
        discipline=Discipline.ALTERNATING_PAIRED,
    )


def aborting() -> Scenario:
    return Scenario(
        name="aborting",
        primary=lambda i: None,
        epilogue=os.abort,  # type: ignore[arg-type]
    )


def not_a_scenario() -> str:
    return "nope"
