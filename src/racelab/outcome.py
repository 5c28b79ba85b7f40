"""Expected outcomes and the two standard classification policies.

An :class:`ExpectedOutcome` is a set of independent constraints over a
finished child run: an exit code, substrings that must or must not appear,
and regular expressions that must match. :func:`violations` lists every
constraint a run breaks; it depends only on the exit code and text, so the
same run always classifies the same way.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from racelab.reports import REPORT_EXIT_CODE, REPORT_MARKER


@dataclass(frozen=True)
class ExpectedOutcome:
    """Constraints a child run must satisfy. Empty means anything goes."""

    exit_code: int | None = None
    contains: tuple[str, ...] = ()
    not_contains: tuple[str, ...] = ()
    matches: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return (
            self.exit_code is None
            and not self.contains
            and not self.not_contains
            and not self.matches
        )

    def merge(self, other: ExpectedOutcome) -> ExpectedOutcome:
        """Combine two outcomes. *other*'s exit code wins when both set one."""
        return ExpectedOutcome(
            exit_code=other.exit_code if other.exit_code is not None else self.exit_code,
            contains=self.contains + other.contains,
            not_contains=self.not_contains + other.not_contains,
            matches=self.matches + other.matches,
        )

    def describe(self) -> str:
        """One-line summary, e.g. ``exit=0, !'WARNING: ...'``."""
        parts: list[str] = []
        if self.exit_code is not None:
            parts.append(f"exit={self.exit_code}")
        parts.extend(f"+{s!r}" for s in self.contains)
        parts.extend(f"!{s!r}" for s in self.not_contains)
        parts.extend(f"/{p}/" for p in self.matches)
        return ", ".join(parts) if parts else "any"


def expect_clean(marker: str = REPORT_MARKER) -> ExpectedOutcome:
    """Exit 0 and no race report in the output."""
    return ExpectedOutcome(exit_code=0, not_contains=(marker,))


def expect_flagged(
    exit_code: int = REPORT_EXIT_CODE,
    *,
    contains: tuple[str, ...] = (),
    matches: tuple[str, ...] = (),
) -> ExpectedOutcome:
    """The detector's report exit code, plus any layered text requirements."""
    return ExpectedOutcome(exit_code=exit_code, contains=contains, matches=matches)


def violations(exit_code: int, output: str, expected: ExpectedOutcome) -> list[str]:
    """Return a message for every constraint of *expected* that the run breaks."""
    problems: list[str] = []
    if expected.exit_code is not None and exit_code != expected.exit_code:
        problems.append(f"Expected exit code {expected.exit_code}, got {exit_code}")
    for text in expected.contains:
        if text not in output:
            problems.append(f"Output does not contain {text!r}")
    for text in expected.not_contains:
        if text in output:
            problems.append(f"Output unexpectedly contains {text!r}")
    for pattern in expected.matches:
        if re.search(pattern, output, re.MULTILINE) is None:
            problems.append(f"Output does not match /{pattern}/")
    return problems
