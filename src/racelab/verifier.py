"""Out-of-process verification of a scenario run.

Launches a scenario in a child interpreter with the detector switched on,
captures the child's exit code and merged stdout/stderr, and classifies the
run against an :class:`~racelab.outcome.ExpectedOutcome`.

The child command line is::

    interpreter ++ inherited interpreter flags ++ scenario flags
                ++ detector-enable flags ++ launcher ++ [entry point]

Three things can come out of a verification:

- the run satisfied the expectation, and the :class:`CapturedResult` is
  returned;
- the run finished but did not satisfy it, and :class:`ClassificationMismatch`
  (an ``AssertionError``, so test runners count it as a failure) is raised,
  or :class:`ScenarioDefectError` when the child reported a scenario defect;
- the environment is broken (spawn error, crash, unknown exit status), and
  :class:`InfrastructureFailure` (a ``RuntimeError``, counted as an error)
  is raised.

There is no internal timeout and no retry. A single observation is the
verdict.
"""

from __future__ import annotations

import os
import shlex
import subprocess
import time
from dataclasses import dataclass
from typing import Sequence

from racelab.config import DetectorProfile
from racelab.crash import detect_crash
from racelab.logging import get_logger
from racelab.outcome import ExpectedOutcome, expect_clean, expect_flagged, violations
from racelab.reports import REPORT_EXIT_CODE, REPORT_MARKER, excerpt, extract_warning_kinds

log = get_logger("verifier")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class InfrastructureFailure(RuntimeError):
    """The child could not be launched or died without reaching a verdict."""

    def __init__(self, message: str, *, exit_code: int | None = None, output: str = "") -> None:
        self.exit_code = exit_code
        self.output = output
        text = message
        if output:
            text = f"{message}\n--- output excerpt ---\n{output}"
        super().__init__(text)


class ClassificationMismatch(AssertionError):
    """The child finished but its exit code or output broke the expectation."""

    def __init__(self, problems: list[str], *, exit_code: int, output: str = "") -> None:
        self.problems = problems
        self.exit_code = exit_code
        self.output = output
        lines = [f"Classification failed (exit code {exit_code}):"]
        lines.extend(f"  - {p}" for p in problems)
        if output:
            lines.append("--- output excerpt ---")
            lines.append(output)
        super().__init__("\n".join(lines))


class ScenarioDefectError(ClassificationMismatch):
    """The child exited with the scenario-defect status: an operation raised."""


# ---------------------------------------------------------------------------
# Captured result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CapturedResult:
    """Exit code and merged output of one finished child process."""

    exit_code: int
    output: str
    command: tuple[str, ...] = ()
    duration_s: float = 0.0

    @property
    def warning_kinds(self) -> list[str]:
        return extract_warning_kinds(self.output)

    def should_have_exit_value(self, exit_code: int) -> CapturedResult:
        return self._require(ExpectedOutcome(exit_code=exit_code))

    def should_contain(self, text: str) -> CapturedResult:
        return self._require(ExpectedOutcome(contains=(text,)))

    def should_not_contain(self, text: str) -> CapturedResult:
        return self._require(ExpectedOutcome(not_contains=(text,)))

    def should_match(self, pattern: str) -> CapturedResult:
        return self._require(ExpectedOutcome(matches=(pattern,)))

    def _require(self, expected: ExpectedOutcome) -> CapturedResult:
        problems = violations(self.exit_code, self.output, expected)
        if problems:
            raise ClassificationMismatch(
                problems, exit_code=self.exit_code, output=excerpt(self.output)
            )
        return self


# ---------------------------------------------------------------------------
# Command construction
# ---------------------------------------------------------------------------


def ambient_flags() -> list[str]:
    """Interpreter options this process was started with.

    Mirrors what CPython's regression suite passes down to the child
    interpreters it spawns (``-X`` options, ``-W`` filters, ``-O``, ``-I``...).
    """
    return list(subprocess._args_from_interpreter_flags())  # type: ignore[attr-defined]


def build_command(
    entry_point: str,
    extra_flags: Sequence[str] = (),
    *,
    profile: DetectorProfile,
) -> list[str]:
    """Assemble the child command line for *entry_point*."""
    cmd = [profile.interpreter]
    if profile.inherit_flags:
        cmd.extend(ambient_flags())
    cmd.extend(extra_flags)
    cmd.extend(profile.enable_flags)
    cmd.extend(profile.launcher)
    cmd.append(entry_point)
    return cmd


def build_env(profile: DetectorProfile) -> dict[str, str]:
    """Build the environment for the child process."""
    env = {**os.environ}
    # Unbuffered so stdout and stderr interleave in the order they were written.
    env["PYTHONUNBUFFERED"] = "1"
    env["PYTHONFAULTHANDLER"] = "1"
    env.update(profile.env)
    log.debug("Env overrides: %s", profile.env)
    return env


# ---------------------------------------------------------------------------
# Launch and classify
# ---------------------------------------------------------------------------


def run_child(
    entry_point: str,
    extra_flags: Sequence[str] = (),
    *,
    profile: DetectorProfile | None = None,
) -> CapturedResult:
    """Launch *entry_point* in an instrumented child and wait for it.

    Raises:
        InfrastructureFailure: If the child process cannot be started.
    """
    profile = profile or DetectorProfile()
    cmd = build_command(entry_point, extra_flags, profile=profile)
    env = build_env(profile)

    log.info("Launching %s", shlex.join(cmd))
    start = time.monotonic()
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=env,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as exc:
        raise InfrastructureFailure(f"Failed to start {cmd[0]}: {exc}") from exc
    duration = time.monotonic() - start

    result = CapturedResult(
        exit_code=proc.returncode,
        output=proc.stdout or "",
        command=tuple(cmd),
        duration_s=duration,
    )
    log.debug(
        "%s exited %d after %.1fs (%d bytes of output)",
        entry_point,
        result.exit_code,
        duration,
        len(result.output),
    )
    return result


def check(result: CapturedResult, expected: ExpectedOutcome) -> list[str]:
    """List every way *result* breaks *expected*. Empty means it passes."""
    return violations(result.exit_code, result.output, expected)


def classify(
    result: CapturedResult,
    expected: ExpectedOutcome,
    *,
    profile: DetectorProfile | None = None,
) -> CapturedResult:
    """Return *result* if it satisfies *expected*, otherwise raise.

    Only a clean or report exit status can pass. Any other status fails even
    when every text constraint holds, unless *expected* pins that exact code.

    Raises:
        ScenarioDefectError: The child exited with the defect status.
        ClassificationMismatch: The child exited clean or with the report
            status, but the expectation did not hold.
        InfrastructureFailure: The child exited with any other status.
    """
    profile = profile or DetectorProfile()
    problems = check(result, expected)
    kinds = result.warning_kinds
    if kinds:
        log.debug("Detector warnings: %s", ", ".join(kinds))

    code = result.exit_code
    verdict_status = code in (0, profile.report_exit_code) or code == expected.exit_code
    if not problems and verdict_status:
        log.info("Classified as expected (%s)", expected.describe())
        return result

    snippet = excerpt(
        result.output,
        marker=profile.report_marker,
        max_lines=profile.excerpt_lines,
    )
    if verdict_status:
        raise ClassificationMismatch(problems, exit_code=code, output=snippet)
    if code == profile.defect_exit_code:
        raise ScenarioDefectError(
            ["Scenario defect: an operation raised inside a harness thread", *problems],
            exit_code=code,
            output=snippet,
        )

    crash = detect_crash(code, result.output)
    if crash is not None:
        reason = f"Child crashed: {crash.signature}"
    else:
        reason = f"Child exited with unexpected status {code}"
    raise InfrastructureFailure(reason, exit_code=code, output=snippet)


def run_and_classify(
    entry_point: str,
    extra_flags: Sequence[str] = (),
    expected: ExpectedOutcome | None = None,
    *,
    profile: DetectorProfile | None = None,
) -> CapturedResult:
    """Launch *entry_point* and classify it against *expected*.

    With no expectation any clean or report exit passes and the result is
    returned for the caller to inspect with the ``should_*`` assertions. A
    defect or crash still raises.
    """
    profile = profile or DetectorProfile()
    result = run_child(entry_point, extra_flags, profile=profile)
    return classify(result, expected or ExpectedOutcome(), profile=profile)


def run_expect_clean(
    entry_point: str,
    *extra_flags: str,
    profile: DetectorProfile | None = None,
) -> CapturedResult:
    """Expect-clean policy: exit 0 and no race report marker."""
    profile = profile or DetectorProfile()
    expected = expect_clean(profile.report_marker)
    return run_and_classify(entry_point, extra_flags, expected, profile=profile)


def run_expect_flagged(
    entry_point: str,
    *extra_flags: str,
    profile: DetectorProfile | None = None,
    contains: tuple[str, ...] = (),
    matches: tuple[str, ...] = (),
) -> CapturedResult:
    """Expect-flagged policy: the report exit code, plus optional text checks."""
    profile = profile or DetectorProfile()
    expected = expect_flagged(profile.report_exit_code, contains=contains, matches=matches)
    return run_and_classify(entry_point, extra_flags, expected, profile=profile)


def scenario_declaration(
    entry_point: str,
    *,
    profile: DetectorProfile | None = None,
) -> tuple[list[str], ExpectedOutcome]:
    """Return the flags and expected outcome the scenario declares.

    The scenario is built in this process only to read its declaration; its
    operations never run here. Default detector conventions in the outcome
    (report marker, report exit code) are rewritten to the profile's own.
    """
    from racelab.scenario import load_scenario

    profile = profile or DetectorProfile()
    scenario = load_scenario(entry_point)
    expected = scenario.expected
    exit_code = expected.exit_code
    if exit_code == REPORT_EXIT_CODE:
        exit_code = profile.report_exit_code
    not_contains = tuple(
        profile.report_marker if s == REPORT_MARKER else s for s in expected.not_contains
    )
    adapted = ExpectedOutcome(
        exit_code=exit_code,
        contains=expected.contains,
        not_contains=not_contains,
        matches=expected.matches,
    )
    return list(scenario.flags), adapted


def verify_scenario(
    entry_point: str,
    extra_flags: Sequence[str] = (),
    *,
    profile: DetectorProfile | None = None,
) -> CapturedResult:
    """Verify a scenario against the flags and outcome it declares."""
    profile = profile or DetectorProfile()
    flags, expected = scenario_declaration(entry_point, profile=profile)
    log.info("Verifying %s (%s)", entry_point, expected.describe())
    return run_and_classify(entry_point, [*flags, *extra_flags], expected, profile=profile)
