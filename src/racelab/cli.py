"""Command-line interface for racelab.

Provides the main CLI entry point with ``run``, ``child`` and ``list``
subcommands.
"""

from __future__ import annotations

import shlex
import sys
from pathlib import Path

import click

from racelab import __version__
from racelab.logging import setup_logging

# Exit status of ``racelab run`` when the environment, not the scenario, failed.
INFRA_EXIT_CODE = 3


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """racelab — Exercise a runtime's race detector with two-thread scenarios."""


from racelab.child import main as child_command  # noqa: E402

main.add_command(child_command)


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@main.command("run")
@click.argument("entry_point")
@click.option(
    "--expect",
    type=click.Choice(["scenario", "clean", "flagged", "none"]),
    default="scenario",
    show_default=True,
    help="Classification policy. 'scenario' uses the outcome the scenario declares.",
)
@click.option(
    "--flag",
    "flags",
    multiple=True,
    help="Extra interpreter flag for the child (repeatable).",
)
@click.option("--contains", multiple=True, help="Required output substring (repeatable).")
@click.option(
    "--not-contains", "not_contains", multiple=True, help="Forbidden output substring (repeatable)."
)
@click.option("--match", "matches", multiple=True, help="Required output regex (repeatable).")
@click.option("--exit-code", type=int, default=None, help="Override the expected exit code.")
@click.option(
    "--profile",
    "profile_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML detector profile.",
)
@click.option(
    "--interpreter",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Instrumented interpreter to launch (overrides the profile).",
)
@click.option(
    "--inherit-flags/--no-inherit-flags",
    default=None,
    help="Pass this interpreter's own flags down to the child.",
)
@click.option("--dry-run", is_flag=True, help="Print the child command without running it.")
@click.option("--show-output", is_flag=True, help="Print the child's full output.")
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@click.option("-q", "--quiet", is_flag=True, help="Only show errors.")
@click.option("--log-file", type=click.Path(path_type=Path), default=None)
def run_cmd(
    entry_point: str,
    expect: str,
    flags: tuple[str, ...],
    contains: tuple[str, ...],
    not_contains: tuple[str, ...],
    matches: tuple[str, ...],
    exit_code: int | None,
    profile_path: Path | None,
    interpreter: str | None,
    inherit_flags: bool | None,
    dry_run: bool,
    show_output: bool,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Run ENTRY_POINT in an instrumented child and classify the result.

    ENTRY_POINT is a registered scenario name or ``module:factory``.

    \b
    Exit status: 0 when the run matched the expectation, 1 on a
    classification mismatch or scenario defect, 3 when the child could not
    be launched or crashed.

    \b
    Examples:
        # Use the outcome the scenario declares
        racelab run racy_counter --interpreter /opt/cpython-tsan/bin/python3

        # Require a 4-byte access in the report
        racelab run racy_ctypes_int --expect flagged \\
            --match "(Read|Write) of size 4 at 0x[0-9a-fA-F]+"
    """
    from racelab.config import load_profile
    from racelab.formatting import format_duration, format_section_header, format_status_icon
    from racelab.outcome import ExpectedOutcome, expect_clean, expect_flagged
    from racelab.verifier import (
        ClassificationMismatch,
        InfrastructureFailure,
        ScenarioDefectError,
        build_command,
        run_and_classify,
        scenario_declaration,
    )

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    try:
        profile = load_profile(
            profile_path,
            cli_overrides={"interpreter": interpreter, "inherit_flags": inherit_flags},
        )
    except (ValueError, FileNotFoundError) as exc:
        raise click.ClickException(str(exc)) from exc

    child_flags = list(flags)
    if expect == "scenario":
        try:
            declared_flags, expected = scenario_declaration(entry_point, profile=profile)
        except (LookupError, TypeError) as exc:
            raise click.ClickException(str(exc)) from exc
        child_flags = [*declared_flags, *child_flags]
    elif expect == "clean":
        expected = expect_clean(profile.report_marker)
    elif expect == "flagged":
        expected = expect_flagged(profile.report_exit_code)
    else:
        expected = ExpectedOutcome()

    expected = expected.merge(
        ExpectedOutcome(
            exit_code=exit_code,
            contains=contains,
            not_contains=not_contains,
            matches=matches,
        )
    )

    if dry_run:
        click.echo(shlex.join(build_command(entry_point, child_flags, profile=profile)))
        click.echo(f"expect: {expected.describe()}")
        return

    status = "pass" if not expected.is_empty else "raw"
    exit_status = 0
    detail = ""
    output = ""
    try:
        result = run_and_classify(entry_point, child_flags, expected, profile=profile)
        output = result.output
        detail = f"exit {result.exit_code} in {format_duration(result.duration_s)}"
        kinds = result.warning_kinds
        if kinds:
            detail += f"; detector: {', '.join(kinds)}"
    except ScenarioDefectError as exc:
        status, exit_status, detail, output = "defect", 1, str(exc), exc.output
    except ClassificationMismatch as exc:
        status, exit_status, detail, output = "mismatch", 1, str(exc), exc.output
    except InfrastructureFailure as exc:
        status, exit_status, detail, output = "infra", INFRA_EXIT_CODE, str(exc), exc.output

    click.echo(f"{format_status_icon(status)}  {entry_point}")
    click.echo(f"  expect: {expected.describe()}")
    if status == "pass" or status == "raw":
        click.echo(f"  {detail}")
        if show_output and output:
            click.echo(format_section_header("child output"))
            click.echo(output.rstrip("\n"))
    else:
        click.echo(detail, err=True)

    if exit_status:
        sys.exit(exit_status)


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


@main.command("list")
@click.option("-v", "--verbose", is_flag=True, help="Include scenario descriptions.")
def list_cmd(verbose: bool) -> None:
    """List the registered scenarios."""
    from racelab.formatting import format_table, truncate
    from racelab.scenario import load_scenario, registered

    headers = ["Scenario", "Discipline", "Operations", "Expect"]
    if verbose:
        headers.append("Description")
    rows: list[list[str]] = []
    for name in registered():
        scenario = load_scenario(name)
        row = [
            name,
            scenario.discipline.value,
            "symmetric" if scenario.symmetric else "asymmetric",
            truncate(scenario.expected.describe(), 48),
        ]
        if verbose:
            row.append(truncate(scenario.description, 60))
        rows.append(row)

    if not rows:
        click.echo("No scenarios registered.")
        return
    click.echo(format_table(headers, rows))
