"""Child program: run exactly one scenario and exit.

Started by the verifier as ``python -m racelab.child ENTRY``. It exits 0
when the scenario ran to completion; the detector, not this program,
decides whether to force its report status on the way out. A scenario
defect terminates the process with the harness's defect status.
"""

from __future__ import annotations

import click

from racelab.harness import LOOPS, LOOPS_SYNC
from racelab.logging import get_logger, setup_logging
from racelab.scenario import load_scenario, run_scenario

log = get_logger("child")


@click.command("child")
@click.argument("entry_point")
@click.option(
    "--loops",
    type=click.IntRange(min=1),
    default=LOOPS,
    show_default=True,
    help="Iterations per thread for the continuous discipline.",
)
@click.option(
    "--loops-sync",
    type=click.IntRange(min=1),
    default=LOOPS_SYNC,
    show_default=True,
    help="Iterations of the alternating-paired discipline.",
)
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@click.option("-q", "--quiet", is_flag=True, help="Only show errors.")
def main(entry_point: str, loops: int, loops_sync: int, verbose: bool, quiet: bool) -> None:
    """Run the scenario ENTRY_POINT in this process.

    ENTRY_POINT is a registered scenario name or ``module:factory``.
    """
    setup_logging(verbose=verbose, quiet=quiet)
    try:
        scenario = load_scenario(entry_point)
    except (LookupError, TypeError) as exc:
        raise click.ClickException(str(exc)) from exc

    report = run_scenario(scenario, loops=loops, loops_sync=loops_sync)
    log.debug(
        "%s: %d/%d calls, %d primary-first, %d secondary-first, %.2fs",
        report.label,
        report.primary_calls,
        report.secondary_calls,
        report.primary_first,
        report.secondary_first,
        report.duration_s,
    )
    if scenario.epilogue is not None:
        click.echo(scenario.epilogue())


if __name__ == "__main__":
    main()
