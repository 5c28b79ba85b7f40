"""Two-thread interleaving harness.

Runs a pair of operations concurrently in one of two fixed shapes:

- Continuous: each operation loops ``LOOPS`` times in its own long-lived
  thread. Nothing orders the two threads beyond start and join, which
  maximises the number of racing accesses the detector gets to see.
- Alternating-Paired: ``LOOPS_SYNC`` iterations, each with a setup call and
  a fresh thread pair. Even iterations start the primary thread first, odd
  iterations start the secondary thread first, and both are joined before
  the next setup runs.

An exception escaping an operation is a bug in the scenario, not a verdict.
Each thread keeps whatever escaped in its own slot and posts it back to the
harness, which hands a :class:`ScenarioDefect` to its defect sink right away,
without joining the peer thread first. The default sink terminates the
process with :data:`DEFECT_EXIT_CODE`.
"""

from __future__ import annotations

import enum
import os
import queue
import sys
import threading
import time
import traceback
from dataclasses import dataclass
from typing import Any, Callable, NoReturn

from racelab.logging import get_logger

log = get_logger("harness")

LOOPS = 50000
LOOPS_SYNC = 500

# Distinct from 0 (clean), 1 (uncaught error in the main thread) and the
# detector's report code.
DEFECT_EXIT_CODE = 70

Operation = Callable[[int], Any]
SetupHook = Callable[[int], Any]


class Discipline(enum.Enum):
    """The two execution shapes a scenario can select."""

    CONTINUOUS = "continuous"
    ALTERNATING_PAIRED = "alternating_paired"


class ScenarioDefect(Exception):
    """An operation raised inside a harness-managed thread."""

    def __init__(self, label: str, thread_name: str, error: BaseException) -> None:
        self.label = label
        self.thread_name = thread_name
        self.error = error
        super().__init__(
            f"Uncaught exception in thread {thread_name} ({label}): "
            f"{type(error).__name__}: {error}"
        )


@dataclass
class InterleavingReport:
    """What a single harness call did."""

    label: str
    discipline: Discipline
    iterations: int
    primary_calls: int = 0
    secondary_calls: int = 0
    primary_first: int = 0
    secondary_first: int = 0
    duration_s: float = 0.0


def abort_on_defect(defect: ScenarioDefect) -> NoReturn:
    """Default defect sink: report to stderr and terminate the process.

    Uses ``os._exit`` so that nothing (atexit handlers, non-daemon threads,
    a caller catching SystemExit) can turn the defect into a clean exit.
    """
    sys.stderr.write(f"{defect}\n")
    traceback.print_exception(
        type(defect.error), defect.error, defect.error.__traceback__, file=sys.stderr
    )
    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(DEFECT_EXIT_CODE)


class _OperationThread(threading.Thread):
    """Calls one operation over a range of indices, keeping any escape.

    Exactly one ``(name, error)`` message is posted to *channel* when the
    thread finishes; ``error`` is None when every call returned.
    """

    def __init__(
        self,
        name: str,
        operation: Operation,
        indices: range,
        channel: queue.SimpleQueue[tuple[str, BaseException | None]],
        stop: threading.Event,
    ) -> None:
        # Daemon, so a peer stuck waiting on a failed thread cannot keep the
        # process alive once the defect has been reported.
        super().__init__(name=name, daemon=True)
        self._operation = operation
        self._indices = indices
        self.channel = channel
        self.stop = stop
        self.calls = 0
        self.error: BaseException | None = None

    def run(self) -> None:
        try:
            for i in self._indices:
                if self.stop.is_set():
                    break
                self._operation(i)
                self.calls += 1
        except BaseException as exc:  # noqa: BLE001 - posted back to the harness
            self.error = exc
        finally:
            self.channel.put((self.name, self.error))


class InterleavingHarness:
    """Runs two operations concurrently under a chosen discipline.

    Args:
        label: Name used in log lines, thread names and defect messages.
        loops: Iterations per thread in the continuous discipline.
        loops_sync: Iterations of the alternating-paired discipline.
        on_defect: Called with the :class:`ScenarioDefect` as soon as an
            operation raises, without waiting for the other thread. If it
            returns, the harness raises the defect itself.
    """

    def __init__(
        self,
        label: str = "scenario",
        *,
        loops: int = LOOPS,
        loops_sync: int = LOOPS_SYNC,
        on_defect: Callable[[ScenarioDefect], Any] = abort_on_defect,
    ) -> None:
        if loops < 1:
            raise ValueError(f"loops must be >= 1, got {loops}")
        if loops_sync < 1:
            raise ValueError(f"loops_sync must be >= 1, got {loops_sync}")
        self.label = label
        self.loops = loops
        self.loops_sync = loops_sync
        self.on_defect = on_defect

    def run(
        self,
        discipline: Discipline,
        primary: Operation,
        secondary: Operation | None = None,
        setup: SetupHook | None = None,
    ) -> InterleavingReport:
        """Dispatch to the runner for *discipline*."""
        if discipline is Discipline.CONTINUOUS:
            if setup is not None:
                log.debug("%s: setup hook ignored by the continuous discipline", self.label)
            return self.run_continuous(primary, secondary)
        return self.run_alternating_paired(primary, secondary, setup)

    def run_continuous(
        self,
        primary: Operation,
        secondary: Operation | None = None,
    ) -> InterleavingReport:
        """Loop both operations ``loops`` times in two concurrent threads."""
        if secondary is None:
            secondary = primary
        report = InterleavingReport(
            label=self.label,
            discipline=Discipline.CONTINUOUS,
            iterations=self.loops,
        )
        log.info("Begin %s", self.label)
        start = time.monotonic()

        t1, t2 = self._pair(
            f"{self.label}-primary",
            primary,
            f"{self.label}-secondary",
            secondary,
            range(self.loops),
        )
        t1.start()
        t2.start()
        self._await_pair(t1, t2)

        report.primary_calls = t1.calls
        report.secondary_calls = t2.calls
        report.duration_s = time.monotonic() - start
        log.info("End   %s", self.label)
        return report

    def run_alternating_paired(
        self,
        primary: Operation,
        secondary: Operation | None = None,
        setup: SetupHook | None = None,
    ) -> InterleavingReport:
        """Run ``loops_sync`` setup-then-pair iterations, alternating start order."""
        if secondary is None:
            secondary = primary
        report = InterleavingReport(
            label=self.label,
            discipline=Discipline.ALTERNATING_PAIRED,
            iterations=self.loops_sync,
        )
        log.info("Begin %s", self.label)
        start = time.monotonic()

        for i in range(self.loops_sync):
            if setup is not None:
                try:
                    setup(i)
                except BaseException as exc:  # noqa: BLE001 - same contract as operations
                    self._report_defect(f"{self.label}-setup-{i}", exc)

            t1, t2 = self._pair(
                f"{self.label}-primary-{i}",
                primary,
                f"{self.label}-secondary-{i}",
                secondary,
                range(i, i + 1),
            )
            if i % 2 == 0:
                t1.start()
                t2.start()
                report.primary_first += 1
            else:
                t2.start()
                t1.start()
                report.secondary_first += 1
            self._await_pair(t1, t2)

            report.primary_calls += t1.calls
            report.secondary_calls += t2.calls

        report.duration_s = time.monotonic() - start
        log.info("End   %s", self.label)
        return report

    @staticmethod
    def _pair(
        first_name: str,
        first: Operation,
        second_name: str,
        second: Operation,
        indices: range,
    ) -> tuple[_OperationThread, _OperationThread]:
        channel: queue.SimpleQueue[tuple[str, BaseException | None]] = queue.SimpleQueue()
        stop = threading.Event()
        return (
            _OperationThread(first_name, first, indices, channel, stop),
            _OperationThread(second_name, second, indices, channel, stop),
        )

    def _await_pair(self, t1: _OperationThread, t2: _OperationThread) -> None:
        # Each thread posts once; a defect is reported on arrival, while the
        # peer may still be running or blocked on the thread that failed.
        for _ in range(2):
            thread_name, error = t1.channel.get()
            if error is not None:
                t1.stop.set()
                self._report_defect(thread_name, error)
        t1.join()
        t2.join()

    def _report_defect(self, thread_name: str, error: BaseException) -> NoReturn:
        defect = ScenarioDefect(self.label, thread_name, error)
        log.error("%s", defect)
        self.on_defect(defect)
        raise defect from error
