"""Crash detection for child interpreter runs.

A child that dies on a signal, or whose output shows the runtime itself
going down, did not reach a verdict. The verifier uses :func:`detect_crash`
to label such runs as infrastructure failures instead of letting them pass
for a missing race report.
"""

from __future__ import annotations

import re
import signal as _signal
from dataclasses import dataclass

from racelab.logging import get_logger

log = get_logger("crash")

# Shell-style exit statuses for signal deaths (128 + signal number).
_SIGNAL_EXIT_CODES: dict[int, int] = {
    134: _signal.SIGABRT,
    139: _signal.SIGSEGV,
}

# Each tuple is (compiled_regex, implied_signal). The first match wins.
_CRASH_PATTERNS: list[tuple[re.Pattern[str], int]] = [
    (re.compile(r"ThreadSanitizer:\s*SEGV", re.IGNORECASE), _signal.SIGSEGV),
    (re.compile(r"ThreadSanitizer:DEADLYSIGNAL"), _signal.SIGSEGV),
    (re.compile(r"Segmentation fault", re.IGNORECASE), _signal.SIGSEGV),
    (re.compile(r"Fatal Python error:", re.IGNORECASE), _signal.SIGABRT),
    (re.compile(r"Assertion .+ failed", re.IGNORECASE), _signal.SIGABRT),
    # Only at line start, so "was aborted" in ordinary text does not count.
    (re.compile(r"^Aborted", re.MULTILINE), _signal.SIGABRT),
]


@dataclass
class CrashInfo:
    """A crash observed in a child run."""

    signal_number: int
    signal_name: str
    signature: str


def detect_crash(exit_code: int, output: str) -> CrashInfo | None:
    """Return crash details if the run died rather than exiting.

    A run is a crash when *exit_code* is negative (killed by a signal), is a
    shell-style signal status (134, 139), or when *output* carries one of the
    known crash banners.
    """
    sig_num = _signal_from_exit_code(exit_code)
    matched_line = ""

    for pattern, implied in _CRASH_PATTERNS:
        match = pattern.search(output)
        if match is None:
            continue
        start = output.rfind("\n", 0, match.start()) + 1
        end = output.find("\n", match.end())
        if end == -1:
            end = len(output)
        matched_line = output[start:end].strip()
        if sig_num == 0:
            sig_num = implied
        break

    if sig_num == 0:
        return None

    name = signal_name(sig_num)
    signature = f"{name}: {matched_line}" if matched_line else name
    log.debug("Crash detected: %s", signature)
    return CrashInfo(signal_number=sig_num, signal_name=name, signature=signature)


def signal_name(signal_number: int) -> str:
    """Convert a signal number to its name, or ``"SIG<N>"`` if unknown."""
    try:
        return _signal.Signals(signal_number).name
    except ValueError:
        return f"SIG{signal_number}"


def _signal_from_exit_code(exit_code: int) -> int:
    if exit_code < 0:
        return -exit_code
    return _SIGNAL_EXIT_CODES.get(exit_code, 0)
