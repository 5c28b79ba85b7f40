"""Text helpers over the detector's diagnostic output.

The detector reports a race as a block of text::

    WARNING: ThreadSanitizer: data race (pid=4242)
      Write of size 4 at 0x7b0c00001234 by thread T2:
        #0 racy_store _ctypes/cfield.c:1234 (python+0x1a2b3c)
        ...
      Previous read of size 4 at 0x7b0c00001234 by thread T1:
        ...
    SUMMARY: ThreadSanitizer: data race _ctypes/cfield.c:1234 in racy_store

Nothing here parses that block into a structured model. The helpers build
patterns to match against it, pull out warning kinds for log lines, and cut
a bounded excerpt for failure messages.
"""

from __future__ import annotations

import re

REPORT_MARKER = "WARNING: ThreadSanitizer: data race"

# TSAN's default ``exitcode`` when at least one report was emitted.
REPORT_EXIT_CODE = 66

_TSAN_WARNING_PATTERN = re.compile(r"WARNING:\s*ThreadSanitizer:\s*(.+?)\s*\(pid=\d+\)")

_TSAN_SUMMARY_PATTERN = re.compile(r"SUMMARY:\s*ThreadSanitizer:\s*(.+)")

# Lines kept ahead of the first marker so the excerpt shows what led up to it.
_EXCERPT_LEAD_LINES = 3


def access_pattern(size: int | None = None, kind: str | None = None) -> str:
    """Regex matching a report's access line.

    ``access_pattern(4)`` matches ``Write of size 4 at 0x7b04 by thread T1``.
    *kind* restricts the access to ``"Read"`` or ``"Write"``; both are
    accepted when it is omitted. Accesses by the main thread are matched too.
    """
    if kind is not None and kind not in ("Read", "Write"):
        raise ValueError(f"kind must be 'Read' or 'Write', got {kind!r}")
    kind_re = kind if kind is not None else "(Read|Write)"
    size_re = str(size) if size is not None else "[0-9]+"
    return rf"{kind_re} of size {size_re} at 0x[0-9a-fA-F]+ by (thread T[0-9]+|main thread)"


def frame_line(index: int, symbol: str) -> str:
    """The literal prefix of stack frame *index* naming *symbol*, e.g. ``' #0 foo'``."""
    return f" #{index} {symbol}"


def has_report(output: str, marker: str = REPORT_MARKER) -> bool:
    """True if *output* contains at least one race report."""
    return marker in output


def extract_warning_kinds(output: str) -> list[str]:
    """Extract TSAN warning kinds from *output*.

    Returns a sorted, deduplicated list such as
    ``["data race", "thread leak"]``.
    """
    kinds: set[str] = set()
    for match in _TSAN_WARNING_PATTERN.finditer(output):
        kinds.add(match.group(1).strip())
    for match in _TSAN_SUMMARY_PATTERN.finditer(output):
        text = match.group(1).strip()
        kind = text.split(" in ")[0].strip()
        # "data race file.c:12" -> "data race"
        kind = re.sub(r"\s+\S+:\d+$", "", kind)
        if kind:
            kinds.add(kind)
    return sorted(kinds)


def excerpt(
    output: str,
    *,
    marker: str = REPORT_MARKER,
    max_lines: int = 40,
    max_chars: int = 4000,
) -> str:
    """Cut a bounded excerpt of *output* for a failure message.

    When the marker is present the excerpt starts a few lines before its
    first occurrence; otherwise it is the tail of the output. At most
    *max_lines* lines of *output* are kept, plus a note for each side that
    was cut. The whole result, notes included, never exceeds *max_chars*
    characters.
    """
    lines = output.splitlines()
    if len(lines) <= max_lines and len(output) <= max_chars:
        return output

    first = next((n for n, line in enumerate(lines) if marker in line), None)
    if first is not None:
        start = max(0, first - _EXCERPT_LEAD_LINES)
        chosen = lines[start : start + max_lines]
        text = "\n".join(chosen)
        omitted_before, omitted_after = start, len(lines) - start - len(chosen)
    else:
        chosen = lines[-max_lines:]
        text = "\n".join(chosen)
        omitted_before, omitted_after = len(lines) - len(chosen), 0

    before = [f"[... {omitted_before} lines omitted ...]"] if omitted_before else []
    after = [f"[... {omitted_after} lines omitted ...]"] if omitted_after else []
    budget = max(0, max_chars - sum(len(note) + 1 for note in before + after))
    if len(text) > budget:
        text = text[:budget] if first is not None else text[len(text) - budget :]
    return "\n".join([*before, text, *after])[:max_chars]
