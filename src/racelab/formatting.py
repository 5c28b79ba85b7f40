"""Shared text formatting helpers for racelab's CLI output."""

from __future__ import annotations


def format_duration(seconds: float) -> str:
    """Format seconds as a short human-readable duration.

    Examples: ``'0.4s'``, ``'8.0s'``, ``'1m 23s'``. Child runs are usually
    short, so sub-minute durations keep one decimal.
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    total = int(seconds)
    if total >= 3600:
        h = total // 3600
        m = (total % 3600) // 60
        s = total % 60
        return f"{h}h {m:2d}m {s:2d}s"
    return f"{total // 60}m {total % 60:2d}s"


def format_status_icon(status: str) -> str:
    """Return a visual indicator for a verification status."""
    icons: dict[str, str] = {
        "pass": "\u2713 PASS",
        "mismatch": "\u2717 MISMATCH",
        "defect": "\u2717 DEFECT",
        "infra": "\u26a0 INFRA",
        "raw": "\u2022 RAW",
    }
    return icons.get(status, status.upper())


def format_table(headers: list[str], rows: list[list[str]], *, indent: int = 2) -> str:
    """Format rows as a left-aligned text table with a dashed rule."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    pad = " " * indent

    def _line(cells: list[str]) -> str:
        return pad + "  ".join(c.ljust(w) for c, w in zip(cells, widths)).rstrip()

    lines = [_line(headers), pad + "  ".join("-" * w for w in widths)]
    lines.extend(_line(row) for row in rows)
    return "\n".join(lines)


def format_section_header(title: str, width: int = 80) -> str:
    """Format a section header: ``'─── Title ──...'``."""
    prefix = "\u2500\u2500\u2500 "
    suffix_len = width - len(prefix) - len(title) - 1
    return prefix + title + " " + "\u2500" * max(0, suffix_len)


def truncate(text: str, max_len: int, suffix: str = "...") -> str:
    """Truncate text to *max_len*, adding *suffix* if truncated."""
    if len(text) <= max_len:
        return text
    if max_len <= len(suffix):
        return suffix[:max_len]
    return text[: max_len - len(suffix)] + suffix
