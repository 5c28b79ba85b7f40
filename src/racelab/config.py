"""Detector profiles: how to launch an instrumented child interpreter.

A profile names the interpreter to run (normally a TSAN-instrumented CPython
build), the flags and environment that switch the detector on, and the
conventions the detector uses to signal a report. Profiles can be written
as YAML::

    # tsan.yaml
    interpreter: /opt/cpython-tsan/bin/python3
    enable_flags: ["-X", "faulthandler"]
    env:
      TSAN_OPTIONS: "exitcode=66 halt_on_error=0"
      PYTHON_GIL: "0"
    report_marker: "WARNING: ThreadSanitizer: data race"
    report_exit_code: 66
    excerpt_lines: 40
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from racelab.harness import DEFECT_EXIT_CODE
from racelab.logging import get_logger
from racelab.reports import REPORT_EXIT_CODE, REPORT_MARKER

log = get_logger("config")

DEFAULT_TSAN_OPTIONS = f"exitcode={REPORT_EXIT_CODE}"


@dataclass
class DetectorProfile:
    """Launch conventions for an instrumented child interpreter."""

    interpreter: str = field(default_factory=lambda: sys.executable)
    inherit_flags: bool = True
    enable_flags: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=lambda: {"TSAN_OPTIONS": DEFAULT_TSAN_OPTIONS})
    launcher: list[str] = field(default_factory=lambda: ["-m", "racelab.child"])
    report_marker: str = REPORT_MARKER
    report_exit_code: int = REPORT_EXIT_CODE
    defect_exit_code: int = DEFECT_EXIT_CODE
    excerpt_lines: int = 40

    def validate(self) -> list[str]:
        """Validate the profile. Returns a list of error messages."""
        errors: list[str] = []
        if not self.interpreter:
            errors.append("No interpreter configured")
        elif not Path(self.interpreter).exists():
            errors.append(f"Interpreter not found: {self.interpreter}")
        if not self.report_marker:
            errors.append("report_marker must not be empty")
        if self.report_exit_code == 0:
            errors.append("report_exit_code must be non-zero")
        if self.defect_exit_code in (0, self.report_exit_code):
            errors.append(
                f"defect_exit_code {self.defect_exit_code} collides with "
                "the clean or report exit code"
            )
        if self.excerpt_lines < 1:
            errors.append(f"excerpt_lines must be >= 1, got {self.excerpt_lines}")
        return errors

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_profile_file(profile_path: Path) -> dict[str, Any]:
    """Load a YAML detector profile as a dict.

    Raises:
        FileNotFoundError: If *profile_path* does not exist.
        ValueError: If the file is not a YAML mapping.
    """
    import yaml

    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_path}")

    data = yaml.safe_load(profile_path.read_text(encoding="utf-8"))
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Profile must be a YAML mapping, got {type(data).__name__}")
    return data


def profile_from_mapping(
    data: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> DetectorProfile:
    """Build a :class:`DetectorProfile` from parsed YAML.

    Unknown keys are rejected. Non-``None`` values in *cli_overrides* take
    precedence over the mapping.
    """
    known = {f.name for f in fields(DetectorProfile)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown profile keys: {', '.join(unknown)}")

    merged = dict(data)
    for key, value in (cli_overrides or {}).items():
        if value is not None:
            merged[key] = value

    for key in ("enable_flags", "launcher"):
        if key in merged and not isinstance(merged[key], list):
            raise ValueError(f"Profile '{key}' must be a list of strings")
    if "env" in merged:
        env = merged["env"] or {}
        if not isinstance(env, dict):
            raise ValueError("Profile 'env' must be a mapping of NAME -> value")
        merged["env"] = {str(k): str(v) for k, v in env.items()}
    for key in ("enable_flags", "launcher"):
        if key in merged:
            merged[key] = [str(v) for v in merged[key]]
    if "interpreter" in merged:
        merged["interpreter"] = str(merged["interpreter"])

    return DetectorProfile(**merged)


def load_profile(
    profile_path: Path | None = None,
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> DetectorProfile:
    """Load, merge and validate a detector profile.

    With no *profile_path* the built-in defaults are used (the running
    interpreter, ``TSAN_OPTIONS=exitcode=66``).

    Raises:
        ValueError: If the resulting profile does not validate.
    """
    data = load_profile_file(profile_path) if profile_path is not None else {}
    profile = profile_from_mapping(data, cli_overrides=cli_overrides)
    errors = profile.validate()
    if errors:
        for e in errors:
            log.error("Profile error: %s", e)
        raise ValueError(f"Invalid detector profile: {'; '.join(errors)}")
    log.debug("Detector profile: %s", profile.to_dict())
    return profile
