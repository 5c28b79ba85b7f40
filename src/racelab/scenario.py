"""Scenario registration surface.

A scenario is a value, not a subclass: two operations, an optional setup
hook, a discipline and the outcome the verifier should expect. Operations
usually close over state owned by the factory that built them, so each
child process builds a fresh scenario from its factory.

Scenarios are addressed by an entry point string, either a registered name
(``racy_counter``) or ``package.module:attribute`` where the attribute is a
factory returning a :class:`Scenario` or a :class:`Scenario` itself.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from typing import Any, Callable

from racelab.harness import (
    LOOPS,
    LOOPS_SYNC,
    Discipline,
    InterleavingHarness,
    InterleavingReport,
    Operation,
    ScenarioDefect,
    SetupHook,
    abort_on_defect,
)
from racelab.logging import get_logger
from racelab.outcome import ExpectedOutcome, expect_clean

log = get_logger("scenario")

ScenarioFactory = Callable[[], "Scenario"]


@dataclass
class Scenario:
    """One concurrent program and its expected verdict."""

    name: str
    primary: Operation
    secondary: Operation | None = None
    setup: SetupHook | None = None
    discipline: Discipline = Discipline.CONTINUOUS
    expected: ExpectedOutcome = field(default_factory=expect_clean)
    flags: tuple[str, ...] = ()
    epilogue: Callable[[], str] | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if self.setup is not None and self.discipline is not Discipline.ALTERNATING_PAIRED:
            raise ValueError(
                f"Scenario {self.name!r}: a setup hook needs the alternating-paired discipline"
            )

    @property
    def symmetric(self) -> bool:
        return self.secondary is None


class ScenarioRegistry:
    """Maps scenario names to factories."""

    def __init__(self) -> None:
        self._factories: dict[str, ScenarioFactory] = {}

    def register(self, name: str) -> Callable[[ScenarioFactory], ScenarioFactory]:
        """Decorator registering a zero-argument factory under *name*."""

        def decorator(factory: ScenarioFactory) -> ScenarioFactory:
            if name in self._factories:
                raise ValueError(f"Scenario {name!r} is already registered")
            self._factories[name] = factory
            return factory

        return decorator

    def get(self, name: str) -> ScenarioFactory | None:
        return self._factories.get(name)

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories


REGISTRY = ScenarioRegistry()
register = REGISTRY.register


def registered() -> list[str]:
    """Names of all registered scenarios, built-ins included."""
    _load_builtins()
    return REGISTRY.names()


def load_scenario(entry_point: str, registry: ScenarioRegistry | None = None) -> Scenario:
    """Resolve *entry_point* to a freshly built :class:`Scenario`.

    Raises:
        LookupError: If no scenario matches *entry_point*.
        TypeError: If the target is neither a Scenario nor a factory of one.
    """
    if registry is None:
        _load_builtins()
        registry = REGISTRY

    factory = registry.get(entry_point)
    if factory is not None:
        target: Any = factory
    elif ":" in entry_point:
        module_name, _, attr = entry_point.partition(":")
        try:
            module = importlib.import_module(module_name)
        except ImportError as exc:
            raise LookupError(f"Cannot import scenario module {module_name!r}: {exc}") from exc
        try:
            target = getattr(module, attr)
        except AttributeError:
            raise LookupError(f"Module {module_name!r} has no attribute {attr!r}") from None
    else:
        raise LookupError(f"Unknown scenario: {entry_point!r}")

    scenario = target if isinstance(target, Scenario) else target()
    if not isinstance(scenario, Scenario):
        raise TypeError(
            f"{entry_point!r} did not produce a Scenario, got {type(scenario).__name__}"
        )
    log.debug("Loaded scenario %s from %s", scenario.name, entry_point)
    return scenario


def run_scenario(
    scenario: Scenario,
    *,
    loops: int = LOOPS,
    loops_sync: int = LOOPS_SYNC,
    on_defect: Callable[[ScenarioDefect], Any] = abort_on_defect,
) -> InterleavingReport:
    """Run *scenario* through a fresh harness labelled with its name."""
    harness = InterleavingHarness(
        scenario.name,
        loops=loops,
        loops_sync=loops_sync,
        on_defect=on_defect,
    )
    return harness.run(scenario.discipline, scenario.primary, scenario.secondary, scenario.setup)


def _load_builtins() -> None:
    # Registration happens at import time.
    import racelab.scenarios  # noqa: F401
