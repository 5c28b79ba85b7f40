"""racelab — regression harness for a runtime-embedded race detector."""

__version__ = "0.1.0"
