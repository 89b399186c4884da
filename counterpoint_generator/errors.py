"""Exception types raised by the counterpoint generator.

Only :class:`ConfigurationError` ever reaches callers. ``GenerationExhausted``
is raised and caught inside :mod:`counterpoint_generator.cantus_firmus` so the
bounded retry loop can hand over to the deterministic skeleton melody.
"""

from __future__ import annotations

__all__ = ["ConfigurationError", "GenerationExhausted"]


class ConfigurationError(ValueError):
    """Raised for an unsupported key, mode or phrase length.

    Subclassing :class:`ValueError` keeps the error compatible with callers
    that already guard user input with ``except ValueError``.
    """


class GenerationExhausted(RuntimeError):
    """Raised when the cantus firmus retry bound is reached."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"no valid cantus firmus after {attempts} attempts")
        self.attempts = attempts
