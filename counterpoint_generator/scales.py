"""Scale/key provider.

A generation request names a key and a mode. :func:`scale_context` turns the
pair into a :class:`ScaleContext` holding the tonic pitch and every diatonic
pitch on the keyboard so later stages can ask "is this pitch in the key?" or
"which degree lies a step above?" without recomputing the scale.

Example
-------
>>> ctx = scale_context("C", "major")
>>> ctx.tonic
39
>>> ctx.step_above(39)
41

Design Notes
------------
- Tonics sit around middle C so that a cantus firmus spanning a tenth and a
  counterpoint a tenth above it both stay comfortably on the keyboard.
- Only the twelve keys below are recognised. Enharmonic spellings such as
  ``C#`` or ``Gb`` are rejected rather than guessed.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional, Tuple

import numpy as np

from .errors import ConfigurationError
from .note_utils import HIGHEST_PITCH, LOWEST_PITCH

__all__ = [
    "KEY_TONICS",
    "MODE_PATTERNS",
    "ScaleContext",
    "canonical_key",
    "canonical_mode",
    "key_prefers_flats",
    "scale_context",
]

# Tonic pitch index (0 = A0) for each supported key.
KEY_TONICS: Dict[str, int] = {
    "C": 39,  # C4
    "Db": 40,  # Db4
    "D": 41,  # D4
    "Eb": 42,  # Eb4
    "E": 43,  # E4
    "F": 44,  # F4
    "F#": 45,  # F#4
    "G": 34,  # G3
    "Ab": 35,  # Ab3
    "A": 36,  # A3
    "Bb": 37,  # Bb3
    "B": 38,  # B3
}

MODE_PATTERNS: Dict[str, Tuple[int, ...]] = {
    "major": (0, 2, 4, 5, 7, 9, 11),
    "minor": (0, 2, 3, 5, 7, 8, 10),
}

CANONICAL_KEYS = {name.lower(): name for name in KEY_TONICS}

# Keys whose signatures carry flats in addition to every key spelled with a
# ``b``. Everything else is spelled with sharps.
_FLAT_MAJOR_KEYS = {"F"}
_FLAT_MINOR_KEYS = {"D", "G", "C", "F"}


@lru_cache(maxsize=None)
def canonical_key(name: str) -> str:
    """Return the canonical capitalization for ``name``.

    Parameters
    ----------
    name:
        Musical key provided by the user. Case-insensitive.

    Returns
    -------
    str
        Key from :data:`KEY_TONICS` matching ``name``.

    Raises
    ------
    ConfigurationError
        If ``name`` is not one of the twelve supported keys.
    """

    key = CANONICAL_KEYS.get(str(name).strip().lower())
    if key is None:
        raise ConfigurationError(f"Unknown key: {name}")
    return key


@lru_cache(maxsize=None)
def canonical_mode(name: str) -> str:
    """Return ``"major"`` or ``"minor"`` for ``name`` or raise ``ConfigurationError``."""

    mode = str(name).strip().lower()
    if mode not in MODE_PATTERNS:
        raise ConfigurationError(f"Unknown mode: {name}")
    return mode


def key_prefers_flats(key: str, mode: str = "major") -> bool:
    """Return ``True`` when ``key`` in ``mode`` is traditionally spelled with flats."""

    key = canonical_key(key)
    if "b" in key:
        return True
    if canonical_mode(mode) == "minor":
        return key in _FLAT_MINOR_KEYS
    return key in _FLAT_MAJOR_KEYS


@dataclass(frozen=True)
class ScaleContext:
    """Tonic plus every diatonic pitch of a key across the keyboard.

    ``degrees`` is sorted ascending so neighbouring entries are a scale step
    apart, which is what the cantus firmus and species generators mean by
    "stepwise".
    """

    key: str
    mode: str
    tonic: int
    pattern: Tuple[int, ...]
    degrees: Tuple[int, ...]

    def contains(self, pitch: int) -> bool:
        """Return ``True`` if ``pitch`` is diatonic to the key."""

        idx = bisect.bisect_left(self.degrees, pitch)
        return idx < len(self.degrees) and self.degrees[idx] == pitch

    def index(self, pitch: int) -> int:
        """Return the position of ``pitch`` in :attr:`degrees`.

        Raises
        ------
        ValueError
            If ``pitch`` is not diatonic.
        """

        if not self.contains(pitch):
            raise ValueError(f"pitch {pitch} is not in {self.key} {self.mode}")
        return bisect.bisect_left(self.degrees, pitch)

    def step_above(self, pitch: int) -> Optional[int]:
        """Return the nearest scale pitch strictly above ``pitch`` if any."""

        idx = bisect.bisect_right(self.degrees, pitch)
        return self.degrees[idx] if idx < len(self.degrees) else None

    def step_below(self, pitch: int) -> Optional[int]:
        """Return the nearest scale pitch strictly below ``pitch`` if any."""

        idx = bisect.bisect_left(self.degrees, pitch)
        return self.degrees[idx - 1] if idx > 0 else None

    def is_step(self, a: int, b: int) -> bool:
        """Return ``True`` when ``a`` and ``b`` are adjacent scale degrees."""

        if not (self.contains(a) and self.contains(b)):
            return False
        return abs(self.index(a) - self.index(b)) == 1

    def between(self, low: int, high: int) -> Tuple[int, ...]:
        """Return the scale pitches in the inclusive range ``[low, high]``."""

        lo = bisect.bisect_left(self.degrees, low)
        hi = bisect.bisect_right(self.degrees, high)
        return self.degrees[lo:hi]

    def degree_array(self, low: int, high: int) -> np.ndarray:
        """Return :meth:`between` as an integer NumPy array."""

        return np.asarray(self.between(low, high), dtype=np.int64)

    def octave_degrees(self) -> Tuple[int, ...]:
        """The seven degrees of the octave starting on the tonic."""

        return tuple(self.tonic + offset for offset in self.pattern)


def _build_degrees(tonic: int, pattern: Tuple[int, ...]) -> Tuple[int, ...]:
    pitch_classes = {(tonic + offset) % 12 for offset in pattern}
    return tuple(
        p for p in range(LOWEST_PITCH, HIGHEST_PITCH + 1) if p % 12 in pitch_classes
    )


def scale_context(key: str, mode: str = "major") -> ScaleContext:
    """Return the :class:`ScaleContext` for ``key`` and ``mode``.

    Parameters
    ----------
    key:
        One of the twelve supported key names, any capitalization.
    mode:
        ``"major"`` or ``"minor"`` (natural minor).

    Returns
    -------
    ScaleContext
        Immutable scale description. Results are cached so repeated requests
        for the same key share one instance.

    Raises
    ------
    ConfigurationError
        For an unknown key or mode.
    """

    return _cached_scale(canonical_key(key), canonical_mode(mode))


@lru_cache(maxsize=None)
def _cached_scale(key: str, mode: str) -> ScaleContext:
    tonic = KEY_TONICS[key]
    pattern = MODE_PATTERNS[mode]
    return ScaleContext(key, mode, tonic, pattern, _build_degrees(tonic, pattern))
