"""Interval and motion helpers for two-voice counterpoint.

Each rule comes in two forms: a scalar predicate used by the strategies when
they test a single pitch, and a NumPy mask that answers the same question
for a whole candidate array at once, as used by
:class:`counterpoint_generator.constraints.ConstraintPipeline`. Pitches are
plain integers, so every vertical interval is ``upper - lower``. The
counterpoint never crosses below the cantus firmus, which keeps that
difference non-negative.

Example
-------
>>> is_consonant(46, 39)
True
>>> parallel_fifth_or_octave(46, 39, 48, 41)
True

Design Notes
------------
- "Perfect" and "consonant" are judged on the interval class (mod 12) so a
  twelfth counts as a fifth and a tenth as a third.
- A voice that stays put (or moves by at most two semitones) counts as
  stepping for the hidden-parallel rule, so oblique approaches are allowed.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

__all__ = [
    "CONSONANT_CLASSES",
    "PERFECT_CLASSES",
    "IMPERFECT_CLASSES",
    "STEP",
    "LARGEST_LEAP",
    "TENTH",
    "interval_class",
    "is_consonant",
    "is_perfect",
    "is_step",
    "motion",
    "parallel_fifth_or_octave",
    "hidden_parallel",
    "consonant_mask",
    "parallel_fifths_mask",
    "hidden_parallels_mask",
    "contrary_motion_mask",
]

CONSONANT_CLASSES = frozenset({0, 3, 4, 7, 8, 9})
PERFECT_CLASSES = frozenset({0, 7})
IMPERFECT_CLASSES = frozenset({3, 4, 8, 9})

STEP = 2
LARGEST_LEAP = 12
TENTH = 16

_CONSONANT_TABLE = np.array([c in CONSONANT_CLASSES for c in range(12)])
_PERFECT_TABLE = np.array([c in PERFECT_CLASSES for c in range(12)])


def interval_class(upper: int, lower: int) -> int:
    """Return the vertical interval between two pitches reduced to an octave."""

    return abs(upper - lower) % 12


def is_consonant(upper: int, lower: int) -> bool:
    return interval_class(upper, lower) in CONSONANT_CLASSES


def is_perfect(upper: int, lower: int) -> bool:
    return interval_class(upper, lower) in PERFECT_CLASSES


def is_step(a: int, b: int) -> bool:
    """Return ``True`` for motion of one or two semitones."""

    return 0 < abs(b - a) <= STEP


def motion(prev_upper: int, prev_lower: int, upper: int, lower: int) -> str:
    """Classify the motion between two successive vertical pairs.

    Returns
    -------
    str
        ``"contrary"``, ``"similar"``, ``"parallel"`` (similar motion keeping
        the same interval class), ``"oblique"`` or ``"static"``.
    """

    du = upper - prev_upper
    dl = lower - prev_lower
    if du == 0 and dl == 0:
        return "static"
    if du == 0 or dl == 0:
        return "oblique"
    if (du > 0) != (dl > 0):
        return "contrary"
    if interval_class(upper, lower) == interval_class(prev_upper, prev_lower):
        return "parallel"
    return "similar"


def parallel_fifth_or_octave(
    prev_upper: int, prev_lower: int, upper: int, lower: int
) -> bool:
    """Return ``True`` if two successive perfect intervals of one class occur.

    The rule is stricter than textbook parallel motion: any repetition of a
    fifth or octave class between neighbouring notes is rejected, whatever
    the direction of the voices.
    """

    previous = interval_class(prev_upper, prev_lower)
    return previous in PERFECT_CLASSES and interval_class(upper, lower) == previous


def hidden_parallel(
    prev_upper: int, prev_lower: int, upper: int, lower: int
) -> bool:
    """Return ``True`` for similar motion into a perfect interval without a step."""

    du = upper - prev_upper
    dl = lower - prev_lower
    if du == 0 or dl == 0 or (du > 0) != (dl > 0):
        return False
    if not is_perfect(upper, lower):
        return False
    return abs(du) > STEP and abs(dl) > STEP


def consonant_mask(candidates: np.ndarray, below: int) -> np.ndarray:
    """Boolean mask of ``candidates`` forming a consonance with ``below``."""

    return _CONSONANT_TABLE[np.abs(candidates - below) % 12]


def parallel_fifths_mask(
    candidates: np.ndarray, below: int, previous_interval: Optional[int]
) -> np.ndarray:
    """Mask of candidates that would repeat a perfect ``previous_interval``.

    ``True`` marks a forbidden candidate. ``previous_interval`` is the raw
    vertical interval in semitones. ``None`` or an imperfect interval
    forbids nothing.
    """

    if previous_interval is None or not _PERFECT_TABLE[abs(previous_interval) % 12]:
        return np.zeros(len(candidates), dtype=bool)
    return np.abs(candidates - below) % 12 == abs(previous_interval) % 12


def hidden_parallels_mask(
    candidates: np.ndarray, below: int, before: int, before_below: int
) -> np.ndarray:
    """Vectorized :func:`hidden_parallel`; ``True`` marks forbidden candidates."""

    dl = below - before_below
    if dl == 0 or abs(dl) <= STEP:
        return np.zeros(len(candidates), dtype=bool)
    du = candidates - before
    similar = (du != 0) & ((du > 0) == (dl > 0))
    perfect = _PERFECT_TABLE[np.abs(candidates - below) % 12]
    return similar & perfect & (np.abs(du) > STEP)


def contrary_motion_mask(
    candidates: np.ndarray, below: int, before: int, before_below: int
) -> np.ndarray:
    """Mask of candidates moving against the cantus firmus.

    When the cantus firmus holds its pitch every candidate qualifies since
    contrary motion is undefined.
    """

    dl = below - before_below
    if dl == 0:
        return np.ones(len(candidates), dtype=bool)
    du = candidates - before
    return du * dl < 0
