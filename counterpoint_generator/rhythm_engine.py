"""Measure rhythms for florid (fifth species) counterpoint.

Florid counterpoint mixes the note values of the first four species. This
module chooses, for every cantus firmus note, one rhythm from a small
library of idiomatic measure patterns. Choosing the rhythm for the whole
phrase before any pitch is picked mirrors the way the other species work
from a fixed slot layout: the strategy in
:mod:`counterpoint_generator.fifth_species` only has to fill the slots.

Durations use the same note-value numbers as :class:`~counterpoint_generator.models.Note`
(``1`` whole, ``2`` half, ``4`` quarter, ``8`` eighth) and every pattern
fills exactly one measure.
"""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

__all__ = [
    "RHYTHM_PATTERNS",
    "PATTERN_WEIGHTS",
    "CLIMAX_DENSITY_BONUS",
    "SYNCOPATION_PROBABILITY",
    "MeasureRhythm",
    "FloridRhythmGenerator",
]

RHYTHM_PATTERNS: Dict[str, Tuple[int, ...]] = {
    "whole": (1,),
    "halves": (2, 2),
    "quarters": (4, 4, 4, 4),
    "half_quarters": (2, 4, 4),
    "quarters_half": (4, 4, 2),
    "mixed": (4, 8, 8, 2),
}

# Base likelihood of each pattern in the middle of a phrase.
PATTERN_WEIGHTS: Dict[str, float] = {
    "whole": 1.0,
    "halves": 3.0,
    "quarters": 2.0,
    "half_quarters": 2.0,
    "quarters_half": 2.0,
    "mixed": 1.0,
}

# Patterns with three or more notes get this factor next to the climax.
CLIMAX_DENSITY_BONUS = 2.0
SYNCOPATION_PROBABILITY = 0.5

_OPENING = ("halves",)
_PENULTIMATE = ("halves", "quarters_half")
_CLOSING = ("whole",)
_AFTER_SYNCOPATION = ("halves", "half_quarters")


@dataclass(frozen=True)
class MeasureRhythm:
    """Rhythm of one measure.

    ``syncopated`` marks a halves measure whose second half is tied into
    the next measure.
    """

    name: str
    durations: Tuple[int, ...]
    syncopated: bool = False

    @property
    def offsets(self) -> Tuple[Fraction, ...]:
        """Start of every note in whole notes from the barline."""

        offsets = []
        position = Fraction(0)
        for duration in self.durations:
            offsets.append(position)
            position += Fraction(1, duration)
        return tuple(offsets)


class FloridRhythmGenerator:
    """Plan one :class:`MeasureRhythm` per cantus firmus note.

    Parameters
    ----------
    rng:
        Injected random generator used for every choice.
    """

    def __init__(self, rng: np.random.Generator) -> None:
        self.rng = rng

    def choose(
        self,
        previous: Optional[str] = None,
        near_climax: bool = False,
        allowed: Sequence[str] = tuple(RHYTHM_PATTERNS),
    ) -> str:
        """Return the name of a pattern drawn from ``allowed``.

        The ``previous`` pattern is avoided unless nothing else is allowed.
        Denser patterns are favoured when ``near_climax`` is set.
        """

        names = [name for name in allowed if name != previous] or list(allowed)
        weights = np.array([PATTERN_WEIGHTS[name] for name in names], dtype=float)
        if near_climax:
            dense = np.array([len(RHYTHM_PATTERNS[name]) >= 3 for name in names])
            weights[dense] *= CLIMAX_DENSITY_BONUS
        return str(self.rng.choice(names, p=weights / weights.sum()))

    def plan(self, length: int, climax_index: int) -> List[MeasureRhythm]:
        """Return the rhythm of every measure in a phrase of ``length`` measures.

        The first measure moves in halves and the last is a whole note. The
        penultimate measure ends on a half note so the cadence pitch has
        weight. A syncopated measure is never planned where its tie would run
        into the penultimate measure.
        """

        if length <= 0:
            return []
        if length == 1:
            return [MeasureRhythm("whole", RHYTHM_PATTERNS["whole"])]

        measures: List[MeasureRhythm] = []
        previous: Optional[str] = None
        syncopated = False
        for k in range(length):
            if k == length - 1:
                allowed = _CLOSING
            elif k == 0:
                allowed = _OPENING
            elif k == length - 2:
                allowed = _PENULTIMATE
            elif syncopated:
                allowed = _AFTER_SYNCOPATION
            else:
                allowed = tuple(RHYTHM_PATTERNS)
            name = self.choose(previous, abs(k - climax_index) <= 1, allowed)
            syncopated = (
                name == "halves"
                and k + 1 <= length - 3
                and self.rng.random() < SYNCOPATION_PROBABILITY
            )
            measures.append(MeasureRhythm(name, RHYTHM_PATTERNS[name], syncopated))
            previous = name
        return measures
