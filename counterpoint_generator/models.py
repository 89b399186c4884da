"""Immutable value containers shared by the generators and exporters.

``Note`` pairs a pitch with a duration and an optional tie flag, ``Voice``
keeps notes in musical order and ``Phrase`` bundles the cantus firmus with
its counterpoint together with the parameters that produced them.

Durations use the reciprocal convention of notation software: ``1`` is a
whole note, ``2`` a half, ``4`` a quarter and ``8`` an eighth.
"""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from typing import Iterable, Iterator, Tuple

from .note_utils import HIGHEST_PITCH, LOWEST_PITCH

__all__ = ["DURATIONS", "Note", "Voice", "Phrase"]

DURATIONS = (1, 2, 4, 8)


@dataclass(frozen=True)
class Note:
    """A single pitch held for ``duration``.

    ``tie`` marks a note that is held over into the following note of the
    same pitch, which is how suspensions are written.
    """

    pitch: int
    duration: int = 1
    tie: bool = False

    def __post_init__(self) -> None:
        if not LOWEST_PITCH <= self.pitch <= HIGHEST_PITCH:
            raise ValueError(f"pitch must be between 0 and 87: {self.pitch}")
        if self.duration not in DURATIONS:
            raise ValueError(f"duration must be one of {DURATIONS}: {self.duration}")

    @property
    def length(self) -> Fraction:
        """Length of the note as a fraction of a whole note."""

        return Fraction(1, self.duration)


@dataclass(frozen=True)
class Voice:
    """Ordered sequence of :class:`Note` objects."""

    notes: Tuple[Note, ...] = ()

    @classmethod
    def from_pitches(cls, pitches: Iterable[int], duration: int = 1) -> "Voice":
        """Build a voice of equal ``duration`` notes from ``pitches``."""

        return cls(tuple(Note(int(p), duration) for p in pitches))

    @property
    def pitches(self) -> Tuple[int, ...]:
        return tuple(n.pitch for n in self.notes)

    @property
    def durations(self) -> Tuple[int, ...]:
        return tuple(n.duration for n in self.notes)

    @property
    def total_length(self) -> Fraction:
        """Sum of all note lengths in whole notes."""

        return sum((n.length for n in self.notes), Fraction(0))

    def __len__(self) -> int:
        return len(self.notes)

    def __iter__(self) -> Iterator[Note]:
        return iter(self.notes)

    def __getitem__(self, index: int) -> Note:
        return self.notes[index]


@dataclass(frozen=True)
class Phrase:
    """Two-voice result of a generation request.

    ``lead_in`` is the rest, in whole notes, that precedes the counterpoint.
    Fourth species enters on the second half of the first measure so its
    lead-in is one half.
    """

    key: str
    mode: str
    species: int
    cantus_firmus: Voice
    counterpoint: Voice
    lead_in: Fraction = Fraction(0)
