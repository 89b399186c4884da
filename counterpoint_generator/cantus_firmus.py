"""Cantus firmus generation.

The cantus firmus is the fixed melody every species of counterpoint is
written against. :class:`CantusFirmusGenerator` builds one by random
generate-and-test: each attempt walks up towards a climax near the middle of
the phrase and back down to the tonic, then the finished line is checked
against the melodic rules in :func:`cantus_firmus_violations`. Attempts are
bounded so generation always terminates; when the bound is reached a fixed
skeleton melody is returned instead.

Example
-------
>>> import numpy as np
>>> from counterpoint_generator.scales import scale_context
>>> gen = CantusFirmusGenerator(scale_context("C"), np.random.default_rng(1))
>>> voice = gen.generate(8)
>>> voice.pitches[0] == voice.pitches[-1] == 39
True

Design Notes
------------
- All randomness comes from the injected ``numpy.random.Generator`` so a
  seed fully determines the melody.
- Candidate motion is deliberately narrow (at most a fourth per note) which
  keeps the acceptance rate high enough that the retry bound is rarely hit.
- The penultimate note is corrected to a step above or below the tonic
  rather than rejecting an otherwise good attempt. The corrected line is
  validated again so the fix cannot smuggle in a bad leap.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

from .errors import ConfigurationError, GenerationExhausted
from .models import Voice
from .scales import ScaleContext

__all__ = [
    "MIN_LENGTH",
    "MAX_LENGTH",
    "MAX_ATTEMPTS",
    "STEPWISE_PROBABILITY",
    "CantusFirmusGenerator",
    "cantus_firmus_violations",
    "is_valid_cantus_firmus",
    "skeleton_cantus_firmus",
    "generate_cantus_firmus",
]

MIN_LENGTH = 5
MAX_LENGTH = 12
MAX_RANGE = 16
MAX_ATTEMPTS = 1000
STEPWISE_PROBABILITY = 0.7

# Three moves in one direction make a run of four notes, the longest allowed.
MAX_RUN_MOVES = 3
MAX_CONSECUTIVE_LEAPS = 2
LEAP = 2
LARGEST_LEAP = 12

# Melodic interval classes a cantus firmus never sounds: tritone, minor and
# major seventh.
FORBIDDEN_MELODIC_CLASSES = frozenset({6, 10, 11})
TRITONE = 6

# Zero-based scale degrees 1-3-5-6-5-3-2-1.
SKELETON_DEGREES = (0, 2, 4, 5, 4, 2, 1, 0)


def _moves(pitches: Sequence[int]) -> List[int]:
    return [b - a for a, b in zip(pitches, pitches[1:])]


def _longest_run(moves: Sequence[int]) -> int:
    """Return the largest number of consecutive moves sharing a direction."""

    longest = current = 0
    direction = 0
    for move in moves:
        sign = (move > 0) - (move < 0)
        if sign != 0 and sign == direction:
            current += 1
        else:
            current = 1 if sign != 0 else 0
        direction = sign
        longest = max(longest, current)
    return longest


def _longest_leap_chain(moves: Sequence[int]) -> int:
    longest = current = 0
    for move in moves:
        current = current + 1 if abs(move) > LEAP else 0
        longest = max(longest, current)
    return longest


def _turning_points(pitches: Sequence[int]) -> List[int]:
    """Indices of the endpoints and every strict local extremum."""

    last = len(pitches) - 1
    points = []
    for i, pitch in enumerate(pitches):
        if i in (0, last):
            points.append(i)
        elif (pitch - pitches[i - 1]) * (pitches[i + 1] - pitch) < 0:
            points.append(i)
    return points


def _outlines_tritone(pitches: Sequence[int]) -> bool:
    points = _turning_points(pitches)
    for n, i in enumerate(points):
        for j in points[n + 1:]:
            if j - i >= 2 and abs(pitches[j] - pitches[i]) % 12 == TRITONE:
                return True
    return False


def cantus_firmus_violations(pitches: Sequence[int], scale: ScaleContext) -> List[str]:
    """Return the names of every melodic rule ``pitches`` breaks.

    Parameters
    ----------
    pitches:
        Candidate cantus firmus as pitch indices.
    scale:
        Scale the melody is meant to be in.

    Returns
    -------
    list of str
        Empty when the melody is acceptable. Otherwise one entry per failed
        rule, e.g. ``["climax", "large_leap"]``, which keeps rejection reasons
        visible in debug logs and tests.
    """

    problems: List[str] = []
    n = len(pitches)
    if not MIN_LENGTH <= n <= MAX_LENGTH:
        problems.append("length")
    if n == 0:
        return problems
    if any(not scale.contains(p) for p in pitches):
        problems.append("out_of_key")
    if pitches[0] != scale.tonic:
        problems.append("tonic_start")
    if pitches[-1] != scale.tonic:
        problems.append("tonic_end")
    if max(pitches) - min(pitches) > MAX_RANGE:
        problems.append("range")

    peak = max(pitches)
    peak_index = list(pitches).index(peak)
    if list(pitches).count(peak) != 1 or not n // 4 <= peak_index <= (3 * n) // 4:
        problems.append("climax")

    moves = _moves(pitches)
    if _longest_run(moves) > MAX_RUN_MOVES:
        problems.append("monotonic_run")
    if _longest_leap_chain(moves) > MAX_CONSECUTIVE_LEAPS:
        problems.append("consecutive_leaps")
    if any(abs(m) % 12 in FORBIDDEN_MELODIC_CLASSES for m in moves):
        problems.append("dissonant_leap")
    if any(abs(m) > LARGEST_LEAP for m in moves):
        problems.append("large_leap")
    for a, b in zip(pitches, pitches[1:]):
        # Within a diatonic scale three semitones must span two degrees;
        # anything else would be an augmented second.
        if abs(b - a) == 3 and scale.contains(a) and scale.contains(b):
            if abs(scale.index(b) - scale.index(a)) != 2:
                problems.append("augmented_second")
                break
    if _outlines_tritone(pitches):
        problems.append("outlined_tritone")
    if n >= 2 and not scale.is_step(pitches[-2], pitches[-1]):
        problems.append("cadence_step")
    return problems


def is_valid_cantus_firmus(pitches: Sequence[int], scale: ScaleContext) -> bool:
    """Return ``True`` when ``pitches`` satisfies every cantus firmus rule."""

    return not cantus_firmus_violations(pitches, scale)


def skeleton_cantus_firmus(scale: ScaleContext, length: int) -> List[int]:
    """Return the deterministic fallback melody for ``length`` notes.

    The degrees 1-3-5-6-5-3-2-1 are cycled or truncated to ``length`` and the
    final note is forced onto the tonic.
    """

    octave = scale.octave_degrees()
    pitches = [
        octave[SKELETON_DEGREES[i % len(SKELETON_DEGREES)]] for i in range(length)
    ]
    if pitches:
        pitches[-1] = scale.tonic
    return pitches


class CantusFirmusGenerator:
    """Generate cantus firmus melodies for a single scale.

    Attributes
    ----------
    attempts:
        Number of attempts used by the most recent :meth:`generate` call.
    used_fallback:
        ``True`` when the most recent call returned the skeleton melody.
    """

    def __init__(
        self,
        scale: ScaleContext,
        rng: np.random.Generator,
        *,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self.scale = scale
        self.rng = rng
        self.max_attempts = max_attempts
        self.attempts = 0
        self.used_fallback = False

    def generate(self, length: int) -> Voice:
        """Return a cantus firmus of ``length`` whole notes.

        Lengths outside ``MIN_LENGTH``-``MAX_LENGTH`` cannot satisfy the
        validation rules, so they go straight to the skeleton melody.

        Raises
        ------
        ConfigurationError
            If ``length`` is smaller than one.
        """

        if length < 1:
            raise ConfigurationError(f"length must be positive: {length}")
        self.attempts = 0
        self.used_fallback = False
        if not MIN_LENGTH <= length <= MAX_LENGTH:
            logging.warning(
                "Cantus firmus length %d outside %d-%d; using skeleton melody",
                length,
                MIN_LENGTH,
                MAX_LENGTH,
            )
            self.used_fallback = True
            return Voice.from_pitches(skeleton_cantus_firmus(self.scale, length))
        try:
            pitches = self._generate_validated(length)
        except GenerationExhausted as exc:
            logging.warning("%s; using skeleton melody", exc)
            self.used_fallback = True
            pitches = skeleton_cantus_firmus(self.scale, length)
        return Voice.from_pitches(pitches)

    def _generate_validated(self, length: int) -> List[int]:
        for attempt in range(1, self.max_attempts + 1):
            self.attempts = attempt
            melody = self._fix_penultimate(self._attempt(length))
            if is_valid_cantus_firmus(melody, self.scale):
                logging.debug("Cantus firmus accepted after %d attempts", attempt)
                return melody
        raise GenerationExhausted(self.max_attempts)

    def _attempt(self, length: int) -> List[int]:
        """Build one unvalidated melody of ``length`` notes."""

        tonic = self.scale.tonic
        climax_target = length // 2
        melody = [tonic]
        for i in range(1, length - 1):
            melody.append(self._next_pitch(melody, ascending=i <= climax_target))
        melody.append(tonic)
        return melody

    def _next_pitch(self, melody: List[int], *, ascending: bool) -> int:
        last = melody[-1]
        moves = _moves(melody[-(MAX_RUN_MOVES + 1):])
        if len(moves) == MAX_RUN_MOVES and all(m > 0 for m in moves):
            low, high = -5, -1
        elif len(moves) == MAX_RUN_MOVES and all(m < 0 for m in moves):
            low, high = 1, 5
        elif ascending:
            low, high = 1, 5
        else:
            low, high = -5, 2

        options = [
            p
            for p in self.scale.between(last + low, last + high)
            if abs(p - last) % 12 != TRITONE
        ]
        if self.rng.random() < STEPWISE_PROBABILITY:
            steps = [p for p in options if self.scale.is_step(last, p)]
            if steps:
                options = steps
        if options:
            return int(self.rng.choice(options))
        fallback = self.scale.octave_degrees()
        if fallback:
            return int(self.rng.choice(fallback))
        return self.scale.tonic

    def _fix_penultimate(self, melody: List[int]) -> List[int]:
        """Move the penultimate note onto a step next to the final tonic."""

        tonic = self.scale.tonic
        if len(melody) < 2 or self.scale.is_step(melody[-2], tonic):
            return melody
        penultimate = melody[-2]
        whole_steps = [p for p in (tonic + 2, tonic - 2) if self.scale.contains(p)]
        half_steps = [p for p in (tonic + 1, tonic - 1) if self.scale.contains(p)]
        options = whole_steps or half_steps
        replacement = min(options, key=lambda p: (abs(p - penultimate), -p))
        fixed = list(melody)
        fixed[-2] = replacement
        return fixed


def generate_cantus_firmus(
    scale: ScaleContext, length: int, rng: np.random.Generator
) -> Voice:
    """Return a cantus firmus using a throwaway :class:`CantusFirmusGenerator`."""

    return CantusFirmusGenerator(scale, rng).generate(length)
