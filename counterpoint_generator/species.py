"""Common ground for the five species strategies.

A strategy turns a cantus firmus into a counterpoint voice. Every strategy
lays the counterpoint out as a list of :class:`Slot` objects (which cantus
firmus note each counterpoint note sounds against, its duration and its
offset in the measure), then fills the slots left to right. Each slot gets a
fresh :class:`~counterpoint_generator.constraints.GenerationContext` and a
pitch from the shared
:class:`~counterpoint_generator.constraints.ConstraintPipeline`.

:class:`SpeciesStrategy` holds only the scale, the injected random generator
and the pipeline; no generation state survives between calls. The helpers
below cover the openings, cadences and suspensions that several species
share.
"""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from typing import List, Optional, Sequence

import numpy as np

from .constraints import (
    INTERVAL_WINDOW,
    ConstraintPipeline,
    GenerationContext,
    Rule,
    RuleFlags,
)
from .models import Voice
from .note_utils import HIGHEST_PITCH
from .scales import ScaleContext
from .voice_leading import (
    LARGEST_LEAP,
    STEP,
    TENTH,
    interval_class,
    is_consonant,
    parallel_fifth_or_octave,
)

__all__ = [
    "OPENING_WEIGHTS",
    "OCTAVE_ENDING_PROBABILITY",
    "Slot",
    "SpeciesStrategy",
]

# Relative weights of the perfect consonances a counterpoint may open with.
# The unison is only used when neither is diatonic or on the keyboard.
OPENING_WEIGHTS = ((7, 0.4), (12, 0.6))
OCTAVE_ENDING_PROBABILITY = 0.8


@dataclass(frozen=True)
class Slot:
    """Position of one counterpoint note.

    ``offset`` is measured in whole notes from the start of the measure, so
    ``0`` marks a downbeat.
    """

    cf_index: int
    duration: int
    offset: Fraction = Fraction(0)

    @property
    def strong(self) -> bool:
        return self.offset == 0


class SpeciesStrategy:
    """Base class providing context building and shared cadence helpers.

    Subclasses implement :meth:`generate`.

    Parameters
    ----------
    scale:
        Key of the phrase.
    rng:
        Injected random generator used for every decision.
    pipeline:
        Constraint pipeline to draw pitches from. A new one sharing ``rng``
        is created when omitted.
    """

    species = 0
    lead_in = Fraction(0)

    def __init__(
        self,
        scale: ScaleContext,
        rng: np.random.Generator,
        pipeline: Optional[ConstraintPipeline] = None,
    ) -> None:
        self.scale = scale
        self.rng = rng
        self.pipeline = pipeline or ConstraintPipeline(scale, rng)

    def generate(self, cantus: Voice) -> Voice:
        """Return a counterpoint voice written against ``cantus``."""

        raise NotImplementedError

    # ------------------------------------------------------------------
    # Context and proposal
    # ------------------------------------------------------------------
    def context(
        self,
        cantus: Sequence[int],
        slots: Sequence[Slot],
        pitches: Sequence[int],
        *,
        next_fixed: Optional[int] = None,
    ) -> GenerationContext:
        """Build the context for ``slots[len(pitches)]``.

        Parameters
        ----------
        cantus:
            Cantus firmus pitches.
        slots:
            Full slot layout of the counterpoint.
        pitches:
            Counterpoint pitches chosen so far.
        next_fixed:
            Pitch already decided for the following slot, if any.
        """

        i = len(pitches)
        slot = slots[i]
        below = cantus[slot.cf_index]
        before = pitches[-1] if pitches else None
        before_below = cantus[slots[i - 1].cf_index] if pitches else None
        two_before = pitches[-2] if len(pitches) >= 2 else None
        start = max(0, i - INTERVAL_WINDOW)
        intervals = tuple(pitches[j] - cantus[slots[j].cf_index] for j in range(start, i))

        strong_interval = None
        if slot.strong:
            for j in range(i - 1, -1, -1):
                if slots[j].strong:
                    strong_interval = pitches[j] - cantus[slots[j].cf_index]
                    break

        next_below = cantus[slots[i + 1].cf_index] if i + 1 < len(slots) else None
        return GenerationContext(
            note_below=below,
            note_before=before,
            note_before_and_below=before_below,
            note_two_before=two_before,
            recent_pitches=tuple(pitches[start:]),
            recent_intervals=intervals,
            strong_interval=strong_interval,
            next_below=next_below,
            next_fixed=next_fixed,
        )

    def propose(
        self,
        ctx: GenerationContext,
        flags: RuleFlags,
        *,
        require: Sequence[Rule] = (),
        prefer: Sequence[Rule] = (),
    ) -> int:
        return self.pipeline.propose(ctx, flags, require=require, prefer=prefer)

    # ------------------------------------------------------------------
    # Openings and cadences
    # ------------------------------------------------------------------
    def opening_pitch(self, below: int) -> int:
        """Choose a perfect consonance above ``below`` to open the phrase."""

        options = [
            (below + offset, weight)
            for offset, weight in OPENING_WEIGHTS
            if below + offset <= HIGHEST_PITCH and self.scale.contains(below + offset)
        ]
        if not options:
            return below
        pitches = [p for p, _ in options]
        weights = np.array([w for _, w in options], dtype=float)
        return int(self.rng.choice(pitches, p=weights / weights.sum()))

    def final_pitch(
        self,
        below: int,
        before: Optional[int] = None,
        before_below: Optional[int] = None,
    ) -> int:
        """Choose the closing octave (usually) or unison above ``below``.

        A choice forming parallel octaves with the previous note, or leaping
        more than an octave, is replaced by the alternative. When both are
        unacceptable the one nearer ``before`` wins.
        """

        options = [p for p in (below + 12, below) if p <= HIGHEST_PITCH]
        if self.rng.random() < OCTAVE_ENDING_PROBABILITY:
            ordered = options
        else:
            ordered = options[::-1]
        if before is None:
            return ordered[0]

        def acceptable(pitch: int) -> bool:
            if abs(pitch - before) > LARGEST_LEAP:
                return False
            if before_below is not None and parallel_fifth_or_octave(
                before, before_below, pitch, below
            ):
                return False
            return True

        for pitch in ordered:
            if acceptable(pitch):
                return pitch
        return min(ordered, key=lambda p: abs(p - before))

    def settle_final(self, final: int, before: int, below: int) -> int:
        """Return ``final``, or its octave partner when only that is in reach.

        Both the unison and the octave above ``below`` close a phrase; the one
        chosen earlier is kept unless it lies more than an octave from
        ``before``.
        """

        if abs(final - before) <= LARGEST_LEAP:
            return final
        other = below if final != below else below + 12
        if other <= HIGHEST_PITCH and abs(other - before) <= LARGEST_LEAP:
            return other
        return final

    def cadence_pitches(self, below: int, final: int) -> List[int]:
        """Consonant pitches above ``below`` lying a step from ``final``.

        Octaves are excluded so the approach never forms parallel octaves
        with the final note. Sixths come first, then the step below ``final``
        (the leading tone) ahead of the step above.
        """

        pitches = []
        for pitch in self.scale.between(final - STEP, final + STEP):
            if pitch == final or pitch <= below or pitch - below > TENTH:
                continue
            if not is_consonant(pitch, below) or interval_class(pitch, below) == 0:
                continue
            pitches.append(pitch)
        return sorted(
            pitches,
            key=lambda p: (interval_class(p, below) not in (8, 9), p > final, p),
        )

    @staticmethod
    def in_reach(pitches: Sequence[int], before: int) -> List[int]:
        """Return the ``pitches`` at most an octave from ``before``."""

        return [p for p in pitches if abs(p - before) <= LARGEST_LEAP]

    # ------------------------------------------------------------------
    # Suspensions
    # ------------------------------------------------------------------
    def suspension_resolution(self, held: int, below: int) -> Optional[int]:
        """Return where a dissonant ``held`` note resolves over ``below``.

        The resolution is the next scale degree down, 1-2 semitones lower,
        consonant with ``below`` and not beneath it. ``None`` means the
        suspension cannot be resolved cleanly.
        """

        target = self.scale.step_below(held)
        if target is None or held - target > STEP:
            return None
        if target < below or not is_consonant(target, below):
            return None
        return target

    def can_hold(self, held: int, below: int) -> bool:
        """Return ``True`` if ``held`` may be tied over a new ``below`` note.

        A tie may not land in unison with ``below``; the closing tie of the
        final measure is written without this check.
        """

        if held <= below or held - below > TENTH:
            return False
        if is_consonant(held, below):
            return True
        return self.suspension_resolution(held, below) is not None

    def preparation_pitch(
        self,
        ctx: GenerationContext,
        flags: RuleFlags,
        next_below: int,
        targets: Optional[Sequence[int]] = None,
        require: Sequence[Rule] = (),
    ) -> int:
        """Choose a consonant note that can be tied over ``next_below``.

        Suspensions that resolve cleanly (onto one of ``targets`` when
        given) are preferred over consonant syncopations. When neither exists
        any candidate is accepted and the caller drops the tie. ``require``
        is passed on to the pipeline.
        """

        pool = self.pipeline.narrow(ctx, flags, require=require)
        suspensions = []
        consonant_holds = []
        for pitch in (int(p) for p in pool):
            if not self.can_hold(pitch, next_below):
                continue
            if is_consonant(pitch, next_below):
                consonant_holds.append(pitch)
                continue
            resolution = self.suspension_resolution(pitch, next_below)
            if targets is None or resolution in targets:
                suspensions.append(pitch)
        if suspensions:
            return int(self.rng.choice(suspensions))
        if consonant_holds:
            return int(self.rng.choice(consonant_holds))
        return self.pipeline.select(pool, ctx)
