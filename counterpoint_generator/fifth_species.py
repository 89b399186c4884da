"""Fifth species: florid counterpoint.

Florid counterpoint combines the earlier species within one line. A
:class:`~counterpoint_generator.rhythm_engine.FloridRhythmGenerator` first
plans one measure rhythm per cantus firmus note. Each note is then chosen
with the rules of the species its duration and position belong to:

* whole notes follow the first species,
* half notes the second species, or the fourth species where the rhythm
  calls for a syncopation,
* quarter notes the third species,
* eighth notes the most permissive passing and neighbour rules.

Every rule set forbids a fourth repetition of the same pitch so the line
keeps moving.

Example
-------
>>> import numpy as np
>>> from counterpoint_generator.cantus_firmus import generate_cantus_firmus
>>> from counterpoint_generator.scales import scale_context
>>> rng = np.random.default_rng(3)
>>> scale = scale_context("G")
>>> cantus = generate_cantus_firmus(scale, 8, rng)
>>> voice = FifthSpecies(scale, rng).generate(cantus)
>>> voice.total_length == cantus.total_length
True

Design Notes
------------
- The final and the cadence pitch that closes the penultimate measure are
  chosen when the line enters the penultimate measure, so the notes leading
  into them can look ahead while staying within an octave of them.
- A syncopation is prepared, tied and resolved over three consecutive
  slots. If the prepared note cannot be held over the next cantus firmus
  note the tie is simply dropped.
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Optional, Sequence

import numpy as np

from .constraints import (
    ConstraintPipeline,
    RuleFlags,
    approach_target,
    exclude_interval_classes,
    within_reach,
)
from .first_species import FIRST_SPECIES_RULES
from .fourth_species import FOURTH_SPECIES_RULES, RESOLUTION_RULES
from .models import Note, Voice
from .rhythm_engine import FloridRhythmGenerator
from .scales import ScaleContext
from .second_species import SECOND_SPECIES_DOWNBEAT, SECOND_SPECIES_UPBEAT
from .species import Slot, SpeciesStrategy
from .third_species import THIRD_SPECIES_DOWNBEAT, THIRD_SPECIES_WEAK
from .voice_leading import LARGEST_LEAP, is_consonant

__all__ = [
    "WHOLE_NOTE_RULES",
    "HALF_DOWNBEAT_RULES",
    "HALF_UPBEAT_RULES",
    "PREPARATION_RULES",
    "QUARTER_DOWNBEAT_RULES",
    "QUARTER_WEAK_RULES",
    "EIGHTH_RULES",
    "FifthSpecies",
]


def _florid(flags: RuleFlags) -> RuleFlags:
    return replace(flags, allow_neighbor_tones=True, limit_repeated_pitches=True)


WHOLE_NOTE_RULES = _florid(FIRST_SPECIES_RULES)
HALF_DOWNBEAT_RULES = _florid(SECOND_SPECIES_DOWNBEAT)
HALF_UPBEAT_RULES = _florid(SECOND_SPECIES_UPBEAT)
PREPARATION_RULES = _florid(FOURTH_SPECIES_RULES)
QUARTER_DOWNBEAT_RULES = _florid(THIRD_SPECIES_DOWNBEAT)
QUARTER_WEAK_RULES = _florid(THIRD_SPECIES_WEAK)
EIGHTH_RULES = _florid(
    RuleFlags(
        allow_dissonant_passing=True,
        passing_requires_continuation=False,
        no_parallel_perfect=False,
    )
)


class FifthSpecies(SpeciesStrategy):
    """Mixed note values (florid counterpoint).

    Parameters
    ----------
    scale, rng, pipeline:
        As for :class:`~counterpoint_generator.species.SpeciesStrategy`.
    rhythm:
        Rhythm planner. One sharing ``rng`` is created when omitted.
    """

    species = 5

    def __init__(
        self,
        scale: ScaleContext,
        rng: np.random.Generator,
        pipeline: Optional[ConstraintPipeline] = None,
        rhythm: Optional[FloridRhythmGenerator] = None,
    ) -> None:
        super().__init__(scale, rng, pipeline)
        self.rhythm = rhythm or FloridRhythmGenerator(rng)

    def generate(self, cantus: Voice) -> Voice:
        cf = cantus.pitches
        n = len(cf)
        if n == 0:
            return Voice()
        if n == 1:
            return Voice((Note(self.opening_pitch(cf[0]), 1),))

        measures = self.rhythm.plan(n, int(np.argmax(cf)))
        slots: List[Slot] = []
        prepared = set()
        for k, measure in enumerate(measures):
            for duration, offset in zip(measure.durations, measure.offsets):
                slots.append(Slot(k, duration, offset))
            if measure.syncopated:
                prepared.add(len(slots) - 1)
        last = len(slots) - 1

        final: Optional[int] = None
        cadence: List[int] = []
        pitches = [self.opening_pitch(cf[0])]
        ties = [False]
        resolving = False
        for i in range(1, last):
            slot = slots[i]
            below = cf[slot.cf_index]
            if final is None and slot.cf_index >= n - 2:
                # Fixed on entering the penultimate measure so the cadence
                # starts within reach of the line.
                final = self.final_pitch(cf[-1], pitches[-1])
                cadence = self.cadence_pitches(cf[-2], final)
            reach = (within_reach(final),) if final is not None else ()
            tie = False
            if resolving:
                resolving = False
                ctx = self.context(cf, slots, pitches)
                pitch = self.propose(ctx, RESOLUTION_RULES)
            elif ties[-1]:
                held = pitches[-1]
                if self.can_hold(held, below):
                    pitch = held
                    resolving = not is_consonant(held, below)
                else:
                    ties[-1] = False
                    ctx = self.context(cf, slots, pitches)
                    pitch = self.propose(ctx, HALF_DOWNBEAT_RULES)
            elif i == last - 1:
                pitch = self._cadence_note(cf, slots, pitches, cadence, final)
            elif i in prepared:
                ctx = self.context(cf, slots, pitches)
                pitch = self.preparation_pitch(
                    ctx, PREPARATION_RULES, cf[slot.cf_index + 1]
                )
                tie = True
            elif i == last - 2 and cadence:
                cadence_pitch = cadence[0]
                ctx = self.context(cf, slots, pitches, next_fixed=cadence_pitch)
                pitch = self.propose(
                    ctx,
                    self.rules_for(slot),
                    require=(approach_target(cadence_pitch, LARGEST_LEAP),),
                    prefer=(approach_target(cadence_pitch),),
                )
            else:
                ctx = self.context(cf, slots, pitches)
                pitch = self.propose(ctx, self.rules_for(slot), require=reach)
            pitches.append(pitch)
            ties.append(tie)

        if final is None:
            final = self.final_pitch(cf[-1], pitches[-1])
        pitches.append(self.settle_final(final, pitches[-1], cf[-1]))
        ties.append(False)
        return Voice(
            tuple(
                Note(p, slot.duration, t) for p, slot, t in zip(pitches, slots, ties)
            )
        )

    @staticmethod
    def rules_for(slot: Slot) -> RuleFlags:
        """Return the rule set matching the duration and position of ``slot``."""

        if slot.duration == 1:
            return WHOLE_NOTE_RULES
        if slot.duration == 2:
            return HALF_DOWNBEAT_RULES if slot.strong else HALF_UPBEAT_RULES
        if slot.duration == 4:
            return QUARTER_DOWNBEAT_RULES if slot.strong else QUARTER_WEAK_RULES
        return EIGHTH_RULES

    def _cadence_note(
        self,
        cf,
        slots,
        pitches,
        cadence: Sequence[int],
        final: int,
    ) -> int:
        reachable = self.in_reach(cadence, pitches[-1])
        if reachable:
            return reachable[0]
        ctx = self.context(cf, slots, pitches, next_fixed=final)
        return self.propose(
            ctx,
            self.rules_for(slots[len(pitches)]),
            require=(
                exclude_interval_classes(0),
                approach_target(final, LARGEST_LEAP),
            ),
            prefer=(approach_target(final),),
        )
