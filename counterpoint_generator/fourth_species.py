"""Fourth species: syncopation and suspensions.

The counterpoint enters half a measure late and is written in half notes.
Each upbeat is tied over the following barline whenever possible, so the
line runs a step behind the cantus firmus. Every measure cycles through
three states:

``PREPARE``
    The upbeat is consonant with the current cantus firmus note. When
    possible it is chosen so that holding it into the next measure
    produces a dissonance that can resolve cleanly.
``TIE``
    On the next downbeat the prepared pitch is held against the new
    cantus firmus note.
``RESOLVE``
    A dissonant tie moves down by step (one or two semitones) to a
    consonance that stays above the cantus firmus. The pipeline's
    ``resolve_suspension_down`` rule picks that note.

When a held note would cross the cantus firmus, sound in unison with it,
exceed a tenth or form an unresolvable dissonance, the tie is dropped for
that measure and a fresh consonant downbeat is chosen instead. The cadence
prefers a 7-6 suspension over the penultimate note followed by the octave,
which is tied over the final measure.
"""

from __future__ import annotations

from dataclasses import replace
from fractions import Fraction
from typing import List, Optional, Sequence

import numpy as np

from .constraints import (
    RuleFlags,
    approach_target,
    exclude_interval_classes,
    prefer_interval_classes,
    within_reach,
)
from .models import Note, Voice
from .species import Slot, SpeciesStrategy
from .voice_leading import LARGEST_LEAP, is_consonant

__all__ = ["FOURTH_SPECIES_RULES", "RESOLUTION_RULES", "FourthSpecies"]

FOURTH_SPECIES_RULES = RuleFlags(
    no_unison=True,
    no_hidden_parallels=True,
)
# A dissonant tie steps down 1-2 semitones; the resolution may be a unison.
RESOLUTION_RULES = replace(
    FOURTH_SPECIES_RULES, no_unison=False, resolve_suspension_down=True
)


class FourthSpecies(SpeciesStrategy):
    """Syncopated counterpoint built from prepared, tied and resolved halves."""

    species = 4
    lead_in = Fraction(1, 2)

    def generate(self, cantus: Voice) -> Voice:
        cf = cantus.pitches
        n = len(cf)
        if n == 0:
            return Voice()
        slots = [Slot(0, 2, Fraction(1, 2))] + [
            Slot(k, 2, Fraction(beat, 2)) for k in range(1, n) for beat in range(2)
        ]
        pitches = [self.opening_pitch(cf[0])]
        ties = [False]
        if n == 1:
            return Voice((Note(pitches[0], 2),))

        final: Optional[int] = None
        cadence: List[int] = []
        for k in range(1, n - 1):
            if final is None and k >= n - 3:
                # The cadence is planned one measure ahead so the preparation
                # before it can aim its suspension at a cadence pitch.
                final = self.final_pitch(cf[-1], pitches[-1])
                cadence = self.cadence_pitches(cf[-2], final)
            reach = (within_reach(final),) if final is not None else ()
            held = pitches[-1]
            below = cf[k]
            if self._holdable(held, below, cadence if k == n - 2 else None):
                ties[-1] = True
                downbeat = held
            else:
                ctx = self.context(cf, slots, pitches)
                downbeat = self.propose(ctx, FOURTH_SPECIES_RULES, require=reach)
            pitches.append(downbeat)
            ties.append(False)

            if not is_consonant(downbeat, below):
                ctx = self.context(cf, slots, pitches)
                upbeat = self.propose(ctx, RESOLUTION_RULES)
            elif k == n - 2:
                upbeat = self._cadence_upbeat(cf, slots, pitches, cadence, final)
            else:
                targets = cadence if k + 1 == n - 2 else None
                ctx = self.context(cf, slots, pitches)
                upbeat = self.preparation_pitch(
                    ctx, FOURTH_SPECIES_RULES, cf[k + 1], targets, require=reach
                )
            pitches.append(upbeat)
            ties.append(False)

        if final is None:
            final = self.final_pitch(cf[-1], pitches[-1])
        final = self.settle_final(final, pitches[-1], cf[-1])
        if pitches[-1] == final:
            ties[-1] = True
        pitches.extend([final, final])
        ties.extend([True, False])
        return Voice(tuple(Note(p, 2, t) for p, t in zip(pitches, ties)))

    def _holdable(
        self, held: int, below: int, cadence: Optional[Sequence[int]]
    ) -> bool:
        """Return ``True`` when ``held`` may be tied over ``below``.

        Interior ties never land in unison with ``below``. In the penultimate
        measure a dissonant tie must also resolve onto one of the
        ``cadence`` pitches.
        """

        if not self.can_hold(held, below):
            return False
        if cadence is None or is_consonant(held, below):
            return True
        return self.suspension_resolution(held, below) in cadence

    def _cadence_upbeat(
        self,
        cf: Sequence[int],
        slots: Sequence[Slot],
        pitches: List[int],
        cadence: Sequence[int],
        final: int,
    ) -> int:
        ctx = self.context(cf, slots, pitches, next_fixed=final)
        reachable = self.in_reach(cadence, pitches[-1])
        if reachable:
            pool = self.pipeline.narrow(
                ctx,
                FOURTH_SPECIES_RULES,
                prefer=(prefer_interval_classes(8, 9),),
                candidates=np.asarray(reachable),
            )
            return self.pipeline.select(pool, ctx)
        return self.propose(
            ctx,
            FOURTH_SPECIES_RULES,
            require=(
                exclude_interval_classes(0),
                approach_target(final, LARGEST_LEAP),
            ),
            prefer=(approach_target(final),),
        )
