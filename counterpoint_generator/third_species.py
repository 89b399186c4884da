"""Third species: four quarter notes against each cantus firmus note.

The first quarter of every group is consonant and checked for parallels
against the previous first quarter. The other three may be dissonant when
the dissonance is reached by step and left by step, either continuing in the
same direction (passing tone) or returning to the note before (neighbour
tone).

The cadence is written out: the last quarter of the penultimate group is the
leading tone below the final pitch where that is consonant, otherwise the
step above. The final group sounds the final pitch, its lower (or upper)
neighbour and the final pitch twice more. The final pitch itself is chosen
as the line enters the penultimate group, and that group stays within reach
of it so the cadence never needs a leap larger than an octave.
"""

from __future__ import annotations

from fractions import Fraction
from typing import List, Optional

from .constraints import (
    RuleFlags,
    approach_target,
    exclude_interval_classes,
    within_reach,
)
from .models import Voice
from .species import Slot, SpeciesStrategy
from .voice_leading import LARGEST_LEAP, TENTH

__all__ = ["THIRD_SPECIES_DOWNBEAT", "THIRD_SPECIES_WEAK", "ThirdSpecies"]

THIRD_SPECIES_DOWNBEAT = RuleFlags(
    no_unison=True,
    no_hidden_parallels=True,
    allow_neighbor_tones=True,
    prefer_contrary_motion=True,
)
THIRD_SPECIES_WEAK = RuleFlags(
    allow_dissonant_passing=True,
    passing_requires_continuation=False,
    allow_neighbor_tones=True,
    no_parallel_perfect=False,
    approach_leaps_by_step=True,
)


class ThirdSpecies(SpeciesStrategy):
    """Four notes against one (4:1)."""

    species = 3

    def generate(self, cantus: Voice) -> Voice:
        cf = cantus.pitches
        n = len(cf)
        if n == 0:
            return Voice()
        if n == 1:
            opening = self.opening_pitch(cf[0])
            return Voice.from_pitches([opening] * 4, 4)

        slots = [Slot(k, 4, Fraction(beat, 4)) for k in range(n) for beat in range(4)]
        closing = 4 * (n - 1)
        pitches = [self.opening_pitch(cf[0])]
        final: Optional[int] = None
        approach: Optional[int] = None
        for i in range(1, closing):
            slot = slots[i]
            if final is None and i >= closing - 4:
                # Chosen on entering the penultimate group so the cadence
                # starts within reach of the line.
                final = self.final_pitch(cf[-1], pitches[-1])
                approach = self._cadence_approach(cf[-2], final)
            reach = (within_reach(final),) if final is not None else ()
            if slot.strong:
                if slot.cf_index == n - 2:
                    reach = (exclude_interval_classes(0),) + reach
                ctx = self.context(cf, slots, pitches)
                pitch = self.propose(ctx, THIRD_SPECIES_DOWNBEAT, require=reach)
            elif (
                i == closing - 1
                and approach is not None
                and abs(approach - pitches[-1]) <= LARGEST_LEAP
            ):
                pitch = approach
            elif i == closing - 1:
                ctx = self.context(cf, slots, pitches, next_fixed=final)
                pitch = self.propose(
                    ctx,
                    THIRD_SPECIES_WEAK,
                    require=(approach_target(final, LARGEST_LEAP),),
                    prefer=(approach_target(final),),
                )
            elif i == closing - 2 and approach is not None:
                ctx = self.context(cf, slots, pitches, next_fixed=approach)
                pitch = self.propose(
                    ctx,
                    THIRD_SPECIES_WEAK,
                    require=(approach_target(approach, LARGEST_LEAP),),
                    prefer=(approach_target(approach),),
                )
            else:
                ctx = self.context(cf, slots, pitches)
                pitch = self.propose(ctx, THIRD_SPECIES_WEAK, require=reach)
            pitches.append(pitch)

        final = self.settle_final(final, pitches[-1], cf[-1])
        pitches.extend(self._final_group(cf[-1], final))
        return Voice.from_pitches(pitches, 4)

    def _cadence_approach(self, below: int, final: int) -> Optional[int]:
        """Leading tone (or upper step) into ``final`` that is consonant with ``below``."""

        options = self.cadence_pitches(below, final)
        lower = [p for p in options if p < final]
        if lower:
            return max(lower)
        return options[0] if options else None

    def _final_group(self, below: int, final: int) -> List[int]:
        neighbor = self.scale.step_below(final)
        if neighbor is None or neighbor < below:
            neighbor = self.scale.step_above(final)
        if neighbor is None or neighbor - below > TENTH:
            return [final] * 4
        return [final, neighbor, final, final]
