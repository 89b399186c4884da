"""Second species: two half notes against each cantus firmus note.

Downbeats follow the first-species rules, and their parallel check also
looks back to the previous downbeat, since a fifth or octave on consecutive
downbeats is heard through the intervening upbeat. Upbeats are consonant
unless they form a true passing tone: reached by step in the direction the
line was already moving and continuing by step to a consonant downbeat. The
last measure holds the final pitch.
"""

from __future__ import annotations

from fractions import Fraction
from typing import Optional

from .constraints import (
    RuleFlags,
    approach_target,
    exclude_interval_classes,
    within_reach,
)
from .models import Voice
from .species import Slot, SpeciesStrategy
from .voice_leading import LARGEST_LEAP

__all__ = [
    "SECOND_SPECIES_DOWNBEAT",
    "SECOND_SPECIES_UPBEAT",
    "SecondSpecies",
]

SECOND_SPECIES_DOWNBEAT = RuleFlags(
    no_unison=True,
    no_hidden_parallels=True,
    prefer_contrary_motion=True,
)
SECOND_SPECIES_UPBEAT = RuleFlags(
    allow_dissonant_passing=True,
    passing_requires_continuation=True,
    no_parallel_perfect=False,
)


class SecondSpecies(SpeciesStrategy):
    """Two notes against one (2:1)."""

    species = 2

    def generate(self, cantus: Voice) -> Voice:
        cf = cantus.pitches
        n = len(cf)
        if n == 0:
            return Voice()
        if n == 1:
            opening = self.opening_pitch(cf[0])
            return Voice.from_pitches([opening, opening], 2)

        slots = [Slot(k, 2, Fraction(beat, 2)) for k in range(n) for beat in range(2)]
        closing = 2 * (n - 1)
        pitches = [self.opening_pitch(cf[0])]
        final: Optional[int] = None
        for i in range(1, closing):
            slot = slots[i]
            if final is None and i >= closing - 2:
                # The final is fixed once the line reaches the penultimate
                # measure, so it can be chosen within reach of the line.
                final = self.final_pitch(cf[-1], pitches[-1])
            if slot.strong:
                require = (
                    (exclude_interval_classes(0), within_reach(final))
                    if slot.cf_index == n - 2
                    else ()
                )
                ctx = self.context(cf, slots, pitches)
                pitch = self.propose(ctx, SECOND_SPECIES_DOWNBEAT, require=require)
            elif i == closing - 1:
                ctx = self.context(cf, slots, pitches, next_fixed=final)
                pitch = self.propose(
                    ctx,
                    SECOND_SPECIES_UPBEAT,
                    require=(
                        exclude_interval_classes(0),
                        approach_target(final, LARGEST_LEAP),
                    ),
                    prefer=(approach_target(final),),
                )
            else:
                ctx = self.context(cf, slots, pitches)
                pitch = self.propose(ctx, SECOND_SPECIES_UPBEAT)
            pitches.append(pitch)

        final = self.settle_final(final, pitches[-1], cf[-1])
        pitches.extend([final, final])
        return Voice.from_pitches(pitches, 2)
