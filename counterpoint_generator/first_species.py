"""First species: one counterpoint note against each cantus firmus note.

Every note is a consonance above the cantus firmus. The line opens on a
perfect consonance, avoids unisons in the interior, never repeats a fifth or
octave between neighbouring notes and closes on the octave (occasionally the
unison). The penultimate note may not be an octave or unison either, which
keeps the arrival on the final octave free of parallels.
"""

from __future__ import annotations

from .constraints import RuleFlags, approach_target, exclude_interval_classes
from .models import Voice
from .species import Slot, SpeciesStrategy

__all__ = ["FIRST_SPECIES_RULES", "FirstSpecies"]

FIRST_SPECIES_RULES = RuleFlags(
    no_unison=True,
    no_hidden_parallels=True,
    limit_consecutive_intervals=True,
    prefer_contrary_motion=True,
)


class FirstSpecies(SpeciesStrategy):
    """Note-against-note counterpoint (1:1)."""

    species = 1
    rules = FIRST_SPECIES_RULES

    def generate(self, cantus: Voice) -> Voice:
        cf = cantus.pitches
        n = len(cf)
        if n == 0:
            return Voice()
        slots = [Slot(i, 1) for i in range(n)]
        pitches = [self.opening_pitch(cf[0])]
        if n == 1:
            return Voice.from_pitches(pitches)

        for i in range(1, n - 1):
            ctx = self.context(cf, slots, pitches)
            if i == n - 2:
                pitch = self.propose(
                    ctx,
                    self.rules,
                    require=(exclude_interval_classes(0),),
                    prefer=(approach_target(cf[-1] + 12),),
                )
            else:
                pitch = self.propose(ctx, self.rules)
            pitches.append(pitch)

        pitches.append(self.final_pitch(cf[-1], pitches[-1], cf[-2]))
        return Voice.from_pitches(pitches, 1)
