"""Shared constraint pipeline used by every species strategy.

A strategy describes the note it needs as an immutable
:class:`GenerationContext` and a :class:`RuleFlags` value. Given those,
:class:`ConstraintPipeline` starts from every diatonic pitch near the cantus
firmus and narrows the set one rule at a time. Any rule that would remove
every remaining candidate is skipped, so the pipeline only ever weakens its
preferences and never runs dry. A random survivor is returned. If even the
initial pitch set was empty, a deterministic safe interval is used instead.

Example
-------
>>> import numpy as np
>>> from counterpoint_generator.scales import scale_context
>>> pipeline = ConstraintPipeline(scale_context("C"), np.random.default_rng(0))
>>> ctx = GenerationContext(note_below=41, note_before=46, note_before_and_below=39)
>>> pitch = pipeline.propose(ctx, RuleFlags(no_unison=True))
>>> pitch >= 41 and (pitch - 41) % 12 in {0, 3, 4, 8, 9}
True

Design Notes
------------
- Rules run in a fixed order: hard range limits first, then consonance and
  the octave leap limit, then the melodic preferences, which are the first
  to be dropped when the candidate set gets tight.
- ``require`` rules supplied by a strategy run right after the leap limit,
  so a cadence target never pulls the line more than an octave. ``prefer``
  rules run last.
- Weak-beat dissonances are admitted only when the context shows a stepwise
  way out. This one-note lookahead lets the next note always be consonant
  and stepwise without any backtracking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .note_utils import HIGHEST_PITCH, LOWEST_PITCH
from .scales import ScaleContext
from .voice_leading import (
    LARGEST_LEAP,
    STEP,
    TENTH,
    consonant_mask,
    contrary_motion_mask,
    hidden_parallels_mask,
    is_consonant,
    parallel_fifths_mask,
)

__all__ = [
    "INTERVAL_WINDOW",
    "CONTRARY_MOTION_PROBABILITY",
    "FALLBACK_INTERVALS",
    "GenerationContext",
    "RuleFlags",
    "Rule",
    "ConstraintPipeline",
    "exclude_interval_classes",
    "prefer_interval_classes",
    "approach_target",
    "within_reach",
]

# Number of recent pitches and vertical intervals a context remembers.
INTERVAL_WINDOW = 6
CONTRARY_MOTION_PROBABILITY = 0.6

# Safe intervals above the cantus firmus tried in order when no candidate
# survives: fifth, major and minor third, major and minor sixth, octave,
# unison.
FALLBACK_INTERVALS = (7, 4, 3, 9, 8, 12, 0)

# How far below and above the cantus firmus the initial pitch set reaches.
_SPAN_BELOW = 12
_SPAN_ABOVE = TENTH + 3


@dataclass(frozen=True)
class GenerationContext:
    """Everything a rule may know about the note being chosen.

    The context is rebuilt for each note and discarded afterwards.

    Attributes
    ----------
    note_below:
        Cantus firmus pitch sounding under the new note.
    note_before:
        Previous counterpoint pitch, ``None`` for the first note.
    note_before_and_below:
        Cantus firmus pitch that sounded under ``note_before``.
    note_two_before:
        Counterpoint pitch before ``note_before``.
    recent_pitches, recent_intervals:
        Rolling windows (oldest first) of counterpoint pitches and of raw
        vertical intervals.
    strong_interval:
        Vertical interval at the previous strong beat, used for parallel
        checks between downbeats.
    next_below:
        Cantus firmus pitch under the following note, if any.
    next_fixed:
        Pitch already decided for the following note, if any.
    """

    note_below: int
    note_before: Optional[int] = None
    note_before_and_below: Optional[int] = None
    note_two_before: Optional[int] = None
    recent_pitches: Tuple[int, ...] = ()
    recent_intervals: Tuple[int, ...] = ()
    strong_interval: Optional[int] = None
    next_below: Optional[int] = None
    next_fixed: Optional[int] = None

    @property
    def previous_interval(self) -> Optional[int]:
        if self.note_before is None or self.note_before_and_below is None:
            return None
        return self.note_before - self.note_before_and_below

    @property
    def previous_dissonant(self) -> bool:
        """``True`` when the previous note was dissonant against its bass."""

        if self.note_before is None or self.note_before_and_below is None:
            return False
        return not is_consonant(self.note_before, self.note_before_and_below)


@dataclass(frozen=True)
class RuleFlags:
    """Switches selecting which rules the pipeline applies.

    Each species module defines its presets as module constants and derives
    variants with :func:`dataclasses.replace`.
    """

    no_voice_crossing: bool = True
    tenth_limit: bool = True
    no_unison: bool = False
    consonant_only: bool = True
    allow_dissonant_passing: bool = False
    passing_requires_continuation: bool = True
    allow_neighbor_tones: bool = False
    leave_dissonance_by_step: bool = True
    resolve_suspension_down: bool = False
    no_parallel_perfect: bool = True
    no_hidden_parallels: bool = False
    no_large_leaps: bool = True
    approach_leaps_by_step: bool = False
    limit_consecutive_intervals: bool = False
    limit_repeated_pitches: bool = False
    prefer_contrary_motion: bool = False
    contrary_motion_probability: float = CONTRARY_MOTION_PROBABILITY


# A named candidate mask: ``(name, fn(candidates, context) -> bool array)``.
Rule = Tuple[str, Callable[[np.ndarray, GenerationContext], np.ndarray]]

# Pipeline order. ``require`` rules from a strategy are inserted after
# ``no_large_leaps``.
_RULE_ORDER = (
    "no_voice_crossing",
    "tenth_limit",
    "no_unison",
    "consonant_only",
    "leave_dissonance_by_step",
    "resolve_suspension_down",
    "no_large_leaps",
)
_PREFERENCE_ORDER = (
    "no_parallel_perfect",
    "no_hidden_parallels",
    "approach_leaps_by_step",
    "limit_consecutive_intervals",
    "limit_repeated_pitches",
    "prefer_contrary_motion",
)


def exclude_interval_classes(*classes: int) -> Rule:
    """Rule removing candidates whose interval class above the bass is listed."""

    banned = np.array(sorted(set(classes)))

    def rule(candidates: np.ndarray, ctx: GenerationContext) -> np.ndarray:
        return ~np.isin(np.abs(candidates - ctx.note_below) % 12, banned)

    return ("exclude_" + "_".join(str(c) for c in sorted(set(classes))), rule)


def prefer_interval_classes(*classes: int) -> Rule:
    """Rule keeping only the listed interval classes; skipped when none remain."""

    wanted = np.array(sorted(set(classes)))

    def rule(candidates: np.ndarray, ctx: GenerationContext) -> np.ndarray:
        return np.isin(np.abs(candidates - ctx.note_below) % 12, wanted)

    return ("prefer_" + "_".join(str(c) for c in sorted(set(classes))), rule)


def approach_target(target: int, within: int = STEP) -> Rule:
    """Rule keeping candidates other than ``target`` at most ``within`` semitones from it.

    With the default distance this asks for a stepwise approach. Passing
    ``LARGEST_LEAP`` only rules out leaps too large to reach ``target``.
    """

    def rule(candidates: np.ndarray, ctx: GenerationContext) -> np.ndarray:
        distance = np.abs(candidates - target)
        return (distance > 0) & (distance <= within)

    return (f"approach_{target}_within_{within}", rule)


def within_reach(target: int, within: int = LARGEST_LEAP - STEP) -> Rule:
    """Rule keeping candidates at most ``within`` semitones from ``target``.

    The default leaves room for one more step, so a note chosen this way can
    still be left by step and reach ``target`` without exceeding an octave.
    """

    def rule(candidates: np.ndarray, ctx: GenerationContext) -> np.ndarray:
        return np.abs(candidates - target) <= within

    return (f"within_{within}_of_{target}", rule)


class ConstraintPipeline:
    """Narrow and select candidate pitches for one scale.

    Parameters
    ----------
    scale:
        Key the counterpoint must stay diatonic to.
    rng:
        Injected random generator; the only source of randomness.
    """

    def __init__(self, scale: ScaleContext, rng: np.random.Generator) -> None:
        self.scale = scale
        self.rng = rng

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def candidates(self, ctx: GenerationContext) -> np.ndarray:
        """Return every diatonic pitch within reach of ``ctx.note_below``."""

        low = max(LOWEST_PITCH, ctx.note_below - _SPAN_BELOW)
        high = min(HIGHEST_PITCH, ctx.note_below + _SPAN_ABOVE)
        return self.scale.degree_array(low, high)

    def narrow(
        self,
        ctx: GenerationContext,
        flags: RuleFlags,
        *,
        require: Sequence[Rule] = (),
        prefer: Sequence[Rule] = (),
        candidates: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """Apply every active rule to the candidate set.

        Parameters
        ----------
        ctx:
            Context of the note being chosen.
        flags:
            Rules to apply.
        require:
            Strategy-specific rules run after the consonance and leap limits.
        prefer:
            Strategy-specific rules run after all built-in rules.
        candidates:
            Starting pitch set. Defaults to :meth:`candidates`.

        Returns
        -------
        numpy.ndarray
            The surviving pitches. The result is only empty when the starting
            set was, since a rule that would empty it is skipped.
        """

        pool = self.candidates(ctx) if candidates is None else np.asarray(candidates)
        for name, rule in self._rules(flags, require, prefer):
            if len(pool) == 0:
                break
            mask = np.asarray(rule(pool, ctx), dtype=bool)
            if not mask.any():
                logging.debug(
                    "Skipping rule %s: it would remove all %d candidates",
                    name,
                    len(pool),
                )
                continue
            pool = pool[mask]
        return pool

    def select(self, pool: np.ndarray, ctx: GenerationContext) -> int:
        """Pick a pitch uniformly from ``pool`` or fall back to a safe interval."""

        if len(pool):
            return int(self.rng.choice(pool))
        return self.fallback_pitch(ctx)

    def propose(
        self,
        ctx: GenerationContext,
        flags: RuleFlags,
        *,
        require: Sequence[Rule] = (),
        prefer: Sequence[Rule] = (),
    ) -> int:
        """Return the next counterpoint pitch for ``ctx``."""

        return self.select(self.narrow(ctx, flags, require=require, prefer=prefer), ctx)

    def fallback_pitch(self, ctx: GenerationContext) -> int:
        """Deterministically choose a consonance above ``ctx.note_below``.

        The intervals in :data:`FALLBACK_INTERVALS` are tried in order,
        skipping pitches that leave the key or the keyboard, or lie more than
        an octave from the previous note. A fifth above (or the octave when
        that fifth is not diatonic) is the final answer.
        """

        below = ctx.note_below
        for offset in FALLBACK_INTERVALS:
            pitch = below + offset
            if pitch > HIGHEST_PITCH or not self.scale.contains(pitch):
                continue
            if ctx.note_before is not None and abs(pitch - ctx.note_before) > LARGEST_LEAP:
                continue
            return pitch
        logging.warning("No safe interval above pitch %d; using fixed fallback", below)
        fifth = below + 7
        if self.scale.contains(fifth) and fifth <= HIGHEST_PITCH:
            return fifth
        return min(below + 12, HIGHEST_PITCH)

    def admits_passing(self, pitch: int, ctx: GenerationContext, flags: RuleFlags) -> bool:
        """Return ``True`` if dissonant ``pitch`` works as a passing or neighbour tone.

        The pitch must be approached by step from a consonant previous note
        and must have a stepwise exit that will be acceptable for the next
        note: ``ctx.next_fixed`` when that is known, otherwise a consonance
        above ``ctx.next_below``.
        """

        before = ctx.note_before
        if before is None or ctx.previous_dissonant:
            return False
        approach = pitch - before
        if not 0 < abs(approach) <= STEP:
            return False
        if flags.passing_requires_continuation:
            if ctx.note_two_before is None:
                return False
            prior = before - ctx.note_two_before
            if not 0 < abs(prior) <= STEP or (prior > 0) != (approach > 0):
                return False

        exits: List[int] = []
        onward = (
            self.scale.step_above(pitch) if approach > 0 else self.scale.step_below(pitch)
        )
        if onward is not None and abs(onward - pitch) <= STEP:
            exits.append(onward)
        if flags.allow_neighbor_tones:
            exits.append(before)

        if ctx.next_fixed is not None:
            return ctx.next_fixed in exits
        if ctx.next_below is None:
            return False
        bass = ctx.next_below
        return any(bass < e <= bass + TENTH and is_consonant(e, bass) for e in exits)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------
    def _rules(
        self, flags: RuleFlags, require: Sequence[Rule], prefer: Sequence[Rule]
    ) -> List[Rule]:
        rules: List[Rule] = []
        for name in _RULE_ORDER:
            if getattr(flags, name):
                rules.append((name, partial(getattr(self, "_" + name), flags=flags)))
        rules.extend(require)
        for name in _PREFERENCE_ORDER:
            if getattr(flags, name):
                rules.append((name, partial(getattr(self, "_" + name), flags=flags)))
        rules.extend(prefer)
        return rules

    @staticmethod
    def _everything(candidates: np.ndarray) -> np.ndarray:
        return np.ones(len(candidates), dtype=bool)

    def _no_voice_crossing(self, candidates, ctx, *, flags):
        return candidates >= ctx.note_below

    def _tenth_limit(self, candidates, ctx, *, flags):
        return np.abs(candidates - ctx.note_below) <= TENTH

    def _no_unison(self, candidates, ctx, *, flags):
        return candidates != ctx.note_below

    def _consonant_only(self, candidates, ctx, *, flags):
        mask = consonant_mask(candidates, ctx.note_below)
        if flags.allow_dissonant_passing:
            passing = np.array(
                [
                    not ok and self.admits_passing(int(c), ctx, flags)
                    for c, ok in zip(candidates, mask)
                ],
                dtype=bool,
            )
            mask = mask | passing
        return mask

    def _leave_dissonance_by_step(self, candidates, ctx, *, flags):
        if not ctx.previous_dissonant:
            return self._everything(candidates)
        before = ctx.note_before
        distance = np.abs(candidates - before)
        step = (distance > 0) & (distance <= STEP)
        if ctx.note_two_before is None or ctx.note_two_before == before:
            return step
        approach = before - ctx.note_two_before
        mask = step & ((candidates - before) * approach > 0)
        if flags.allow_neighbor_tones:
            mask = mask | (candidates == ctx.note_two_before)
        return mask

    def _resolve_suspension_down(self, candidates, ctx, *, flags):
        if not ctx.previous_dissonant:
            return self._everything(candidates)
        before = ctx.note_before
        return (candidates >= before - STEP) & (candidates <= before - 1)

    def _no_parallel_perfect(self, candidates, ctx, *, flags):
        bad = parallel_fifths_mask(candidates, ctx.note_below, ctx.previous_interval)
        if ctx.strong_interval is not None:
            bad = bad | parallel_fifths_mask(
                candidates, ctx.note_below, ctx.strong_interval
            )
        return ~bad

    def _no_hidden_parallels(self, candidates, ctx, *, flags):
        if ctx.note_before is None or ctx.note_before_and_below is None:
            return self._everything(candidates)
        return ~hidden_parallels_mask(
            candidates, ctx.note_below, ctx.note_before, ctx.note_before_and_below
        )

    def _no_large_leaps(self, candidates, ctx, *, flags):
        if ctx.note_before is None:
            return self._everything(candidates)
        return np.abs(candidates - ctx.note_before) <= LARGEST_LEAP

    def _approach_leaps_by_step(self, candidates, ctx, *, flags):
        if ctx.note_before is None or ctx.note_two_before is None:
            return self._everything(candidates)
        if abs(ctx.note_before - ctx.note_two_before) <= STEP:
            return self._everything(candidates)
        return np.abs(candidates - ctx.note_before) <= STEP

    def _limit_consecutive_intervals(self, candidates, ctx, *, flags):
        recent = ctx.recent_intervals
        if len(recent) < 2 or recent[-1] % 12 != recent[-2] % 12:
            return self._everything(candidates)
        return np.abs(candidates - ctx.note_below) % 12 != recent[-1] % 12

    def _limit_repeated_pitches(self, candidates, ctx, *, flags):
        recent = ctx.recent_pitches[-3:]
        if len(recent) < 3 or len(set(recent)) != 1:
            return self._everything(candidates)
        return candidates != recent[-1]

    def _prefer_contrary_motion(self, candidates, ctx, *, flags):
        if ctx.note_before is None or ctx.note_before_and_below is None:
            return self._everything(candidates)
        if self.rng.random() >= flags.contrary_motion_probability:
            return self._everything(candidates)
        return contrary_motion_mask(
            candidates, ctx.note_below, ctx.note_before, ctx.note_before_and_below
        )
