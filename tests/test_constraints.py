"""Tests for the constraint pipeline shared by the species strategies."""

import dataclasses
import importlib
import logging
import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

constraints = importlib.import_module("counterpoint_generator.constraints")
scales = importlib.import_module("counterpoint_generator.scales")

GenerationContext = constraints.GenerationContext
RuleFlags = constraints.RuleFlags


@pytest.fixture
def pipeline():
    return constraints.ConstraintPipeline(scales.scale_context("C"), np.random.default_rng(0))


def test_context_is_immutable():
    ctx = GenerationContext(note_below=39)
    with pytest.raises(dataclasses.FrozenInstanceError):
        ctx.note_below = 41


def test_context_previous_interval():
    ctx = GenerationContext(note_below=41, note_before=46, note_before_and_below=39)
    assert ctx.previous_interval == 7
    assert not ctx.previous_dissonant
    assert GenerationContext(note_below=41).previous_interval is None
    assert GenerationContext(note_below=41, note_before=41, note_before_and_below=39).previous_dissonant


def test_candidates_are_diatonic_and_near_the_bass(pipeline):
    pool = pipeline.candidates(GenerationContext(note_below=39))
    assert pool.min() >= 27 and pool.max() <= 58
    assert all(pipeline.scale.contains(int(p)) for p in pool)


def test_default_rules_keep_consonances_above_within_tenth(pipeline):
    pool = pipeline.narrow(GenerationContext(note_below=39), RuleFlags())
    assert len(pool)
    for pitch in pool:
        assert 39 <= pitch <= 55
        assert (pitch - 39) % 12 in {0, 3, 4, 7, 8, 9}


def test_no_unison_rule(pipeline):
    pool = pipeline.narrow(GenerationContext(note_below=39), RuleFlags(no_unison=True))
    assert 39 not in pool.tolist()
    assert 51 in pool.tolist()


def test_parallel_perfect_intervals_removed(pipeline):
    ctx = GenerationContext(note_below=41, note_before=46, note_before_and_below=39)
    pool = pipeline.narrow(ctx, RuleFlags())
    assert 48 not in pool.tolist()
    assert 60 not in pool.tolist()


def test_rule_emptying_the_pool_is_skipped(pipeline, caplog):
    """A rule that removes every candidate is ignored and logged at debug level."""

    ctx = GenerationContext(note_below=39)
    reject_all = ("reject_all", lambda c, _ctx: np.zeros(len(c), dtype=bool))
    baseline = pipeline.narrow(ctx, RuleFlags())
    with caplog.at_level(logging.DEBUG):
        pool = pipeline.narrow(ctx, RuleFlags(), require=(reject_all,))
    assert pool.tolist() == baseline.tolist()
    assert "reject_all" in caplog.text


def test_interval_class_rules(pipeline):
    ctx = GenerationContext(note_below=39)
    pool = pipeline.narrow(
        ctx,
        RuleFlags(),
        require=(constraints.exclude_interval_classes(0),),
        prefer=(constraints.prefer_interval_classes(8, 9),),
    )
    assert pool.tolist() == [48]


def test_approach_target():
    _, rule = constraints.approach_target(39)
    mask = rule(np.array([36, 37, 38, 39, 40, 41, 42]), GenerationContext(note_below=30))
    assert mask.tolist() == [False, True, True, False, True, True, False]


def test_explicit_candidates(pipeline):
    ctx = GenerationContext(note_below=39)
    pool = pipeline.narrow(ctx, RuleFlags(), candidates=np.array([40, 43, 48]))
    assert pool.tolist() == [43, 48]


def test_propose_is_seeded():
    ctx = GenerationContext(note_below=39, note_before=46, note_before_and_below=39)
    picks = []
    for _ in range(2):
        pipe = constraints.ConstraintPipeline(scales.scale_context("C"), np.random.default_rng(5))
        picks.append([pipe.propose(ctx, RuleFlags()) for _ in range(10)])
    assert picks[0] == picks[1]


def test_select_falls_back_when_pool_empty(pipeline):
    ctx = GenerationContext(note_below=39)
    assert pipeline.select(np.array([], dtype=np.int64), ctx) == 46


def test_fallback_pitch_respects_previous_note(pipeline):
    ctx = GenerationContext(note_below=39, note_before=55)
    assert pipeline.fallback_pitch(ctx) == 46
    # The fifth and third above are more than an octave from A5.
    ctx = GenerationContext(note_below=39, note_before=60)
    assert pipeline.fallback_pitch(ctx) == 48


def test_fallback_pitch_last_resort(pipeline, caplog):
    ctx = GenerationContext(note_below=39, note_before=75)
    with caplog.at_level(logging.WARNING):
        assert pipeline.fallback_pitch(ctx) == 46
    assert "fixed fallback" in caplog.text


def _passing_context(**overrides):
    values = dict(
        note_below=39,
        note_before=43,
        note_before_and_below=39,
        note_two_before=44,
        next_below=36,
    )
    values.update(overrides)
    return GenerationContext(**values)


def test_admits_passing_tone(pipeline):
    """D4 over C4, reached from F4-E4 and continuing to C4 over A3."""

    flags = RuleFlags(allow_dissonant_passing=True)
    assert pipeline.admits_passing(41, _passing_context(), flags)


def test_passing_tone_needs_stepwise_approach(pipeline):
    flags = RuleFlags(allow_dissonant_passing=True)
    assert not pipeline.admits_passing(41, _passing_context(note_before=46, note_two_before=48), flags)


def test_passing_tone_needs_continuation(pipeline):
    flags = RuleFlags(allow_dissonant_passing=True)
    assert not pipeline.admits_passing(41, _passing_context(note_two_before=41), flags)
    loose = dataclasses.replace(flags, passing_requires_continuation=False)
    assert pipeline.admits_passing(41, _passing_context(note_two_before=41), loose)


def test_passing_tone_needs_consonant_exit(pipeline):
    flags = RuleFlags(allow_dissonant_passing=True)
    # C4 over B3 is a dissonant second, so there is no way out.
    assert not pipeline.admits_passing(41, _passing_context(next_below=38), flags)
    assert not pipeline.admits_passing(41, _passing_context(next_fixed=43), flags)
    assert pipeline.admits_passing(41, _passing_context(next_fixed=39), flags)


def test_neighbor_tone_exit(pipeline):
    flags = RuleFlags(allow_dissonant_passing=True, passing_requires_continuation=False, allow_neighbor_tones=True)
    assert pipeline.admits_passing(41, _passing_context(next_fixed=43), flags)


def test_dissonance_left_by_step(pipeline):
    """After a dissonance only a stepwise continuation remains."""

    ctx = GenerationContext(
        note_below=39,
        note_before=41,
        note_before_and_below=39,
        note_two_before=43,
        next_below=None,
    )
    pool = pipeline.narrow(ctx, RuleFlags())
    assert pool.tolist() == [39]


def _suspension_context(held=44):
    # F4 tied over C4 forms a dissonant fourth.
    return GenerationContext(
        note_below=39,
        note_before=held,
        note_before_and_below=39,
        note_two_before=held,
    )


def test_resolve_suspension_down(pipeline):
    ctx = _suspension_context()
    assert pipeline.narrow(ctx, RuleFlags()).tolist() == [43, 46]
    pool = pipeline.narrow(ctx, RuleFlags(resolve_suspension_down=True))
    assert pool.tolist() == [43]


def test_resolve_suspension_down_ignores_consonant_ties(pipeline):
    ctx = _suspension_context(held=46)
    flags = RuleFlags(resolve_suspension_down=True)
    assert pipeline.narrow(ctx, flags).tolist() == pipeline.narrow(ctx, RuleFlags()).tolist()


def test_requirements_cannot_override_leap_limit(pipeline, caplog):
    ctx = GenerationContext(note_below=39, note_before=41, note_before_and_below=34)
    high = ("high", lambda c, _ctx: c >= 55)
    with caplog.at_level(logging.DEBUG):
        pool = pipeline.narrow(ctx, RuleFlags(), require=(high,))
    assert len(pool)
    assert all(abs(int(p) - 41) <= 12 for p in pool)
    assert "high" in caplog.text


def test_within_reach():
    name, rule = constraints.within_reach(50)
    mask = rule(np.array([39, 40, 50, 60, 61]), GenerationContext(note_below=39))
    assert mask.tolist() == [False, True, True, True, False]
    assert name == "within_10_of_50"
