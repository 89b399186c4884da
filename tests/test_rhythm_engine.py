"""Tests for the florid rhythm planner."""

import importlib
import sys
from fractions import Fraction
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

rhythm_engine = importlib.import_module("counterpoint_generator.rhythm_engine")


def test_every_pattern_fills_one_measure():
    for durations in rhythm_engine.RHYTHM_PATTERNS.values():
        assert sum(Fraction(1, d) for d in durations) == 1


def test_offsets():
    measure = rhythm_engine.MeasureRhythm("mixed", (4, 8, 8, 2))
    assert measure.offsets == (
        Fraction(0),
        Fraction(1, 4),
        Fraction(3, 8),
        Fraction(1, 2),
    )


def test_choose_avoids_previous_pattern():
    gen = rhythm_engine.FloridRhythmGenerator(np.random.default_rng(0))
    for _ in range(20):
        assert gen.choose("halves", allowed=("halves", "quarters")) == "quarters"


def test_choose_keeps_only_option():
    gen = rhythm_engine.FloridRhythmGenerator(np.random.default_rng(0))
    assert gen.choose("whole", allowed=("whole",)) == "whole"


def test_short_plans():
    gen = rhythm_engine.FloridRhythmGenerator(np.random.default_rng(1))
    assert gen.plan(0, 0) == []
    plan = gen.plan(1, 0)
    assert [m.name for m in plan] == ["whole"]


@pytest.mark.parametrize("length", [2, 3, 5, 8, 12])
def test_plan_shape(length):
    for seed in range(10):
        gen = rhythm_engine.FloridRhythmGenerator(np.random.default_rng(seed))
        plan = gen.plan(length, length // 2)
        names = [m.name for m in plan]
        assert len(plan) == length
        assert names[0] == "halves"
        assert names[-1] == "whole"
        if length > 2:
            assert names[-2] in ("halves", "quarters_half")
        for a, b in zip(names, names[1:]):
            assert a != b


def test_syncopations_stay_clear_of_the_cadence():
    for seed in range(30):
        gen = rhythm_engine.FloridRhythmGenerator(np.random.default_rng(seed))
        plan = gen.plan(10, 4)
        for k, measure in enumerate(plan):
            if measure.syncopated:
                assert measure.name == "halves"
                assert k <= len(plan) - 4
                assert plan[k + 1].name in ("halves", "half_quarters")


def test_plans_are_reproducible():
    a = rhythm_engine.FloridRhythmGenerator(np.random.default_rng(9)).plan(8, 3)
    b = rhythm_engine.FloridRhythmGenerator(np.random.default_rng(9)).plan(8, 3)
    assert a == b
