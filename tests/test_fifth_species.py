"""Tests for florid (fifth species) counterpoint."""

import importlib
import sys
from fractions import Fraction
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from counterpoint_oracle import (  # noqa: E402
    assert_above_within_tenth,
    assert_dissonances_move_by_step,
    assert_leaps_within_octave,
    assert_perfect_ends,
    assert_ties_join_equal_pitches,
)

fifth = importlib.import_module("counterpoint_generator.fifth_species")
scales = importlib.import_module("counterpoint_generator.scales")
cantus_firmus = importlib.import_module("counterpoint_generator.cantus_firmus")
models = importlib.import_module("counterpoint_generator.models")
species = importlib.import_module("counterpoint_generator.species")


def _generate(key, mode, length, seed):
    scale = scales.scale_context(key, mode)
    rng = np.random.default_rng(seed)
    cantus = cantus_firmus.generate_cantus_firmus(scale, length, rng)
    return cantus, fifth.FifthSpecies(scale, rng).generate(cantus)


@pytest.mark.parametrize("key", ["C", "E", "Eb", "A"])
@pytest.mark.parametrize("mode", ["major", "minor"])
@pytest.mark.parametrize("length", [5, 8, 12])
def test_fifth_species_rules(key, mode, length):
    for seed in range(4):
        cantus, cp = _generate(key, mode, length, seed)
        assert set(cp.durations) <= {1, 2, 4, 8}
        assert len(set(cp.durations)) >= 2
        assert cp.total_length == cantus.total_length
        assert cp[-1].duration == 1
        assert_perfect_ends(cp, cantus)
        assert_leaps_within_octave(cp)
        assert_above_within_tenth(cp, cantus)
        assert_ties_join_equal_pitches(cp)
        assert_dissonances_move_by_step(cp, cantus)


def test_every_measure_is_filled():
    for seed in range(8):
        cantus, cp = _generate("F", "major", 9, seed)
        starts = set()
        position = 0
        for note in cp:
            starts.add(position)
            position += note.length
        # Every cantus firmus note has a counterpoint note starting with it.
        assert set(range(len(cantus))) <= starts


@pytest.mark.parametrize(
    "slot, expected",
    [
        (species.Slot(0, 1, 0), "WHOLE_NOTE_RULES"),
        (species.Slot(0, 2, 0), "HALF_DOWNBEAT_RULES"),
        (species.Slot(0, 2, Fraction(1, 2)), "HALF_UPBEAT_RULES"),
        (species.Slot(0, 4, 0), "QUARTER_DOWNBEAT_RULES"),
        (species.Slot(0, 4, Fraction(1, 4)), "QUARTER_WEAK_RULES"),
        (species.Slot(0, 8, Fraction(3, 8)), "EIGHTH_RULES"),
    ],
)
def test_rules_for_slot(slot, expected):
    assert fifth.FifthSpecies.rules_for(slot) is getattr(fifth, expected)


def test_every_florid_rule_set_limits_repetition():
    for name in fifth.__all__[:-1]:
        flags = getattr(fifth, name)
        assert flags.limit_repeated_pitches
        assert flags.allow_neighbor_tones


def test_single_note_cantus_is_a_whole_note():
    scale = scales.scale_context("C")
    cp = fifth.FifthSpecies(scale, np.random.default_rng(2)).generate(
        models.Voice.from_pitches([39])
    )
    assert cp.durations == (1,)
