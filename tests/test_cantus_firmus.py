"""Tests for cantus firmus validation and generation."""

import importlib
import logging
import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

cf_mod = importlib.import_module("counterpoint_generator.cantus_firmus")
scales = importlib.import_module("counterpoint_generator.scales")
errors = importlib.import_module("counterpoint_generator.errors")

C_MAJOR = scales.scale_context("C")
# C D E D F G E D C
GOOD = [39, 41, 43, 41, 44, 46, 43, 41, 39]


def test_reference_melody_is_valid():
    assert cf_mod.cantus_firmus_violations(GOOD, C_MAJOR) == []
    assert cf_mod.is_valid_cantus_firmus(GOOD, C_MAJOR)


@pytest.mark.parametrize(
    "melody, problem",
    [
        ([39, 41, 39], "length"),
        ([41, 43, 41, 44, 46, 43, 41, 39], "tonic_start"),
        ([39, 41, 43, 41, 44, 46, 43, 41], "tonic_end"),
        ([39, 41, 42, 41, 44, 46, 43, 41, 39], "out_of_key"),
        ([39, 41, 43, 46, 43, 46, 41, 39], "climax"),
        ([39, 46, 44, 43, 41, 43, 41, 39], "climax"),
        ([39, 41, 43, 44, 46, 44, 43, 41, 39], "monotonic_run"),
        ([39, 44, 50, 48, 46, 43, 41, 39], "dissonant_leap"),
        ([39, 43, 46, 51, 58, 48, 41, 39], "range"),
        ([39, 43, 46, 43, 48, 44, 43, 39], "cadence_step"),
    ],
)
def test_violations_are_named(melody, problem):
    assert problem in cf_mod.cantus_firmus_violations(melody, C_MAJOR)


def test_outlined_tritone():
    # The turn on F4 and the peak on B4 outline a tritone.
    melody = [39, 44, 43, 46, 48, 50, 46, 43, 41, 39]
    assert "outlined_tritone" in cf_mod.cantus_firmus_violations(melody, C_MAJOR)


def test_skeleton_melody():
    assert cf_mod.skeleton_cantus_firmus(C_MAJOR, 8) == [39, 43, 46, 48, 46, 43, 41, 39]
    assert cf_mod.skeleton_cantus_firmus(C_MAJOR, 3) == [39, 43, 39]
    assert cf_mod.skeleton_cantus_firmus(C_MAJOR, 10)[-1] == 39


def test_length_below_one_raises():
    gen = cf_mod.CantusFirmusGenerator(C_MAJOR, np.random.default_rng(0))
    with pytest.raises(errors.ConfigurationError):
        gen.generate(0)


def test_short_lengths_use_skeleton(caplog):
    gen = cf_mod.CantusFirmusGenerator(C_MAJOR, np.random.default_rng(0))
    with caplog.at_level(logging.WARNING):
        voice = gen.generate(4)
    assert gen.used_fallback
    assert voice.pitches == (39, 43, 46, 39)
    assert "skeleton" in caplog.text


def test_exhausted_attempts_fall_back(caplog):
    gen = cf_mod.CantusFirmusGenerator(C_MAJOR, np.random.default_rng(0), max_attempts=0)
    with caplog.at_level(logging.WARNING):
        voice = gen.generate(8)
    assert gen.used_fallback
    assert list(voice.pitches) == cf_mod.skeleton_cantus_firmus(C_MAJOR, 8)
    assert "no valid cantus firmus after 0 attempts" in caplog.text


def test_generation_exhausted_message():
    exc = errors.GenerationExhausted(1000)
    assert exc.attempts == 1000
    assert "1000" in str(exc)


@pytest.mark.parametrize("key", ["C", "G", "Eb", "F#", "A"])
@pytest.mark.parametrize("mode", ["major", "minor"])
@pytest.mark.parametrize("length", [5, 8, 12])
def test_generated_melodies_follow_the_rules(key, mode, length):
    scale = scales.scale_context(key, mode)
    for seed in range(5):
        gen = cf_mod.CantusFirmusGenerator(scale, np.random.default_rng(seed))
        voice = gen.generate(length)
        pitches = list(voice.pitches)
        assert not gen.used_fallback
        assert 1 <= gen.attempts <= cf_mod.MAX_ATTEMPTS
        assert cf_mod.is_valid_cantus_firmus(pitches, scale)
        assert len(pitches) == length
        assert pitches[0] == pitches[-1] == scale.tonic
        assert max(pitches) - min(pitches) <= 16
        peak = max(pitches)
        assert pitches.count(peak) == 1
        assert length // 4 <= pitches.index(peak) <= (3 * length) // 4
        assert all(abs(b - a) <= 12 for a, b in zip(pitches, pitches[1:]))
        assert abs(pitches[-1] - pitches[-2]) <= 2
        assert set(voice.durations) == {1}


def test_generation_is_deterministic():
    a = cf_mod.generate_cantus_firmus(C_MAJOR, 9, np.random.default_rng(11))
    b = cf_mod.generate_cantus_firmus(C_MAJOR, 9, np.random.default_rng(11))
    assert a == b


# GOOD with a leap of a fifth into the final tonic.
LEAPING_CADENCE = [39, 41, 43, 41, 44, 46, 43, 46, 39]
# Moving the penultimate G4 to D4 leaves a minor seventh down from C5.
UNFIXABLE_CADENCE = [39, 43, 46, 48, 51, 46, 39]


def test_fix_penultimate_moves_onto_a_step():
    gen = cf_mod.CantusFirmusGenerator(C_MAJOR, np.random.default_rng(0))
    assert "cadence_step" in cf_mod.cantus_firmus_violations(LEAPING_CADENCE, C_MAJOR)
    fixed = gen._fix_penultimate(LEAPING_CADENCE)
    assert fixed == GOOD
    assert cf_mod.is_valid_cantus_firmus(fixed, C_MAJOR)
    assert gen._fix_penultimate(GOOD) == GOOD


def test_fixed_melody_is_accepted(monkeypatch):
    gen = cf_mod.CantusFirmusGenerator(C_MAJOR, np.random.default_rng(0))
    monkeypatch.setattr(gen, "_attempt", lambda length: list(LEAPING_CADENCE))
    voice = gen.generate(len(LEAPING_CADENCE))
    assert list(voice.pitches) == GOOD
    assert gen.attempts == 1
    assert not gen.used_fallback


def test_fix_penultimate_can_create_a_bad_leap():
    gen = cf_mod.CantusFirmusGenerator(C_MAJOR, np.random.default_rng(0))
    fixed = gen._fix_penultimate(UNFIXABLE_CADENCE)
    assert fixed[-2] == 41
    assert "dissonant_leap" in cf_mod.cantus_firmus_violations(fixed, C_MAJOR)
    assert not cf_mod.is_valid_cantus_firmus(fixed, C_MAJOR)


def test_bad_correction_rejects_the_attempt(monkeypatch, caplog):
    gen = cf_mod.CantusFirmusGenerator(C_MAJOR, np.random.default_rng(0), max_attempts=3)
    monkeypatch.setattr(gen, "_attempt", lambda length: list(UNFIXABLE_CADENCE))
    with caplog.at_level(logging.WARNING):
        voice = gen.generate(len(UNFIXABLE_CADENCE))
    assert gen.attempts == 3
    assert gen.used_fallback
    assert list(voice.pitches) == cf_mod.skeleton_cantus_firmus(C_MAJOR, 7)
    assert "no valid cantus firmus after 3 attempts" in caplog.text
