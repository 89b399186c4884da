"""Tests for the immutable value containers."""

import dataclasses
import importlib
import sys
from fractions import Fraction
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

models = importlib.import_module("counterpoint_generator.models")


def test_note_validates_pitch_and_duration():
    with pytest.raises(ValueError):
        models.Note(88)
    with pytest.raises(ValueError):
        models.Note(-1)
    with pytest.raises(ValueError):
        models.Note(39, 3)


def test_note_length_is_fraction_of_whole():
    assert models.Note(39, 1).length == 1
    assert models.Note(39, 8).length == Fraction(1, 8)


def test_note_is_frozen():
    note = models.Note(39)
    with pytest.raises(dataclasses.FrozenInstanceError):
        note.pitch = 40


def test_voice_from_pitches():
    voice = models.Voice.from_pitches([39, 41, 43], 2)
    assert voice.pitches == (39, 41, 43)
    assert voice.durations == (2, 2, 2)
    assert voice.total_length == Fraction(3, 2)
    assert len(voice) == 3
    assert voice[1].pitch == 41
    assert [n.pitch for n in voice] == [39, 41, 43]


def test_empty_voice():
    voice = models.Voice()
    assert len(voice) == 0
    assert voice.total_length == 0


def test_phrase_defaults_to_no_lead_in():
    cf = models.Voice.from_pitches([39, 41, 39])
    phrase = models.Phrase("C", "major", 1, cf, cf)
    assert phrase.lead_in == 0
    assert phrase == models.Phrase("C", "major", 1, cf, cf)
