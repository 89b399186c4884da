"""Tests for the LilyPond exporter."""

import importlib
import sys
from fractions import Fraction
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

lilypond = importlib.import_module("counterpoint_generator.lilypond")
models = importlib.import_module("counterpoint_generator.models")

Note = models.Note
Voice = models.Voice


def _first_species_phrase():
    return models.Phrase(
        key="C",
        mode="major",
        species=1,
        cantus_firmus=Voice.from_pitches([39, 41, 39]),
        counterpoint=Voice.from_pitches([46, 48, 51]),
    )


@pytest.mark.parametrize(
    "pitch, flats, expected",
    [
        (39, False, "c'"),
        (51, False, "c''"),
        (34, False, "g"),
        (22, False, "g,"),
        (0, False, "a,,,"),
        (40, False, "cis'"),
        (40, True, "des'"),
        (42, True, "es'"),
    ],
)
def test_lilypond_pitch(pitch, flats, expected):
    assert lilypond.lilypond_pitch(pitch, flats) == expected


def test_lilypond_note():
    assert lilypond.lilypond_note(Note(39, 1)) == "c'1"
    assert lilypond.lilypond_note(Note(37, 2, tie=True), prefer_flats=True) == "bes2~"
    assert lilypond.lilypond_note(Note(44, 8)) == "f'8"


def test_document_layout():
    text = lilypond.phrase_to_lilypond(_first_species_phrase())
    assert text.startswith('\\version "2.24.0"')
    assert 'title = "Species Counterpoint"' in text
    assert 'composer = "Counterpoint Generator"' in text
    assert 'subtitle = "Species 1 in C major"' in text
    assert "\\key c \\major" in text
    assert "  g'1 a'1 c''1\n" in text
    assert "  c'1 d'1 c'1\n" in text
    assert "\\new StaffGroup <<" in text
    assert text.count("\\new Staff =") == 2
    assert "\\midi { }" in text
    # The cantus firmus sits at or above middle C.
    assert text.count('\\clef "treble"') == 2


def test_lead_in_rest_ties_and_flats():
    phrase = models.Phrase(
        key="Bb",
        mode="minor",
        species=4,
        cantus_firmus=Voice.from_pitches([37, 36, 37]),
        counterpoint=Voice(
            (
                Note(44, 2),
                Note(44, 2, tie=True),
                Note(44, 2),
                Note(49, 2, tie=True),
                Note(49, 2),
            )
        ),
        lead_in=Fraction(1, 2),
    )
    text = lilypond.phrase_to_lilypond(phrase)
    assert "\\key bes \\minor" in text
    assert "  r2 f'2 f'2~ f'2 bes'2~ bes'2\n" in text
    assert '\\clef "bass"' in text


def test_header_text_is_escaped():
    text = lilypond.phrase_to_lilypond(
        _first_species_phrase(), title='The "Study"', composer="J. J. Fux"
    )
    assert 'title = "The \\"Study\\""' in text
    assert 'composer = "J. J. Fux"' in text


def test_export_lilypond(tmp_path):
    out = tmp_path / "scores" / "phrase.ly"
    written = lilypond.export_lilypond(_first_species_phrase(), str(out), title="Exercise")
    assert written == out
    assert out.read_text(encoding="utf-8") == lilypond.phrase_to_lilypond(
        _first_species_phrase(), "Exercise"
    )


def test_single_phrase_variables_and_final_bar():
    text = lilypond.phrase_to_lilypond(_first_species_phrase())
    assert "upperVoiceA = {" in text
    assert "lowerVoiceA = {" in text
    assert '\\new Staff = "counterpoint" { \\upperVoiceA }' in text
    assert text.count('\\bar "|."') == 2
    assert '\\bar "||"' not in text


def test_several_phrases():
    second = models.Phrase(
        key="G",
        mode="major",
        species=1,
        cantus_firmus=Voice.from_pitches([46, 48, 46]),
        counterpoint=Voice.from_pitches([53, 55, 58]),
    )
    text = lilypond.phrases_to_lilypond([_first_species_phrase(), second])
    assert "% Phrase 1" in text and "% Phrase 2" in text
    assert "upperVoiceB = {" in text and "lowerVoiceB = {" in text
    assert '\\new Staff = "counterpoint" { \\upperVoiceA \\upperVoiceB }' in text
    assert '\\new Staff = "cantus" { \\lowerVoiceA \\lowerVoiceB }' in text
    # Double bars separate the phrases; only the last one closes the piece.
    assert text.count('\\bar "||"') == 2
    assert text.count('\\bar "|."') == 2
    assert text.index('\\bar "||"') < text.index("upperVoiceB = {")
    assert "\\key g \\major" in text
    # Phrases in different keys share no subtitle.
    assert "subtitle" not in text


def test_phrases_sharing_a_key_get_a_subtitle():
    phrase = _first_species_phrase()
    text = lilypond.phrases_to_lilypond([phrase, phrase, phrase])
    assert 'subtitle = "3 phrases of species 1 in C major"' in text
    assert "upperVoiceC = {" in text


def test_variable_names_use_letters_only():
    assert lilypond._variable_suffix(1) == "A"
    assert lilypond._variable_suffix(26) == "Z"
    assert lilypond._variable_suffix(27) == "AA"
    assert lilypond._variable_suffix(28) == "AB"


def test_no_phrases():
    with pytest.raises(ValueError):
        lilypond.phrases_to_lilypond([])


def test_export_several_phrases(tmp_path):
    phrases = [_first_species_phrase(), _first_species_phrase()]
    out = lilypond.export_lilypond(phrases, str(tmp_path / "two.ly"))
    assert out.read_text(encoding="utf-8") == lilypond.phrases_to_lilypond(phrases)
