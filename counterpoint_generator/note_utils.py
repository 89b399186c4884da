"""Utility functions for translating between pitch indices and note names.

Pitches are stored as positions on the 88-key piano keyboard: ``0`` is A0,
``39`` is C4 (middle C) and ``87`` is C8. Exporters and the CLI need note
names and MIDI numbers instead, so the conversions live here where every
collaborator can reach them without importing the generators.

Example
-------
>>> from counterpoint_generator.note_utils import name_to_pitch, pitch_to_name
>>> name_to_pitch("C4")
39
>>> pitch_to_name(40, prefer_flats=True)
'Db4'
"""

# Modification Summary
# ---------------------
# * Note names are parsed against the piano keyboard instead of the full MIDI
#   range; names outside A0-C8 raise ``ValueError`` so no caller can build a
#   pitch the exporters cannot print.
# * ``pitch_to_name`` accepts ``prefer_flats`` so flat keys are spelled with
#   flats by the CLI and the LilyPond exporter.

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import List

__all__ = [
    "LOWEST_PITCH",
    "HIGHEST_PITCH",
    "MIDI_OFFSET",
    "NOTE_TO_SEMITONE",
    "SHARP_NAMES",
    "FLAT_NAMES",
    "name_to_pitch",
    "pitch_to_name",
    "pitch_to_midi",
    "midi_to_pitch",
    "get_interval",
]

LOWEST_PITCH = 0
HIGHEST_PITCH = 87

# MIDI note number of A0, the lowest key on the piano.
MIDI_OFFSET = 21

# Both sharp and flat spellings map onto the same semitone so user input such
# as ``Db4`` and ``C#4`` resolve identically.
NOTE_TO_SEMITONE = {
    "C": 0,
    "B#": 0,
    "C#": 1,
    "Db": 1,
    "D": 2,
    "D#": 3,
    "Eb": 3,
    "E": 4,
    "Fb": 4,
    "E#": 5,
    "F": 5,
    "F#": 6,
    "Gb": 6,
    "G": 7,
    "G#": 8,
    "Ab": 8,
    "A": 9,
    "A#": 10,
    "Bb": 10,
    "B": 11,
    "Cb": 11,
}

SHARP_NAMES: List[str] = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
FLAT_NAMES: List[str] = ["C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"]


def _check_pitch(pitch: int) -> None:
    if not LOWEST_PITCH <= pitch <= HIGHEST_PITCH:
        logging.error("Pitch out of keyboard range: %s", pitch)
        raise ValueError(
            f"pitch must be between {LOWEST_PITCH} and {HIGHEST_PITCH}: {pitch}"
        )


@lru_cache(maxsize=None)
def name_to_pitch(note: str) -> int:
    """Convert a note string such as ``C#4`` into a keyboard pitch index.

    Parameters
    ----------
    note:
        Note name including octave in scientific pitch notation.

    Returns
    -------
    int
        Pitch index in the range ``0-87``.

    Raises
    ------
    ValueError
        If ``note`` is not properly formatted or lies outside the keyboard.
    """

    match = re.fullmatch(r"([A-Ga-g][#b]?)(-?\d+)", note.strip())
    if not match:
        logging.error("Invalid note format: %s", note)
        raise ValueError(f"Invalid note format: {note}")

    name, octave_str = match.groups()
    name = name[0].upper() + name[1:]
    semitone = NOTE_TO_SEMITONE[name]
    # ``B#`` and ``Cb`` cross the octave boundary, so adjust the octave
    # number to keep ``B#3`` equal to ``C4``.
    octave = int(octave_str)
    if name == "B#":
        octave += 1
    elif name == "Cb":
        octave -= 1
    midi = (octave + 1) * 12 + semitone
    pitch = midi - MIDI_OFFSET
    if not LOWEST_PITCH <= pitch <= HIGHEST_PITCH:
        logging.error("Note outside keyboard range: %s", note)
        raise ValueError(f"Note outside keyboard range: {note}")
    return pitch


def pitch_to_name(pitch: int, prefer_flats: bool = False) -> str:
    """Return the scientific pitch name for ``pitch``.

    @param pitch (int): Keyboard index between 0 and 87.
    @param prefer_flats (bool): Spell black keys with flats instead of sharps.
    @returns str: Name such as ``"C4"`` or ``"Bb3"``.
    """

    _check_pitch(pitch)
    midi = pitch + MIDI_OFFSET
    names = FLAT_NAMES if prefer_flats else SHARP_NAMES
    return f"{names[midi % 12]}{midi // 12 - 1}"


def pitch_to_midi(pitch: int) -> int:
    """Return the MIDI note number sounding ``pitch``."""

    _check_pitch(pitch)
    return pitch + MIDI_OFFSET


def midi_to_pitch(midi: int) -> int:
    """Return the keyboard index for MIDI note ``midi``.

    Raises
    ------
    ValueError
        If ``midi`` does not fall on the 88-key keyboard.
    """

    pitch = midi - MIDI_OFFSET
    _check_pitch(pitch)
    return pitch


def get_interval(a: int, b: int) -> int:
    """Return the absolute interval in semitones between two pitches."""

    return abs(b - a)
