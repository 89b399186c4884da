"""Utilities for writing generated phrases as MIDI files.

Modification summary
--------------------
* ``create_midi_file`` writes one track per voice: the counterpoint first,
  carrying the tempo and time signature, followed by the cantus firmus.
* Tied notes of the same pitch are merged into a single sustained note so
  suspensions sound as held notes rather than repeated attacks.
* The fourth-species lead-in is written as a delay before the first
  counterpoint note.
* Several phrases can be passed at once; they are written back to back on
  the same two tracks.
* ``create_midi_file`` creates the destination directory automatically and
  validates ``bpm`` is positive so invalid tempos are caught early.
* Imports from ``mido`` are deferred inside ``create_midi_file`` so the module
  can load even when the optional dependency is missing.

This module contains the low-level helpers used to render phrases as MIDI.
It is separated from the generators so applications can produce MIDI without
touching the counterpoint rules.
"""

from __future__ import annotations

from fractions import Fraction
from pathlib import Path
from typing import TYPE_CHECKING, List, Sequence, Tuple, Union

from .models import Phrase, Voice
from .note_utils import pitch_to_midi

if TYPE_CHECKING:
    # ``MidiFile`` is only needed for type checking to avoid requiring the
    # optional dependency at import time.
    from mido import MidiFile

__all__ = ["TICKS_PER_BEAT", "create_midi_file", "sounding_notes"]

TICKS_PER_BEAT = 480
WHOLE_NOTE_TICKS = TICKS_PER_BEAT * 4
BASE_VELOCITY = 64
DOWNBEAT_ACCENT = 10


def sounding_notes(voice: Voice) -> List[Tuple[int, Fraction]]:
    """Return ``(pitch, length)`` pairs with tied notes merged.

    A run of notes joined by ties on the same pitch becomes one entry whose
    length is the sum of the run. A tie into a different pitch is ignored.
    """

    merged: List[Tuple[int, Fraction]] = []
    tied = False
    for note in voice:
        if tied and merged and merged[-1][0] == note.pitch:
            pitch, length = merged[-1]
            merged[-1] = (pitch, length + note.length)
        else:
            merged.append((note.pitch, note.length))
        tied = note.tie
    return merged


def _write_voice(track, voice: Voice, delay: Fraction, channel: int) -> None:
    from mido import Message

    position = delay
    rest_ticks = int(delay * WHOLE_NOTE_TICKS)
    for pitch, length in sounding_notes(voice):
        midi_note = pitch_to_midi(pitch)
        # Notes starting on a barline receive a small accent.
        velocity = BASE_VELOCITY
        if position.denominator == 1:
            velocity += DOWNBEAT_ACCENT
        ticks = int(length * WHOLE_NOTE_TICKS)
        track.append(
            Message(
                "note_on", note=midi_note, velocity=velocity, time=rest_ticks, channel=channel
            )
        )
        track.append(
            Message(
                "note_off", note=midi_note, velocity=velocity, time=ticks, channel=channel
            )
        )
        rest_ticks = 0
        position += length


def create_midi_file(
    phrases: Union[Phrase, Sequence[Phrase]],
    bpm: int,
    output_file: str,
    program: int = 0,
) -> "MidiFile":
    """Write one or more phrases to ``output_file`` as a two-track MIDI file.

    Parameters
    ----------
    phrases:
        Generated phrase, or a sequence of phrases played back to back.
    bpm:
        Tempo in quarter notes per minute. Must be positive.
    output_file:
        Destination path. The parent directory is created when missing.
    program:
        General MIDI program used by both voices.

    Returns
    -------
    MidiFile
        In-memory representation of the written file for further inspection
        or reuse without reloading from disk.

    Raises
    ------
    ValueError
        If ``bpm`` is not positive.
    """

    try:
        import mido
        from mido import Message, MidiFile, MidiTrack
    except ModuleNotFoundError as exc:
        raise ImportError(
            "mido is required to create MIDI files; install it with 'pip install mido'"
        ) from exc

    if bpm <= 0:
        raise ValueError("bpm must be a positive integer")

    mid = MidiFile(ticks_per_beat=TICKS_PER_BEAT)
    upper = MidiTrack()
    lower = MidiTrack()
    mid.tracks.append(upper)
    mid.tracks.append(lower)

    upper.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(bpm)))
    upper.append(mido.MetaMessage("time_signature", numerator=4, denominator=4))
    upper.append(mido.MetaMessage("track_name", name="Counterpoint"))
    lower.append(mido.MetaMessage("track_name", name="Cantus firmus"))
    upper.append(Message("program_change", program=program, time=0, channel=0))
    lower.append(Message("program_change", program=program, time=0, channel=1))

    if isinstance(phrases, Phrase):
        phrases = [phrases]
    # Every phrase fills whole measures, so each one starts on a barline.
    for phrase in phrases:
        _write_voice(upper, phrase.counterpoint, phrase.lead_in, channel=0)
        _write_voice(lower, phrase.cantus_firmus, Fraction(0), channel=1)

    path = Path(output_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    mid.save(str(path))
    return mid
