"""LilyPond text export.

One or more phrases are written as a complete ``.ly`` document: header,
paper settings, one variable per voice and phrase, and a two-staff score that
plays the phrases in order and also requests MIDI output from LilyPond.
Pitches use LilyPond's Dutch note names (``cis``, ``bes``) with octave marks
relative to ``c`` (``c'`` is middle C), followed by the duration number.
Ties print as ``~``.

Example
-------
>>> from counterpoint_generator.models import Note
>>> lilypond_note(Note(39, 1))
"c'1"
>>> lilypond_note(Note(37, 2, tie=True), prefer_flats=True)
'bes2~'
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .models import Note, Phrase
from .note_utils import FLAT_NAMES, MIDI_OFFSET, SHARP_NAMES
from .scales import key_prefers_flats

__all__ = [
    "LILYPOND_VERSION",
    "DEFAULT_TITLE",
    "DEFAULT_COMPOSER",
    "lilypond_pitch",
    "lilypond_note",
    "phrase_to_lilypond",
    "phrases_to_lilypond",
    "export_lilypond",
]

LILYPOND_VERSION = "2.24.0"
DEFAULT_TITLE = "Species Counterpoint"
DEFAULT_COMPOSER = "Counterpoint Generator"

# Dutch spelling used by LilyPond's default input language.
_DUTCH: Dict[str, str] = {
    "C": "c",
    "C#": "cis",
    "Db": "des",
    "D": "d",
    "D#": "dis",
    "Eb": "es",
    "E": "e",
    "F": "f",
    "F#": "fis",
    "Gb": "ges",
    "G": "g",
    "G#": "gis",
    "Ab": "as",
    "A": "a",
    "A#": "ais",
    "Bb": "bes",
    "B": "b",
}


def lilypond_pitch(pitch: int, prefer_flats: bool = False) -> str:
    """Return the LilyPond spelling of ``pitch`` including octave marks."""

    midi = pitch + MIDI_OFFSET
    names = FLAT_NAMES if prefer_flats else SHARP_NAMES
    octave = midi // 12 - 1
    marks = octave - 3
    suffix = "'" * marks if marks > 0 else "," * -marks
    return _DUTCH[names[midi % 12]] + suffix


def lilypond_note(note: Note, prefer_flats: bool = False) -> str:
    text = f"{lilypond_pitch(note.pitch, prefer_flats)}{note.duration}"
    return text + "~" if note.tie else text


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def _variable_suffix(number: int) -> str:
    """Return ``A``, ``B``, ... ``Z``, ``AA`` for phrase ``number`` (1-based).

    LilyPond variable names may only contain letters.
    """

    letters = ""
    while number > 0:
        number, rest = divmod(number - 1, 26)
        letters = chr(ord("A") + rest) + letters
    return letters


def _subtitle(phrases: Sequence[Phrase]) -> Optional[str]:
    described = {(p.species, p.key, p.mode) for p in phrases}
    if len(described) != 1:
        return None
    species, key, mode = described.pop()
    if len(phrases) == 1:
        return f"Species {species} in {key} {mode}"
    return f"{len(phrases)} phrases of species {species} in {key} {mode}"


def _phrase_variables(phrase: Phrase, number: int, closing: bool) -> List[str]:
    flats = key_prefers_flats(phrase.key, phrase.mode)
    key_line = f"\\key {_DUTCH[phrase.key]} \\{phrase.mode}"
    suffix = _variable_suffix(number)
    bar = '  \\bar "|."' if closing else '  \\bar "||"'

    upper: List[str] = []
    if phrase.lead_in:
        upper.append(f"r{phrase.lead_in.denominator}")
    upper.extend(lilypond_note(n, flats) for n in phrase.counterpoint)
    lower = [lilypond_note(n, flats) for n in phrase.cantus_firmus]
    return [
        f"% Phrase {number}",
        f"upperVoice{suffix} = {{",
        f'  \\clef "treble" {key_line} \\time 4/4',
        "  " + " ".join(upper),
        bar,
        "}",
        "",
        f"lowerVoice{suffix} = {{",
        f'  \\clef "{_lower_clef(phrase)}" {key_line} \\time 4/4',
        "  " + " ".join(lower),
        bar,
        "}",
        "",
    ]


def phrases_to_lilypond(
    phrases: Sequence[Phrase],
    title: str = DEFAULT_TITLE,
    composer: str = DEFAULT_COMPOSER,
) -> str:
    """Render ``phrases`` one after another as a single LilyPond document.

    Each phrase gets its own pair of variables (``upperVoiceA``,
    ``lowerVoiceA``, then ``upperVoiceB`` ...). Phrases are separated by a
    double barline and the last one ends with a final barline.

    @param phrases (Sequence[Phrase]): Phrases to engrave, in order.
    @param title (str): Title printed in the header.
    @param composer (str): Composer printed in the header.
    @returns str: Complete ``.ly`` source.
    @raises ValueError: If ``phrases`` is empty.
    """

    if not phrases:
        raise ValueError("at least one phrase is required")

    lines = [
        f'\\version "{LILYPOND_VERSION}"',
        "",
        "\\header {",
        f'  title = "{_escape(title)}"',
        f'  composer = "{_escape(composer)}"',
    ]
    subtitle = _subtitle(phrases)
    if subtitle:
        lines.append(f'  subtitle = "{subtitle}"')
    lines += [
        "  tagline = ##f",
        "}",
        "",
        "\\paper {",
        "  system-system-spacing.basic-distance = #16",
        "}",
        "",
    ]
    count = len(phrases)
    for number, phrase in enumerate(phrases, 1):
        lines += _phrase_variables(phrase, number, number == count)

    suffixes = [_variable_suffix(number) for number in range(1, count + 1)]
    upper_refs = " ".join(f"\\upperVoice{s}" for s in suffixes)
    lower_refs = " ".join(f"\\lowerVoice{s}" for s in suffixes)
    lines += [
        "\\score {",
        "  \\new StaffGroup <<",
        f'    \\new Staff = "counterpoint" {{ {upper_refs} }}',
        f'    \\new Staff = "cantus" {{ {lower_refs} }}',
        "  >>",
        "  \\layout { }",
        "  \\midi { }",
        "}",
        "",
    ]
    return "\n".join(lines)


def phrase_to_lilypond(
    phrase: Phrase,
    title: str = DEFAULT_TITLE,
    composer: str = DEFAULT_COMPOSER,
) -> str:
    """Render a single ``phrase`` as a LilyPond document."""

    return phrases_to_lilypond([phrase], title, composer)


def _lower_clef(phrase: Phrase) -> str:
    # Middle C and above reads comfortably in the treble clef.
    pitches = phrase.cantus_firmus.pitches
    if pitches and min(pitches) >= 39:
        return "treble"
    return "bass"


def export_lilypond(
    phrases: Union[Phrase, Sequence[Phrase]],
    path: str,
    title: str = DEFAULT_TITLE,
    composer: str = DEFAULT_COMPOSER,
) -> Path:
    """Write one phrase or a sequence of phrases to ``path`` and return the path.

    The parent directory is created when missing.
    """

    if isinstance(phrases, Phrase):
        phrases = [phrases]
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(phrases_to_lilypond(phrases, title, composer), encoding="utf-8")
    logging.info("LilyPond score written to %s", output)
    return output
