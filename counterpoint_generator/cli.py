"""Command line helpers for Counterpoint Generator.

Modification summary
--------------------
* Options missing from the command line fall back to the JSON settings file
  (``--settings-file`` or the default location) before the built-in
  defaults, and ``--save-settings`` stores the options that were used.
* The output format is chosen from the ``--output`` suffix: ``.ly`` writes a
  LilyPond score, ``.mid``/``.midi`` a MIDI file.
* ``--phrases N`` generates N phrases from one random generator and prints
  or writes them in order.
* ``--verbose`` switches logging to DEBUG so rejected cantus firmus attempts
  and skipped voice-leading rules become visible.

This module implements the console entry points for the project. The
``run_cli`` function parses command line arguments, generates a phrase and
either prints it or writes it to disk, while :func:`main` configures logging
first. Keeping the CLI logic separated from the generators simplifies testing
and allows other applications to reuse the generation routines directly.

Example
-------
Running ``python -m counterpoint_generator --key D --mode minor --species 4 \
    --length 10 --seed 7 --output out.ly`` writes a fourth-species phrase in
D minor to ``out.ly``. Without ``--output`` both voices are printed as note
names.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np

from . import load_settings, save_settings
from .errors import ConfigurationError
from .models import Phrase, Voice
from .note_utils import pitch_to_name
from .scales import KEY_TONICS, key_prefers_flats

__all__ = ["run_cli", "main"]

DEFAULTS = {
    "key": "C",
    "mode": "major",
    "length": 8,
    "species": 1,
    "bpm": 120,
}
LILYPOND_SUFFIXES = {".ly"}
MIDI_SUFFIXES = {".mid", ".midi"}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate a cantus firmus with a species counterpoint above it."
    )
    parser.add_argument("--list-keys", action="store_true", help="List all supported keys and exit")
    parser.add_argument("--key", type=str, help="Key of the phrase (e.g., C, F#, Bb).")
    parser.add_argument("--mode", type=str, help="Scale mode: major or minor.")
    parser.add_argument("--length", type=int, help="Number of cantus firmus notes (5-12 recommended).")
    parser.add_argument("--species", type=int, help="Species of counterpoint (1-5).")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible output")
    parser.add_argument(
        "--phrases",
        type=int,
        default=1,
        help="Number of phrases to generate one after another",
    )
    parser.add_argument("--output", type=str, help="Write to a .ly (LilyPond) or .mid (MIDI) file.")
    parser.add_argument("--title", type=str, help="Title for the LilyPond header.")
    parser.add_argument("--composer", type=str, help="Composer for the LilyPond header.")
    parser.add_argument("--bpm", type=int, help="Beats per minute for MIDI output.")
    parser.add_argument("--program", type=int, default=0, help="MIDI program number for both voices")
    parser.add_argument(
        "--settings-file",
        type=str,
        help="Path to the JSON settings file holding default options",
    )
    parser.add_argument(
        "--save-settings",
        action="store_true",
        help="Store the key, mode, length, species and bpm used as new defaults",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _voice_names(voice: Voice, prefer_flats: bool) -> str:
    parts = []
    for note in voice:
        name = f"{pitch_to_name(note.pitch, prefer_flats)}/{note.duration}"
        parts.append(name + "~" if note.tie else name)
    return " ".join(parts)


def format_phrase(phrase: Phrase) -> str:
    """Return a plain-text listing of both voices of ``phrase``."""

    flats = key_prefers_flats(phrase.key, phrase.mode)
    lead_in = f"rest/{phrase.lead_in.denominator} " if phrase.lead_in else ""
    return "\n".join(
        [
            f"Species {phrase.species} counterpoint in {phrase.key} {phrase.mode}",
            f"Counterpoint:  {lead_in}{_voice_names(phrase.counterpoint, flats)}",
            f"Cantus firmus: {_voice_names(phrase.cantus_firmus, flats)}",
        ]
    )


def run_cli(argv: Optional[Sequence[str]] = None) -> None:
    """Parse CLI arguments and generate one or more phrases.

    Invalid options are reported with ``logging.error`` and terminate the
    process with exit status ``1``.
    """

    args = _build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.list_keys:
        print("\n".join(sorted(KEY_TONICS)))
        return

    settings_path = Path(args.settings_file).expanduser() if args.settings_file else None
    settings = load_settings(settings_path) if settings_path else load_settings()
    options = {}
    for name, default in DEFAULTS.items():
        value = getattr(args, name)
        options[name] = value if value is not None else settings.get(name, default)

    if options["length"] <= 0:
        logging.error("Length must be a positive integer.")
        sys.exit(1)
    if options["bpm"] <= 0:
        logging.error("BPM must be a positive integer.")
        sys.exit(1)
    if args.program < 0 or args.program > 127:
        logging.error("Program must be between 0 and 127.")
        sys.exit(1)
    if args.phrases <= 0:
        logging.error("Phrases must be a positive integer.")
        sys.exit(1)

    suffix = Path(args.output).suffix.lower() if args.output else ""
    if args.output and suffix not in LILYPOND_SUFFIXES | MIDI_SUFFIXES:
        logging.error("Output file must end in .ly, .mid or .midi: %s", args.output)
        sys.exit(1)

    from .phrase import generate_phrase

    # All phrases draw from one generator so a seed fixes the whole piece.
    rng = np.random.default_rng(args.seed)
    try:
        phrases = [
            generate_phrase(
                options["key"],
                options["length"],
                options["mode"],
                options["species"],
                rng=rng,
            )
            for _ in range(args.phrases)
        ]
    except ConfigurationError as exc:
        logging.error(str(exc))
        sys.exit(1)

    phrase = phrases[0]
    if not args.output:
        print("\n\n".join(format_phrase(p) for p in phrases))
    else:
        try:
            if suffix in LILYPOND_SUFFIXES:
                from .lilypond import DEFAULT_COMPOSER, DEFAULT_TITLE, export_lilypond

                export_lilypond(
                    phrases,
                    args.output,
                    title=args.title or DEFAULT_TITLE,
                    composer=args.composer or DEFAULT_COMPOSER,
                )
            else:
                from .midi_io import create_midi_file

                create_midi_file(phrases, options["bpm"], args.output, program=args.program)
        except (OSError, ValueError) as exc:
            # Permission issues or full disks surface as ``OSError``; exiting
            # with a non-zero code signals that nothing was written.
            logging.error("Could not write %s: %s", args.output, exc)
            sys.exit(1)
        logging.info("%d phrase(s) written to %s", len(phrases), args.output)

    if args.save_settings:
        stored = dict(settings)
        stored.update(options)
        stored["key"] = phrase.key
        stored["mode"] = phrase.mode
        stored["species"] = phrase.species
        if settings_path:
            save_settings(stored, settings_path)
        else:
            save_settings(stored)


def main(argv: Optional[List[str]] = None) -> None:
    """Configure logging and run the command line interface."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    run_cli(argv)
