#!/usr/bin/env python3
"""Counterpoint Generator library.

This package writes two-voice species counterpoint in the manner of Fux's
*Gradus ad Parnassum*. A typical workflow is to call
:func:`generate_phrase` with a key, a phrase length and a species number,
then hand the resulting :class:`Phrase` to :func:`export_lilypond` for an
engraved score or :func:`create_midi_file` for playback.

Underlying Algorithm
--------------------
Every phrase starts with a *cantus firmus*: a short, stepwise melody in
whole notes that begins and ends on the tonic and rises to a single climax.
It is found by bounded generate-and-test: random walks are drawn and checked
against the melodic rules until one passes, with a fixed skeleton melody as
the last resort.

A counterpoint is then written above it, one note at a time. For each note
the species strategy describes the situation (the cantus firmus note below,
the previous notes, what follows) and a shared constraint pipeline narrows
the diatonic pitches in reach by consonance, voice-leading and melodic
rules. A rule that would leave no candidate is skipped, so generation never
backtracks.

Algorithm Pseudocode
--------------------
The following outlines the work done by :func:`generate_phrase`::

    scale = scale_context(key, mode)
    cantus = CantusFirmusGenerator(scale, rng).generate(length)
    strategy = SPECIES_STRATEGIES[species](scale, rng)
    for slot in strategy_layout:
        context = strategy.context(cantus, slots, pitches)
        pitches.append(pipeline.propose(context, species_rules))
    return Phrase(key, mode, species, cantus, counterpoint)

Features include:
- All five species: note against note, two, four, syncopated and florid.
- Major and natural minor scales in twelve keys.
- Seedable output through an injected ``numpy.random.Generator``.
- LilyPond and MIDI export.
- A command line interface with persistent JSON defaults.
"""

__version__ = "0.2.0"

# ---------------------------------------------------------------
# Modification Summary
# ---------------------------------------------------------------
# * Replaced the chord-driven melody generator with a cantus firmus
#   generator and five species counterpoint strategies sharing one
#   constraint pipeline.
# * Pitches are keyboard indices (``0`` = A0, ``39`` = middle C) instead of
#   note-name strings so interval arithmetic is plain integer arithmetic.
# * All randomness flows through one ``numpy.random.Generator`` created per
#   request, replacing the module-level ``random`` calls.
# * Added a LilyPond exporter next to the MIDI writer.
# * ``load_settings`` and ``save_settings`` keep the command line defaults
#   and honour ``COUNTERPOINT_SETTINGS_FILE``.
# ---------------------------------------------------------------

import json
import logging
import os
from pathlib import Path

# Default path for storing user preferences
# The file lives in the user's home directory so settings persist
# between runs of the application.
env_path = os.environ.get("COUNTERPOINT_SETTINGS_FILE")
if env_path:
    DEFAULT_SETTINGS_FILE = Path(env_path).expanduser()
else:
    DEFAULT_SETTINGS_FILE = Path.home() / ".counterpoint_generator_settings.json"


def load_settings(path: Path = DEFAULT_SETTINGS_FILE) -> dict:
    """Load saved user settings from ``path`` if it exists.

    @param path (Path): Location of the settings file.
    @returns dict: Loaded settings or an empty dictionary when unavailable.
    """
    # Prefer the user's saved options but fall back to an empty
    # dictionary when the settings file is missing or unreadable.
    if path.is_file():
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logging.error(f"Could not load settings: {exc}")
            return {}
        if isinstance(data, dict):
            return data
        logging.error(f"Ignoring settings file {path}: expected a JSON object")
    return {}


def save_settings(settings: dict, path: Path = DEFAULT_SETTINGS_FILE) -> None:
    """Save user ``settings`` to ``path`` as JSON.

    @param settings (dict): Options to be persisted.
    @param path (Path): Destination file path.
    @returns None: Function does not return a value.
    """
    # Any IOError is logged but ignored so failing to save
    # preferences never prevents phrase generation.
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(settings, fh, indent=2)
    except OSError as exc:
        logging.error(f"Could not save settings: {exc}")


from .errors import ConfigurationError, GenerationExhausted  # noqa: E402
from .models import Note, Phrase, Voice  # noqa: E402
from .scales import ScaleContext, scale_context  # noqa: E402
from .cantus_firmus import CantusFirmusGenerator, generate_cantus_firmus  # noqa: E402
from .phrase import SPECIES_STRATEGIES, generate_counterpoint, generate_phrase  # noqa: E402
from .lilypond import export_lilypond, phrase_to_lilypond, phrases_to_lilypond  # noqa: E402
from .midi_io import create_midi_file  # noqa: E402

__all__ = [
    "__version__",
    "DEFAULT_SETTINGS_FILE",
    "load_settings",
    "save_settings",
    "ConfigurationError",
    "GenerationExhausted",
    "Note",
    "Voice",
    "Phrase",
    "ScaleContext",
    "scale_context",
    "CantusFirmusGenerator",
    "generate_cantus_firmus",
    "SPECIES_STRATEGIES",
    "generate_counterpoint",
    "generate_phrase",
    "phrase_to_lilypond",
    "phrases_to_lilypond",
    "export_lilypond",
    "create_midi_file",
    "run_cli",
    "main",
]


def run_cli():
    from .cli import run_cli as _run_cli
    _run_cli()


def main():
    from .cli import main as _main
    _main()


if __name__ == "__main__":
    main()
