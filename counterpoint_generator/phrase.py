"""Phrase assembly: key, cantus firmus and counterpoint in one call.

:func:`generate_phrase` is the entry point used by the CLI and by library
callers. It validates the key and mode, creates the random generator for the
request, builds a cantus firmus and hands it to the strategy for the
requested species. The result is an immutable
:class:`~counterpoint_generator.models.Phrase`.

Example
-------
>>> phrase = generate_phrase("C", length=8, species=1, seed=42)
>>> len(phrase.cantus_firmus) == len(phrase.counterpoint) == 8
True
>>> phrase.cantus_firmus.pitches[0]
39

Design Notes
------------
- Key and mode are checked before any random number is drawn so an invalid
  request fails with :class:`ConfigurationError` and produces no output.
- A single ``numpy.random.Generator`` is shared by every stage, so the seed
  alone determines the phrase.
"""

from __future__ import annotations

import logging
from fractions import Fraction
from typing import Dict, Optional, Tuple, Type

import numpy as np

from .cantus_firmus import CantusFirmusGenerator
from .errors import ConfigurationError
from .fifth_species import FifthSpecies
from .first_species import FirstSpecies
from .fourth_species import FourthSpecies
from .models import Phrase, Voice
from .scales import ScaleContext, scale_context
from .second_species import SecondSpecies
from .species import SpeciesStrategy
from .third_species import ThirdSpecies

__all__ = [
    "DEFAULT_LENGTH",
    "SPECIES_STRATEGIES",
    "generate_counterpoint",
    "generate_phrase",
]

DEFAULT_LENGTH = 8

SPECIES_STRATEGIES: Dict[int, Type[SpeciesStrategy]] = {
    1: FirstSpecies,
    2: SecondSpecies,
    3: ThirdSpecies,
    4: FourthSpecies,
    5: FifthSpecies,
}


def _strategy_for(species: int) -> Type[SpeciesStrategy]:
    strategy = SPECIES_STRATEGIES.get(species)
    if strategy is None:
        logging.warning("Unknown species %r; using first species", species)
        return FirstSpecies
    return strategy


def generate_counterpoint(
    cantus: Voice,
    scale: ScaleContext,
    species: int,
    rng: np.random.Generator,
) -> Tuple[Voice, Fraction]:
    """Write a counterpoint above ``cantus``.

    Parameters
    ----------
    cantus:
        Cantus firmus in whole notes.
    scale:
        Key of the phrase.
    species:
        Species number from 1 to 5. Other values fall back to first species.
    rng:
        Random generator shared with the rest of the request.

    Returns
    -------
    tuple
        The counterpoint voice and the rest preceding it in whole notes.
    """

    strategy = _strategy_for(species)(scale, rng)
    return strategy.generate(cantus), strategy.lead_in


def generate_phrase(
    key: str,
    length: int = DEFAULT_LENGTH,
    mode: str = "major",
    species: int = 1,
    *,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> Phrase:
    """Generate a two-voice phrase.

    @param key (str): Key name such as ``"C"`` or ``"F#"``.
    @param length (int): Number of cantus firmus notes.
    @param mode (str): ``"major"`` or ``"minor"``.
    @param species (int): Species of counterpoint, 1 to 5.
    @param seed (int | None): Seed for a new random generator. Ignored when
        ``rng`` is supplied.
    @param rng (numpy.random.Generator | None): Generator to draw from.
    @returns Phrase: Cantus firmus, counterpoint and request parameters.
    @raises ConfigurationError: For an unknown key or mode or a length
        below one.
    """

    scale = scale_context(key, mode)
    if length < 1:
        raise ConfigurationError(f"length must be positive: {length}")
    if species not in SPECIES_STRATEGIES:
        logging.warning("Unknown species %r; using first species", species)
        species = 1
    if rng is None:
        rng = np.random.default_rng(seed)

    cantus = CantusFirmusGenerator(scale, rng).generate(length)
    counterpoint, lead_in = generate_counterpoint(cantus, scale, species, rng)
    logging.debug(
        "Generated species %d phrase in %s %s: %d + %d notes",
        species,
        scale.key,
        scale.mode,
        len(cantus),
        len(counterpoint),
    )
    return Phrase(
        key=scale.key,
        mode=scale.mode,
        species=species,
        cantus_firmus=cantus,
        counterpoint=counterpoint,
        lead_in=lead_in,
    )
