"""
demodecomp/composition.py - Composition-Sensitivity Experiment

A composition of n shares has only n - 1 free parameters: any one share
is determined as 1 minus the sum of the others. Decomposing the crude
rate over a parameterization that drops share k (and re-imputes it inside
the function) gives a structure effect with the same total as Kitagawa's
but a different age pattern for every choice of k. The rate effect is the
same for all k.

Skip index convention (1-based on the structure block):
- k = 0:     no share dropped; the full packed vector is decomposed
- k = 1..n:  share k is dropped and imputed as 1 - Σ(other shares)

Decomposed vectors from k > 0 have length 2n - 1; a NaN sentinel is
reinserted at the dropped structure position so every result lines up
with the packed [rates..., structure...] layout.

Author: Demographic Decomposition Project
License: MIT
"""

import numpy as np
import pandas as pd
from typing import Callable, List, Optional, Sequence, Union
import logging

from .config import DecompositionMethod, DecompositionOptions
from .exceptions import InvalidSkipIndexError
from .generalized import decompose
from .kitagawa import check_composition, crude_rate_from_pars, pack_pars, unpack_pars
from .lifetable import MissingValuePolicy, coerce_rates
from .validation import aligned_pair, as_vector

logger = logging.getLogger(__name__)


def _check_skip(skip: int, n_ages: int) -> int:
    if isinstance(skip, bool) or int(skip) != skip or not 0 <= skip <= n_ages:
        raise InvalidSkipIndexError(skip, n_ages)
    return int(skip)


def reduce_pars(pars: Sequence[float], skip: int) -> np.ndarray:
    """Drop structure share `skip` from a packed vector (copy for skip 0)."""
    rates, structure = unpack_pars(pars)
    skip = _check_skip(skip, rates.size)
    if skip == 0:
        return np.concatenate((rates, structure))
    return np.concatenate((rates, np.delete(structure, skip - 1)))


def impute_structure(reduced_structure: Sequence[float], skip: int) -> np.ndarray:
    """Reinsert share `skip` as 1 - Σ(other shares)."""
    others = as_vector(reduced_structure, "reduced_structure")
    skip = _check_skip(skip, others.size + 1)
    if skip == 0:
        raise InvalidSkipIndexError(skip, others.size + 1)
    return np.insert(others, skip - 1, 1.0 - others.sum())


def make_skip_function(skip: int, n_ages: int) -> Callable[[np.ndarray], float]:
    """
    Crude-rate function over the reduced parameterization for `skip`.

    The returned function takes [rates (n_ages), structure minus share
    `skip` (n_ages - 1)] and imputes the missing share before summing.
    """
    skip = _check_skip(skip, n_ages)
    if skip == 0:
        return crude_rate_from_pars

    def crude_rate_skipping(reduced: Sequence[float]) -> float:
        values = as_vector(reduced)
        rates = values[:n_ages]
        structure = impute_structure(values[n_ages:], skip)
        return float(np.sum(rates * structure))

    return crude_rate_skipping


def skip_decomposition(pars1: Sequence[float], pars2: Sequence[float], skip: int,
                       method: Union[DecompositionMethod, str] = DecompositionMethod.HORIUCHI,
                       options: Optional[DecompositionOptions] = None,
                       **overrides) -> np.ndarray:
    """
    Decompose the crude-rate gap under the skip-`skip` parameterization.

    Args:
        pars1, pars2: Packed [rates..., structure...] vectors; structures
                      must be compositions
        skip: Structure share to drop (0 = none)
        method: Decomposition method (gradient integration by default)
        options: DecompositionOptions for the method
        **overrides: Individual option fields

    Returns:
        Array of length 2n with NaN at the dropped structure position
    """
    p1, p2 = aligned_pair(pars1, pars2)
    rates1, structure1 = unpack_pars(p1)
    _, structure2 = unpack_pars(p2)
    n_ages = rates1.size
    skip = _check_skip(skip, n_ages)
    check_composition(structure1, "structure1")
    check_composition(structure2, "structure2")

    f = make_skip_function(skip, n_ages)
    contributions = decompose(method, f, reduce_pars(p1, skip), reduce_pars(p2, skip),
                              options, **overrides)
    if skip == 0:
        return contributions
    return np.insert(contributions, n_ages + skip - 1, np.nan)


def composition_sensitivity_experiment(Mx1: Sequence[float], Mx2: Sequence[float],
                                       Cx1: Sequence[float], Cx2: Sequence[float],
                                       N: int = 20, skips: Optional[Sequence[int]] = None,
                                       ages: Optional[Sequence[int]] = None,
                                       method: Union[DecompositionMethod, str] = DecompositionMethod.HORIUCHI,
                                       options: Optional[DecompositionOptions] = None,
                                       missing: MissingValuePolicy = MissingValuePolicy.ZERO) -> pd.DataFrame:
    """
    Decompose the crude-rate gap once per skip index.

    Args:
        Mx1, Mx2: Age-specific rates
        Cx1, Cx2: Compositions
        N: Integration steps (ignored when options is given)
        skips: Skip indices to run (default 0..n_ages)
        ages: Age labels (default 0..n_ages-1)
        method: Decomposition method
        options: DecompositionOptions; overrides N when given
        missing: Policy for missing rates

    Returns:
        Long DataFrame with columns skip, component, age, contribution
    """
    m1 = coerce_rates(Mx1, missing)
    m2 = coerce_rates(Mx2, missing)
    pars1 = pack_pars(m1, Cx1)
    pars2 = pack_pars(m2, Cx2)
    n_ages = m1.size
    ages = np.arange(n_ages) if ages is None else np.asarray(ages)
    skips = range(n_ages + 1) if skips is None else skips
    if options is None:
        options = DecompositionOptions(N=N)

    frames: List[pd.DataFrame] = []
    for skip in skips:
        contributions = skip_decomposition(pars1, pars2, skip, method=method, options=options)
        frames.append(pd.DataFrame({
            'skip': int(skip),
            'component': ['rate'] * n_ages + ['structure'] * n_ages,
            'age': np.concatenate((ages, ages)),
            'contribution': contributions,
        }))
        logger.debug(f"skip={skip}: structure margin={np.nansum(contributions[n_ages:]):.8f}")

    return pd.concat(frames, ignore_index=True)


def structure_margins(results: pd.DataFrame) -> pd.Series:
    """Total structure effect per skip index (sentinels excluded)."""
    structure = results[results['component'] == 'structure']
    return structure.groupby('skip')['contribution'].apply(lambda s: float(np.nansum(s)))


def structure_pattern_spread(results: pd.DataFrame) -> pd.DataFrame:
    """
    Per-age range of the structure effect across skip indices.

    A non-zero spread is the measurable non-uniqueness of the structure
    effect's age pattern.
    """
    structure = results[results['component'] == 'structure']
    spread = structure.groupby('age')['contribution'].agg(['min', 'max'])
    spread['range'] = spread['max'] - spread['min']
    return spread.reset_index()
