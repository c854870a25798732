"""
demodecomp/lifetable.py - Lifetable Transform Pipeline

Converts an age-specific mortality rate vector into lifetable columns and
a scalar life expectancy.

Mathematical Framework:
- Survivorship:  l(0) = 1,  l(x) = exp(-Σ_{a<x} m(a))
- Deaths:        d(x) = l(x) - l(x+1),  l(ω+1) := 0
- Person-years:  L(x) = (l(x) + l(x+1)) / 2,  l(ω+1) := 0
- Remaining:     T(x) = Σ_{a≥x} L(a)
- Expectancy:    e(x) = T(x) / l(x)

The survivorship step applies the continuous-hazard relation to one-unit
age groups. It is an approximation, not exact actuarial survivorship:
there is no separate q(x) conversion and no interval-width adjustment.
The last age group is treated as open, so its own rate never enters l(x)
and it contributes l(ω)/2 person-years.

Missing rates are handled by an explicit MissingValuePolicy. Life
expectancy where l(x) = 0 is returned as NaN.

Author: Demographic Decomposition Project
License: MIT
"""

import numpy as np
import pandas as pd
from typing import Dict, Optional, Sequence
from dataclasses import dataclass
from enum import Enum
import logging

from .exceptions import MissingValueError

logger = logging.getLogger(__name__)


class MissingValuePolicy(Enum):
    """What to do with 'not available' rate entries."""
    ZERO = "zero"      # coerce to 0 and log a warning
    RAISE = "raise"    # fail with MissingValueError


# =============================================================================
# INPUT COERCION
# =============================================================================

def coerce_rates(Mx: Sequence[float],
                 missing: MissingValuePolicy = MissingValuePolicy.ZERO) -> np.ndarray:
    """
    Copy a rate vector into a 1-D float array, applying the missing policy.

    Args:
        Mx: Age-specific rates (NaN or None marks "not available")
        missing: Policy for missing entries

    Returns:
        New float64 array; the input is never modified
    """
    rates = np.array(Mx, dtype=np.float64, copy=True).ravel()
    if rates.size == 0:
        raise ValueError("Mx must contain at least one age group")
    na = np.isnan(rates)

    if na.any():
        n_missing = int(na.sum())
        if missing is MissingValuePolicy.RAISE:
            raise MissingValueError(
                f"{n_missing} missing rate(s) at positions {np.flatnonzero(na).tolist()}"
            )
        logger.warning(
            f"Coercing {n_missing} missing rate(s) to 0 at positions "
            f"{np.flatnonzero(na).tolist()}; survivorship treats them as zero hazard"
        )
        rates[na] = 0.0

    if np.any(rates < 0.0):
        raise ValueError("Mx must be >= 0")

    return rates


# =============================================================================
# TRANSFORMS
# =============================================================================

def mx_to_lx(Mx: Sequence[float],
             missing: MissingValuePolicy = MissingValuePolicy.ZERO) -> np.ndarray:
    """
    Survivorship from rates: l(0) = 1, l(i) = exp(-cumsum(Mx)[i-1]).

    Continuous-hazard approximation applied to discrete age groups.
    """
    rates = coerce_rates(Mx, missing)
    cum_hazard = np.concatenate(([0.0], np.cumsum(rates)[:-1]))
    return np.exp(-cum_hazard)


def _pad_terminal(lx: Sequence[float]) -> np.ndarray:
    """Append the implicit l(ω+1) = 0."""
    lx = np.asarray(lx, dtype=np.float64)
    return np.append(lx, 0.0)


def lx_to_dx(lx: Sequence[float]) -> np.ndarray:
    """Deaths by interval; the last entry holds the remaining mass."""
    padded = _pad_terminal(lx)
    return padded[:-1] - padded[1:]


def lx_to_Lx(lx: Sequence[float]) -> np.ndarray:
    """Person-years by linear interpolation between consecutive l(x)."""
    padded = _pad_terminal(lx)
    return (padded[:-1] + padded[1:]) / 2.0


def lx_to_Tx(lx: Sequence[float]) -> np.ndarray:
    """Person-years remaining above each age (reverse cumulative sum of L(x))."""
    Lx = lx_to_Lx(lx)
    return np.cumsum(Lx[::-1])[::-1]


def lx_to_ex(lx: Sequence[float]) -> np.ndarray:
    """
    Life expectancy e(x) = T(x) / l(x).

    Where l(x) = 0 the expectancy is undefined and returned as NaN
    (never 0, never an exception).
    """
    lx = np.asarray(lx, dtype=np.float64)
    Tx = lx_to_Tx(lx)
    ex = np.full(lx.shape, np.nan)
    alive = lx > 0
    ex[alive] = Tx[alive] / lx[alive]

    if not alive.all():
        logger.warning(
            f"Life expectancy undefined at {int((~alive).sum())} age(s) where l(x) = 0; returning NaN"
        )
    return ex


def mx_to_ex(Mx: Sequence[float],
             missing: MissingValuePolicy = MissingValuePolicy.ZERO) -> np.ndarray:
    """Full life expectancy column from rates."""
    return lx_to_ex(mx_to_lx(Mx, missing))


def mx_to_e0(Mx: Sequence[float],
             missing: MissingValuePolicy = MissingValuePolicy.ZERO) -> float:
    """
    Life expectancy at birth.

    This is the scalar function handed to the generalized decomposition
    methods, so it only depends on the rate vector.
    """
    return float(mx_to_ex(Mx, missing)[0])


# =============================================================================
# LIFETABLE CONTAINER
# =============================================================================

@dataclass(frozen=True)
class LifeTable:
    """All lifetable columns for one rate vector."""
    ages: np.ndarray
    mx: np.ndarray
    lx: np.ndarray
    dx: np.ndarray
    Lx: np.ndarray
    Tx: np.ndarray
    ex: np.ndarray

    @property
    def e0(self) -> float:
        return float(self.ex[0])

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({
            'Age': self.ages, 'mx': self.mx, 'lx': self.lx, 'dx': self.dx,
            'Lx': self.Lx, 'Tx': self.Tx, 'ex': self.ex,
        })

    def summary(self) -> Dict[str, float]:
        return {
            'n_ages': int(len(self.ages)),
            'e0': self.e0,
            'total_deaths': float(self.dx.sum()),
        }


def build_lifetable(Mx: Sequence[float], ages: Optional[Sequence[int]] = None,
                    missing: MissingValuePolicy = MissingValuePolicy.ZERO) -> LifeTable:
    """
    Build every lifetable column from a rate vector.

    Args:
        Mx: Age-specific rates
        ages: Age group labels (defaults to 0..n-1)
        missing: Policy for missing rates

    Returns:
        LifeTable with aligned columns
    """
    mx = coerce_rates(Mx, missing)
    ages = np.arange(len(mx)) if ages is None else np.asarray(ages)
    if len(ages) != len(mx):
        raise ValueError(f"ages has length {len(ages)} but Mx has length {len(mx)}")

    lx = mx_to_lx(mx)
    table = LifeTable(
        ages=ages, mx=mx, lx=lx, dx=lx_to_dx(lx), Lx=lx_to_Lx(lx),
        Tx=lx_to_Tx(lx), ex=lx_to_ex(lx),
    )
    logger.debug(f"Built lifetable: {len(mx)} ages, e0={table.e0:.4f}")
    return table


if __name__ == "__main__":
    print("=" * 60)
    print("LIFETABLE PIPELINE CHECK")
    print("=" * 60)

    Mx1 = [0.01, 0.001, 0.02]
    Mx2 = [0.008, 0.0009, 0.018]
    for label, rates in (("Mx1", Mx1), ("Mx2", Mx2)):
        table = build_lifetable(rates)
        print(f"\n{label}: e0 = {table.e0:.6f}")
        print(table.to_dataframe().to_string(index=False))
