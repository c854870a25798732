"""
demodecomp/arriaga.py - Arriaga Age Decomposition of Life Expectancy

Closed-form attribution of e0(Mx2) - e0(Mx1) to age groups.

Mathematical Framework (Arriaga 1984), per age x < ω:
- Direct:   Δd(x) = l1(x) × [L2(x)/l2(x) - L1(x)/l1(x)]
- Indirect: Δi(x) = T2(x+1) × [l1(x)/l2(x) - l1(x+1)/l2(x+1)]

Open interval ω (no x+1 lifetable data exists):
- Δ(ω) = l1(ω) × [T2(ω)/l2(ω) - T1(ω)/l1(ω)]

The open-interval term closes the telescoping sum, so Σ Δ(x) equals the
e0 gap exactly. It already contains the direct effect of the open
interval, so the whole term is reported in the indirect column and the
direct column is 0 there. Setting the open term to 0 (a common
simplification) leaves the total short by exactly that amount; it is not
offered here.

The formula is asymmetric: arriaga(Mx1, Mx2) is not elementwise equal to
-arriaga(Mx2, Mx1), although the totals are. arriaga_symmetric averages
the two directions.

Author: Demographic Decomposition Project
License: MIT
"""

import numpy as np
import pandas as pd
from typing import Optional, Sequence
from dataclasses import dataclass
import logging

from .exceptions import DimensionMismatchError
from .lifetable import (
    MissingValuePolicy, coerce_rates, mx_to_lx, lx_to_Lx, lx_to_Tx
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArriagaResult:
    """Age-specific Arriaga decomposition with its components."""
    direct: np.ndarray
    indirect: np.ndarray
    e0_1: float
    e0_2: float

    @property
    def total(self) -> np.ndarray:
        return self.direct + self.indirect

    @property
    def gap(self) -> float:
        return self.e0_2 - self.e0_1

    def to_dataframe(self, ages: Optional[Sequence[int]] = None) -> pd.DataFrame:
        ages = np.arange(len(self.direct)) if ages is None else np.asarray(ages)
        return pd.DataFrame({
            'Age': ages,
            'direct': self.direct,
            'indirect': self.indirect,
            'total': self.total,
        })


def arriaga_components(Mx1: Sequence[float], Mx2: Sequence[float],
                       missing: MissingValuePolicy = MissingValuePolicy.ZERO) -> ArriagaResult:
    """
    Direct and indirect Arriaga components of e0(Mx2) - e0(Mx1).

    Args:
        Mx1: Rates of the reference population
        Mx2: Rates of the comparison population
        missing: Policy for missing rates

    Returns:
        ArriagaResult; contributions are NaN where l(x) = 0
    """
    m1 = coerce_rates(Mx1, missing)
    m2 = coerce_rates(Mx2, missing)
    if m1.size != m2.size:
        raise DimensionMismatchError("Mx1", m1.size, "Mx2", m2.size)

    lx1, lx2 = mx_to_lx(m1), mx_to_lx(m2)
    Lx1, Lx2 = lx_to_Lx(lx1), lx_to_Lx(lx2)
    Tx1, Tx2 = lx_to_Tx(lx1), lx_to_Tx(lx2)

    n = m1.size
    direct = np.zeros(n)
    indirect = np.zeros(n)

    with np.errstate(divide='ignore', invalid='ignore'):
        # Closed intervals 0..ω-1
        direct[:-1] = lx1[:-1] * (Lx2[:-1] / lx2[:-1] - Lx1[:-1] / lx1[:-1])
        indirect[:-1] = Tx2[1:] * (lx1[:-1] / lx2[:-1] - lx1[1:] / lx2[1:])

        # Open interval ω
        indirect[-1] = lx1[-1] * (Tx2[-1] / lx2[-1] - Tx1[-1] / lx1[-1])

    undefined = ~(np.isfinite(direct) & np.isfinite(indirect))
    if undefined.any():
        logger.warning(f"Arriaga contribution undefined at {int(undefined.sum())} age(s) where l(x) = 0")
        direct[undefined] = np.nan
        indirect[undefined] = np.nan

    result = ArriagaResult(direct=direct, indirect=indirect,
                           e0_1=float(Tx1[0]), e0_2=float(Tx2[0]))
    logger.debug(f"Arriaga: gap={result.gap:.6f}, sum={np.nansum(result.total):.6f}")
    return result


def arriaga(Mx1: Sequence[float], Mx2: Sequence[float],
            missing: MissingValuePolicy = MissingValuePolicy.ZERO) -> np.ndarray:
    """Age-specific contributions to e0(Mx2) - e0(Mx1)."""
    return arriaga_components(Mx1, Mx2, missing).total


def arriaga_symmetric(Mx1: Sequence[float], Mx2: Sequence[float],
                      missing: MissingValuePolicy = MissingValuePolicy.ZERO) -> np.ndarray:
    """
    Average of the forward decomposition and the negated reverse one.

    (arriaga(Mx1, Mx2) - arriaga(Mx2, Mx1)) / 2
    """
    forward = arriaga(Mx1, Mx2, missing)
    backward = arriaga(Mx2, Mx1, missing)
    return (forward - backward) / 2.0
