"""
demodecomp/kitagawa.py - Kitagawa Rate/Structure Decomposition

Splits the difference between two crude rates into a rate effect and a
structure (composition) effect.

Mathematical Framework (Kitagawa 1955):
- Crude rate:        CDR = Σ_x C(x) · M(x),  Σ_x C(x) = 1
- Rate effect:       R(x) = [M2(x) - M1(x)] · [C1(x) + C2(x)] / 2
- Structure effect:  S(x) = [C2(x) - C1(x)] · [M1(x) + M2(x)] / 2
- Additivity:        Σ R(x) + Σ S(x) = CDR2 - CDR1   (exact)

The age pattern of R(x) is unique. Only the margin Σ S(x) of the
structure effect is unique: its age pattern changes when the composition
is reparameterized (see composition.py).

Two-block parameter vectors are packed as [rates..., structure...].
Every function in this package that consumes a packed vector relies on
that order.

Author: Demographic Decomposition Project
License: MIT
"""

import numpy as np
import pandas as pd
from typing import Dict, Optional, Sequence, Tuple
from dataclasses import dataclass
import logging

from .exceptions import CompositionError, DimensionMismatchError
from .lifetable import MissingValuePolicy, coerce_rates
from .validation import aligned_pair, as_vector

logger = logging.getLogger(__name__)

COMPOSITION_TOLERANCE = 1e-8


# =============================================================================
# COMPOSITIONS AND PACKING
# =============================================================================

def normalize_structure(Px: Sequence[float]) -> np.ndarray:
    """Scale exposures so they sum to 1."""
    px = as_vector(Px, "Px")
    if np.any(np.isnan(px)):
        raise CompositionError("structure contains missing values")
    if np.any(px < 0):
        raise CompositionError("structure entries must be >= 0")
    total = px.sum()
    if total <= 0:
        raise CompositionError("structure must have a positive total")
    return px / total


def check_composition(Cx: Sequence[float], name: str = "Cx",
                      tolerance: float = COMPOSITION_TOLERANCE) -> np.ndarray:
    """Return Cx as an array, failing if it is not a composition."""
    cx = as_vector(Cx, name)
    if np.any(np.isnan(cx)) or np.any(cx < 0):
        raise CompositionError(f"{name} entries must be non-negative and available")
    total = float(cx.sum())
    if abs(total - 1.0) > tolerance:
        raise CompositionError(
            f"{name} sums to {total:.10f}, expected 1; normalize it with normalize_structure()"
        )
    return cx


def crude_rate(Mx: Sequence[float], Cx: Sequence[float]) -> float:
    """Structure-weighted sum of rates."""
    mx, cx = aligned_pair(Mx, Cx, ("Mx", "Cx"))
    return float(np.sum(mx * cx))


def pack_pars(rates: Sequence[float], structure: Sequence[float]) -> np.ndarray:
    """Concatenate [rates..., structure...] into one parameter vector."""
    mx, cx = aligned_pair(rates, structure, ("rates", "structure"))
    return np.concatenate((mx, cx))


def unpack_pars(pars: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Split a packed parameter vector back into (rates, structure)."""
    p = as_vector(pars)
    if p.size % 2 != 0:
        raise ValueError(f"packed parameter vector must have even length, got {p.size}")
    half = p.size // 2
    return p[:half], p[half:]


def crude_rate_from_pars(pars: Sequence[float]) -> float:
    """Crude rate of a packed [rates..., structure...] vector."""
    rates, structure = unpack_pars(pars)
    return float(np.sum(rates * structure))


# =============================================================================
# DECOMPOSITION
# =============================================================================

@dataclass(frozen=True)
class KitagawaResult:
    """Age-specific rate and structure effects."""
    rate_effect: np.ndarray
    structure_effect: np.ndarray
    crude_rate_1: float
    crude_rate_2: float

    @property
    def gap(self) -> float:
        return self.crude_rate_2 - self.crude_rate_1

    @property
    def total(self) -> np.ndarray:
        return self.rate_effect + self.structure_effect

    def margins(self) -> Dict[str, float]:
        return {
            'rate': float(self.rate_effect.sum()),
            'structure': float(self.structure_effect.sum()),
            'gap': self.gap,
        }

    def to_dataframe(self, ages: Optional[Sequence[int]] = None) -> pd.DataFrame:
        ages = np.arange(len(self.rate_effect)) if ages is None else np.asarray(ages)
        return pd.DataFrame({
            'Age': ages,
            'rate_effect': self.rate_effect,
            'structure_effect': self.structure_effect,
        })


def kitagawa(Mx1: Sequence[float], Mx2: Sequence[float],
             Cx1: Sequence[float], Cx2: Sequence[float],
             missing: MissingValuePolicy = MissingValuePolicy.ZERO) -> KitagawaResult:
    """
    Rate/structure decomposition of CDR2 - CDR1.

    Args:
        Mx1, Mx2: Age-specific rates of the two populations
        Cx1, Cx2: Compositions (each summing to 1)
        missing: Policy for missing rates

    Returns:
        KitagawaResult with age-specific effects
    """
    m1 = coerce_rates(Mx1, missing)
    m2 = coerce_rates(Mx2, missing)
    c1 = check_composition(Cx1, "Cx1")
    c2 = check_composition(Cx2, "Cx2")
    for name, arr in (("Mx2", m2), ("Cx1", c1), ("Cx2", c2)):
        if arr.size != m1.size:
            raise DimensionMismatchError("Mx1", m1.size, name, arr.size)

    rate_effect = (m2 - m1) * (c1 + c2) / 2.0
    structure_effect = (c2 - c1) * (m1 + m2) / 2.0

    result = KitagawaResult(
        rate_effect=rate_effect,
        structure_effect=structure_effect,
        crude_rate_1=float(np.sum(m1 * c1)),
        crude_rate_2=float(np.sum(m2 * c2)),
    )
    logger.debug(f"Kitagawa margins: {result.margins()}")
    return result
