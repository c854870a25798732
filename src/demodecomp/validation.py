"""
demodecomp/validation.py - Shared argument checks for parameter vectors.

Author: Demographic Decomposition Project
License: MIT
"""

import numpy as np
from typing import Sequence, Tuple

from .exceptions import DimensionMismatchError


def as_vector(values: Sequence[float], name: str = "pars") -> np.ndarray:
    """Copy values into a 1-D float64 array."""
    arr = np.array(values, dtype=np.float64, copy=True)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be one-dimensional, got shape {arr.shape}")
    return arr


def aligned_pair(values1: Sequence[float], values2: Sequence[float],
                 names: Tuple[str, str] = ("pars1", "pars2")) -> Tuple[np.ndarray, np.ndarray]:
    """Copy two vectors and fail fast if their lengths differ."""
    arr1 = as_vector(values1, names[0])
    arr2 = as_vector(values2, names[1])
    if arr1.shape != arr2.shape:
        raise DimensionMismatchError(names[0], arr1.size, names[1], arr2.size)
    return arr1, arr2
