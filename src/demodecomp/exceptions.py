"""
demodecomp/exceptions.py - Error Taxonomy

Every failure the engine can report is a typed, catchable condition.
All of them derive from ValueError so callers written against plain
ValueError keep working.

Numeric edge cases that are NOT exceptions:
- Undefined life expectancy (lx = 0) is returned as NaN.
- Near-zero denominators in ratio decompositions are avoided by
  reformulating the function as a sensitivity (see
  generalized.make_sensitivity_function), not caught at runtime.

Author: Demographic Decomposition Project
License: MIT
"""


class DecompositionError(ValueError):
    """Base class for all engine errors."""


class MissingValueError(DecompositionError):
    """A rate entry is not available and the policy forbids coercion."""


class DimensionMismatchError(DecompositionError):
    """Two vectors that must be aligned index-for-index differ in length."""

    def __init__(self, name1: str, len1: int, name2: str, len2: int):
        self.lengths = (len1, len2)
        super().__init__(
            f"{name1} has length {len1} but {name2} has length {len2}; "
            f"vectors must be aligned index-for-index"
        )


class InvalidSkipIndexError(DecompositionError):
    """Skip index outside [0, n_ages]."""

    def __init__(self, skip: int, n_ages: int):
        self.skip = skip
        self.n_ages = n_ages
        super().__init__(f"skip index {skip} outside valid range [0, {n_ages}]")


class CompositionError(DecompositionError):
    """A structure vector is not a valid composition."""


class SchemaError(DecompositionError):
    """An input rates table does not have the expected layout."""
