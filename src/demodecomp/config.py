"""
demodecomp/config.py - Decomposition and Experiment Configuration

Option sets are pydantic models so that invalid settings (zero steps, a
non-positive perturbation, an order that is not a permutation) are
rejected before any function evaluation happens.

Author: Demographic Decomposition Project
License: MIT
"""

from typing import Any, Callable, List, Optional, Tuple
from enum import Enum
from pydantic import BaseModel, Field, field_validator
import logging

from .lifetable import MissingValuePolicy

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================

class DecompositionMethod(str, Enum):
    """Interchangeable generalized decomposition algorithms."""
    HORIUCHI = "horiuchi"      # gradient integration along the straight path
    STEPWISE = "stepwise"      # one-at-a-time parameter replacement
    LTRE = "ltre"              # derivative at the midpoint × parameter change


class Direction(str, Enum):
    """Replacement order for the stepwise method."""
    FORWARD = "forward"
    BACKWARD = "backward"
    BOTH = "both"


DEFAULT_STEPS = 20
DEFAULT_PERTURBATION = 1e-6


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class DecompositionOptions(BaseModel):
    """Options shared by decompose() and the experiment runner."""
    N: int = Field(DEFAULT_STEPS, ge=1, description="Integration steps (horiuchi)")
    direction: Direction = Field(Direction.FORWARD, description="Replacement direction (stepwise)")
    order: Optional[List[int]] = Field(
        default=None,
        description="Replacement order as a permutation of parameter indices (stepwise)"
    )
    symmetrical: bool = Field(False, description="Average with the negated reverse decomposition (stepwise)")
    perturbation: float = Field(
        DEFAULT_PERTURBATION, gt=0, lt=1,
        description="Relative step for numerical derivatives (ltre)"
    )
    derivative: Optional[Callable[..., Any]] = Field(
        default=None,
        description="Analytic gradient pars -> array of partial derivatives (ltre)"
    )

    @field_validator('order')
    @classmethod
    def _order_is_permutation(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is not None and sorted(value) != list(range(len(value))):
            raise ValueError("order must be a permutation of 0..n-1")
        return value


class ExperimentConfig(BaseModel):
    """Batch settings for the (Sex, skip, method) experiment grid."""
    periods: Tuple[str, str] = ("1950", "2000")
    sexes: Optional[List[str]] = Field(default=None, description="Sexes to run; all in the table when omitted")
    skips: Optional[List[int]] = Field(default=None, description="Skip indices; 0..n_ages when omitted")
    methods: List[DecompositionMethod] = Field(default_factory=lambda: [DecompositionMethod.HORIUCHI])
    options: DecompositionOptions = Field(default_factory=DecompositionOptions)
    missing: MissingValuePolicy = MissingValuePolicy.ZERO

    @field_validator('periods', mode='before')
    @classmethod
    def _periods_as_labels(cls, value: Any) -> Tuple[str, str]:
        labels = tuple(str(v) for v in value)
        if len(labels) != 2 or labels[0] == labels[1]:
            raise ValueError("periods must be two distinct labels")
        return labels

    @field_validator('skips')
    @classmethod
    def _skips_non_negative(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is not None and any(k < 0 for k in value):
            raise ValueError("skip indices must be >= 0")
        return value
