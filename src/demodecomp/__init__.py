"""
Demographic Decomposition Engine

Attributes the difference between two summary statistics computed from
age-structured rates and exposures to the parameters that produced it.

Components:
- Lifetable transform pipeline (mx -> lx -> Lx -> Tx -> ex)
- Arriaga age decomposition of life expectancy
- Generalized decomposition of any scalar function (gradient
  integration, stepwise replacement, LTRE)
- Kitagawa rate/structure decomposition
- Composition-sensitivity (skip-one-share) experiment

Author: Demographic Decomposition Project
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Demographic Decomposition Project"

from .lifetable import (
    MissingValuePolicy,
    LifeTable,
    build_lifetable,
    coerce_rates,
    mx_to_lx,
    lx_to_dx,
    lx_to_Lx,
    lx_to_Tx,
    lx_to_ex,
    mx_to_ex,
    mx_to_e0,
)

from .arriaga import (
    ArriagaResult,
    arriaga,
    arriaga_components,
    arriaga_symmetric,
)

from .config import (
    DecompositionMethod,
    DecompositionOptions,
    Direction,
    ExperimentConfig,
)

from .generalized import (
    additivity_residual,
    decompose,
    horiuchi,
    ltre,
    make_sensitivity_function,
    numerical_gradient,
    stepwise_replacement,
)

from .kitagawa import (
    KitagawaResult,
    check_composition,
    crude_rate,
    crude_rate_from_pars,
    kitagawa,
    normalize_structure,
    pack_pars,
    unpack_pars,
)

from .composition import (
    composition_sensitivity_experiment,
    impute_structure,
    make_skip_function,
    reduce_pars,
    skip_decomposition,
    structure_margins,
    structure_pattern_spread,
)

from .exceptions import (
    CompositionError,
    DecompositionError,
    DimensionMismatchError,
    InvalidSkipIndexError,
    MissingValueError,
    SchemaError,
)

from .ingestion import (
    RatesTable,
    RatesTableLoader,
    SexVectors,
    write_results,
)

__all__ = [
    # Lifetable
    "MissingValuePolicy",
    "LifeTable",
    "build_lifetable",
    "coerce_rates",
    "mx_to_lx",
    "lx_to_dx",
    "lx_to_Lx",
    "lx_to_Tx",
    "lx_to_ex",
    "mx_to_ex",
    "mx_to_e0",

    # Arriaga
    "ArriagaResult",
    "arriaga",
    "arriaga_components",
    "arriaga_symmetric",

    # Generalized framework
    "DecompositionMethod",
    "DecompositionOptions",
    "Direction",
    "ExperimentConfig",
    "additivity_residual",
    "decompose",
    "horiuchi",
    "ltre",
    "make_sensitivity_function",
    "numerical_gradient",
    "stepwise_replacement",

    # Kitagawa
    "KitagawaResult",
    "check_composition",
    "crude_rate",
    "crude_rate_from_pars",
    "kitagawa",
    "normalize_structure",
    "pack_pars",
    "unpack_pars",

    # Composition experiment
    "composition_sensitivity_experiment",
    "impute_structure",
    "make_skip_function",
    "reduce_pars",
    "skip_decomposition",
    "structure_margins",
    "structure_pattern_spread",

    # Errors
    "CompositionError",
    "DecompositionError",
    "DimensionMismatchError",
    "InvalidSkipIndexError",
    "MissingValueError",
    "SchemaError",

    # Ingestion
    "RatesTable",
    "RatesTableLoader",
    "SexVectors",
    "write_results",
]
