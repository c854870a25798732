"""
demodecomp/synthetic.py - Toy Rates Table Generator

Produces a table in the RatesTableLoader layout for demos and tests:
- Gompertz-Makeham adult hazard plus an infant/child component
- mortality improvement between the two periods
- population structure that ages between the two periods

Author: Demographic Decomposition Project
License: MIT
"""

import numpy as np
import pandas as pd
from typing import Sequence, Union

SEX_PARAMS = {
    # (makeham, gompertz_a, gompertz_b, infant)
    'Male': (0.0006, 0.00004, 0.095, 0.030),
    'Female': (0.0004, 0.00002, 0.098, 0.024),
}


def _hazard(ages: np.ndarray, sex: str, improvement: float) -> np.ndarray:
    makeham, a, b, infant = SEX_PARAMS[sex]
    hazard = makeham + a * np.exp(b * ages) + infant * np.exp(-1.5 * ages)
    return hazard * improvement


def _structure(ages: np.ndarray, growth: float) -> np.ndarray:
    # stable-population style age pyramid: exp(-r x) thinned by a Weibull-like tail
    weights = np.exp(-growth * ages) * np.exp(-np.power(ages / 85.0, 6))
    return weights / weights.sum()


def generate_toy_rates(ages: Union[range, Sequence[int]] = range(0, 101, 5),
                       periods: Sequence[Union[str, int]] = ("1950", "2000"),
                       seed: int = 123,
                       missing_fraction: float = 0.0) -> pd.DataFrame:
    """
    Generate a two-period toy rates table for Male, Female and Total.

    Args:
        ages: Age group starts (one row per age group per Sex); hazards
              are per age group, matching the one-unit lifetable convention
        periods: The two period labels
        seed: RNG seed for the small idiosyncratic noise
        missing_fraction: Share of rate entries blanked out to exercise the
                          missing-value policy (never the first age)

    Returns:
        DataFrame with columns Sex, Age, Mx_<p1>, Mx_<p2>, Px_<p1>, Px_<p2>
    """
    rng = np.random.default_rng(seed)
    age_arr = np.array(list(ages), dtype=float)
    p1, p2 = (str(p) for p in periods)

    # period 2: about 45% lower hazard, slower growth (older structure)
    improvement = {p1: 1.0, p2: 0.55}
    growth = {p1: 0.025, p2: 0.005}
    population_size = {'Male': 0.49, 'Female': 0.51}

    frames = {}
    for sex in ('Male', 'Female'):
        frame = pd.DataFrame({'Sex': sex, 'Age': age_arr.astype(int)})
        for period in (p1, p2):
            noise = np.exp(rng.normal(0.0, 0.02, size=age_arr.size))
            frame[f'Mx_{period}'] = _hazard(age_arr, sex, improvement[period]) * noise
            frame[f'Px_{period}'] = _structure(age_arr, growth[period]) * population_size[sex]
        frames[sex] = frame

    male, female = frames['Male'], frames['Female']
    total = pd.DataFrame({'Sex': 'Total', 'Age': age_arr.astype(int)})
    for period in (p1, p2):
        exposure = male[f'Px_{period}'] + female[f'Px_{period}']
        deaths = (male[f'Mx_{period}'] * male[f'Px_{period}']
                  + female[f'Mx_{period}'] * female[f'Px_{period}'])
        total[f'Mx_{period}'] = deaths / exposure
        total[f'Px_{period}'] = exposure

    df = pd.concat([male, female, total], ignore_index=True)
    df = df.reindex(columns=['Sex', 'Age', f'Mx_{p1}', f'Mx_{p2}', f'Px_{p1}', f'Px_{p2}'])

    if missing_fraction > 0:
        rate_cols = [f'Mx_{p1}', f'Mx_{p2}']
        eligible = df.index[df['Age'] != df['Age'].min()]
        n_missing = int(round(missing_fraction * len(eligible)))
        rows = rng.choice(eligible, size=n_missing, replace=False)
        cols = rng.choice(rate_cols, size=n_missing)
        for row, col in zip(rows, cols):
            df.at[row, col] = np.nan

    return df
