"""
tests/test_arriaga.py - Arriaga Decomposition Tests

Covers:
1. Exactness: Σ contributions = e0(Mx2) - e0(Mx1)
2. Asymmetry of the single-direction formula
3. Closed-form contributions for a three-age table
4. Open-interval closing term and undefined contributions

Author: Demographic Decomposition Project
License: MIT
"""

import numpy as np
import pytest

from demodecomp.arriaga import arriaga, arriaga_components, arriaga_symmetric
from demodecomp.exceptions import DimensionMismatchError
from demodecomp.lifetable import mx_to_e0


MX1 = [0.01, 0.001, 0.02]
MX2 = [0.008, 0.0009, 0.018]


class TestArriagaExactness:
    """Σ arriaga(Mx1, Mx2) == e0(Mx2) - e0(Mx1) to 1e-9 relative tolerance."""

    def test_concrete_scenario(self):
        gap = mx_to_e0(MX2) - mx_to_e0(MX1)
        contributions = arriaga(MX1, MX2)

        assert len(contributions) == 3
        assert contributions.sum() == pytest.approx(gap, rel=1e-9), \
            f"Arriaga sum {contributions.sum():.12f} != gap {gap:.12f}"

    @pytest.mark.parametrize("seed", range(10))
    def test_random_pairs(self, seed):
        rng = np.random.default_rng(seed)
        n = int(rng.integers(2, 60))
        Mx1 = rng.uniform(0.0001, 0.4, size=n)
        Mx2 = Mx1 * rng.uniform(0.5, 1.5, size=n)

        gap = mx_to_e0(Mx2) - mx_to_e0(Mx1)
        assert arriaga(Mx1, Mx2).sum() == pytest.approx(gap, rel=1e-9, abs=1e-12)

    def test_identical_rates_give_zero(self):
        np.testing.assert_allclose(arriaga(MX1, MX1), np.zeros(3), atol=1e-15)

    def test_single_age_group(self):
        np.testing.assert_allclose(arriaga([0.1], [0.2]), [0.0], atol=1e-15)


class TestArriagaAsymmetry:
    """
    arriaga(Mx1, Mx2) != -arriaga(Mx2, Mx1) elementwise, but the totals
    are equal and opposite.
    """

    Mx1 = [0.10, 0.05, 0.20, 0.30]
    Mx2 = [0.05, 0.10, 0.10, 0.50]

    def test_elementwise_differs(self):
        forward = arriaga(self.Mx1, self.Mx2)
        backward = arriaga(self.Mx2, self.Mx1)

        assert np.max(np.abs(forward + backward)) > 1e-4
        assert forward.sum() == pytest.approx(-backward.sum(), rel=1e-9)

    def test_symmetric_variant_is_average(self):
        forward = arriaga(self.Mx1, self.Mx2)
        backward = arriaga(self.Mx2, self.Mx1)
        symmetric = arriaga_symmetric(self.Mx1, self.Mx2)

        np.testing.assert_allclose(symmetric, (forward - backward) / 2)
        assert symmetric.sum() == pytest.approx(forward.sum(), rel=1e-9)

    def test_symmetric_variant_is_antisymmetric(self):
        np.testing.assert_allclose(
            arriaga_symmetric(self.Mx1, self.Mx2),
            -arriaga_symmetric(self.Mx2, self.Mx1),
            atol=1e-15,
        )


class TestClosedFormThreeAges:
    """
    With three age groups e0 = 0.5 + l(1) + l(2), and the forward Arriaga
    contribution of age 1 reduces to exp(-m1(0)) × [exp(-m2(1)) - exp(-m1(1))].
    """

    def test_age_one_contribution(self):
        contributions = arriaga(MX1, MX2)
        expected = np.exp(-MX1[0]) * (np.exp(-MX2[1]) - np.exp(-MX1[1]))
        assert contributions[1] == pytest.approx(expected, rel=1e-9)

    def test_open_interval_is_zero(self):
        """The open interval's rate never enters e0, so it contributes nothing."""
        assert abs(arriaga(MX1, MX2)[-1]) < 1e-15


class TestComponents:
    """Direct/indirect split and edge cases."""

    def test_components_sum_to_total(self):
        result = arriaga_components(MX1, MX2)
        np.testing.assert_allclose(result.direct + result.indirect, result.total)
        assert result.gap == pytest.approx(mx_to_e0(MX2) - mx_to_e0(MX1), rel=1e-12)

    def test_open_interval_reported_in_indirect(self):
        result = arriaga_components([0.1, 0.2, 0.3, 0.4], [0.2, 0.1, 0.5, 0.1])
        assert result.direct[-1] == 0.0

    def test_dataframe(self):
        frame = arriaga_components(MX1, MX2).to_dataframe(ages=[0, 5, 10])
        assert list(frame.columns) == ['Age', 'direct', 'indirect', 'total']
        assert frame['Age'].tolist() == [0, 5, 10]

    def test_undefined_where_survivorship_vanishes(self):
        contributions = arriaga([0.1, 0.1, 0.1], [np.inf, 0.1, 0.1])
        assert np.isnan(contributions).any()

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError, match="Mx1 has length 3 but Mx2 has length 2"):
            arriaga(MX1, [0.01, 0.02])

    def test_dimension_mismatch_is_value_error(self):
        with pytest.raises(ValueError):
            arriaga(MX1, [0.01])
