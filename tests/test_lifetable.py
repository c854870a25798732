"""
tests/test_lifetable.py - Lifetable Transform Pipeline Tests

Covers:
1. Lifetable consistency (l0 = 1, non-increasing l(x), e0 >= 0)
2. Hand-computed columns for a three-age table
3. Missing-value policy
4. Undefined life expectancy where l(x) = 0

Author: Demographic Decomposition Project
License: MIT
"""

import logging

import numpy as np
import pytest

from demodecomp.exceptions import MissingValueError
from demodecomp.lifetable import (
    MissingValuePolicy, build_lifetable, coerce_rates, lx_to_dx, lx_to_ex,
    lx_to_Lx, lx_to_Tx, mx_to_e0, mx_to_ex, mx_to_lx,
)


class TestLifetableConsistency:
    """
    For all non-negative Mx: l(0) = 1, l(x) non-increasing, e0 >= 0.
    """

    @pytest.mark.parametrize("seed", range(10))
    def test_random_rates(self, seed):
        rng = np.random.default_rng(seed)
        n = int(rng.integers(1, 40))
        Mx = rng.uniform(0.0, 0.5, size=n)
        Mx[rng.random(n) < 0.2] = 0.0

        lx = mx_to_lx(Mx)

        assert lx[0] == 1.0
        assert len(lx) == n
        assert np.all(np.diff(lx) <= 0), "survivorship must be non-increasing"
        assert lx_to_ex(lx)[0] >= 0

    def test_zero_rates_keep_everyone_alive(self):
        lx = mx_to_lx([0.0, 0.0, 0.0])
        np.testing.assert_array_equal(lx, np.ones(3))

    def test_last_rate_does_not_enter_survivorship(self):
        """The open interval's own rate never reaches l(x)."""
        assert mx_to_e0([0.01, 0.02, 0.03]) == mx_to_e0([0.01, 0.02, 0.9])


class TestHandComputedColumns:
    """Mx = [0.01, 0.001, 0.02], checked against closed-form values."""

    Mx = [0.01, 0.001, 0.02]

    def test_lx(self):
        expected = np.exp(-np.array([0.0, 0.01, 0.011]))
        np.testing.assert_allclose(mx_to_lx(self.Mx), expected, rtol=1e-15)

    def test_dx_holds_remaining_mass(self):
        lx = mx_to_lx(self.Mx)
        dx = lx_to_dx(lx)
        assert dx[-1] == lx[-1]
        assert dx.sum() == pytest.approx(1.0, abs=1e-15)

    def test_Lx_Tx_ex(self):
        lx = mx_to_lx(self.Mx)
        Lx = lx_to_Lx(lx)
        Tx = lx_to_Tx(lx)
        ex = lx_to_ex(lx)

        np.testing.assert_allclose(Lx, [(lx[0] + lx[1]) / 2, (lx[1] + lx[2]) / 2, lx[2] / 2])
        np.testing.assert_allclose(Tx, [Lx.sum(), Lx[1] + Lx[2], Lx[2]])
        np.testing.assert_allclose(ex, Tx / lx)
        assert ex[-1] == pytest.approx(0.5)

    def test_e0(self):
        expected = 0.5 + np.exp(-0.01) + np.exp(-0.011)
        assert mx_to_e0(self.Mx) == pytest.approx(expected, rel=1e-12)
        assert mx_to_ex(self.Mx)[0] == pytest.approx(expected, rel=1e-12)

    def test_build_lifetable(self):
        table = build_lifetable(self.Mx, ages=[0, 1, 2])
        frame = table.to_dataframe()

        assert list(frame.columns) == ['Age', 'mx', 'lx', 'dx', 'Lx', 'Tx', 'ex']
        assert table.e0 == pytest.approx(mx_to_e0(self.Mx))
        assert table.summary()['n_ages'] == 3

    def test_build_lifetable_rejects_misaligned_ages(self):
        with pytest.raises(ValueError, match="ages has length"):
            build_lifetable(self.Mx, ages=[0, 1])


class TestMissingValuePolicy:
    """Missing rates are coerced explicitly or rejected, never silently."""

    def test_zero_policy_coerces_and_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="demodecomp.lifetable"):
            lx = mx_to_lx([0.01, np.nan, 0.02])

        np.testing.assert_allclose(lx, mx_to_lx([0.01, 0.0, 0.02]))
        assert "missing rate" in caplog.text

    def test_none_is_treated_as_missing(self):
        np.testing.assert_array_equal(coerce_rates([0.1, None]), [0.1, 0.0])

    def test_raise_policy(self):
        with pytest.raises(MissingValueError, match="positions \\[1\\]"):
            mx_to_lx([0.01, np.nan, 0.02], missing=MissingValuePolicy.RAISE)

    def test_input_not_modified(self):
        Mx = np.array([0.01, np.nan, 0.02])
        mx_to_e0(Mx)
        assert np.isnan(Mx[1])

    def test_negative_rates_rejected(self):
        with pytest.raises(ValueError, match=">= 0"):
            mx_to_lx([0.01, -0.001])

    def test_empty_rates_rejected(self):
        with pytest.raises(ValueError, match="at least one"):
            mx_to_lx([])


class TestUndefinedLifeExpectancy:
    """l(x) = 0 gives NaN, not 0 and not an exception."""

    def test_zero_survivorship(self):
        ex = lx_to_ex([1.0, 0.0])
        assert ex[0] == pytest.approx(0.5)
        assert np.isnan(ex[1])

    def test_infinite_hazard(self):
        ex = mx_to_ex([np.inf, 0.1, 0.1])
        assert ex[0] == pytest.approx(0.5)
        assert np.isnan(ex[1:]).all()
