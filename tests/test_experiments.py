"""
tests/test_experiments.py - Batch Runs and Command-Line Runner Tests

Author: Demographic Decomposition Project
License: MIT
"""

import numpy as np
import pandas as pd
import pytest

from demodecomp.config import DecompositionMethod, DecompositionOptions, ExperimentConfig
from demodecomp.experiments import (
    arriaga_discrepancy_summary, compare_arriaga_to_gradient, run_arriaga_comparison,
    run_composition_experiments, run_kitagawa, summarize_composition,
)
from demodecomp.ingestion import RatesTableLoader
from demodecomp.lifetable import mx_to_e0
from demodecomp.synthetic import generate_toy_rates

import run_decomposition


@pytest.fixture(scope="module")
def table():
    return RatesTableLoader().load_frame(generate_toy_rates(ages=range(0, 40, 10), seed=11))


@pytest.fixture(scope="module")
def config():
    return ExperimentConfig(methods=["horiuchi", "stepwise"], options=DecompositionOptions(N=4))


class TestExperimentConfig:
    """Validation of batch settings."""

    def test_defaults(self):
        config = ExperimentConfig()
        assert config.periods == ("1950", "2000")
        assert config.methods == [DecompositionMethod.HORIUCHI]
        assert config.options.N == 20

    def test_integer_periods(self):
        assert ExperimentConfig(periods=[1950, 2000]).periods == ("1950", "2000")

    def test_periods_must_differ(self):
        with pytest.raises(ValueError):
            ExperimentConfig(periods=["2000", "2000"])

    def test_negative_skip(self):
        with pytest.raises(ValueError):
            ExperimentConfig(skips=[0, -1])

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            ExperimentConfig(methods=["oaxaca"])


class TestCompositionExperiments:
    """The (Sex, method, skip) grid."""

    @pytest.fixture(scope="class")
    def results(self, table, config):
        return run_composition_experiments(table, config)

    def test_grid_size(self, results):
        n_ages = 4
        assert len(results) == 3 * 2 * (n_ages + 1) * 2 * n_ages
        assert list(results.columns) == ['Sex', 'method', 'skip', 'component', 'age', 'contribution']

    def test_margins_match_kitagawa(self, results, table, config):
        summary = summarize_composition(results)
        summary = summary[summary['method'] == 'horiuchi']
        kitagawa_frame = run_kitagawa(table, config)

        for sex, group in summary.groupby('Sex'):
            expected = kitagawa_frame.loc[kitagawa_frame['Sex'] == sex, 'structure_effect'].sum()
            np.testing.assert_allclose(group['structure_margin'], expected, atol=1e-12,
                                       err_msg=f"{sex} structure margin varies with skip")

    def test_stepwise_totals_are_exact(self, results, table, config):
        summary = summarize_composition(results)
        kitagawa_frame = run_kitagawa(table, config)
        stepwise = summary[summary['method'] == 'stepwise']

        for sex, group in stepwise.groupby('Sex'):
            sub = kitagawa_frame[kitagawa_frame['Sex'] == sex]
            gap = sub['rate_effect'].sum() + sub['structure_effect'].sum()
            np.testing.assert_allclose(group['rate_margin'] + group['structure_margin'], gap,
                                       atol=1e-12)

    def test_rate_margin_invariant_for_gradient_integration(self, results):
        summary = summarize_composition(results)
        horiuchi_rows = summary[summary['method'] == 'horiuchi']
        for _, group in horiuchi_rows.groupby('Sex'):
            assert np.ptp(group['rate_margin']) < 1e-12

    def test_progress_and_subsets(self, table):
        seen = []
        config = ExperimentConfig(sexes=['Male'], skips=[0, 2], options=DecompositionOptions(N=2))
        results = run_composition_experiments(table, config,
                                              progress_callback=lambda d, t: seen.append((d, t)))

        assert seen == [(1, 1)]
        assert set(results['Sex']) == {'Male'}
        assert sorted(results['skip'].unique()) == [0, 2]


class TestKitagawaRun:
    def test_columns_and_totals(self, table, config):
        frame = run_kitagawa(table, config)
        assert list(frame.columns) == ['Sex', 'Age', 'rate_effect', 'structure_effect']
        assert len(frame) == 3 * 4


class TestArriagaComparison:
    """Arriaga variants next to gradient integration of e0."""

    Mx1 = np.array([0.03, 0.004, 0.006, 0.02, 0.1])
    Mx2 = np.array([0.015, 0.002, 0.004, 0.015, 0.08])

    def test_columns_and_exactness(self):
        frame = compare_arriaga_to_gradient(self.Mx1, self.Mx2, N=20, ages=[0, 1, 5, 20, 60])
        gap = mx_to_e0(self.Mx2) - mx_to_e0(self.Mx1)

        assert list(frame.columns) == ['Age', 'arriaga', 'arriaga_reverse', 'arriaga_symmetric',
                                       'horiuchi', 'diff_arriaga', 'diff_symmetric']
        assert frame['arriaga'].sum() == pytest.approx(gap, rel=1e-9)
        assert frame['arriaga_reverse'].sum() == pytest.approx(gap, rel=1e-9)
        np.testing.assert_allclose(frame['diff_arriaga'], frame['arriaga'] - frame['horiuchi'])

    def test_symmetric_closer_to_gradient(self):
        summary = arriaga_discrepancy_summary(compare_arriaga_to_gradient(self.Mx1, self.Mx2))
        assert summary['max_abs_diff_symmetric'] < summary['max_abs_diff_arriaga']
        assert summary['horiuchi_total'] == pytest.approx(summary['gap'], rel=1e-3)

    def test_table_run(self, table, config):
        frame = run_arriaga_comparison(table, config)
        assert set(frame['Sex']) == {'Male', 'Female', 'Total'}
        assert len(frame) == 3 * 4


class TestCommandLine:
    """run_decomposition.py end to end on the toy table."""

    def test_parser(self):
        args = run_decomposition.build_parser().parse_args(
            ['--demo', '--sex', 'Male', '--skip', '1', '--skip', '3',
             '--method', 'ltre', '--steps', '5', '--strict-missing'])
        assert args.demo
        assert args.sex == ['Male']
        assert args.skip == [1, 3]
        assert args.method == ['ltre']
        assert args.steps == 5
        assert args.strict_missing

    def test_run_all_demo(self, tmp_path):
        outcome = run_decomposition.run_all(
            data_path=None, output_dir=str(tmp_path), periods=['1950', '2000'],
            sexes=['Female'], steps=3,
        )

        names = sorted(p.name for p in outcome['paths'])
        assert names == ['arriaga_comparison.csv', 'composition.csv',
                         'composition_margins.csv', 'kitagawa.csv']
        assert (tmp_path / "input_audit.json").exists()
        margins = pd.read_csv(tmp_path / "composition_margins.csv")
        assert np.ptp(margins['structure_margin']) < 1e-10

    def test_run_all_from_file(self, tmp_path):
        data = tmp_path / "rates.csv"
        generate_toy_rates(ages=range(0, 30, 10)).to_csv(data, index=False)

        outcome = run_decomposition.run_all(
            data_path=str(data), output_dir=str(tmp_path / "out"), periods=['1950', '2000'],
            methods=['ltre'], output_format='xlsx', steps=2,
        )

        assert outcome['paths'][0].name == "decomposition_results.xlsx"
        assert outcome['table'].input_filename == "rates.csv"

    def test_main_requires_input(self, monkeypatch):
        monkeypatch.setattr('sys.argv', ['run_decomposition.py'])
        with pytest.raises(SystemExit):
            run_decomposition.main()
