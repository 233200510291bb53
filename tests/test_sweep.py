"""Tests for the sweep harness."""

import numpy as np
import pytest

from erythro_sim.errors import ConfigurationError, IntegrationFailure, ValidationError
from erythro_sim.integrator import SolverSettings, integrate_scenario
from erythro_sim.model import State
from erythro_sim.scenario import CombinedDelta, FieldDelta, Scenario, TimeGrid
from erythro_sim.sweep import (
    ScenarioResult, ScenarioStatus, default_sweeps, one_at_a_time, percent_deltas,
    run_scenario, run_sweep,
)


class TestOrdering:
    """Output follows the input delta order."""

    DELTAS = [FieldDelta('RBC', 700), FieldDelta('SC', 800), FieldDelta('EPO', 5)]

    def test_sequential_order(self, short_scenario):
        sweep = run_sweep(short_scenario, self.DELTAS)
        assert sweep.labels == ['base', 'RBC=700', 'SC=800', 'EPO=5']
        assert all(r.status is ScenarioStatus.COMPLETED for r in sweep)

    def test_parallel_order(self, short_scenario):
        """A worker pool returns results in input order, identical to a sequential run."""
        sequential = run_sweep(short_scenario, self.DELTAS)
        parallel = run_sweep(short_scenario, self.DELTAS, workers=2)
        assert parallel.labels == sequential.labels
        for a, b in zip(sequential, parallel):
            assert b.status is ScenarioStatus.COMPLETED
            for name in ('RBC', 'O2', 'EPO'):
                assert np.allclose(a.series[name], b.series[name])

    def test_reversed_input_reverses_output(self, short_scenario):
        sweep = run_sweep(short_scenario, list(reversed(self.DELTAS)))
        assert sweep.labels == ['base', 'EPO=5', 'SC=800', 'RBC=700']


class TestLabelLookup:
    """Label lookups return the run that was asked for, or refuse."""

    def test_nearby_values_are_distinct_runs(self, short_scenario):
        low, high = FieldDelta('SC', 1000.0001), FieldDelta('SC', 1000.0004)
        sweep = run_sweep(short_scenario, [low, high])
        assert sweep.labels == ['base', 'SC=1000.0001', 'SC=1000.0004']
        assert sweep['SC=1000.0004'] is sweep[2]
        assert sweep['SC=1000.0001'] is sweep[1]

    def test_ambiguous_label_raises(self, short_scenario):
        deltas = [CombinedDelta('mild', {'SC': 900}), CombinedDelta('mild', {'SC': 800})]
        sweep = run_sweep(short_scenario, deltas)
        assert sweep.labels == ['base', 'mild', 'mild']
        with pytest.raises(KeyError, match="2 results"):
            sweep['mild']
        assert sweep[2].final()['RBC'] < sweep[1].final()['RBC']

    def test_unknown_label_raises(self, short_scenario):
        sweep = run_sweep(short_scenario, [])
        assert sweep['base'] is sweep[0]
        with pytest.raises(KeyError):
            sweep['SC=1']


class TestIndependence:

    def test_each_delta_starts_from_base(self, short_scenario):
        """Deltas never compose: the O2 run still starts at RBC=1000."""
        sweep = run_sweep(short_scenario, [FieldDelta('RBC', 700), FieldDelta('O2', 70)])
        assert sweep['RBC=700'].series['RBC'][0] == 700.0
        assert sweep['O2=70'].series['RBC'][0] == 1000.0
        assert sweep['O2=70'].series['O2'][0] == 70.0
        assert short_scenario.initial.RBC == 1000.0

    def test_base_run_matches_direct_integration(self, short_scenario):
        sweep = run_sweep(short_scenario, [])
        direct = integrate_scenario(short_scenario)
        assert len(sweep) == 1
        assert np.array_equal(sweep['base'].series['RBC'], direct.series['RBC'])

    def test_combined_delta(self, short_scenario):
        sweep = run_sweep(short_scenario, [CombinedDelta('anemia', {'RBC': 700, 'SC': 800})])
        result = sweep['anemia']
        assert result.ok
        assert result.series['RBC'][0] == 700.0


class TestPartialFailure:
    """Per-scenario errors are recorded and siblings keep running."""

    def test_validation_failure_is_isolated(self, short_scenario):
        deltas = [FieldDelta('RBC', 700), FieldDelta('Hb', 12), FieldDelta('SC', -5),
                  FieldDelta('EPO', 5)]
        sweep = run_sweep(short_scenario, deltas)
        assert sweep.labels == ['base', 'RBC=700', 'Hb=12', 'SC=-5', 'EPO=5']
        assert [r.status for r in sweep] == [
            ScenarioStatus.COMPLETED, ScenarioStatus.COMPLETED,
            ScenarioStatus.FAILED, ScenarioStatus.FAILED, ScenarioStatus.COMPLETED,
        ]
        assert sweep['Hb=12'].error.startswith('ValidationError')
        assert len(sweep['Hb=12'].times) == 0
        assert len(sweep.failed) == 2

    def test_integration_failure_is_isolated(self, short_scenario):
        """O2=0 with g3<0 fails at t=0; the other runs complete."""
        with np.errstate(divide='ignore'):
            sweep = run_sweep(short_scenario, [FieldDelta('O2', 0), FieldDelta('RBC', 700)])
        failed = sweep['O2=0']
        assert failed.status is ScenarioStatus.FAILED
        assert failed.error.startswith('IntegrationFailure')
        assert failed.failed_at == 0.0
        assert len(failed.times) == 1
        assert sweep['RBC=700'].ok

    def test_step_budget_failure_keeps_partial_samples(self, base_scenario):
        sweep = run_sweep(base_scenario, [FieldDelta('RBC', 700)],
                          settings=SolverSettings(max_steps=2))
        for result in sweep:
            assert result.status is ScenarioStatus.FAILED
            assert result.failed_at is not None
            assert len(result.times) == len(result.series['RBC'])

    def test_invalid_base_is_fatal(self, default_params):
        """A broken base scenario aborts the sweep before anything runs."""
        broken = Scenario(
            initial=State(1000, 100, 10),
            params=default_params,
            grid=TimeGrid(0, 10, -0.1),
        )
        with pytest.raises(ConfigurationError):
            run_sweep(broken, [FieldDelta('RBC', 700)])

    def test_invalid_settings_are_fatal(self, short_scenario):
        with pytest.raises(ConfigurationError):
            run_sweep(short_scenario, [], settings=SolverSettings(method='Euler'))


class TestLifecycle:
    """PENDING -> RUNNING -> COMPLETED / FAILED."""

    def test_happy_path(self, short_scenario):
        result = run_scenario(short_scenario)
        assert result.status is ScenarioStatus.COMPLETED
        assert result.error is None

    def test_complete_requires_running(self, short_scenario):
        trajectory = integrate_scenario(short_scenario)
        result = ScenarioResult('x')
        with pytest.raises(RuntimeError):
            result.complete(trajectory)

    def test_terminal_states_are_final(self, short_scenario):
        trajectory = integrate_scenario(short_scenario)
        result = ScenarioResult('x')
        result.start()
        result.complete(trajectory)
        with pytest.raises(RuntimeError):
            result.fail(ValidationError("late"))
        with pytest.raises(RuntimeError):
            result.start()

    def test_validation_failure_skips_running(self):
        result = ScenarioResult('x')
        result.fail(ValidationError("bad"))
        assert result.status is ScenarioStatus.FAILED
        assert result.error == "ValidationError: bad"

    def test_failure_keeps_last_valid_time(self):
        result = ScenarioResult('x')
        result.start()
        result.fail(IntegrationFailure("boom", 1.5, None,
                                       np.array([0.0, 1.0]), np.ones((2, 3))))
        assert result.failed_at == 1.5
        assert list(result.times) == [0.0, 1.0]
        assert list(result.series['EPO']) == [1.0, 1.0]


class TestTabularOutput:

    def test_sweep_frame(self, short_scenario):
        sweep = run_sweep(short_scenario, [FieldDelta('RBC', 700), FieldDelta('Hb', 1)])
        df = sweep.to_frame()
        assert list(df.columns) == ['label', 'status', 'error', 'time', 'RBC', 'O2', 'EPO']
        n = len(short_scenario.grid.times())
        assert len(df) == 2 * n + 1
        assert list(df['label'].unique()) == ['base', 'RBC=700', 'Hb=1']
        failed = df[df['label'] == 'Hb=1']
        assert failed['status'].iloc[0] == 'failed'
        assert np.isnan(failed['time'].iloc[0])

    def test_frame_is_lossless(self, short_scenario):
        result = run_scenario(short_scenario)
        df = result.to_frame()
        assert np.array_equal(df['time'].to_numpy(), result.times)
        assert np.array_equal(df['EPO'].to_numpy(), result.series['EPO'])


class TestDeltaBuilders:

    def test_one_at_a_time(self):
        deltas = one_at_a_time('RBC', [900, 800, 700])
        assert [d.label for d in deltas] == ['RBC=900', 'RBC=800', 'RBC=700']

    def test_percent_deltas(self, short_scenario):
        deltas = percent_deltas(short_scenario)
        assert len(deltas) == 16
        assert deltas[0].label == 'a1=0.09'
        assert deltas[1].label == 'a1=0.11'
        assert deltas[-1].label == 'SC=1100'

    def test_percent_deltas_unknown_field(self, short_scenario):
        with pytest.raises(ValidationError):
            percent_deltas(short_scenario, ['k'])

    def test_default_sweeps(self):
        sweeps = default_sweeps()
        assert set(sweeps) == {'initial', 'parameters', 'combined'}
        assert [d.label for d in sweeps['initial']] == ['RBC=700', 'O2=70', 'EPO=5']
        assert len(sweeps['parameters']) == 8
        assert all(isinstance(d, CombinedDelta) for d in sweeps['combined'])
