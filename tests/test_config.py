# tests/test_config.py
"""Solver options: defaults, validation and immutability."""

import pytest
from pydantic import ValidationError

from mini_cdpr.config import DEFAULT_SOLVER_OPTIONS, SolverOptions


class TestSolverOptions:

    def test_defaults(self):
        options = SolverOptions()
        assert options.constraint_tolerance == 1e-6
        assert options.max_iterations == 500
        assert options.max_time is None
        assert options.method == 'SLSQP'
        assert options.fallback_method == 'trust-constr'
        assert options.max_pulley_iterations == 25
        assert DEFAULT_SOLVER_OPTIONS == options

    def test_from_mapping(self):
        options = SolverOptions.from_mapping({'method': 'trust-constr', 'max_time': 2.5})
        assert options.method == 'trust-constr'
        assert options.max_time == 2.5
        assert SolverOptions.from_mapping(None) == SolverOptions()

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            SolverOptions.from_mapping({'tolerance': 1e-3})

    def test_frozen(self):
        options = SolverOptions()
        with pytest.raises(ValidationError):
            options.max_iterations = 10

    @pytest.mark.parametrize("values", [
        {'constraint_tolerance': -1e-6},
        {'max_iterations': 0},
        {'max_time': 0.0},
        {'method': 'nelder-mead'},
        {'fallback_method': 'BFGS'},
        {'pulley_tolerance': 0.0},
    ])
    def test_invalid_values(self, values):
        with pytest.raises(ValidationError):
            SolverOptions(**values)
