"""Tests for state adapters, the AndersonSolver API, benchmark problems
and result output.
"""

import json
import warnings

import h5py
import numpy as np
import pytest

from fixpoint_lab.anderson import (
    AndersonConvergenceWarning,
    AndersonSolution,
    AndersonSolver,
    ArrayStateAdapter,
    PackedState,
    PackedStateAdapter,
    anderson_solve,
    contraction_factors,
    get_all_problems,
    get_problem,
    mean_contraction,
    write_h5,
    write_json,
)


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------

class TestArrayStateAdapter:
    """Single-array states."""

    def test_flatten_aliases_state(self):
        state = np.zeros((2, 3))
        x = ArrayStateAdapter(np.cos).flatten(state)
        assert x.shape == (6,)
        x[4] = 7.0
        assert state[1, 1] == 7.0

    def test_unflattenable_state_rejected(self):
        state = np.zeros((4, 4))[:, :2]
        with pytest.raises(ValueError, match="without copying"):
            ArrayStateAdapter(np.cos).flatten(state)

    def test_evenly_strided_state_accepted(self):
        base = np.zeros((4, 4))
        x = ArrayStateAdapter(np.cos).flatten(base[:, ::2])
        assert x.shape == (8,)
        x[1] = 3.0
        assert base[0, 2] == 3.0

    def test_default_norm_is_euclidean(self):
        adapter = ArrayStateAdapter(lambda x: x + np.array([3.0, 4.0]))
        state = np.zeros(2)
        adapter.refresh(state)
        assert adapter.residual_norm(state) == pytest.approx(5.0)

    def test_custom_norm(self):
        adapter = ArrayStateAdapter(
            lambda x: x + np.array([3.0, -4.0]),
            norm=lambda r: np.max(np.abs(r)),
        )
        state = np.zeros(2)
        adapter.refresh(state)
        assert adapter.residual_norm(state) == pytest.approx(4.0)

    def test_apply_map_reuses_refresh(self):
        calls = []

        def g(x):
            calls.append(1)
            return 2.0 * x

        adapter = ArrayStateAdapter(g)
        state = np.array([1.0, 2.0])
        adapter.refresh(state)
        adapter.residual_norm(state)
        adapter.apply_map(state)

        assert len(calls) == 1
        assert adapter.n_evaluations == 1
        np.testing.assert_array_equal(state, [2.0, 4.0])

    def test_shape_mismatch(self):
        adapter = ArrayStateAdapter(lambda x: np.zeros(3))
        with pytest.raises(ValueError):
            adapter.refresh(np.zeros(2))


class TestPackedState:
    """Multi-field states packed into one buffer."""

    def test_fields_are_views(self):
        state = PackedState({"a": np.array([1.0, 2.0]), "b": np.ones((2, 2))})
        assert len(state) == 6
        np.testing.assert_array_equal(state.buffer, [1, 2, 1, 1, 1, 1])

        state["b"][1, 0] = 5.0
        assert state.buffer[4] == 5.0
        state.buffer[0] = -1.0
        assert state["a"][0] == -1.0

    def test_as_dict_copies(self):
        state = PackedState({"a": np.zeros(2)})
        d = state.as_dict()
        d["a"][0] = 1.0
        assert state["a"][0] == 0.0

    def test_coupled_fields_solved(self):
        """Two coupled fields reach a joint fixed point."""

        def g(fields):
            a, b = fields["a"], fields["b"]
            return {
                "a": 0.5 * np.cos(b[:2]) + 1.0,
                "b": 0.25 * np.concatenate([a, [a.sum()]]),
            }

        state = PackedState({"a": np.zeros(2), "b": np.zeros(3)})
        adapter = PackedStateAdapter(g)

        k, lleq, _ = anderson_solve(
            state, adapter, m=3, rtol=0.0, atol=1e-10, maxit=100,
        )

        assert lleq <= 1e-10
        gx = g(state.as_dict())
        np.testing.assert_allclose(gx["a"], state["a"], atol=1e-9)
        np.testing.assert_allclose(gx["b"], state["b"], atol=1e-9)

    def test_missing_field(self):
        adapter = PackedStateAdapter(lambda fields: {"a": fields["a"]})
        state = PackedState({"a": np.zeros(1), "b": np.zeros(1)})
        with pytest.raises(ValueError):
            adapter.refresh(state)


# ---------------------------------------------------------------------------
# Solver API
# ---------------------------------------------------------------------------

class TestAndersonSolver:
    """Configuration object and AndersonSolution."""

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            AndersonSolver(m=-1)
        with pytest.raises(ValueError):
            AndersonSolver(rtol=-1.0)
        with pytest.raises(ValueError):
            AndersonSolver(atol=float("nan"))

    def test_solve_map_leaves_x0(self):
        x0 = np.zeros(3)
        solution = AndersonSolver(m=2, rtol=0.0, atol=1e-10).solve_map(np.cos, x0)

        assert isinstance(solution, AndersonSolution)
        assert solution.converged
        np.testing.assert_array_equal(x0, 0.0)
        np.testing.assert_allclose(solution.x, 0.7390851332151607, atol=1e-9)

    def test_integer_start_promoted(self):
        solution = AndersonSolver(m=1, rtol=0.0, atol=1e-10).solve_map(
            np.cos, np.array([0, 1]),
        )
        assert solution.x.dtype == np.float64
        assert solution.converged

    def test_residual_history(self):
        solution = AndersonSolver(m=0, rtol=0.0, atol=1e-6).solve_map(
            lambda x: 0.5 * x, np.array([1.0]),
        )
        assert len(solution.residual_history) == solution.iterations + 1
        assert solution.residual_history[0] == solution.initial_residual_norm
        assert solution.residual_history[-1] == solution.residual_norm
        np.testing.assert_allclose(solution.contraction, 0.5)
        assert solution.metadata["mean_contraction"] == pytest.approx(0.5)

    def test_tolerance_rule(self):
        solution = AndersonSolver(m=0, rtol=1e-2, atol=1e-8).solve_map(
            lambda x: 0.5 * x, np.array([1.0]),
        )
        assert solution.tolerance == pytest.approx(1e-2 * 0.5)
        assert solution.residual_norm <= solution.tolerance

    def test_not_converged_reported(self):
        solver = AndersonSolver(m=0, rtol=0.0, atol=1e-12, maxit=2)
        with pytest.warns(AndersonConvergenceWarning):
            solution = solver.solve_map(np.cos, np.zeros(2))
        assert not solution.converged
        assert solution.iterations == 2

    def test_acceleration_pays_off(self):
        problem = get_problem("jacobi")
        plain = AndersonSolver(m=0, rtol=0.0, atol=1e-10, maxit=5000)
        accel = AndersonSolver(m=5, rtol=0.0, atol=1e-10, maxit=5000)

        s0 = plain.solve_problem(problem)
        s5 = accel.solve_problem(problem)

        assert s0.converged and s5.converged
        assert s5.iterations < s0.iterations
        assert s5.metadata["error_vs_ref"] < 1e-8

    @pytest.mark.parametrize("name", ["halving", "cosine", "jacobi", "collinear", "bratu"])
    def test_benchmark_problems_converge(self, name):
        problem = get_problem(name)
        m = min(3, problem.x0.size)
        solution = AndersonSolver(m=m, rtol=0.0, atol=1e-11, maxit=500).solve_problem(problem)

        assert solution.converged
        assert solution.metadata["problem"] == name
        if problem.x_ref is not None:
            assert solution.metadata["error_vs_ref"] < 1e-8

    def test_verbose_prefix(self, capsys):
        solver = AndersonSolver(m=0, rtol=0.0, atol=1e-3, verbose=True, msgprefix="  | ")
        solver.solve_map(lambda x: 0.5 * x, np.array([1.0]))
        out = capsys.readouterr().out
        assert "  | Initial residual norm" in out
        assert "  | k = 1: " in out


class TestConvergenceDiagnostics:
    """Contraction factors from a residual history."""

    def test_contraction_factors(self):
        assert contraction_factors([1.0, 0.5, 0.125]) == [0.5, 0.25]
        assert contraction_factors([0.0, 1.0]) == [np.inf]
        assert contraction_factors([1.0]) == []

    def test_mean_contraction(self):
        assert mean_contraction([1.0, 0.25, 0.0625]) == pytest.approx(0.25)
        assert np.isnan(mean_contraction([1.0]))
        assert mean_contraction([1.0, 0.0]) == 0.0


# ---------------------------------------------------------------------------
# Benchmark problems
# ---------------------------------------------------------------------------

class TestProblems:
    """Benchmark problem registry."""

    def test_unknown_problem(self):
        with pytest.raises(ValueError, match="Unknown problem"):
            get_problem("nope")

    def test_reference_points_are_fixed(self):
        for name, problem in get_all_problems().items():
            if problem.x_ref is None:
                continue
            np.testing.assert_allclose(
                problem.g(problem.x_ref), problem.x_ref, atol=1e-12,
                err_msg=name,
            )

    def test_collinear_residuals(self):
        problem = get_problem("collinear")
        x = problem.x0.copy()
        residuals = []
        for _ in range(3):
            gx = problem.g(x)
            residuals.append(gx - x)
            x = gx
        assert np.linalg.matrix_rank(np.column_stack(residuals), tol=1e-10) == 1


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class TestOutput:
    """HDF5 and JSON writers."""

    @pytest.fixture
    def solution(self):
        return AndersonSolver(m=2, rtol=0.0, atol=1e-10).solve_map(np.cos, np.zeros(3))

    def test_write_h5(self, solution, temp_dir):
        path = write_h5(solution, temp_dir / "out" / "solution.h5")
        assert path.exists()

        with h5py.File(path, "r") as f:
            np.testing.assert_allclose(f["anderson/X"][()], solution.x)
            np.testing.assert_allclose(
                f["anderson/RESIDUAL_HISTORY"][()], solution.residual_history,
            )
            diag = f["anderson/diagnostics"]
            assert diag["ITERATIONS"][()] == solution.iterations
            assert diag["CONVERGED"][()] == 1
            assert diag.attrs["m"] == 2

    def test_write_json(self, solution, temp_dir):
        path = write_json(solution, temp_dir / "solution.json")
        with open(path) as f:
            data = json.load(f)

        assert data["iterations"] == solution.iterations
        assert data["converged"] is True
        assert len(data["x"]) == 3
        assert data["metadata"]["m"] == 2

    def test_write_json_without_x(self, solution, temp_dir):
        path = write_json(solution, temp_dir / "solution.json", include_x=False)
        with open(path) as f:
            data = json.load(f)
        assert "x" not in data
