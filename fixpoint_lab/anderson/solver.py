"""Programmatic Anderson solver API.

Provides AndersonSolver, a reusable configuration object wrapping
anderson_solve, and AndersonSolution with convergence diagnostics.
"""

import sys
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from .adapter import ArrayStateAdapter, StateAdapter
from .convergence import (
    DEFAULT_ATOL,
    DEFAULT_DEPTH,
    DEFAULT_RTOL,
    contraction_factors,
    mean_contraction,
    residual_tolerance,
    validate_options,
)
from .driver import anderson_solve
from .problems import Problem


@dataclass
class AndersonSolution:
    """Result of an Anderson solve.

    Attributes:
        x: Copy of the final flattened iterate.
        iterations: Number of steps taken.
        residual_norm: Residual norm of the final iterate.
        initial_residual_norm: Residual norm of the starting point.
        tolerance: Stopping threshold max(rtol * norm_0, atol).
        converged: Whether residual_norm <= tolerance.
        residual_history: Residual norm after each step, starting at step 0.
        wall_time_us: Solve time in microseconds.
        metadata: Extra diagnostics (depth, contraction rate, evaluations).
    """

    x: np.ndarray
    iterations: int
    residual_norm: float
    initial_residual_norm: float
    tolerance: float
    converged: bool
    residual_history: List[float] = field(default_factory=list)
    wall_time_us: float = 0.0
    metadata: dict = field(default_factory=dict)

    @property
    def contraction(self) -> List[float]:
        """Per-step ratios of successive residual norms."""
        return contraction_factors(self.residual_history)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "iterations": self.iterations,
            "residual_norm": self.residual_norm,
            "initial_residual_norm": self.initial_residual_norm,
            "tolerance": self.tolerance,
            "converged": self.converged,
            "residual_history": [float(r) for r in self.residual_history],
            "wall_time_us": self.wall_time_us,
        }


class AndersonSolver:
    """Anderson(m) fixed-point solver.

    The same solver can be reused for many states; every call to ``solve``
    allocates its own history and workspace.

    Args:
        m: History depth (0 = plain fixed-point iteration).
        rtol: Relative residual tolerance.
        atol: Absolute residual tolerance.
        maxit: Maximum number of iteration steps.
        verbose: Print per-step progress lines.
        msgprefix: Prefix for progress lines.
    """

    def __init__(
        self,
        m: int = DEFAULT_DEPTH,
        rtol: float = DEFAULT_RTOL,
        atol: float = DEFAULT_ATOL,
        maxit: int = sys.maxsize,
        verbose: bool = False,
        msgprefix: str = "    ",
    ):
        validate_options(m, rtol, atol, maxit)
        self.m = m
        self.rtol = rtol
        self.atol = atol
        self.maxit = maxit
        self.verbose = verbose
        self.msgprefix = msgprefix

    def solve(self, state, adapter: StateAdapter) -> AndersonSolution:
        """Solve in place on ``state``.

        Args:
            state: Model state understood by ``adapter``; holds the final
                iterate on return.
            adapter: StateAdapter for the state.

        Returns:
            AndersonSolution with the final iterate and diagnostics.
        """
        t_start = time.perf_counter()
        history: List[float] = []

        k, lleq, lleq0 = anderson_solve(
            state,
            adapter,
            m=self.m,
            rtol=self.rtol,
            atol=self.atol,
            maxit=self.maxit,
            verbose=self.verbose,
            msgprefix=self.msgprefix,
            callback=lambda _k, norm: history.append(norm),
        )

        wall_time_us = (time.perf_counter() - t_start) * 1e6
        if lleq0 <= self.atol:
            tolerance = self.atol
        else:
            tolerance = residual_tolerance(lleq0, self.rtol, self.atol)

        metadata = {
            "m": self.m,
            "rtol": self.rtol,
            "atol": self.atol,
            "maxit": self.maxit,
            "mean_contraction": mean_contraction(history),
        }
        if hasattr(adapter, "n_evaluations"):
            metadata["n_evaluations"] = adapter.n_evaluations

        return AndersonSolution(
            x=adapter.flatten(state).copy(),
            iterations=k,
            residual_norm=lleq,
            initial_residual_norm=lleq0,
            tolerance=tolerance,
            converged=bool(lleq <= tolerance),
            residual_history=history,
            wall_time_us=wall_time_us,
            metadata=metadata,
        )

    def solve_map(
        self,
        g: Callable[[np.ndarray], np.ndarray],
        x0: np.ndarray,
        norm: Optional[Callable[[np.ndarray], float]] = None,
    ) -> AndersonSolution:
        """Solve g(x) = x from ``x0`` without modifying ``x0``."""
        state = np.array(x0, dtype=np.result_type(np.float64, np.asarray(x0)))
        return self.solve(state, ArrayStateAdapter(g, norm=norm))

    def solve_problem(self, problem: Problem) -> AndersonSolution:
        """Solve a benchmark problem and record its error if known."""
        solution = self.solve_map(problem.g, problem.x0)
        solution.metadata["problem"] = problem.name
        if problem.x_ref is not None:
            solution.metadata["error_vs_ref"] = float(
                np.max(np.abs(solution.x - np.ravel(problem.x_ref)))
            )
        return solution
