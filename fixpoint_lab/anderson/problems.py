"""Benchmark fixed-point problems for Anderson acceleration.

Each problem defines:
- g(x): Fixed-point map on a flat numpy vector
- x0: Starting point
- x_ref: Known fixed point (if available)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from scipy.linalg import solve_banded


# Solution of t = cos(t) (Dottie number)
DOTTIE = 0.7390851332151607


@dataclass
class Problem:
    """Container for a benchmark problem."""
    name: str
    g: Callable[[np.ndarray], np.ndarray]
    x0: np.ndarray
    x_ref: Optional[np.ndarray]
    description: str = ""


def halving() -> Problem:
    """
    Scalar linear contraction.

    g(x) = 0.5 x,  x* = 0

    Plain iteration reaches |x| <= eps after ceil(log2(1/eps)) steps.
    """
    return Problem(
        name="halving",
        g=lambda x: 0.5 * x,
        x0=np.array([1.0]),
        x_ref=np.array([0.0]),
        description="g(x) = 0.5 x on R^1",
    )


def cosine(n: int = 4) -> Problem:
    """
    Elementwise cosine map.

    g(x) = cos(x),  x* = 0.739085... in every entry

    Linear convergence with rate |sin(x*)| ~ 0.67 for plain iteration.
    """
    return Problem(
        name="cosine",
        g=np.cos,
        x0=np.zeros(n),
        x_ref=np.full(n, DOTTIE),
        description=f"g(x) = cos(x) on R^{n}",
    )


def _tridiagonal_bands(n: int, lower: float, diag: float, upper: float) -> np.ndarray:
    ab = np.zeros((3, n))
    ab[0, 1:] = upper
    ab[1, :] = diag
    ab[2, :-1] = lower
    return ab


def jacobi(n: int = 50, diag: float = 2.5) -> Problem:
    """
    Jacobi sweep for a diagonally dominant tridiagonal system A x = b.

    A = tridiag(-1, diag, -1), b = 1
    g(x) = (b + x_{i-1} + x_{i+1}) / diag

    Plain iteration contracts with rate ~ 2 cos(pi / (n+1)) / diag, which is
    slow for diag close to 2.
    """
    b = np.ones(n)
    x_ref = solve_banded((1, 1), _tridiagonal_bands(n, -1.0, diag, -1.0), b)

    def g(x):
        neighbours = np.zeros_like(x)
        neighbours[1:] += x[:-1]
        neighbours[:-1] += x[1:]
        return (b + neighbours) / diag

    return Problem(
        name="jacobi",
        g=g,
        x0=np.zeros(n),
        x_ref=x_ref,
        description=f"Jacobi iteration, tridiag(-1, {diag}, -1), n={n}",
    )


def collinear() -> Problem:
    """
    Nonlinear map acting along a single direction v.

    g(x) = v cos(v . x),  |v| = 1,  x* = v * 0.739085...

    Every residual is parallel to v, so the residual-delta history is
    rank one regardless of its width.
    """
    v = np.array([1.0, 2.0, 2.0]) / 3.0

    def g(x):
        return v * np.cos(v @ x)

    return Problem(
        name="collinear",
        g=g,
        x0=np.zeros(3),
        x_ref=v * DOTTIE,
        description="g(x) = v cos(v.x) on R^3 (rank-one history)",
    )


def bratu(n: int = 63, lam: float = 1.0) -> Problem:
    """
    Picard iteration for the 1-D Bratu problem.

    -u'' = lam * exp(u) on (0, 1),  u(0) = u(1) = 0
    g(u) = A^{-1} (lam * exp(u)),  A = tridiag(-1, 2, -1) / h^2

    Lower solution branch exists for lam < 3.51.
    """
    h = 1.0 / (n + 1)
    ab = _tridiagonal_bands(n, -1.0, 2.0, -1.0) / h ** 2

    def g(u):
        return solve_banded((1, 1), ab, lam * np.exp(u))

    return Problem(
        name="bratu",
        g=g,
        x0=np.zeros(n),
        x_ref=None,
        description=f"Bratu Picard iteration: lam={lam}, n={n}",
    )


def get_problem(name: str) -> Problem:
    """
    Get a benchmark problem by name.

    Parameters
    ----------
    name : str
        Problem name: halving, cosine, jacobi, collinear, bratu

    Returns
    -------
    problem : Problem
        The benchmark problem
    """
    problems = get_all_problems()

    if name not in problems:
        raise ValueError(f"Unknown problem: {name}. Available: {list(problems.keys())}")

    return problems[name]


def get_all_problems() -> dict:
    """Get all benchmark problems."""
    return {
        "halving": halving(),
        "cosine": cosine(),
        "jacobi": jacobi(),
        "collinear": collinear(),
        "bratu": bratu(),
    }
