"""Pytest fixtures for fixpoint-lab tests."""

import tempfile
from pathlib import Path

import numpy as np
import pytest

from fixpoint_lab.anderson.adapter import ArrayStateAdapter


class CountingAdapter(ArrayStateAdapter):
    """ArrayStateAdapter that also counts apply_map calls."""

    def __init__(self, g, norm=None):
        super().__init__(g, norm=norm)
        self.n_applications = 0

    def apply_map(self, state):
        self.n_applications += 1
        super().apply_map(state)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def counting_adapter():
    """Factory for adapters that count map applications."""
    return CountingAdapter


@pytest.fixture
def affine_map():
    """Affine contraction g(x) = A x + b on R^4 (spectral radius < 1)."""
    rng = np.random.default_rng(7)
    A = rng.standard_normal((4, 4))
    A *= 0.8 / np.max(np.abs(np.linalg.eigvals(A)))
    b = rng.standard_normal(4)

    def g(x):
        return A @ x + b

    return g
