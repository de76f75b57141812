"""Anderson-accelerated fixed-point iteration.

Solves g(x) = x by mixing a bounded window of past iterates and residuals
into each fixed-point step (Anderson acceleration), halting once a
residual norm falls below max(rtol * ||leq_0||, atol).

Key Features:
- In-place iteration on a caller-owned state through a StateAdapter
- Cyclic (ring buffer) history of depth m; m = 0 is plain iteration
- Mixing coefficients from a column-pivoted QR least-squares solve,
  robust to rank-deficient history
- Non-convergence reported via AndersonConvergenceWarning, never raised
"""

# Core iteration
from .driver import anderson_solve
from .history import HistoryBuffer
from .mixing import MixingSolver, anderson_update

# State adapters
from .adapter import (
    StateAdapter,
    ArrayStateAdapter,
    PackedState,
    PackedStateAdapter,
)

# Convergence control
from .convergence import (
    AndersonConvergenceWarning,
    DEFAULT_DEPTH,
    DEFAULT_RTOL,
    DEFAULT_ATOL,
    contraction_factors,
    mean_contraction,
    residual_tolerance,
)

# Solver API
from .solver import AndersonSolver, AndersonSolution
from .problems import get_problem, get_all_problems, Problem
from .output import write_h5, write_json

__all__ = [
    # Core iteration
    "anderson_solve",
    "HistoryBuffer",
    "MixingSolver",
    "anderson_update",
    # State adapters
    "StateAdapter",
    "ArrayStateAdapter",
    "PackedState",
    "PackedStateAdapter",
    # Convergence control
    "AndersonConvergenceWarning",
    "DEFAULT_DEPTH",
    "DEFAULT_RTOL",
    "DEFAULT_ATOL",
    "contraction_factors",
    "mean_contraction",
    "residual_tolerance",
    # Solver API
    "AndersonSolver",
    "AndersonSolution",
    # Benchmark problems
    "get_problem",
    "get_all_problems",
    "Problem",
    # Output
    "write_h5",
    "write_json",
]
