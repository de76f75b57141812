"""Fixed-capacity history of (delta-x, delta-f) column pairs.

Columns are overwritten cyclically, so once more than ``m`` pairs have
been written the column order no longer follows the step order. Consumers
must treat the populated columns as an unordered set; only the pairing of
``delta_x[:, j]`` with ``delta_f[:, j]`` is meaningful.
"""

import numpy as np


class HistoryBuffer:
    """Ring buffer of the most recent ``m`` iterate/residual delta pairs.

    A pair is written in two halves: the iterate delta ``x_{k+1} - x_k`` is
    known at the end of step ``k``, the residual delta
    ``f(x_{k+1}) - f(x_k)`` only after ``g`` has been applied in step
    ``k + 1``. Columns are filled in index order, so the populated columns
    are always the first ``size`` ones.

    Args:
        n: Length of each column (flattened state dimension).
        m: Number of columns (history depth), at least 1.
        dtype: Element type of the stored deltas.
    """

    def __init__(self, n: int, m: int, dtype=np.float64):
        if m < 1:
            raise ValueError(f"HistoryBuffer needs m >= 1, got m = {m}.")
        self.delta_x = np.zeros((n, m), dtype=dtype)
        self.delta_f = np.zeros((n, m), dtype=dtype)
        self._col = 0
        self._size = 0

    @property
    def capacity(self) -> int:
        return self.delta_x.shape[1]

    @property
    def size(self) -> int:
        """Number of complete (delta-x, delta-f) pairs held."""
        return self._size

    @property
    def col(self) -> int:
        """Column that the next half-pair write goes to."""
        return self._col

    def record_first_delta(self, x: np.ndarray, xold: np.ndarray) -> None:
        """Start a fresh history with ``x_1 - x_0`` in column 0."""
        self._col = 0
        self._size = 0
        np.subtract(x, xold, out=self.delta_x[:, 0])

    def write_residual_delta(self, df: np.ndarray) -> None:
        """Complete the pair at the current column."""
        self.delta_f[:, self._col] = df
        self._size = min(self._size + 1, self.capacity)

    def advance(self) -> int:
        self._col = (self._col + 1) % self.capacity
        return self._col

    def write_iterate_delta(self, dx: np.ndarray) -> None:
        """Start the pair at the current column."""
        self.delta_x[:, self._col] = dx

    def write_column(self, col: int, dx: np.ndarray, df: np.ndarray) -> None:
        """Overwrite a full pair at ``col``."""
        if not 0 <= col < self.capacity:
            raise ValueError(
                f"col = {col} out of range for capacity {self.capacity}."
            )
        self.delta_x[:, col] = dx
        self.delta_f[:, col] = df
        self._size = max(self._size, col + 1)

    def columns(self):
        """Views of the populated ``(delta_x, delta_f)`` columns.

        Every returned pair is complete between ``write_residual_delta``
        and the following ``advance``.
        """
        p = self._size
        return self.delta_x[:, :p], self.delta_f[:, :p]
