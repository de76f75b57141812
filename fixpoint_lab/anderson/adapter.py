"""State adapters between a model's native state and the flat working vector.

The driver operates on one flat numeric vector. Everything model specific
(how the state is stored, how g is evaluated, what the residual norm means)
lives behind the StateAdapter interface:

  flatten(state)        -> vector aliasing the state's storage
  refresh(state)        recompute residual-dependent quantities
  residual_norm(state)  -> nonnegative float
  apply_map(state)      state <- g(state), visible through the vector

The driver always calls refresh before residual_norm and apply_map, and
mutates the flattened vector in place between calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Dict, Mapping, Optional

import numpy as np


# ---------------------------------------------------------------------------
# Adapter protocol
# ---------------------------------------------------------------------------

class StateAdapter(ABC):
    """Abstract base class for fixed-point state adapters."""

    @abstractmethod
    def flatten(self, state) -> np.ndarray:
        """Return a 1-D vector that aliases the state's storage."""

    @abstractmethod
    def refresh(self, state) -> None:
        """Recompute quantities that depend on the current state."""

    @abstractmethod
    def residual_norm(self, state) -> float:
        """Return the norm used for the convergence test."""

    @abstractmethod
    def apply_map(self, state) -> None:
        """Replace the state by one application of g."""


def _flat_view(array: np.ndarray) -> np.ndarray:
    """1-D view of ``array``; refuses to return a copy."""
    flat = array.reshape(-1)
    if array.size > 0 and not np.shares_memory(flat, array):
        raise ValueError(
            "State array must be viewable as a flat vector without copying "
            "so that the working vector aliases its storage."
        )
    return flat


# ---------------------------------------------------------------------------
# Plain numpy arrays
# ---------------------------------------------------------------------------

class ArrayStateAdapter(StateAdapter):
    """Adapter for a state that is a single numpy array.

    ``g`` is evaluated once per refresh; the cached value is reused by the
    following ``apply_map`` and by ``residual_norm``.

    Args:
        g: Map whose fixed point is sought. Receives the state array and
            returns an array of the same shape.
        norm: Norm applied to the residual g(x) - x. Defaults to the
            Euclidean norm of the flattened residual.
    """

    def __init__(
        self,
        g: Callable[[np.ndarray], np.ndarray],
        norm: Optional[Callable[[np.ndarray], float]] = None,
    ):
        self.g = g
        self.norm = norm
        self.n_evaluations = 0
        self._gx: Optional[np.ndarray] = None

    def flatten(self, state: np.ndarray) -> np.ndarray:
        return _flat_view(state)

    def refresh(self, state: np.ndarray) -> None:
        gx = np.asarray(self.g(state))
        if gx.shape != state.shape:
            raise ValueError(
                f"g returned shape {gx.shape}, expected {state.shape}."
            )
        self.n_evaluations += 1
        self._gx = gx

    def residual_norm(self, state: np.ndarray) -> float:
        if self._gx is None:
            self.refresh(state)
        residual = self._gx - state
        if self.norm is not None:
            return float(self.norm(residual))
        return float(np.linalg.norm(residual.ravel()))

    def apply_map(self, state: np.ndarray) -> None:
        if self._gx is None:
            self.refresh(state)
        state[...] = self._gx
        self._gx = None


# ---------------------------------------------------------------------------
# Multi-field states packed into one buffer
# ---------------------------------------------------------------------------

class PackedState:
    """Named numpy fields stored back to back in one flat buffer.

    Each field is a reshaped view into ``buffer``, so writing a field is
    visible through the buffer and vice versa.

    Args:
        fields: Mapping of field name to initial values. Values are copied.
        dtype: Common element type. Defaults to the result type of all fields.
    """

    def __init__(self, fields: Mapping[str, np.ndarray], dtype=None):
        arrays = {name: np.asarray(value) for name, value in fields.items()}
        if dtype is None:
            dtype = np.result_type(np.float64, *arrays.values()) if arrays else np.float64
        total = sum(a.size for a in arrays.values())
        self.buffer = np.empty(total, dtype=dtype)
        self.fields: Dict[str, np.ndarray] = {}
        offset = 0
        for name, a in arrays.items():
            view = self.buffer[offset:offset + a.size].reshape(a.shape)
            view[...] = a
            self.fields[name] = view
            offset += a.size

    def __getitem__(self, name: str) -> np.ndarray:
        return self.fields[name]

    def __len__(self) -> int:
        return self.buffer.size

    def as_dict(self) -> Dict[str, np.ndarray]:
        """Copies of all fields."""
        return {name: view.copy() for name, view in self.fields.items()}


class PackedStateAdapter(StateAdapter):
    """Adapter for PackedState, with g defined field by field.

    Args:
        g: Map from ``{name: array}`` to ``{name: array}`` with the same
            names and shapes.
        norm: Norm of the residual dictionary ``{name: g(x)[name] - x[name]}``.
            Defaults to the Euclidean norm over all fields.
    """

    def __init__(
        self,
        g: Callable[[Dict[str, np.ndarray]], Mapping[str, np.ndarray]],
        norm: Optional[Callable[[Dict[str, np.ndarray]], float]] = None,
    ):
        self.g = g
        self.norm = norm
        self.n_evaluations = 0
        self._gx: Optional[Dict[str, np.ndarray]] = None

    def flatten(self, state: PackedState) -> np.ndarray:
        return state.buffer

    def refresh(self, state: PackedState) -> None:
        gx = self.g(dict(state.fields))
        missing = set(state.fields) - set(gx)
        if missing:
            raise ValueError(f"g did not return fields: {sorted(missing)}")
        self.n_evaluations += 1
        self._gx = {name: np.asarray(gx[name]) for name in state.fields}

    def residual_norm(self, state: PackedState) -> float:
        if self._gx is None:
            self.refresh(state)
        residual = {
            name: self._gx[name] - view for name, view in state.fields.items()
        }
        if self.norm is not None:
            return float(self.norm(residual))
        total = sum(float(np.sum(np.abs(r) ** 2)) for r in residual.values())
        return float(np.sqrt(total))

    def apply_map(self, state: PackedState) -> None:
        if self._gx is None:
            self.refresh(state)
        for name, view in state.fields.items():
            view[...] = self._gx[name]
        self._gx = None
