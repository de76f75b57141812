"""Output writers for Anderson solutions.

HDF5 for the iterate and residual trace, JSON for diagnostics.
"""

import json
from pathlib import Path
from typing import Union

import h5py
import numpy as np

from .solver import AndersonSolution


def write_h5(
    solution: AndersonSolution,
    output_path: Union[str, Path],
    group: str = "anderson",
) -> Path:
    """Write an Anderson solution to HDF5.

    Layout::

        <group>/X                  final iterate
        <group>/RESIDUAL_HISTORY   residual norm per step
        <group>/diagnostics/...    scalar diagnostics

    Args:
        solution: Solution to write.
        output_path: Path for output HDF5 file.
        group: Name of the top-level group.

    Returns:
        Path to created HDF5 file.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with h5py.File(output_path, "w") as f:
        grp = f.create_group(group)
        grp.create_dataset("X", data=solution.x)
        grp.create_dataset(
            "RESIDUAL_HISTORY",
            data=np.asarray(solution.residual_history, dtype=np.float64),
        )

        diag_grp = grp.create_group("diagnostics")
        diag_grp.create_dataset("ITERATIONS", data=solution.iterations)
        diag_grp.create_dataset("RESIDUAL_NORM", data=solution.residual_norm)
        diag_grp.create_dataset(
            "INITIAL_RESIDUAL_NORM", data=solution.initial_residual_norm
        )
        diag_grp.create_dataset("TOLERANCE", data=solution.tolerance)
        diag_grp.create_dataset("CONVERGED", data=int(solution.converged))
        diag_grp.create_dataset("WALL_TIME_US", data=solution.wall_time_us)

        for key, value in solution.metadata.items():
            if np.isscalar(value):
                diag_grp.attrs[key] = value

    return output_path


def write_json(
    solution: AndersonSolution,
    output_path: Union[str, Path],
    include_x: bool = True,
) -> Path:
    """Write an Anderson solution as JSON with full diagnostics.

    Args:
        solution: Solution to write.
        output_path: Path for output JSON file.
        include_x: Whether to include the final iterate.

    Returns:
        Path to created JSON file.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    data = solution.to_dict()
    if include_x:
        data["x"] = solution.x.tolist()
    data["metadata"] = {
        k: (float(v) if isinstance(v, np.floating) else v)
        for k, v in solution.metadata.items()
        if not isinstance(v, np.ndarray)
    }

    with open(output_path, "w") as f:
        json.dump(data, f, indent=2, default=str)

    return output_path
