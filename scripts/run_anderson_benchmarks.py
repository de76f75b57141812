#!/usr/bin/env python3
"""Run Anderson acceleration benchmarks.

For every benchmark problem, solves g(x) = x with a sweep of history depths
m and records iteration counts, residual traces, wall time, and the error
against the known fixed point where one exists.

Usage:
  python scripts/run_anderson_benchmarks.py
  python scripts/run_anderson_benchmarks.py --problem jacobi bratu --depths 0 1 3 5
  python scripts/run_anderson_benchmarks.py --plot
"""

import argparse
import json
import sys
import time
import warnings
from dataclasses import dataclass, field, asdict
from pathlib import Path

import numpy as np

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fixpoint_lab.anderson import (
    AndersonConvergenceWarning,
    AndersonSolver,
    get_all_problems,
    write_json,
)


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------

@dataclass
class DepthSweepResult:
    problem: str
    m: int
    iterations: int
    converged: bool
    residual_norm: float
    initial_residual_norm: float
    wall_time_us: float
    mean_contraction: float = np.nan
    error_vs_ref: float = np.nan
    residual_history: list = field(default_factory=list)

    def to_dict(self):
        d = {}
        for k, v in asdict(self).items():
            if isinstance(v, float) and (np.isnan(v) or np.isinf(v)):
                d[k] = str(v)
            else:
                d[k] = v
        return d


@dataclass
class BenchmarkSuite:
    name: str
    timestamp: str = ""
    results: list = field(default_factory=list)
    summary: dict = field(default_factory=dict)

    def save(self, path: Path):
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "name": self.name,
            "timestamp": self.timestamp,
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary,
        }
        with open(path, "w") as f:
            json.dump(data, f, indent=2, default=str)


# ---------------------------------------------------------------------------
# Depth sweep
# ---------------------------------------------------------------------------

def run_depth_sweep(problem_names, depths, rtol, atol, maxit, output_dir):
    suite = BenchmarkSuite(
        name="depth_sweep",
        timestamp=time.strftime("%Y-%m-%dT%H:%M:%S"),
    )
    problems = get_all_problems()

    for name in problem_names:
        problem = problems[name]
        print(f"\n{name}: {problem.description}")
        for m in depths:
            if m > problem.x0.size:
                print(f"  m={m:2d}: skipped (n = {problem.x0.size})")
                continue

            solver = AndersonSolver(m=m, rtol=rtol, atol=atol, maxit=maxit)
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", AndersonConvergenceWarning)
                solution = solver.solve_problem(problem)

            write_json(solution, output_dir / "solutions" / f"{name}_m{m}.json")

            result = DepthSweepResult(
                problem=name,
                m=m,
                iterations=solution.iterations,
                converged=solution.converged,
                residual_norm=solution.residual_norm,
                initial_residual_norm=solution.initial_residual_norm,
                wall_time_us=solution.wall_time_us,
                mean_contraction=solution.metadata["mean_contraction"],
                error_vs_ref=solution.metadata.get("error_vs_ref", np.nan),
                residual_history=[float(r) for r in solution.residual_history],
            )
            suite.results.append(result)

            status = "OK" if solution.converged else "MAXIT"
            print(
                f"  m={m:2d}: k={solution.iterations:4d}  "
                f"‖leq‖={solution.residual_norm:.2e}  "
                f"rate={result.mean_contraction:.3f}  [{status}]"
            )

    for name in problem_names:
        runs = [r for r in suite.results if r.problem == name and r.converged]
        if runs:
            best = min(runs, key=lambda r: r.iterations)
            suite.summary[name] = {"best_m": best.m, "iterations": best.iterations}

    suite.save(output_dir / "depth_sweep.json")
    return suite


def plot_residual_traces(suite, output_dir):
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    for name in sorted({r.problem for r in suite.results}):
        fig, ax = plt.subplots(figsize=(5, 3.5))
        for r in suite.results:
            if r.problem != name:
                continue
            ax.semilogy(range(len(r.residual_history)), r.residual_history,
                        marker="o", markersize=2, label=f"m = {r.m}")
        ax.set_xlabel("iteration k")
        ax.set_ylabel("‖leq‖")
        ax.set_title(name)
        ax.legend()
        fig.tight_layout()
        fig.savefig(output_dir / f"{name}_residuals.png", dpi=150)
        plt.close(fig)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    problem_names = list(get_all_problems().keys())

    parser = argparse.ArgumentParser(
        description="Run Anderson acceleration benchmarks",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("./artifacts/anderson_benchmarks"),
        help="Base output directory",
    )
    parser.add_argument(
        "--problem",
        nargs="+",
        choices=problem_names + ["all"],
        default=["all"],
        help="Which problems to run",
    )
    parser.add_argument(
        "--depths",
        nargs="+",
        type=int,
        default=[0, 1, 2, 3, 5],
        help="History depths m to sweep",
    )
    parser.add_argument("--rtol", type=float, default=0.0)
    parser.add_argument("--atol", type=float, default=1e-10)
    parser.add_argument("--maxit", type=int, default=500)
    parser.add_argument(
        "--plot",
        action="store_true",
        help="Save residual trace plots (requires matplotlib)",
    )
    args = parser.parse_args()

    if "all" in args.problem:
        selected = problem_names
    else:
        selected = args.problem

    print("=" * 70)
    print("Anderson Acceleration Benchmarks")
    print("=" * 70)
    print(f"Output:   {args.output_dir}")
    print(f"Problems: {', '.join(selected)}")
    print(f"Depths:   {', '.join(str(m) for m in args.depths)}")
    print("=" * 70)

    args.output_dir.mkdir(parents=True, exist_ok=True)

    suite = run_depth_sweep(
        selected, args.depths, args.rtol, args.atol, args.maxit, args.output_dir,
    )

    if args.plot:
        plot_residual_traces(suite, args.output_dir)

    print("\n" + "=" * 70)
    for name, best in suite.summary.items():
        print(f"  {name}: best m = {best['best_m']} ({best['iterations']} iterations)")
    print(f"\nResults saved to: {args.output_dir}")


if __name__ == "__main__":
    main()
