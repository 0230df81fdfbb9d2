"""Profile log-density evaluation across (n, levels, backend) combinations.

Measures wall-clock time per evaluation of ``BernoulliModel.log_density_flat``
(and, on JAX, of the jitted density and its gradient) for a random
intercept + random slope model across a grid of sample sizes and group
counts.

Usage::

    python benchmarks/profile_log_density.py          # full grid
    python benchmarks/profile_log_density.py --quick  # reduced grid for smoke test

Outputs:
    benchmarks/results/log_density_profile.csv
"""

from __future__ import annotations

import argparse
import platform
import sys
import time
from pathlib import Path

import numpy as np
import pandas as pd

# Ensure the package is importable when running from the repo root.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from bernoulli_hglm import BernoulliData, BernoulliModel, Parameters  # noqa: E402
from bernoulli_hglm._backends._jax import _CAN_IMPORT_JAX  # noqa: E402

# ------------------------------------------------------------------ #
# Configuration
# ------------------------------------------------------------------ #

N_VALUES_FULL = [100, 1_000, 10_000, 100_000]
LEVELS_FULL = [5, 50, 500]

N_VALUES_QUICK = [100, 1_000]
LEVELS_QUICK = [5, 50]

K = 5
REPEATS = 20
SEED_BASE = 42

RESULTS_DIR = Path(__file__).resolve().parent / "results"


# ------------------------------------------------------------------ #
# Benchmark helpers
# ------------------------------------------------------------------ #


def _make_model(n: int, levels: int, seed: int, backend: str) -> tuple[BernoulliModel, np.ndarray]:
    """Simulate one dataset and return a bound model and a valid point."""
    rng = np.random.default_rng(seed)
    X = rng.standard_normal((n, K))
    groups = rng.integers(0, levels, n)
    y = (rng.random(n) < 0.4).astype(int)
    data = BernoulliData.from_frames(X, y, groups=groups, random_slopes=[0])

    start = Parameters.zeros(data)
    start = Parameters(
        **{
            **start.__dict__,
            "rho": np.full(data.layout.len_rho, 0.5),
            "zeta": np.ones(data.layout.len_concentration),
            "tau": np.ones(data.t),
        }
    )
    return BernoulliModel(data, backend=backend), start.to_flat(data)


def _time(fn, x: np.ndarray, repeats: int) -> float:
    """Median wall-clock seconds of *fn(x)* after one warm-up call."""
    fn(x)
    times = []
    for _ in range(repeats):
        t0 = time.perf_counter()
        out = fn(x)
        if hasattr(out, "block_until_ready"):
            out.block_until_ready()
        times.append(time.perf_counter() - t0)
    return float(np.median(times))


def _benchmark_one(n: int, levels: int, backend: str, seed: int) -> dict:
    """Run a single (n, levels, backend) benchmark and return metrics."""
    model, x = _make_model(n, levels, seed, backend)
    row = {
        "n": n,
        "levels": levels,
        "q": model.data.q,
        "n_parameters": model.n_parameters,
        "backend": backend,
        "density_s": _time(model.log_density_flat, x, REPEATS),
        "jit_density_s": np.nan,
        "grad_s": np.nan,
    }
    if backend == "jax":
        import jax

        jitted = jax.jit(model.log_density_flat)
        row["jit_density_s"] = _time(jitted, x, REPEATS)
        row["grad_s"] = _time(jax.jit(jax.grad(model.log_density_flat)), x, REPEATS)
    return row


def run_grid(n_values: list[int], level_values: list[int]) -> pd.DataFrame:
    """Run every grid cell on every available backend."""
    backends = ["numpy"] + (["jax"] if _CAN_IMPORT_JAX else [])
    rows = []
    for i, n in enumerate(n_values):
        for j, levels in enumerate(level_values):
            if levels > n:
                continue
            for backend in backends:
                row = _benchmark_one(n, levels, backend, SEED_BASE + 100 * i + j)
                print(
                    f"  n={n:>7,}  levels={levels:>4}  {backend:<5}  "
                    f"density={row['density_s'] * 1e3:8.3f} ms"
                )
                rows.append(row)
    return pd.DataFrame(rows)


# ------------------------------------------------------------------ #
# Main
# ------------------------------------------------------------------ #


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--quick", action="store_true", help="Reduced grid.")
    args = parser.parse_args()

    n_values = N_VALUES_QUICK if args.quick else N_VALUES_FULL
    level_values = LEVELS_QUICK if args.quick else LEVELS_FULL

    print(f"Python {platform.python_version()} on {platform.machine()}")
    df = run_grid(n_values, level_values)

    RESULTS_DIR.mkdir(parents=True, exist_ok=True)
    out = RESULTS_DIR / "log_density_profile.csv"
    df.to_csv(out, index=False)
    print(f"Wrote {out}")


if __name__ == "__main__":
    main()
