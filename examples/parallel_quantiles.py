"""Parallel quantile estimation with per-worker sketches.

This example shows:
1. Sharding a stream across worker threads, each with its own sketch
2. Combining the shards with a balanced pairwise merge
3. Checking every answer against the exact sorted stream
4. Visualization of the observed rank error per quantile and the rank bounds

## Data Flow

```
values --shard--> worker 0: Sketch.record ...
               -> worker 1: Sketch.record ...     merge_all
               -> ...                         -->  (pairwise)  --> quantile(phi)
               -> worker k: Sketch.record ...
```

Sketches are single-writer: each worker owns one, and the merge happens
only after every worker has finished.
"""

from __future__ import annotations

import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import fastquantiles
from fastquantiles import Sketch, merge_all
from fastquantiles.analysis import plot_rank_bounds
from fastquantiles.sketching import target_rank
from fastquantiles.sketching.invariants import rank_error

PHIS = [0.0, 0.01, 0.05, 0.1, 0.25, 0.5, 0.75, 0.9, 0.95, 0.99, 0.999, 1.0]


# =============================================================================
# Workload
# =============================================================================


def make_stream(n: int, distribution: str, seed: int) -> list[float]:
    """Generate the values to summarize."""
    rng = random.Random(seed)
    if distribution == "uniform":
        return [rng.random() for _ in range(n)]
    if distribution == "lognormal":
        return [rng.lognormvariate(0.0, 1.0) for _ in range(n)]
    if distribution == "sorted":
        return [float(i) for i in range(n)]
    if distribution == "duplicates":
        return [float(rng.randint(0, 20)) for _ in range(n)]
    raise ValueError(f"Unknown distribution {distribution!r}")


def build_shard(values: list[float], epsilon: float) -> Sketch[float]:
    sketch: Sketch[float] = Sketch(epsilon)
    sketch.record_many(values)
    return sketch


# =============================================================================
# Run
# =============================================================================


@dataclass
class QuantileCheck:
    phi: float
    value: float
    reported_error: float
    rank_error: float


@dataclass
class RunResult:
    epsilon: float
    workers: int
    count: int
    samples: int
    sketch: Sketch[float]
    checks: list[QuantileCheck] = field(default_factory=list)


def run_parallel(
    values: list[float], epsilon: float, workers: int, phis: list[float] = PHIS
) -> RunResult:
    """Build one sketch per worker, merge them and verify the answers."""
    shards = [values[i::workers] for i in range(workers)]
    with ThreadPoolExecutor(max_workers=workers) as pool:
        sketches = list(pool.map(build_shard, shards, [epsilon] * workers))

    combined = merge_all(sketches)
    exact = sorted(values)
    n = len(exact)

    result = RunResult(
        epsilon=combined.epsilon,
        workers=workers,
        count=combined.count,
        samples=combined.sample_count,
        sketch=combined,
    )
    for phi in phis:
        value, reported = combined.quantile(phi)
        distance = rank_error(exact, value, target_rank(phi, n))
        result.checks.append(QuantileCheck(phi, value, reported, distance / n))
    return result


def print_summary(result: RunResult) -> None:
    print("\n" + "=" * 70)
    print(
        f"Workers={result.workers}  epsilon={result.epsilon}  "
        f"count={result.count}  samples={result.samples}"
    )
    print("=" * 70)
    print(f"  {'phi':>6}  {'value':>14}  {'reported':>9}  {'observed':>9}")
    for check in result.checks:
        flag = "" if check.rank_error <= result.epsilon else "  <-- out of bounds"
        print(
            f"  {check.phi:>6.3f}  {check.value:>14.6f}  "
            f"{check.reported_error:>9.5f}  {check.rank_error:>9.5f}{flag}"
        )
    worst = max(check.rank_error for check in result.checks)
    print(f"\n  Worst observed rank error: {worst:.5f} (bound {result.epsilon})")


# =============================================================================
# Visualization
# =============================================================================


def visualize_results(result: RunResult, output_dir: Path) -> None:
    """Plot observed rank error per quantile and the merged rank bounds."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    output_dir.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(8, 4))
    phis = [check.phi for check in result.checks]
    ax.plot(phis, [check.rank_error for check in result.checks], "o-", label="observed")
    ax.plot(phis, [check.reported_error for check in result.checks], "s--", label="reported")
    ax.axhline(result.epsilon, color="red", linestyle=":", label="epsilon")
    ax.set_xlabel("phi")
    ax.set_ylabel("Rank error (fraction of n)")
    ax.set_title(f"Merged sketch of {result.workers} workers")
    ax.legend()
    ax.grid(True, alpha=0.3)
    fig.tight_layout()

    path = output_dir / "rank_error.png"
    fig.savefig(path, dpi=150)
    plt.close(fig)
    print(f"Saved: {path}")

    bounds_path = output_dir / "rank_bounds.png"
    plot_rank_bounds(result.sketch, bounds_path)
    print(f"Saved: {bounds_path}")


# =============================================================================
# Entry Point
# =============================================================================


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Parallel quantile sketch demo")
    parser.add_argument("--count", type=int, default=200_000)
    parser.add_argument("--epsilon", type=float, default=0.001)
    parser.add_argument("--workers", type=int, default=4)
    parser.add_argument(
        "--distribution",
        choices=["uniform", "lognormal", "sorted", "duplicates"],
        default="lognormal",
    )
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--output", type=str, default="output/parallel_quantiles")
    parser.add_argument("--no-viz", action="store_true")
    args = parser.parse_args()

    fastquantiles.configure_from_env()

    print(f"Sketching {args.count} {args.distribution} values on {args.workers} workers...")
    values = make_stream(args.count, args.distribution, args.seed)
    result = run_parallel(values, args.epsilon, args.workers)
    print_summary(result)

    if not args.no_viz:
        visualize_results(result, Path(args.output))
