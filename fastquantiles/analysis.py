"""Inspecting what a sketch retained.

``samples_frame`` lays the retained samples out as a table, one row per
sample with its rank bounds. ``plot_rank_bounds`` draws the same bounds,
which makes it easy to see where a sketch is uncertain.

Example:
    from fastquantiles.analysis import samples_frame, plot_rank_bounds

    df = samples_frame(sketch)
    print(df.tail())
    plot_rank_bounds(sketch, "output/rank_bounds.png")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pandas as pd

from fastquantiles.sketching.node_iterator import NodeIterator

if TYPE_CHECKING:
    from pathlib import Path

    from fastquantiles.sketching.sketch import Sketch

COLUMNS = ["value", "g", "delta", "rmin", "rmax"]


def samples_frame(sketch: Sketch) -> pd.DataFrame:
    """Retained samples of a sketch in ascending order.

    Columns:
        value: Retained value.
        g: Ranks covered since the previous sample.
        delta: Extra rank uncertainty.
        rmin: Lower bound on the value's rank (running sum of g).
        rmax: Upper bound on the value's rank (rmin + delta).

    Returns:
        A DataFrame with one row per retained sample (no rows when empty).
    """
    rows = []
    rmin = 0
    for sample in NodeIterator(sketch.root):
        rmin += sample.g
        rows.append((sample.value, sample.g, sample.delta, rmin, rmin + sample.delta))
    return pd.DataFrame(rows, columns=COLUMNS)


def plot_rank_bounds(sketch: Sketch, path: str | Path | None = None):
    """Plot rmin and rmax of every retained sample against its value.

    The band between the two curves is the rank uncertainty; its height
    never exceeds ``2 * epsilon * count``.

    Args:
        sketch: Sketch to draw.
        path: If given, the figure is written there and closed.

    Returns:
        The matplotlib Figure.
    """
    import matplotlib.pyplot as plt

    df = samples_frame(sketch)

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.fill_between(df["value"], df["rmin"], df["rmax"], step="post", alpha=0.3, label="rank band")
    ax.plot(df["value"], df["rmin"], drawstyle="steps-post", color="steelblue", label="rmin")
    ax.plot(df["value"], df["rmax"], drawstyle="steps-post", color="darkorange", label="rmax")
    ax.set_xlabel("Value")
    ax.set_ylabel("Rank")
    ax.set_title(
        f"Rank bounds (epsilon={sketch.epsilon}, count={sketch.count}, "
        f"samples={len(df)})"
    )
    ax.legend()
    ax.grid(True, alpha=0.3)
    fig.tight_layout()

    if path is not None:
        fig.savefig(path, dpi=150)
        plt.close(fig)
    return fig
