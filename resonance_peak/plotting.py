from __future__ import annotations
import io

import numpy as np
import matplotlib.pyplot as plt

from .sequence import LogicalSequence
from .validator import ValidationOutcome

__all__ = ["fig_to_png", "plot_sweep"]


def fig_to_png(fig):
    try:
        buf = io.BytesIO()
        fig.savefig(buf, format="png")
        return buf.getvalue()
    except Exception as e:
        print(f"Failed to generate PNG: {e}")
        return None


def plot_sweep(seq: LogicalSequence, outcome: ValidationOutcome,
               x: np.ndarray | None = None, title: str | None = None):
    """Phase-angle trace with segment joins and the validated peak marked."""

    ys = seq.values
    xs = np.arange(ys.size) if x is None else np.asarray(x, float)

    fig, ax = plt.subplots(figsize=(5, 2.5), dpi=150)
    ax.plot(xs, ys, color="tab:blue", linewidth=1)
    for seg_id in range(1, seq.segment_count):
        join = seq.segment_start(seg_id)
        if 0 < join < ys.size:
            ax.axvline(xs[join], color="0.6", linestyle=":", linewidth=1)

    if outcome.logical_index is not None:
        idx = outcome.logical_index
        color = "tab:red" if outcome.accepted else "tab:gray"
        ax.axvline(xs[idx], color=color, linestyle="--", linewidth=1)
        if outcome.accepted and outcome.prominence is not None:
            half = ys[idx] - outcome.prominence / 2.0
            ax.axhline(half, color="tab:green", linestyle=":", linewidth=1)

    if title:
        ax.set_title(title)
    ax.set_xlabel("Sample" if x is None else "Frequency")
    ax.set_ylabel("Phase angle")
    fig.tight_layout()
    return fig
