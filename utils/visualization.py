"""Visualization utilities for decoded MusicVAE sequences.

Provides piano-roll style plots for:
  * A single decoded sequence (categorical labels or NADE multi-hot)
  * A batch of interpolated sequences (row for 2 anchors, grid for 4)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import numpy as np
import torch
from torch import Tensor

try:
    import matplotlib

    matplotlib.use("Agg")  # non-interactive backend
    import matplotlib.pyplot as plt
    from matplotlib.figure import Figure

    HAS_MPL = True
except ImportError:
    HAS_MPL = False


def _require_mpl() -> None:
    if not HAS_MPL:
        raise ImportError("matplotlib is required for visualization utilities.")


def to_roll(sequence: Tensor, output_dims: Optional[int] = None) -> np.ndarray:
    """Convert one decoded sequence to a ``[T, dims]`` 0/1 roll.

    ``[T, 1]`` symbol indices are expanded to one-hot rows of width
    *output_dims* (default: largest index + 1); ``[T, dims]`` multi-hot
    vectors are returned as they are.
    """
    sequence = sequence.detach().cpu()
    if sequence.ndim != 2:
        raise ValueError(f"Expected a [T, width] sequence, got {tuple(sequence.shape)}")

    if sequence.shape[1] == 1 and not sequence.is_floating_point():
        labels = sequence[:, 0].long()
        if output_dims is None:
            output_dims = int(labels.max().item()) + 1 if labels.numel() else 1
        return torch.nn.functional.one_hot(labels, output_dims).numpy()
    return sequence.float().numpy()


# ---------------------------------------------------------------------------
#  Single sequence
# ---------------------------------------------------------------------------

def plot_sequence(
    decoded: Tensor,
    output_dims: Optional[int] = None,
    title: str = "Decoded Sequence",
    save_path: Optional[str | Path] = None,
) -> "Figure":
    """Piano-roll heatmap of one decoded sequence.

    Parameters
    ----------
    decoded : Tensor — ``[T, width]`` or selects first batch element
        from ``[B, T, width]``.
    output_dims : int, optional
        Vocabulary size for categorical (``width == 1``) outputs.
    save_path : path, optional
        If given, saves the figure as PNG.
    """
    _require_mpl()
    if decoded.ndim == 3:
        decoded = decoded[0]
    roll = to_roll(decoded, output_dims)

    fig, ax = plt.subplots(figsize=(12, 4))
    ax.imshow(
        roll.T,
        aspect="auto",
        origin="lower",
        cmap="Greys",
        interpolation="nearest",
        vmin=0,
        vmax=1,
    )
    ax.set_xlabel("Step")
    ax.set_ylabel("Event index")
    ax.set_title(title)
    fig.tight_layout()
    if save_path:
        fig.savefig(str(save_path), dpi=150, bbox_inches="tight")
    return fig


# ---------------------------------------------------------------------------
#  Interpolation batch
# ---------------------------------------------------------------------------

def plot_interpolation(
    decoded: Tensor,
    num_steps: Optional[int] = None,
    output_dims: Optional[int] = None,
    title: str = "Latent Interpolation",
    save_path: Optional[str | Path] = None,
) -> "Figure":
    """One panel per decoded sequence of an interpolation batch.

    Parameters
    ----------
    decoded : Tensor — ``[N, T, width]``
        Output of :meth:`models.MusicVAE.interpolate`.
    num_steps : int, optional
        Steps per ramp.  ``N == num_steps ** 2`` lays the panels out as a
        ``num_steps × num_steps`` grid (bilinear); otherwise one row.
    """
    _require_mpl()
    if decoded.ndim != 3:
        raise ValueError(f"Expected [N, T, width], got {tuple(decoded.shape)}")
    n = decoded.shape[0]
    if n == 0:
        raise ValueError("Nothing to plot: empty batch")

    if output_dims is None and not decoded.is_floating_point() and decoded.numel():
        output_dims = int(decoded.max().item()) + 1

    if num_steps is not None and num_steps > 1 and n == num_steps * num_steps:
        rows, cols = num_steps, num_steps
    else:
        rows, cols = 1, n

    fig, axes = plt.subplots(
        rows, cols,
        figsize=(max(3 * cols, 4), max(2.5 * rows, 2.5)),
        squeeze=False,
    )
    for idx in range(rows * cols):
        ax = axes[idx // cols][idx % cols]
        roll = to_roll(decoded[idx], output_dims)
        ax.imshow(
            roll.T,
            aspect="auto",
            origin="lower",
            cmap="Greys",
            interpolation="nearest",
            vmin=0,
            vmax=1,
        )
        ax.set_xticks([])
        ax.set_yticks([])
        ax.set_title(f"{idx}", fontsize=8)
    fig.suptitle(title)
    fig.tight_layout()
    if save_path:
        fig.savefig(str(save_path), dpi=150, bbox_inches="tight")
    return fig
