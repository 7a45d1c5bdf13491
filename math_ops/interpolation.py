"""Closed-form latent-space grids.

Given the latent means of 2 or 4 reference sequences, build the batch
of latent points that is decoded by :meth:`models.MusicVAE.interpolate`.

* Linear (2 anchors):   ``z(t) = z0 + t (z1 - z0)``,  t ∈ linspace(0, 1)
* Bilinear (4 anchors): ``z(r, c) = z0 (1-r)(1-c) + z1 r (1-c)
  + z2 (1-r) c + z3 r c``, flattened row-major (r outer, c inner).

Both grids reproduce their anchors **exactly** at the ramp endpoints,
which the tests check with :func:`torch.equal`.
"""

from __future__ import annotations

import torch
from torch import Tensor


def _ramp(num_steps: int, like: Tensor) -> Tensor:
    if num_steps < 1:
        raise ValueError(f"num_steps must be >= 1, got {num_steps}")
    return torch.linspace(0.0, 1.0, num_steps, dtype=like.dtype, device=like.device)


def linear_grid(z0: Tensor, z1: Tensor, num_steps: int) -> Tensor:
    """Linear interpolation between two latent vectors.

    Parameters
    ----------
    z0, z1 : Tensor — ``[Z]``
    num_steps : int

    Returns
    -------
    grid : Tensor — ``[num_steps, Z]``
    """
    t = _ramp(num_steps, z0).unsqueeze(1)  # [S, 1]
    # torch.lerp evaluates the t >= 0.5 half from the `end` side, so
    # t == 1 returns z1 bit-for-bit.
    return torch.lerp(z0.unsqueeze(0), z1.unsqueeze(0), t)


def bilinear_grid(
    z0: Tensor,
    z1: Tensor,
    z2: Tensor,
    z3: Tensor,
    num_steps: int,
) -> Tensor:
    """Bilinear blend of four corner latents on a ``num_steps × num_steps`` grid.

    Parameters
    ----------
    z0, z1, z2, z3 : Tensor — ``[Z]``
        Corners at (r, c) = (0, 0), (1, 0), (0, 1), (1, 1).
    num_steps : int

    Returns
    -------
    grid : Tensor — ``[num_steps ** 2, Z]``
    """
    ramp = _ramp(num_steps, z0)
    rev = 1.0 - ramp

    # [S, S, 1] weights; first axis is r, second is c
    w0 = torch.outer(rev, rev).unsqueeze(-1)
    w1 = torch.outer(ramp, rev).unsqueeze(-1)
    w2 = torch.outer(rev, ramp).unsqueeze(-1)
    w3 = torch.outer(ramp, ramp).unsqueeze(-1)

    grid = z0 * w0 + z1 * w1 + z2 * w2 + z3 * w3  # [S, S, Z]
    return grid.reshape(num_steps * num_steps, z0.shape[-1])
