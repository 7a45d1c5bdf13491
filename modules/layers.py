"""Weight-bound building blocks: affine layer and LSTM cells.

All modules here are constructed from pretrained checkpoint arrays and
hold them as buffers, so they follow ``.to(device)`` but never appear
as trainable parameters.  The LSTM reproduces the gate layout of the
checkpoints (TensorFlow ``BasicLSTMCell``):

    gates = [x, h] · K + b          K: [D + H, 4H]
    i, j, f, o = split(gates, 4)    input, new, forget, output
    c' = c · σ(f + forget_bias) + σ(i) · tanh(j)
    h' = tanh(c') · σ(o)

The chunk order and the additive forget bias are dictated by the
weight layout.
"""

from __future__ import annotations

from typing import NamedTuple, Sequence

import torch
import torch.nn as nn
from torch import Tensor

FORGET_BIAS = 1.0


# ---------------------------------------------------------------------------
#  Affine layer
# ---------------------------------------------------------------------------

class AffineLayer(nn.Module):
    """``y = x · kernel + bias`` with a fixed ``[in, out]`` kernel.

    Parameters
    ----------
    kernel : Tensor — ``[in_features, out_features]``
    bias : Tensor — ``[out_features]``
    """

    kernel: Tensor
    bias: Tensor

    def __init__(self, kernel: Tensor, bias: Tensor):
        super().__init__()
        if kernel.ndim != 2 or bias.ndim != 1:
            raise ValueError(
                f"Expected 2-D kernel and 1-D bias, got shapes "
                f"{tuple(kernel.shape)} and {tuple(bias.shape)}"
            )
        if kernel.shape[1] != bias.shape[0]:
            raise ValueError(
                f"Kernel output width {kernel.shape[1]} does not match "
                f"bias width {bias.shape[0]}"
            )
        self.register_buffer("kernel", kernel)
        self.register_buffer("bias", bias)

    @property
    def in_features(self) -> int:
        return self.kernel.shape[0]

    @property
    def out_features(self) -> int:
        return self.bias.shape[0]

    def forward(self, x: Tensor) -> Tensor:
        """x: [B, in_features] → [B, out_features]"""
        if x.shape[-1] != self.in_features:
            raise ValueError(
                f"Input width {x.shape[-1]} does not match kernel "
                f"input width {self.in_features}"
            )
        return torch.addmm(self.bias, x, self.kernel)


# ---------------------------------------------------------------------------
#  LSTM
# ---------------------------------------------------------------------------

class LSTMState(NamedTuple):
    c: Tensor  # [B, H]
    h: Tensor  # [B, H]


class LSTMCell(nn.Module):
    """Single LSTM cell bound to a ``[D + H, 4H]`` kernel."""

    def __init__(self, kernel: Tensor, bias: Tensor, forget_bias: float = FORGET_BIAS):
        super().__init__()
        if bias.shape[0] % 4 != 0:
            raise ValueError(
                f"LSTM bias width {bias.shape[0]} is not a multiple of 4"
            )
        self.projection = AffineLayer(kernel, bias)
        self.hidden_size = bias.shape[0] // 4
        self.forget_bias = forget_bias

    @property
    def input_size(self) -> int:
        return self.projection.in_features - self.hidden_size

    def zero_state(self, batch_size: int) -> LSTMState:
        kernel = self.projection.kernel
        zeros = kernel.new_zeros(batch_size, self.hidden_size)
        return LSTMState(zeros, zeros.clone())

    def forward(self, x: Tensor, state: LSTMState) -> LSTMState:
        gates = self.projection(torch.cat([x, state.h], dim=1))
        i, j, f, o = torch.chunk(gates, 4, dim=1)

        c = state.c * torch.sigmoid(f + self.forget_bias) + torch.sigmoid(i) * torch.tanh(j)
        h = torch.tanh(c) * torch.sigmoid(o)
        return LSTMState(c, h)


class StackedLSTM(nn.Module):
    """Multi-layer LSTM advanced one time step at a time.

    Layer 0 consumes the step input; every later layer consumes the new
    hidden state of the layer below it.
    """

    def __init__(self, cells: Sequence[LSTMCell]):
        super().__init__()
        if not cells:
            raise ValueError("StackedLSTM needs at least one cell")
        self.cells = nn.ModuleList(cells)

    @property
    def state_sizes(self) -> list[int]:
        return [cell.hidden_size for cell in self.cells]

    def forward(self, x: Tensor, states: Sequence[LSTMState]) -> list[LSTMState]:
        if len(states) != len(self.cells):
            raise ValueError(
                f"Got {len(states)} states for {len(self.cells)} layers"
            )
        new_states: list[LSTMState] = []
        layer_input = x
        for cell, state in zip(self.cells, states):
            new_state = cell(layer_input, state)
            new_states.append(new_state)
            layer_input = new_state.h
        return new_states
