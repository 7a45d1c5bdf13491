"""Sequence encoder and autoregressive decoder.

* :class:`BidirectionalEncoder` summarizes ``[B, T, D]`` sequences into
  latent means ``[B, Z]``.
* :class:`LSTMDecoder` unrolls a stacked LSTM conditioned on ``z`` and
  feeds each sampled step back in as the next input.  What a step
  "samples" is decided by its output head, fixed at load time:
  :class:`CategoricalHead` (argmax symbol) or :class:`NadeHead`
  (multi-hot vector from a :class:`~modules.nade.Nade`).
"""

from __future__ import annotations

from typing import Sequence, Union

import torch
import torch.nn as nn
import torch.nn.functional as F
from torch import Tensor

from .layers import AffineLayer, LSTMCell, LSTMState, StackedLSTM
from .nade import Nade


# ---------------------------------------------------------------------------
#  Encoder
# ---------------------------------------------------------------------------

class BidirectionalEncoder(nn.Module):
    """Forward + time-reversed LSTM pass, final hidden states → μ.

    Only the mean of the posterior is computed; inference never draws a
    reparameterized sample, so encoding is deterministic.
    """

    def __init__(self, fw_cell: LSTMCell, bw_cell: LSTMCell, mu: AffineLayer):
        super().__init__()
        if mu.in_features != fw_cell.hidden_size + bw_cell.hidden_size:
            raise ValueError(
                f"mu kernel expects {mu.in_features} inputs but the encoder "
                f"cells produce {fw_cell.hidden_size + bw_cell.hidden_size}"
            )
        self.fw_cell = fw_cell
        self.bw_cell = bw_cell
        self.mu = mu

    @property
    def z_dims(self) -> int:
        return self.mu.out_features

    @staticmethod
    def _run(cell: LSTMCell, sequence: Tensor, reverse: bool) -> LSTMState:
        batch_size, length, _ = sequence.shape
        state = cell.zero_state(batch_size)
        steps = range(length - 1, -1, -1) if reverse else range(length)
        for t in steps:
            state = cell(sequence[:, t, :], state)
        return state

    def forward(self, sequence: Tensor) -> Tensor:
        """
        Parameters
        ----------
        sequence : Tensor — ``[B, T, D]``

        Returns
        -------
        mu : Tensor — ``[B, Z]``
        """
        if sequence.ndim != 3:
            raise ValueError(
                f"Expected a [batch, time, depth] sequence, got shape "
                f"{tuple(sequence.shape)}"
            )
        fw_state = self._run(self.fw_cell, sequence, reverse=False)
        bw_state = self._run(self.bw_cell, sequence, reverse=True)
        final_state = torch.cat([fw_state.h, bw_state.h], dim=1)  # [B, 2H]
        return self.mu(final_state)


# ---------------------------------------------------------------------------
#  Output heads
# ---------------------------------------------------------------------------

class CategoricalHead(nn.Module):
    """Argmax over the projected logits; emits the symbol index."""

    step_width = 1
    output_dtype = torch.long

    def __init__(self, output_dims: int):
        super().__init__()
        self.output_dims = output_dims

    @property
    def logits_width(self) -> int:
        return self.output_dims

    def forward(self, logits: Tensor) -> tuple[Tensor, Tensor]:
        """logits: [B, output_dims] → (next_input [B, output_dims], labels [B, 1])"""
        labels = logits.argmax(dim=1)
        next_input = F.one_hot(labels, self.output_dims).to(logits.dtype)
        return next_input, labels.unsqueeze(1)


class NadeHead(nn.Module):
    """Splits the logits into NADE biases and samples a binary vector."""

    output_dtype = None  # follows the logits

    def __init__(self, nade: Nade):
        super().__init__()
        self.nade = nade

    @property
    def output_dims(self) -> int:
        return self.nade.num_dims

    @property
    def step_width(self) -> int:
        return self.nade.num_dims

    @property
    def logits_width(self) -> int:
        return self.nade.num_hidden + self.nade.num_dims

    def forward(self, logits: Tensor) -> tuple[Tensor, Tensor]:
        num_hidden = self.nade.num_hidden
        enc_bias = logits[:, :num_hidden]
        dec_bias = logits[:, num_hidden:num_hidden + self.nade.num_dims]
        samples = self.nade.sample(enc_bias, dec_bias)
        return samples, samples


OutputHead = Union[CategoricalHead, NadeHead]


# ---------------------------------------------------------------------------
#  Decoder
# ---------------------------------------------------------------------------

class LSTMDecoder(nn.Module):
    """Autoregressive stacked-LSTM decoder conditioned on ``z``.

    Parameters
    ----------
    cells : sequence of LSTMCell
        Decoder layers in stacking order.
    z_to_initial_state : AffineLayer
        ``z → [c_0, h_0, c_1, h_1, …]`` (followed by tanh).
    output_projection : AffineLayer
        Last hidden state → logits consumed by *head*.
    head : CategoricalHead | NadeHead
    """

    def __init__(
        self,
        cells: Sequence[LSTMCell],
        z_to_initial_state: AffineLayer,
        output_projection: AffineLayer,
        head: OutputHead,
    ):
        super().__init__()
        self.rnn = StackedLSTM(cells)
        self.z_to_initial_state = z_to_initial_state
        self.output_projection = output_projection
        self.head = head

        state_width = 2 * sum(self.rnn.state_sizes)
        if z_to_initial_state.out_features != state_width:
            raise ValueError(
                f"z_to_initial_state produces {z_to_initial_state.out_features} "
                f"values but the decoder cells need {state_width}"
            )
        step_input = head.output_dims + z_to_initial_state.in_features
        if self.rnn.cells[0].input_size != step_input:
            raise ValueError(
                f"First decoder cell expects {self.rnn.cells[0].input_size} "
                f"inputs, but [previous output, z] is {step_input} wide"
            )
        if output_projection.out_features < head.logits_width:
            raise ValueError(
                f"output_projection width {output_projection.out_features} is "
                f"smaller than the {head.logits_width} logits the head needs"
            )

    @property
    def z_dims(self) -> int:
        return self.z_to_initial_state.in_features

    @property
    def output_dims(self) -> int:
        return self.head.output_dims

    @property
    def num_layers(self) -> int:
        return len(self.rnn.cells)

    def initial_states(self, z: Tensor) -> list[LSTMState]:
        """Split ``tanh(z_to_initial_state(z))`` into per-layer (c, h)."""
        flat = torch.tanh(self.z_to_initial_state(z))
        states: list[LSTMState] = []
        offset = 0
        for width in self.rnn.state_sizes:
            c = flat[:, offset:offset + width]
            offset += width
            h = flat[:, offset:offset + width]
            offset += width
            states.append(LSTMState(c, h))
        return states

    def forward(self, z: Tensor, length: int) -> Tensor:
        """
        Parameters
        ----------
        z : Tensor — ``[B, Z]``
        length : int
            Number of steps to generate.

        Returns
        -------
        samples : Tensor — ``[B, length, 1]`` symbol indices (categorical
        head) or ``[B, length, num_dims]`` binary vectors (NADE head).
        """
        if length < 0:
            raise ValueError(f"length must be >= 0, got {length}")
        batch_size = z.shape[0]

        states = self.initial_states(z)
        next_input = z.new_zeros(batch_size, self.output_dims)

        samples: list[Tensor] = []
        for _ in range(length):
            states = self.rnn(torch.cat([next_input, z], dim=1), states)
            logits = self.output_projection(states[-1].h)
            next_input, step_samples = self.head(logits)
            samples.append(step_samples)

        if not samples:
            return torch.empty(
                batch_size, 0, self.head.step_width,
                dtype=self.head.output_dtype or z.dtype, device=z.device,
            )
        return torch.stack(samples, dim=1)
