"""Neural Autoregressive Distribution Estimator (NADE) output head.

Samples a ``num_dims``-wide binary vector one dimension at a time.
Each dimension is conditioned on the values already chosen for the
earlier dimensions through a shared hidden accumulator ``a``:

    h_i     = σ(a)
    p_i     = σ(dec_bias_i + h_i · W_dec_t[i])
    s_i     = 1[p_i ≥ 0.5]
    a      += s_i ⊗ W_enc[i]

The dimension order is the fixed checkpoint order.  Note the asymmetry:
the conditional logit reads the *decoder* row while the accumulator is
updated with the *encoder* row.
"""

from __future__ import annotations

import torch
import torch.nn as nn
from torch import Tensor


class Nade(nn.Module):
    """Stateless NADE weight holder with a deterministic sampler.

    Parameters
    ----------
    enc_weights : Tensor — ``[num_dims, 1, num_hidden]``
        Checkpoint ``w_enc``; a ``[num_dims, num_hidden]`` matrix is also
        accepted.
    dec_weights_t : Tensor — ``[num_dims, num_hidden, 1]``
        Checkpoint ``w_dec_t``; reshaped to ``[num_dims, num_hidden]``.
    """

    enc_weights: Tensor
    dec_weights_t: Tensor

    def __init__(self, enc_weights: Tensor, dec_weights_t: Tensor):
        super().__init__()
        self.num_dims = enc_weights.shape[0]
        self.num_hidden = enc_weights.shape[-1]

        expected = self.num_dims * self.num_hidden
        if enc_weights.numel() != expected or dec_weights_t.numel() != expected:
            raise ValueError(
                f"NADE weights {tuple(enc_weights.shape)} / "
                f"{tuple(dec_weights_t.shape)} do not both hold "
                f"[{self.num_dims}, {self.num_hidden}] values"
            )

        self.register_buffer(
            "enc_weights", enc_weights.reshape(self.num_dims, self.num_hidden)
        )
        self.register_buffer(
            "dec_weights_t", dec_weights_t.reshape(self.num_dims, self.num_hidden)
        )

    def sample(self, enc_bias: Tensor, dec_bias: Tensor) -> Tensor:
        """
        Parameters
        ----------
        enc_bias : Tensor — ``[B, num_hidden]``
        dec_bias : Tensor — ``[B, num_dims]``

        Returns
        -------
        samples : Tensor — ``[B, num_dims]`` with values in {0., 1.}
        """
        if enc_bias.shape[-1] != self.num_hidden:
            raise ValueError(
                f"enc_bias width {enc_bias.shape[-1]} != num_hidden {self.num_hidden}"
            )
        if dec_bias.shape[-1] != self.num_dims:
            raise ValueError(
                f"dec_bias width {dec_bias.shape[-1]} != num_dims {self.num_dims}"
            )

        samples: list[Tensor] = []
        a = enc_bias.clone()

        for i in range(self.num_dims):
            h = torch.sigmoid(a)                                   # [B, H]
            cond_logits = dec_bias[:, i] + h @ self.dec_weights_t[i]  # [B]
            cond_probs = torch.sigmoid(cond_logits)

            samples_i = (cond_probs >= 0.5).to(a.dtype)            # [B]
            if i < self.num_dims - 1:
                a = a + torch.outer(samples_i, self.enc_weights[i])

            samples.append(samples_i)

        return torch.stack(samples, dim=1)

    def forward(self, enc_bias: Tensor, dec_bias: Tensor) -> Tensor:
        return self.sample(enc_bias, dec_bias)
