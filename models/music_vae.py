"""MusicVAE inference model.

Ties the checkpoint-bound encoder and decoder together:

* :meth:`MusicVAE.encode`: sequences → latent means,
* :meth:`MusicVAE.decode`: latents → generated sequences,
* :meth:`MusicVAE.sample`: decode latents drawn from N(0, I),
* :meth:`MusicVAE.interpolate`: decode a linear (2 anchors) or bilinear
  (4 anchors) grid between encoded reference sequences.

Every inference call runs under :func:`torch.inference_mode`; the
intermediate tensors of the recurrent loops are released when the call
returns and only its result escapes.

Usage
-----
>>> vae = MusicVAE("checkpoints/mel_2bar.pt").initialize()
>>> samples = vae.sample(num_samples=4, num_steps=32)   # [4, 32, 1]
>>> vae.dispose()
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import torch
from torch import Tensor

from math_ops.interpolation import bilinear_grid, linear_grid
from modules.sequence import BidirectionalEncoder, LSTMDecoder, NadeHead
from utils.io import load_tensor_dict

from .checkpoint import as_tensor_store, bind_model

log = logging.getLogger(__name__)

CheckpointSource = Union[str, Path, Mapping[str, Any]]


class MusicVAE:
    """Pretrained MusicVAE bound to a checkpoint.

    Parameters
    ----------
    checkpoint : str | Path | Mapping[str, array]
        Path of a checkpoint file (see :func:`utils.io.load_tensor_dict`)
        or an already loaded ``{variable name: array}`` store.
    device : str | torch.device, optional
        Where weights live and computation runs (default CPU).
    """

    def __init__(
        self,
        checkpoint: CheckpointSource,
        device: Optional[Union[str, torch.device]] = None,
    ):
        self.checkpoint: Optional[CheckpointSource] = checkpoint
        self.device = torch.device(device) if device is not None else torch.device("cpu")
        self.encoder: Optional[BidirectionalEncoder] = None
        self.decoder: Optional[LSTMDecoder] = None
        self.raw_vars: dict[str, Tensor] = {}
        self._disposed = False

    # ------------------------------------------------------------------
    #  Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> "MusicVAE":
        """Load the checkpoint and bind it into the encoder / decoder."""
        if self._disposed:
            raise RuntimeError("MusicVAE has been disposed and cannot be re-initialized")

        if isinstance(self.checkpoint, Mapping):
            weights = as_tensor_store(self.checkpoint)
            source = "<in-memory store>"
        else:
            weights = as_tensor_store(
                load_tensor_dict(self.checkpoint, map_location=self.device)
            )
            source = str(self.checkpoint)

        encoder, decoder = bind_model(weights)
        self.encoder = encoder.to(self.device).eval()
        self.decoder = decoder.to(self.device).eval()
        self.raw_vars = weights

        log.info(
            f"Loaded MusicVAE from {source}: z_dims={self.z_dims}, "
            f"decoder_layers={self.decoder.num_layers}, "
            f"head={'nade' if self.uses_nade else 'categorical'}, "
            f"output_dims={self.output_dims}"
        )
        return self

    def is_initialized(self) -> bool:
        return self.encoder is not None and self.decoder is not None

    def dispose(self) -> None:
        """Release all weights; the instance rejects inference afterwards."""
        if self._disposed:
            return
        self.raw_vars.clear()
        self.checkpoint = None
        self.encoder = None
        self.decoder = None
        self._disposed = True
        log.info("Disposed MusicVAE weights")

    def __enter__(self) -> "MusicVAE":
        if not self.is_initialized():
            self.initialize()
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    def _require_initialized(self) -> None:
        if self._disposed:
            raise RuntimeError("MusicVAE has been disposed")
        if not self.is_initialized():
            raise RuntimeError("MusicVAE is not initialized; call initialize() first")

    # ------------------------------------------------------------------
    #  Properties
    # ------------------------------------------------------------------

    @property
    def z_dims(self) -> int:
        self._require_initialized()
        return self.decoder.z_dims

    @property
    def output_dims(self) -> int:
        self._require_initialized()
        return self.decoder.output_dims

    @property
    def uses_nade(self) -> bool:
        self._require_initialized()
        return isinstance(self.decoder.head, NadeHead)

    def _as_input(self, data: Any) -> Tensor:
        return torch.as_tensor(data, dtype=torch.float32, device=self.device)

    # ------------------------------------------------------------------
    #  Inference
    # ------------------------------------------------------------------

    @torch.inference_mode()
    def encode(self, sequences: Any) -> Tensor:
        """
        Parameters
        ----------
        sequences : array-like — ``[B, T, D]``

        Returns
        -------
        z : Tensor — ``[B, Z]`` latent means
        """
        self._require_initialized()
        return self.encoder(self._as_input(sequences))

    @torch.inference_mode()
    def decode(self, z: Any, length: int) -> Tensor:
        """
        Parameters
        ----------
        z : array-like — ``[B, Z]``
        length : int

        Returns
        -------
        Tensor — ``[B, length, 1]`` (categorical) or
        ``[B, length, num_dims]`` (NADE)
        """
        self._require_initialized()
        z = self._as_input(z)
        log.debug(f"Decoding {z.shape[0]} latents for {length} steps")
        return self.decoder(z, length)

    @torch.inference_mode()
    def sample(
        self,
        num_samples: int,
        num_steps: int,
        generator: Optional[torch.Generator] = None,
    ) -> Tensor:
        """Decode *num_samples* latents drawn from the standard normal prior."""
        self._require_initialized()
        z = torch.randn(
            num_samples, self.decoder.z_dims,
            generator=generator, device=self.device,
        )
        return self.decoder(z, num_steps)

    @torch.inference_mode()
    def interpolate_latents(self, sequences: Any, num_steps: int) -> Tensor:
        """Encode 2 or 4 reference sequences and build the latent grid.

        Returns
        -------
        Tensor — ``[num_steps, Z]`` for 2 anchors,
        ``[num_steps ** 2, Z]`` for 4 anchors.
        """
        self._require_initialized()
        sequences = self._as_input(sequences)
        num_anchors = sequences.shape[0] if sequences.ndim > 0 else 0
        if num_anchors not in (2, 4):
            raise ValueError(
                "Invalid number of input sequences. Requires length 2, or 4; "
                f"got {num_anchors}"
            )
        if num_steps < 1:
            raise ValueError(f"num_steps must be >= 1, got {num_steps}")

        z = self.encoder(sequences)
        if num_anchors == 2:
            return linear_grid(z[0], z[1], num_steps)
        return bilinear_grid(z[0], z[1], z[2], z[3], num_steps)

    @torch.inference_mode()
    def interpolate(self, sequences: Any, num_steps: int) -> Tensor:
        """Decode the interpolation grid between 2 or 4 reference sequences.

        The grid is decoded as one batch with the time length of the
        references.
        """
        sequences = self._as_input(sequences)
        z = self.interpolate_latents(sequences, num_steps)
        log.debug(f"Interpolating {sequences.shape[0]} anchors → {z.shape[0]} latents")
        return self.decoder(z, sequences.shape[1])
