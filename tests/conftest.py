"""Shared fixtures: small random MusicVAE checkpoint stores."""

from __future__ import annotations

import pytest
import torch

from models import checkpoint as ckpt

INPUT_DIMS = 6
ENCODER_HIDDEN = 5
Z_DIMS = 4
DECODER_HIDDEN = (3, 3)
OUTPUT_DIMS = 6
NADE_HIDDEN = 7


def make_weights(
    nade: bool = False,
    decoder_hidden: tuple[int, ...] = DECODER_HIDDEN,
    seed: int = 0,
) -> dict[str, torch.Tensor]:
    """Random checkpoint store with the MusicVAE variable layout."""
    g = torch.Generator().manual_seed(seed)

    def rand(*shape: int) -> torch.Tensor:
        return torch.randn(*shape, generator=g) * 0.5

    weights: dict[str, torch.Tensor] = {}
    for prefix in (ckpt.ENCODER_FW_CELL, ckpt.ENCODER_BW_CELL):
        weights[prefix + "kernel"] = rand(INPUT_DIMS + ENCODER_HIDDEN, 4 * ENCODER_HIDDEN)
        weights[prefix + "bias"] = rand(4 * ENCODER_HIDDEN)
    weights[ckpt.ENCODER_MU + "kernel"] = rand(2 * ENCODER_HIDDEN, Z_DIMS)
    weights[ckpt.ENCODER_MU + "bias"] = rand(Z_DIMS)

    input_width = OUTPUT_DIMS + Z_DIMS
    for layer, hidden in enumerate(decoder_hidden):
        prefix = ckpt.DECODER_CELL_FORMAT.format(layer)
        weights[prefix + "kernel"] = rand(input_width + hidden, 4 * hidden)
        weights[prefix + "bias"] = rand(4 * hidden)
        input_width = hidden

    weights[ckpt.DECODER_Z_TO_INITIAL_STATE + "kernel"] = rand(Z_DIMS, 2 * sum(decoder_hidden))
    weights[ckpt.DECODER_Z_TO_INITIAL_STATE + "bias"] = rand(2 * sum(decoder_hidden))

    projection_width = NADE_HIDDEN + OUTPUT_DIMS if nade else OUTPUT_DIMS
    weights[ckpt.DECODER_OUTPUT_PROJECTION + "kernel"] = rand(decoder_hidden[-1], projection_width)
    weights[ckpt.DECODER_OUTPUT_PROJECTION + "bias"] = rand(projection_width)

    if nade:
        weights[ckpt.NADE_ENC_WEIGHTS] = rand(OUTPUT_DIMS, 1, NADE_HIDDEN)
        weights[ckpt.NADE_DEC_WEIGHTS_T] = rand(OUTPUT_DIMS, NADE_HIDDEN, 1)
    return weights


@pytest.fixture
def weights() -> dict[str, torch.Tensor]:
    return make_weights()


@pytest.fixture
def nade_weights() -> dict[str, torch.Tensor]:
    return make_weights(nade=True)


@pytest.fixture
def sequences() -> torch.Tensor:
    """Four one-hot reference sequences ``[4, 8, INPUT_DIMS]``."""
    g = torch.Generator().manual_seed(1)
    labels = torch.randint(0, INPUT_DIMS, (4, 8), generator=g)
    return torch.nn.functional.one_hot(labels, INPUT_DIMS).float()
