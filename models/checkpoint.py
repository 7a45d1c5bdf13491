"""Typed binding of a checkpoint store into encoder / decoder modules.

A checkpoint is a flat mapping of TensorFlow variable names to arrays.
Binding happens once, at load time, and reports every missing required
name in a single :class:`KeyError` instead of failing on first use.

Layout
------
* ``encoder/cell_0/bidirectional_rnn/{fw,bw}/multi_rnn_cell/cell_0/lstm_cell/``
* ``encoder/mu/``
* ``decoder/multi_rnn_cell/cell_{i}/lstm_cell/`` for i = 0, 1, …
* ``decoder/z_to_initial_state/``, ``decoder/output_projection/``
* ``decoder/nade/w_enc`` + ``decoder/nade/w_dec_t`` (optional pair)
"""

from __future__ import annotations

from typing import Any, Mapping

import numpy as np
import torch
from torch import Tensor

from modules.layers import AffineLayer, LSTMCell
from modules.nade import Nade
from modules.sequence import (
    BidirectionalEncoder,
    CategoricalHead,
    LSTMDecoder,
    NadeHead,
)

ENCODER_FW_CELL = "encoder/cell_0/bidirectional_rnn/fw/multi_rnn_cell/cell_0/lstm_cell/"
ENCODER_BW_CELL = "encoder/cell_0/bidirectional_rnn/bw/multi_rnn_cell/cell_0/lstm_cell/"
ENCODER_MU = "encoder/mu/"
DECODER_CELL_FORMAT = "decoder/multi_rnn_cell/cell_{}/lstm_cell/"
DECODER_Z_TO_INITIAL_STATE = "decoder/z_to_initial_state/"
DECODER_OUTPUT_PROJECTION = "decoder/output_projection/"
NADE_ENC_WEIGHTS = "decoder/nade/w_enc"
NADE_DEC_WEIGHTS_T = "decoder/nade/w_dec_t"

MAX_DECODER_LAYERS = 64


def _layer_names(prefix: str) -> list[str]:
    return [prefix + "kernel", prefix + "bias"]


def _to_tensor(value: Any) -> Tensor:
    if isinstance(value, np.ndarray):
        value = torch.from_numpy(value)
    return torch.as_tensor(value, dtype=torch.float32)


def as_tensor_store(weights: Mapping[str, Any]) -> dict[str, Tensor]:
    """Cast every array of a store to a float32 tensor."""
    return {str(name): _to_tensor(value) for name, value in weights.items()}


def _check_present(weights: Mapping[str, Any], names: list[str]) -> None:
    missing = [name for name in names if name not in weights]
    if missing:
        raise KeyError(
            "Checkpoint is missing required variables: " + ", ".join(missing)
        )


def _affine(weights: Mapping[str, Any], prefix: str) -> AffineLayer:
    return AffineLayer(
        _to_tensor(weights[prefix + "kernel"]),
        _to_tensor(weights[prefix + "bias"]),
    )


def _lstm(weights: Mapping[str, Any], prefix: str) -> LSTMCell:
    return LSTMCell(
        _to_tensor(weights[prefix + "kernel"]),
        _to_tensor(weights[prefix + "bias"]),
    )


# ---------------------------------------------------------------------------
#  Name discovery
# ---------------------------------------------------------------------------

def count_decoder_layers(
    weights: Mapping[str, Any],
    max_layers: int = MAX_DECODER_LAYERS,
) -> int:
    """Probe ``cell_0, cell_1, …`` until a kernel name is absent.

    The scan is bounded by *max_layers*; a store that still reports a
    layer at the bound is rejected.
    """
    for layer in range(max_layers):
        if DECODER_CELL_FORMAT.format(layer) + "kernel" not in weights:
            return layer
    raise ValueError(
        f"Checkpoint reports more than {max_layers} decoder layers"
    )


def has_nade(weights: Mapping[str, Any]) -> bool:
    """Whether the store selects the NADE output head.

    Both names of the pair must be present; half a pair is an error.
    """
    present = [name in weights for name in (NADE_ENC_WEIGHTS, NADE_DEC_WEIGHTS_T)]
    if any(present) and not all(present):
        _check_present(weights, [NADE_ENC_WEIGHTS, NADE_DEC_WEIGHTS_T])
    return all(present)


def required_names(weights: Mapping[str, Any]) -> list[str]:
    """Every variable name a store must provide, given its decoder depth."""
    names = (
        _layer_names(ENCODER_FW_CELL)
        + _layer_names(ENCODER_BW_CELL)
        + _layer_names(ENCODER_MU)
    )
    num_layers = max(count_decoder_layers(weights), 1)
    for layer in range(num_layers):
        names += _layer_names(DECODER_CELL_FORMAT.format(layer))
    names += _layer_names(DECODER_Z_TO_INITIAL_STATE)
    names += _layer_names(DECODER_OUTPUT_PROJECTION)
    return names


# ---------------------------------------------------------------------------
#  Binding
# ---------------------------------------------------------------------------

def bind_encoder(weights: Mapping[str, Any]) -> BidirectionalEncoder:
    prefixes = [ENCODER_FW_CELL, ENCODER_BW_CELL, ENCODER_MU]
    _check_present(weights, [n for p in prefixes for n in _layer_names(p)])
    return BidirectionalEncoder(
        fw_cell=_lstm(weights, ENCODER_FW_CELL),
        bw_cell=_lstm(weights, ENCODER_BW_CELL),
        mu=_affine(weights, ENCODER_MU),
    )


def bind_decoder(weights: Mapping[str, Any]) -> LSTMDecoder:
    num_layers = max(count_decoder_layers(weights), 1)
    prefixes = [DECODER_CELL_FORMAT.format(layer) for layer in range(num_layers)]
    prefixes += [DECODER_Z_TO_INITIAL_STATE, DECODER_OUTPUT_PROJECTION]
    _check_present(weights, [n for p in prefixes for n in _layer_names(p)])

    output_projection = _affine(weights, DECODER_OUTPUT_PROJECTION)
    if has_nade(weights):
        head = NadeHead(
            Nade(
                _to_tensor(weights[NADE_ENC_WEIGHTS]),
                _to_tensor(weights[NADE_DEC_WEIGHTS_T]),
            )
        )
    else:
        head = CategoricalHead(output_projection.out_features)

    return LSTMDecoder(
        cells=[_lstm(weights, p) for p in prefixes[:num_layers]],
        z_to_initial_state=_affine(weights, DECODER_Z_TO_INITIAL_STATE),
        output_projection=output_projection,
        head=head,
    )


def bind_model(
    weights: Mapping[str, Any],
) -> tuple[BidirectionalEncoder, LSTMDecoder]:
    """Bind both halves, reporting all missing names of the store at once."""
    _check_present(weights, required_names(weights))
    return bind_encoder(weights), bind_decoder(weights)
