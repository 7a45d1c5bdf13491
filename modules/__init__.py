"""Neural building blocks for MusicVAE inference.

Checkpoint-bound affine and LSTM layers, the NADE output estimator, and
the bidirectional encoder / autoregressive decoder built from them.
"""

from .layers import AffineLayer, LSTMCell, LSTMState, StackedLSTM, FORGET_BIAS
from .nade import Nade
from .sequence import BidirectionalEncoder, LSTMDecoder, CategoricalHead, NadeHead

__all__ = [
    "AffineLayer",
    "LSTMCell",
    "LSTMState",
    "StackedLSTM",
    "FORGET_BIAS",
    "Nade",
    "BidirectionalEncoder",
    "LSTMDecoder",
    "CategoricalHead",
    "NadeHead",
]
