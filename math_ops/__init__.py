"""Model-independent numerical helpers for MusicVAE inference.

Latent-grid construction for interpolation and the discrete event
encodings (bits / one-hot) used around the model.
"""

from .encoding import ints_to_bits, bits_to_ints, ints_to_one_hot
from .interpolation import linear_grid, bilinear_grid

__all__ = [
    "ints_to_bits",
    "bits_to_ints",
    "ints_to_one_hot",
    "linear_grid",
    "bilinear_grid",
]
