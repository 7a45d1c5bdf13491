"""MusicVAE model and checkpoint binding."""

from .music_vae import MusicVAE
from .checkpoint import bind_model, bind_encoder, bind_decoder

__all__ = ["MusicVAE", "bind_model", "bind_encoder", "bind_decoder"]
