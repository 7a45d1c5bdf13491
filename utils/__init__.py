"""Utility functions (tensor IO, visualization)."""

from .io import load_tensor_dict, load_tensor, save_tensor

__all__ = ["load_tensor_dict", "load_tensor", "save_tensor"]
