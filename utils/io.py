"""Reading and writing tensors and checkpoint stores.

Torch files go through :func:`torch.load` / :func:`torch.save`;
``.npy`` / ``.npz`` files through numpy.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

import numpy as np
import torch
from torch import Tensor


def _as_path(path: str | Path) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No such file: {path}")
    return path


def load_tensor_dict(
    path: str | Path,
    map_location: str | torch.device = "cpu",
) -> dict[str, Tensor]:
    """Load a checkpoint store ``{variable name: array}``.

    ``.npz`` archives are read with numpy; anything else is treated as a
    torch file holding a flat ``dict`` (optionally wrapped as
    ``{"state_dict": ...}``).
    """
    path = _as_path(path)

    if path.suffix == ".npz":
        with np.load(path) as archive:
            return {name: torch.from_numpy(archive[name]) for name in archive.files}

    payload = torch.load(path, map_location=map_location, weights_only=True)
    if isinstance(payload, Mapping) and "state_dict" in payload:
        payload = payload["state_dict"]
    if not isinstance(payload, Mapping):
        raise ValueError(
            f"{path} does not contain a mapping of variable names to tensors"
        )
    return {str(name): torch.as_tensor(value) for name, value in payload.items()}


def load_tensor(path: str | Path) -> Tensor:
    """Load a single array from ``.npy`` or a torch file."""
    path = _as_path(path)
    if path.suffix == ".npy":
        return torch.from_numpy(np.load(path))
    return torch.as_tensor(torch.load(path, map_location="cpu", weights_only=True))


def save_tensor(tensor: Tensor, path: str | Path) -> Path:
    """Save *tensor* as ``.npy`` (numpy) or with :func:`torch.save`."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tensor = tensor.detach().cpu()
    if path.suffix == ".npy":
        np.save(path, tensor.numpy())
    else:
        torch.save(tensor, path)
    return path
