"""Hydra-configurable generation script for a pretrained MusicVAE.

Usage
-----
    python generate.py checkpoint=ckpt/mel_2bar.pt                 # sample
    python generate.py checkpoint=ckpt/mel_2bar.pt num_samples=8 num_steps=64
    python generate.py checkpoint=ckpt/mel_2bar.pt mode=interpolate \\
        inputs=refs.pt num_steps=5                                # 2 or 4 refs
    python generate.py checkpoint=ckpt/mel_2bar.pt mode=reconstruct inputs=refs.pt
    python generate.py --cfg job                                   # print config
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import torch
from torch import Tensor

import hydra
from hydra.core.config_store import ConfigStore
from omegaconf import DictConfig, OmegaConf

from models.music_vae import MusicVAE
from utils.io import load_tensor, save_tensor

log = logging.getLogger(__name__)

MODES = ("sample", "interpolate", "reconstruct")


# ---------------------------------------------------------------------------
#  Hydra structured config
# ---------------------------------------------------------------------------

@dataclass
class GenerateConfig:
    # Model
    checkpoint: str = "./checkpoints/music_vae.pt"
    device: str = "cuda"                # falls back to CPU when unavailable

    # Job
    mode: str = "sample"                # "sample" | "interpolate" | "reconstruct"
    inputs: Optional[str] = None        # [N, T, D] reference sequences (.pt / .npy)
    num_samples: int = 4
    num_steps: int = 32                 # sequence length (sample) or ramp steps (interpolate)
    seed: int = 42

    # Output
    save_dir: str = "./outputs"
    output_name: str = "decoded.pt"
    plot: bool = False


# ---------------------------------------------------------------------------
#  Job
# ---------------------------------------------------------------------------

def _load_inputs(cfg: GenerateConfig) -> Tensor:
    if cfg.inputs is None:
        raise ValueError(f"mode={cfg.mode} requires `inputs` (reference sequences)")
    return load_tensor(cfg.inputs).float()


def generate(cfg: GenerateConfig) -> Tensor:
    """Run one generation job and save its output under ``cfg.save_dir``."""
    if cfg.mode not in MODES:
        raise ValueError(f"Unknown mode {cfg.mode!r}; expected one of {MODES}")

    torch.manual_seed(cfg.seed)
    device = torch.device(cfg.device if torch.cuda.is_available() else "cpu")

    with MusicVAE(cfg.checkpoint, device=device) as model:
        if cfg.mode == "sample":
            generator = torch.Generator(device=device).manual_seed(cfg.seed)
            decoded = model.sample(cfg.num_samples, cfg.num_steps, generator=generator)
        elif cfg.mode == "interpolate":
            decoded = model.interpolate(_load_inputs(cfg), cfg.num_steps)
        else:  # "reconstruct"
            inputs = _load_inputs(cfg)
            decoded = model.decode(model.encode(inputs), inputs.shape[1])
        output_dims = model.output_dims

    log.info(f"[{cfg.mode}] decoded batch of shape {tuple(decoded.shape)}")

    out_path = save_tensor(decoded, Path(cfg.save_dir) / cfg.output_name)
    log.info(f"Saved output → {out_path}")

    if cfg.plot:
        from utils.visualization import plot_interpolation

        plot_path = out_path.with_suffix(".png")
        plot_interpolation(
            decoded,
            num_steps=cfg.num_steps if cfg.mode == "interpolate" else None,
            output_dims=output_dims,
            title=f"MusicVAE {cfg.mode}",
            save_path=plot_path,
        )
        log.info(f"Saved plot → {plot_path}")

    return decoded


# ---------------------------------------------------------------------------
#  Hydra entry-point
# ---------------------------------------------------------------------------

cs = ConfigStore.instance()
cs.store(name="generate", node=GenerateConfig)


@hydra.main(config_path=None, config_name="generate", version_base="1.3")
def main(cfg: DictConfig) -> None:
    gen_cfg: GenerateConfig = OmegaConf.to_object(cfg)  # type: ignore[assignment]
    generate(gen_cfg)


if __name__ == "__main__":
    main()
