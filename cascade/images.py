from __future__ import annotations

from pathlib import Path

import einops
import jax
import jax.numpy as jnp
import numpy as np
from jaxtyping import Array
from PIL import Image


def output_filename(basename: str, sample_idx: int, num_samples: int, timestep_idx: int | None) -> str:
    """Name of the file written for one sample.

    The sample index is inserted before the extension only when more than one
    sample is generated; ``timestep_idx`` appends a ``-<idx>`` suffix.
    """
    filename = basename
    if num_samples > 1:
        stem, dot, extension = basename.rpartition(".")
        filename = f"{stem}.{sample_idx}.{extension}" if dot else f"{basename}.{sample_idx}.png"
    if timestep_idx is None:
        return filename
    stem, dot, extension = filename.rpartition(".")
    return f"{stem}-{timestep_idx}.{extension}" if dot else f"{filename}-{timestep_idx}.png"


def to_uint8(pixels: Array) -> Array:
    """Clamp ``[C, H, W]`` pixels to [0, 1] and quantize to uint8."""
    pixels = jnp.clip(pixels, 0.0, 1.0)
    return (pixels * 255.0).astype(jnp.uint8)


def save_image(pixels: Array, path: str | Path) -> Path:
    """Write a ``[3, H, W]`` uint8 image."""
    path = Path(path).expanduser()
    if pixels.ndim != 3 or pixels.shape[0] not in (1, 3):
        raise ValueError(f"Expected a [C, H, W] image with 1 or 3 channels, got shape {tuple(pixels.shape)}")
    if pixels.dtype != jnp.uint8:
        raise ValueError(f"Expected uint8 pixels, got {pixels.dtype}")
    path.parent.mkdir(parents=True, exist_ok=True)
    image = np.asarray(jax.device_get(einops.rearrange(pixels, "c h w -> h w c")))
    if image.shape[-1] == 1:
        image = image[..., 0]
    Image.fromarray(image).save(str(path))
    return path
