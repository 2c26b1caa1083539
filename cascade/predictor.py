"""Classifier-free guided noise prediction around an opaque stage network."""

from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import einops
import jax
import jax.numpy as jnp
from jaxtyping import Array, PyTree


class NoiseNetwork(Protocol):
    """Stage network ε_θ(x, t, c) evaluated on a doubled (uncond, cond) batch."""

    def __call__(self, latent: Array, t: Array, conditioning: PyTree) -> Array: ...


def classifier_free_guidance(noise_uncond: Array, noise_cond: Array, guidance_scale: float) -> Array:
    """Extrapolate from the unconditional towards the conditional estimate.

    ε = ε_u + w (ε_c - ε_u), evaluated as (1 - w) ε_u + w ε_c so that w = 1
    returns ε_c and w = 0 returns ε_u exactly.
    """
    return noise_uncond * (1.0 - guidance_scale) + noise_cond * guidance_scale


def duplicate_batch(x: Array) -> Array:
    """[x; x] along the batch axis, aligned with an (uncond, cond) conditioning batch."""
    return einops.repeat(x, "b ... -> (two b) ...", two=2)


def split_batch(x: Array) -> tuple[Array, Array]:
    """Inverse of ``duplicate_batch``: first half unconditional, second half conditional."""
    if x.shape[0] % 2:
        raise ValueError(f"Cannot split an odd batch of size {x.shape[0]} into guidance halves.")
    first, second = einops.rearrange(x, "(two b) ... -> two b ...", two=2)
    return first, second


def conditioning_batch_size(conditioning: PyTree) -> int:
    leaves = jax.tree_util.tree_leaves(conditioning)
    if not leaves:
        raise ValueError("Conditioning is empty.")
    sizes = {leaf.shape[0] if leaf.ndim else None for leaf in leaves}
    if len(sizes) != 1 or None in sizes:
        raise ValueError(f"Conditioning leaves disagree on their batch axis: {sorted(map(str, sizes))}")
    (size,) = sizes
    if size % 2:
        raise ValueError(f"Conditioning batch must hold (uncond, cond) halves, got odd size {size}.")
    return size


@dataclass
class Predictor:
    """Guided ε-prediction from a stage network and its conditioning.

    Each call to ``noise`` runs the network exactly once on the doubled batch.

    Attributes:
        network: Opaque stage network
        conditioning: Batched conditioning, unconditional half first
        guidance_scale: Classifier-free guidance weight
        input_scaler: Optional scale-model-input rule applied to the doubled latent
    """

    network: NoiseNetwork
    conditioning: PyTree
    guidance_scale: float
    input_scaler: Optional[Callable[[Array, float], Array]] = None

    def __post_init__(self):
        self._conditioning_batch = conditioning_batch_size(self.conditioning)

    @property
    def batch_size(self) -> int:
        """Latent batch size this predictor accepts."""
        return self._conditioning_batch // 2

    def noise(self, x: Array, t: float) -> Array:
        """Get guided noise prediction ε_θ(x, t)."""
        if x.shape[0] != self.batch_size:
            raise ValueError(
                f"Latent batch {x.shape[0]} does not match conditioning batch "
                f"{self._conditioning_batch} (expected latent batch {self.batch_size})."
            )
        model_input = duplicate_batch(x)
        if self.input_scaler is not None:
            model_input = self.input_scaler(model_input, t)
        ts = jnp.full((model_input.shape[0],), t, dtype=model_input.dtype)

        noise_pred = self.network(model_input, ts, self.conditioning)
        if noise_pred.shape != model_input.shape:
            raise ValueError(
                f"Network returned shape {tuple(noise_pred.shape)}, expected {tuple(model_input.shape)}."
            )

        noise_uncond, noise_cond = split_batch(noise_pred)
        return classifier_free_guidance(noise_uncond, noise_cond, self.guidance_scale)
