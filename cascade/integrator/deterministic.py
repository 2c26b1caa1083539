from dataclasses import dataclass

import jax.numpy as jnp
from jaxtyping import Array, PRNGKeyArray

from cascade.integrator.base import Integrator

__all__ = ["DDIMIntegrator"]


@dataclass
class DDIMIntegrator(Integrator):
    """Denoising Diffusion Implicit Models (DDIM) integrator.

    Implements the deterministic (η=0) DDIM update:
    x_{t-1} = √ᾱ_{t-1} * x̂₀ + √(1 - ᾱ_{t-1}) * ε_θ

    where:
    - x̂₀ is the predicted denoised sample: (x_t - √(1-ᾱ_t) * ε_θ) / √ᾱ_t
    - ε_θ is the guided noise prediction
    - ᾱ_t is the cumulative signal of the stage schedule

    The rng key is unused; identical inputs always give identical outputs.

    References:
        Song, J., Meng, C., Ermon, S. (2020). "Denoising Diffusion Implicit Models"
        https://arxiv.org/abs/2010.02502
    """

    def update(
        self, position: Array, noise: Array, t: float, t_next: float, rng_key: PRNGKeyArray
    ) -> Array:
        alpha_cumprod = self.model.alpha_cumprod(t)
        alpha_cumprod_next = self.model.alpha_cumprod(t_next)

        pred_x0 = (position - jnp.sqrt(1 - alpha_cumprod) * noise) / jnp.sqrt(alpha_cumprod)
        position_next = jnp.sqrt(alpha_cumprod_next) * pred_x0 + jnp.sqrt(1 - alpha_cumprod_next) * noise

        return position_next.astype(position.dtype)
