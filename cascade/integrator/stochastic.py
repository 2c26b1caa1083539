from dataclasses import dataclass

import jax
import jax.numpy as jnp
from jaxtyping import Array, PRNGKeyArray

from cascade.integrator.base import Integrator

__all__ = ["DDPMIntegrator"]


@dataclass
class DDPMIntegrator(Integrator):
    """Ancestral DDPM step on a continuous ratio schedule.

    With ᾱ_t and ᾱ_s the cumulative signal at the current ratio t and the next
    ratio s < t, and α = ᾱ_t / ᾱ_s:

    .. math::
        \\mu = \\frac{1}{\\sqrt{\\alpha}}\\left(x_t - \\frac{1 - \\alpha}{\\sqrt{1 - \\bar\\alpha_t}}\\,\\epsilon_\\theta\\right)

        \\sigma = \\sqrt{\\frac{(1 - \\alpha)(1 - \\bar\\alpha_s)}{1 - \\bar\\alpha_t}}

        x_s = \\mu + \\sigma z \\,[s \\neq 0], \\quad z \\sim \\mathcal{N}(0, I)

    No noise is injected on the step that lands on s = 0.

    References:
        Ho, J., Jain, A., Abbeel, P. (2020). "Denoising Diffusion Probabilistic Models"
        https://arxiv.org/abs/2006.11239
    """

    def update(
        self, position: Array, noise: Array, t: float, t_next: float, rng_key: PRNGKeyArray
    ) -> Array:
        alpha_cumprod = self.model.alpha_cumprod(t)
        alpha_cumprod_next = self.model.alpha_cumprod(t_next)
        alpha = alpha_cumprod / alpha_cumprod_next

        mu = jnp.sqrt(1.0 / alpha) * (position - (1 - alpha) * noise / jnp.sqrt(1 - alpha_cumprod))
        std = jnp.sqrt((1 - alpha) * (1 - alpha_cumprod_next) / (1 - alpha_cumprod))

        if t_next == 0:
            return mu.astype(position.dtype)

        z = jax.random.normal(rng_key, position.shape, dtype=position.dtype)
        return (mu + std * z).astype(position.dtype)
