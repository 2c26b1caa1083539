# Copyright 2025 Jacopo Iollo <jacopo.iollo@inria.fr>, Geoffroy Oudoumanessah <geoffroy.oudoumanessah@inria.fr>
# Licensed under the Apache License, Version 2.0 (the "License");
# http://www.apache.org/licenses/LICENSE-2.0
from abc import ABC, abstractmethod
from dataclasses import dataclass

import jax.numpy as jnp
from jaxtyping import Array


class DiffusionModel(ABC):
    @abstractmethod
    def alpha_cumprod(self, t: Array) -> Array:
        pass

    def noise_level(self, t: Array) -> Array:
        """Noise level σ_t = √(1 - ᾱ_t)."""
        return jnp.sqrt(1.0 - self.alpha_cumprod(t))

    def signal_level(self, t: Array) -> Array:
        """Signal level α_t = √ᾱ_t."""
        return jnp.sqrt(self.alpha_cumprod(t))

    def snr(self, t: Array) -> Array:
        """SNR(t) = α_t² / σ_t² for x_t = α_t x_0 + σ_t ε."""
        noise_level = self.noise_level(t)
        signal_level = self.signal_level(t)
        return (signal_level * signal_level) / (noise_level * noise_level + 1e-8)


@dataclass
class CosineDiffusion(DiffusionModel):
    """Cosine cumulative signal schedule on a continuous ratio t ∈ [0, 1].

    Implements the cosine schedule from 'Improved Denoising Diffusion Probabilistic Models'
    expressed directly on ᾱ:

    .. math::
        \\bar\\alpha(t) = \\frac{\\cos^2\\left(\\frac{t + s}{1 + s}\\frac{\\pi}{2}\\right)}
                               {\\cos^2\\left(\\frac{s}{1 + s}\\frac{\\pi}{2}\\right)}

    t = 1 is pure noise and t = 0 is clean data. Both diffusion stages of the
    cascade are trained against this parametrisation and take the ratio t as
    their conditioning scalar.

    Args:
        s: Offset parameter (default: 0.008)
        scaler: Time warp exponent, applied as t ← 1 - (1 - t)^scaler when > 1
        clip_min: Lower clamp on ᾱ
        clip_max: Upper clamp on ᾱ

    References:
        Nichol, A., & Dhariwal, P. (2021). Improved Denoising Diffusion Probabilistic Models.
        arXiv:2102.09672
    """

    s: float = 0.008
    scaler: float = 1.0
    clip_min: float = 1e-4
    clip_max: float = 0.9999

    def __post_init__(self):
        if self.scaler <= 0:
            raise ValueError(f"scaler must be positive, got {self.scaler}")
        self._init_alpha_cumprod = jnp.cos(self.s / (1 + self.s) * jnp.pi * 0.5) ** 2

    def alpha_cumprod(self, t: Array) -> Array:
        t = jnp.asarray(t, dtype=jnp.float32)
        if self.scaler > 1:
            t = 1 - (1 - t) ** self.scaler
        alpha_cumprod = jnp.cos((t + self.s) / (1 + self.s) * jnp.pi * 0.5) ** 2 / self._init_alpha_cumprod
        return jnp.clip(alpha_cumprod, self.clip_min, self.clip_max)


def check_snr(model: DiffusionModel, t: Array, tolerance: float = 1e-3) -> Array:
    """True when the ratio t sits at the pure-noise end of the model, i.e. SNR(t) < tolerance."""
    return jnp.all(model.snr(t) < tolerance)
