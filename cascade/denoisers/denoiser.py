import sys
import time
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import jax
import jax.numpy as jnp
from jaxtyping import Array, PRNGKeyArray
from tqdm import tqdm

from cascade.denoisers.base import BaseDenoiser, DenoiserState
from cascade.integrator.base import Integrator
from cascade.predictor import Predictor


@dataclass
class Denoiser(BaseDenoiser):
    """Guided denoising loop of one diffusion stage.

    Draws standard normal noise of shape ``(n_particles, *x0_shape)`` and runs
    ``integrator.timer.n_steps`` integrator steps, each calling the stage network
    once on the doubled guidance batch. The final latent is returned as-is.

    Attributes:
        integrator: Step rule and timer of the stage
        predictor: Guided noise predictor holding the stage network and conditioning
        x0_shape: Per-sample latent shape, e.g. ``(C, H, W)``
        init_noise_sigma: Scale applied to the initial noise; ``None`` keeps unit variance
        name: Label used by the progress bar
        progress: Show a progress bar with per-step timings
    """

    integrator: Integrator
    predictor: Predictor
    x0_shape: Tuple[int, ...]
    init_noise_sigma: Optional[float] = None
    name: str = "denoise"
    progress: bool = True

    def __post_init__(self):
        self.x0_shape = tuple(int(d) for d in self.x0_shape)
        if not self.x0_shape or any(d < 1 for d in self.x0_shape):
            raise ValueError(f"Invalid latent shape {self.x0_shape}.")

    @property
    def n_steps(self) -> int:
        return self.integrator.timer.n_steps

    def init(self, position: Array, rng_key: PRNGKeyArray) -> DenoiserState:
        integrator_state = self.integrator.init(position, rng_key)
        return DenoiserState(integrator_state)

    def initial_noise(self, rng_key: PRNGKeyArray, n_particles: int) -> Array:
        noise = jax.random.normal(rng_key, shape=(n_particles, *self.x0_shape))
        if self.init_noise_sigma is not None:
            noise = noise * self.init_noise_sigma
        return noise

    def step(self, state: DenoiserState) -> DenoiserState:
        r"""
        sample p(x_{t_{i+1}} | x_{t_i})
        """
        integrator_state_next = self.integrator(state.integrator_state, self.predictor)
        return DenoiserState(integrator_state_next)

    def generate(
        self,
        rng_key: PRNGKeyArray,
        n_particles: int = 1,
        keep_history: bool = False,
    ) -> Tuple[DenoiserState, Union[Array, None]]:
        r"""Generate denoised samples x_0"""
        if n_particles != self.predictor.batch_size:
            raise ValueError(
                f"{self.name}: {n_particles} particle(s) requested but the conditioning "
                f"is batched for {self.predictor.batch_size}."
            )
        rng_key, rng_key_start = jax.random.split(rng_key)
        state = self.init(self.initial_noise(rng_key_start, n_particles), rng_key)

        history = []
        steps = tqdm(range(self.n_steps), desc=self.name, file=sys.stdout, disable=not self.progress)
        for _ in steps:
            start = time.perf_counter()
            state = self.step(state)
            position = jax.block_until_ready(state.integrator_state.position)
            steps.set_postfix(step_time=f"{time.perf_counter() - start:.2f}s")
            if keep_history:
                history.append(position)

        return state, jnp.stack(history) if keep_history else None
