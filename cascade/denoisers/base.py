from abc import ABC, abstractmethod
from typing import NamedTuple, Optional, Tuple

from jaxtyping import Array, PRNGKeyArray

from cascade.integrator.base import IntegratorState


class DenoiserState(NamedTuple):
    """Working latent of one stage, wrapped with its integrator bookkeeping."""

    integrator_state: IntegratorState


class BaseDenoiser(ABC):
    """Interface of a stage sampler: seed a latent, step it, run it to the end."""

    @abstractmethod
    def init(self, position: Array, rng_key: PRNGKeyArray) -> DenoiserState: ...

    @abstractmethod
    def step(self, state: DenoiserState) -> DenoiserState:
        """Advance the latent by exactly one schedule entry"""

    @abstractmethod
    def generate(
        self, rng_key: PRNGKeyArray, n_particles: int = 1, keep_history: bool = False
    ) -> Tuple[DenoiserState, Optional[Array]]:
        """Run every schedule entry from fresh noise and return the final state"""
