from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import NamedTuple

import jax
from jaxtyping import Array, PRNGKeyArray

from cascade.diffusion.sde import DiffusionModel
from cascade.predictor import Predictor
from cascade.timer.base import Timer

__all__ = ["Integrator", "IntegratorState"]


class IntegratorState(NamedTuple):
    """State container for numerical integrators.

    Attributes:
        position: Current latent
        rng_key: JAX random number generator key
        step: Current integration step counter (default: 0)
    """

    position: Array
    rng_key: PRNGKeyArray
    step: int = 0


@dataclass
class Integrator(ABC):
    """Base class for the reverse-time step rules of a diffusion stage.

    A step rule is a pure function of ``(position, noise, t, t_next)``; rules that
    inject fresh noise receive an explicit PRNG key split from the integrator state.

    Attributes:
        model: Diffusion model providing ᾱ(t)
        timer: Timer object managing the discretization of the time interval
    """

    model: DiffusionModel
    timer: Timer

    def init(self, position: Array, rng_key: PRNGKeyArray) -> IntegratorState:
        """Initialize the integrator state.

        Args:
            position: Initial latent
            rng_key: JAX random number generator key

        Returns:
            Initial IntegratorState
        """
        return IntegratorState(position, rng_key)

    def scale_model_input(self, position: Array, t: float) -> Array:
        """Rescale the network input at ratio ``t``. Identity for ᾱ-parametrised rules."""
        return position

    @abstractmethod
    def update(
        self, position: Array, noise: Array, t: float, t_next: float, rng_key: PRNGKeyArray
    ) -> Array:
        """Advance ``position`` from ``t`` to ``t_next`` given the predicted noise."""

    def __call__(self, integrator_state: IntegratorState, predictor: Predictor) -> IntegratorState:
        """Perform one integration step.

        Args:
            integrator_state: Current state of the integration
            predictor: Guided noise predictor ε_θ(x, t)

        Returns:
            Updated IntegratorState
        """
        position, rng_key, step = integrator_state
        t, t_next = self.timer(step), self.timer(step + 1)
        rng_key_next, rng_key_step = jax.random.split(rng_key)

        noise = predictor.noise(position, t)
        position_next = self.update(position, noise, t, t_next, rng_key_step)

        return IntegratorState(position_next, rng_key_next, step + 1)
