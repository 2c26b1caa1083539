"""Per-stage noise schedules for the prior and decoder diffusion stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

import jax.numpy as jnp
from jaxtyping import Array

from cascade.diffusion.sde import CosineDiffusion, DiffusionModel, check_snr
from cascade.timer.base import RatioTimer


class Schedule(NamedTuple):
    """Materialised schedule for one stage invocation.

    Attributes:
        stage: Stage identifier the schedule was built for
        timesteps: The ``n_steps`` ratios visited by the sampler, noisiest first
        alpha_cumprods: ᾱ paired with each entry of ``timesteps``
        final_timestep: Terminal ratio reached by the last step
        init_noise_sigma: Scale applied to the initial noise by stages that use it
        timer: Timer the timesteps were drawn from
        model: Diffusion model providing ᾱ(t)
    """

    stage: str
    timesteps: tuple[float, ...]
    alpha_cumprods: Array
    final_timestep: float
    init_noise_sigma: float
    timer: RatioTimer
    model: DiffusionModel


@dataclass(frozen=True)
class StageScheduleConfig:
    s: float = 0.008
    scaler: float = 1.0
    t_start: float = 1.0
    t_end: float = 0.0
    init_noise_sigma: float = 1.0


STAGE_SCHEDULES: dict[str, StageScheduleConfig] = {
    "prior": StageScheduleConfig(),
    "decoder": StageScheduleConfig(),
}


def _stage_config(stage: str) -> StageScheduleConfig:
    try:
        return STAGE_SCHEDULES[stage]
    except KeyError:
        available = ", ".join(STAGE_SCHEDULES)
        raise ValueError(f"Unknown stage '{stage}'. Available: {available}") from None


def make_schedule(stage: str, n_steps: int) -> Schedule:
    """Build the deterministic schedule of ``stage`` for ``n_steps`` denoising steps.

    Args:
        stage: ``"prior"`` or ``"decoder"``
        n_steps: Number of denoising steps, at least 1

    Returns:
        Schedule whose first entry is the noisiest state and last entry the least noisy.
    """
    if n_steps < 1:
        raise ValueError(f"n_steps must be >= 1, got {n_steps}")
    config = _stage_config(stage)
    model = CosineDiffusion(s=config.s, scaler=config.scaler)
    timer = RatioTimer(n_steps=n_steps, t_start=config.t_start, t_end=config.t_end)
    timesteps = tuple(float(timer(step)) for step in range(n_steps))
    if not bool(check_snr(model, jnp.asarray(timesteps[0]))):
        raise ValueError(f"Stage '{stage}' schedule starts at t={timesteps[0]}, which is not pure noise.")
    return Schedule(
        stage=stage,
        timesteps=timesteps,
        alpha_cumprods=model.alpha_cumprod(jnp.array(timesteps)),
        final_timestep=float(timer(n_steps)),
        init_noise_sigma=config.init_noise_sigma,
        timer=timer,
        model=model,
    )
