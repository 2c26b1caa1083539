from dataclasses import dataclass


@dataclass
class Timer:
    """Base Timer class for scheduling time steps in diffusion processes.

    Args:
        n_steps (int): Number of discrete time steps.
    """

    n_steps: int

    def __post_init__(self):
        if self.n_steps < 1:
            raise ValueError(f"n_steps must be >= 1, got {self.n_steps}")

    def __call__(self, step: int) -> float: ...


@dataclass
class RatioTimer(Timer):
    """Linear timer on the noise ratio, from ``t_start`` (noisiest) down to ``t_end``.

    Step ``i`` maps to ``t_start + i / n_steps * (t_end - t_start)``, so step 0 is
    the noisiest state and step ``n_steps`` is the terminal, clean state that the
    final denoising step lands on.

    Args:
        n_steps (int): Number of discrete time steps
        t_start (float): Ratio at step 0. Defaults to 1.0
        t_end (float): Ratio at step ``n_steps``. Defaults to 0.0
    """

    t_start: float = 1.0
    t_end: float = 0.0

    def __post_init__(self):
        super().__post_init__()
        if not self.t_start > self.t_end:
            raise ValueError(f"t_start ({self.t_start}) must be greater than t_end ({self.t_end})")

    def __call__(self, step: int) -> float:
        """Compute ratio value for given step.

        Args:
            step (int): Current step number, in ``[0, n_steps]``

        Returns:
            float: Interpolated ratio between t_start and t_end
        """
        if step < 0 or step > self.n_steps:
            raise ValueError(f"step must be in [0, {self.n_steps}], got {step}")
        return self.t_start + step / self.n_steps * (self.t_end - self.t_start)
