from cascade.integrator.base import Integrator, IntegratorState
from cascade.integrator.deterministic import DDIMIntegrator
from cascade.integrator.stochastic import DDPMIntegrator

INTEGRATORS = {
    "ddpm": DDPMIntegrator,
    "ddim": DDIMIntegrator,
}


def get_integrator(name: str) -> type[Integrator]:
    try:
        return INTEGRATORS[name]
    except KeyError:
        available = ", ".join(INTEGRATORS)
        raise ValueError(f"Unknown integrator '{name}'. Available: {available}") from None


__all__ = [
    "INTEGRATORS",
    "DDIMIntegrator",
    "DDPMIntegrator",
    "Integrator",
    "IntegratorState",
    "get_integrator",
]
