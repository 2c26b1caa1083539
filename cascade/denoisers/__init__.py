from cascade.denoisers.base import BaseDenoiser, DenoiserState
from cascade.denoisers.denoiser import Denoiser

__all__ = ["BaseDenoiser", "Denoiser", "DenoiserState"]
