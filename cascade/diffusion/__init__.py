from cascade.diffusion.sde import CosineDiffusion, DiffusionModel, check_snr

__all__ = ["CosineDiffusion", "DiffusionModel", "check_snr"]
