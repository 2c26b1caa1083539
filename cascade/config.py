"""Configuration of the two-stage cascade, loadable from YAML."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from envyaml import EnvYAML

GUIDANCE_SCALE = 7.5
RESOLUTION_MULTIPLE = 42.67
PRIOR_CIN = 16
LATENT_DIM_SCALE = 10.67
DECODER_CIN = 4
LATENT_MEAN = 42.0
LATENT_STD = 1.0


@dataclass
class TextEncoderConfig:
    max_position_embeddings: int = 77
    pad_with: str | None = None
    embed_dim: int = 1024

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TextEncoderConfig:
        return cls(
            max_position_embeddings=int(data.get("max_position_embeddings", 77)),
            pad_with=data.get("pad_with"),
            embed_dim=int(data.get("embed_dim", 1024)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_position_embeddings": self.max_position_embeddings,
            "pad_with": self.pad_with,
            "embed_dim": self.embed_dim,
        }


@dataclass
class StageConfig:
    n_steps: int = 30
    guidance_scale: float = GUIDANCE_SCALE
    integrator: str = "ddpm"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StageConfig:
        return cls(
            n_steps=int(data.get("n_steps", 30)),
            guidance_scale=float(data.get("guidance_scale", GUIDANCE_SCALE)),
            integrator=str(data.get("integrator", "ddpm")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "n_steps": self.n_steps,
            "guidance_scale": self.guidance_scale,
            "integrator": self.integrator,
        }


@dataclass
class CascadeConfig:
    """Pipeline constants and per-stage sampling settings.

    ``latent_mean`` and ``latent_std`` undo the normalisation the decoder was
    trained with on prior embeddings; they are not tuning knobs.
    """

    height: int = 1024
    width: int = 1024
    resolution_multiple: float = RESOLUTION_MULTIPLE
    prior_cin: int = PRIOR_CIN
    latent_dim_scale: float = LATENT_DIM_SCALE
    decoder_cin: int = DECODER_CIN
    latent_mean: float = LATENT_MEAN
    latent_std: float = LATENT_STD
    prior: StageConfig = field(default_factory=StageConfig)
    decoder: StageConfig = field(default_factory=StageConfig)
    prior_text_encoder: TextEncoderConfig = field(
        default_factory=lambda: TextEncoderConfig(max_position_embeddings=77, pad_with="!", embed_dim=1280)
    )
    decoder_text_encoder: TextEncoderConfig = field(
        default_factory=lambda: TextEncoderConfig(max_position_embeddings=77, pad_with=None, embed_dim=1024)
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CascadeConfig:
        defaults = cls()
        return cls(
            height=int(data.get("height", defaults.height)),
            width=int(data.get("width", defaults.width)),
            resolution_multiple=float(data.get("resolution_multiple", defaults.resolution_multiple)),
            prior_cin=int(data.get("prior_cin", defaults.prior_cin)),
            latent_dim_scale=float(data.get("latent_dim_scale", defaults.latent_dim_scale)),
            decoder_cin=int(data.get("decoder_cin", defaults.decoder_cin)),
            latent_mean=float(data.get("latent_mean", defaults.latent_mean)),
            latent_std=float(data.get("latent_std", defaults.latent_std)),
            prior=StageConfig.from_dict(data.get("prior") or {}),
            decoder=StageConfig.from_dict(data.get("decoder") or {}),
            prior_text_encoder=TextEncoderConfig.from_dict(
                {**defaults.prior_text_encoder.to_dict(), **(data.get("prior_text_encoder") or {})}
            ),
            decoder_text_encoder=TextEncoderConfig.from_dict(
                {**defaults.decoder_text_encoder.to_dict(), **(data.get("decoder_text_encoder") or {})}
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "height": self.height,
            "width": self.width,
            "resolution_multiple": self.resolution_multiple,
            "prior_cin": self.prior_cin,
            "latent_dim_scale": self.latent_dim_scale,
            "decoder_cin": self.decoder_cin,
            "latent_mean": self.latent_mean,
            "latent_std": self.latent_std,
            "prior": self.prior.to_dict(),
            "decoder": self.decoder.to_dict(),
            "prior_text_encoder": self.prior_text_encoder.to_dict(),
            "decoder_text_encoder": self.decoder_text_encoder.to_dict(),
        }


def load_config(path: str | Path) -> CascadeConfig:
    """Read a YAML config; ``${VAR}`` references are filled from the environment."""
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Config file missing: {path}")
    return CascadeConfig.from_dict(EnvYAML(str(path)).export())
