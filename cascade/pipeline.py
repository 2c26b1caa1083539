"""Two-stage cascade: text → prior image embedding → decoder latent → pixels."""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, NamedTuple, Optional

import jax
import jax.numpy as jnp
from jaxtyping import Array, PRNGKeyArray

from cascade.conditioning import PromptEncoder
from cascade.config import CascadeConfig, StageConfig
from cascade.denoisers.denoiser import Denoiser
from cascade.images import output_filename, save_image, to_uint8
from cascade.integrator import get_integrator
from cascade.predictor import NoiseNetwork, Predictor
from cascade.timer.schedule import make_schedule


@dataclass(frozen=True)
class GuidanceConfig:
    scale: float
    num_steps: int

    def __post_init__(self):
        if self.num_steps < 1:
            raise ValueError(f"num_steps must be >= 1, got {self.num_steps}")


@dataclass(frozen=True)
class SampleRequest:
    """One generation call.

    ``prior`` and ``decoder`` override the configured guidance of their stage.
    """

    prompt: str
    negative_prompt: str = ""
    height: int = 1024
    width: int = 1024
    num_samples: int = 1
    seed: int = 0
    final_image: str = "sd_final.png"
    prior: Optional[GuidanceConfig] = None
    decoder: Optional[GuidanceConfig] = None


class DecoderConditioning(NamedTuple):
    """Decoder conditioning; both fields are batched unconditional half first."""

    image_embeddings: Array
    text_embeddings: Array


class SampleResult(NamedTuple):
    index: int
    image_embeddings: Array
    latents: Array
    pixels: Array
    filename: Optional[str]


@dataclass
class CascadeNetworks:
    """Opaque collaborators of the cascade.

    Attributes:
        prior_encoder: Prompt encoder feeding the prior
        decoder_encoder: Prompt encoder feeding the decoder
        prior: Prior network, called as ``prior(latent, ratio, text_embeddings)``
        decoder: Decoder network, called as ``decoder(latent, ratio, DecoderConditioning)``
        vqgan: Decoder latent → ``[B, 3, H, W]`` pixels in [0, 1]
        image_writer: ``image_writer(pixels_u8[3, H, W], filename)``; ``None`` skips writing
    """

    prior_encoder: PromptEncoder
    decoder_encoder: PromptEncoder
    prior: NoiseNetwork
    decoder: NoiseNetwork
    vqgan: Callable[[Array], Array]
    image_writer: Optional[Callable[[Array, str], Any]] = save_image


def latent_grid_size(height: int, width: int, resolution_multiple: float) -> tuple[int, int]:
    """Prior latent grid for a pixel resolution, rounded up."""
    return math.ceil(height / resolution_multiple), math.ceil(width / resolution_multiple)


def decoder_latent_size(grid_height: int, grid_width: int, latent_dim_scale: float) -> tuple[int, int]:
    return int(grid_height * latent_dim_scale), int(grid_width * latent_dim_scale)


def prior_to_decoder(image_embeddings: Array, latent_mean: float = 42.0, latent_std: float = 1.0) -> Array:
    """Map a prior sample into the decoder's conditioning space.

    The prior is trained on decoder-side embeddings normalised as
    ``(z + latent_std) / latent_mean``; this is the exact inverse, i.e. ``z * 42 - 1``
    with the released weights. Despite their names, ``latent_mean`` is the scale and
    ``latent_std`` the additive shift; neither is a statistic of the latent.
    """
    return image_embeddings * latent_mean - latent_std


@dataclass
class CascadePipeline:
    networks: CascadeNetworks
    config: CascadeConfig = field(default_factory=CascadeConfig)
    verbose: bool = False
    progress: bool = True

    def _log(self, message: str) -> None:
        if self.verbose:
            print(f"[cascade] {message}", flush=True)

    @staticmethod
    def _guidance(stage: StageConfig, override: Optional[GuidanceConfig]) -> GuidanceConfig:
        if override is not None:
            return override
        return GuidanceConfig(scale=stage.guidance_scale, num_steps=stage.n_steps)

    def validate(self, request: SampleRequest) -> None:
        if request.height < 1 or request.width < 1:
            raise ValueError(f"height and width must be positive, got {request.height}x{request.width}")
        if request.num_samples < 1:
            raise ValueError(f"num_samples must be >= 1, got {request.num_samples}")
        for stage, override in ((self.config.prior, request.prior), (self.config.decoder, request.decoder)):
            self._guidance(stage, override)
            get_integrator(stage.integrator)

    def _denoiser(
        self,
        stage: str,
        network: NoiseNetwork,
        conditioning: Any,
        guidance: GuidanceConfig,
        x0_shape: tuple[int, ...],
    ) -> Denoiser:
        stage_config = self.config.prior if stage == "prior" else self.config.decoder
        schedule = make_schedule(stage, guidance.num_steps)
        integrator = get_integrator(stage_config.integrator)(model=schedule.model, timer=schedule.timer)
        # the prior network takes the raw latent and ratio directly
        is_decoder = stage == "decoder"
        predictor = Predictor(
            network=network,
            conditioning=conditioning,
            guidance_scale=guidance.scale,
            input_scaler=integrator.scale_model_input if is_decoder else None,
        )
        return Denoiser(
            integrator=integrator,
            predictor=predictor,
            x0_shape=x0_shape,
            init_noise_sigma=schedule.init_noise_sigma if is_decoder else None,
            name=stage,
            progress=self.progress,
        )

    def sample_prior(
        self,
        rng_key: PRNGKeyArray,
        text_embeddings: Array,
        guidance: GuidanceConfig,
        grid: tuple[int, int],
    ) -> Array:
        """Sample one ``[1, PRIOR_CIN, h, w]`` image-embedding latent."""
        denoiser = self._denoiser(
            "prior", self.networks.prior, text_embeddings, guidance, (self.config.prior_cin, *grid)
        )
        state, _ = denoiser.generate(rng_key, n_particles=1)
        return state.integrator_state.position

    def sample_decoder(
        self,
        rng_key: PRNGKeyArray,
        image_embeddings: Array,
        text_embeddings: Array,
        guidance: GuidanceConfig,
    ) -> Array:
        """Sample one decoder latent conditioned on rescaled prior embeddings."""
        _, _, grid_height, grid_width = image_embeddings.shape
        latent_hw = decoder_latent_size(grid_height, grid_width, self.config.latent_dim_scale)
        conditioning = DecoderConditioning(
            image_embeddings=jnp.concatenate([jnp.zeros_like(image_embeddings), image_embeddings], axis=0),
            text_embeddings=text_embeddings,
        )
        denoiser = self._denoiser(
            "decoder", self.networks.decoder, conditioning, guidance, (self.config.decoder_cin, *latent_hw)
        )
        state, _ = denoiser.generate(rng_key, n_particles=1)
        return state.integrator_state.position

    def decode(self, latents: Array, height: int, width: int) -> Array:
        """Decode to ``[B, 3, height, width]`` uint8 pixels."""
        pixels = self.networks.vqgan(latents)
        if pixels.ndim != 4:
            raise ValueError(f"Autoencoder returned shape {tuple(pixels.shape)}, expected [B, C, H, W].")
        # the latent grid is rounded up, crop back to the requested resolution
        return to_uint8(pixels[:, :, :height, :width])

    def sample(
        self,
        request: SampleRequest,
        sample_idx: int,
        prior_text_embeddings: Array,
        decoder_text_embeddings: Array,
    ) -> SampleResult:
        """Run both stages and the decode for one sample; independent of every other sample."""
        grid = latent_grid_size(request.height, request.width, self.config.resolution_multiple)
        sample_key = jax.random.fold_in(jax.random.PRNGKey(request.seed), sample_idx)
        prior_key, decoder_key = jax.random.split(sample_key)

        prior_latents = self.sample_prior(
            prior_key, prior_text_embeddings, self._guidance(self.config.prior, request.prior), grid
        )
        image_embeddings = prior_to_decoder(prior_latents, self.config.latent_mean, self.config.latent_std)
        latents = self.sample_decoder(
            decoder_key,
            image_embeddings,
            decoder_text_embeddings,
            self._guidance(self.config.decoder, request.decoder),
        )

        self._log(f"Generating the final image for sample {sample_idx + 1}/{request.num_samples}.")
        pixels = self.decode(latents, request.height, request.width)[0]
        filename = None
        if self.networks.image_writer is not None:
            filename = output_filename(request.final_image, sample_idx + 1, request.num_samples, None)
            self.networks.image_writer(pixels, filename)
            self._log(f"Saved {filename}")
        return SampleResult(sample_idx, image_embeddings, latents, pixels, filename)

    def generate(self, request: SampleRequest) -> list[SampleResult]:
        """Generate ``request.num_samples`` images; the first failure aborts the run."""
        self.validate(request)
        prior_text_embeddings = self.networks.prior_encoder(request.prompt, request.negative_prompt)
        decoder_text_embeddings = self.networks.decoder_encoder(request.prompt, request.negative_prompt)
        self._log(f"Prior conditioning {tuple(prior_text_embeddings.shape)}")
        return [
            self.sample(request, idx, prior_text_embeddings, decoder_text_embeddings)
            for idx in range(request.num_samples)
        ]
