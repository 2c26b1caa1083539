"""Resolve weights and lazily build the opaque cascade networks."""

from __future__ import annotations

import importlib
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import jax

from cascade.conditioning import PromptEncoder, load_tokenizer
from cascade.config import CascadeConfig
from cascade.pipeline import CascadeNetworks
from cascade.resolver import ModelFile

COMPONENT_FILES: dict[str, ModelFile] = {
    "prior_clip": ModelFile.PRIOR_CLIP,
    "clip": ModelFile.CLIP,
    "prior": ModelFile.PRIOR,
    "decoder": ModelFile.DECODER,
    "vqgan": ModelFile.VQGAN,
}


class NetworkFactory(Protocol):
    """Builds one network callable from its weight file.

    ``component`` is one of ``COMPONENT_FILES``; text encoders must follow
    ``cascade.conditioning.TextEncoder`` and the two stages
    ``cascade.predictor.NoiseNetwork``.
    """

    def __call__(
        self,
        component: str,
        weights: Path,
        *,
        device: jax.Device,
        config: CascadeConfig,
        sliced_attention_size: int | None,
    ) -> Callable[..., Any]: ...


def import_factory(target: str) -> NetworkFactory:
    """Import ``package.module:callable``."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Network factory must be given as 'module:callable', got '{target}'.")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError:
        raise ValueError(f"Module '{module_name}' has no attribute '{attr}'.") from None


def select_device(cpu: bool = False) -> jax.Device:
    """CPU when requested, otherwise the first GPU, falling back to CPU when none is present."""
    if cpu:
        return jax.devices("cpu")[0]
    try:
        gpu_devices = jax.devices("gpu")
    except RuntimeError:
        gpu_devices = []
    return gpu_devices[0] if gpu_devices else jax.devices("cpu")[0]


class CascadeModelLoader:
    """Resolve every weight file up-front and build each network once through the factory.

    Nothing is instantiated until ``build_networks``; repeated calls reuse the built networks.
    """

    def __init__(
        self,
        *,
        factory: NetworkFactory,
        config: CascadeConfig,
        device: jax.Device,
        weights: dict[str, str | Path | None] | None = None,
        tokenizer: str | Path | None = None,
        prior_tokenizer: str | Path | None = None,
        sliced_attention_size: int | None = None,
        verbose: bool = False,
    ):
        self.factory = factory
        self.config = config
        self.device = device
        self.sliced_attention_size = sliced_attention_size
        self.verbose = verbose
        weights = weights or {}

        unknown = set(weights) - set(COMPONENT_FILES)
        if unknown:
            raise ValueError(f"Unknown weight overrides: {', '.join(sorted(unknown))}")

        self._log(f"[cascade-loader] Active compute device: {self.device.platform}:{self.device.id}")
        self.weight_paths: dict[str, Path] = {
            component: model_file.get(weights.get(component)) for component, model_file in COMPONENT_FILES.items()
        }
        self.tokenizer = load_tokenizer(ModelFile.TOKENIZER.get(tokenizer))
        self.prior_tokenizer = load_tokenizer(ModelFile.PRIOR_TOKENIZER.get(prior_tokenizer))

        self._component_modules: dict[str, Callable[..., Any] | None] = {name: None for name in COMPONENT_FILES}

    def _log(self, message: str) -> None:
        if self.verbose:
            print(message, flush=True)

    def _get_component(self, component: str) -> Callable[..., Any]:
        if component not in self._component_modules:
            raise RuntimeError(f"Requested component '{component}' is not available.")
        module = self._component_modules[component]
        if module is None:
            self._log(f"[cascade-loader] Building {component} from {self.weight_paths[component]}")
            module = self.factory(
                component,
                self.weight_paths[component],
                device=self.device,
                config=self.config,
                sliced_attention_size=self.sliced_attention_size,
            )
            if module is None:
                raise RuntimeError(f"Network factory returned nothing for '{component}'.")
            self._component_modules[component] = module
        return module

    def build_networks(self) -> CascadeNetworks:
        prior_text = self.config.prior_text_encoder
        decoder_text = self.config.decoder_text_encoder
        return CascadeNetworks(
            prior_encoder=PromptEncoder(
                self.prior_tokenizer,
                self._get_component("prior_clip"),
                prior_text.max_position_embeddings,
                pad_with=prior_text.pad_with,
                embed_dim=prior_text.embed_dim,
                verbose=self.verbose,
            ),
            decoder_encoder=PromptEncoder(
                self.tokenizer,
                self._get_component("clip"),
                decoder_text.max_position_embeddings,
                pad_with=decoder_text.pad_with,
                embed_dim=decoder_text.embed_dim,
            ),
            prior=self._get_component("prior"),
            decoder=self._get_component("decoder"),
            vqgan=self._get_component("vqgan"),
        )
