from cascade.conditioning import PromptEncoder, encode_prompt
from cascade.config import CascadeConfig, StageConfig, TextEncoderConfig, load_config
from cascade.denoisers.denoiser import Denoiser
from cascade.images import output_filename
from cascade.pipeline import (
    CascadeNetworks,
    CascadePipeline,
    DecoderConditioning,
    GuidanceConfig,
    SampleRequest,
    SampleResult,
    latent_grid_size,
    prior_to_decoder,
)
from cascade.predictor import Predictor, classifier_free_guidance
from cascade.timer.schedule import Schedule, make_schedule

__all__ = [
    "CascadeConfig",
    "CascadeNetworks",
    "CascadePipeline",
    "DecoderConditioning",
    "Denoiser",
    "GuidanceConfig",
    "Predictor",
    "PromptEncoder",
    "SampleRequest",
    "SampleResult",
    "Schedule",
    "StageConfig",
    "TextEncoderConfig",
    "classifier_free_guidance",
    "encode_prompt",
    "latent_grid_size",
    "load_config",
    "make_schedule",
    "output_filename",
    "prior_to_decoder",
]
