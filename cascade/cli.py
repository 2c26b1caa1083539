#!/usr/bin/env python3
"""Two-stage text-to-image generation from the command line."""

from __future__ import annotations

import argparse
import contextlib
import sys
import time
from dataclasses import replace
from pathlib import Path

import jax

from cascade.config import CascadeConfig, load_config
from cascade.loader import CascadeModelLoader, import_factory, select_device
from cascade.pipeline import CascadePipeline, SampleRequest


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate images with a prior/decoder latent diffusion cascade.",
    )
    parser.add_argument(
        "--prompt",
        type=str,
        default="A very realistic photo of a rusty robot walking on a sandy beach",
        help="The prompt to be used for image generation.",
    )
    parser.add_argument("--uncond-prompt", type=str, default="", help="Negative prompt.")
    parser.add_argument("--cpu", action="store_true", help="Run on CPU rather than on GPU.")
    parser.add_argument("--height", type=int, default=None, help="The height in pixels of the generated image.")
    parser.add_argument("--width", type=int, default=None, help="The width in pixels of the generated image.")
    parser.add_argument("--decoder-weights", type=Path, default=None, help="The decoder weight file.")
    parser.add_argument("--clip-weights", type=Path, default=None, help="The CLIP weight file.")
    parser.add_argument(
        "--prior-clip-weights", type=Path, default=None, help="The CLIP weight file used by the prior model."
    )
    parser.add_argument("--prior-weights", type=Path, default=None, help="The prior weight file.")
    parser.add_argument("--vqgan-weights", type=Path, default=None, help="The VQGAN weight file.")
    parser.add_argument("--tokenizer", type=Path, default=None, help="The tokenizer file.")
    parser.add_argument("--prior-tokenizer", type=Path, default=None, help="The tokenizer file used by the prior.")
    parser.add_argument(
        "--sliced-attention-size",
        type=int,
        default=None,
        help="The size of the sliced attention or 0 for automatic slicing (disabled by default).",
    )
    parser.add_argument("--n-steps", type=int, default=None, help="The number of steps to run each stage for.")
    parser.add_argument("--num-samples", type=int, default=1, help="The number of samples to generate.")
    parser.add_argument(
        "--final-image", type=str, default="sd_final.png", help="The name of the final image to generate."
    )
    parser.add_argument("--seed", type=int, default=0, help="PRNG seed.")
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file.")
    parser.add_argument(
        "--networks",
        type=str,
        required=True,
        help="Network factory as 'module:callable', building each network from its weight file.",
    )
    parser.add_argument(
        "--tracing", action="store_true", help="Enable tracing (writes a JAX profiler trace of the generation)."
    )
    parser.add_argument(
        "--trace-dir", type=Path, default=None, help="Trace output directory, trace-<timestamp> by default."
    )
    parser.add_argument("--verbose", action="store_true", help="Print loading and sampling details.")
    return parser


def config_from_args(args: argparse.Namespace) -> CascadeConfig:
    config = load_config(args.config) if args.config is not None else CascadeConfig()
    if args.height is not None:
        config = replace(config, height=args.height)
    if args.width is not None:
        config = replace(config, width=args.width)
    if args.n_steps is not None:
        config = replace(
            config,
            prior=replace(config.prior, n_steps=args.n_steps),
            decoder=replace(config.decoder, n_steps=args.n_steps),
        )
    return config


def main(argv: list[str] | None = None) -> None:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    config = config_from_args(args)

    loader = CascadeModelLoader(
        factory=import_factory(args.networks),
        config=config,
        device=select_device(args.cpu),
        weights={
            "prior_clip": args.prior_clip_weights,
            "clip": args.clip_weights,
            "prior": args.prior_weights,
            "decoder": args.decoder_weights,
            "vqgan": args.vqgan_weights,
        },
        tokenizer=args.tokenizer,
        prior_tokenizer=args.prior_tokenizer,
        sliced_attention_size=args.sliced_attention_size,
        verbose=args.verbose,
    )
    pipeline = CascadePipeline(loader.build_networks(), config=config, verbose=args.verbose)
    request = SampleRequest(
        prompt=args.prompt,
        negative_prompt=args.uncond_prompt,
        height=config.height,
        width=config.width,
        num_samples=args.num_samples,
        seed=args.seed,
        final_image=args.final_image,
    )
    tracing = contextlib.nullcontext()
    if args.tracing:
        trace_dir = args.trace_dir if args.trace_dir is not None else Path(f"trace-{int(time.time())}")
        print(f"Writing trace to {trace_dir}", flush=True)
        tracing = jax.profiler.trace(str(trace_dir))
    with tracing:
        results = pipeline.generate(request)
    count = len(results)
    suffix = "image" if count == 1 else "images"
    print(f"Saved {count} {suffix}: {', '.join(r.filename for r in results if r.filename)}")


if __name__ == "__main__":
    main(sys.argv[1:])
