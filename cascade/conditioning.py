"""Text conditioning for classifier-free guidance.

Both prompts are tokenized, right-padded to the text encoder's
``max_position_embeddings`` and encoded with the encoder told the true token
count. The two embeddings are stacked unconditional first, which is the order
``cascade.predictor.split_batch`` relies on.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import jax.numpy as jnp
import numpy as np
from jaxtyping import Array
from tokenizers import Tokenizer

DEFAULT_PAD_TOKEN = "<|endoftext|>"


class TextEncoder(Protocol):
    """CLIP-style text transformer attending only to the first ``valid_length`` tokens."""

    def __call__(self, token_ids: Array, valid_length: int) -> Array: ...


def load_tokenizer(path: str | Path) -> Tokenizer:
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Tokenizer file missing: {path}")
    return Tokenizer.from_file(str(path))


def resolve_pad_id(tokenizer: Any, pad_with: str | None = None) -> int:
    """Id of the padding token: ``pad_with`` when configured, else the end-of-text token."""
    token = DEFAULT_PAD_TOKEN if pad_with is None else pad_with
    vocab = tokenizer.get_vocab(with_added_tokens=True)
    if token not in vocab:
        raise ValueError(f"Padding token '{token}' is not in the tokenizer vocabulary.")
    return int(vocab[token])


def tokenize_padded(tokenizer: Any, text: str, max_length: int, pad_id: int) -> tuple[np.ndarray, int]:
    """Tokenize ``text`` and right-pad to ``max_length``.

    Returns:
        ``(token_ids, valid_length)`` with ``len(token_ids) == max_length`` and
        ``valid_length <= max_length``. Longer prompts are truncated.
    """
    if max_length < 1:
        raise ValueError(f"max_length must be >= 1, got {max_length}")
    encoding = tokenizer.encode(text)
    mask = getattr(encoding, "attention_mask", None)
    ids = list(encoding.ids)
    if mask is not None and len(mask) == len(ids):
        # tokenizer.json may ship with padding enabled
        ids = [token for token, keep in zip(ids, mask) if keep]
    ids = ids[:max_length]
    valid_length = len(ids)
    ids.extend([pad_id] * (max_length - valid_length))
    return np.asarray(ids, dtype=np.int32), valid_length


@dataclass
class PromptEncoder:
    """Tokenizer and text encoder pair producing guidance-ready embeddings.

    Attributes:
        tokenizer: ``tokenizers.Tokenizer`` or any object with ``encode`` and ``get_vocab``
        text_encoder: Encoder called as ``text_encoder(ids[1, T], valid_length)``
        max_length: Padded sequence length (the encoder's ``max_position_embeddings``)
        pad_with: Padding token, ``None`` for the end-of-text token
        embed_dim: Expected embedding width D, ``None`` to accept any width
        verbose: Print progress messages
    """

    tokenizer: Any
    text_encoder: TextEncoder
    max_length: int
    pad_with: str | None = None
    embed_dim: int | None = None
    verbose: bool = False

    def __post_init__(self):
        if self.max_length < 1:
            raise ValueError(f"max_length must be >= 1, got {self.max_length}")
        self.pad_id = resolve_pad_id(self.tokenizer, self.pad_with)

    def _log(self, message: str) -> None:
        if self.verbose:
            print(message, flush=True)

    def encode(self, text: str) -> Array:
        token_ids, valid_length = tokenize_padded(self.tokenizer, text, self.max_length, self.pad_id)
        embeddings = self.text_encoder(jnp.asarray(token_ids)[None, :], valid_length)
        width = embeddings.shape[-1] if self.embed_dim is None else self.embed_dim
        if embeddings.ndim != 3 or embeddings.shape != (1, self.max_length, width):
            expected = "D" if self.embed_dim is None else self.embed_dim
            raise ValueError(
                f"Text encoder returned shape {tuple(embeddings.shape)}, expected (1, {self.max_length}, {expected})."
            )
        return embeddings

    def __call__(self, prompt: str, negative_prompt: str = "") -> Array:
        """Build the ``[2, T, D]`` conditioning, negative prompt first."""
        self._log(f'[cascade] Running with prompt "{prompt}".')
        uncond_embeddings = self.encode(negative_prompt)
        text_embeddings = self.encode(prompt)
        return jnp.concatenate([uncond_embeddings, text_embeddings], axis=0)


def encode_prompt(
    prompt: str,
    negative_prompt: str,
    tokenizer: Any,
    text_encoder: TextEncoder,
    max_length: int,
    pad_with: str | None = None,
) -> Array:
    """Conditioning embedding ``[2, max_length, D]`` with the negative prompt at index 0."""
    encoder = PromptEncoder(tokenizer, text_encoder, max_length, pad_with=pad_with)
    return encoder(prompt, negative_prompt)
