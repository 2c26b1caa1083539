import jax
import jax.numpy as jnp
import pytest
from tokenizers import Tokenizer
from tokenizers.models import WordLevel
from tokenizers.pre_tokenizers import Whitespace
from tokenizers.processors import TemplateProcessing

from cascade.conditioning import PromptEncoder
from cascade.pipeline import CascadeNetworks

VOCAB = {
    "<unk>": 0,
    "<|startoftext|>": 1,
    "<|endoftext|>": 2,
    "!": 3,
    "a": 4,
    "red": 5,
    "cube": 6,
    "blurry": 7,
    "photo": 8,
    "of": 9,
}


def make_tokenizer(vocab=None):
    """Word-level tokenizer wrapping prompts in start/end-of-text tokens, like CLIP."""
    vocab = dict(VOCAB if vocab is None else vocab)
    tokenizer = Tokenizer(WordLevel(vocab, unk_token="<unk>"))
    tokenizer.pre_tokenizer = Whitespace()
    if "<|startoftext|>" in vocab and "<|endoftext|>" in vocab:
        tokenizer.post_processor = TemplateProcessing(
            single="<|startoftext|> $A <|endoftext|>",
            special_tokens=[("<|startoftext|>", vocab["<|startoftext|>"]), ("<|endoftext|>", vocab["<|endoftext|>"])],
        )
    return tokenizer


class RecordingTextEncoder:
    """Embeds each token id as a constant row; remembers every call."""

    def __init__(self, embed_dim: int = 8):
        self.embed_dim = embed_dim
        self.calls = []

    def __call__(self, token_ids, valid_length):
        self.calls.append((token_ids, valid_length))
        mask = (jnp.arange(token_ids.shape[1]) < valid_length)[None, :, None]
        rows = jnp.broadcast_to(token_ids[..., None].astype(jnp.float32), (*token_ids.shape, self.embed_dim))
        return rows * mask + 0.01 * valid_length


class CountingNetwork:
    """Stage network returning ``scale * latent``; records every input it sees."""

    def __init__(self, scale: float = 0.1):
        self.scale = scale
        self.calls = []

    def __call__(self, latent, t, conditioning):
        self.calls.append((latent, t, conditioning))
        return self.scale * latent


class FakeVQGAN:
    """Upsamples the decoder latent 4x into three channels in [0, 1]."""

    def __init__(self):
        self.calls = []

    def __call__(self, latents):
        self.calls.append(latents)
        pixels = jax.nn.sigmoid(latents[:, :3])
        return jnp.repeat(jnp.repeat(pixels, 4, axis=2), 4, axis=3)


class RecordingWriter:
    def __init__(self):
        self.saved = []

    def __call__(self, pixels, filename):
        self.saved.append((pixels, filename))


@pytest.fixture
def tokenizer():
    return make_tokenizer()


@pytest.fixture
def fake_networks():
    """Build a ``CascadeNetworks`` bundle of fakes; the fakes stay reachable as attributes."""

    def _build(max_length: int = 8):
        prior_clip = RecordingTextEncoder(embed_dim=12)
        clip = RecordingTextEncoder(embed_dim=8)
        networks = CascadeNetworks(
            prior_encoder=PromptEncoder(make_tokenizer(), prior_clip, max_length, pad_with="!"),
            decoder_encoder=PromptEncoder(make_tokenizer(), clip, max_length),
            prior=CountingNetwork(0.1),
            decoder=CountingNetwork(0.2),
            vqgan=FakeVQGAN(),
            image_writer=RecordingWriter(),
        )
        networks.prior_clip = prior_clip
        networks.clip = clip
        return networks

    return _build
