"""Weight and tokenizer file resolution with Hugging Face Hub fetch-on-miss."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from huggingface_hub import hf_hub_download
from huggingface_hub.errors import HfHubHTTPError, LocalEntryNotFoundError

REPO_MAIN = "warp-ai/wuerstchen"
REPO_PRIOR = "warp-ai/wuerstchen-prior"


class ModelFile(Enum):
    TOKENIZER = (REPO_MAIN, "tokenizer/tokenizer.json")
    PRIOR_TOKENIZER = (REPO_PRIOR, "tokenizer/tokenizer.json")
    CLIP = (REPO_MAIN, "text_encoder/model.safetensors")
    PRIOR_CLIP = (REPO_PRIOR, "text_encoder/model.safetensors")
    DECODER = (REPO_MAIN, "decoder/diffusion_pytorch_model.safetensors")
    VQGAN = (REPO_MAIN, "vqgan/diffusion_pytorch_model.safetensors")
    PRIOR = (REPO_PRIOR, "prior/diffusion_pytorch_model.safetensors")

    @property
    def repo_id(self) -> str:
        return self.value[0]

    @property
    def filename(self) -> str:
        return self.value[1]

    def get(self, override: str | Path | None = None, cache_dir: str | Path | None = None) -> Path:
        """Local path of this file: ``override`` when given, else the hub cache.

        Raises:
            FileNotFoundError: the override does not exist or the hub fetch failed.
        """
        if override is not None:
            path = Path(override).expanduser()
            if not path.exists():
                raise FileNotFoundError(f"{self.name.lower()}: override file {path} does not exist.")
            return path
        try:
            local = hf_hub_download(
                repo_id=self.repo_id,
                filename=self.filename,
                cache_dir=str(cache_dir) if cache_dir is not None else None,
            )
        except (HfHubHTTPError, LocalEntryNotFoundError, OSError) as err:
            raise FileNotFoundError(
                f"{self.name.lower()}: could not fetch {self.filename} from {self.repo_id}: {err}"
            ) from err
        return Path(local)


def resolve(name: str | ModelFile, override: str | Path | None = None, cache_dir: str | Path | None = None) -> Path:
    """Resolve a logical model file name (e.g. ``"prior_clip"``) to a local path."""
    if isinstance(name, str):
        try:
            name = ModelFile[name.upper()]
        except KeyError:
            available = ", ".join(m.name.lower() for m in ModelFile)
            raise ValueError(f"Unknown model file '{name}'. Available: {available}") from None
    return name.get(override, cache_dir=cache_dir)
