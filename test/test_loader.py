import jax
import pytest

from cascade.config import CascadeConfig
from cascade.loader import COMPONENT_FILES, CascadeModelLoader, import_factory, select_device
from cascade.pipeline import CascadeNetworks

from conftest import CountingNetwork, FakeVQGAN, RecordingTextEncoder, make_tokenizer


def fake_factory(component, weights, *, device, config, sliced_attention_size):
    if component == "prior_clip":
        return RecordingTextEncoder(embed_dim=config.prior_text_encoder.embed_dim)
    if component == "clip":
        return RecordingTextEncoder(embed_dim=config.decoder_text_encoder.embed_dim)
    if component == "vqgan":
        return FakeVQGAN()
    return CountingNetwork()


@pytest.fixture
def model_files(tmp_path):
    weights = {}
    for component in COMPONENT_FILES:
        path = tmp_path / f"{component}.safetensors"
        path.touch()
        weights[component] = path
    tokenizer = tmp_path / "tokenizer.json"
    make_tokenizer().save(str(tokenizer))
    return weights, tokenizer


def _loader(model_files, factory=fake_factory, **kwargs):
    weights, tokenizer = model_files
    return CascadeModelLoader(
        factory=factory,
        config=CascadeConfig(),
        device=jax.devices("cpu")[0],
        weights=weights,
        tokenizer=tokenizer,
        prior_tokenizer=tokenizer,
        **kwargs,
    )


def test_build_networks(model_files):
    built = []

    def factory(component, weights, **kwargs):
        built.append((component, weights.name, kwargs["sliced_attention_size"]))
        return fake_factory(component, weights, **kwargs)

    loader = _loader(model_files, factory=factory, sliced_attention_size=0)
    assert built == []

    networks = loader.build_networks()

    assert isinstance(networks, CascadeNetworks)
    assert sorted(name for name, _, _ in built) == sorted(COMPONENT_FILES)
    assert all(weights == f"{name}.safetensors" and size == 0 for name, weights, size in built)
    assert networks.prior_encoder.pad_id == 3
    assert networks.prior_encoder.max_length == 77
    assert networks.decoder_encoder.pad_id == 2
    assert networks.prior_encoder.embed_dim == 1280
    assert networks.decoder_encoder.embed_dim == 1024


def test_text_encoder_width_follows_config(model_files):
    def narrow_factory(component, weights, **kwargs):
        if component == "clip":
            return RecordingTextEncoder(embed_dim=16)
        return fake_factory(component, weights, **kwargs)

    networks = _loader(model_files, factory=narrow_factory).build_networks()
    assert networks.prior_encoder("a red cube").shape == (2, 77, 1280)
    with pytest.raises(ValueError, match="1024"):
        networks.decoder_encoder("a red cube")


def test_components_are_built_once(model_files):
    built = []

    def factory(component, weights, **kwargs):
        built.append(component)
        return fake_factory(component, weights, **kwargs)

    loader = _loader(model_files, factory=factory)
    loader.build_networks()
    loader.build_networks()
    assert len(built) == len(COMPONENT_FILES)


def test_missing_weight_override(model_files, tmp_path):
    weights, tokenizer = model_files
    weights = {**weights, "vqgan": tmp_path / "absent.safetensors"}
    with pytest.raises(FileNotFoundError, match="vqgan"):
        _loader((weights, tokenizer))


def test_unknown_weight_override(model_files):
    weights, tokenizer = model_files
    with pytest.raises(ValueError, match="upscaler"):
        _loader(({**weights, "upscaler": weights["prior"]}, tokenizer))


def test_factory_returning_nothing(model_files):
    loader = _loader(model_files, factory=lambda component, weights, **kwargs: None)
    with pytest.raises(RuntimeError, match="prior_clip"):
        loader.build_networks()


def test_import_factory():
    assert import_factory("conftest:make_tokenizer") is make_tokenizer
    with pytest.raises(ValueError):
        import_factory("conftest")
    with pytest.raises(ValueError, match="no attribute"):
        import_factory("conftest:missing")


def test_select_device():
    assert select_device(cpu=True).platform == "cpu"
    assert select_device() in jax.devices()
