import jax
import jax.numpy as jnp
import numpy as np
import pytest

from cascade.denoisers import Denoiser
from cascade.diffusion.sde import CosineDiffusion
from cascade.integrator import DDIMIntegrator, DDPMIntegrator
from cascade.predictor import Predictor
from cascade.timer.base import RatioTimer

from conftest import CountingNetwork


def _denoiser(network, n_steps=3, batch=1, integrator_class=DDPMIntegrator, **kwargs):
    integrator = integrator_class(model=CosineDiffusion(), timer=RatioTimer(n_steps=n_steps))
    predictor = Predictor(network=network, conditioning=jnp.zeros((2 * batch, 5, 8)), guidance_scale=4.0)
    return Denoiser(integrator=integrator, predictor=predictor, x0_shape=(4, 3, 3), progress=False, **kwargs)


@pytest.mark.parametrize("n_steps", [1, 2, 5])
def test_generate_calls_network_once_per_step(n_steps):
    network = CountingNetwork()
    denoiser = _denoiser(network, n_steps=n_steps)

    state, history = denoiser.generate(jax.random.PRNGKey(0))

    assert state.integrator_state.position.shape == (1, 4, 3, 3)
    assert state.integrator_state.step == n_steps
    assert history is None
    assert len(network.calls) == n_steps
    assert all(latent.shape == (2, 4, 3, 3) for latent, _, _ in network.calls)
    # first call at t = 1, the noisiest entry
    np.testing.assert_allclose(network.calls[0][1], [1.0, 1.0])


def test_generate_keeps_history():
    denoiser = _denoiser(CountingNetwork(), n_steps=4, batch=2)
    state, history = denoiser.generate(jax.random.PRNGKey(0), n_particles=2, keep_history=True)

    assert history.shape == (4, 2, 4, 3, 3)
    np.testing.assert_array_equal(history[-1], state.integrator_state.position)


def test_generate_is_reproducible_for_a_key():
    a, _ = _denoiser(CountingNetwork()).generate(jax.random.PRNGKey(5))
    b, _ = _denoiser(CountingNetwork()).generate(jax.random.PRNGKey(5))
    c, _ = _denoiser(CountingNetwork()).generate(jax.random.PRNGKey(6))

    np.testing.assert_array_equal(a.integrator_state.position, b.integrator_state.position)
    assert not np.allclose(a.integrator_state.position, c.integrator_state.position)


def test_generate_rejects_particle_mismatch_before_network_call():
    network = CountingNetwork()
    denoiser = _denoiser(network, batch=1)
    with pytest.raises(ValueError, match="particle"):
        denoiser.generate(jax.random.PRNGKey(0), n_particles=2)
    assert network.calls == []


def test_initial_noise_scaling():
    key = jax.random.PRNGKey(0)
    plain = _denoiser(CountingNetwork()).initial_noise(key, 1)
    scaled = _denoiser(CountingNetwork(), init_noise_sigma=3.0).initial_noise(key, 1)
    np.testing.assert_allclose(scaled, 3.0 * plain, rtol=1e-6)


def test_network_errors_propagate():
    def broken(latent, t, conditioning):
        raise RuntimeError("out of memory")

    with pytest.raises(RuntimeError, match="out of memory"):
        _denoiser(broken, integrator_class=DDIMIntegrator).generate(jax.random.PRNGKey(0))


def test_invalid_latent_shape():
    with pytest.raises(ValueError):
        Denoiser(
            integrator=DDPMIntegrator(model=CosineDiffusion(), timer=RatioTimer(n_steps=1)),
            predictor=Predictor(network=CountingNetwork(), conditioning=jnp.zeros((2, 1)), guidance_scale=1.0),
            x0_shape=(4, 0, 3),
        )
