import jax

# Identities are checked to double precision.
jax.config.update("jax_enable_x64", True)

import jax.numpy as jnp  # noqa: E402
import pytest  # noqa: E402

from jax_ibpm.base import grids  # noqa: E402


@pytest.fixture
def grid():
    return grids.Grid.from_limits((-1.0, 1.0), (-0.75, 0.75), 0.1)


@pytest.fixture
def circle():
    """Twelve points on a circle of radius 0.3 centred at the origin."""
    theta = jnp.linspace(0.0, 2 * jnp.pi, 12, endpoint=False)
    return grids.VectorData(0.3 * jnp.cos(theta), 0.3 * jnp.sin(theta))
