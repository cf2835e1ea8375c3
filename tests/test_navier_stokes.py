import jax
import jax.numpy as jnp
import numpy as np
import pytest

from jax_ibpm.base import grids
from jax_ibpm.base import kinematics
from jax_ibpm.base import regularization
from jax_ibpm.base import time_stepping
from jax_ibpm.base.grids import CellType
from jax_ibpm.systems import ConfigurationError, ConstraintOperators, NavierStokes


LIMITS = ((-1.0, 1.0), (-1.0, 1.0))


def _system(**kwargs):
    params = dict(reynolds=200.0, dx=0.05, xlimits=LIMITS[0], ylimits=LIMITS[1], dt=0.01)
    params.update(kwargs)
    return NavierStokes(**params)


def _blob(system, center=(0.1, -0.05), radius=0.4):
    x, y = system.coordinates("dual_nodes")
    r2 = ((x - center[0]) ** 2 + (y - center[1]) ** 2) / radius**2
    return grids.Nodes(jnp.maximum(0.0, 1.0 - r2) ** 2, CellType.DUAL, system.grid)


def _random_vorticity(system, seed=0):
    data = jax.random.normal(jax.random.PRNGKey(seed), system.shape)
    return grids.Nodes(data, CellType.DUAL, system.grid)


def _random_traction(n, seed=0):
    ku, kv = jax.random.split(jax.random.PRNGKey(seed))
    return grids.VectorData(jax.random.normal(ku, (n,)), jax.random.normal(kv, (n,)))


def test_introspection():
    system = NavierStokes(100.0, 0.25, (-1.0, 1.0), (-0.5, 0.5), 0.01)
    assert system.shape == (10, 6)
    assert system.size(0) == 10
    assert system.size(1) == 6
    assert system.origin == (4, 2)
    assert system.dx == 0.25
    assert system.rk is time_stepping.RK31
    assert len(system.points) == 0
    assert repr(system) == "Navier-Stokes system on a grid of size 10 x 6"

    with pytest.raises(ValueError):
        system.size(2)


def test_points_formats(circle):
    pairs = np.stack([np.asarray(circle.u), np.asarray(circle.v)], axis=1)
    for points in (circle, pairs, pairs.T.ravel()):
        system = _system(points=points)
        assert len(system.points) == 12
        assert np.allclose(system.points.u, circle.u)
        assert np.allclose(system.points.v, circle.v)


@pytest.mark.parametrize(
    "reynolds, dx, dt",
    [(200.0, 0.05, 0.01), (1.0, 0.1, 0.001), (1e4, 0.0125, 2.5e-4), (37.5, 0.3, 0.07)],
)
def test_intfact_parameter(reynolds, dx, dt):
    system = NavierStokes(reynolds, dx, (-1.0, 1.0), (-1.0, 1.0), dt)
    assert system.intfact_parameter(dt) == dt / (reynolds * dx**2)
    assert system.intfact_parameter() == dt / (reynolds * dx**2)
    assert system.intfact_parameter(dt / 2) == (dt / 2) / (reynolds * dx**2)


def test_invalid_configuration(circle):
    with pytest.raises(ConfigurationError):
        _system(reynolds=0.0)
    with pytest.raises(ConfigurationError):
        _system(dt=-0.01)
    with pytest.raises(ConfigurationError):
        _system(freestream=(1.0, 0.0, 0.0))
    with pytest.raises(ConfigurationError):
        _system(points=circle, static=False, store=True)
    with pytest.raises(ValueError):
        _system(kernel="gaussian")
    with pytest.raises(grids.InvalidDomainError):
        _system(xlimits=(1.0, -1.0))
    with pytest.raises(grids.InvalidDomainError):
        _system(dx=0.0)


def test_convective_rhs_zero_vorticity():
    system = _system()
    rhs = system.convective_rhs(grids.Nodes.zeros(system.grid), 0.0)
    assert isinstance(rhs, grids.Nodes)
    assert rhs.celltype == CellType.DUAL
    assert rhs.shape == system.shape
    assert np.allclose(rhs.data, 0.0)

    # A uniform flow does not convect a zero field either.
    system = _system(freestream=(1.0, 0.5))
    rhs = system.convective_rhs(np.zeros(system.shape), 0.0)
    assert np.allclose(rhs.data, 0.0)


@pytest.mark.parametrize("freestream", [(0.0, 0.0), (1.0, 0.0), (0.3, -0.7)])
def test_convective_rhs_conserves_circulation(freestream):
    system = _system(freestream=freestream)
    w = _blob(system)
    rhs = system.convective_rhs(w, 0.0)
    assert np.allclose(rhs.data[[0, -1], :], 0.0)
    assert np.allclose(rhs.data[:, [0, -1]], 0.0)
    assert np.isclose(rhs.data.sum(), 0.0, atol=1e-10)
    assert np.abs(rhs.data).max() > 0.0


def test_convective_rhs_translation():
    # Convection of a blob by a uniform stream, with no induced velocity:
    # -∇·(U w) = -U ∂w/∂x, in units of the cell size.
    system = _system(freestream=(1.0, 0.0))
    w = _blob(system)
    rhs = system.convective_rhs(w, 0.0)
    expected = -(w.data[2:, 1:-1] - w.data[:-2, 1:-1]) / (2 * system.dx)
    induced = system.convective_rhs(w, 0.0) - _system().convective_rhs(w, 0.0)
    assert np.allclose(induced.data[1:-1, 1:-1], expected)
    assert rhs.shape == system.shape


def test_convective_rhs_with_motion():
    w = _blob(_system())
    motion = kinematics.constant_velocity((0.8, -0.4))
    moving = _system().convective_rhs(w, 0.3, motion=motion)
    constant = _system(freestream=(0.8, -0.4)).convective_rhs(w, 0.3)
    assert np.allclose(moving.data, constant.data)


def test_convective_rhs_dimension_mismatch():
    system = _system()
    with pytest.raises(grids.DimensionMismatchError):
        system.convective_rhs(np.zeros((system.size(0) - 1, system.size(1))), 0.0)
    with pytest.raises(grids.DimensionMismatchError):
        system.convective_rhs(grids.Nodes.zeros(system.grid, CellType.PRIMAL), 0.0)


def test_convective_rhs_updates_workspace():
    system = _system(freestream=(1.0, 0.0))
    w = _blob(system)
    system.convective_rhs(w, 0.0)
    ws = system.workspace
    assert ws.qq.celltype == CellType.DUAL
    assert ws.ww.celltype == CellType.DUAL
    assert ws.ww.shape == system.grid.edge_shapes(CellType.DUAL)


def test_static_body_rhs(circle):
    system = _system(freestream=(1.0, 0.0), points=circle)
    rhs = system.body_constraint_rhs(grids.Nodes.zeros(system.grid), 0.0)
    assert len(rhs) == len(circle)
    assert np.allclose(rhs.u, -1.0)
    assert np.allclose(rhs.v, 0.0)


def test_static_body_rhs_with_motion(circle):
    system = _system(freestream=(1.0, 0.0), points=circle)
    motion = kinematics.oscillation((0.5, 0.0), frequency=1.0)
    rhs = system.body_constraint_rhs(grids.Nodes.zeros(system.grid), 0.0, motion)
    # c_dot = 2π f A at t = 0.
    assert np.allclose(rhs.u, -np.pi)
    assert np.allclose(rhs.v, 0.0)


def test_static_body_rejects_points(circle):
    system = _system(points=circle)
    w = grids.Nodes.zeros(system.grid)
    with pytest.raises(ConfigurationError):
        system.body_constraint_rhs(w, 0.0, points=circle)
    with pytest.raises(ConfigurationError):
        system.plan_constraints(w, 0.0, points=circle)


def test_missing_points():
    system = _system(store=True)
    w = grids.Nodes.zeros(system.grid)
    with pytest.raises(ConfigurationError):
        system.body_constraint_rhs(w, 0.0)
    with pytest.raises(ConfigurationError):
        system.plan_constraints(w, 0.0)


def test_moving_body_rhs(circle):
    system = _system(freestream=(1.0, 0.0), points=circle, static=False)
    motion = kinematics.constant_velocity((0.5, 0.0), angular_velocity=1.0)
    w = grids.Nodes.zeros(system.grid)

    rhs = system.body_constraint_rhs(w, 0.0, motion)
    assert np.allclose(rhs.u, 0.5 - circle.v - 1.0)
    assert np.allclose(rhs.v, circle.u)

    # Explicit current positions give the same answer as the transformed
    # body points.
    t = 0.7
    current = motion.transform(circle, t)
    implicit = system.body_constraint_rhs(w, t, motion)
    explicit = system.body_constraint_rhs(w, t, motion, points=current)
    assert np.allclose(implicit.u, explicit.u)
    assert np.allclose(implicit.v, explicit.v)


def test_moving_body_requires_motion_and_points(circle):
    system = _system(points=circle, static=False)
    w = grids.Nodes.zeros(system.grid)
    with pytest.raises(ConfigurationError):
        system.body_constraint_rhs(w, 0.0)
    with pytest.raises(ConfigurationError):
        system.plan_constraints(w, 0.0)
    with pytest.raises(ConfigurationError):
        system.plan_constraints(w, 0.0, points=grids.VectorData.zeros(3))


@pytest.mark.parametrize("store", [False, True])
def test_constraint_operators_are_adjoint(circle, store):
    system = _system(points=circle, store=store)
    w = _random_vorticity(system, seed=1)
    f = _random_traction(len(circle), seed=2)

    operators = system.plan_constraints(w, 0.0)
    assert isinstance(operators, ConstraintOperators)
    apply, sample = operators

    lhs = grids.inner(apply(f), system.streamfunction(w))
    rhs = grids.inner(f, -sample(w))
    assert np.isclose(lhs, rhs)


@pytest.mark.parametrize("store", [False, True])
def test_constraint_operator_shapes(circle, store):
    system = _system(points=circle, store=store)
    w = grids.Nodes.zeros(system.grid)
    apply, sample = system.plan_constraints(w, 0.0)

    dw = apply(_random_traction(len(circle)))
    assert isinstance(dw, grids.Nodes)
    assert dw.celltype == CellType.DUAL
    assert dw.shape == system.shape

    v = sample(_random_vorticity(system))
    assert isinstance(v, grids.VectorData)
    assert len(v) == len(circle)
    assert system.workspace.vb is v

    with pytest.raises(grids.DimensionMismatchError):
        apply(grids.VectorData.zeros(len(circle) - 1))
    with pytest.raises(grids.DimensionMismatchError):
        sample(np.zeros((3, 3)))


def test_cached_and_on_the_fly_operators_agree(circle):
    cached = _system(points=circle, store=True)
    on_the_fly = _system(points=circle, store=False)
    w = _random_vorticity(cached, seed=3)
    f = _random_traction(len(circle), seed=4)

    apply_c, sample_c = cached.plan_constraints(w, 0.0)
    apply_f, sample_f = on_the_fly.plan_constraints(w, 0.0)
    assert np.allclose(apply_c(f).data, apply_f(f).data)
    assert np.allclose(sample_c(w).u, sample_f(w).u)
    assert np.allclose(sample_c(w).v, sample_f(w).v)


def test_moving_body_operators_use_current_points(circle):
    static = _system(points=circle)
    body = grids.VectorData(circle.u + 0.5, circle.v)
    moving = _system(points=body, static=False)
    w = _random_vorticity(static, seed=5)
    f = _random_traction(len(circle), seed=6)

    apply_s, sample_s = static.plan_constraints(w, 0.0)
    apply_m, sample_m = moving.plan_constraints(w, 0.0, points=circle)
    assert np.allclose(apply_s(f).data, apply_m(f).data)
    assert np.allclose(sample_s(w).u, sample_m(w).u)


def test_sampled_velocity_of_vortex_is_tangential(circle):
    # A positive vortex centred on the body induces a counter-clockwise flow.
    system = _system(points=circle, freestream=(0.0, 0.0))
    w = _blob(system, center=(0.0, 0.0), radius=0.6)
    _, sample = system.plan_constraints(w, 0.0)
    sampled = sample(w)
    velocity = system.velocity(w)
    assert velocity.celltype == CellType.PRIMAL
    interpolated = regularization.Regularize(circle, system.grid).interpolate(velocity)
    assert np.allclose(interpolated.u, sampled.u)
    assert np.allclose(interpolated.v, sampled.v)
    # The induced velocity at the circle is tangential.
    radial = sampled.u * circle.u + sampled.v * circle.v
    tangential = -sampled.u * circle.v + sampled.v * circle.u
    assert np.allclose(radial, 0.0, atol=5e-2 * np.abs(tangential).max())
    assert np.all(tangential > 0)


def test_velocity_of_zero_vorticity_is_freestream():
    system = _system(freestream=(0.25, -1.0))
    velocity = system.velocity(grids.Nodes.zeros(system.grid))
    assert np.allclose(velocity.u, 0.25)
    assert np.allclose(velocity.v, -1.0)

    motion = kinematics.constant_velocity((2.0, 0.0))
    velocity = system.velocity(grids.Nodes.zeros(system.grid), 1.0, motion)
    assert np.allclose(velocity.u, 2.0)
    assert np.allclose(velocity.v, 0.0)


def test_coordinates():
    system = NavierStokes(100.0, 0.25, (-1.0, 1.0), (-0.5, 0.5), 0.01)
    x, y = system.coordinates("primal_nodes")
    assert x.shape == system.grid.node_shape(CellType.PRIMAL)
    assert np.isclose(x[system.origin], 0.0)
    assert np.isclose(y[system.origin], 0.0)
