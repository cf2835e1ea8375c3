# Copyright 2021 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
The discrete Navier-Stokes equations in vorticity form, with immersed bodies.

The `NavierStokes` system owns the discretization (the grid, the planned
Laplacian, the boundary points and the transfer operators) and supplies an
external constrained Runge-Kutta integrator with everything it needs to
advance the saddle-point system

  dw/dt = L w / (Re dx²) + r₁(w, t) - B₁ᵀ f
  B₂ w = r₂(w, t)

where `w` is the vorticity on the dual nodes and `f` the traction on the
boundary points. The system provides:

1.  `convective_rhs`: `r₁`, the non-linear convective term `-∇·(u w)`.
2.  `body_constraint_rhs`: `r₂`, the surface velocity that the flow induced
    at the boundary points must cancel.
3.  `plan_constraints`: the constraint operators `B₁ᵀ` (traction to
    vorticity) and `B₂` (vorticity to surface velocity) for one stage.
4.  `intfact_parameter`: the rescaled time step of the integrating factor
    used for the viscous term.

Throughout, `curl(L⁻¹ w)` is the *negative* of the velocity. The sign is
carried through the convective term and the constraint operators rather than
being corrected up front.

**Design of the variants:**
The behaviour differs along two axes, each chosen once at construction and
stored as a small strategy object:

- Body kinematics: a `StaticBody` has its boundary points fixed in the
  inertial frame; a `MovingBody` has them in body-fixed coordinates, and the
  current inertial positions are supplied at every stage.
- Operator policy: `CachedTransfer` stores the sparse regularization matrices
  built at construction; `OnTheFlyTransfer` rebuilds the transfer operators
  at every stage.

A moving body cannot use stored matrices, so that combination is rejected
when the system is built.
"""

import dataclasses
import logging
from typing import Optional, Sequence, Tuple, Union

import jax
import jax.numpy as jnp
from jax_ibpm.base import convolution_functions
from jax_ibpm.base import finite_differences as fd
from jax_ibpm.base import grids
from jax_ibpm.base import kinematics
from jax_ibpm.base import poisson
from jax_ibpm.base import regularization
from jax_ibpm.base import time_stepping
from jax_ibpm.systems import constraints
import numpy as np

log = logging.getLogger(__name__)

Array = grids.Array
CellType = grids.CellType
Edges = grids.Edges
Nodes = grids.Nodes
VectorData = grids.VectorData
PointsLike = Union[VectorData, Array, Sequence[Sequence[float]]]


class ConfigurationError(Exception):
  """Raised for an incompatible or incomplete system configuration."""


def _as_points(points: Optional[PointsLike]) -> VectorData:
  """Converts the accepted point formats to `VectorData`."""
  if points is None:
    return VectorData.zeros(0)
  if isinstance(points, VectorData):
    return points
  return VectorData.from_array(points)


@dataclasses.dataclass
class Workspace:
  """
  Scratch fields owned by one `NavierStokes` system.

  Every evaluation of the system rebinds these fields to its intermediate
  results, so a system must be used by one caller at a time, with calls made
  in the order the integrator issues them. Independent simulations need
  independent systems.

  Attributes:
    vb: Point data, the last surface velocity sampled by `B₂`.
    fq: Primal edge data, the last traction spread by `B₁ᵀ`.
    ww: Dual edge data, the vorticity shifted onto the dual edges.
    qq: Dual edge data, the (negative) velocity on the dual edges.
  """
  vb: VectorData
  fq: Edges
  ww: Edges
  qq: Edges

  @classmethod
  def allocate(cls, grid: grids.Grid, n: int, dtype) -> 'Workspace':
    return cls(
        vb=VectorData.zeros(n, dtype),
        fq=Edges.zeros(grid, CellType.PRIMAL, dtype),
        ww=Edges.zeros(grid, CellType.DUAL, dtype),
        qq=Edges.zeros(grid, CellType.DUAL, dtype))


class StaticBody:
  """Boundary points fixed in the inertial frame for the life of the system."""
  moving = False

  def current_points(self, system: 'NavierStokes',
                     points: Optional[PointsLike]) -> VectorData:
    if points is not None:
      raise ConfigurationError(
          'the points of a static body are fixed when the system is built')
    return system.points

  def body_velocity(self, system: 'NavierStokes', t, motion, points) -> VectorData:
    """
    The relative surface velocity of a body at rest: minus the free stream.
    """
    self.current_points(system, points)
    ux, uy = system.freestream_velocity(t, motion)
    n = len(system.points)
    return VectorData(jnp.full(n, -ux, system.dtype),
                      jnp.full(n, -uy, system.dtype))


class MovingBody:
  """
  Boundary points given in body-fixed coordinates.

  The inertial positions change at every stage and are supplied by the caller.
  """
  moving = True

  def current_points(self, system: 'NavierStokes',
                     points: Optional[PointsLike]) -> VectorData:
    if points is None:
      raise ConfigurationError(
          'a moving body needs the current inertial positions of its points')
    points = _as_points(points)
    if len(points) != len(system.points):
      raise ConfigurationError(
          f'expected {len(system.points)} boundary points, got {len(points)}')
    return points

  def body_velocity(self, system: 'NavierStokes', t, motion, points) -> VectorData:
    """
    The rigid-body velocity `ċ + α̇ ẑ × (X - c)` at the current points,
    relative to the free stream.
    """
    if motion is None:
      raise ConfigurationError(
          'the surface velocity of a moving body requires its motion')
    if points is None:
      points = motion.transform(system.points, t)
    else:
      points = self.current_points(system, points)
    ux, uy = system.freestream
    velocity = motion.surface_velocity(points, t)
    return VectorData(velocity.u - ux, velocity.v - uy)


class CachedTransfer:
  """Transfer operators stored as sparse matrices, built once."""
  stored = True

  def __init__(self, points: VectorData, grid: grids.Grid, kernel: str):
    self.matrix = None
    if len(points):
      self.matrix = regularization.Regularize(points, grid, kernel).matrix()

  def operator(self, points: VectorData) -> regularization.RegularizationMatrix:
    return self.matrix


class OnTheFlyTransfer:
  """Transfer operators rebuilt from the given points at every stage."""
  stored = False

  def __init__(self, grid: grids.Grid, kernel: str):
    self.grid = grid
    self.kernel = kernel

  def operator(self, points: VectorData) -> regularization.Regularize:
    return regularization.Regularize(points, self.grid, self.kernel)


class NavierStokes:
  """
  A system of `NX x NY` dual cells and `N` boundary points solving the
  discrete Navier-Stokes equations in vorticity form.

  Args:
    reynolds: The Reynolds number `Re`.
    dx: The cell size.
    xlimits: `(xmin, xmax)` of the domain, excluding ghost cells.
    ylimits: `(ymin, ymax)` of the domain, excluding ghost cells.
    dt: The time step.
    freestream: The constant free-stream velocity `(Ux, Uy)`.
    points: The boundary points, as `VectorData`, an `(N, 2)` array or a
      `(2N,)` buffer of x-coordinates followed by y-coordinates. Inertial
      coordinates for a static body, body-fixed coordinates otherwise.
    store: Whether to store the transfer operators as sparse matrices. This is
      faster, at the cost of storage, and only allowed for a static body.
    static: Whether the boundary points are fixed in the inertial frame.
    rk: The Runge-Kutta scheme of the external integrator.
    kernel: The discrete delta function of the transfer operators.

  Raises:
    ConfigurationError: for a non-positive Reynolds number or time step, or a
      moving body with stored operators.
    grids.InvalidDomainError: for empty limits or a non-positive cell size.
  """

  def __init__(
      self,
      reynolds: float,
      dx: float,
      xlimits: Tuple[float, float],
      ylimits: Tuple[float, float],
      dt: float,
      freestream: Tuple[float, float] = (0.0, 0.0),
      points: Optional[PointsLike] = None,
      store: bool = False,
      static: bool = True,
      rk: time_stepping.ButcherTableau = time_stepping.RK31,
      kernel: str = 'roma',
  ):
    if not reynolds > 0:
      raise ConfigurationError(f'Reynolds number must be positive: {reynolds}')
    if not dt > 0:
      raise ConfigurationError(f'time step must be positive: {dt}')
    if len(freestream) != 2:
      raise ConfigurationError(
          f'free stream must have two components: {freestream}')
    if store and not static:
      raise ConfigurationError(
          'transfer operators cannot be stored for a moving body')
    convolution_functions.get_kernel(kernel)

    self.reynolds = float(reynolds)
    self.freestream = tuple(float(u) for u in freestream)
    self.grid = grids.Grid.from_limits(xlimits, ylimits, dx)
    self.dt = float(dt)
    self.rk = rk
    self.kernel = kernel
    self.dtype = jax.dtypes.canonicalize_dtype(np.float64)
    self.laplacian = poisson.plan_laplacian(self.grid, with_inverse=True,
                                            dtype=self.dtype)
    self.points = _as_points(points)

    self.kinematics = StaticBody() if static else MovingBody()
    if store:
      self.transfer = CachedTransfer(self.points, self.grid, kernel)
    else:
      self.transfer = OnTheFlyTransfer(self.grid, kernel)
    self.workspace = Workspace.allocate(self.grid, len(self.points), self.dtype)

    log.info('Built %r: dx=%g, Re=%g, %d boundary points, %s body, %s '
             'transfer operators', self, self.dx, self.reynolds,
             len(self.points), 'moving' if self.kinematics.moving else 'static',
             'stored' if self.transfer.stored else 'on-the-fly')

  # --- Introspection ---

  @property
  def dx(self) -> float:
    return self.grid.step

  @property
  def shape(self) -> Tuple[int, int]:
    """The number of dual cells `(NX, NY)`, ghost cells included."""
    return self.grid.shape

  def size(self, d: int) -> int:
    """The number of dual cells along dimension `d` (0 for x, 1 for y)."""
    if d not in (0, 1):
      raise ValueError(f'dimension must be 0 or 1: {d}')
    return self.grid.shape[d]

  @property
  def origin(self) -> Tuple[int, int]:
    """
    The indices of the primal node at the physical origin.

    These need not lie inside the grid: if the grid covers
    `(1.0, 3.0) x (2.0, 4.0)`, the origin is outside of it.
    """
    return self.grid.origin

  def __repr__(self) -> str:
    nx, ny = self.shape
    return f'Navier-Stokes system on a grid of size {nx} x {ny}'

  # --- Right-hand sides ---

  def freestream_velocity(
      self, t, motion: Optional[kinematics.RigidBodyMotion] = None
  ) -> Tuple[Array, Array]:
    """
    The free stream at time `t`: the translational velocity of `motion`, if
    given, otherwise the constant free stream.
    """
    if motion is None:
      return self.freestream
    c_dot = motion(t).c_dot
    return c_dot[0], c_dot[1]

  def intfact_parameter(self, dt: Optional[float] = None) -> float:
    """
    The rescaled time step `dt / (Re dx²)` of the integrating factor.

    Args:
      dt: The time step. Defaults to the time step of the system.
    """
    if dt is None:
      dt = self.dt
    return dt / (self.reynolds * self.dx**2)

  def convective_rhs(self, w: Union[Nodes, Array], t,
                     motion: Optional[kinematics.RigidBodyMotion] = None) -> Nodes:
    """
    The non-linear convective term `-∇·(u w)` on the dual nodes.

    Args:
      w: The vorticity on the dual nodes.
      t: The time.
      motion: A prescribed motion whose translational velocity replaces the
        constant free stream.

    Returns:
      `Nodes` on the dual lattice, zero on the ghost nodes.
    """
    w = grids.as_dual_nodes(w, self.grid)
    ws = self.workspace
    ux, uy = self.freestream_velocity(t, motion)

    # The negative of the velocity, on the dual edges.
    qq = fd.cellshift(fd.curl(self.laplacian.solve(w)))
    ws.qq = dataclasses.replace(qq, u=qq.u - ux, v=qq.v - uy)
    ws.ww = fd.cellshift(w)
    return fd.divergence(fd.product(ws.qq, ws.ww)) / self.dx

  def body_constraint_rhs(
      self,
      w: Union[Nodes, Array],
      t,
      motion: Optional[kinematics.RigidBodyMotion] = None,
      points: Optional[PointsLike] = None,
  ) -> VectorData:
    """
    The surface velocity that the constraint drives the flow to cancel.

    For a static body this is minus the free stream at every point (or minus
    the translational velocity of `motion`, if given). For a moving body it is
    the rigid-body velocity of `motion` at the current points, relative to the
    free stream; the current points are `points` if given, otherwise the
    body-fixed points transformed by `motion`.

    Raises:
      ConfigurationError: if the system has no boundary points, a moving body
        is evaluated without its motion, or points are supplied for a static
        body.
    """
    grids.as_dual_nodes(w, self.grid)
    self._require_points()
    return self.kinematics.body_velocity(self, t, motion, points)

  # --- Constraint operators ---

  def _require_points(self) -> None:
    if not len(self.points):
      raise ConfigurationError('the system has no boundary points')

  def plan_constraints(self, w: Union[Nodes, Array], t,
                       points: Optional[PointsLike] = None
                       ) -> constraints.ConstraintOperators:
    """
    Plans the constraint operators `B₁ᵀ` and `B₂` for the current stage.

    `B₁ᵀ f = curl(H f)` spreads a traction onto the primal edges and takes
    its curl. `B₂ w = -E curl(L⁻¹ w)` samples the velocity induced by `w` at
    the points, with `E = Hᵀ`.

    Args:
      w: The vorticity on the dual nodes (only checked against the grid).
      t: The time.
      points: The current inertial positions of the points of a moving body.
        Must not be given for a static body.

    Returns:
      The `ConstraintOperators`, which also unpack as `(apply, sample)`.
    """
    grids.as_dual_nodes(w, self.grid)
    self._require_points()
    current = self.kinematics.current_points(self, points)
    transfer = self.transfer.operator(current)
    ws = self.workspace

    def apply(f: PointsLike) -> Nodes:
      ws.fq = transfer.spread(_as_points(f))
      return fd.curl(ws.fq)

    def sample(w: Union[Nodes, Array]) -> VectorData:
      w = grids.as_dual_nodes(w, self.grid)
      ws.vb = -transfer.interpolate(fd.curl(self.laplacian.solve(w)))
      return ws.vb

    return constraints.ConstraintOperators(apply, sample)

  # --- Diagnostics ---

  def streamfunction(self, w: Union[Nodes, Array]) -> Nodes:
    """`L⁻¹ w`, whose curl is the negative of the velocity."""
    return self.laplacian.solve(w)

  def velocity(self, w: Union[Nodes, Array], t=0.0,
               motion: Optional[kinematics.RigidBodyMotion] = None) -> Edges:
    """The total velocity on the primal edges, in grid units."""
    ux, uy = self.freestream_velocity(t, motion)
    q = fd.curl(self.streamfunction(w))
    return dataclasses.replace(q, u=ux - q.u, v=uy - q.v)

  def coordinates(self, location: str = 'dual_nodes') -> Tuple[Array, Array]:
    """The physical coordinates of a field location, as 2D arrays."""
    return self.grid.mesh(location)
