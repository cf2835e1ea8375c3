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
Core data structures for the staggered primal/dual grid and the fields on it.

The vorticity formulation lives on two staggered lattices offset by half a
cell. The *primal* nodes are the corners of the cells; the *dual* nodes are
the cell centers. Scalar fields (vorticity, streamfunction) live on the dual
nodes, and vector fields (velocity, fluxes, body forcing) live on cell edges,
with a "primal" and a "dual" arrangement of their two components.

The key classes are:

- `Grid`: An immutable descriptor of the discretization: the number of dual
  cells along each axis (ghost cells included), the cell size, and the index
  of the primal node that sits at the physical origin.
- `Nodes`: Scalar data on the dual (or primal) nodes of a `Grid`.
- `Edges`: Two-component data on the primal (or dual) edges of a `Grid`.
- `VectorData`: Two-component data on a cloud of Lagrangian points, e.g. the
  positions of boundary points, surface tractions or surface velocities.

All containers are registered as JAX PyTrees, so they can be passed through
`jax.jit`, `jax.vmap` and `jax.grad`, and they support NumPy-style arithmetic
(`a + b`, `-a`, `a * b`, `2.0 * a`) that is dispatched to `jax.numpy`.
"""
# This import allows a class to use its own name in type hints before it is fully defined.
from __future__ import annotations

import dataclasses
import math
import numbers
import operator
from typing import Any, Optional, Sequence, Tuple, Union

import jax
import jax.numpy as jnp
from jax.tree_util import register_pytree_node_class
import numpy as np

# --- Type Aliases ---
Array = Union[np.ndarray, jax.Array]
PyTree = Any


class CellType:
  """String constants naming the two staggered lattices."""
  PRIMAL = 'primal'
  DUAL = 'dual'


# Offsets, in units of the cell size, of each field location relative to the
# primal-node lattice. Index `i` of a location with offset `o` sits at
# `(i - origin + o) * step`.
LOCATION_OFFSETS = {
    'dual_nodes': (-0.5, -0.5),
    'primal_nodes': (0.0, 0.0),
    'primal_edges_u': (-0.5, 0.0),
    'primal_edges_v': (0.0, -0.5),
    'dual_edges_u': (0.0, -0.5),
    'dual_edges_v': (-0.5, 0.0),
}


# --- Custom Exception Classes ---

class InvalidDomainError(Exception):
  """Raised when the physical bounds or the cell size cannot define a grid."""


class DimensionMismatchError(Exception):
  """Raised when a field or point vector does not match the expected size."""


class InconsistentGridError(Exception):
  """Raised when combining fields defined on different grids."""


class InconsistentCellTypeError(Exception):
  """Raised when combining fields defined on different lattices."""


@dataclasses.dataclass(init=False, frozen=True)
class Grid:
  """
  Describes the size, spacing and origin placement of the staggered grid.

  The grid is immutable (`frozen=True`) because the discretization is fixed
  for the lifetime of a simulation. Instances are hashable, which lets them be
  stored as static auxiliary data of the field PyTrees.

  Attributes:
    shape: `(NX, NY)`, the number of dual cells along each axis, ghost cells
      included.
    step: The size `dx` of each (square) cell.
    origin: The 0-based index `(i0, j0)` of the primal node located at the
      physical origin. It need not lie inside the grid: for a grid covering
      `(1.0, 3.0) x (2.0, 4.0)` the origin is outside of it.
  """
  shape: Tuple[int, int]
  step: float
  origin: Tuple[int, int]

  def __init__(
      self,
      shape: Sequence[int],
      step: float,
      origin: Sequence[int] = (0, 0),
  ):
    shape = tuple(operator.index(s) for s in shape)
    if len(shape) != 2:
      raise ValueError(f'only two-dimensional grids are supported: {shape}')
    if min(shape) < 3:
      raise InvalidDomainError(
          f'a grid needs at least three dual cells along each axis: {shape}')
    if not (math.isfinite(step) and step > 0):
      raise InvalidDomainError(f'cell size must be positive: {step}')
    # Use object.__setattr__ because the dataclass is frozen.
    object.__setattr__(self, 'shape', shape)
    object.__setattr__(self, 'step', float(step))
    object.__setattr__(self, 'origin', tuple(operator.index(i) for i in origin))

  @classmethod
  def from_limits(
      cls,
      xlimits: Tuple[float, float],
      ylimits: Tuple[float, float],
      step: float,
  ) -> Grid:
    """
    Builds the grid that covers a physical domain with whole cells.

    The requested limits are pushed outward to the nearest multiple of the
    cell size (floor on the lower bound, ceil on the upper bound), so that the
    primal nodes span the whole domain and the physical origin coincides with
    a primal node. One extra dual cell is added at each end of both axes: the
    first and last dual nodes are ghost nodes lying half a cell outside of the
    primal-node span.

    Args:
      xlimits: `(xmin, xmax)` of the physical domain, ghost cells excluded.
      ylimits: `(ymin, ymax)` of the physical domain, ghost cells excluded.
      step: The cell size `dx`.

    Returns:
      A new `Grid`.

    Raises:
      InvalidDomainError: if a range is empty or inverted, or `step <= 0`.
    """
    bounds = tuple(float(b) for b in (*xlimits, *ylimits, step))
    if not all(math.isfinite(b) for b in bounds):
      raise InvalidDomainError(f'domain bounds must be finite: {bounds}')
    if step <= 0:
      raise InvalidDomainError(f'cell size must be positive: {step}')
    for name, (lower, upper) in (('x', xlimits), ('y', ylimits)):
      if not upper > lower:
        raise InvalidDomainError(
            f'{name} limits must satisfy lower < upper: ({lower}, {upper})')

    nxl, nxr = math.floor(xlimits[0] / step), math.ceil(xlimits[1] / step)
    nyl, nyr = math.floor(ylimits[0] / step), math.ceil(ylimits[1] / step)
    # Total number of dual cells, including one ghost cell at each end.
    shape = (nxr - nxl + 2, nyr - nyl + 2)
    origin = (-nxl, -nyl)
    return cls(shape, step, origin)

  @property
  def ndim(self) -> int:
    """Returns the number of dimensions of this grid (always 2)."""
    return len(self.shape)

  @property
  def domain(self) -> Tuple[Tuple[float, float], ...]:
    """The physical span `((x0, x1), (y0, y1))` of the primal nodes."""
    return tuple(
        (-i0 * self.step, (n - 2 - i0) * self.step)
        for n, i0 in zip(self.shape, self.origin))

  def node_shape(self, celltype: str = CellType.DUAL) -> Tuple[int, int]:
    """Returns the array shape of nodal data on the given lattice."""
    nx, ny = self.shape
    if celltype == CellType.DUAL:
      return (nx, ny)
    elif celltype == CellType.PRIMAL:
      return (nx - 1, ny - 1)
    raise ValueError(f'unknown cell type: {celltype}')

  def edge_shapes(
      self, celltype: str = CellType.PRIMAL
  ) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """Returns the array shapes of the `u` and `v` components of edge data."""
    nx, ny = self.shape
    if celltype == CellType.PRIMAL:
      return (nx, ny - 1), (nx - 1, ny)
    elif celltype == CellType.DUAL:
      return (nx - 1, ny), (nx, ny - 1)
    raise ValueError(f'unknown cell type: {celltype}')

  def location_shape(self, location: str) -> Tuple[int, int]:
    """Returns the array shape of the named field location."""
    if location.endswith('_nodes'):
      return self.node_shape(location[:-len('_nodes')])
    celltype, _, component = location.rpartition('_edges_')
    shapes = self.edge_shapes(celltype)
    return shapes[0] if component == 'u' else shapes[1]

  def axes(self, location: str = 'dual_nodes') -> Tuple[Array, Array]:
    """
    Returns the 1D physical coordinates along each axis of a field location.

    Args:
      location: One of the keys of `LOCATION_OFFSETS`, e.g. `'dual_nodes'`
        or `'primal_edges_u'`.

    Returns:
      A tuple `(x, y)` of 1D arrays.
    """
    if location not in LOCATION_OFFSETS:
      raise ValueError(f'unknown field location: {location}')
    offset = LOCATION_OFFSETS[location]
    shape = self.location_shape(location)
    # Formula for coordinates: x_i = (i - i0 + offset) * dx
    return tuple((jnp.arange(n) - i0 + o) * self.step
                 for n, i0, o in zip(shape, self.origin, offset))

  def mesh(self, location: str = 'dual_nodes') -> Tuple[Array, Array]:
    """Returns 2D coordinate arrays of a location, with `indexing='ij'`."""
    return tuple(jnp.meshgrid(*self.axes(location), indexing='ij'))

  def position(
      self, index: Sequence[int], location: str = 'primal_nodes'
  ) -> Tuple[float, float]:
    """Returns the physical coordinates of a single grid index."""
    offset = LOCATION_OFFSETS[location]
    return tuple((i - i0 + o) * self.step
                 for i, i0, o in zip(index, self.origin, offset))


def consistent_grid(*arrays: Union[Nodes, Edges]) -> Grid:
  """
  Checks that all input fields are defined on the same grid and returns it.
  """
  grids = {array.grid for array in arrays}
  if len(grids) != 1:
    raise InconsistentGridError(f'arrays do not have a unique grid: {grids}')
  grid, = grids
  return grid


def consistent_celltype(*arrays: Union[Nodes, Edges]) -> str:
  """
  Checks that all input fields live on the same lattice and returns its name.
  """
  celltypes = {array.celltype for array in arrays}
  if len(celltypes) != 1:
    raise InconsistentCellTypeError(
        f'arrays do not have a unique cell type: {celltypes}')
  celltype, = celltypes
  return celltype


# Types that may be combined arithmetically with the field containers.
_HANDLED_TYPES = (numbers.Number, np.ndarray, jax.Array)


def _jax_ufunc(ufunc, method):
  """Returns the `jax.numpy` counterpart of a NumPy ufunc, or None."""
  # Only standard calls are supported, not `reduce`, `accumulate`, ...
  if method != '__call__':
    return None
  return getattr(jnp, ufunc.__name__, None)


@register_pytree_node_class
@dataclasses.dataclass
class Nodes(np.lib.mixins.NDArrayOperatorsMixin):
  """
  Scalar data on the nodes of one of the two lattices of a `Grid`.

  Vorticity and streamfunction are `Nodes` on the dual lattice, with shape
  `(NX, NY)`. The outermost ring of dual nodes are ghost nodes.

  Attributes:
    data: The raw array of nodal values.
    celltype: `CellType.DUAL` or `CellType.PRIMAL`.
    grid: The `Grid` the data is defined on.
  """
  data: Array
  celltype: str
  grid: Grid

  @classmethod
  def zeros(cls, grid: Grid, celltype: str = CellType.DUAL, dtype=float) -> Nodes:
    """Returns nodal data of zeros on `grid`."""
    return cls(jnp.zeros(grid.node_shape(celltype), dtype), celltype, grid)

  def tree_flatten(self):
    """The `data` array is the traced child; lattice and grid are static."""
    return (self.data,), (self.celltype, self.grid)

  @classmethod
  def tree_unflatten(cls, aux_data, children):
    return cls(*children, *aux_data)

  @property
  def dtype(self):
    return self.data.dtype

  @property
  def shape(self) -> Tuple[int, ...]:
    return self.data.shape

  def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
    for x in inputs:
      if not isinstance(x, _HANDLED_TYPES + (Nodes,)):
        return NotImplemented
    func = _jax_ufunc(ufunc, method)
    if func is None:
      return NotImplemented
    node_inputs = [x for x in inputs if isinstance(x, Nodes)]
    celltype = consistent_celltype(*node_inputs)
    grid = consistent_grid(*node_inputs)
    arrays = [x.data if isinstance(x, Nodes) else x for x in inputs]
    result = func(*arrays)
    if isinstance(result, tuple):
      return tuple(Nodes(r, celltype, grid) for r in result)
    return Nodes(result, celltype, grid)


@register_pytree_node_class
@dataclasses.dataclass
class Edges(np.lib.mixins.NDArrayOperatorsMixin):
  """
  Two-component data on the edges of one of the two lattices of a `Grid`.

  On the primal edges, `u` has shape `(NX, NY - 1)` and `v` has shape
  `(NX - 1, NY)`; on the dual edges the shapes are swapped. Arithmetic acts
  on both components independently, so `a * b` is the Hadamard product.

  Attributes:
    u: The x-component data.
    v: The y-component data.
    celltype: `CellType.PRIMAL` or `CellType.DUAL`.
    grid: The `Grid` the data is defined on.
  """
  u: Array
  v: Array
  celltype: str
  grid: Grid

  @classmethod
  def zeros(cls, grid: Grid, celltype: str = CellType.PRIMAL, dtype=float) -> Edges:
    """Returns edge data of zeros on `grid`."""
    shape_u, shape_v = grid.edge_shapes(celltype)
    return cls(jnp.zeros(shape_u, dtype), jnp.zeros(shape_v, dtype), celltype, grid)

  def tree_flatten(self):
    return (self.u, self.v), (self.celltype, self.grid)

  @classmethod
  def tree_unflatten(cls, aux_data, children):
    return cls(*children, *aux_data)

  @property
  def dtype(self):
    return self.u.dtype

  @property
  def shape(self) -> Tuple[Tuple[int, ...], Tuple[int, ...]]:
    return self.u.shape, self.v.shape

  def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
    for x in inputs:
      if not isinstance(x, _HANDLED_TYPES + (Edges,)):
        return NotImplemented
    func = _jax_ufunc(ufunc, method)
    if func is None:
      return NotImplemented
    edge_inputs = [x for x in inputs if isinstance(x, Edges)]
    celltype = consistent_celltype(*edge_inputs)
    grid = consistent_grid(*edge_inputs)
    # Apply the function to the `u` components, then to the `v` components.
    u = func(*[x.u if isinstance(x, Edges) else x for x in inputs])
    v = func(*[x.v if isinstance(x, Edges) else x for x in inputs])
    return Edges(u, v, celltype, grid)


@register_pytree_node_class
@dataclasses.dataclass
class VectorData(np.lib.mixins.NDArrayOperatorsMixin):
  """
  Two-component data attached to a cloud of `N` Lagrangian points.

  This is used both for the positions of the boundary points (`u` holding the
  x-coordinates and `v` the y-coordinates) and for quantities carried by the
  points, such as a surface traction or a surface velocity.

  Attributes:
    u: Length-`N` array of x-components.
    v: Length-`N` array of y-components.
  """
  u: Array
  v: Array

  def __post_init__(self):
    if jnp.shape(self.u) != jnp.shape(self.v) or jnp.ndim(self.u) != 1:
      raise DimensionMismatchError(
          'point components must be 1D arrays of equal length, got '
          f'{jnp.shape(self.u)} and {jnp.shape(self.v)}')

  @classmethod
  def zeros(cls, n: int, dtype=float) -> VectorData:
    return cls(jnp.zeros(n, dtype), jnp.zeros(n, dtype))

  @classmethod
  def from_array(cls, points: Array) -> VectorData:
    """
    Builds point data from an `(N, 2)` array of pairs or from a flattened
    `(2N,)` buffer holding the `N` x-components followed by the `N`
    y-components.
    """
    points = jnp.asarray(points, dtype=float)
    if points.ndim == 2 and points.shape[1] == 2:
      return cls(points[:, 0], points[:, 1])
    if points.ndim == 1 and points.shape[0] % 2 == 0:
      n = points.shape[0] // 2
      return cls(points[:n], points[n:])
    raise ValueError(
        f'expected an (N, 2) array or a (2N,) buffer, got shape {points.shape}')

  def tree_flatten(self):
    return (self.u, self.v), None

  @classmethod
  def tree_unflatten(cls, aux_data, children):
    # JAX may rebuild the container with placeholder leaves, so the shape
    # validation of `__post_init__` is skipped here.
    obj = object.__new__(cls)
    obj.u, obj.v = children
    return obj

  def __len__(self) -> int:
    return int(jnp.shape(self.u)[0])

  @property
  def dtype(self):
    return self.u.dtype

  def flatten(self) -> Array:
    """Returns the `(2N,)` buffer `[u..., v...]`."""
    return jnp.concatenate([self.u, self.v])

  def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
    for x in inputs:
      if not isinstance(x, _HANDLED_TYPES + (VectorData,)):
        return NotImplemented
    func = _jax_ufunc(ufunc, method)
    if func is None:
      return NotImplemented
    lengths = {len(x) for x in inputs if isinstance(x, VectorData)}
    if len(lengths) != 1:
      raise DimensionMismatchError(f'point vectors differ in length: {lengths}')
    u = func(*[x.u if isinstance(x, VectorData) else x for x in inputs])
    v = func(*[x.v if isinstance(x, VectorData) else x for x in inputs])
    return VectorData(u, v)


def as_dual_nodes(w: Union[Nodes, Array], grid: Grid) -> Nodes:
  """
  Validates a vorticity-like field against `grid`, wrapping raw arrays.

  Raises:
    DimensionMismatchError: if the data is not `grid.shape`, lives on the
      primal lattice or on another grid.
  """
  if not isinstance(w, Nodes):
    w = Nodes(jnp.asarray(w), CellType.DUAL, grid)
  if w.celltype != CellType.DUAL:
    raise DimensionMismatchError(f'expected dual nodes, got {w.celltype} nodes')
  if w.grid.shape != grid.shape or w.data.shape != grid.node_shape(CellType.DUAL):
    raise DimensionMismatchError(
        f'field of shape {w.data.shape} does not match grid of size {grid.shape}')
  if w.grid != grid:
    raise DimensionMismatchError(f'field is defined on another grid: {w.grid}')
  return w


def inner(a: Union[Nodes, Edges, VectorData],
          b: Union[Nodes, Edges, VectorData]) -> Array:
  """The Euclidean inner product of two containers of the same kind."""
  if isinstance(a, Nodes) and isinstance(b, Nodes):
    return jnp.vdot(a.data, b.data)
  if isinstance(a, (Edges, VectorData)) and type(a) is type(b):
    return jnp.vdot(a.u, b.u) + jnp.vdot(a.v, b.v)
  raise TypeError(f'cannot take the inner product of {type(a)} and {type(b)}')
