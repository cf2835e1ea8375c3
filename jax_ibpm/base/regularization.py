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
Transfer operators between Lagrangian boundary points and the Eulerian grid.

Two operations couple the boundary points to the grid:

1.  **Spreading (regularization)**: Distributing point data (e.g. a surface
    traction) onto the primal edges of the grid,
    `q(x) = Σ_k F_k δ_h(x - X_k)`.

2.  **Interpolation**: Sampling primal edge data (e.g. a velocity) at the
    location of every boundary point,
    `U(X_k) = Σ_x q(x) δ_h(x - X_k)`.

Both use the same separable discrete delta function with unit weights, so
interpolation is exactly the transpose of spreading. This symmetry is what
makes the immersed-boundary constraint operators adjoint to one another.

Two representations are provided:

- `Regularize` evaluates the kernel weights for a given set of points and
  applies them directly. It is cheap to build and is rebuilt whenever the
  points move.
- `RegularizationMatrix` stores the same weights as one sparse matrix per
  edge component. It costs storage, and is built once for bodies that do not
  move.
"""

import logging
from typing import Dict, Tuple

import jax
from jax.experimental import sparse
import jax.numpy as jnp
from jax_ibpm.base import convolution_functions
from jax_ibpm.base import grids
import numpy as np

log = logging.getLogger(__name__)

Array = grids.Array
Edges = grids.Edges
VectorData = grids.VectorData
CellType = grids.CellType

# Each edge component and the grid location it lives on.
_COMPONENTS = (('u', 'primal_edges_u'), ('v', 'primal_edges_v'))


def _check_points(f: VectorData, n: int) -> None:
  if len(f) != n:
    raise grids.DimensionMismatchError(
        f'expected data on {n} points, got {len(f)}')


def _check_edges(q: Edges, grid: grids.Grid) -> None:
  if q.celltype != CellType.PRIMAL:
    raise grids.DimensionMismatchError(
        f'expected primal edge data, got {q.celltype} edges')
  if q.grid != grid:
    raise grids.DimensionMismatchError(
        f'edge data is defined on another grid: {q.grid}')


class Regularize:
  """
  Spreading and interpolation between a set of points and the primal edges.

  The 1D kernel weights of every point against every grid line are evaluated
  once, when the object is created, using `jax.vmap` over the points. For a
  point `k` and the edge component at grid index `(a, b)`, the 2D weight is
  `wx[k, a] * wy[k, b]`.

  Attributes:
    points: The inertial positions of the `N` points.
    grid: The grid the edge data lives on.
    kernel: The name of the discrete delta function.
  """

  def __init__(self, points: VectorData, grid: grids.Grid, kernel: str = 'roma'):
    self.points = points
    self.grid = grid
    self.kernel = kernel
    self._weights = {
        component: self.weights(location) for component, location in _COMPONENTS
    }

  def __len__(self) -> int:
    return len(self.points)

  def weights(self, location: str) -> Tuple[Array, Array]:
    """
    Returns the separable kernel weights of the points at a grid location.

    Args:
      location: The grid location, e.g. `'primal_edges_u'`.

    Returns:
      A tuple `(wx, wy)` of arrays with shapes `(N, nx)` and `(N, ny)`.
    """
    phi = convolution_functions.get_kernel(self.kernel)
    x, y = self.grid.axes(location)
    dx = self.grid.step

    # Weights of a single point against every grid line of one axis.
    def along(axis_coordinates):
      return lambda p: phi((axis_coordinates - p) / dx)

    wx = jax.vmap(along(x))(self.points.u)
    wy = jax.vmap(along(y))(self.points.v)
    return wx, wy

  def spread(self, f: VectorData) -> Edges:
    """
    Spreads point data onto the primal edges.

    Args:
      f: Data on the `N` points, e.g. a surface traction.

    Returns:
      `Edges` on the primal lattice.
    """
    _check_points(f, len(self))
    components = []
    for component, _ in _COMPONENTS:
      wx, wy = self._weights[component]
      f_c = getattr(f, component)
      # Σ_k f_k wx[k, a] wy[k, b]
      components.append((wx * f_c[:, None]).T @ wy)
    return Edges(*components, CellType.PRIMAL, self.grid)

  def interpolate(self, q: Edges) -> VectorData:
    """
    Interpolates primal edge data onto the points.

    Args:
      q: `Edges` on the primal lattice, e.g. a velocity field.

    Returns:
      `VectorData` on the `N` points.
    """
    _check_edges(q, self.grid)
    components = []
    for component, _ in _COMPONENTS:
      wx, wy = self._weights[component]
      # Σ_ab wx[k, a] q[a, b] wy[k, b]
      components.append(jnp.sum((wx @ getattr(q, component)) * wy, axis=1))
    return VectorData(*components)

  def __call__(self, data):
    """Spreads `VectorData` or interpolates `Edges`, depending on the input."""
    if isinstance(data, VectorData):
      return self.spread(data)
    return self.interpolate(data)

  def matrix(self) -> 'RegularizationMatrix':
    """
    Assembles the weights into sparse matrices.

    This requires concrete (non-traced) point positions, since the sparsity
    pattern is determined from the values of the weights.
    """
    matrices = {}
    for component, location in _COMPONENTS:
      shape = self.grid.location_shape(location)
      matrices[component] = _assemble(*self._weights[component], shape)
    log.debug('Stored regularization matrices for %d points (%d non-zeros)',
              len(self), sum(m.nse for m in matrices.values()))
    return RegularizationMatrix(self.grid, len(self), matrices)

  def __repr__(self) -> str:
    return (f'Regularization/interpolation operator with {self.kernel!r} kernel '
            f'for {len(self)} points on a {self.grid.shape[0]} x '
            f'{self.grid.shape[1]} grid')


def _assemble(wx: Array, wy: Array, shape: Tuple[int, int]) -> sparse.BCOO:
  """Builds the `(nx * ny, N)` sparse matrix of the 2D weights."""
  wx, wy = np.asarray(wx), np.asarray(wy)
  rows, cols, values = [], [], []
  for k in range(wx.shape[0]):
    # The kernel has compact support, so only a few grid lines per axis are
    # touched by each point.
    ia, ib = np.flatnonzero(wx[k]), np.flatnonzero(wy[k])
    a, b = np.meshgrid(ia, ib, indexing='ij')
    rows.append(np.ravel_multi_index((a.ravel(), b.ravel()), shape))
    cols.append(np.full(a.size, k))
    values.append(np.outer(wx[k, ia], wy[k, ib]).ravel())
  if rows:
    indices = np.stack([np.concatenate(rows), np.concatenate(cols)], axis=1)
    data = np.concatenate(values)
  else:
    indices = np.zeros((0, 2), dtype=int)
    data = np.zeros(0, dtype=wx.dtype)
  return sparse.BCOO(
      (jnp.asarray(data, dtype=wx.dtype), jnp.asarray(indices)),
      shape=(shape[0] * shape[1], wx.shape[0]))


class RegularizationMatrix:
  """
  Stored spreading and interpolation operators for a fixed set of points.

  Spreading multiplies by the sparse weight matrix `H` of each edge
  component; interpolation multiplies by its transpose `E = Hᵀ`.

  Attributes:
    grid: The grid the edge data lives on.
    matrices: The sparse `(nx * ny, N)` matrix of each edge component.
  """

  def __init__(self, grid: grids.Grid, n: int, matrices: Dict[str, sparse.BCOO]):
    self.grid = grid
    self.matrices = matrices
    self._n = n

  def __len__(self) -> int:
    return self._n

  def spread(self, f: VectorData) -> Edges:
    _check_points(f, len(self))
    components = []
    for component, location in _COMPONENTS:
      shape = self.grid.location_shape(location)
      components.append(
          (self.matrices[component] @ getattr(f, component)).reshape(shape))
    return Edges(*components, CellType.PRIMAL, self.grid)

  def interpolate(self, q: Edges) -> VectorData:
    _check_edges(q, self.grid)
    return VectorData(*[
        self.matrices[component].T @ getattr(q, component).ravel()
        for component, _ in _COMPONENTS
    ])

  def __call__(self, data):
    if isinstance(data, VectorData):
      return self.spread(data)
    return self.interpolate(data)

  def __repr__(self) -> str:
    return (f'Stored regularization matrix for {len(self)} points on a '
            f'{self.grid.shape[0]} x {self.grid.shape[1]} grid')
