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
Discrete differential operators on the staggered primal/dual grid.

All operators here are *unscaled* differences: they act on grid indices and
do not divide by the cell size. Callers that need physical derivatives scale
the result themselves (the convective term, for instance, multiplies by
`1/dx` once at the end).

**Design Philosophy on the Staggered Grid:**
Each operator maps data from one location to another, and the location of
the result is implied by the container type it returns:

- `curl(Nodes[dual]) -> Edges[primal]`: the rotated gradient of a
  streamfunction-like scalar, `(ds/dy, -ds/dx)`.
- `curl(Edges[primal]) -> Nodes[dual]`: `dv/dx - du/dy`. This is the exact
  matrix transpose of the previous operator, which is what makes the
  immersed-boundary constraint operators discrete adjoints of each other.
- `divergence(Edges[dual]) -> Nodes[dual]`: evaluated on interior dual nodes,
  the ghost ring is left at zero.
- `cellshift(Nodes[dual]) -> Edges[dual]`: two-point averages.
- `cellshift(Edges[primal]) -> Edges[dual]`: four-point averages across a
  half-cell diagonal shift, evaluated where all four neighbours exist.
- `laplacian(Nodes)`: the five-point stencil with zero values outside the
  array (homogeneous Dirichlet), matching `poisson.laplacian_matrix_dirichlet`.
"""

import typing

import jax.numpy as jnp
from jax_ibpm.base import grids

# Type aliases for clarity.
Nodes = grids.Nodes
Edges = grids.Edges
CellType = grids.CellType


def _check_celltype(field, celltype: str, name: str) -> None:
  if field.celltype != celltype:
    raise ValueError(
        f'{name}() is not defined for {field.celltype} {type(field).__name__}; '
        f'expected {celltype}')


@typing.overload
def curl(field: Nodes) -> Edges:
  ...


@typing.overload
def curl(field: Edges) -> Nodes:
  ...


def curl(field):
  """
  Approximates the 2D curl on the staggered grid.

  For dual nodal data `s` (a streamfunction-like scalar), returns the primal
  edge field `u = s[i, j+1] - s[i, j]`, `v = s[i, j] - s[i+1, j]`.

  For primal edge data `q`, returns the dual nodal field
  `q.v[i, j] - q.v[i-1, j] - q.u[i, j] + q.u[i, j-1]`, where values outside
  the arrays are zero. This is the transpose of the nodal curl.

  Args:
    field: `Nodes` on the dual lattice, or `Edges` on the primal lattice.

  Returns:
    `Edges` on the primal lattice, or `Nodes` on the dual lattice.
  """
  if isinstance(field, Nodes):
    _check_celltype(field, CellType.DUAL, 'curl')
    s = field.data
    u = s[:, 1:] - s[:, :-1]
    v = s[:-1, :] - s[1:, :]
    return Edges(u, v, CellType.PRIMAL, field.grid)

  _check_celltype(field, CellType.PRIMAL, 'curl')
  # Zero-pad the components so that every dual node sees both of its
  # neighbouring edges.
  u = jnp.pad(field.u, ((0, 0), (1, 1)))
  v = jnp.pad(field.v, ((1, 1), (0, 0)))
  data = (v[1:, :] - v[:-1, :]) - (u[:, 1:] - u[:, :-1])
  return Nodes(data, CellType.DUAL, field.grid)


def divergence(field: Edges) -> Nodes:
  """
  Approximates the divergence of dual edge data onto the dual nodes.

  `div[i, j] = u[i, j] - u[i-1, j] + v[i, j] - v[i, j-1]` on the interior
  dual nodes; the ghost ring of the result is zero.

  Args:
    field: `Edges` on the dual lattice, e.g. an advective flux.

  Returns:
    `Nodes` on the dual lattice.
  """
  _check_celltype(field, CellType.DUAL, 'divergence')
  u, v = field.u, field.v
  interior = (u[1:, 1:-1] - u[:-1, 1:-1]) + (v[1:-1, 1:] - v[1:-1, :-1])
  data = jnp.zeros(field.grid.node_shape(CellType.DUAL), interior.dtype)
  data = data.at[1:-1, 1:-1].set(interior)
  return Nodes(data, CellType.DUAL, field.grid)


@typing.overload
def cellshift(field: Nodes) -> Edges:
  ...


@typing.overload
def cellshift(field: Edges) -> Edges:
  ...


def cellshift(field):
  """
  Interpolates data onto the dual edges by averaging neighbouring values.

  Dual nodal data is averaged over the two nodes straddling each dual edge.
  Primal edge data is averaged over the four primal edges surrounding each
  dual edge (a shift of half a cell along both axes); dual edges in the ghost
  layer, which lack a full set of neighbours, are set to zero.

  Args:
    field: `Nodes` on the dual lattice or `Edges` on the primal lattice.

  Returns:
    `Edges` on the dual lattice.
  """
  grid = field.grid
  if isinstance(field, Nodes):
    _check_celltype(field, CellType.DUAL, 'cellshift')
    w = field.data
    u = 0.5 * (w[:-1, :] + w[1:, :])
    v = 0.5 * (w[:, :-1] + w[:, 1:])
    return Edges(u, v, CellType.DUAL, grid)

  _check_celltype(field, CellType.PRIMAL, 'cellshift')
  shape_u, shape_v = grid.edge_shapes(CellType.DUAL)

  def four_point_average(a):
    return 0.25 * (a[:-1, :-1] + a[1:, :-1] + a[:-1, 1:] + a[1:, 1:])

  u = jnp.zeros(shape_u, field.dtype).at[:, 1:-1].set(four_point_average(field.u))
  v = jnp.zeros(shape_v, field.dtype).at[1:-1, :].set(four_point_average(field.v))
  return Edges(u, v, CellType.DUAL, grid)


def laplacian(field: Nodes) -> Nodes:
  """
  Applies the unscaled five-point Laplacian to nodal data.

  Values outside of the array are taken to be zero, so this is the operator
  whose inverse `poisson.Laplacian.solve` computes.
  """
  s = jnp.pad(field.data, 1)
  data = (s[2:, 1:-1] + s[:-2, 1:-1] + s[1:-1, 2:] + s[1:-1, :-2]
          - 4 * field.data)
  return Nodes(data, field.celltype, field.grid)


def product(a: Edges, b: Edges) -> Edges:
  """The Hadamard (component-wise) product of two edge fields."""
  return a * b
