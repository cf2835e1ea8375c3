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
The planned discrete Laplacian and its inverse on the dual nodes.

In the vorticity formulation the velocity is recovered from the vorticity
through a Poisson problem: with `L` the discrete Laplacian, `s = L⁻¹ w` is a
streamfunction-like field, and `curl(s)` is the (negative of the) velocity.

The inverse is computed with a Fast Diagonalization solver. The 2D Laplacian
is the Kronecker sum of two 1D second-difference matrices, so once each 1D
matrix has been diagonalized (a one-off eigendecomposition done at planning
time), solving `L s = w` reduces to a change of basis along each axis, an
element-wise division by the eigenvalues, and the change of basis back.

The operator is unscaled (the stencil is `[1, -2, 1]` along each axis) and
values outside of the dual-node array are zero, i.e. a homogeneous Dirichlet
condition just beyond the ghost layer. With that condition the matrix is
non-singular, so the pseudoinverse computed below is the true inverse.
"""

import dataclasses
import logging
from typing import Callable, Optional

import jax
from jax_cfd.base import fast_diagonalization
from jax_ibpm.base import finite_differences as fd
from jax_ibpm.base import grids
import numpy as np
import scipy.linalg

log = logging.getLogger(__name__)

Array = grids.Array
Nodes = grids.Nodes


def laplacian_matrix_dirichlet(size: int, step: float = 1.0) -> np.ndarray:
  """
  Creates a 1D second-difference matrix with homogeneous Dirichlet BCs.

  The first column of the symmetric Toeplitz matrix carries the stencil
  `[-2, 1, 0, ...] / step²`; there is no wrap-around, so the values beyond
  both ends of the array are implicitly zero.

  Args:
    size: The number of grid points in the dimension.
    step: The grid spacing. The planned Laplacian uses the default unit
      spacing, since the differential operators are unscaled.

  Returns:
    A `(size, size)` NumPy array.
  """
  column = np.zeros(size)
  column[0] = -2 / step**2
  column[1] = 1 / step**2
  return scipy.linalg.toeplitz(column)


@dataclasses.dataclass(frozen=True)
class Laplacian:
  """
  A planned discrete Laplacian on the dual nodes of a grid.

  Calling the object applies the forward operator; `solve` applies the
  inverse. The eigendecomposition behind `solve` is done once, when the
  operator is planned with `plan_laplacian(grid, with_inverse=True)`.

  Attributes:
    grid: The `Grid` whose dual nodes the operator acts on.
    inverse: The planned inverse acting on raw `(NX, NY)` arrays, or None if
      the operator was planned without one.
  """
  grid: grids.Grid
  inverse: Optional[Callable[[Array], Array]] = None

  def __call__(self, w: Nodes) -> Nodes:
    return fd.laplacian(grids.as_dual_nodes(w, self.grid))

  def solve(self, w: Nodes) -> Nodes:
    """Returns `L⁻¹ w`, the solution `s` of the Poisson problem `L s = w`."""
    if self.inverse is None:
      raise ValueError('this Laplacian was planned without an inverse')
    w = grids.as_dual_nodes(w, self.grid)
    return Nodes(self.inverse(w.data), w.celltype, w.grid)

  def __repr__(self) -> str:
    return (f'Discrete Laplacian (and inverse) on a {self.grid.shape[0]} x '
            f'{self.grid.shape[1]} grid')


def plan_laplacian(
    grid: grids.Grid,
    with_inverse: bool = True,
    dtype=None,
    implementation: Optional[str] = 'matmul',
) -> Laplacian:
  """
  Plans the discrete Laplacian of `grid`, optionally with its inverse.

  Args:
    grid: The grid whose dual nodes the operator acts on.
    with_inverse: Whether to diagonalize the operator so that `solve` can be
      used.
    dtype: The floating point type of the fields that will be solved for.
      Defaults to the canonical JAX float type in effect (float64 when
      `jax_enable_x64` is set, float32 otherwise).
    implementation: The `jax_cfd` fast diagonalization backend. `'matmul'`
      applies the change of basis with dense matrix products, which works for
      any grid size.

  Returns:
    A `Laplacian`.
  """
  if not with_inverse:
    return Laplacian(grid)
  if dtype is None:
    dtype = jax.dtypes.canonicalize_dtype(np.float64)
  laplacians = [laplacian_matrix_dirichlet(n) for n in grid.node_shape()]
  log.debug('Diagonalizing the %d x %d Laplacian (%s)',
            grid.shape[0], grid.shape[1], implementation)
  # The 1D operators are symmetric but not circulant (no periodic wrap).
  pinv = fast_diagonalization.pseudoinverse(
      laplacians, dtype,
      hermitian=True, circulant=False, implementation=implementation)
  return Laplacian(grid, pinv)
