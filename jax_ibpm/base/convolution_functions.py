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
Discrete delta functions for the Immersed Boundary Method.

The communication between the Eulerian grid and the Lagrangian boundary
points goes through a regularized (smooth, compactly supported) approximation
of the Dirac delta function. In two dimensions the kernel is separable:

  `δ_h(x - X) = φ((x - X)/dx) φ((y - Y)/dx)`

where `φ` is one of the 1D kernels below, expressed in units of the cell
size. Both kernels satisfy the discrete partition of unity
`Σ_i φ(r - i) = 1` for every shift `r`, so spreading a unit force onto the grid
conserves its total.
"""

from typing import Callable

import jax.numpy as jnp


def roma(r):
  """
  The three-point kernel of Roma, Peskin & Berger (1999).

  Supported on `|r| < 1.5`, so at most three grid points per axis receive a
  non-zero weight from a given Lagrangian point.

  Args:
    r: Array of distances, in units of the cell size.

  Returns:
    An array of kernel weights of the same shape as `r`.
  """
  r = jnp.abs(r)
  # Both radicands are positive wherever their branch is selected. Elsewhere
  # they are replaced by 1 so that neither the values nor the gradients of the
  # discarded branches are NaN.
  def safe_sqrt(x):
    return jnp.sqrt(jnp.where(x > 0, x, 1.0))

  inner = (1 + safe_sqrt(1 - 3 * r**2)) / 3
  outer = (5 - 3 * r - safe_sqrt(1 - 3 * (1 - r)**2)) / 6
  return jnp.where(r <= 0.5, inner, jnp.where(r <= 1.5, outer, 0.0))


def witchhat(r):
  """The two-point linear ("witch hat") kernel, supported on `|r| < 1`."""
  r = jnp.abs(r)
  return jnp.where(r < 1, 1 - r, 0.0)


_KERNELS = {
    'roma': (roma, 1.5),
    'witchhat': (witchhat, 1.0),
}


def get_kernel(name: str) -> Callable:
  """Returns the 1D kernel registered under `name`."""
  try:
    return _KERNELS[name][0]
  except KeyError:
    raise ValueError(
        f'unknown discrete delta function {name!r}; '
        f'expected one of {sorted(_KERNELS)}') from None


def support(name: str) -> float:
  """Returns the half-width of the support of a kernel, in cells."""
  get_kernel(name)
  return _KERNELS[name][1]
