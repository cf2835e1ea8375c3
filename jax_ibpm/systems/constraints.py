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
"""The pair of constraint operators of the saddle-point formulation."""

import dataclasses
from typing import Callable, Iterator

from jax_ibpm.base import grids

Nodes = grids.Nodes
VectorData = grids.VectorData


@dataclasses.dataclass(frozen=True)
class ConstraintOperators:
  """
  The constraint operators planned for one stage of a time step.

  In the saddle-point system

    [ A   B₁ᵀ ] [ w ]   [ r₁ ]
    [ B₂  0   ] [ f ] = [ r₂ ]

  `apply` is `B₁ᵀ`, which maps a surface traction on the boundary points to a
  vorticity source on the dual nodes, and `sample` is `B₂`, which maps a
  vorticity field to the (negative) velocity at the boundary points.

  The object also unpacks as a pair, `apply, sample = operators`.

  Attributes:
    apply: `VectorData -> Nodes`.
    sample: `Nodes -> VectorData`.
  """
  apply: Callable[[VectorData], Nodes]
  sample: Callable[[Nodes], VectorData]

  def __iter__(self) -> Iterator[Callable]:
    return iter((self.apply, self.sample))
