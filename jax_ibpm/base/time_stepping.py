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
Runge-Kutta coefficient sets for the time integrator.

The Navier-Stokes system does not advance itself in time: it supplies the
right-hand sides, the constraint operators and the integrating-factor
parameter to an external integrator. The system carries a `ButcherTableau`
only so that the integrator can read which scheme it was configured with.

See: https://en.wikipedia.org/wiki/Runge%E2%80%93Kutta_methods
"""

import dataclasses
import math
from typing import Sequence, Tuple


@dataclasses.dataclass(init=False, frozen=True)
class ButcherTableau:
  """
  The coefficients of an explicit Runge-Kutta scheme.

  For an explicit method the `a` matrix is strictly lower triangular, so only
  its non-trivial rows are stored: row `i` holds the `i + 1` weights of stage
  `i + 1`.

  Attributes:
    a: The stage weights `a_ij`, one row per stage after the first.
    b: The weights `b_j` of the final combination.
    c: The time fractions `c_i` of the stages.
  """
  a: Tuple[Tuple[float, ...], ...]
  b: Tuple[float, ...]
  c: Tuple[float, ...]

  def __init__(self, a: Sequence[Sequence[float]], b: Sequence[float],
               c: Sequence[float]):
    a = tuple(tuple(float(x) for x in row) for row in a)
    b = tuple(float(x) for x in b)
    c = tuple(float(x) for x in c)
    if len(a) + 1 != len(b) or len(c) != len(b):
      raise ValueError('inconsistent Butcher tableau')
    for i, row in enumerate(a):
      if len(row) != i + 1:
        raise ValueError(
            f'row {i} of an explicit Butcher tableau needs {i + 1} entries, '
            f'got {len(row)}')
    object.__setattr__(self, 'a', a)
    object.__setattr__(self, 'b', b)
    object.__setattr__(self, 'c', c)

  @property
  def stages(self) -> int:
    return len(self.b)


_SQRT3 = math.sqrt(3)

# The three-stage scheme of Liska & Colonius (2017), used with the
# integrating-factor treatment of the viscous term.
RK31 = ButcherTableau(
    a=[[1 / 2],
       [_SQRT3 / 3, (3 - _SQRT3) / 3]],
    b=[(3 + _SQRT3) / 6, -_SQRT3 / 3, (3 + _SQRT3) / 6],
    c=[0.0, 0.5, 1.0])

FORWARD_EULER = ButcherTableau(a=[], b=[1], c=[0])
