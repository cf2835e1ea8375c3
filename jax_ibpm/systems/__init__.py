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
Systems of equations assembled from the `jax_ibpm.base` building blocks.

A system owns a discretization and exposes the right-hand sides and
constraint operators consumed by an external time integrator.
"""

# The immersed-boundary Navier-Stokes system in vorticity form.
import jax_ibpm.systems.navier_stokes

# The value type returned by `NavierStokes.plan_constraints`.
import jax_ibpm.systems.constraints

from jax_ibpm.systems.constraints import ConstraintOperators
from jax_ibpm.systems.navier_stokes import ConfigurationError
from jax_ibpm.systems.navier_stokes import NavierStokes
