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
This `__init__.py` file makes `jax_ibpm` a Python package.

`jax_ibpm` is a JAX implementation of the immersed-boundary projection method
for two-dimensional incompressible flow in vorticity form. Bodies are
represented by a cloud of boundary points, and the no-slip condition on their
surface is enforced by a Lagrange multiplier, the surface traction, through a
pair of mutually adjoint constraint operators.

The package is organized into two subpackages.
"""

# The `base` subpackage contains the staggered grid and its field containers,
# the discrete differential operators, the Poisson solver, the transfer
# operators between boundary points and the grid, and prescribed motions.
import jax_ibpm.base

# The `systems` subpackage assembles these into the `NavierStokes` system,
# which supplies the right-hand sides and constraint operators to an
# external constrained Runge-Kutta integrator.
import jax_ibpm.systems
