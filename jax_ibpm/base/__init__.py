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
This `__init__.py` file makes the `jax_ibpm.base` directory a Python package.

By importing the key modules here, it allows users to access the building
blocks of the library with a simpler import statement, such as:
`from jax_ibpm.base import grids`
"""

# --- Grid and Field Data Structures ---

# Defines the staggered grid (`Grid`) and the field containers on it
# (`Nodes`, `Edges`, `VectorData`).
import jax_ibpm.base.grids

# Implements the discrete curl, divergence and cell-shift operators.
import jax_ibpm.base.finite_differences

# Plans the discrete Laplacian and its fast-diagonalization inverse.
import jax_ibpm.base.poisson


# --- Immersed Boundary Coupling ---

# Provides the discrete delta function kernels essential for the IBM.
import jax_ibpm.base.convolution_functions

# Spreads point data to the grid and interpolates grid data to the points.
import jax_ibpm.base.regularization


# --- Motions and Time Integration ---

# Prescribed rigid-body motions and their time derivatives.
import jax_ibpm.base.kinematics

# Runge-Kutta coefficient sets handed to the external integrator.
import jax_ibpm.base.time_stepping
