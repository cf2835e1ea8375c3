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
Prescribed rigid-body motions.

A motion is described by two functions of time: the displacement `c(t)` of a
reference point of the body, and the rotation angle `α(t)` of the body about
that point. These are used in a "kinematically-driven" immersed boundary
simulation, where the motion of the body is an input and the flow is the
output. The same description serves for a time-dependent free stream, in
which case only the translational velocity `ċ(t)` is used.

The time derivatives are not written by hand: `RigidBodyMotion` obtains them
from the position functions with forward-mode automatic differentiation
(`jax.jacfwd`), so any JAX-traceable displacement and rotation can be used.
"""

from typing import Callable, NamedTuple, Sequence

import jax
import jax.numpy as jnp
from jax_ibpm.base import grids

Array = grids.Array
VectorData = grids.VectorData


class Kinematics(NamedTuple):
  """The state of a rigid-body motion at one instant."""
  c: Array
  c_dot: Array
  c_ddot: Array
  alpha: Array
  alpha_dot: Array
  alpha_ddot: Array


class RigidBodyMotion:
  """
  A rigid-body motion defined by its displacement and rotation.

  Calling the motion at time `t` returns its `Kinematics`.

  Attributes:
    displacement: A function of time returning the `[x, y]` position of the
      body reference point.
    rotation: A function of time returning the rotation angle, in radians,
      counter-clockwise.
  """

  def __init__(self, displacement: Callable[[Array], Array],
               rotation: Callable[[Array], Array]):
    self.displacement = displacement
    self.rotation = rotation

  def __call__(self, t) -> Kinematics:
    # Differentiation requires a floating point time.
    t = jnp.asarray(t, dtype=float)
    c = jnp.asarray(self.displacement(t))
    alpha = jnp.asarray(self.rotation(t))
    c_dot = jax.jacfwd(self.displacement)(t)
    c_ddot = jax.jacfwd(jax.jacfwd(self.displacement))(t)
    alpha_dot = jax.jacfwd(self.rotation)(t)
    alpha_ddot = jax.jacfwd(jax.jacfwd(self.rotation))(t)
    return Kinematics(c, c_dot, c_ddot, alpha, alpha_dot, alpha_ddot)

  def transform(self, points: VectorData, t) -> VectorData:
    """
    Maps body-fixed coordinates to inertial coordinates at time `t`.

    `X = c + R(α) x`, with `R(α)` the counter-clockwise rotation matrix.
    """
    k = self(t)
    cos, sin = jnp.cos(k.alpha), jnp.sin(k.alpha)
    x = k.c[0] + cos * points.u - sin * points.v
    y = k.c[1] + sin * points.u + cos * points.v
    return VectorData(x, y)

  def surface_velocity(self, points: VectorData, t) -> VectorData:
    """
    Returns the rigid-body velocity `ċ + α̇ ẑ × (X - c)` at inertial points.
    """
    k = self(t)
    u = k.c_dot[0] - k.alpha_dot * (points.v - k.c[1])
    v = k.c_dot[1] + k.alpha_dot * (points.u - k.c[0])
    return VectorData(u, v)

  def __repr__(self) -> str:
    return f'Rigid body motion ({self.displacement!r}, {self.rotation!r})'


def constant_velocity(velocity: Sequence[float] = (0.0, 0.0),
                      angular_velocity: float = 0.0) -> RigidBodyMotion:
  """Translation at a constant velocity and rotation at a constant rate."""
  velocity = jnp.asarray(velocity, dtype=float)
  return RigidBodyMotion(
      lambda t: velocity * t,
      lambda t: angular_velocity * t)


def oscillation(amplitude: Sequence[float], frequency: float,
                phase: float = 0.0) -> RigidBodyMotion:
  """
  Sinusoidal translation without rotation.

  Args:
    amplitude: The `[Ax, Ay]` amplitude of the displacement.
    frequency: The frequency `f` of the oscillation.
    phase: The phase offset `φ`, in radians.

  Returns:
    A motion with `c(t) = A sin(2π f t + φ)` and `α(t) = 0`.
  """
  amplitude = jnp.asarray(amplitude, dtype=float)
  return RigidBodyMotion(
      lambda t: amplitude * jnp.sin(2 * jnp.pi * frequency * t + phase),
      lambda t: 0.0 * t)


def pitching(mean: float, amplitude: float, frequency: float,
             phase: float = 0.0) -> RigidBodyMotion:
  """
  Sinusoidal rotation about the origin, without translation.

  The angle oscillates around the mean value:
  `α(t) = α0 + β sin(2π f t + φ)`.
  """
  return RigidBodyMotion(
      lambda t: jnp.zeros(2) * t,
      lambda t: mean + amplitude * jnp.sin(2 * jnp.pi * frequency * t + phase))


def stationary() -> RigidBodyMotion:
  """A body at rest, with its reference point at the origin."""
  return constant_velocity((0.0, 0.0), 0.0)
