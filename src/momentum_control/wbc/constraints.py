#!/usr/bin/env python3
"""
Contact settings for momentum-based control
Polyhedral friction cones and contact force unknowns
"""

import numpy as np
from typing import Optional

from ..exceptions import ConfigurationError
from ..utils.math_utils import tangent_basis
from ..utils.robot_model import Mechanism, MechanismState
from ..utils.spatial import Point3D, FreeVector3D, Wrench, framecheck


class ContactSettings:
    """
    Contact point with a linearized friction cone

    Approximates the friction cone ||f_t|| <= mu * f_n with a k-sided
    pyramid spanned by basis vectors beta_j = normalize(n + mu * t_j). The
    contact force is f = B * rho with rho >= 0, so the cone constraint reduces
    to nonnegativity of the k basis coefficients. Every edge lies on the true
    cone, hence the pyramid is contained in it; the largest circular cone
    inside the pyramid has friction coefficient mu * cos(pi / k).
    """

    def __init__(
        self,
        mechanism: Mechanism,
        body: int,
        point: Point3D,
        num_basis_vectors: int = 4,
        name: Optional[str] = None
    ):
        """
        Initialize contact settings (disabled until set or enabled)

        Args:
            mechanism: Mechanism the contact point belongs to
            body: Body carrying the contact point
            point: Contact point in the body frame
            num_basis_vectors: Number of friction cone edges (>= 3)
            name: Contact name for identification
        """
        if num_basis_vectors < 3:
            raise ConfigurationError(
                f"A friction cone needs at least 3 basis vectors, got {num_basis_vectors}"
            )
        framecheck(mechanism.body_frame(body), point.frame)

        self.name = name or f"contact_{mechanism.body_name(body)}"
        self.body = body
        self.point = point
        self.num_basis_vectors = num_basis_vectors

        self.enabled = False
        self.weight = 0.0
        self.friction_coefficient = 0.0
        self.normal = FreeVector3D(point.frame, [0.0, 0.0, 1.0])

        # Basis vectors as columns, in the body frame and in world
        self._basis = np.zeros((3, num_basis_vectors))
        self.basis_world = np.zeros((3, num_basis_vectors))
        # World-frame Jacobian of the contact point
        self.jacobian = np.zeros((3, mechanism.nv))

        self._update_basis()

    def set(
        self,
        normal: FreeVector3D,
        friction_coefficient: float,
        weight: Optional[float] = None
    ):
        """
        Configure and enable the contact

        Args:
            normal: Surface normal in the body frame (normalized here)
            friction_coefficient: Coulomb friction coefficient mu >= 0
            weight: Regularization weight on the basis coefficients
        """
        framecheck(self.point.frame, normal.frame)
        if friction_coefficient < 0.0:
            raise ConfigurationError(
                f"Friction coefficient must be nonnegative, got {friction_coefficient}"
            )
        if weight is not None:
            if weight < 0.0:
                raise ConfigurationError(f"Contact weight must be nonnegative, got {weight}")
            self.weight = float(weight)

        self.normal = normal.normalized()
        self.friction_coefficient = float(friction_coefficient)
        self._update_basis()
        self.enabled = True

    def enable(self):
        self.enabled = True

    def disable(self):
        """Pin the contact force to zero; its unknowns stay allocated"""
        self.enabled = False

    @property
    def reduced_friction_coefficient(self) -> float:
        """Friction coefficient of the largest circular cone inside the pyramid"""
        return self.friction_coefficient * np.cos(np.pi / self.num_basis_vectors)

    @property
    def basis_vectors(self) -> np.ndarray:
        """Friction cone edges as columns (3 x k), in the body frame"""
        return self._basis

    def _update_basis(self):
        n = self.normal.v
        t1, t2 = tangent_basis(n)
        mu = self.friction_coefficient
        for j in range(self.num_basis_vectors):
            theta = 2.0 * np.pi * j / self.num_basis_vectors
            beta = n + mu * (np.cos(theta) * t1 + np.sin(theta) * t2)
            self._basis[:, j] = beta / np.linalg.norm(beta)

    def update(self, state: MechanismState):
        """Refresh the world-frame point Jacobian and basis for the current state"""
        to_world = state.transform_to_root(self.point.frame)
        p = to_world * self.point

        angular, linear = state.world_jacobian(self.body)
        # v_p = v + w x p = v - p x w
        self.jacobian[:] = linear - np.cross(p.v, angular, axis=0)
        self.basis_world[:] = to_world.rotation @ self._basis

    def force(self, rho: np.ndarray) -> FreeVector3D:
        """Contact force in the body frame for basis coefficients rho"""
        return FreeVector3D(self.normal.frame, self._basis @ rho)

    def world_wrench(self, state: MechanismState, rho: np.ndarray) -> Wrench:
        """World-frame wrench (about the world origin) for basis coefficients rho"""
        to_world = state.transform_to_root(self.point.frame)
        force = to_world * self.force(rho)
        return Wrench.from_force(to_world * self.point, force)

    def __repr__(self):
        state = "enabled" if self.enabled else "disabled"
        return (
            f"ContactSettings('{self.name}', mu={self.friction_coefficient}, "
            f"k={self.num_basis_vectors}, {state})"
        )
