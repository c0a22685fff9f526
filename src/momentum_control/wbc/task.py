#!/usr/bin/env python3
"""
Motion task definitions for momentum-based control
Each task turns a desired motion into an affine error expression in the
joint accelerations: error = J * vdot + (bias - desired)
"""

import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .qp import AffineExpression
from ..exceptions import ConfigurationError, DimensionMismatchError
from ..utils.robot_model import Mechanism, MechanismState, KinematicPath
from ..utils.spatial import (
    CartesianFrame, Point3D, FreeVector3D, SpatialAcceleration, Wrench,
    GeometricJacobian, PointJacobian, MomentumMatrix, framecheck
)


class TaskType(Enum):
    """Kinds of motion tasks"""
    SPATIAL_ACCELERATION = 0
    ANGULAR_ACCELERATION = 1
    LINEAR_ACCELERATION = 2
    POINT_ACCELERATION = 3
    JOINT_ACCELERATION = 4
    MOMENTUM_RATE = 5
    LINEAR_MOMENTUM_RATE = 6


@dataclass
class TaskGains:
    """PD gains turning a reference trajectory into a desired acceleration"""
    kp: np.ndarray  # Proportional gain
    kd: np.ndarray  # Derivative gain

    @classmethod
    def critically_damped(cls, kp: float, dim: int = 3) -> 'TaskGains':
        return cls(kp=np.full(dim, kp), kd=np.full(dim, 2.0 * np.sqrt(kp)))

    def acceleration(
        self,
        position_error: np.ndarray,
        velocity_error: np.ndarray,
        feedforward: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Desired acceleration a_des = a_ff + kp * e + kd * e_dot

        Args:
            position_error: Desired minus current position
            velocity_error: Desired minus current velocity
            feedforward: Reference acceleration

        Returns:
            Desired acceleration
        """
        a_des = self.kp * position_error + self.kd * velocity_error
        if feedforward is not None:
            a_des = a_des + feedforward
        return a_des


def check_weight(weight: float) -> float:
    """Task weights live in (0, inf]; inf makes the task a hard constraint"""
    weight = float(weight)
    if not weight > 0.0:
        raise ConfigurationError(f"Task weight must be positive, got {weight}")
    return weight


class MotionTask(ABC):
    """
    Abstract base class for motion tasks

    Each task owns:
    - A desired-value slot written by the caller every tick
    - A weight in (0, inf]
    - Preallocated Jacobian and error buffers sized to the mechanism
    """

    task_type: TaskType

    def __init__(self, name: str, dim: int, nv: int, weight: float = 1.0):
        """
        Initialize task

        Args:
            name: Task name for identification
            dim: Task dimension
            nv: Velocity dimension of the mechanism
            weight: Task weight for QP cost (inf for a hard constraint)
        """
        self.name = name
        self.dim = dim
        self.weight = check_weight(weight)
        self.enabled = True
        self._error = AffineExpression.zeros(dim, nv)

    def dimension(self) -> int:
        return self.dim

    @property
    def desired(self):
        return self._desired

    @property
    def is_hard(self) -> bool:
        return np.isinf(self.weight)

    def set_desired(self, desired, weight: Optional[float] = None):
        """
        Set the desired value for the next ticks and enable the task

        Args:
            desired: Desired value, in the task's frame
            weight: New task weight (unchanged if None)
        """
        self._check_desired(desired)
        if weight is not None:
            self.weight = check_weight(weight)
        self._desired = desired
        self.enabled = True

    def enable(self):
        self.enabled = True

    def disable(self):
        """Exclude the task from the QP without destroying it"""
        self.enabled = False

    @abstractmethod
    def _check_desired(self, desired):
        pass

    @abstractmethod
    def build_error(self, state: MechanismState) -> AffineExpression:
        """
        Evaluate the task error as an affine function of vdot

        Args:
            state: Current mechanism state

        Returns:
            Expression (J, bias - desired), overwritten on the next call
        """
        pass

    def __repr__(self):
        return f"{self.__class__.__name__}('{self.name}', dim={self.dim}, weight={self.weight})"


def _path_jacobian_and_bias(
    state: MechanismState,
    path: KinematicPath,
    jacobian: GeometricJacobian
) -> SpatialAcceleration:
    """Refresh a path Jacobian in its frame and return the matching bias acceleration"""
    world_to_frame = state.transform_to_root(jacobian.frame).inv()
    state.geometric_jacobian(jacobian, path, world_to_frame)
    # J-dot * v of the relative twist, differentiated in the task frame
    bias = state.bias_acceleration(path.target) - state.bias_acceleration(path.source)
    return state.transform_acceleration(bias, jacobian.frame)


class SpatialAccelerationTask(MotionTask):
    """Spatial acceleration of one body with respect to another"""

    task_type = TaskType.SPATIAL_ACCELERATION

    def __init__(
        self,
        mechanism: Mechanism,
        path: KinematicPath,
        frame: Optional[CartesianFrame] = None,
        name: Optional[str] = None,
        weight: float = 1.0
    ):
        body = mechanism.body_frame(path.target)
        base = mechanism.body_frame(path.source)
        frame = frame if frame is not None else body
        super().__init__(name or f"spatial_accel_{body.name}", dim=6, nv=mechanism.nv, weight=weight)

        self.path = path
        self.frame = frame
        self.jacobian = GeometricJacobian(body, base, frame, mechanism.nv)
        self._desired = SpatialAcceleration.zero(body, base, frame)

    def _check_desired(self, desired: SpatialAcceleration):
        framecheck(self.jacobian.body, desired.body)
        framecheck(self.jacobian.base, desired.base)
        framecheck(self.frame, desired.frame)

    def build_error(self, state: MechanismState) -> AffineExpression:
        bias = _path_jacobian_and_bias(state, self.path, self.jacobian)
        desired = self._desired

        A, b = self._error.A, self._error.b
        A[:3] = self.jacobian.angular
        A[3:] = self.jacobian.linear
        b[:3] = bias.angular - desired.angular
        b[3:] = bias.linear - desired.linear
        return self._error


class AngularAccelerationTask(MotionTask):
    """Angular acceleration of one body with respect to another"""

    task_type = TaskType.ANGULAR_ACCELERATION

    def __init__(
        self,
        mechanism: Mechanism,
        path: KinematicPath,
        frame: Optional[CartesianFrame] = None,
        name: Optional[str] = None,
        weight: float = 1.0
    ):
        body = mechanism.body_frame(path.target)
        base = mechanism.body_frame(path.source)
        frame = frame if frame is not None else body
        super().__init__(name or f"angular_accel_{body.name}", dim=3, nv=mechanism.nv, weight=weight)

        self.path = path
        self.frame = frame
        self.jacobian = GeometricJacobian(body, base, frame, mechanism.nv)
        self._desired = FreeVector3D.zero(frame)

    def _check_desired(self, desired: FreeVector3D):
        framecheck(self.frame, desired.frame)

    def build_error(self, state: MechanismState) -> AffineExpression:
        bias = _path_jacobian_and_bias(state, self.path, self.jacobian)
        self._error.A[:] = self.jacobian.angular
        self._error.b[:] = bias.angular - self._desired.v
        return self._error


class LinearAccelerationTask(MotionTask):
    """Linear part of the spatial acceleration of one body with respect to another"""

    task_type = TaskType.LINEAR_ACCELERATION

    def __init__(
        self,
        mechanism: Mechanism,
        path: KinematicPath,
        frame: Optional[CartesianFrame] = None,
        name: Optional[str] = None,
        weight: float = 1.0
    ):
        body = mechanism.body_frame(path.target)
        base = mechanism.body_frame(path.source)
        frame = frame if frame is not None else body
        super().__init__(name or f"linear_accel_{body.name}", dim=3, nv=mechanism.nv, weight=weight)

        self.path = path
        self.frame = frame
        self.jacobian = GeometricJacobian(body, base, frame, mechanism.nv)
        self._desired = FreeVector3D.zero(frame)

    def _check_desired(self, desired: FreeVector3D):
        framecheck(self.frame, desired.frame)

    def build_error(self, state: MechanismState) -> AffineExpression:
        bias = _path_jacobian_and_bias(state, self.path, self.jacobian)
        self._error.A[:] = self.jacobian.linear
        self._error.b[:] = bias.linear - self._desired.v
        return self._error


class PointAccelerationTask(MotionTask):
    """
    Acceleration of a material point on the target body relative to the
    source body, expressed in the source body frame

    The acceleration of a point also depends on the rotation of the body
    carrying it, so the error contains the term w x p_dot besides J * vdot.
    """

    task_type = TaskType.POINT_ACCELERATION

    def __init__(
        self,
        mechanism: Mechanism,
        path: KinematicPath,
        point: Point3D,
        name: Optional[str] = None,
        weight: float = 1.0
    ):
        body = mechanism.body_frame(path.target)
        base = mechanism.body_frame(path.source)
        framecheck(body, point.frame)
        super().__init__(name or f"point_accel_{body.name}", dim=3, nv=mechanism.nv, weight=weight)

        self.path = path
        self.point = point
        self.frame = base
        self.jacobian = GeometricJacobian(body, base, base, mechanism.nv)
        self.point_jacobian = PointJacobian(base, mechanism.nv)
        self._desired = FreeVector3D.zero(base)

    def _check_desired(self, desired: FreeVector3D):
        framecheck(self.frame, desired.frame)

    def build_error(self, state: MechanismState) -> AffineExpression:
        world_to_frame = state.transform_to_root(self.frame).inv()
        body_to_frame = world_to_frame * state.transform_to_root(self.point.frame)
        p = body_to_frame * self.point

        bias = _path_jacobian_and_bias(state, self.path, self.jacobian)
        self.point_jacobian.set_from(self.jacobian, p)

        twist = state.relative_twist(self.path.target, self.path.source).transform(world_to_frame)
        omega = twist.angular
        pdot = twist.point_velocity(p).v

        self._error.A[:] = self.point_jacobian.J
        self._error.b[:] = (
            np.cross(omega, pdot)
            + np.cross(bias.angular, p.v) + bias.linear
            - self._desired.v
        )
        return self._error


class JointAccelerationTask(MotionTask):
    """Acceleration of the velocity coordinates of a single joint"""

    task_type = TaskType.JOINT_ACCELERATION

    def __init__(
        self,
        mechanism: Mechanism,
        joint: int,
        name: Optional[str] = None,
        weight: float = 1.0
    ):
        dim = mechanism.num_joint_velocities(joint)
        super().__init__(
            name or f"joint_accel_{mechanism.body_name(joint)}",
            dim=dim, nv=mechanism.nv, weight=weight
        )

        self.joint = joint
        self.velocity_range = mechanism.velocity_range(joint)
        self._desired = np.zeros(dim)
        # Selection of the joint's coordinates in vdot
        self._error.A[:, self.velocity_range] = np.eye(dim)

    def _check_desired(self, desired: np.ndarray):
        if len(desired) != self.dim:
            raise DimensionMismatchError(self.dim, len(desired), "joint acceleration")

    def set_desired(self, desired, weight: Optional[float] = None):
        super().set_desired(np.atleast_1d(np.asarray(desired, dtype=float)), weight)

    def build_error(self, state: MechanismState) -> AffineExpression:
        self._error.b[:] = -self._desired
        return self._error


class MomentumRateTask(MotionTask):
    """Rate of change of centroidal momentum (angular and linear)"""

    task_type = TaskType.MOMENTUM_RATE

    def __init__(
        self,
        mechanism: Mechanism,
        name: str = "momentum_rate",
        weight: float = 1.0
    ):
        super().__init__(name, dim=6, nv=mechanism.nv, weight=weight)

        self.frame = mechanism.centroidal_frame
        self.momentum_matrix = MomentumMatrix(self.frame, mechanism.nv)
        self._desired = Wrench.zero(self.frame)

    def _check_desired(self, desired: Wrench):
        framecheck(self.frame, desired.frame)

    def build_error(self, state: MechanismState) -> AffineExpression:
        A = state.momentum_matrix(self.momentum_matrix)
        bias = state.momentum_rate_bias()
        desired = self._desired

        self._error.A[:3] = A.angular
        self._error.A[3:] = A.linear
        self._error.b[:3] = bias.angular - desired.angular
        self._error.b[3:] = bias.linear - desired.linear
        return self._error


class LinearMomentumRateTask(MotionTask):
    """Rate of change of linear momentum (total external force)"""

    task_type = TaskType.LINEAR_MOMENTUM_RATE

    def __init__(
        self,
        mechanism: Mechanism,
        name: str = "linear_momentum_rate",
        weight: float = 1.0
    ):
        super().__init__(name, dim=3, nv=mechanism.nv, weight=weight)

        self.frame = mechanism.centroidal_frame
        self.momentum_matrix = MomentumMatrix(self.frame, mechanism.nv)
        self._desired = FreeVector3D.zero(self.frame)

    def _check_desired(self, desired: FreeVector3D):
        framecheck(self.frame, desired.frame)

    def build_error(self, state: MechanismState) -> AffineExpression:
        A = state.momentum_matrix(self.momentum_matrix)
        bias = state.momentum_rate_bias()

        self._error.A[:] = A.linear
        self._error.b[:] = bias.linear - self._desired.v
        return self._error
