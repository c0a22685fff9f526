#!/usr/bin/env python3
"""
Frame-tagged spatial quantities
Points, free vectors, transforms, twists, spatial accelerations, wrenches
and Jacobian-shaped matrices. Every quantity carries the frame it is
expressed in; combining quantities in different frames raises
FrameMismatchError instead of silently mixing coordinates.

Motion and force vectors follow Featherstone's convention: the linear part
of a twist or spatial acceleration refers to the point coinciding with the
origin of the frame of expression. Transforms are backed by pinocchio.SE3.
Twists and wrenches change frame through a plain adjoint map; spatial
accelerations also need the twists of the frames involved, see
SpatialAcceleration.transform.
"""

import itertools
import numpy as np
import pinocchio as pin
from typing import Optional

from ..exceptions import FrameMismatchError


class CartesianFrame:
    """A named Cartesian frame. Frames compare by identity."""

    _ids = itertools.count()

    def __init__(self, name: Optional[str] = None):
        self.id = next(CartesianFrame._ids)
        self.name = name if name is not None else f"frame_{self.id}"

    def __repr__(self):
        return f"CartesianFrame('{self.name}')"


def framecheck(expected: CartesianFrame, actual: CartesianFrame):
    """Raise FrameMismatchError unless both frames are the same frame"""
    if expected is not actual:
        raise FrameMismatchError(expected, actual)


def _vec3(v) -> np.ndarray:
    v = np.array(v, dtype=float).reshape(-1)
    if v.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {v.shape}")
    return v


class FreeVector3D:
    """A 3D vector (direction and magnitude) expressed in a frame"""

    __slots__ = ('frame', 'v')

    def __init__(self, frame: CartesianFrame, v):
        self.frame = frame
        self.v = _vec3(v)

    @classmethod
    def zero(cls, frame: CartesianFrame) -> 'FreeVector3D':
        return cls(frame, np.zeros(3))

    def __add__(self, other: 'FreeVector3D') -> 'FreeVector3D':
        framecheck(self.frame, other.frame)
        return FreeVector3D(self.frame, self.v + other.v)

    def __sub__(self, other: 'FreeVector3D') -> 'FreeVector3D':
        framecheck(self.frame, other.frame)
        return FreeVector3D(self.frame, self.v - other.v)

    def __neg__(self) -> 'FreeVector3D':
        return FreeVector3D(self.frame, -self.v)

    def __mul__(self, scalar: float) -> 'FreeVector3D':
        return FreeVector3D(self.frame, self.v * scalar)

    __rmul__ = __mul__

    def dot(self, other: 'FreeVector3D') -> float:
        framecheck(self.frame, other.frame)
        return float(self.v @ other.v)

    def cross(self, other: 'FreeVector3D') -> 'FreeVector3D':
        framecheck(self.frame, other.frame)
        return FreeVector3D(self.frame, np.cross(self.v, other.v))

    def norm(self) -> float:
        return float(np.linalg.norm(self.v))

    def normalized(self) -> 'FreeVector3D':
        return FreeVector3D(self.frame, self.v / np.linalg.norm(self.v))

    def isapprox(self, other: 'FreeVector3D', atol: float = 1e-8) -> bool:
        return self.frame is other.frame and np.allclose(self.v, other.v, atol=atol)

    def __repr__(self):
        return f"FreeVector3D({self.frame.name}, {self.v})"


class Point3D:
    """A 3D point expressed in a frame"""

    __slots__ = ('frame', 'v')

    def __init__(self, frame: CartesianFrame, v):
        self.frame = frame
        self.v = _vec3(v)

    def __add__(self, other: FreeVector3D) -> 'Point3D':
        framecheck(self.frame, other.frame)
        return Point3D(self.frame, self.v + other.v)

    def __sub__(self, other: 'Point3D') -> FreeVector3D:
        framecheck(self.frame, other.frame)
        return FreeVector3D(self.frame, self.v - other.v)

    def __repr__(self):
        return f"Point3D({self.frame.name}, {self.v})"


class Transform3D:
    """Rigid transform mapping coordinates in from_frame to coordinates in to_frame"""

    __slots__ = ('from_frame', 'to_frame', 'se3')

    def __init__(
        self,
        from_frame: CartesianFrame,
        to_frame: CartesianFrame,
        rotation: np.ndarray = None,
        translation: np.ndarray = None
    ):
        self.from_frame = from_frame
        self.to_frame = to_frame
        self.se3 = pin.SE3(
            np.eye(3) if rotation is None else np.array(rotation, dtype=float),
            np.zeros(3) if translation is None else _vec3(translation)
        )

    @classmethod
    def from_se3(cls, from_frame: CartesianFrame, to_frame: CartesianFrame, se3: pin.SE3) -> 'Transform3D':
        return cls(from_frame, to_frame, se3.rotation, se3.translation)

    @property
    def rotation(self) -> np.ndarray:
        return self.se3.rotation

    @property
    def translation(self) -> np.ndarray:
        return self.se3.translation

    def inv(self) -> 'Transform3D':
        return Transform3D.from_se3(self.to_frame, self.from_frame, self.se3.inverse())

    def __mul__(self, other):
        if isinstance(other, Transform3D):
            framecheck(self.from_frame, other.to_frame)
            return Transform3D.from_se3(other.from_frame, self.to_frame, self.se3 * other.se3)
        if isinstance(other, Point3D):
            framecheck(self.from_frame, other.frame)
            return Point3D(self.to_frame, self.se3.act(other.v))
        if isinstance(other, FreeVector3D):
            framecheck(self.from_frame, other.frame)
            return FreeVector3D(self.to_frame, self.se3.rotation @ other.v)
        return NotImplemented

    def __repr__(self):
        return f"Transform3D({self.from_frame.name} -> {self.to_frame.name})"


def _transform_motion(T: Transform3D, angular: np.ndarray, linear: np.ndarray):
    """Change the frame of expression of a motion vector (or 3 x n blocks of them)"""
    if angular.ndim == 1:
        motion = T.se3.act(pin.Motion(linear, angular))
        return motion.angular, motion.linear
    # Pinocchio orders motion coordinates [linear; angular]
    moved = T.se3.toActionMatrix() @ np.vstack([linear, angular])
    return moved[3:], moved[:3]


class _MotionVector:
    """Shared implementation of Twist and SpatialAcceleration"""

    __slots__ = ('body', 'base', 'frame', 'angular', 'linear')

    def __init__(
        self,
        body: CartesianFrame,
        base: CartesianFrame,
        frame: CartesianFrame,
        angular,
        linear
    ):
        self.body = body
        self.base = base
        self.frame = frame
        self.angular = _vec3(angular)
        self.linear = _vec3(linear)

    @classmethod
    def zero(cls, body, base, frame):
        return cls(body, base, frame, np.zeros(3), np.zeros(3))

    def _like(self, body, base, frame, angular, linear):
        return type(self)(body, base, frame, angular, linear)

    def __add__(self, other):
        # (body wrt base) + (base wrt other.base) = body wrt other.base
        framecheck(self.frame, other.frame)
        framecheck(self.base, other.body)
        return self._like(
            self.body, other.base, self.frame,
            self.angular + other.angular, self.linear + other.linear
        )

    def __sub__(self, other):
        # (body wrt base) - (other.body wrt base) = body wrt other.body
        framecheck(self.frame, other.frame)
        framecheck(self.base, other.base)
        return self._like(
            self.body, other.body, self.frame,
            self.angular - other.angular, self.linear - other.linear
        )

    def __neg__(self):
        return self._like(self.base, self.body, self.frame, -self.angular, -self.linear)

    def motion(self) -> pin.Motion:
        return pin.Motion(self.linear, self.angular)

    def as_vector(self) -> np.ndarray:
        """Stacked [angular; linear] 6-vector"""
        return np.concatenate([self.angular, self.linear])

    def isapprox(self, other, atol: float = 1e-8) -> bool:
        return (
            self.body is other.body and self.base is other.base and self.frame is other.frame
            and np.allclose(self.angular, other.angular, atol=atol)
            and np.allclose(self.linear, other.linear, atol=atol)
        )

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(body={self.body.name}, base={self.base.name}, "
            f"frame={self.frame.name}, angular={self.angular}, linear={self.linear})"
        )


class Twist(_MotionVector):
    """Spatial velocity of body with respect to base, expressed in frame"""

    __slots__ = ()

    def transform(self, T: Transform3D) -> 'Twist':
        framecheck(T.from_frame, self.frame)
        angular, linear = _transform_motion(T, self.angular, self.linear)
        return Twist(self.body, self.base, T.to_frame, angular, linear)

    def point_velocity(self, point: Point3D) -> FreeVector3D:
        """Velocity of a point rigidly attached to the body"""
        framecheck(self.frame, point.frame)
        return FreeVector3D(self.frame, self.linear + np.cross(self.angular, point.v))


class SpatialAcceleration(_MotionVector):
    """
    Spatial acceleration of body with respect to base, expressed in frame

    This is the time derivative of the twist of body with respect to base,
    with the derivative taken in the frame of expression.
    """

    __slots__ = ()

    def transform(
        self,
        T: Transform3D,
        twist_of_frame: Twist,
        twist_of_body: Twist
    ) -> 'SpatialAcceleration':
        """
        Express the acceleration in T.to_frame

        The frame of expression moves with respect to the new frame, so the
        derivative picks up the term twist_of_frame x twist_of_body on top of
        the adjoint map.

        Args:
            T: Transform from the current frame to the new frame
            twist_of_frame: Twist of the current frame with respect to the
                new frame, expressed in the current frame
            twist_of_body: Twist of body with respect to base, expressed in
                the current frame

        Returns:
            Spatial acceleration expressed in T.to_frame
        """
        framecheck(T.from_frame, self.frame)
        framecheck(self.frame, twist_of_frame.frame)
        framecheck(self.frame, twist_of_frame.body)
        framecheck(T.to_frame, twist_of_frame.base)
        framecheck(self.frame, twist_of_body.frame)
        framecheck(self.body, twist_of_body.body)
        framecheck(self.base, twist_of_body.base)

        cross = twist_of_frame.motion().cross(twist_of_body.motion())
        angular, linear = _transform_motion(
            T, self.angular + cross.angular, self.linear + cross.linear
        )
        return SpatialAcceleration(self.body, self.base, T.to_frame, angular, linear)


class Wrench:
    """Torque and force pair, torque taken about the origin of frame"""

    __slots__ = ('frame', 'angular', 'linear')

    def __init__(self, frame: CartesianFrame, angular, linear):
        self.frame = frame
        self.angular = _vec3(angular)
        self.linear = _vec3(linear)

    @classmethod
    def zero(cls, frame: CartesianFrame) -> 'Wrench':
        return cls(frame, np.zeros(3), np.zeros(3))

    @classmethod
    def from_force(cls, point: Point3D, force: FreeVector3D) -> 'Wrench':
        """Wrench of a pure force applied at a point"""
        framecheck(point.frame, force.frame)
        return cls(point.frame, np.cross(point.v, force.v), force.v)

    def __add__(self, other: 'Wrench') -> 'Wrench':
        framecheck(self.frame, other.frame)
        return Wrench(self.frame, self.angular + other.angular, self.linear + other.linear)

    def __sub__(self, other: 'Wrench') -> 'Wrench':
        framecheck(self.frame, other.frame)
        return Wrench(self.frame, self.angular - other.angular, self.linear - other.linear)

    def transform(self, T: Transform3D) -> 'Wrench':
        framecheck(T.from_frame, self.frame)
        force = T.se3.act(pin.Force(self.linear, self.angular))
        return Wrench(T.to_frame, force.angular, force.linear)

    def as_vector(self) -> np.ndarray:
        """Stacked [angular; linear] 6-vector"""
        return np.concatenate([self.angular, self.linear])

    def isapprox(self, other: 'Wrench', atol: float = 1e-8) -> bool:
        return (
            self.frame is other.frame
            and np.allclose(self.angular, other.angular, atol=atol)
            and np.allclose(self.linear, other.linear, atol=atol)
        )

    def __repr__(self):
        return f"Wrench({self.frame.name}, angular={self.angular}, linear={self.linear})"


class GeometricJacobian:
    """
    Maps joint velocities to the twist of body with respect to base

    The angular and linear blocks are 3 x nv buffers that are allocated
    once and overwritten in place every tick.
    """

    __slots__ = ('body', 'base', 'frame', 'angular', 'linear')

    def __init__(self, body, base, frame, nv: int):
        self.body = body
        self.base = base
        self.frame = frame
        self.angular = np.zeros((3, nv))
        self.linear = np.zeros((3, nv))

    def set_transformed(
        self,
        angular_world: np.ndarray,
        linear_world: np.ndarray,
        world_to_frame: Transform3D
    ):
        """Overwrite the buffers with a world-frame Jacobian expressed in world_to_frame.to_frame"""
        framecheck(self.frame, world_to_frame.to_frame)
        angular, linear = _transform_motion(world_to_frame, angular_world, linear_world)
        self.angular[:] = angular
        self.linear[:] = linear

    def twist(self, v: np.ndarray) -> Twist:
        return Twist(self.body, self.base, self.frame, self.angular @ v, self.linear @ v)


class PointJacobian:
    """Maps joint velocities to the velocity of a point, expressed in frame"""

    __slots__ = ('frame', 'J')

    def __init__(self, frame: CartesianFrame, nv: int):
        self.frame = frame
        self.J = np.zeros((3, nv))

    def set_from(self, jacobian: GeometricJacobian, point: Point3D):
        """Overwrite J with the Jacobian of a point attached to the Jacobian's body"""
        framecheck(jacobian.frame, point.frame)
        framecheck(self.frame, point.frame)
        # v_p = v + w x p = v - p x w
        self.J[:] = jacobian.linear - np.cross(point.v, jacobian.angular, axis=0)

    def velocity(self, v: np.ndarray) -> FreeVector3D:
        return FreeVector3D(self.frame, self.J @ v)


class MomentumMatrix:
    """Maps joint velocities to momentum expressed in frame"""

    __slots__ = ('frame', 'angular', 'linear')

    def __init__(self, frame: CartesianFrame, nv: int):
        self.frame = frame
        self.angular = np.zeros((3, nv))
        self.linear = np.zeros((3, nv))

    def wrench(self, vdot: np.ndarray) -> Wrench:
        """Momentum rate A * vdot as a wrench in frame"""
        return Wrench(self.frame, self.angular @ vdot, self.linear @ vdot)
