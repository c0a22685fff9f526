#!/usr/bin/env python3
"""
Robot Model Wrapper
Pinocchio-based rigid body dynamics exposed through frame-tagged quantities

Bodies are identified by Pinocchio joint indices: body i is the rigid body
moved by joint i, and body 0 is the world.
"""

import numpy as np
import pinocchio as pin
import yaml
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .spatial import (
    CartesianFrame, Point3D, FreeVector3D, Transform3D, Twist,
    SpatialAcceleration, Wrench, GeometricJacobian, MomentumMatrix, framecheck
)
from ..exceptions import ConfigurationError, DimensionMismatchError


@dataclass
class KinematicPath:
    """Kinematic path from a source body to a target body"""
    source: int
    target: int
    joints: List[int]

    def __repr__(self):
        return f"KinematicPath({self.source} -> {self.target}, joints={self.joints})"


class Mechanism:
    """
    Topology of an articulated mechanism

    Provides:
    - One Cartesian frame per body plus world and centroidal frames
    - Kinematic paths between bodies
    - Velocity index ranges per joint
    - Candidate contact points per body
    """

    def __init__(self, model: pin.Model):
        self.model = model
        self.nq = model.nq
        self.nv = model.nv

        self.world_frame = CartesianFrame('world')
        self.centroidal_frame = CartesianFrame('centroidal')
        self._body_frames = [self.world_frame] + [
            CartesianFrame(model.names[i]) for i in range(1, model.njoints)
        ]
        self._frame_to_body = {frame: i for i, frame in enumerate(self._body_frames)}

        # Candidate contact points, expressed in their body frames
        self.contact_points: Dict[int, List[Point3D]] = {}

        if model.njoints > 1 and model.joints[1].shortname() == 'JointModelFreeFlyer':
            self.floating_joint = 1
        else:
            self.floating_joint = None

    @classmethod
    def from_urdf(
        cls,
        urdf_path: str,
        floating: bool = True,
        config_path: Optional[str] = None
    ) -> 'Mechanism':
        """
        Build a mechanism from a URDF file

        Args:
            urdf_path: Path to URDF file
            floating: Attach the root link with a free-flyer joint
            config_path: Optional YAML file listing contact points per body

        Returns:
            Mechanism instance
        """
        if floating:
            model = pin.buildModelFromUrdf(urdf_path, pin.JointModelFreeFlyer())
        else:
            model = pin.buildModelFromUrdf(urdf_path)
        mechanism = cls(model)
        if config_path:
            mechanism.load_contact_points(config_path)
        return mechanism

    def load_contact_points(self, config_path: str):
        """Load contact points from YAML: contacts: {body_name: [[x, y, z], ...]}"""
        with open(config_path, 'r') as f:
            cfg = yaml.safe_load(f)

        for body_name, points in (cfg.get('contacts') or {}).items():
            body = self.body_id(body_name)
            for point in points:
                self.add_contact_point(body, Point3D(self.body_frame(body), point))

    @property
    def num_bodies(self) -> int:
        """Number of bodies including the world"""
        return self.model.njoints

    @property
    def joints(self) -> range:
        """Indices of all non-world joints"""
        return range(1, self.model.njoints)

    @property
    def total_mass(self) -> float:
        return pin.computeTotalMass(self.model)

    @property
    def gravitational_acceleration(self) -> FreeVector3D:
        return FreeVector3D(self.world_frame, self.model.gravity.linear)

    @gravitational_acceleration.setter
    def gravitational_acceleration(self, gravity: FreeVector3D):
        framecheck(self.world_frame, gravity.frame)
        self.model.gravity = pin.Motion(gravity.v, np.zeros(3))

    def body_id(self, name: str) -> int:
        """Look up a body (joint) index by name"""
        body = self.model.getJointId(name)
        if body >= self.model.njoints:
            raise ConfigurationError(f"Unknown body '{name}'")
        return body

    def body_name(self, body: int) -> str:
        return self.model.names[body]

    def body_frame(self, body: int) -> CartesianFrame:
        """Default frame of a body (the frame after its joint)"""
        return self._body_frames[body]

    def body_of(self, frame: CartesianFrame) -> int:
        """Body to which a frame is attached"""
        try:
            return self._frame_to_body[frame]
        except KeyError:
            raise ConfigurationError(f"{frame} is not attached to a body") from None

    def parent(self, body: int) -> int:
        return self.model.parents[body]

    def ancestors(self, body: int) -> List[int]:
        """Bodies from body up to and including the world"""
        chain = [body]
        while body != 0:
            body = self.parent(body)
            chain.append(body)
        return chain

    def path(self, source: int, target: int) -> KinematicPath:
        """Kinematic path from source body to target body"""
        up = self.ancestors(target)
        down = self.ancestors(source)
        common = next(b for b in up if b in down)
        joints = up[:up.index(common)] + down[:down.index(common)]
        return KinematicPath(source, target, joints)

    def velocity_range(self, joint: int) -> slice:
        jmodel = self.model.joints[joint]
        return slice(jmodel.idx_v, jmodel.idx_v + jmodel.nv)

    def num_joint_velocities(self, joint: int) -> int:
        return self.model.joints[joint].nv

    @property
    def unactuated_range(self) -> slice:
        """Velocity coordinates without actuation (the floating joint)"""
        if self.floating_joint is None:
            return slice(0, 0)
        return self.velocity_range(self.floating_joint)

    @property
    def num_actuated_velocities(self) -> int:
        r = self.unactuated_range
        return self.nv - (r.stop - r.start)

    def add_contact_point(self, body: int, point: Point3D):
        """Register a candidate contact point on a body"""
        framecheck(self.body_frame(body), point.frame)
        self.contact_points.setdefault(body, []).append(point)


class MechanismState:
    """
    Configuration and velocity of a mechanism

    Exposes the dynamics-engine quantities consumed by the controller.
    Quantities are computed lazily and cached until the configuration or
    velocity changes.
    """

    def __init__(self, mechanism: Mechanism):
        self.mechanism = mechanism
        self.model = mechanism.model

        self.q = pin.neutral(self.model)
        self.v = np.zeros(mechanism.nv)

        # Separate data per computation so that one algorithm never
        # clobbers the intermediate results of another
        self._kinematics = self.model.createData()
        self._dynamics = self.model.createData()
        self._centroidal = self.model.createData()
        self._scratch = self.model.createData()
        self._zero_nv = np.zeros(mechanism.nv)

        self._cache: Dict[str, object] = {}

    def set_configuration(self, q: np.ndarray):
        if len(q) != self.mechanism.nq:
            raise DimensionMismatchError(self.mechanism.nq, len(q), "configuration")
        self.q[:] = q
        self._cache.clear()

    def set_velocity(self, v: np.ndarray):
        if len(v) != self.mechanism.nv:
            raise DimensionMismatchError(self.mechanism.nv, len(v), "velocity")
        self.v[:] = v
        self._cache.clear()

    def set(self, q: np.ndarray, v: np.ndarray):
        self.set_configuration(q)
        self.set_velocity(v)

    def zero_velocity(self):
        self.v[:] = 0.0
        self._cache.clear()

    def _ensure_kinematics(self):
        if 'kinematics' not in self._cache:
            data = self._kinematics
            pin.computeJointJacobians(self.model, data, self.q)
            # Zero acceleration leaves the bias accelerations in data.a
            pin.forwardKinematics(self.model, data, self.q, self.v, self._zero_nv)
            self._cache['kinematics'] = True

    def center_of_mass(self) -> Point3D:
        """Center of mass in world frame"""
        if 'com' not in self._cache:
            com = pin.centerOfMass(self.model, self._centroidal, self.q)
            self._cache['com'] = Point3D(self.mechanism.world_frame, com)
        return self._cache['com']

    def transform_to_root(self, frame: CartesianFrame) -> Transform3D:
        """Transform from frame to world"""
        world = self.mechanism.world_frame
        if frame is world:
            return Transform3D(world, world)
        if frame is self.mechanism.centroidal_frame:
            # Located at the CoM, aligned with world
            return Transform3D(frame, world, np.eye(3), self.center_of_mass().v)

        body = self.mechanism.body_of(frame)
        self._ensure_kinematics()
        return Transform3D.from_se3(frame, world, self._kinematics.oMi[body])

    def relative_transform(self, from_frame: CartesianFrame, to_frame: CartesianFrame) -> Transform3D:
        return self.transform_to_root(to_frame).inv() * self.transform_to_root(from_frame)

    def world_jacobian(self, body: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        World-frame Jacobian of a body

        Returns:
            Tuple of (angular, linear) 3 x nv blocks
        """
        if body == 0:
            return np.zeros((3, self.mechanism.nv)), np.zeros((3, self.mechanism.nv))
        self._ensure_kinematics()
        J = pin.getJointJacobian(self.model, self._kinematics, body, pin.ReferenceFrame.WORLD)
        # Pinocchio stacks [linear; angular]
        return J[3:6, :], J[:3, :]

    def geometric_jacobian(
        self,
        out: GeometricJacobian,
        path: KinematicPath,
        world_to_frame: Transform3D
    ) -> GeometricJacobian:
        """
        Fill out with the Jacobian of path.target with respect to path.source,
        expressed in world_to_frame.to_frame
        """
        framecheck(self.mechanism.body_frame(path.target), out.body)
        framecheck(self.mechanism.body_frame(path.source), out.base)
        ang_t, lin_t = self.world_jacobian(path.target)
        ang_s, lin_s = self.world_jacobian(path.source)
        out.set_transformed(ang_t - ang_s, lin_t - lin_s, world_to_frame)
        return out

    def twist_wrt_world(self, body: int) -> Twist:
        world = self.mechanism.world_frame
        frame = self.mechanism.body_frame(body)
        if body == 0:
            return Twist.zero(world, world, world)
        self._ensure_kinematics()
        twist = self._kinematics.oMi[body].act(self._kinematics.v[body])
        return Twist(frame, world, world, twist.angular, twist.linear)

    def relative_twist(self, body: int, base: int) -> Twist:
        """Twist of body with respect to base, in world frame"""
        return self.twist_wrt_world(body) - self.twist_wrt_world(base)

    def bias_acceleration(self, body: int) -> SpatialAcceleration:
        """
        Spatial acceleration of body with respect to world at zero joint
        acceleration (the J-dot times v term), in world frame
        """
        world = self.mechanism.world_frame
        frame = self.mechanism.body_frame(body)
        if body == 0:
            return SpatialAcceleration.zero(world, world, world)
        self._ensure_kinematics()
        accel = self._kinematics.oMi[body].act(self._kinematics.a[body])
        return SpatialAcceleration(frame, world, world, accel.angular, accel.linear)

    def transform_acceleration(
        self,
        accel: SpatialAcceleration,
        to_frame: CartesianFrame
    ) -> SpatialAcceleration:
        """
        Express a spatial acceleration in another body-attached frame

        Supplies the twists that SpatialAcceleration.transform needs, so the
        result is the time derivative of the relative twist as seen from
        to_frame.

        Args:
            accel: Spatial acceleration between two bodies of the mechanism
            to_frame: World frame or a body frame

        Returns:
            Spatial acceleration expressed in to_frame
        """
        if accel.frame is to_frame:
            return accel
        body_of = self.mechanism.body_of
        old_to_root = self.transform_to_root(accel.frame)
        root_to_old = old_to_root.inv()
        twist_of_body = self.relative_twist(body_of(accel.body), body_of(accel.base)).transform(root_to_old)
        twist_of_frame = self.relative_twist(body_of(accel.frame), body_of(to_frame)).transform(root_to_old)
        old_to_new = self.transform_to_root(to_frame).inv() * old_to_root
        return accel.transform(old_to_new, twist_of_frame, twist_of_body)

    def mass_matrix(self) -> np.ndarray:
        """Joint-space mass matrix M(q)"""
        if 'mass_matrix' not in self._cache:
            M = pin.crba(self.model, self._dynamics, self.q)
            # Only the upper triangle is filled
            self._cache['mass_matrix'] = np.triu(M) + np.triu(M, 1).T
        return self._cache['mass_matrix']

    def dynamics_bias(self) -> np.ndarray:
        """Coriolis, centrifugal and gravity terms h(q, v)"""
        if 'dynamics_bias' not in self._cache:
            h = pin.nonLinearEffects(self.model, self._dynamics, self.q, self.v)
            self._cache['dynamics_bias'] = np.array(h)
        return self._cache['dynamics_bias']

    def momentum_matrix(self, out: MomentumMatrix) -> MomentumMatrix:
        """Fill out with the centroidal momentum matrix (about the current CoM)"""
        framecheck(self.mechanism.centroidal_frame, out.frame)
        Ag = pin.computeCentroidalMap(self.model, self._centroidal, self.q)
        out.linear[:] = Ag[:3, :]
        out.angular[:] = Ag[3:6, :]
        return out

    def momentum_rate_bias(self) -> Wrench:
        """Momentum rate at zero joint acceleration, in centroidal frame"""
        if 'momentum_rate_bias' not in self._cache:
            dhg = pin.computeCentroidalMomentumTimeVariation(
                self.model, self._centroidal, self.q, self.v, self._zero_nv
            )
            self._cache['momentum_rate_bias'] = Wrench(
                self.mechanism.centroidal_frame, np.array(dhg.angular), np.array(dhg.linear)
            )
        return self._cache['momentum_rate_bias']

    def momentum_rate(self, vdot: np.ndarray) -> Wrench:
        """Centroidal momentum rate for a given joint acceleration"""
        A = self.momentum_matrix(MomentumMatrix(self.mechanism.centroidal_frame, self.mechanism.nv))
        return A.wrench(vdot) + self.momentum_rate_bias()

    def spatial_accelerations(self, vdot: np.ndarray) -> Dict[int, SpatialAcceleration]:
        """Spatial accelerations of all bodies with respect to world, in world frame"""
        world = self.mechanism.world_frame
        data = self._scratch
        pin.forwardKinematics(self.model, data, self.q, self.v, vdot)

        accels = {0: SpatialAcceleration.zero(world, world, world)}
        for body in self.mechanism.joints:
            accel = data.oMi[body].act(data.a[body])
            accels[body] = SpatialAcceleration(
                self.mechanism.body_frame(body), world, world, accel.angular, accel.linear
            )
        return accels

    def inverse_dynamics(
        self,
        vdot: np.ndarray,
        external_wrenches: Optional[Dict[int, Wrench]] = None
    ) -> np.ndarray:
        """
        Compute generalized forces tau = M(q) * vdot + h(q, v) - sum J' * w_ext

        Args:
            vdot: Joint accelerations
            external_wrenches: World-frame wrenches applied to bodies

        Returns:
            Generalized force vector (nv,)
        """
        fext = pin.StdVec_Force()
        for _ in range(self.model.njoints):
            fext.append(pin.Force.Zero())

        if external_wrenches:
            self._ensure_kinematics()
            for body, wrench in external_wrenches.items():
                framecheck(self.mechanism.world_frame, wrench.frame)
                local = self._kinematics.oMi[body].actInv(pin.Force(wrench.linear, wrench.angular))
                fext[body] = fext[body] + local

        tau = pin.rnea(self.model, self._dynamics, self.q, self.v, vdot, fext)
        return np.array(tau)


def build_sample_biped(
    pelvis_mass: float = 10.0,
    link_mass: float = 1.0,
    foot_mass: float = 0.5
) -> Mechanism:
    """
    Create a floating-base biped without a URDF

    Two 6-DOF legs (hip yaw/roll/pitch, knee, ankle pitch/roll) below a
    free-flying pelvis, with four contact points at the corners of each foot.

    Args:
        pelvis_mass: Pelvis mass
        link_mass: Mass of each leg link
        foot_mass: Mass of each foot

    Returns:
        Mechanism instance
    """
    model = pin.Model()
    model.name = "sample_biped"

    pelvis = model.addJoint(0, pin.JointModelFreeFlyer(), pin.SE3.Identity(), "pelvis")
    model.appendBodyToJoint(
        pelvis,
        pin.Inertia(pelvis_mass, np.array([0.0, 0.0, 0.1]), np.diag([0.1, 0.08, 0.05])),
        pin.SE3.Identity()
    )

    link_inertia = pin.Inertia(link_mass, np.array([0.0, 0.0, -0.2]), np.diag([0.02, 0.02, 0.004]))
    hub_inertia = pin.Inertia(0.1 * link_mass, np.zeros(3), np.diag([1e-3, 1e-3, 1e-3]))
    foot_inertia = pin.Inertia(foot_mass, np.array([0.03, 0.0, -0.04]), np.diag([1e-3, 3e-3, 3e-3]))

    feet = {}
    for side, y in (("left", 0.1), ("right", -0.1)):
        leg = [
            ("hip_yaw", pin.JointModelRZ(), np.array([0.0, y, -0.1]), hub_inertia),
            ("hip_roll", pin.JointModelRX(), np.zeros(3), hub_inertia),
            ("hip_pitch", pin.JointModelRY(), np.zeros(3), link_inertia),
            ("knee", pin.JointModelRY(), np.array([0.0, 0.0, -0.4]), link_inertia),
            ("ankle_pitch", pin.JointModelRY(), np.array([0.0, 0.0, -0.4]), hub_inertia),
            ("ankle_roll", pin.JointModelRX(), np.zeros(3), foot_inertia),
        ]
        parent = pelvis
        for name, joint_model, offset, inertia in leg:
            joint = model.addJoint(parent, joint_model, pin.SE3(np.eye(3), offset), f"{side}_{name}")
            model.appendBodyToJoint(joint, inertia, pin.SE3.Identity())
            parent = joint
        feet[side] = parent

    mechanism = Mechanism(model)
    for foot in feet.values():
        frame = mechanism.body_frame(foot)
        for x in (0.1, -0.05):
            for y in (0.04, -0.04):
                mechanism.add_contact_point(foot, Point3D(frame, [x, y, -0.05]))

    return mechanism
