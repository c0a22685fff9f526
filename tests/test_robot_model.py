"""
Tests for the Pinocchio mechanism wrapper.
Run with: pytest tests/ -v
"""

import numpy as np
import pinocchio as pin
import pytest
from pathlib import Path

from momentum_control.exceptions import ConfigurationError, DimensionMismatchError
from momentum_control.utils.robot_model import Mechanism, MechanismState, build_sample_biped
from momentum_control.utils.spatial import FreeVector3D, MomentumMatrix, Point3D, Wrench

CONFIG_DIR = Path(__file__).parent.parent / "config"


class TestMechanism:
    """Test mechanism topology."""

    def test_sample_biped_dimensions(self, mechanism):
        assert mechanism.nv == 18
        assert mechanism.floating_joint == 1
        assert mechanism.unactuated_range == slice(0, 6)
        assert mechanism.num_actuated_velocities == 12
        assert mechanism.total_mass == pytest.approx(10.0 + 2 * (2 * 1.0 + 3 * 0.1 + 0.5))

    def test_contact_points_on_feet(self, mechanism):
        feet = [mechanism.body_id('left_ankle_roll'), mechanism.body_id('right_ankle_roll')]
        assert sorted(mechanism.contact_points) == sorted(feet)
        for foot in feet:
            points = mechanism.contact_points[foot]
            assert len(points) == 4
            assert all(p.frame is mechanism.body_frame(foot) for p in points)

    def test_unknown_body(self, mechanism):
        with pytest.raises(ConfigurationError):
            mechanism.body_id('tail')

    def test_path_between_feet(self, mechanism):
        left = mechanism.body_id('left_ankle_roll')
        right = mechanism.body_id('right_ankle_roll')
        path = mechanism.path(right, left)
        assert path.source == right and path.target == left
        # Six joints per leg, the pelvis is the common ancestor
        assert len(path.joints) == 12
        assert mechanism.floating_joint not in path.joints

    def test_load_contact_points(self):
        mechanism = Mechanism(build_sample_biped().model)
        mechanism.load_contact_points(CONFIG_DIR / "sample_biped_contacts.yaml")
        left = mechanism.body_id('left_ankle_roll')
        assert len(mechanism.contact_points[left]) == 4
        np.testing.assert_allclose(mechanism.contact_points[left][0].v, [0.1, 0.04, -0.05])

    def test_contact_point_frame_checked(self, mechanism):
        with pytest.raises(ValueError):
            mechanism.add_contact_point(1, Point3D(mechanism.world_frame, np.zeros(3)))

    def test_gravity(self, mechanism):
        mechanism.gravitational_acceleration = FreeVector3D(mechanism.world_frame, [0, 0, -1.62])
        np.testing.assert_allclose(mechanism.gravitational_acceleration.v, [0, 0, -1.62])


class TestMechanismState:
    """Test dynamics quantities exposed by the state."""

    def test_wrong_lengths(self, state):
        with pytest.raises(DimensionMismatchError):
            state.set_configuration(np.zeros(3))
        with pytest.raises(DimensionMismatchError):
            state.set_velocity(np.zeros(state.mechanism.nv + 1))

    def test_mass_matrix_symmetric(self, state, randomize):
        randomize(state)
        M = state.mass_matrix()
        np.testing.assert_allclose(M, M.T)
        assert np.all(np.linalg.eigvalsh(M) > 0.0)

    def test_inverse_dynamics_without_contacts(self, state, randomize, rng):
        randomize(state)
        vdot = rng.normal(size=state.mechanism.nv)
        tau = state.inverse_dynamics(vdot)
        np.testing.assert_allclose(tau, state.mass_matrix() @ vdot + state.dynamics_bias(), atol=1e-9)

    def test_inverse_dynamics_with_wrench(self, state, randomize, rng):
        randomize(state)
        mechanism = state.mechanism
        foot = mechanism.body_id('left_ankle_roll')
        vdot = rng.normal(size=mechanism.nv)
        wrench = Wrench(mechanism.world_frame, rng.normal(size=3), rng.normal(size=3))

        tau = state.inverse_dynamics(vdot, {foot: wrench})

        angular, linear = state.world_jacobian(foot)
        J = np.vstack([angular, linear])
        expected = state.mass_matrix() @ vdot + state.dynamics_bias() - J.T @ wrench.as_vector()
        np.testing.assert_allclose(tau, expected, atol=1e-9)

    def test_momentum_matrix(self, state, randomize):
        randomize(state)
        mechanism = state.mechanism
        A = state.momentum_matrix(MomentumMatrix(mechanism.centroidal_frame, mechanism.nv))
        data = state.model.createData()
        hg = pin.computeCentroidalMomentum(state.model, data, state.q, state.v)
        np.testing.assert_allclose(A.linear @ state.v, hg.linear, atol=1e-9)
        np.testing.assert_allclose(A.angular @ state.v, hg.angular, atol=1e-9)

    def test_momentum_rate_finite_difference(self, state, randomize, rng):
        randomize(state)
        model = state.model
        vdot = rng.normal(size=state.mechanism.nv)
        data = model.createData()

        def momentum(h):
            q = pin.integrate(model, state.q, h * state.v + 0.5 * h * h * vdot)
            v = state.v + h * vdot
            hg = pin.computeCentroidalMomentum(model, data, q, v)
            return np.concatenate([hg.angular, hg.linear])

        h = 1e-6
        expected = (momentum(h) - momentum(-h)) / (2 * h)
        rate = state.momentum_rate(vdot)
        assert rate.frame is state.mechanism.centroidal_frame
        np.testing.assert_allclose(rate.as_vector(), expected, atol=1e-4)

    def test_transform_acceleration(self, state, randomize, rng):
        randomize(state)
        mechanism = state.mechanism
        left = mechanism.body_id('left_ankle_roll')
        vdot = rng.normal(size=mechanism.nv)
        accel = state.spatial_accelerations(vdot)[left]
        assert state.transform_acceleration(accel, mechanism.world_frame) is accel

        # In the body's own frame this is Pinocchio's local spatial acceleration
        data = state.model.createData()
        pin.forwardKinematics(state.model, data, state.q, state.v, vdot)
        local = state.transform_acceleration(accel, mechanism.body_frame(left))
        np.testing.assert_allclose(local.angular, data.a[left].angular, atol=1e-9)
        np.testing.assert_allclose(local.linear, data.a[left].linear, atol=1e-9)

        # Going through an intermediate moving frame gives the same result
        pelvis = mechanism.body_frame(mechanism.floating_joint)
        via_pelvis = state.transform_acceleration(
            state.transform_acceleration(accel, pelvis), mechanism.body_frame(left)
        )
        assert via_pelvis.isapprox(local, atol=1e-9)

    def test_centroidal_frame_at_com(self, state, randomize):
        randomize(state)
        mechanism = state.mechanism
        T = state.transform_to_root(mechanism.centroidal_frame)
        np.testing.assert_allclose(T.translation, state.center_of_mass().v)
        np.testing.assert_allclose(T.rotation, np.eye(3))

    def test_cache_invalidated_on_set(self, state, randomize):
        randomize(state)
        M1 = state.mass_matrix().copy()
        randomize(state)
        assert not np.allclose(M1, state.mass_matrix())
