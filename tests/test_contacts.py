"""
Tests for contact settings and friction cone linearization.
Run with: pytest tests/ -v
"""

import numpy as np
import pytest
from scipy.optimize import nnls

from momentum_control.exceptions import ConfigurationError, FrameMismatchError
from momentum_control.utils.math_utils import tangent_basis
from momentum_control.utils.spatial import FreeVector3D
from momentum_control.wbc.constraints import ContactSettings


@pytest.fixture
def foot(mechanism):
    return mechanism.body_id('left_ankle_roll')


@pytest.fixture
def contact(mechanism, foot):
    return ContactSettings(mechanism, foot, mechanism.contact_points[foot][0])


def random_normal(rng, frame):
    n = rng.normal(size=3)
    return FreeVector3D(frame, n / np.linalg.norm(n))


class TestContactSettings:
    """Test contact configuration."""

    def test_disabled_by_default(self, contact):
        assert not contact.enabled
        assert contact.num_basis_vectors == 4

    def test_set_enables(self, contact):
        normal = FreeVector3D(contact.point.frame, [0.0, 0.0, 2.0])
        contact.set(normal, 0.8, weight=1e-3)
        assert contact.enabled
        assert contact.friction_coefficient == 0.8
        assert contact.weight == 1e-3
        np.testing.assert_allclose(contact.normal.v, [0.0, 0.0, 1.0])
        contact.disable()
        assert not contact.enabled

    def test_too_few_basis_vectors(self, mechanism, foot):
        with pytest.raises(ConfigurationError):
            ContactSettings(mechanism, foot, mechanism.contact_points[foot][0], num_basis_vectors=2)

    def test_negative_friction(self, contact):
        with pytest.raises(ConfigurationError):
            contact.set(FreeVector3D(contact.point.frame, [0, 0, 1]), -0.1)

    def test_normal_frame_checked(self, mechanism, contact):
        with pytest.raises(FrameMismatchError):
            contact.set(FreeVector3D(mechanism.world_frame, [0, 0, 1]), 0.5)

    def test_reduced_friction_coefficient(self, contact):
        contact.set(FreeVector3D(contact.point.frame, [0, 0, 1]), 0.5)
        assert contact.reduced_friction_coefficient == pytest.approx(np.sqrt(2) / 2 * 0.5)


class TestFrictionCone:
    """Test the polyhedral friction cone approximation."""

    @pytest.mark.parametrize("k", [3, 4, 8])
    def test_basis_inside_true_cone(self, mechanism, foot, rng, k):
        contact = ContactSettings(mechanism, foot, mechanism.contact_points[foot][0], num_basis_vectors=k)
        for _ in range(10):
            mu = rng.uniform(0.0, 1.5)
            normal = random_normal(rng, contact.point.frame)
            contact.set(normal, mu)
            force = contact.force(rng.uniform(0.0, 10.0, size=k))
            f_n = force.dot(contact.normal)
            f_t = force.v - f_n * contact.normal.v
            assert f_n >= 0.0
            assert np.linalg.norm(f_t) <= mu * f_n + 1e-9

    @pytest.mark.parametrize("k", [3, 4, 6])
    def test_reduced_cone_representable(self, mechanism, foot, rng, k):
        contact = ContactSettings(mechanism, foot, mechanism.contact_points[foot][0], num_basis_vectors=k)
        contact.set(random_normal(rng, contact.point.frame), 0.7)
        n = contact.normal.v
        t1, t2 = tangent_basis(n)
        for theta in np.linspace(0.0, 2 * np.pi, 13):
            f = n + contact.reduced_friction_coefficient * (np.cos(theta) * t1 + np.sin(theta) * t2)
            _, residual = nnls(contact.basis_vectors, f)
            assert residual < 1e-9

    def test_world_basis_follows_body(self, mechanism, state, randomize, contact):
        randomize(state)
        contact.set(FreeVector3D(contact.point.frame, [0, 0, 1]), 0.5)
        contact.update(state)
        R = state.transform_to_root(contact.point.frame).rotation
        np.testing.assert_allclose(contact.basis_world, R @ contact.basis_vectors)

    def test_world_jacobian_is_point_velocity(self, mechanism, state, randomize, contact):
        randomize(state)
        contact.update(state)
        twist = state.twist_wrt_world(contact.body)
        p = state.transform_to_root(contact.point.frame) * contact.point
        np.testing.assert_allclose(contact.jacobian @ state.v, twist.point_velocity(p).v, atol=1e-9)
