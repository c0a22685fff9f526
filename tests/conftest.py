"""
Shared fixtures for momentum control tests
"""

import numpy as np
import pinocchio as pin
import pytest

from momentum_control.utils.robot_model import MechanismState, build_sample_biped


@pytest.fixture
def mechanism():
    return build_sample_biped()


@pytest.fixture
def state(mechanism):
    return MechanismState(mechanism)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def randomize(rng):
    """Return a function putting a state in a random configuration and velocity"""
    def _randomize(state, zero_velocity=False):
        model = state.model
        q = pin.neutral(model)
        q[:3] = rng.normal(size=3)
        quat = rng.normal(size=4)
        q[3:7] = quat / np.linalg.norm(quat)
        q[7:] = rng.uniform(-1.0, 1.0, size=model.nq - 7)
        v = np.zeros(model.nv) if zero_velocity else rng.normal(size=model.nv)
        state.set(q, v)
        return state
    return _randomize
